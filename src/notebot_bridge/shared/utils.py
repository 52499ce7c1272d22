"""
Utilities Module - Common helper functions.
==========================================

Provides utility functions for:
- Identifier normalization (slugs, legacy route tails, display names)
- Metadata bag merging
- JSON file I/O and canonical comparison
- Directory management
"""

import json
import re
from pathlib import Path
from typing import Any, Mapping, Optional

from notebot_bridge.shared.logging import get_logger

logger = get_logger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_UPPERCASE = re.compile(r"([A-Z])")


# ─────────────────────────────────────────────────────────────────────────────
# Identifier Normalization
# ─────────────────────────────────────────────────────────────────────────────


def slugify(value: str, separator: str = "-") -> str:
    """
    Convert a free-form name into a canonical slug.

    Lowercases, collapses every run of characters outside ``[a-z0-9]`` into
    one separator and trims separators from both ends.

    Args:
        value: Name to normalize
        separator: Replacement for non-alphanumeric runs

    Returns:
        Slug matching ``^[a-z0-9]+(-[a-z0-9]+)*$``, or an empty string

    Example:
        >>> slugify("Hand Note (Akib)")
        'hand-note-akib'
        >>> slugify("FMG(Mgmt)", "_")
        'fmg_mgmt'
    """
    slug = _NON_ALNUM.sub(separator, value.lower())
    return slug.strip(separator)


def route_tail_slug(route: str) -> str:
    """
    Return the final ``/``-delimited segment of a legacy route.

    The tail is the legacy node's local identifier: it doubles as the
    canonical slug candidate and as the key into per-node snapshot maps.

    Example:
        >>> route_tail_slug("app/notes/1/math1")
        'math1'
    """
    return route.rstrip("/").split("/")[-1]


def topic_display_name(stem: str) -> str:
    """
    Derive a readable topic name from a legacy file stem.

    Example:
        >>> topic_display_name("mathBooks")
        'math Books'
    """
    return _UPPERCASE.sub(r" \1", stem).replace("_", " ").strip()


# ─────────────────────────────────────────────────────────────────────────────
# Metadata Bags
# ─────────────────────────────────────────────────────────────────────────────


def merge_metadata(
    existing: Optional[Mapping[str, Any]],
    updates: Mapping[str, Any],
) -> dict[str, Any]:
    """
    Merge ``updates`` into a metadata bag without dropping existing keys.

    A new dict is always returned so ORM JSON columns register the change.

    Example:
        >>> merge_metadata({"year": 2018}, {"v1RouteSlug": "books"})
        {'year': 2018, 'v1RouteSlug': 'books'}
    """
    merged = dict(existing or {})
    merged.update(updates)
    return merged


# ─────────────────────────────────────────────────────────────────────────────
# File I/O
# ─────────────────────────────────────────────────────────────────────────────


def ensure_directory(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def load_json(file_path: Path) -> Any:
    """
    Load data from a JSON file.

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If the file is not valid JSON
    """
    with open(file_path, encoding="utf-8") as f:
        return json.load(f)


def save_json(file_path: Path, data: Any, indent: int = 2) -> None:
    """Save data to a JSON file, creating parent directories as needed."""
    ensure_directory(file_path.parent)

    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, ensure_ascii=False)

    logger.debug(f"Saved JSON to {file_path}")


def canonical_json(data: Any) -> str:
    """Serialize with sorted keys so payloads compare independent of key order."""
    return json.dumps(data, sort_keys=True, ensure_ascii=False)
