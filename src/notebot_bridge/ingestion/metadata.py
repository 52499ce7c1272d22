"""
Metadata Module - Structured attributes from legacy leaf titles.
================================================================

Legacy authors annotated titles with parenthesized groups, e.g.:

    "String Hand Note(Akib, 2018)"        -> author, year
    "Array Hand Note(Akib, AE-44)"        -> author, batch, department
    "Hand Note(Mustafiz Sir, BA Group)"   -> author, group
    "Questions(2012 - 18)"                -> yearRange
    "All Department Routine(L1,1)(2020)"  -> level, term, year

Each group is offered to an ordered list of matchers; the first matcher that
recognizes the group consumes it. The prefix outside the groups is searched
for a content-type phrase. Anything unrecognized is simply left out.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

from notebot_bridge.shared.logging import get_logger

logger = get_logger(__name__)

Matcher = Callable[[str], Optional[dict[str, Any]]]


# ─────────────────────────────────────────────────────────────────────────────
# Patterns
# ─────────────────────────────────────────────────────────────────────────────

PAREN_GROUP = re.compile(r"\(([^)]+)\)")
PAREN_GROUP_ANY = re.compile(r"\([^)]*\)")

YEAR_RANGE = re.compile(r"^(\d{4})\s*-\s*(\d{2,4})$")
YEAR = re.compile(r"^(\d{4})$")
LEVEL_TERM = re.compile(r"^L\s*(\d),\s*(\d)$", re.IGNORECASE)
BATCH = re.compile(r"^([A-Z]{2,4})-\d{2,3}$")
GROUP = re.compile(r"group$", re.IGNORECASE)
NEW_FLAG = re.compile(r"^new$", re.IGNORECASE)
AUTHOR = re.compile(r"^[A-Za-z.\s]+$")

# Priority order: the first phrase found in the title wins.
CONTENT_TYPES: tuple[str, ...] = (
    "Hand Note",
    "Handnote",
    "Book",
    "Questions",
    "Suggestion",
    "With Data",
    "Lab Report",
    "Routine",
    "Syllabus",
    "Sheet",
)


# ─────────────────────────────────────────────────────────────────────────────
# Group Matchers
# ─────────────────────────────────────────────────────────────────────────────


def match_year_range(content: str) -> Optional[dict[str, Any]]:
    """``2012 - 18`` or ``2012-2018`` -> ``{"yearRange": "2012-2018"}``."""
    match = YEAR_RANGE.match(content)
    if not match:
        return None

    start, end = match.group(1), match.group(2)
    if len(end) == 2:
        end = start[:2] + end
    return {"yearRange": f"{start}-{end}"}


def match_year(content: str) -> Optional[dict[str, Any]]:
    """A lone four-digit year."""
    match = YEAR.match(content)
    if not match:
        return None
    return {"year": int(match.group(1))}


def match_level_term(content: str) -> Optional[dict[str, Any]]:
    """``L1,1`` / ``l 2, 2`` -> level and term."""
    match = LEVEL_TERM.match(content)
    if not match:
        return None
    return {"level": int(match.group(1)), "term": int(match.group(2))}


def classify_parts(content: str) -> Optional[dict[str, Any]]:
    """
    Classify each comma-separated part of a free-form group.

    Only the first author-like part is kept; a group that yields nothing
    returns None.
    """
    result: dict[str, Any] = {}

    for part in (p.strip() for p in content.split(",")):
        if YEAR.match(part):
            result["year"] = int(part)
            continue

        batch = BATCH.match(part)
        if batch:
            result["batch"] = part
            result["department"] = batch.group(1)
            continue

        if GROUP.search(part):
            result["group"] = part
            continue

        if NEW_FLAG.match(part):
            result["isNew"] = True
            continue

        if "author" not in result and len(part) > 1 and AUTHOR.match(part):
            result["author"] = part

    return result or None


@dataclass(frozen=True)
class PatternRule:
    """A named group matcher, applied in list order."""

    name: str
    matcher: Matcher


GROUP_RULES: tuple[PatternRule, ...] = (
    PatternRule("year_range", match_year_range),
    PatternRule("year", match_year),
    PatternRule("level_term", match_level_term),
    PatternRule("parts", classify_parts),
)


# ─────────────────────────────────────────────────────────────────────────────
# Extraction
# ─────────────────────────────────────────────────────────────────────────────


def _merge_group(metadata: dict[str, Any], found: dict[str, Any]) -> None:
    for key, value in found.items():
        # The first author across all groups is kept
        if key == "author" and "author" in metadata:
            continue
        metadata[key] = value


def detect_content_type(title: str) -> Optional[str]:
    """
    Find the first content-type phrase outside the parenthesized groups.

    Example:
        >>> detect_content_type("String Hand Note(Akib, 2018)")
        'Hand Note'
    """
    prefix = PAREN_GROUP_ANY.sub("", title).strip().lower()
    if not prefix:
        return None

    for content_type in CONTENT_TYPES:
        if content_type.lower() in prefix:
            return content_type
    return None


def extract_metadata(
    title: str,
    rules: tuple[PatternRule, ...] = GROUP_RULES,
) -> dict[str, Any]:
    """
    Derive structured attributes from a cleaned title.

    Args:
        title: Cleaned leaf title
        rules: Group matchers in priority order

    Returns:
        Attribute map, possibly empty. Output is deterministic for a given
        title: keys appear in group order, then ``contentType``.

    Example:
        >>> extract_metadata("Hand Note(Akib, 2018)")
        {'author': 'Akib', 'year': 2018, 'contentType': 'Hand Note'}
    """
    metadata: dict[str, Any] = {}

    groups = PAREN_GROUP.findall(title)
    if not groups:
        return metadata

    for group in groups:
        content = group.strip()
        for rule in rules:
            found = rule.matcher(content)
            if found is not None:
                _merge_group(metadata, found)
                break

    content_type = detect_content_type(title)
    if content_type:
        metadata["contentType"] = content_type

    return metadata
