"""
Blocks Module - Split legacy leaf text into title, URL and metadata.
====================================================================

Legacy leaf items were chat-message text blocks such as:

    "🔷 String Hand Note(Akib, 2018) -\\n\\nhttps://drive.google.com/..."

Later files switched to button payloads. Both forms are normalized here to
``LeafRecord(title, url, metadata)``. A block without a URL is a placeholder
left by legacy authoring and is skipped, not treated as an error.
"""

import re
from typing import Any, Optional

from notebot_bridge.ingestion.metadata import extract_metadata
from notebot_bridge.shared.logging import get_logger
from notebot_bridge.shared.schemas import LeafRecord, ParsedBlock

logger = get_logger(__name__)

URL_PATTERN = re.compile(r"(https?://[^\s]*)")
TRAILING_DASH = re.compile(r"-\s*$")
LEADING_GLYPHS = re.compile("^[\\s\\ufe0f🔷⚡📌🔴🔰💡📗📙]+")

UNTITLED = "Untitled"
BLOCK_GLYPH = "🔷"


# ─────────────────────────────────────────────────────────────────────────────
# Text Blocks
# ─────────────────────────────────────────────────────────────────────────────


def clean_title(text: str) -> str:
    """
    Strip newlines, a trailing dash and leading decorative glyphs.

    Returns:
        The cleaned title, or ``"Untitled"`` when nothing is left
    """
    title = text.replace("\n", "")
    title = TRAILING_DASH.sub("", title)
    title = LEADING_GLYPHS.sub("", title)
    title = title.strip()
    return title or UNTITLED


def parse_text_block(text: str) -> Optional[ParsedBlock]:
    """
    Split one legacy text block into title and URL.

    The first ``http(s)://`` token wins; it is removed from the text before
    the title is cleaned.

    Args:
        text: Raw block text

    Returns:
        ParsedBlock, or None when the block carries no URL

    Example:
        >>> parse_text_block("🔷 Math Book -\\n\\nhttps://x.io/a")
        ParsedBlock(title='Math Book', url='https://x.io/a')
    """
    match = URL_PATTERN.search(text)
    if not match:
        return None

    url = match.group(1)
    remainder = text[: match.start()] + text[match.end() :]
    return ParsedBlock(title=clean_title(remainder), url=url)


def format_text_block(title: str, url: str) -> str:
    """Render a title and URL in the legacy text-block template."""
    return f"{BLOCK_GLYPH} {title} -\n\n{url}"


# ─────────────────────────────────────────────────────────────────────────────
# Leaf Item Normalization
# ─────────────────────────────────────────────────────────────────────────────


def _record(title: str, url: str) -> LeafRecord:
    return LeafRecord(title=title, url=url, metadata=extract_metadata(title))


def _buttons(item: dict[str, Any]) -> Optional[list[dict[str, Any]]]:
    attachment = item.get("attachment")
    if not isinstance(attachment, dict):
        return None
    payload = attachment.get("payload")
    if not isinstance(payload, dict):
        return None
    buttons = payload.get("buttons")
    return buttons if isinstance(buttons, list) else None


def normalize_leaf_item(item: Any, default_title: str = UNTITLED) -> list[LeafRecord]:
    """
    Normalize any legacy leaf form to zero or more LeafRecords.

    Accepted forms:
    - ``"text block"`` (bare string)
    - ``{"text": "text block"}``
    - ``{"title": ..., "url": ...}`` (button pair)
    - ``{"attachment": {"payload": {"buttons": [{"type": "web_url", ...}]}}}``

    Args:
        item: One element of a legacy leaf array
        default_title: Title for buttons that carry none

    Returns:
        Records in source order; empty when the item has no usable URL
    """
    if isinstance(item, str):
        text = item
    elif isinstance(item, dict) and isinstance(item.get("text"), str):
        text = item["text"]
    elif isinstance(item, dict) and isinstance(item.get("url"), str) and item["url"]:
        return [_record(clean_title(str(item.get("title") or default_title)), item["url"])]
    elif isinstance(item, dict) and _buttons(item) is not None:
        records = []
        for button in _buttons(item) or []:
            if not isinstance(button, dict):
                continue
            if button.get("type") == "web_url" and isinstance(button.get("url"), str) and button["url"]:
                title = clean_title(str(button.get("title") or default_title))
                records.append(_record(title, button["url"]))
        return records
    else:
        logger.debug(f"Unrecognized leaf item skipped: {item!r:.80}")
        return []

    parsed = parse_text_block(text)
    if parsed is None:
        logger.debug(f"Block without URL skipped: {text!r:.80}")
        return []

    return [_record(parsed.title, parsed.url)]


def leaf_array(data: Any) -> Optional[list[Any]]:
    """
    Return the item list of a leaf file.

    Files are either a bare array or an object exporting it under
    ``"default"``; anything else yields None.
    """
    if isinstance(data, dict) and isinstance(data.get("default"), list):
        return data["default"]
    return data if isinstance(data, list) else None


def normalize_leaf_items(items: Any, default_title: str = UNTITLED) -> list[LeafRecord]:
    """Normalize a whole legacy leaf array; non-list input yields nothing."""
    records: list[LeafRecord] = []
    for item in leaf_array(items) or []:
        records.extend(normalize_leaf_item(item, default_title))
    return records
