"""
Matching Module - Pair legacy topics with canonical topics by URL overlap.
==========================================================================

Legacy topic routes carry flow names ("math1_books_flow") that bear no
reliable relation to canonical topic slugs, but both sides list the same
document links. A legacy topic is paired with the first canonical topic
(in canonical sort order) whose note URLs sufficiently overlap its leaf URLs.
"""

from typing import Iterable, Optional, Sequence, TypeVar

from notebot_bridge.shared.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_OVERLAP_THRESHOLD = 0.5


def overlap_score(legacy_urls: Iterable[str], candidate_urls: Iterable[str]) -> tuple[int, int]:
    """
    Count shared URLs between two link sets.

    Duplicates within either side are counted once.

    Returns:
        ``(overlap, smaller_size)`` where ``smaller_size`` is the size of the
        smaller of the two distinct URL sets
    """
    legacy = set(legacy_urls)
    candidate = set(candidate_urls)
    return len(legacy & candidate), min(len(legacy), len(candidate))


def is_match(
    legacy_urls: Iterable[str],
    candidate_urls: Iterable[str],
    threshold: float = DEFAULT_OVERLAP_THRESHOLD,
) -> bool:
    """
    Decide whether two link sets describe the same topic.

    True when the overlap is positive and at least ``threshold`` times the
    size of the smaller set.

    Example:
        >>> is_match(["a", "b", "c", "d"], ["a", "b"])
        True
        >>> is_match(["a", "b", "c", "d"], ["x", "y"])
        False
    """
    overlap, smaller = overlap_score(legacy_urls, candidate_urls)
    return overlap > 0 and overlap >= smaller * threshold


def match_topic(
    legacy_urls: Sequence[str],
    candidates: Iterable[tuple[T, Sequence[str]]],
    threshold: float = DEFAULT_OVERLAP_THRESHOLD,
) -> Optional[T]:
    """
    Pick the canonical topic a legacy leaf listing belongs to.

    Args:
        legacy_urls: URLs of the legacy leaf response
        candidates: ``(topic, note_urls)`` pairs in canonical sort order
        threshold: Fraction of the smaller set that must overlap

    Returns:
        The first qualifying topic, or None
    """
    if not legacy_urls:
        return None

    for topic, note_urls in candidates:
        if not note_urls:
            continue
        if is_match(legacy_urls, note_urls, threshold):
            return topic
    return None
