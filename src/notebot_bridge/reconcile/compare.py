"""
Compare Module - Diff legacy API responses against compat responses.
====================================================================

Walks the legacy tree (levels, subjects, topics, leaves for notes and labs)
and compares each legacy payload with what the synthesizer returns for the
same path. Object keys are compared independent of order; arrays are
compared element by element.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from notebot_bridge.compat.synthesizer import CompatSynthesizer
from notebot_bridge.reconcile.client import LegacyApiClient
from notebot_bridge.shared.logging import get_logger
from notebot_bridge.shared.utils import canonical_json, route_tail_slug

logger = get_logger(__name__)


@dataclass
class EndpointDiff:
    """One path whose responses differ."""

    path: str
    reason: str
    legacy: Any = None
    compat: Any = None


@dataclass
class ComparisonReport:
    """Outcome of a full comparison walk."""

    total: int = 0
    matches: int = 0
    diffs: list[EndpointDiff] = field(default_factory=list)

    @property
    def match_rate(self) -> float:
        if self.total == 0:
            return 1.0
        return self.matches / self.total


def diff_payloads(legacy: Any, compat: Any) -> Optional[str]:
    """
    Explain how two payloads differ.

    Returns:
        None when they are equal, otherwise a short reason
    """
    if legacy is None and compat is None:
        return None
    if legacy is None or compat is None:
        return f"one side is empty (legacy={legacy is not None}, compat={compat is not None})"

    if isinstance(legacy, list) and isinstance(compat, list):
        if len(legacy) != len(compat):
            return f"count {len(legacy)} vs {len(compat)}"
        for index, (left, right) in enumerate(zip(legacy, compat)):
            if canonical_json(left) != canonical_json(right):
                return f"item {index} differs"
        return None

    if canonical_json(legacy) != canonical_json(compat):
        return "object mismatch"
    return None


class ApiComparer:
    """Runs the comparison walk and accumulates a report."""

    def __init__(self, client: LegacyApiClient, synthesizer: CompatSynthesizer):
        self.client = client
        self.synthesizer = synthesizer
        self.report = ComparisonReport()

    def compare(self, path: str) -> bool:
        self.report.total += 1

        legacy = self.client.fetch(path)
        response = self.synthesizer.resolve(path)
        compat = response.body if response.ok else None

        reason = diff_payloads(legacy, compat)
        if reason is None:
            self.report.matches += 1
            return True

        logger.warning(f"DIFF {path}: {reason}")
        self.report.diffs.append(EndpointDiff(path, reason, legacy, compat))
        return False

    def _routed_children(self, path: str) -> list[str]:
        listing = self.client.fetch_list(path)
        return [
            route_tail_slug(item["route"])
            for item in listing or []
            if isinstance(item, dict) and item.get("route")
        ]

    def _walk(self, section: str, level_slug: str) -> None:
        base = f"/app/{section}/{level_slug}"
        self.compare(base)

        for subject_slug in self._routed_children(base):
            subject_path = f"{base}/{subject_slug}"
            self.compare(subject_path)

            for topic_slug in self._routed_children(subject_path):
                self.compare(f"{subject_path}/{topic_slug}")

    def run(self, level_slugs: Optional[list[str]] = None) -> ComparisonReport:
        self.report = ComparisonReport()
        if level_slugs is None:
            level_slugs = [level.slug for level in self.synthesizer.store.get_all_levels()]

        self.compare("/app/notes")
        self.compare("/app/labs")

        for level_slug in level_slugs:
            logger.info(f"Comparing level {level_slug}")
            self._walk("notes", level_slug)
            self._walk("labs", level_slug)

        logger.info(
            f"Compared {self.report.total} endpoints: {self.report.matches} match, "
            f"{len(self.report.diffs)} differ ({self.report.match_rate:.1%})"
        )
        return self.report


def compare_apis(
    client: LegacyApiClient,
    synthesizer: CompatSynthesizer,
    level_slugs: Optional[list[str]] = None,
) -> ComparisonReport:
    """
    Compare every legacy endpoint with its compat counterpart.

    Args:
        client: Legacy API client
        synthesizer: Compat synthesizer over the canonical store
        level_slugs: Levels to walk (default: all stored levels)

    Returns:
        ComparisonReport
    """
    return ApiComparer(client, synthesizer).run(level_slugs)
