"""
Reconciler Module - Capture legacy responses onto canonical rows.
=================================================================

The compat layer can only reproduce the legacy API exactly if it replays
what the legacy API actually returned. This batch job walks a running
legacy instance and stores its payloads as metadata:

- Topic:   ``v1RouteSlug``, ``v1DisplayName`` (when a legacy topic matches)
- Subject: ``v1Topics``, ``v1RouteMapping``, ``v1Leaves``
- Level:   ``v1LabTopics``, ``v1LabLeaves``

Nodes the legacy API has no data for are skipped; unmatched legacy topics
are logged and left to live derivation.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from notebot_bridge.ingestion.blocks import normalize_leaf_items
from notebot_bridge.reconcile.client import LegacyApiClient
from notebot_bridge.reconcile.matching import DEFAULT_OVERLAP_THRESHOLD, match_topic
from notebot_bridge.shared.logging import get_logger
from notebot_bridge.shared.schemas import LegacySubjectItem, LegacyTopicItem
from notebot_bridge.shared.utils import merge_metadata, route_tail_slug
from notebot_bridge.storage.models import Level, Note, Subject, Topic

logger = get_logger(__name__)

ItemT = TypeVar("ItemT", bound=BaseModel)


@dataclass
class ReconcileStats:
    """Counts of one reconciliation run."""

    subjects_synced: int = 0
    missing_subjects: list[str] = field(default_factory=list)
    topics_matched: int = 0
    unmatched_topics: list[str] = field(default_factory=list)
    leaf_endpoints: int = 0
    lab_subjects: int = 0
    lab_leaf_endpoints: int = 0
    malformed_entries: list[str] = field(default_factory=list)


def leaf_urls(leaf: list[Any]) -> list[str]:
    """URLs of a legacy leaf response, whatever its item shape."""
    return [record.url for record in normalize_leaf_items(leaf)]


class SnapshotReconciler:
    """
    Syncs legacy API snapshots into canonical metadata.

    Legacy responses are fetched at most once per path within one
    reconciler instance.

    Example:
        >>> with database.session() as session:
        ...     stats = SnapshotReconciler(session, LegacyApiClient()).run()
    """

    def __init__(
        self,
        session: Session,
        client: LegacyApiClient,
        threshold: float = DEFAULT_OVERLAP_THRESHOLD,
    ):
        self.session = session
        self.client = client
        self.threshold = threshold
        self.stats = ReconcileStats()
        self._responses: dict[str, Optional[list[Any]]] = {}

    def _fetch_list(self, path: str) -> Optional[list[Any]]:
        if path not in self._responses:
            self._responses[path] = self.client.fetch_list(path)
        return self._responses[path]

    def _levels(self) -> list[Level]:
        return list(self.session.scalars(select(Level).order_by(Level.sort_order)))

    def _parse_entry(self, model: type[ItemT], raw: Any, node: str) -> Optional[ItemT]:
        """Validate one legacy listing entry; malformed entries are skipped."""
        if not isinstance(raw, dict):
            return None
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            if node not in self.stats.malformed_entries:
                logger.warning(f"Skipping malformed legacy entry {node}: {e.error_count()} errors")
                self.stats.malformed_entries.append(node)
            return None

    def _routes(self, path: str, listing: list[Any]) -> list[str]:
        """Route tail slugs of the routed entries of a legacy listing."""
        slugs = []
        for position, raw in enumerate(listing):
            item = self._parse_entry(LegacyTopicItem, raw, f"{path}[{position}]")
            if item is not None and item.route:
                slugs.append(route_tail_slug(item.route))
        return slugs

    def _routed_subjects(self, level_slug: str) -> list[str]:
        """Route tail slugs of the legacy subject listing of a level."""
        listing = self._fetch_list(f"/app/notes/{level_slug}")
        if listing is None:
            logger.info(f"No legacy data for level {level_slug}")
            return []

        slugs = []
        for position, raw in enumerate(listing):
            item = self._parse_entry(LegacySubjectItem, raw, f"/app/notes/{level_slug}[{position}]")
            if item is not None and item.route:
                slugs.append(route_tail_slug(item.route))
        return slugs

    def _find_subject(self, level: Level, slug: str) -> Optional[Subject]:
        return self.session.scalars(
            select(Subject).where(Subject.level_id == level.id, Subject.slug == slug)
        ).first()

    # ── Note topics ──────────────────────────────────────────────────────────

    def _candidates(self, subject: Subject) -> list[tuple[Topic, list[str]]]:
        topics = self.session.scalars(
            select(Topic).where(Topic.subject_id == subject.id).order_by(Topic.sort_order, Topic.id)
        ).all()
        return [
            (
                topic,
                list(
                    self.session.scalars(
                        select(Note.url)
                        .where(Note.topic_id == topic.id)
                        .order_by(Note.sort_order, Note.id)
                    )
                ),
            )
            for topic in topics
        ]

    def sync_note_topics(self) -> None:
        """Match legacy topics to canonical topics and store topic listings."""
        logger.info("Syncing note topic snapshots")

        for level in self._levels():
            for subject_slug in self._routed_subjects(level.slug):
                subject = self._find_subject(level, subject_slug)
                if subject is None:
                    logger.warning(f"No canonical subject for legacy slug {subject_slug!r}")
                    self.stats.missing_subjects.append(f"{level.slug}/{subject_slug}")
                    continue

                base = f"/app/notes/{level.slug}/{subject_slug}"
                legacy_topics = self._fetch_list(base)
                if legacy_topics is None:
                    logger.warning(f"No legacy topics for {level.slug}/{subject_slug}")
                    continue

                candidates = self._candidates(subject)
                route_mapping: dict[str, int] = {}

                for position, raw in enumerate(legacy_topics):
                    legacy_topic = self._parse_entry(LegacyTopicItem, raw, f"{base}[{position}]")
                    if legacy_topic is None or not legacy_topic.route:
                        continue

                    v1_slug = route_tail_slug(legacy_topic.route)
                    leaf = self._fetch_list(f"{base}/{v1_slug}")
                    matched = match_topic(leaf_urls(leaf or []), candidates, self.threshold)

                    if matched is None:
                        logger.warning(
                            f"Unmatched legacy topic {legacy_topic.topic!r} ({v1_slug}) "
                            f"in {level.slug}/{subject_slug}"
                        )
                        self.stats.unmatched_topics.append(f"{level.slug}/{subject_slug}/{v1_slug}")
                        continue

                    matched.meta = merge_metadata(
                        matched.meta,
                        {"v1RouteSlug": v1_slug, "v1DisplayName": legacy_topic.topic},
                    )
                    route_mapping[v1_slug] = matched.id
                    self.stats.topics_matched += 1

                subject.meta = merge_metadata(
                    subject.meta,
                    {"v1Topics": legacy_topics, "v1RouteMapping": route_mapping},
                )
                self.stats.subjects_synced += 1

                routed = len(self._routes(base, legacy_topics))
                logger.info(
                    f"{level.slug}/{subject_slug}: {len(legacy_topics)} topics, "
                    f"mapped {len(route_mapping)}/{routed}"
                )

        self.session.flush()

    # ── Note leaves ──────────────────────────────────────────────────────────

    def _leaf_map(self, base: str, legacy_topics: list[Any]) -> dict[str, list[Any]]:
        leaves: dict[str, list[Any]] = {}
        for topic_slug in self._routes(base, legacy_topics):
            leaf = self._fetch_list(f"{base}/{topic_slug}")
            if leaf is not None:
                leaves[topic_slug] = leaf
        return leaves

    def sync_note_leaves(self) -> None:
        """Store exact legacy leaf arrays on each subject, keyed by legacy topic slug."""
        logger.info("Syncing note leaf snapshots")

        for level in self._levels():
            for subject_slug in self._routed_subjects(level.slug):
                base = f"/app/notes/{level.slug}/{subject_slug}"
                legacy_topics = self._fetch_list(base)
                if legacy_topics is None:
                    continue

                leaves = self._leaf_map(base, legacy_topics)

                subject = self._find_subject(level, subject_slug)
                if subject is None:
                    continue

                subject.meta = merge_metadata(subject.meta, {"v1Leaves": leaves})
                self.stats.leaf_endpoints += len(leaves)
                logger.debug(f"{level.slug}/{subject_slug}: {len(leaves)} leaf endpoints captured")

        self.session.flush()

    # ── Labs ─────────────────────────────────────────────────────────────────

    def sync_lab_topics(self) -> None:
        """Store legacy lab topic and leaf listings on each level."""
        logger.info("Syncing lab snapshots")

        for level in self._levels():
            listing = self._fetch_list(f"/app/labs/{level.slug}")
            if listing is None:
                logger.info(f"No legacy lab data for level {level.slug}")
                continue

            lab_topics: dict[str, list[Any]] = {}
            lab_leaves: dict[str, dict[str, list[Any]]] = {}

            for subject_slug in self._routes(f"/app/labs/{level.slug}", listing):
                base = f"/app/labs/{level.slug}/{subject_slug}"
                legacy_topics = self._fetch_list(base)
                if legacy_topics is None:
                    continue

                lab_topics[subject_slug] = legacy_topics
                lab_leaves[subject_slug] = self._leaf_map(base, legacy_topics)

                self.stats.lab_subjects += 1
                self.stats.lab_leaf_endpoints += len(lab_leaves[subject_slug])
                logger.debug(f"Lab {level.slug}/{subject_slug}: {len(legacy_topics)} topics")

            level.meta = merge_metadata(
                level.meta, {"v1LabTopics": lab_topics, "v1LabLeaves": lab_leaves}
            )

        self.session.flush()

    def run(self) -> ReconcileStats:
        """
        Probe the legacy API, then run all three passes.

        Raises:
            LegacySourceUnavailable: If the legacy API is unreachable
        """
        self.client.probe()
        self.stats = ReconcileStats()

        self.sync_note_topics()
        self.sync_note_leaves()
        self.sync_lab_topics()

        logger.info(
            f"Reconciliation complete: {self.stats.subjects_synced} subjects, "
            f"{self.stats.topics_matched} topics matched, "
            f"{len(self.stats.unmatched_topics)} unmatched"
        )
        return self.stats
