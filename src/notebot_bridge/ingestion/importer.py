"""
Importer Module - Load a legacy corpus into the canonical store.
================================================================

A migration is a full replace: every canonical table is wiped, the
configured levels are created, and the corpus is walked level by level:

1. Subject listing: direct links become question banks, routed entries
   become subjects keyed by their route tail slug
2. Topic files of each subject become topics, their leaf items notes
3. Lab subject directories become lab reports
4. Routine and result files

A node that cannot be read is logged and skipped; the rest of the corpus is
still imported. Running the importer twice on the same corpus produces the
same row counts.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from notebot_bridge.ingestion.blocks import normalize_leaf_item
from notebot_bridge.ingestion.corpus import CorpusError, LegacyCorpus
from notebot_bridge.ingestion.metadata import extract_metadata
from notebot_bridge.shared.config import LevelConfig, Settings, get_settings
from notebot_bridge.shared.logging import get_logger
from notebot_bridge.shared.schemas import ContentKind, LeafRecord, LegacySubjectItem
from notebot_bridge.shared.utils import route_tail_slug, slugify, topic_display_name
from notebot_bridge.storage.database import Database, wipe_all
from notebot_bridge.storage.models import (
    LabReport,
    Level,
    Note,
    QuestionBank,
    Result,
    Routine,
    Subject,
    Topic,
)

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Data Classes
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class ImportStats:
    """Summary of one migration run."""

    levels: int = 0
    subjects: int = 0
    topics: int = 0
    items: dict[ContentKind, int] = field(default_factory=lambda: {k: 0 for k in ContentKind})
    skipped_blocks: int = 0
    duplicate_subjects: int = 0
    failed_nodes: list[str] = field(default_factory=list)
    start_time: datetime = field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    def as_dict(self) -> dict[str, int]:
        """Flat entity counts, in hierarchy order."""
        counts = {"levels": self.levels, "subjects": self.subjects, "topics": self.topics}
        counts.update({kind.value: n for kind, n in self.items.items()})
        return counts


# ─────────────────────────────────────────────────────────────────────────────
# Importer
# ─────────────────────────────────────────────────────────────────────────────


class HierarchyImporter:
    """
    Walks a legacy corpus and writes canonical rows.

    The whole run happens in one transaction, so a fatal error leaves the
    previous migration in place.

    Example:
        >>> importer = HierarchyImporter(Database.from_settings(), LegacyCorpus(path))
        >>> stats = importer.run()
        >>> stats.as_dict()["note"]
        1284
    """

    def __init__(
        self,
        database: Database,
        corpus: LegacyCorpus,
        levels: Optional[list[LevelConfig]] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.database = database
        self.corpus = corpus
        self.levels = levels if levels is not None else settings.levels
        self.stats = ImportStats()

    def run(self) -> ImportStats:
        """
        Run a full migration.

        Returns:
            ImportStats for this run
        """
        self.stats = ImportStats()
        logger.info(f"Migrating legacy corpus from {self.corpus.root}")

        with self.database.session() as session:
            wipe_all(session)
            level_ids = self._import_levels(session)

            for level in self.levels:
                self._import_level_notes(session, level.slug, level_ids[level.slug])
            for level in self.levels:
                self._import_level_labs(session, level.slug, level_ids[level.slug])

            self._import_routines(session, level_ids)
            self._import_results(session)

        self.stats.end_time = datetime.utcnow()
        logger.info(
            f"Migration complete in {self.stats.duration_seconds:.1f}s: "
            f"{self.stats.as_dict()} ({self.stats.skipped_blocks} blocks skipped, "
            f"{len(self.stats.failed_nodes)} nodes failed)"
        )
        return self.stats

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _fail(self, node: str, error: Exception) -> None:
        logger.error(f"Skipping {node}: {error}")
        self.stats.failed_nodes.append(node)

    def _read_records(self, path: Path, default_title: str) -> list[LeafRecord]:
        """Read and normalize one leaf file, counting blocks without a URL."""
        records: list[LeafRecord] = []
        for item in self.corpus.read_items(path):
            normalized = normalize_leaf_item(item, default_title)
            if not normalized:
                self.stats.skipped_blocks += 1
            records.extend(normalized)
        return records

    def _add_leaves(
        self,
        session: Session,
        kind: ContentKind,
        records: list[LeafRecord],
        start: int = 0,
        **columns: Any,
    ) -> int:
        """Insert leaf rows with sequential sort orders after ``start``."""
        model = {
            ContentKind.NOTE: Note,
            ContentKind.LAB_REPORT: LabReport,
            ContentKind.ROUTINE: Routine,
            ContentKind.RESULT: Result,
        }[kind]

        for offset, record in enumerate(records, start=1):
            session.add(
                model(
                    title=record.title,
                    url=record.url,
                    sort_order=start + offset,
                    meta=record.metadata_or_none(),
                    **columns,
                )
            )
        self.stats.items[kind] += len(records)
        return start + len(records)

    # ── Levels ───────────────────────────────────────────────────────────────

    def _import_levels(self, session: Session) -> dict[str, int]:
        level_ids: dict[str, int] = {}
        for config in self.levels:
            level = Level(
                name=config.name,
                display_name=config.display_name,
                slug=config.slug,
                sort_order=config.sort_order,
            )
            session.add(level)
            session.flush()
            level_ids[config.slug] = level.id
            self.stats.levels += 1
            logger.debug(f"Created level {config.display_name} (id={level.id})")
        return level_ids

    # ── Notes ────────────────────────────────────────────────────────────────

    def _import_level_notes(self, session: Session, level_slug: str, level_id: int) -> None:
        try:
            entries = self.corpus.read_subjects(level_slug)
        except CorpusError as e:
            self._fail(f"notes/level{level_slug}", e)
            return

        if entries is None:
            logger.info(f"No subject listing for level {level_slug}, skipping")
            return

        logger.info(f"Level {level_slug}: {len(entries)} subjects")
        seen: set[str] = set()

        for position, raw in enumerate(entries, start=1):
            try:
                item = LegacySubjectItem.model_validate(raw)
            except ValidationError as e:
                self._fail(f"notes/level{level_slug}[{position}]", e)
                continue

            if item.is_direct:
                metadata = extract_metadata(item.sub_name)
                session.add(
                    QuestionBank(
                        level_id=level_id,
                        subject_slug=slugify(item.sub_name),
                        title=item.sub_name,
                        url=item.url,
                        sort_order=position,
                        meta=metadata or None,
                    )
                )
                self.stats.items[ContentKind.QUESTION_BANK] += 1
                logger.debug(f"Direct link stored as question bank: {item.sub_name}")
                continue

            if not item.route:
                logger.debug(f"Listing entry without route or URL skipped: {raw!r:.80}")
                continue

            subject_slug = route_tail_slug(item.route)
            if not subject_slug or subject_slug in seen:
                logger.warning(f"Duplicate or empty subject slug {subject_slug!r} in level {level_slug}")
                self.stats.duplicate_subjects += 1
                continue
            seen.add(subject_slug)

            subject = Subject(
                level_id=level_id,
                name=subject_slug,
                display_name=item.sub_name,
                slug=subject_slug,
                sort_order=position,
            )
            session.add(subject)
            session.flush()
            self.stats.subjects += 1

            self._import_topics(session, level_slug, subject)

    def _import_topics(self, session: Session, level_slug: str, subject: Subject) -> None:
        topic_files = self.corpus.topic_files(level_slug, subject.slug)
        if not topic_files:
            logger.debug(f"No topic files for {level_slug}/{subject.slug}")
            return

        for position, path in enumerate(topic_files, start=1):
            stem = path.stem
            topic = Topic(
                subject_id=subject.id,
                name=stem,
                display_name=topic_display_name(stem),
                slug=slugify(stem),
                sort_order=position,
            )
            session.add(topic)
            session.flush()
            self.stats.topics += 1

            try:
                records = self._read_records(path, default_title=topic.display_name)
            except CorpusError as e:
                self._fail(f"{level_slug}/{subject.slug}/{stem}", e)
                continue

            self._add_leaves(session, ContentKind.NOTE, records, topic_id=topic.id)
            logger.debug(f"Topic {subject.slug}/{stem}: {len(records)} notes")

    # ── Labs ─────────────────────────────────────────────────────────────────

    def _import_level_labs(self, session: Session, level_slug: str, level_id: int) -> None:
        lab_subjects = self.corpus.lab_subjects(level_slug)
        if not lab_subjects:
            logger.debug(f"No lab subjects for level {level_slug}")
            return

        logger.info(f"Level {level_slug}: {len(lab_subjects)} lab subjects")
        for lab_subject in lab_subjects:
            order = 0
            for path in self.corpus.lab_topic_files(level_slug, lab_subject):
                try:
                    records = self._read_records(path, default_title=path.stem)
                except CorpusError as e:
                    self._fail(f"labs/{level_slug}/{lab_subject}/{path.stem}", e)
                    continue

                order = self._add_leaves(
                    session,
                    ContentKind.LAB_REPORT,
                    records,
                    start=order,
                    level_id=level_id,
                    subject_slug=lab_subject,
                    topic_name=path.stem,
                )
                logger.debug(f"Lab {lab_subject}/{path.stem}: {len(records)} items")

    # ── Routines & Results ───────────────────────────────────────────────────

    def _import_routines(self, session: Session, level_ids: dict[str, int]) -> None:
        if not level_ids:
            return

        default_level = self.levels[0].slug
        orders: dict[int, int] = {}

        for source in self.corpus.routine_sources():
            level_slug = source.level_slug if source.level_slug in level_ids else default_level
            level_id = level_ids[level_slug]

            try:
                records = self._read_records(source.path, default_title="Routine")
            except CorpusError as e:
                self._fail(f"routines/{source.path.name}", e)
                continue

            for record in records:
                term = source.term or record.metadata.get("term")
                orders[level_id] = self._add_leaves(
                    session,
                    ContentKind.ROUTINE,
                    [record],
                    start=orders.get(level_id, 0),
                    level_id=level_id,
                    term=str(term) if term is not None else None,
                    department=source.department,
                )

            if records:
                logger.info(f"Routines from {source.path.name}: {len(records)} items")

    def _import_results(self, session: Session) -> None:
        order = 0
        for source in self.corpus.result_sources():
            try:
                records = self._read_records(source.path, default_title="Result")
            except CorpusError as e:
                self._fail(f"results/{source.path.name}", e)
                continue

            if source.year is not None:
                for record in records:
                    record.metadata.setdefault("year", source.year)

            order = self._add_leaves(
                session,
                ContentKind.RESULT,
                records,
                start=order,
                category=source.category,
            )
            logger.info(f"Results from {source.path.name}: {len(records)} items")
