"""
Store Module - Cache-aside read access to canonical rows.
=========================================================

The compat synthesizer only ever reads. Rows are returned as frozen Pydantic
views so they can round-trip through the JSON cache and never leak ORM state
across requests.
"""

from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import select
from sqlalchemy.orm import Session

from notebot_bridge.shared.logging import get_logger
from notebot_bridge.storage.cache import KeyValueCache, NullCache
from notebot_bridge.storage.database import Database
from notebot_bridge.storage.models import LabReport, Level, Note, Subject, Topic

logger = get_logger(__name__)

V = TypeVar("V", bound=BaseModel)


# ─────────────────────────────────────────────────────────────────────────────
# Row Views
# ─────────────────────────────────────────────────────────────────────────────


class RowView(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    sort_order: int = 0
    meta: dict[str, Any] = Field(default_factory=dict)

    @field_validator("meta", mode="before")
    @classmethod
    def empty_meta(cls, v: Any) -> dict[str, Any]:
        """NULL metadata columns read as an empty bag."""
        return dict(v or {})


class LevelView(RowView):
    name: str
    display_name: str
    slug: str


class SubjectView(RowView):
    level_id: int
    name: str
    display_name: str
    slug: str


class TopicView(RowView):
    subject_id: int
    name: str
    display_name: str
    slug: str


class LeafView(RowView):
    title: str
    url: str


# ─────────────────────────────────────────────────────────────────────────────
# Content Store
# ─────────────────────────────────────────────────────────────────────────────


class ContentStore:
    """
    Read-only queries over canonical rows, cached when a cache is available.

    Example:
        >>> store = ContentStore(Database("sqlite:///notebot.db"), MemoryCache())
        >>> level = store.get_level_by_slug("1")
    """

    def __init__(self, database: Database, cache: Optional[KeyValueCache] = None):
        self.database = database
        self.cache: KeyValueCache = cache if cache is not None else NullCache()

    def _cached_list(
        self,
        key: str,
        view: type[V],
        query: Callable[[Session], list[Any]],
    ) -> list[V]:
        cached = self.cache.get(key)
        if cached is not None:
            return [view.model_validate(item) for item in cached]

        with self.database.session() as session:
            result = [view.model_validate(row) for row in query(session)]

        self.cache.set(key, [item.model_dump(mode="json") for item in result])
        return result

    # ── Notes hierarchy ──────────────────────────────────────────────────────

    def get_all_levels(self) -> list[LevelView]:
        return self._cached_list(
            "levels",
            LevelView,
            lambda s: list(s.scalars(select(Level).order_by(Level.sort_order))),
        )

    def get_level_by_slug(self, slug: str) -> Optional[LevelView]:
        return next((lvl for lvl in self.get_all_levels() if lvl.slug == slug), None)

    def get_subjects_by_level(self, level_id: int) -> list[SubjectView]:
        return self._cached_list(
            f"subjects:{level_id}",
            SubjectView,
            lambda s: list(
                s.scalars(
                    select(Subject)
                    .where(Subject.level_id == level_id)
                    .order_by(Subject.sort_order, Subject.id)
                )
            ),
        )

    def get_subject_by_slug(self, level_id: int, slug: str) -> Optional[SubjectView]:
        return next((s for s in self.get_subjects_by_level(level_id) if s.slug == slug), None)

    def get_topics_by_subject(self, subject_id: int) -> list[TopicView]:
        return self._cached_list(
            f"topics:{subject_id}",
            TopicView,
            lambda s: list(
                s.scalars(
                    select(Topic)
                    .where(Topic.subject_id == subject_id)
                    .order_by(Topic.sort_order, Topic.id)
                )
            ),
        )

    def get_notes_by_topic(self, topic_id: int) -> list[LeafView]:
        return self._cached_list(
            f"notes:{topic_id}",
            LeafView,
            lambda s: list(
                s.scalars(
                    select(Note).where(Note.topic_id == topic_id).order_by(Note.sort_order, Note.id)
                )
            ),
        )

    # ── Lab reports ──────────────────────────────────────────────────────────

    def get_lab_subjects(self, level_id: int) -> list[str]:
        """Distinct lab subject slugs of a level, in first-seen sort order."""
        key = f"labs:{level_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)

        with self.database.session() as session:
            slugs = session.scalars(
                select(LabReport.subject_slug)
                .where(LabReport.level_id == level_id)
                .order_by(LabReport.sort_order, LabReport.id)
            ).all()
        result = list(dict.fromkeys(slugs))

        self.cache.set(key, result)
        return result

    def get_lab_topics(self, level_id: int, subject_slug: str) -> list[str]:
        """Distinct lab topic names under one lab subject."""
        key = f"labs:{level_id}:{subject_slug}"
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)

        with self.database.session() as session:
            names = session.scalars(
                select(LabReport.topic_name)
                .where(LabReport.level_id == level_id, LabReport.subject_slug == subject_slug)
                .order_by(LabReport.sort_order, LabReport.id)
            ).all()
        result = list(dict.fromkeys(names))

        self.cache.set(key, result)
        return result

    def get_lab_items(self, level_id: int, subject_slug: str, topic_name: str) -> list[LeafView]:
        with self.database.session() as session:
            rows = session.scalars(
                select(LabReport)
                .where(
                    LabReport.level_id == level_id,
                    LabReport.subject_slug == subject_slug,
                    LabReport.topic_name == topic_name,
                )
                .order_by(LabReport.sort_order, LabReport.id)
            ).all()
            return [LeafView.model_validate(row) for row in rows]

    def invalidate(self) -> int:
        """Drop every cached entry; called after migration, fix-up and sync."""
        removed = self.cache.delete_pattern("*")
        logger.info(f"Invalidated {removed} cache entries")
        return removed
