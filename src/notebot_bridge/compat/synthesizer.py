"""
Synthesizer Module - Legacy-shaped responses from the canonical store.
======================================================================

Reproduces the legacy API surface:

    app/notes                          -> {"noteLevels": [...]}
    app/notes/{level}                  -> [{subName, route} | {subName, url}]
    app/notes/{level}/{subject}        -> [{topic, route} | {topic, url}]
    app/notes/{level}/{subject}/{topic} -> leaf items
    app/labs/...                       -> the same, for lab reports
    results?limit=N                    -> {msg, data}

Each request resolves level, then subject, then topic. Snapshots captured
by the reconciler are replayed verbatim; without one the response is derived
from canonical rows. Nothing on this path writes to the store.
"""

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import parse_qs, unquote, urlsplit

from sqlalchemy.exc import SQLAlchemyError

from notebot_bridge.compat.errors import (
    LevelNotFound,
    NotFoundError,
    SubjectNotFound,
    TopicNotFound,
)
from notebot_bridge.ingestion.blocks import format_text_block
from notebot_bridge.ingestion.results import ResultsScraper
from notebot_bridge.shared.config import Settings, get_settings
from notebot_bridge.shared.logging import get_logger
from notebot_bridge.shared.schemas import LeafShape
from notebot_bridge.storage.store import ContentStore, LevelView, SubjectView, TopicView

logger = get_logger(__name__)

NO_RESULTS_MESSAGE = "No results found or error while getting results"


@dataclass
class CompatResponse:
    """Transport-agnostic response: HTTP status plus JSON body."""

    status: int
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def _level_number(slug: str) -> Optional[int]:
    try:
        return int(slug)
    except ValueError:
        return None


class CompatSynthesizer:
    """
    Builds legacy-compatible responses.

    Example:
        >>> synth = CompatSynthesizer(ContentStore(db, cache))
        >>> synth.note_subjects("1")
        [{'subName': 'Math-I', 'route': 'app/notes/1/math1'}, ...]
        >>> synth.resolve("/app/notes/9").status
        404
    """

    def __init__(
        self,
        store: ContentStore,
        base_url: Optional[str] = None,
        leaf_shape: Optional[LeafShape] = None,
        results_scraper: Optional[ResultsScraper] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.store = store
        self.base_url = (base_url or settings.compat.base_url).rstrip("/")
        self.leaf_shape = leaf_shape or settings.compat.leaf_shape
        self.results_scraper = results_scraper

    # ── Shared resolution ────────────────────────────────────────────────────

    def _leaf(self, title: str, url: str) -> dict[str, str]:
        if self.leaf_shape == LeafShape.TEXT:
            return {"text": format_text_block(title, url)}
        return {"title": title, "url": url}

    def _level(self, level_slug: str) -> LevelView:
        level = self.store.get_level_by_slug(level_slug)
        if level is None:
            raise LevelNotFound(level_slug)
        return level

    def _subject(self, level: LevelView, subject_slug: str) -> SubjectView:
        subject = self.store.get_subject_by_slug(level.id, subject_slug)
        if subject is None:
            raise SubjectNotFound(subject_slug)
        return subject

    def _topic(self, subject: SubjectView, token: str) -> TopicView:
        """Resolve a legacy topic token: v1RouteSlug, then slug, then raw name."""
        topics = self.store.get_topics_by_subject(subject.id)
        topic = (
            next((t for t in topics if t.meta.get("v1RouteSlug") == token), None)
            or next((t for t in topics if t.slug == token), None)
            or next((t for t in topics if t.name == token), None)
        )
        if topic is None:
            raise TopicNotFound(token)
        return topic

    # ── Notes ────────────────────────────────────────────────────────────────

    def note_levels(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "noteLevels": [
                {
                    "noteLevel": _level_number(level.slug),
                    "route": f"{self.base_url}/app/notes/{level.slug}",
                }
                for level in self.store.get_all_levels()
            ]
        }

    def note_subjects(self, level_slug: str) -> list[dict[str, str]]:
        """
        Subject listing of a level.

        A ``directUrl`` in subject metadata always wins over a route, even if
        topics exist beneath the subject.
        """
        level = self._level(level_slug)
        items = []
        for subject in self.store.get_subjects_by_level(level.id):
            direct_url = subject.meta.get("directUrl")
            if direct_url:
                items.append({"subName": subject.display_name, "url": direct_url})
                continue
            route = subject.meta.get("v1RouteOverride") or f"app/notes/{level_slug}/{subject.slug}"
            items.append({"subName": subject.display_name, "route": route})
        return items

    def note_topics(self, level_slug: str, subject_slug: str) -> list[dict[str, Any]]:
        level = self._level(level_slug)
        subject = self._subject(level, subject_slug)

        snapshot = subject.meta.get("v1Topics")
        if isinstance(snapshot, list) and snapshot:
            return snapshot

        items = []
        for topic in self.store.get_topics_by_subject(subject.id):
            direct_url = topic.meta.get("directUrl")
            if direct_url:
                items.append({"topic": topic.display_name, "url": direct_url})
            else:
                items.append(
                    {
                        "topic": topic.display_name,
                        "route": f"app/notes/{level_slug}/{subject_slug}/{topic.slug}",
                    }
                )
        return items

    def note_leaves(self, level_slug: str, subject_slug: str, topic_token: str) -> list[Any]:
        level = self._level(level_slug)
        subject = self._subject(level, subject_slug)

        snapshots = subject.meta.get("v1Leaves")
        if isinstance(snapshots, dict) and topic_token in snapshots:
            return snapshots[topic_token]

        topic = self._topic(subject, topic_token)
        return [self._leaf(note.title, note.url) for note in self.store.get_notes_by_topic(topic.id)]

    # ── Labs ─────────────────────────────────────────────────────────────────

    def lab_levels(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "labLevels": [
                {
                    "labLevel": _level_number(level.slug),
                    "route": f"{self.base_url}/app/labs/{level.slug}",
                }
                for level in self.store.get_all_levels()
            ]
        }

    @staticmethod
    def _lab_aliases(level: LevelView) -> list[dict[str, str]]:
        aliases = level.meta.get("labSubjects")
        return aliases if isinstance(aliases, list) else []

    def _lab_db_slug(self, level: LevelView, route_slug: str) -> str:
        """Translate a legacy lab route slug to the stored subject slug."""
        for alias in self._lab_aliases(level):
            if alias.get("v1RouteSlug") == route_slug:
                return alias.get("dbSlug") or route_slug
        return route_slug

    def _lab_subject(self, level: LevelView, route_slug: str) -> str:
        db_slug = self._lab_db_slug(level, route_slug)
        if db_slug not in self.store.get_lab_subjects(level.id):
            raise SubjectNotFound(route_slug)
        return db_slug

    def lab_subjects(self, level_slug: str) -> list[dict[str, str]]:
        level = self._level(level_slug)

        aliases = self._lab_aliases(level)
        if aliases:
            return [
                {
                    "subName": alias.get("displayName") or alias.get("dbSlug", ""),
                    "route": f"app/labs/{level_slug}/{alias.get('v1RouteSlug') or alias.get('dbSlug')}",
                }
                for alias in aliases
            ]

        return [
            {"subName": slug, "route": f"app/labs/{level_slug}/{slug}"}
            for slug in self.store.get_lab_subjects(level.id)
        ]

    def lab_topics(self, level_slug: str, subject_slug: str) -> list[dict[str, Any]]:
        level = self._level(level_slug)

        snapshots = level.meta.get("v1LabTopics")
        if isinstance(snapshots, dict) and subject_slug in snapshots:
            return snapshots[subject_slug]

        db_slug = self._lab_subject(level, subject_slug)
        return [
            {"topic": name, "route": f"app/labs/{level_slug}/{subject_slug}/{name}"}
            for name in self.store.get_lab_topics(level.id, db_slug)
        ]

    def lab_leaves(self, level_slug: str, subject_slug: str, topic_name: str) -> list[Any]:
        level = self._level(level_slug)

        snapshots = level.meta.get("v1LabLeaves")
        if isinstance(snapshots, dict):
            subject_leaves = snapshots.get(subject_slug)
            if isinstance(subject_leaves, dict) and topic_name in subject_leaves:
                return subject_leaves[topic_name]

        db_slug = self._lab_subject(level, subject_slug)
        if topic_name not in self.store.get_lab_topics(level.id, db_slug):
            raise TopicNotFound(topic_name)

        return [
            self._leaf(item.title, item.url)
            for item in self.store.get_lab_items(level.id, db_slug, topic_name)
        ]

    # ── Results ──────────────────────────────────────────────────────────────

    def results(self, limit: Optional[int] = None) -> CompatResponse:
        scraped = self.results_scraper.fetch(limit) if self.results_scraper else []
        if not scraped:
            return CompatResponse(404, {"msg": NO_RESULTS_MESSAGE})

        return CompatResponse(
            200,
            {
                "msg": f"Here are the last {len(scraped)} results",
                "data": [result.model_dump() for result in scraped],
            },
        )

    # ── Dispatch ─────────────────────────────────────────────────────────────

    def _dispatch(self, segments: list[str], query: dict[str, list[str]]) -> CompatResponse:
        if segments == ["results"]:
            raw_limit = (query.get("limit") or [""])[0]
            limit = int(raw_limit) if raw_limit.isdigit() and int(raw_limit) > 0 else None
            return self.results(limit)

        if len(segments) < 2 or segments[0] != "app":
            raise NotFoundError("/".join(segments))

        section, args = segments[1], segments[2:]
        handlers = {
            "notes": (self.note_levels, self.note_subjects, self.note_topics, self.note_leaves),
            "labs": (self.lab_levels, self.lab_subjects, self.lab_topics, self.lab_leaves),
        }
        if section not in handlers or len(args) > 3:
            raise NotFoundError("/".join(segments))

        return CompatResponse(200, handlers[section][len(args)](*args))

    def resolve(self, path: str) -> CompatResponse:
        """
        Answer one legacy request path.

        Args:
            path: Request path, optionally with a query string

        Returns:
            200 with the legacy body; 404 with ``{"error": ...}`` for unknown
            nodes; 500 with ``{"error": ...}`` when the store fails
        """
        parts = urlsplit(path)
        segments = [unquote(s) for s in parts.path.split("/") if s]
        query = parse_qs(parts.query)

        try:
            response = self._dispatch(segments, query)
        except NotFoundError as e:
            logger.debug(f"{path}: {e}")
            return CompatResponse(404, e.to_body())
        except SQLAlchemyError as e:
            logger.error(f"Store failure while resolving {path}: {e}")
            return CompatResponse(500, {"error": str(e)})

        logger.debug(f"{path}: {response.status}")
        return response
