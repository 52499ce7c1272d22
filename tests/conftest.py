"""
Pytest Configuration and Fixtures.
===================================

Shared fixtures for all test modules:
- Temporary legacy corpus tree
- SQLite-backed database and in-memory cache
- Fake legacy API client
- Seeding helpers for canonical rows
"""

import copy
import tempfile
from pathlib import Path
from typing import Any, Generator, Optional

import pytest


# ─────────────────────────────────────────────────────────────────────────────
# Path Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_path(project_root: Path) -> Path:
    """Get the config file path."""
    return project_root / "config" / "settings.yaml"


# ─────────────────────────────────────────────────────────────────────────────
# Legacy Corpus Fixtures
# ─────────────────────────────────────────────────────────────────────────────


SAMPLE_CORPUS: dict[str, Any] = {
    "notes/level1/subjects.json": [
        {"subName": "Math-I", "route": "app/notes/1/math1"},
        {"subName": "All QB(2012 - 18)", "url": "https://drive.example/qb-all"},
        {"subName": "Physics-I", "route": "app/notes/1/phy1"},
    ],
    "notes/level1/subs/math1/topics/books.json": [
        {"text": "🔷 Math Book(Akib, 2018) -\n\nhttps://x.io/math-book"},
        {"text": "Coming soon, no link yet"},
        {"title": "Hand Note(AE-44)", "url": "https://x.io/math-note"},
    ],
    "notes/level1/subs/math1/topics/questionBank.json": [
        {"text": "📌 Questions(2012 - 18) -\n\nhttps://x.io/math-q"},
    ],
    "labs/level1/che_1/lab_topics/titration.json": [
        {"text": "Titration Lab Report(2019) -\n\nhttps://x.io/lab-titration"},
    ],
    "labs/level1/che_1/lab_topics/che_1_flow.json": [
        {"text": "navigation only\n\nhttps://x.io/flow"},
    ],
    "labs/level1/phy_1/pendulum.json": [
        {"text": "Pendulum(Rahim)\n\nhttps://x.io/lab-pendulum-1"},
        {"title": "Pendulum Data", "url": "https://x.io/lab-pendulum-2"},
    ],
    "routines/level2_term1_CSE_routine.json": [
        {
            "attachment": {
                "payload": {
                    "buttons": [
                        {"type": "web_url", "url": "https://x.io/routine-cse", "title": "CSE Routine"},
                        {"type": "postback", "title": "Back"},
                    ]
                }
            }
        }
    ],
    "routines/misc.json": [{"text": "Not a routine\n\nhttps://x.io/misc"}],
    "results/2023_semesterFinal_result.json": {
        "default": [{"text": "Result 2023 -\n\nhttps://x.io/result-2023"}]
    },
}


def write_corpus(root: Path, files: dict[str, Any]) -> Path:
    """Write a legacy corpus tree; string values are written verbatim."""
    from notebot_bridge.shared.utils import save_json

    for relative, content in files.items():
        path = root / relative
        if isinstance(content, str):
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        else:
            save_json(path, content)
    return root


@pytest.fixture
def corpus_dir(temp_dir: Path) -> Path:
    """A small legacy corpus covering every leaf form."""
    files = dict(SAMPLE_CORPUS)
    files["notes/level1/subs/phy1/topics/broken.json"] = "{ not json"
    return write_corpus(temp_dir / "legacy", files)


@pytest.fixture
def corpus(corpus_dir: Path):
    """LegacyCorpus over the sample tree."""
    from notebot_bridge.ingestion.corpus import LegacyCorpus

    return LegacyCorpus(corpus_dir)


# ─────────────────────────────────────────────────────────────────────────────
# Storage Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def database(temp_dir: Path):
    """File-backed SQLite database with all tables created."""
    from notebot_bridge.storage.database import Database

    db = Database(f"sqlite:///{temp_dir / 'notebot.db'}")
    db.create_all()
    yield db
    db.close()


@pytest.fixture
def memory_cache():
    """Fresh in-memory cache."""
    from notebot_bridge.storage.cache import MemoryCache

    return MemoryCache(default_ttl=60)


@pytest.fixture
def store(database, memory_cache):
    """ContentStore over the test database and cache."""
    from notebot_bridge.storage.store import ContentStore

    return ContentStore(database, memory_cache)


@pytest.fixture
def levels():
    """Two levels are enough for every scenario."""
    from notebot_bridge.shared.config import LevelConfig

    return [
        LevelConfig(name="level_1", display_name="Level 1", slug="1", sort_order=1),
        LevelConfig(name="level_2", display_name="Level 2", slug="2", sort_order=2),
    ]


@pytest.fixture
def imported(database, corpus, levels):
    """Database after a migration of the sample corpus."""
    from notebot_bridge.ingestion.importer import HierarchyImporter

    stats = HierarchyImporter(database, corpus, levels=levels).run()
    return stats


def seed_subject(
    session,
    level_slug: str = "1",
    subject_slug: str = "math1",
    topics: Optional[dict[str, list[tuple[str, str]]]] = None,
    subject_meta: Optional[dict] = None,
    display_name: str = "Math-I",
):
    """
    Insert a level (if missing), a subject and its topics with notes.

    ``topics`` maps topic slug to ``(title, url)`` pairs.
    """
    from sqlalchemy import select

    from notebot_bridge.storage.models import Level, Note, Subject, Topic

    level = session.scalars(select(Level).where(Level.slug == level_slug)).first()
    if level is None:
        level = Level(
            name=f"level_{level_slug}",
            display_name=f"Level {level_slug}",
            slug=level_slug,
            sort_order=int(level_slug),
        )
        session.add(level)
        session.flush()

    subject = Subject(
        level_id=level.id,
        name=subject_slug,
        display_name=display_name,
        slug=subject_slug,
        sort_order=1,
        meta=subject_meta,
    )
    session.add(subject)
    session.flush()

    for position, (topic_slug, notes) in enumerate((topics or {}).items(), start=1):
        topic = Topic(
            subject_id=subject.id,
            name=topic_slug,
            display_name=topic_slug.title(),
            slug=topic_slug,
            sort_order=position,
        )
        session.add(topic)
        session.flush()
        for order, (title, url) in enumerate(notes, start=1):
            session.add(Note(topic_id=topic.id, title=title, url=url, sort_order=order))

    session.flush()
    return level, subject


# ─────────────────────────────────────────────────────────────────────────────
# Legacy API Fixtures
# ─────────────────────────────────────────────────────────────────────────────


class FakeLegacyClient:
    """In-memory stand-in for LegacyApiClient; unknown paths have no data."""

    def __init__(self, responses: dict[str, Any], base_url: str = "http://legacy.test"):
        self.responses = responses
        self.base_url = base_url
        self.calls: list[str] = []

    def fetch(self, path: str) -> Optional[Any]:
        self.calls.append(path)
        data = self.responses.get(path)
        return copy.deepcopy(data)

    def fetch_list(self, path: str) -> Optional[list[Any]]:
        data = self.fetch(path)
        return data if isinstance(data, list) else None

    def probe(self) -> None:
        from notebot_bridge.reconcile.client import LegacySourceUnavailable

        if not self.responses.get("/app/notes"):
            raise LegacySourceUnavailable(self.base_url)

    def close(self) -> None:
        pass


@pytest.fixture
def fake_client_factory():
    """Build a FakeLegacyClient from a path -> payload map."""
    return FakeLegacyClient


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
