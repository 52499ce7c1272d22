"""
Tests for Reconcile Module.
===========================

Tests for URL-overlap matching, snapshot capture from a legacy API and the
endpoint comparison report.
"""

from unittest.mock import Mock

import pytest
from sqlalchemy import select


LEGACY_RESPONSES = {
    "/app/notes": {"noteLevels": [{"noteLevel": 1, "route": "http://legacy.test/app/notes/1"}]},
    "/app/notes/1": [
        {"subName": "Math-I", "route": "app/notes/1/math1"},
        {"subName": "Ghost-I", "route": "app/notes/1/ghost"},
        {"subName": "All QB", "url": "https://drive.example/qb"},
    ],
    "/app/notes/1/math1": [
        {"topic": "Books 📚", "route": "app/notes/1/math1/math1_books_flow"},
        {"topic": "Orphan", "route": "app/notes/1/math1/orphan_flow"},
        {"topic": "Syllabus", "url": "https://x.io/syllabus"},
    ],
    "/app/notes/1/math1/math1_books_flow": [
        {"text": "🔷 Book A -\n\nhttps://x.io/a"},
        {"text": "🔷 Book C -\n\nhttps://x.io/c"},
    ],
    "/app/notes/1/math1/orphan_flow": [{"title": "Z", "url": "https://x.io/z"}],
    "/app/labs/1": [{"subName": "Chemistry Lab", "route": "app/labs/1/chem1"}],
    "/app/labs/1/chem1": [{"topic": "Titration", "route": "app/labs/1/chem1/titration"}],
    "/app/labs/1/chem1/titration": [{"title": "Titration", "url": "https://x.io/t"}],
}


@pytest.fixture
def seeded(database):
    """Level 1 with math1: books (a, b) and questions (q)."""
    from tests.conftest import seed_subject

    with database.session() as session:
        seed_subject(
            session,
            topics={
                "books": [("Book A", "https://x.io/a"), ("Book B", "https://x.io/b")],
                "questions": [("Q", "https://x.io/q")],
            },
        )
    return database


def _reconcile(database, client):
    from notebot_bridge.reconcile.reconciler import SnapshotReconciler

    with database.session() as session:
        return SnapshotReconciler(session, client).run()


# ─────────────────────────────────────────────────────────────────────────────
# Matching Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestMatching:
    """Tests for URL-overlap matching."""

    def test_overlap_score(self):
        """Test that duplicates count once and the smaller set is reported."""
        from notebot_bridge.reconcile.matching import overlap_score

        assert overlap_score(["a", "a", "b", "c"], ["b", "c", "x"]) == (2, 3)

    def test_is_match(self):
        """Test the threshold against the smaller set."""
        from notebot_bridge.reconcile.matching import is_match

        assert is_match(["a", "b", "c", "d"], ["a", "b"])
        assert is_match(["a", "c"], ["a", "b"])
        assert not is_match(["a", "b", "c", "d"], ["x", "y"])
        assert not is_match(["a", "x", "y"], ["a", "b", "c"], threshold=0.5)
        assert not is_match([], [])

    def test_match_topic_takes_first_in_order(self):
        """Test that the first qualifying candidate wins."""
        from notebot_bridge.reconcile.matching import match_topic

        candidates = [
            ("empty", []),
            ("first", ["https://x/1", "https://x/2"]),
            ("second", ["https://x/1"]),
        ]

        assert match_topic(["https://x/1"], candidates) == "first"
        assert match_topic(["https://x/9"], candidates) is None
        assert match_topic([], candidates) is None


# ─────────────────────────────────────────────────────────────────────────────
# Reconciler Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestSnapshotReconciler:
    """Tests for SnapshotReconciler."""

    def test_stats(self, seeded, fake_client_factory):
        """Test that matched, unmatched and missing nodes are counted."""
        stats = _reconcile(seeded, fake_client_factory(LEGACY_RESPONSES))

        assert stats.subjects_synced == 1
        assert stats.missing_subjects == ["1/ghost"]
        assert stats.topics_matched == 1
        assert stats.unmatched_topics == ["1/math1/orphan_flow"]
        assert stats.leaf_endpoints == 2
        assert stats.lab_subjects == 1
        assert stats.lab_leaf_endpoints == 1

    def test_malformed_entries_are_skipped(self, seeded, fake_client_factory):
        """Test that invalid legacy entries are skipped without aborting the run."""
        from notebot_bridge.storage.models import Subject

        topics = LEGACY_RESPONSES["/app/notes/1/math1"] + [
            {"topic": None, "route": "app/notes/1/math1/q"},
            {"topic": "Bad", "route": 5},
        ]
        responses = {
            **LEGACY_RESPONSES,
            "/app/notes/1": LEGACY_RESPONSES["/app/notes/1"] + [{"subName": None, "route": "app/notes/1/x"}],
            "/app/notes/1/math1": topics,
        }

        stats = _reconcile(seeded, fake_client_factory(responses))

        with seeded.session() as session:
            meta = session.scalars(select(Subject)).one().meta

        assert stats.subjects_synced == 1
        assert stats.topics_matched == 1
        assert stats.leaf_endpoints == 2
        assert stats.malformed_entries == [
            "/app/notes/1[3]",
            "/app/notes/1/math1[3]",
            "/app/notes/1/math1[4]",
        ]
        assert meta["v1Topics"] == topics
        assert set(meta["v1Leaves"]) == {"math1_books_flow", "orphan_flow"}

    def test_topic_and_subject_snapshots(self, seeded, fake_client_factory):
        """Test that legacy listings are stored on subjects and matched topics."""
        from notebot_bridge.storage.models import Subject, Topic

        _reconcile(seeded, fake_client_factory(LEGACY_RESPONSES))

        with seeded.session() as session:
            subject = session.scalars(select(Subject).where(Subject.slug == "math1")).one()
            books = session.scalars(select(Topic).where(Topic.slug == "books")).one()
            questions = session.scalars(select(Topic).where(Topic.slug == "questions")).one()
            subject_meta, books_meta, questions_meta = subject.meta, books.meta, questions.meta
            books_id = books.id

        assert books_meta == {"v1RouteSlug": "math1_books_flow", "v1DisplayName": "Books 📚"}
        assert questions_meta is None
        assert subject_meta["v1Topics"] == LEGACY_RESPONSES["/app/notes/1/math1"]
        assert subject_meta["v1RouteMapping"] == {"math1_books_flow": books_id}
        assert subject_meta["v1Leaves"] == {
            "math1_books_flow": LEGACY_RESPONSES["/app/notes/1/math1/math1_books_flow"],
            "orphan_flow": LEGACY_RESPONSES["/app/notes/1/math1/orphan_flow"],
        }

    def test_lab_snapshots(self, seeded, fake_client_factory):
        """Test that lab listings are stored on the level."""
        from notebot_bridge.storage.models import Level

        _reconcile(seeded, fake_client_factory(LEGACY_RESPONSES))

        with seeded.session() as session:
            meta = session.scalars(select(Level)).one().meta

        assert meta["v1LabTopics"] == {"chem1": LEGACY_RESPONSES["/app/labs/1/chem1"]}
        assert meta["v1LabLeaves"] == {
            "chem1": {"titration": LEGACY_RESPONSES["/app/labs/1/chem1/titration"]}
        }

    def test_each_path_fetched_once(self, seeded, fake_client_factory):
        """Test that legacy responses are reused across passes."""
        client = fake_client_factory(LEGACY_RESPONSES)

        _reconcile(seeded, client)

        assert client.calls.count("/app/notes/1") == 1
        assert client.calls.count("/app/notes/1/math1") == 1
        assert client.calls.count("/app/notes/1/math1/math1_books_flow") == 1

    def test_rerun_is_stable(self, seeded, fake_client_factory):
        """Test that a second run stores the same snapshots."""
        from notebot_bridge.storage.models import Subject

        def snapshot():
            with seeded.session() as session:
                return session.scalars(select(Subject)).one().meta

        _reconcile(seeded, fake_client_factory(LEGACY_RESPONSES))
        first = snapshot()
        _reconcile(seeded, fake_client_factory(LEGACY_RESPONSES))

        assert snapshot() == first

    def test_unreachable_source(self, seeded, fake_client_factory):
        """Test that a failed probe aborts before anything is written."""
        from notebot_bridge.reconcile.client import LegacySourceUnavailable
        from notebot_bridge.storage.models import Subject

        with pytest.raises(LegacySourceUnavailable):
            _reconcile(seeded, fake_client_factory({}))

        with seeded.session() as session:
            assert session.scalars(select(Subject)).one().meta is None

    def test_replayed_by_compat_layer(self, seeded, fake_client_factory):
        """Test that captured snapshots are served verbatim."""
        from notebot_bridge.compat.synthesizer import CompatSynthesizer
        from notebot_bridge.storage.store import ContentStore

        _reconcile(seeded, fake_client_factory(LEGACY_RESPONSES))
        synth = CompatSynthesizer(ContentStore(seeded), base_url="http://compat.test")

        for path in (
            "/app/notes/1/math1",
            "/app/notes/1/math1/math1_books_flow",
            "/app/notes/1/math1/orphan_flow",
            "/app/labs/1/chem1",
            "/app/labs/1/chem1/titration",
        ):
            response = synth.resolve(path)
            assert response.status == 200, path
            assert response.body == LEGACY_RESPONSES[path], path

        derived = synth.resolve("/app/notes/1/math1/questions")
        assert derived.body == [{"title": "Q", "url": "https://x.io/q"}]


# ─────────────────────────────────────────────────────────────────────────────
# Client Tests
# ─────────────────────────────────────────────────────────────────────────────


def _response(status: int = 200, payload=None, invalid_json: bool = False):
    response = Mock(status_code=status, ok=200 <= status < 300)
    if invalid_json:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = payload
    return response


class TestLegacyApiClient:
    """Tests for LegacyApiClient."""

    def _client(self, session):
        from notebot_bridge.reconcile.client import LegacyApiClient

        return LegacyApiClient("http://legacy.test/", max_retries=1, session=session)

    def test_fetch_json(self):
        """Test that a JSON body is decoded from the joined URL."""
        session = Mock()
        session.get.return_value = _response(payload=[{"subName": "Math-I"}])
        client = self._client(session)

        assert client.fetch_list("/app/notes/1") == [{"subName": "Math-I"}]
        assert session.get.call_args.args[0] == "http://legacy.test/app/notes/1"
        assert client.requests_made == 1

    def test_failures_are_none(self):
        """Test that error statuses, bad bodies and request errors yield None."""
        import requests

        session = Mock()
        client = self._client(session)

        session.get.return_value = _response(status=404)
        assert client.fetch("/app/notes/9") is None

        session.get.return_value = _response(invalid_json=True)
        assert client.fetch("/app/notes/1") is None

        session.get.return_value = _response(payload={"error": "x"})
        assert client.fetch_list("/app/notes/1") is None

        session.get.side_effect = requests.ConnectionError("refused")
        assert client.fetch("/app/notes/1") is None

    def test_probe(self):
        """Test that an empty probe response escalates."""
        from notebot_bridge.reconcile.client import LegacySourceUnavailable

        session = Mock()
        session.get.return_value = _response(payload={"noteLevels": []})
        self._client(session).probe()

        session.get.return_value = _response(status=500)
        with pytest.raises(LegacySourceUnavailable, match="legacy.test"):
            self._client(session).probe()


# ─────────────────────────────────────────────────────────────────────────────
# Comparison Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestDiffPayloads:
    """Tests for payload comparison."""

    def test_equal_payloads(self):
        """Test that key order does not matter and empty sides match."""
        from notebot_bridge.reconcile.compare import diff_payloads

        assert diff_payloads({"a": 1, "b": 2}, {"b": 2, "a": 1}) is None
        assert diff_payloads([{"x": 1}], [{"x": 1}]) is None
        assert diff_payloads(None, None) is None

    def test_differences(self):
        """Test that each kind of difference is explained."""
        from notebot_bridge.reconcile.compare import diff_payloads

        assert diff_payloads([1, 2], [1]) == "count 2 vs 1"
        assert diff_payloads([1, 2], [1, 3]) == "item 1 differs"
        assert diff_payloads({"a": 1}, {"a": 2}) == "object mismatch"
        assert diff_payloads([], None).startswith("one side is empty")


class TestCompareApis:
    """Tests for the comparison walk."""

    def test_report(self, database, fake_client_factory):
        """Test that every walked endpoint is compared and diffs are recorded."""
        from notebot_bridge.compat.synthesizer import CompatSynthesizer
        from notebot_bridge.reconcile.compare import compare_apis
        from notebot_bridge.storage.store import ContentStore
        from tests.conftest import seed_subject

        with database.session() as session:
            seed_subject(session, topics={"books": [("Book A", "https://x/a")]})

        legacy = {
            "/app/notes": {
                "noteLevels": [{"noteLevel": 1, "route": "http://compat.test/app/notes/1"}]
            },
            "/app/labs": {"labLevels": [{"labLevel": 1, "route": "http://compat.test/app/labs/1"}]},
            "/app/notes/1": [{"subName": "Math-I", "route": "app/notes/1/math1"}],
            "/app/notes/1/math1": [{"route": "app/notes/1/math1/books", "topic": "Books"}],
            "/app/notes/1/math1/books": [{"title": "Book A", "url": "https://x/other"}],
            "/app/labs/1": [],
        }
        synth = CompatSynthesizer(ContentStore(database), base_url="http://compat.test")

        report = compare_apis(fake_client_factory(legacy), synth, level_slugs=["1"])

        assert report.total == 6
        assert report.matches == 5
        assert [(d.path, d.reason) for d in report.diffs] == [
            ("/app/notes/1/math1/books", "item 0 differs")
        ]
        assert report.match_rate == pytest.approx(5 / 6)
