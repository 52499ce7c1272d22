"""
Tests for Ingestion Module.
===========================

Tests for block parsing, metadata extraction, corpus reading and
results-page scraping.
"""

from pathlib import Path
from unittest.mock import Mock

import pytest


# ─────────────────────────────────────────────────────────────────────────────
# Text Block Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestParseTextBlock:
    """Tests for splitting legacy text blocks."""

    def test_splits_title_and_url(self):
        """Test that a standard block yields a clean title and its URL."""
        from notebot_bridge.ingestion.blocks import parse_text_block

        parsed = parse_text_block("🔷 Math Book -\n\nhttps://x.io/a")

        assert parsed is not None
        assert parsed.title == "Math Book"
        assert parsed.url == "https://x.io/a"

    def test_block_without_url(self):
        """Test that a block without a URL yields None."""
        from notebot_bridge.ingestion.blocks import parse_text_block

        assert parse_text_block("Coming soon") is None
        assert parse_text_block("") is None

    def test_first_url_wins(self):
        """Test that only the first URL is taken."""
        from notebot_bridge.ingestion.blocks import parse_text_block

        parsed = parse_text_block("Two links https://a.io/1 and https://b.io/2")

        assert parsed.url == "https://a.io/1"

    def test_url_only_block_is_untitled(self):
        """Test that a block holding only a URL gets the placeholder title."""
        from notebot_bridge.ingestion.blocks import parse_text_block

        parsed = parse_text_block("⚡ -\n\nhttp://x.io/b")

        assert parsed.title == "Untitled"
        assert parsed.url == "http://x.io/b"

    def test_variation_selector_glyphs_are_stripped(self):
        """Test that emoji with a variation selector are removed from titles."""
        from notebot_bridge.ingestion.blocks import clean_title

        assert clean_title("⚡️ Suggestion -") == "Suggestion"

    @pytest.mark.parametrize("prefix", ["", "🔷 ", "📌📗 ", "🔴️  ", "💡"])
    def test_decorative_prefixes(self, prefix):
        """Test that any run of decorative glyphs is removed from the title."""
        from notebot_bridge.ingestion.blocks import parse_text_block

        parsed = parse_text_block(f"{prefix}Fluid Sheet(2019) -\n\nhttps://x.io/f")

        assert (parsed.title, parsed.url) == ("Fluid Sheet(2019)", "https://x.io/f")

    def test_format_then_parse_restores_pair(self):
        """Test that a rendered block parses back to the same title and URL."""
        from notebot_bridge.ingestion.blocks import format_text_block, parse_text_block

        text = format_text_block("Hand Note(Akib, 2018)", "https://x.io/n")
        parsed = parse_text_block(text)

        assert text == "🔷 Hand Note(Akib, 2018) -\n\nhttps://x.io/n"
        assert (parsed.title, parsed.url) == ("Hand Note(Akib, 2018)", "https://x.io/n")


# ─────────────────────────────────────────────────────────────────────────────
# Metadata Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestExtractMetadata:
    """Tests for title attribute extraction."""

    def test_author_and_year(self):
        """Test that an author/year group is recognized."""
        from notebot_bridge.ingestion.metadata import extract_metadata

        assert extract_metadata("String Hand Note(Akib, 2018)") == {
            "author": "Akib",
            "year": 2018,
            "contentType": "Hand Note",
        }

    def test_batch_and_department(self):
        """Test that a batch code yields batch and department."""
        from notebot_bridge.ingestion.metadata import extract_metadata

        metadata = extract_metadata("Array Hand Note(Akib, AE-44)")

        assert metadata["author"] == "Akib"
        assert metadata["batch"] == "AE-44"
        assert metadata["department"] == "AE"

    def test_batch_only(self):
        """Test that a lone batch code yields exactly batch and department."""
        from notebot_bridge.ingestion.metadata import extract_metadata

        assert extract_metadata("Report(AE-44)") == {"batch": "AE-44", "department": "AE"}

    def test_group(self):
        """Test that a group part is kept alongside the author."""
        from notebot_bridge.ingestion.metadata import extract_metadata

        metadata = extract_metadata("Hand Note(Mustafiz Sir, BA Group)")

        assert metadata["author"] == "Mustafiz Sir"
        assert metadata["group"] == "BA Group"

    def test_year_range_expands_short_end(self):
        """Test that a two-digit range end is expanded to four digits."""
        from notebot_bridge.ingestion.metadata import extract_metadata

        metadata = extract_metadata("Questions(2012 - 18)")

        assert metadata["yearRange"] == "2012-2018"
        assert metadata["contentType"] == "Questions"

    def test_level_term_and_year(self):
        """Test that multiple groups are merged."""
        from notebot_bridge.ingestion.metadata import extract_metadata

        metadata = extract_metadata("All Department Routine(L1,1)(2020)")

        assert metadata["level"] == 1
        assert metadata["term"] == 1
        assert metadata["year"] == 2020
        assert metadata["contentType"] == "Routine"

    def test_new_flag(self):
        """Test that a 'new' part sets isNew."""
        from notebot_bridge.ingestion.metadata import extract_metadata

        metadata = extract_metadata("Book(Akib, new)")

        assert metadata["isNew"] is True
        assert metadata["author"] == "Akib"

    def test_no_groups_yields_empty(self):
        """Test that titles without parenthesized groups yield nothing."""
        from notebot_bridge.ingestion.metadata import extract_metadata

        assert extract_metadata("Math Book") == {}

    def test_unrecognized_group_is_ignored(self):
        """Test that an unrecognized group contributes no keys."""
        from notebot_bridge.ingestion.metadata import extract_metadata

        assert extract_metadata("Thing(??)") == {}

    def test_first_author_kept(self):
        """Test that the first author across groups wins."""
        from notebot_bridge.ingestion.metadata import extract_metadata

        metadata = extract_metadata("Sheet(Akib)(Rahim)")

        assert metadata["author"] == "Akib"

    def test_deterministic(self):
        """Test that the same title always yields the same attributes."""
        from notebot_bridge.ingestion.metadata import extract_metadata

        title = "Lab Report(Rahim, TE-45, 2019)"
        assert extract_metadata(title) == extract_metadata(title)
        assert list(extract_metadata(title)) == list(extract_metadata(title))


# ─────────────────────────────────────────────────────────────────────────────
# Leaf Normalization Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestNormalizeLeafItem:
    """Tests for normalizing every legacy leaf form."""

    def test_bare_string(self):
        """Test that a bare string is parsed as a text block."""
        from notebot_bridge.ingestion.blocks import normalize_leaf_item

        records = normalize_leaf_item("📌 Syllabus -\n\nhttps://x.io/s")

        assert len(records) == 1
        assert records[0].title == "Syllabus"
        assert records[0].url == "https://x.io/s"

    def test_text_object(self):
        """Test that a text object carries extracted metadata."""
        from notebot_bridge.ingestion.blocks import normalize_leaf_item

        records = normalize_leaf_item({"text": "🔷 Book(Akib, 2018) -\n\nhttps://x.io/b"})

        assert records[0].metadata == {"author": "Akib", "year": 2018, "contentType": "Book"}

    def test_title_url_pair(self):
        """Test that a button pair is taken as-is with a cleaned title."""
        from notebot_bridge.ingestion.blocks import normalize_leaf_item

        records = normalize_leaf_item({"title": "🔰 Hand Note -", "url": "https://x.io/h"})

        assert records[0].title == "Hand Note"
        assert records[0].url == "https://x.io/h"

    def test_button_template(self):
        """Test that only web_url buttons become records."""
        from notebot_bridge.ingestion.blocks import normalize_leaf_item

        item = {
            "attachment": {
                "payload": {
                    "buttons": [
                        {"type": "web_url", "url": "https://x.io/1", "title": "One"},
                        {"type": "postback", "title": "Back"},
                        {"type": "web_url", "url": "https://x.io/2"},
                    ]
                }
            }
        }

        records = normalize_leaf_item(item, default_title="Routine")

        assert [(r.title, r.url) for r in records] == [
            ("One", "https://x.io/1"),
            ("Routine", "https://x.io/2"),
        ]

    def test_unusable_items(self):
        """Test that items without a URL or with an unknown shape are skipped."""
        from notebot_bridge.ingestion.blocks import normalize_leaf_item

        assert normalize_leaf_item({"text": "no link"}) == []
        assert normalize_leaf_item({"foo": 1}) == []
        assert normalize_leaf_item({"title": "x", "url": ""}) == []
        assert normalize_leaf_item(42) == []

    def test_empty_metadata_stored_as_none(self):
        """Test that records without attributes store NULL metadata."""
        from notebot_bridge.ingestion.blocks import normalize_leaf_item

        record = normalize_leaf_item("Plain\n\nhttps://x.io/p")[0]

        assert record.metadata_or_none() is None

    def test_default_wrapped_array(self):
        """Test that an object exporting its items under 'default' is unwrapped."""
        from notebot_bridge.ingestion.blocks import leaf_array, normalize_leaf_items

        data = {"default": ["A\n\nhttps://x.io/a", "B\n\nhttps://x.io/b"]}

        assert len(leaf_array(data)) == 2
        assert [r.url for r in normalize_leaf_items(data)] == ["https://x.io/a", "https://x.io/b"]
        assert normalize_leaf_items({"items": []}) == []
        assert normalize_leaf_items(None) == []


# ─────────────────────────────────────────────────────────────────────────────
# Corpus Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestFileNameDecoding:
    """Tests for routine and result file name decoding."""

    def test_routine_name(self):
        """Test that level, term and department are read from a routine name."""
        from notebot_bridge.ingestion.corpus import decode_routine_name

        source = decode_routine_name(Path("level2_term1_CSE_routine.json"))

        assert source.level_slug == "2"
        assert source.term == "1"
        assert source.department == "CSE"

    def test_compact_routine_name(self):
        """Test that compact L/T tokens are recognized."""
        from notebot_bridge.ingestion.corpus import decode_routine_name

        source = decode_routine_name(Path("L1T2_EEE_routine.json"))

        assert (source.level_slug, source.term, source.department) == ("1", "2", "EEE")

    def test_routine_name_without_attributes(self):
        """Test that a bare routine name decodes to nothing."""
        from notebot_bridge.ingestion.corpus import decode_routine_name

        source = decode_routine_name(Path("routine.json"))

        assert (source.level_slug, source.term, source.department) == (None, None, None)

    def test_result_name(self):
        """Test that year and category are read from a result name."""
        from notebot_bridge.ingestion.corpus import decode_result_name

        source = decode_result_name(Path("2023_semesterFinal_result.json"))

        assert source.year == 2023
        assert source.category == "semester final"

    def test_result_name_without_category(self):
        """Test that a name holding only stopwords has no category."""
        from notebot_bridge.ingestion.corpus import decode_result_name

        source = decode_result_name(Path("results.json"))

        assert source.year is None
        assert source.category is None

    def test_flow_files(self):
        """Test that navigation flow files are recognized."""
        from notebot_bridge.ingestion.corpus import is_flow_file

        assert is_flow_file(Path("che_1_flow.json"))
        assert is_flow_file(Path("mathFlow.json"))
        assert not is_flow_file(Path("titration.json"))


class TestLegacyCorpus:
    """Tests for reading the corpus tree."""

    def test_read_subjects(self, corpus):
        """Test that a subject listing is read and a missing one is None."""
        subjects = corpus.read_subjects("1")

        assert [s["subName"] for s in subjects] == ["Math-I", "All QB(2012 - 18)", "Physics-I"]
        assert corpus.read_subjects("2") is None

    def test_topic_files_sorted(self, corpus):
        """Test that topic files are listed by file name."""
        names = [p.name for p in corpus.topic_files("1", "math1")]

        assert names == ["books.json", "questionBank.json"]
        assert corpus.topic_files("1", "nothing") == []

    def test_lab_layout(self, corpus):
        """Test that lab files come from lab_topics or the subject directory."""
        assert corpus.lab_subjects("1") == ["che_1", "phy_1"]
        assert [p.name for p in corpus.lab_topic_files("1", "che_1")] == ["titration.json"]
        assert [p.name for p in corpus.lab_topic_files("1", "phy_1")] == ["pendulum.json"]
        assert corpus.lab_subjects("2") == []

    def test_routine_and_result_sources(self, corpus):
        """Test that only routine files are listed as routines."""
        routines = corpus.routine_sources()
        results = corpus.result_sources()

        assert [r.path.name for r in routines] == ["level2_term1_CSE_routine.json"]
        assert results[0].year == 2023

    def test_read_items_errors(self, corpus, corpus_dir: Path):
        """Test that unusable files raise CorpusError."""
        from notebot_bridge.ingestion.corpus import CorpusError
        from notebot_bridge.shared.utils import save_json

        with pytest.raises(CorpusError, match="invalid JSON"):
            corpus.read_items(corpus_dir / "notes/level1/subs/phy1/topics/broken.json")

        with pytest.raises(CorpusError, match="file not found"):
            corpus.read_items(corpus_dir / "missing.json")

        save_json(corpus_dir / "object.json", {"a": 1})
        with pytest.raises(CorpusError, match="expected a JSON array"):
            corpus.read_items(corpus_dir / "object.json")

    def test_read_default_export(self, corpus, corpus_dir: Path):
        """Test that default-exported files read as arrays."""
        items = corpus.read_items(corpus_dir / "results/2023_semesterFinal_result.json")

        assert len(items) == 1


# ─────────────────────────────────────────────────────────────────────────────
# Results Page Tests
# ─────────────────────────────────────────────────────────────────────────────


RESULTS_HTML = """
<html><body>
<div class="large-9 columns">
  <article>
    <h3><a href="https://example.edu/r1.pdf"> Level 1 Term 2 Result </a></h3>
    <time>12 March 2024</time>
  </article>
  <article>
    <h3><a href="https://example.edu/r2.pdf">Level 3 Term 1 Result</a></h3>
  </article>
  <article><h3>Notice without link</h3></article>
</div>
<div class="sidebar"><h3><a href="https://example.edu/other">Other</a></h3></div>
</body></html>
"""


class TestResultsPage:
    """Tests for published-results scraping."""

    def test_parse_results_page(self):
        """Test that linked headings in the main column are extracted."""
        from notebot_bridge.ingestion.results import parse_results_page

        results = parse_results_page(RESULTS_HTML)

        assert len(results) == 2
        assert results[0].href == "https://example.edu/r1.pdf"
        assert results[0].content == "Level 1 Term 2 Result"
        assert results[0].date == "12 March 2024"
        assert results[1].date == ""

    def test_parse_limit(self):
        """Test that the limit truncates in page order."""
        from notebot_bridge.ingestion.results import parse_results_page

        results = parse_results_page(RESULTS_HTML, limit=1)

        assert [r.content for r in results] == ["Level 1 Term 2 Result"]

    def test_fetch_caches_results(self, memory_cache):
        """Test that a successful fetch is cached per limit."""
        from notebot_bridge.ingestion.results import ResultsScraper

        session = Mock()
        session.get.return_value = Mock(text=RESULTS_HTML, raise_for_status=Mock())
        scraper = ResultsScraper(cache=memory_cache, url="https://example.edu", session=session)

        first = scraper.fetch(limit=5)
        second = scraper.fetch(limit=5)

        assert first == second
        assert len(first) == 2
        assert session.get.call_count == 1
        assert memory_cache.get("scraped-results:5") is not None

    def test_fetch_failure_returns_empty(self, memory_cache):
        """Test that an HTTP error yields an empty list and caches nothing."""
        import requests

        from notebot_bridge.ingestion.results import ResultsScraper

        session = Mock()
        session.get.side_effect = requests.HTTPError("503 Service Unavailable")
        scraper = ResultsScraper(
            cache=memory_cache, url="https://example.edu", max_retries=1, session=session
        )

        assert scraper.fetch(limit=3) == []
        assert len(memory_cache) == 0
