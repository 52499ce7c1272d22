"""
Corpus Module - Read a legacy (V1) corpus snapshot directory.
=============================================================

The legacy corpus is a directory of declarative JSON files exported from the
old bot. Nothing is executed; files are only read. Layout (templates are
configurable, see ``CorpusConfig``):

    notes/level{N}/subjects.json                 -> subject listing
    notes/level{N}/subs/{subject}/topics/*.json  -> note leaf arrays
    labs/level{N}/{subject}/lab_topics/*.json    -> lab leaf arrays
    routines/*routine*.json                      -> routine leaf arrays
    results/*.json                               -> result leaf arrays
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from notebot_bridge.ingestion.blocks import leaf_array
from notebot_bridge.shared.config import CorpusConfig
from notebot_bridge.shared.logging import get_logger
from notebot_bridge.shared.utils import load_json

logger = get_logger(__name__)

FLOW_MARKERS = ("_flow", "Flow")

_LEVEL_TOKEN = re.compile(r"(?:^|[^a-z])(?:level|l)[_-]?(\d)(?!\d)")
_TERM_TOKEN = re.compile(r"(?:^|[^a-z])(?:term|t)[_-]?(\d)(?!\d)")
_DEPARTMENT_TOKEN = re.compile(r"^[A-Z]{2,5}$")
_YEAR_TOKEN = re.compile(r"^(19|20)\d{2}$")
_WORD_SPLIT = re.compile(r"[^A-Za-z0-9]+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_RESULT_STOPWORDS = {"result", "results", "flow"}


class CorpusError(Exception):
    """A corpus file is missing, unreadable or has the wrong shape."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


# ─────────────────────────────────────────────────────────────────────────────
# Data Classes
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class RoutineSource:
    """A routine file with the attributes decoded from its name."""

    path: Path
    level_slug: Optional[str] = None
    term: Optional[str] = None
    department: Optional[str] = None


@dataclass
class ResultSource:
    """A result file with the attributes decoded from its name."""

    path: Path
    year: Optional[int] = None
    category: Optional[str] = None


# ─────────────────────────────────────────────────────────────────────────────
# Filename Decoding
# ─────────────────────────────────────────────────────────────────────────────


def decode_routine_name(path: Path) -> RoutineSource:
    """
    Decode level, term and department from a routine file name.

    Example:
        >>> decode_routine_name(Path("level2_term1_CSE_routine.json"))
        RoutineSource(path=..., level_slug='2', term='1', department='CSE')
    """
    stem = path.stem
    lowered = stem.lower()

    level = _LEVEL_TOKEN.search(lowered)
    term = _TERM_TOKEN.search(lowered)
    department = next(
        (token for token in _WORD_SPLIT.split(stem) if _DEPARTMENT_TOKEN.match(token)),
        None,
    )

    return RoutineSource(
        path=path,
        level_slug=level.group(1) if level else None,
        term=term.group(1) if term else None,
        department=department,
    )


def decode_result_name(path: Path) -> ResultSource:
    """
    Decode year and category from a result file name.

    Example:
        >>> decode_result_name(Path("2023_semesterFinal_result.json"))
        ResultSource(path=..., year=2023, category='semester final')
    """
    words = [w for w in _WORD_SPLIT.split(_CAMEL_BOUNDARY.sub(" ", path.stem)) if w]

    year = next((int(w) for w in words if _YEAR_TOKEN.match(w)), None)
    rest = [
        w.lower() for w in words if not _YEAR_TOKEN.match(w) and w.lower() not in _RESULT_STOPWORDS
    ]

    return ResultSource(path=path, year=year, category=" ".join(rest) or None)


def is_flow_file(path: Path) -> bool:
    """Flow files define bot navigation, not data."""
    return any(marker in path.stem for marker in FLOW_MARKERS)


# ─────────────────────────────────────────────────────────────────────────────
# Corpus Reader
# ─────────────────────────────────────────────────────────────────────────────


class LegacyCorpus:
    """
    Read-only view of a legacy corpus snapshot.

    Listing methods never raise for missing directories (an absent branch is
    simply empty); ``read_items`` and ``read_subjects`` raise ``CorpusError``
    for a file that exists but cannot be used.

    Example:
        >>> corpus = LegacyCorpus(Path("data/legacy"))
        >>> for path in corpus.topic_files("1", "math1"):
        ...     items = corpus.read_items(path)
    """

    def __init__(self, root: Path, layout: Optional[CorpusConfig] = None):
        self.root = Path(root)
        self.layout = layout or CorpusConfig()

    def exists(self) -> bool:
        return self.root.is_dir()

    # ── File access ──────────────────────────────────────────────────────────

    def _load(self, path: Path) -> Any:
        try:
            return load_json(path)
        except FileNotFoundError as e:
            raise CorpusError(path, "file not found") from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CorpusError(path, f"invalid JSON ({e})") from e

    def read_items(self, path: Path) -> list[Any]:
        """Load a leaf file and return its item array."""
        items = leaf_array(self._load(path))
        if items is None:
            raise CorpusError(path, "expected a JSON array of leaf items")
        return items

    @staticmethod
    def _json_files(directory: Path) -> list[Path]:
        if not directory.is_dir():
            return []
        return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == ".json")

    # ── Notes ────────────────────────────────────────────────────────────────

    def subjects_path(self, level_slug: str) -> Path:
        return self.root / self.layout.subjects_file.format(level=level_slug)

    def read_subjects(self, level_slug: str) -> Optional[list[dict[str, Any]]]:
        """
        Subject listing of one level.

        Returns:
            Listing entries, or None when the level has no listing file
        """
        path = self.subjects_path(level_slug)
        if not path.exists():
            return None

        entries = self.read_items(path)
        return [entry for entry in entries if isinstance(entry, dict)]

    def topics_dir(self, level_slug: str, subject_slug: str) -> Optional[Path]:
        """First configured topic directory that exists for a subject."""
        for template in self.layout.topics_dirs:
            candidate = self.root / template.format(level=level_slug, subject=subject_slug)
            if candidate.is_dir():
                return candidate
        return None

    def topic_files(self, level_slug: str, subject_slug: str) -> list[Path]:
        """Topic files of a subject, sorted by file name."""
        directory = self.topics_dir(level_slug, subject_slug)
        return self._json_files(directory) if directory else []

    # ── Labs ─────────────────────────────────────────────────────────────────

    def labs_dir(self, level_slug: str) -> Path:
        return self.root / self.layout.labs_dir.format(level=level_slug)

    def lab_subjects(self, level_slug: str) -> list[str]:
        """Lab subject directory names of a level, sorted."""
        directory = self.labs_dir(level_slug)
        if not directory.is_dir():
            return []
        return sorted(p.name for p in directory.iterdir() if p.is_dir())

    def lab_topic_files(self, level_slug: str, subject: str) -> list[Path]:
        """
        Lab topic files of one subject.

        Files live in a ``lab_topics`` subdirectory or directly in the subject
        directory; the first location holding any JSON wins. Flow files are
        excluded.
        """
        subject_dir = self.labs_dir(level_slug) / subject
        for directory in (subject_dir / self.layout.lab_topics_subdir, subject_dir):
            files = self._json_files(directory)
            if files:
                return [p for p in files if not is_flow_file(p)]
        return []

    # ── Routines & Results ───────────────────────────────────────────────────

    def routine_sources(self) -> list[RoutineSource]:
        directory = self.root / self.layout.routines_dir
        return [
            decode_routine_name(p)
            for p in self._json_files(directory)
            if "routine" in p.name.lower()
        ]

    def result_sources(self) -> list[ResultSource]:
        directory = self.root / self.layout.results_dir
        return [decode_result_name(p) for p in self._json_files(directory)]
