"""
Ingestion Module - Read, parse and import the legacy corpus.
============================================================

This module handles the one-off migration pipeline:

- blocks: Legacy text blocks and button payloads to LeafRecords
- metadata: Structured attributes from leaf titles
- corpus: Read-only access to a legacy corpus snapshot directory
- importer: Full-replace import into the canonical store
- fixups: Supplementary direct-link subjects and lab subject aliases
- results: Live scrape of the published-results page

Pipeline flow:
    Corpus files → LegacyCorpus → blocks/metadata → LeafRecords → HierarchyImporter → store
"""

from notebot_bridge.ingestion.blocks import (
    format_text_block,
    normalize_leaf_item,
    normalize_leaf_items,
    parse_text_block,
)
from notebot_bridge.ingestion.metadata import extract_metadata, detect_content_type
from notebot_bridge.ingestion.corpus import CorpusError, LegacyCorpus
from notebot_bridge.ingestion.importer import HierarchyImporter, ImportStats
from notebot_bridge.ingestion.fixups import FixupStats, apply_fixups, load_fixups
from notebot_bridge.ingestion.results import ResultsScraper, parse_results_page

__all__ = [
    # Blocks
    "parse_text_block",
    "format_text_block",
    "normalize_leaf_item",
    "normalize_leaf_items",
    # Metadata
    "extract_metadata",
    "detect_content_type",
    # Corpus
    "CorpusError",
    "LegacyCorpus",
    # Importer
    "HierarchyImporter",
    "ImportStats",
    # Fix-ups
    "FixupStats",
    "apply_fixups",
    "load_fixups",
    # Results
    "ResultsScraper",
    "parse_results_page",
]
