"""
Shared Module - Common utilities, configuration, schemas, and logging.
======================================================================

This module provides foundational components used across all other modules:

- config: Configuration loading and management
- logging: Rich logging setup
- schemas: Pydantic data models
- utils: Identifier normalization, metadata merging, JSON helpers
"""

from notebot_bridge.shared.config import get_settings, Settings
from notebot_bridge.shared.logging import get_logger, setup_logging
from notebot_bridge.shared.schemas import (
    LeafShape,
    LeafRecord,
    ParsedBlock,
    LegacySubjectItem,
    LegacyTopicItem,
    CompatFixups,
    ScrapedResult,
)
from notebot_bridge.shared.utils import (
    slugify,
    route_tail_slug,
    topic_display_name,
    merge_metadata,
    load_json,
    save_json,
    canonical_json,
)

__all__ = [
    # Config
    "get_settings",
    "Settings",
    # Logging
    "get_logger",
    "setup_logging",
    # Schemas
    "LeafShape",
    "LeafRecord",
    "ParsedBlock",
    "LegacySubjectItem",
    "LegacyTopicItem",
    "CompatFixups",
    "ScrapedResult",
    # Utils
    "slugify",
    "route_tail_slug",
    "topic_display_name",
    "merge_metadata",
    "load_json",
    "save_json",
    "canonical_json",
]
