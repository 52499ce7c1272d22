"""
Storage Module - Canonical relational store and optional cache.
===============================================================

- models: SQLAlchemy ORM schema (Level, Subject, Topic, Note, LabReport,
  QuestionBank, Routine, Result)
- database: engine/session lifecycle, full wipe, row counts
- cache: KeyValueCache protocol with Redis, in-memory and null backends
- store: cache-aside read queries returning frozen row views
"""

from notebot_bridge.storage.models import (
    Base,
    Level,
    Subject,
    Topic,
    Note,
    LabReport,
    QuestionBank,
    Routine,
    Result,
)
from notebot_bridge.storage.database import Database, DatabaseConfigError, wipe_all, count_rows
from notebot_bridge.storage.cache import (
    KeyValueCache,
    MemoryCache,
    NullCache,
    RedisCache,
    build_cache,
)
from notebot_bridge.storage.store import (
    ContentStore,
    LevelView,
    SubjectView,
    TopicView,
    LeafView,
)

__all__ = [
    # Models
    "Base",
    "Level",
    "Subject",
    "Topic",
    "Note",
    "LabReport",
    "QuestionBank",
    "Routine",
    "Result",
    # Database
    "Database",
    "DatabaseConfigError",
    "wipe_all",
    "count_rows",
    # Cache
    "KeyValueCache",
    "MemoryCache",
    "NullCache",
    "RedisCache",
    "build_cache",
    # Store
    "ContentStore",
    "LevelView",
    "SubjectView",
    "TopicView",
    "LeafView",
]
