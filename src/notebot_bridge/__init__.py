"""
NoteBot Bridge - Legacy Corpus Migration and Compat Layer
=========================================================

Moves the legacy NoteBot content tree (levels, subjects, topics and the
document links beneath them) into a normalized relational store, and serves
it back in the exact JSON shapes the legacy API produced:

- ingestion: Parse legacy text blocks and import the corpus snapshot
- storage: Relational models, database lifecycle, cache and read store
- reconcile: Capture and compare responses from a running legacy API
- compat: Snapshot-first, derive-on-miss legacy responses
- cli: Batch job commands
"""

__version__ = "0.1.0"
__author__ = "NoteBot Team"
__license__ = "MIT"

# Public API - lazy imports to avoid circular dependencies and speed up startup
__all__ = [
    # Version info
    "__version__",
    "__author__",
    "__license__",
    # Main modules (imported on demand)
    "shared",
    "ingestion",
    "storage",
    "reconcile",
    "compat",
    "cli",
]
