"""
Tests Package - Unit and integration tests for NoteBot Bridge.
==============================================================

Test modules:
- test_shared: Slugs, route helpers, settings
- test_ingestion: Block parser, metadata, corpus reader, results scraper
- test_importer: Migration and fix-up pass
- test_storage: Database, cache backends, content store
- test_reconcile: Matching, snapshot capture, API comparison
- test_compat: Legacy-shaped responses

Run tests with:
    pytest tests/
    pytest tests/ -v -m "not integration"
"""
