"""
CLI Module - Command-line interface for NoteBot Bridge.
=======================================================

Provides CLI commands for:
- Migrating a legacy corpus snapshot
- Applying compat fix-ups
- Syncing snapshots from a running legacy API
- Comparing legacy and compat responses
- Inspecting compat responses and the cache

Usage:
    notebot --help
    notebot migrate data/legacy
    notebot sync --legacy-url http://localhost:6969
    notebot get app/notes/1

Components:
- main: Typer CLI application
"""

from notebot_bridge.cli.main import app, cli

__all__ = ["app", "cli"]
