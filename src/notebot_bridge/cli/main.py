"""
CLI Main - Typer command-line interface.
========================================

Commands:
- migrate: Import a legacy corpus snapshot (full replace)
- fixup: Apply direct-link subjects and lab subject aliases
- sync: Capture legacy API snapshots into canonical metadata
- compare: Diff legacy API responses against compat responses
- get: Print the compat response for one legacy path
- flush-cache: Drop cached store reads
- info: Show configuration and row counts
"""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from notebot_bridge.shared.logging import get_logger

logger = get_logger(__name__)

app = typer.Typer(
    name="notebot",
    help="""📚 NoteBot Bridge - Legacy corpus migration and compat layer

Moves the legacy NoteBot content tree (levels → subjects → topics → links)
into a relational store and serves it back in the exact legacy JSON shapes.

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

TYPICAL RUN:

  notebot migrate data/legacy      # Step 1: Import the corpus snapshot
  notebot fixup                    # Step 2: Direct links + lab aliases
  notebot sync                     # Step 3: Capture legacy API snapshots
  notebot compare                  # Step 4: Verify compat responses

SERVING CHECK:

  notebot get app/notes/1/math1    # Print one compat response

Connection strings come from DATABASE_URL, REDIS_URL and LEGACY_API_URL.
""",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


def _fatal(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(1)


def _open_database():
    """Connect to the configured database or exit with status 1."""
    from notebot_bridge.storage.database import Database, DatabaseConfigError

    try:
        database = Database.from_settings()
        database.check_connection()
        database.create_all()
    except DatabaseConfigError as e:
        _fatal(str(e))
    return database


def _print_counts(title: str, counts: dict[str, int]) -> None:
    table = Table(title=title)
    table.add_column("Entity")
    table.add_column("Rows", justify="right")
    for name, value in counts.items():
        table.add_row(name, str(value))
    console.print(table)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level", "-l",
        help="Log level (DEBUG, INFO, WARNING, ERROR). Default: LOG_LEVEL or config.",
    ),
):
    """Configure logging before any command runs."""
    from notebot_bridge.shared.config import get_settings
    from notebot_bridge.shared.logging import reset_logging, setup_logging

    settings = get_settings()
    reset_logging()
    setup_logging(
        level=log_level or settings.get_effective_log_level(),
        use_rich=settings.logging.rich_console,
        log_file=settings.logging.file or None,
        log_format=settings.logging.format,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Migrate Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def migrate(
    corpus_path: Optional[Path] = typer.Argument(
        None,
        help="Legacy corpus snapshot directory. Default: corpus.root from config.",
    ),
):
    """
    📥 Import a legacy corpus snapshot into the canonical store.

    Wipes every canonical table, then imports levels, subjects, topics,
    notes, question banks, lab reports, routines and results.

    Examples:
        notebot migrate                  # Use corpus.root from config
        notebot migrate ./v1-export      # Import a specific snapshot
    """
    from notebot_bridge.ingestion.corpus import LegacyCorpus
    from notebot_bridge.ingestion.importer import HierarchyImporter
    from notebot_bridge.shared.config import get_settings
    from notebot_bridge.storage.cache import build_cache

    settings = get_settings()
    root = corpus_path or settings.resolve_path(settings.corpus.root)
    corpus = LegacyCorpus(root, settings.corpus)

    if not corpus.exists():
        _fatal(f"Corpus directory not found: {root}")

    database = _open_database()

    console.print(Panel(
        f"[bold]Migration[/bold]\n"
        f"Corpus: {root}\n"
        f"Levels: {', '.join(level.slug for level in settings.levels)}",
        title="📥 Migrate",
    ))

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Importing corpus...", total=None)
            stats = HierarchyImporter(database, corpus, settings=settings).run()
            progress.remove_task(task)

        build_cache(settings).delete_pattern("*")
    finally:
        database.close()

    _print_counts("Imported rows", stats.as_dict())
    console.print(f"Blocks without URL skipped: {stats.skipped_blocks}")

    if stats.failed_nodes:
        console.print(f"[yellow]⚠ {len(stats.failed_nodes)} nodes failed:[/yellow]")
        for node in stats.failed_nodes:
            console.print(f"  • {node}")

    console.print("\n[bold green]✓ Migration complete[/bold green]")


# ─────────────────────────────────────────────────────────────────────────────
# Fix-up Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def fixup(
    fixups_file: Optional[Path] = typer.Option(
        None,
        "--file", "-f",
        help="Fix-up YAML file. Default: config/compat_fixups.yaml.",
    ),
):
    """
    🩹 Add direct-link subjects and lab subject aliases.

    Safe to re-run: existing subjects only get their metadata merged.
    """
    from notebot_bridge.ingestion.fixups import apply_fixups, load_fixups
    from notebot_bridge.shared.config import get_settings
    from notebot_bridge.storage.cache import build_cache

    if fixups_file is not None and not fixups_file.exists():
        _fatal(f"Fix-up file not found: {fixups_file}")

    fixups = load_fixups(fixups_file)
    database = _open_database()

    try:
        with database.session() as session:
            stats = apply_fixups(session, fixups)
        build_cache(get_settings()).delete_pattern("*")
    finally:
        database.close()

    table = Table(title="Fix-ups")
    table.add_column("Change")
    table.add_column("Count", justify="right")
    table.add_row("Subjects added", str(stats.subjects_added))
    table.add_row("Subjects updated", str(stats.subjects_updated))
    table.add_row("Subjects refused", str(stats.subjects_refused))
    table.add_row("Lab rows labelled", str(stats.lab_rows_updated))
    table.add_row("Levels updated", str(stats.levels_updated))
    console.print(table)

    if stats.missing_levels:
        console.print(f"[yellow]⚠ Unknown levels: {', '.join(stats.missing_levels)}[/yellow]")


# ─────────────────────────────────────────────────────────────────────────────
# Sync Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def sync(
    legacy_url: Optional[str] = typer.Option(
        None,
        "--legacy-url", "-u",
        help="Legacy API base URL. Default: LEGACY_API_URL or config.",
    ),
    threshold: Optional[float] = typer.Option(
        None,
        "--threshold", "-t",
        help="URL overlap fraction required to match a topic. Default: from config.",
    ),
):
    """
    🔄 Capture legacy API responses into canonical metadata.

    Requires a running legacy instance. Exits with status 1 when it is
    unreachable.
    """
    from notebot_bridge.reconcile.client import LegacyApiClient, LegacySourceUnavailable
    from notebot_bridge.reconcile.reconciler import SnapshotReconciler
    from notebot_bridge.shared.config import get_settings
    from notebot_bridge.storage.cache import build_cache

    settings = get_settings()
    client = LegacyApiClient(base_url=legacy_url, settings=settings)
    threshold = threshold if threshold is not None else settings.reconcile.overlap_threshold

    database = _open_database()

    console.print(Panel(
        f"[bold]Snapshot Sync[/bold]\n"
        f"Legacy API: {client.base_url}\n"
        f"Overlap threshold: {threshold}",
        title="🔄 Sync",
    ))

    try:
        with database.session() as session:
            stats = SnapshotReconciler(session, client, threshold).run()
        build_cache(settings).delete_pattern("*")
    except LegacySourceUnavailable as e:
        _fatal(str(e))
    finally:
        client.close()
        database.close()

    table = Table(title="Sync")
    table.add_column("Item")
    table.add_column("Count", justify="right")
    table.add_row("Subjects synced", str(stats.subjects_synced))
    table.add_row("Topics matched", str(stats.topics_matched))
    table.add_row("Topics unmatched", str(len(stats.unmatched_topics)))
    table.add_row("Leaf endpoints", str(stats.leaf_endpoints))
    table.add_row("Lab subjects", str(stats.lab_subjects))
    table.add_row("Lab leaf endpoints", str(stats.lab_leaf_endpoints))
    table.add_row("Malformed entries skipped", str(len(stats.malformed_entries)))
    console.print(table)

    if stats.missing_subjects:
        console.print(
            f"[yellow]⚠ Legacy subjects without canonical row: "
            f"{', '.join(stats.missing_subjects)}[/yellow]"
        )


# ─────────────────────────────────────────────────────────────────────────────
# Compare Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def compare(
    legacy_url: Optional[str] = typer.Option(
        None,
        "--legacy-url", "-u",
        help="Legacy API base URL. Default: LEGACY_API_URL or config.",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Save the list of differing endpoints to a JSON file.",
    ),
):
    """
    🔍 Compare every legacy endpoint with its compat response.
    """
    from notebot_bridge.compat.synthesizer import CompatSynthesizer
    from notebot_bridge.reconcile.client import LegacyApiClient, LegacySourceUnavailable
    from notebot_bridge.reconcile.compare import compare_apis
    from notebot_bridge.shared.config import get_settings
    from notebot_bridge.shared.utils import save_json
    from notebot_bridge.storage.cache import build_cache
    from notebot_bridge.storage.store import ContentStore

    settings = get_settings()
    client = LegacyApiClient(base_url=legacy_url, settings=settings)
    database = _open_database()

    try:
        client.probe()
        synthesizer = CompatSynthesizer(
            ContentStore(database, build_cache(settings)), settings=settings
        )
        report = compare_apis(client, synthesizer)
    except LegacySourceUnavailable as e:
        _fatal(str(e))
    finally:
        client.close()
        database.close()

    for diff in report.diffs:
        console.print(f"  [red]DIFF[/red] {diff.path}: {diff.reason}")

    console.print(Panel(
        f"Total endpoints: {report.total}\n"
        f"Matches: {report.matches}\n"
        f"Differences: {len(report.diffs)}\n"
        f"Match rate: {report.match_rate:.1%}",
        title="🔍 Comparison",
        border_style="green" if not report.diffs else "yellow",
    ))

    if output:
        save_json(
            output,
            [
                {"path": d.path, "reason": d.reason, "legacy": d.legacy, "compat": d.compat}
                for d in report.diffs
            ],
        )
        console.print(f"[green]✓ Differences saved to {output}[/green]")


# ─────────────────────────────────────────────────────────────────────────────
# Get Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def get(
    path: str = typer.Argument(..., help="Legacy request path, e.g. app/notes/1/math1"),
    with_results: bool = typer.Option(
        False,
        "--with-results",
        help="Enable the live results scraper for the 'results' path.",
    ),
):
    """
    📄 Print the compat response for one legacy path.

    Exits with status 1 for any non-2xx response.
    """
    from notebot_bridge.compat.synthesizer import CompatSynthesizer
    from notebot_bridge.ingestion.results import ResultsScraper
    from notebot_bridge.shared.config import get_settings
    from notebot_bridge.storage.cache import build_cache
    from notebot_bridge.storage.database import Database, DatabaseConfigError
    from notebot_bridge.storage.store import ContentStore

    settings = get_settings()
    try:
        database = Database.from_settings(settings)
    except DatabaseConfigError as e:
        _fatal(str(e))

    cache = build_cache(settings)
    scraper = ResultsScraper(cache=cache) if with_results else None

    try:
        synthesizer = CompatSynthesizer(
            ContentStore(database, cache), results_scraper=scraper, settings=settings
        )
        response = synthesizer.resolve(path)
    finally:
        database.close()

    console.print_json(json.dumps(response.body, ensure_ascii=False))
    if not response.ok:
        console.print(f"[red]Status {response.status}[/red]")
        raise typer.Exit(1)


# ─────────────────────────────────────────────────────────────────────────────
# Flush Cache Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command("flush-cache")
def flush_cache(
    pattern: str = typer.Option(
        "*",
        "--pattern", "-p",
        help="Key pattern to delete (without the key prefix).",
    ),
):
    """
    🧹 Delete cached store reads.
    """
    from notebot_bridge.shared.config import get_settings
    from notebot_bridge.storage.cache import build_cache

    removed = build_cache(get_settings()).delete_pattern(pattern)
    console.print(f"[green]✓ Removed {removed} cache entries matching '{pattern}'[/green]")


# ─────────────────────────────────────────────────────────────────────────────
# Info Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def info():
    """
    ℹ️ Show configuration and canonical row counts.
    """
    from notebot_bridge import __version__
    from notebot_bridge.shared.config import get_settings
    from notebot_bridge.storage.database import Database, DatabaseConfigError, count_rows

    settings = get_settings()

    console.print(Panel(
        f"[bold]NoteBot Bridge[/bold]\n"
        f"Version: {__version__}\n"
        f"Config: config/settings.yaml\n"
        f"Legacy API: {settings.get_effective_legacy_url()}\n"
        f"Compat base URL: {settings.compat.base_url}\n"
        f"Leaf shape: {settings.compat.leaf_shape.value}\n"
        f"Cache: {settings.cache.backend if settings.cache.enabled else 'disabled'}",
        title="ℹ️ Info",
    ))

    console.print("\n[bold]Configured Levels:[/bold]")
    table = Table()
    table.add_column("Slug")
    table.add_column("Name")
    for level in settings.levels:
        table.add_row(level.slug, level.display_name)
    console.print(table)

    corpus_root = settings.resolve_path(settings.corpus.root)
    exists = "✓" if corpus_root.exists() else "✗"
    console.print(f"\nCorpus: {corpus_root} [{exists}]")

    try:
        database = Database.from_settings(settings)
        database.check_connection()
    except DatabaseConfigError as e:
        console.print(f"[yellow]Database: {e}[/yellow]")
        return

    try:
        database.create_all()
        with database.session() as session:
            counts = count_rows(session)
    finally:
        database.close()

    _print_counts("Canonical rows", counts)


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def cli():
    """CLI entry point."""
    app()


if __name__ == "__main__":
    cli()
