"""
Logging Module - Rich-backed logging for batch jobs and the compat layer.
=========================================================================

One root configuration shared by the migration, fix-up and sync jobs and by
whatever process hosts the compat synthesizer. Batch jobs log one line per
corpus node; the serving path only logs degradations (cache down, store
errors).
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

_logging_configured = False
_console = Console()

# Libraries whose INFO output drowns per-node progress lines
_NOISY_LOGGERS = (
    "urllib3",
    "requests",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "redis",
)


def setup_logging(
    level: str = "INFO",
    use_rich: bool = True,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        use_rich: Render through RichHandler instead of a plain stream handler
        log_file: Optional file that receives a plain-text copy of every record
        log_format: Format for the plain handlers

    Note:
        Only the first call takes effect. Use ``reset_logging`` in tests.
    """
    global _logging_configured

    if _logging_configured:
        return

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if log_format is None:
        log_format = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    if use_rich:
        rich_handler = RichHandler(
            console=_console,
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        rich_handler.setLevel(numeric_level)
        rich_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(rich_handler)
    else:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setLevel(numeric_level)
        stream_handler.setFormatter(logging.Formatter(log_format))
        root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        root_logger.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _logging_configured = True

    get_logger(__name__).debug(
        f"Logging configured: level={level}, rich={use_rich}, file={log_file}"
    )


def reset_logging() -> None:
    """Allow ``setup_logging`` to run again (used by the CLI and tests)."""
    global _logging_configured
    _logging_configured = False


def get_logger(name: str) -> logging.Logger:
    """
    Get a named logger, configuring defaults on first use.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Level 1: 12 subjects")
    """
    if not _logging_configured:
        setup_logging()

    return logging.getLogger(name)


def get_console() -> Console:
    """Shared Rich console for CLI tables and panels."""
    return _console
