"""
Logging setup for command-line use.

Library modules only create loggers with ``logging.getLogger(__name__)``;
handlers are installed here, by the CLI, and never at import time.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(verbose: bool = False, console: Console | None = None) -> None:
    """
    Route engine log records through a Rich handler.

    Args:
        verbose: Log at DEBUG level instead of WARNING
        console: Console to write to (stderr console if None)
    """
    level = logging.DEBUG if verbose else logging.WARNING
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
    logging.getLogger("schedule_engine").setLevel(level)
