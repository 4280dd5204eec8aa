"""Logging helpers for imagewright."""
from __future__ import annotations

import logging
from typing import Literal

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(
    level: str | Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO",
) -> None:
    """Configure root logging with Rich formatting on stderr.

    The event stream owns stdout, so diagnostics always go to stderr.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=Console(stderr=True),
                rich_tracebacks=True,
                markup=False,
            )
        ],
        force=True,
    )
