"""Command run reports.

A report records the command type, its lifecycle phase and the main
inputs/outputs of a run, and is saved as JSON at the end of the run.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from imagewright import __version__
from imagewright.config import DEFAULT_REPORT_LOCATION
from imagewright.types import CommandState

logger = logging.getLogger(__name__)

REPORT_DISABLED = ("", "off")

IMAGEBUILD_COMMAND = "imagebuild"
REGISTRY_COMMAND = "registry"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CommandReport(BaseModel):
    """Summary record of one command run."""

    type: str
    state: CommandState = CommandState.STARTED
    version: str = __version__
    in_container: bool = False
    location: str | None = Field(default=DEFAULT_REPORT_LOCATION, exclude=True)
    started_at: datetime = Field(default_factory=_now)
    finished_at: datetime | None = None

    engine: str | None = None
    image_name: str | None = None
    image_archive_file: str | None = None
    target_reference: str | None = None
    pushed_as: str | None = None
    digest: str | None = None

    def report_location(self) -> str:
        """Report file path ("" when reports are disabled)."""
        if self.location is None or self.location.strip().lower() in REPORT_DISABLED:
            return ""
        return self.location

    def save(self) -> bool:
        """Write the report as JSON.

        Returns:
            True if the report was written; False when disabled or on error.
        """
        location = self.report_location()
        if not location:
            return False

        if self.state == CommandState.DONE and self.finished_at is None:
            self.finished_at = _now()

        path = Path(location)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self.model_dump_json(indent=2, exclude_none=True))
        except OSError as e:
            logger.warning("Failed to save report to %s: %s", path, e)
            return False

        logger.debug("Saved report to %s", path)
        return True


def new_imagebuild_report(
    location: str | None, in_container: bool = False
) -> CommandReport:
    return CommandReport(
        type=IMAGEBUILD_COMMAND,
        location=DEFAULT_REPORT_LOCATION if location is None else location,
        in_container=in_container,
    )


def new_registry_report(
    location: str | None, in_container: bool = False
) -> CommandReport:
    return CommandReport(
        type=REGISTRY_COMMAND,
        location=DEFAULT_REPORT_LOCATION if location is None else location,
        in_container=in_container,
    )


__all__ = [
    "CommandReport",
    "IMAGEBUILD_COMMAND",
    "REGISTRY_COMMAND",
    "new_imagebuild_report",
    "new_registry_report",
]
