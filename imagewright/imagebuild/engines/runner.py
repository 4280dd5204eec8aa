"""Runner for engine command-line tools.

This module handles:
- Executing engine CLIs (buildctl, depot) with subprocess
- Capturing stdout/stderr to log files
- Enforcing optional timeouts
- Converting failures into EngineBuildError
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


class EngineBuildError(Exception):
    """Raised when a build engine fails to produce an image archive."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "engine_build_error",
        log_path: Path | None = None,
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code
        self.log_path = log_path


@dataclass
class CommandResult:
    """Result of an engine command execution.

    Attributes:
        exit_code: Process exit code.
        log_path: Path to the captured output.
        started_at: Start time.
        finished_at: Finish time.
        command: The command that was executed (secrets are never on it).
    """

    exit_code: int
    log_path: Path
    started_at: datetime
    finished_at: datetime
    command: str


def run_engine_command(
    cmd: list[str],
    log_path: Path,
    cwd: Path | None = None,
    timeout: int | None = None,
    env_override: dict[str, str] | None = None,
) -> CommandResult:
    """Run an engine CLI command, capturing output to ``log_path``.

    Args:
        cmd: Command as a list of strings.
        log_path: File receiving stdout/stderr.
        cwd: Working directory.
        timeout: Timeout in seconds (None = no timeout).
        env_override: Environment variables added to the current environment.

    Returns:
        CommandResult for a successful run.

    Raises:
        EngineBuildError: If the command cannot start, times out or fails.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)
    cmd_str = shlex.join(cmd)
    logger.info("Executing engine command: %s", cmd_str)

    env: dict[str, str] | None = None
    if env_override:
        env = dict(os.environ)
        env.update(env_override)

    started_at = datetime.now(timezone.utc)
    try:
        with log_path.open("w") as log_file:
            log_file.write(f"# Command: {cmd_str}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write("# " + "=" * 70 + "\n\n")
            log_file.flush()

            result = subprocess.run(
                cmd,
                cwd=cwd,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                timeout=timeout,
                env=env,
                check=False,
            )
    except subprocess.TimeoutExpired as e:
        message = f"{cmd[0]} timed out after {timeout} seconds"
        logger.error("%s. See log: %s", message, log_path)
        raise EngineBuildError(
            message, exit_code=-1, code="engine_timeout", log_path=log_path
        ) from e
    except OSError as e:
        message = f"Failed to execute {cmd[0]}: {e}"
        logger.error(message)
        raise EngineBuildError(message, code="execution_error") from e

    finished_at = datetime.now(timezone.utc)
    with log_path.open("a") as log_file:
        log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
        log_file.write(f"# Exit code: {result.returncode}\n")

    if result.returncode != 0:
        message = f"{cmd[0]} failed with exit code {result.returncode}"
        logger.error("%s. See log: %s", message, log_path)
        raise EngineBuildError(
            message, exit_code=result.returncode, log_path=log_path
        )

    return CommandResult(
        exit_code=result.returncode,
        log_path=log_path,
        started_at=started_at,
        finished_at=finished_at,
        command=cmd_str,
    )


def engine_log_path(archive_file: str | Path, engine: str) -> Path:
    """Return the build log path kept next to the image archive."""
    archive = Path(archive_file)
    return archive.with_name(f"{archive.stem}.{engine}.build.log")


__all__ = [
    "CommandResult",
    "EngineBuildError",
    "engine_log_path",
    "run_engine_command",
]
