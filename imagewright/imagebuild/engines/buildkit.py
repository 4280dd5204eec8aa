"""BuildKit build engine.

Builds with ``buildctl`` against a remote BuildKit daemon and exports the
result as a docker image archive.
"""

from __future__ import annotations

import logging
from pathlib import Path

from imagewright.imagebuild.engines.runner import (
    EngineBuildError,
    engine_log_path,
    run_engine_command,
)
from imagewright.imagebuild.params import CommandParams

logger = logging.getLogger(__name__)

BUILDCTL = "buildctl"


def compose_buildctl_command(params: CommandParams) -> list[str]:
    """Compose the ``buildctl build`` command.

    The Dockerfile is a local path; its directory becomes the dockerfile
    local and its name the frontend ``filename`` option.
    """
    dockerfile = Path(params.dockerfile)
    cmd = [
        BUILDCTL,
        "--addr",
        params.engine_endpoint,
        "build",
        "--frontend",
        "dockerfile.v0",
        "--local",
        f"context={params.context_dir}",
        "--local",
        f"dockerfile={dockerfile.parent}",
        "--opt",
        f"filename={dockerfile.name}",
        "--opt",
        f"platform=linux/{params.architecture}",
    ]

    for name, value in params.build_args:
        cmd.extend(["--opt", f"build-arg:{name}={value}"])

    for name, value in params.labels.items():
        cmd.extend(["--opt", f"label:{name}={value}"])

    cmd.extend(
        [
            "--output",
            f"type=docker,name={params.image_name},dest={params.image_archive_file}",
        ]
    )
    return cmd


def build_with_buildkit(params: CommandParams, timeout: int | None = None) -> Path:
    """Build the image with BuildKit.

    Returns:
        Path to the image archive.

    Raises:
        EngineBuildError: If the build fails.
    """
    if not params.engine_endpoint:
        raise EngineBuildError("buildkit endpoint is required", code="missing_endpoint")

    archive = Path(params.image_archive_file)
    archive.parent.mkdir(parents=True, exist_ok=True)
    log_path = engine_log_path(archive, "buildkit")

    run_engine_command(compose_buildctl_command(params), log_path, timeout=timeout)

    if not archive.is_file():
        raise EngineBuildError(
            f"buildkit did not produce {archive}", log_path=log_path
        )
    logger.info("BuildKit image archive: %s", archive)
    return archive


__all__ = ["BUILDCTL", "build_with_buildkit", "compose_buildctl_command"]
