"""Depot build engine.

Builds on depot.dev with the ``depot`` CLI. The API token and project are
passed through depot's own environment variables so the token never
appears on a command line or in the build log.
"""

from __future__ import annotations

import logging
from pathlib import Path

from imagewright.imagebuild.catalog import BUILD_ENGINES, DEPOT_BUILD_ENGINE
from imagewright.imagebuild.engines.runner import (
    EngineBuildError,
    engine_log_path,
    run_engine_command,
)
from imagewright.imagebuild.params import CommandParams

logger = logging.getLogger(__name__)

DEPOT = "depot"


def compose_depot_command(params: CommandParams) -> list[str]:
    """Compose the ``depot build`` command (without credentials)."""
    cmd = [
        DEPOT,
        "build",
        "--platform",
        f"linux/{params.architecture}",
        "--file",
        params.dockerfile,
        "--tag",
        params.image_name,
    ]

    for name, value in params.build_args:
        cmd.extend(["--build-arg", f"{name}={value}"])

    for name, value in params.labels.items():
        cmd.extend(["--label", f"{name}={value}"])

    cmd.extend(["--output", f"type=docker,dest={params.image_archive_file}"])
    cmd.append(params.context_dir)
    return cmd


def depot_environment(params: CommandParams) -> dict[str, str]:
    """Environment carrying the depot token and project."""
    props = BUILD_ENGINES[DEPOT_BUILD_ENGINE]
    return {
        props.native_token_env_var: params.engine_token,
        props.native_namespace_env_var: params.engine_namespace,
    }


def build_with_depot(params: CommandParams, timeout: int | None = None) -> Path:
    """Build the image on depot.dev.

    Returns:
        Path to the image archive.

    Raises:
        EngineBuildError: If the build fails.
    """
    if not params.engine_token or not params.engine_namespace:
        raise EngineBuildError(
            "depot token and project are required", code="missing_credentials"
        )

    archive = Path(params.image_archive_file)
    archive.parent.mkdir(parents=True, exist_ok=True)
    log_path = engine_log_path(archive, "depot")

    run_engine_command(
        compose_depot_command(params),
        log_path,
        timeout=timeout,
        env_override=depot_environment(params),
    )

    if not archive.is_file():
        raise EngineBuildError(f"depot did not produce {archive}", log_path=log_path)
    logger.info("Depot image archive: %s", archive)
    return archive


__all__ = ["DEPOT", "build_with_depot", "compose_depot_command", "depot_environment"]
