"""Daemon build engines (docker and podman).

Both daemons expose the Docker Engine build API, so one implementation
builds through the docker SDK's low-level client and then exports the
built image into the archive file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, TextIO

from docker.errors import DockerException

from imagewright.crt.archive import ImageArchiveError, save_image
from imagewright.imagebuild.engines.runner import EngineBuildError
from imagewright.imagebuild.params import CommandParams

logger = logging.getLogger(__name__)


def build_kwargs(params: CommandParams) -> dict[str, Any]:
    """Keyword arguments for ``APIClient.build``.

    The Dockerfile path is relative to the context directory.
    """
    kwargs: dict[str, Any] = {
        "path": params.context_dir,
        "dockerfile": params.dockerfile,
        "tag": params.image_name,
        "platform": f"linux/{params.architecture}",
        "decode": True,
        "rm": True,
        "forcerm": True,
    }
    if params.build_args:
        kwargs["buildargs"] = dict(params.build_args)
    if params.labels:
        kwargs["labels"] = dict(params.labels)
    return kwargs


def build_with_daemon(
    client: Any,
    params: CommandParams,
    engine: str,
    output: TextIO | None = None,
) -> Path:
    """Build the image on a daemon and save it to the archive file.

    Args:
        client: docker SDK client for the daemon.
        params: Build parameters.
        engine: Engine name used in messages.
        output: Optional stream receiving build output.

    Returns:
        Path to the image archive.

    Raises:
        EngineBuildError: If the build or the export fails.
    """
    logger.info("Building %s with %s", params.image_name, engine)
    try:
        for entry in client.api.build(**build_kwargs(params)):
            if "error" in entry:
                raise EngineBuildError(f"{engine} build failed: {entry['error']}")
            if "stream" in entry and output is not None:
                output.write(entry["stream"])
    except DockerException as e:
        raise EngineBuildError(f"{engine} build failed: {e}") from e

    try:
        return save_image(client, params.image_name, params.image_archive_file)
    except ImageArchiveError as e:
        raise EngineBuildError(str(e), code="image_save_error") from e


__all__ = ["build_kwargs", "build_with_daemon"]
