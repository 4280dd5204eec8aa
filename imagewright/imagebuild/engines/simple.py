"""Built-in minimal build engine.

Composes an image without any build daemon: an optional base image plus a
single layer holding the entrypoint executable. Images that need ``RUN``
instructions are out of reach for this engine.

Base image sources, in order of precedence:
- a local image archive (``base_image_tar``)
- an image exported from the docker daemon (``base_image``, or the
  distroless certs image for ``base_image_with_certs``)
- scratch
"""

from __future__ import annotations

import io
import logging
import tarfile
import tempfile
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from imagewright.crt.archive import (
    ImageArchiveError,
    ImageArchiveWriter,
    open_archive,
    read_config,
    read_manifest,
    save_image,
)
from imagewright.imagebuild.catalog import BASE_WITH_CERTS_IMAGE
from imagewright.imagebuild.engines.runner import EngineBuildError
from imagewright.imagebuild.params import CommandParams

logger = logging.getLogger(__name__)

DockerClientFactory = Callable[[], Any]


def exe_layer(exe_path: Path) -> bytes:
    """Build an uncompressed layer tar holding the executable at ``/``."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        info = tar.gettarinfo(str(exe_path), arcname=exe_path.name)
        info.mode = 0o755
        info.uid = info.gid = 0
        info.uname = info.gname = "root"
        with exe_path.open("rb") as exe:
            tar.addfile(info, exe)
    return buf.getvalue()


def image_config(
    params: CommandParams,
    exe_name: str,
    base_config: dict[str, Any],
    diff_ids: list[str],
    created: str,
) -> dict[str, Any]:
    """Compose the image config for the new image."""
    container_config = dict(base_config.get("config") or {})
    container_config["Entrypoint"] = [f"/{exe_name}"]
    container_config.pop("Cmd", None)

    labels = dict(container_config.get("Labels") or {})
    labels.update(params.labels)
    if labels:
        container_config["Labels"] = labels

    history = list(base_config.get("history") or [])
    history.append({"created": created, "created_by": f"COPY {exe_name} /"})

    return {
        "architecture": params.architecture,
        "os": "linux",
        "created": created,
        "config": container_config,
        "rootfs": {"type": "layers", "diff_ids": diff_ids},
        "history": history,
    }


def compose_image(
    params: CommandParams, exe_path: Path, base_archive: Path | None = None
) -> Path:
    """Write the image archive from an optional base archive and the executable.

    Raises:
        EngineBuildError: If the base archive is unusable.
    """
    archive = Path(params.image_archive_file)
    created = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    try:
        with ImageArchiveWriter(archive, [params.image_name]) as writer:
            base_config: dict[str, Any] = {}
            if base_archive is not None:
                with open_archive(base_archive) as base:
                    manifest = read_manifest(base)
                    base_config = read_config(base, manifest)
                    base_diff_ids = base_config.get("rootfs", {}).get("diff_ids", [])
                    if len(base_diff_ids) != len(manifest.layers):
                        raise ImageArchiveError(
                            "base image layers do not match its diff ids"
                        )
                    for layer, diff_id in zip(manifest.layers, base_diff_ids):
                        writer.copy_layer(base, layer, diff_id)

                base_arch = base_config.get("architecture")
                if base_arch and base_arch != params.architecture:
                    logger.warning(
                        "Base image architecture %s differs from %s",
                        base_arch,
                        params.architecture,
                    )

            writer.add_layer(exe_layer(exe_path))
            writer.set_config(
                image_config(
                    params, exe_path.name, base_config, list(writer.diff_ids), created
                )
            )
    except ImageArchiveError as e:
        raise EngineBuildError(str(e), code="base_image_error") from e

    logger.info("Simple engine image archive: %s", archive)
    return archive


def build_with_simple(
    params: CommandParams,
    docker_client: DockerClientFactory | None = None,
) -> Path:
    """Build the image with the built-in composer.

    Args:
        params: Build parameters.
        docker_client: Factory returning a docker client; called only when
            the base image comes from the daemon.

    Returns:
        Path to the image archive.

    Raises:
        EngineBuildError: If inputs are missing or composition fails.
    """
    if not params.exe_path:
        raise EngineBuildError(
            "simple engine requires an executable (exe path)", code="missing_exe"
        )
    exe = Path(params.exe_path)
    if not exe.is_file():
        raise EngineBuildError(f"executable not found: {exe}", code="missing_exe")

    if params.base_image_tar:
        return compose_image(params, exe, Path(params.base_image_tar))

    base_ref = params.base_image
    if not base_ref and params.base_image_with_certs:
        base_ref = BASE_WITH_CERTS_IMAGE

    if not base_ref:
        return compose_image(params, exe)

    if docker_client is None:
        raise EngineBuildError(
            f"base image {base_ref} requires a docker daemon", code="missing_daemon"
        )

    client = docker_client()
    with tempfile.TemporaryDirectory(prefix="imagewright-base-") as tmp:
        base_archive = Path(tmp) / "base.tar"
        try:
            save_image(client, base_ref, base_archive)
        except ImageArchiveError as e:
            raise EngineBuildError(str(e), code="base_image_error") from e
        return compose_image(params, exe, base_archive)


__all__ = ["build_with_simple", "compose_image", "exe_layer", "image_config"]
