"""Execution environment detection.

Helpers for figuring out where the tool runs: inside a container, from the
project's own distribution image, and from which executable location.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

# Marker files created by common container runtimes
CONTAINER_MARKERS = ("/.dockerenv", "/run/.containerenv")

# Set in the project's distribution image
DS_IMAGE_ENV_VAR = "IMAGEWRIGHT_DS_IMAGE"
DS_IMAGE_MARKER = "/.imagewright-image"


def detect_in_container(
    markers: tuple[str, ...] = CONTAINER_MARKERS,
    cgroup_path: Path = Path("/proc/1/cgroup"),
) -> bool:
    """Return True when the process appears to run inside a container."""
    if any(Path(m).exists() for m in markers):
        return True

    try:
        content = cgroup_path.read_text()
    except OSError:
        return False

    return any(
        token in content for token in ("docker", "containerd", "kubepods", "libpod")
    )


def detect_ds_image(marker: str = DS_IMAGE_MARKER) -> bool:
    """Return True when running from the project's distribution image."""
    if os.environ.get(DS_IMAGE_ENV_VAR, "").lower() in ("1", "true", "yes"):
        return True
    return Path(marker).exists()


def exe_dir() -> str:
    """Return the directory of the running executable."""
    argv0 = sys.argv[0] if sys.argv and sys.argv[0] else sys.executable
    return str(Path(argv0).resolve().parent)


__all__ = [
    "CONTAINER_MARKERS",
    "DS_IMAGE_ENV_VAR",
    "DS_IMAGE_MARKER",
    "detect_ds_image",
    "detect_in_container",
    "exe_dir",
]
