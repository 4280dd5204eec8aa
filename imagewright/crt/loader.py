"""Loading image archives into local container runtimes."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol, TextIO

from docker.errors import DockerException

logger = logging.getLogger(__name__)


class ImageLoadError(Exception):
    """Raised when an image archive cannot be loaded into a runtime."""

    def __init__(self, message: str, code: str = "image_load_error") -> None:
        super().__init__(message)
        self.code = code


class ImageLoader(Protocol):
    """Runtime that can import an image tar archive."""

    def load_image(self, archive_path: str | Path, output: TextIO) -> None:
        """Load ``archive_path`` and write progress to ``output``."""
        ...


class DaemonImageLoader:
    """Image loader backed by a Docker Engine API daemon (docker or podman).

    Attributes:
        client: docker SDK client connected to the runtime.
        runtime: Runtime name used in messages.
    """

    def __init__(self, client: Any, runtime: str) -> None:
        self.client = client
        self.runtime = runtime

    def load_image(self, archive_path: str | Path, output: TextIO) -> None:
        """Stream the archive to the daemon's image load API.

        Raises:
            ImageLoadError: If the archive is missing or the daemon rejects it.
        """
        path = Path(archive_path)
        if not path.is_file():
            raise ImageLoadError(f"image archive not found: {path}")

        logger.info("Loading %s into %s", path, self.runtime)
        try:
            with path.open("rb") as archive:
                for entry in self.client.api.load_image(archive):
                    if "error" in entry:
                        raise ImageLoadError(
                            f"{self.runtime} image load failed: {entry['error']}"
                        )
                    if "stream" in entry:
                        output.write(entry["stream"])
        except DockerException as e:
            raise ImageLoadError(f"{self.runtime} image load failed: {e}") from e
        output.flush()


__all__ = ["DaemonImageLoader", "ImageLoadError", "ImageLoader"]
