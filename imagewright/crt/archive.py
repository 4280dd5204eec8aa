"""Docker image archive (``docker save`` format) reading and writing.

An archive holds ``manifest.json`` (config path, repo tags and layer paths),
the image config JSON and one uncompressed tar per layer.
"""

from __future__ import annotations

import hashlib
import io
import json
import logging
import tarfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

from docker.errors import DockerException

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"

# Chunk size for streaming reads (bytes)
CHUNK_SIZE = 64 * 1024  # 64 KB


class ImageArchiveError(Exception):
    """Raised when an image archive is missing or malformed."""

    def __init__(self, message: str, code: str = "image_archive_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class ArchiveManifest:
    """One image entry of an archive's manifest.json."""

    config: str
    repo_tags: list[str] = field(default_factory=list)
    layers: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"Config": self.config, "RepoTags": self.repo_tags, "Layers": self.layers}


def sha256_digest(data: bytes) -> str:
    """Return the ``sha256:<hex>`` digest of ``data``."""
    return "sha256:" + hashlib.sha256(data).hexdigest()


def stream_digest(stream: IO[bytes], chunk_size: int = CHUNK_SIZE) -> tuple[str, int]:
    """Digest a binary stream.

    Returns:
        Tuple of (``sha256:<hex>`` digest, size in bytes).
    """
    sha256 = hashlib.sha256()
    size = 0
    while chunk := stream.read(chunk_size):
        sha256.update(chunk)
        size += len(chunk)
    return "sha256:" + sha256.hexdigest(), size


def open_archive(path: str | Path) -> tarfile.TarFile:
    """Open an image archive for reading.

    Raises:
        ImageArchiveError: If the file is missing or not a tar archive.
    """
    archive_path = Path(path)
    if not archive_path.is_file():
        raise ImageArchiveError(f"image archive not found: {archive_path}")
    try:
        return tarfile.open(archive_path, "r:*")
    except tarfile.TarError as e:
        raise ImageArchiveError(f"invalid image archive {archive_path}: {e}") from e


def read_member(tar: tarfile.TarFile, name: str) -> bytes:
    """Read a regular file member from the archive.

    Raises:
        ImageArchiveError: If the member is missing.
    """
    try:
        member = tar.extractfile(name)
    except KeyError:
        member = None
    if member is None:
        raise ImageArchiveError(f"missing archive member: {name}")
    with member:
        return member.read()


def read_manifest(tar: tarfile.TarFile) -> ArchiveManifest:
    """Read the first image entry of ``manifest.json``.

    Raises:
        ImageArchiveError: If the manifest is missing or malformed.
    """
    try:
        entries = json.loads(read_member(tar, MANIFEST_FILE))
        entry = entries[0]
        return ArchiveManifest(
            config=entry["Config"],
            repo_tags=list(entry.get("RepoTags") or []),
            layers=list(entry.get("Layers") or []),
        )
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise ImageArchiveError(f"malformed {MANIFEST_FILE}: {e}") from e


def read_config(tar: tarfile.TarFile, manifest: ArchiveManifest) -> dict[str, Any]:
    """Read the image config referenced by ``manifest``."""
    try:
        return json.loads(read_member(tar, manifest.config))
    except ValueError as e:
        raise ImageArchiveError(f"malformed image config: {e}") from e


class ImageArchiveWriter:
    """Write a single-image archive.

    Layers are added in order; ``close`` writes the config and manifest.

    Example:
        with ImageArchiveWriter(path, ["app:latest"]) as writer:
            writer.add_layer(layer_bytes)
            writer.set_config(config)
    """

    def __init__(self, path: str | Path, repo_tags: list[str]) -> None:
        self.path = Path(path)
        self.repo_tags = repo_tags
        self.layers: list[str] = []
        self.diff_ids: list[str] = []
        self._config: dict[str, Any] | None = None
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._tar = tarfile.open(self.path, "w")

    def __enter__(self) -> ImageArchiveWriter:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc_type is None:
            self.close()
        else:
            self._tar.close()

    def _add_bytes(self, name: str, data: bytes, mode: int = 0o644) -> None:
        info = tarfile.TarInfo(name)
        info.size = len(data)
        info.mode = mode
        self._tar.addfile(info, io.BytesIO(data))

    def add_layer(self, data: bytes, diff_id: str | None = None) -> str:
        """Add an uncompressed layer tar and return its diff id."""
        if diff_id is None:
            diff_id = sha256_digest(data)
        name = f"{diff_id.split(':', 1)[1]}/layer.tar"
        if name not in self.layers:
            self._add_bytes(name, data)
        self.layers.append(name)
        self.diff_ids.append(diff_id)
        return diff_id

    def copy_layer(self, source: tarfile.TarFile, member_name: str, diff_id: str) -> str:
        """Copy a layer member from another archive without buffering it."""
        try:
            member = source.getmember(member_name)
        except KeyError as e:
            raise ImageArchiveError(f"missing archive member: {member_name}") from e
        stream = source.extractfile(member)
        if stream is None:
            raise ImageArchiveError(f"layer is not a regular file: {member_name}")

        name = f"{diff_id.split(':', 1)[1]}/layer.tar"
        if name not in self.layers:
            info = tarfile.TarInfo(name)
            info.size = member.size
            info.mode = 0o644
            with stream:
                self._tar.addfile(info, stream)
        self.layers.append(name)
        self.diff_ids.append(diff_id)
        return diff_id

    def set_config(self, config: dict[str, Any]) -> None:
        self._config = config

    def close(self) -> None:
        if self._config is None:
            self._tar.close()
            raise ImageArchiveError("image config was not set")
        config_data = json.dumps(self._config, sort_keys=True).encode()
        config_name = f"{sha256_digest(config_data).split(':', 1)[1]}.json"
        self._add_bytes(config_name, config_data)
        manifest = ArchiveManifest(
            config=config_name, repo_tags=self.repo_tags, layers=self.layers
        )
        self._add_bytes(MANIFEST_FILE, json.dumps([manifest.to_dict()]).encode())
        self._tar.close()


def save_image(client: Any, image_ref: str, dest_path: str | Path) -> Path:
    """Export an image from a daemon into an archive file.

    Raises:
        ImageArchiveError: If the daemon cannot export the image.
    """
    dest = Path(dest_path)
    dest.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Saving image %s to %s", image_ref, dest)
    try:
        image = client.images.get(image_ref)
        with dest.open("wb") as handle:
            for chunk in image.save(named=True):
                handle.write(chunk)
    except DockerException as e:
        raise ImageArchiveError(f"failed to save image {image_ref}: {e}") from e
    return dest


__all__ = [
    "ArchiveManifest",
    "ImageArchiveError",
    "ImageArchiveWriter",
    "MANIFEST_FILE",
    "open_archive",
    "read_config",
    "read_manifest",
    "read_member",
    "save_image",
    "sha256_digest",
    "stream_digest",
]
