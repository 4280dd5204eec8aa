"""Registry client: push image archives, save daemon images.

This module handles:
- Pushing a docker image archive to a registry (Docker Registry HTTP API V2):
  blobs are uploaded monolithically, existing blobs are skipped, and a
  schema-2 manifest is put last
- Exporting an image from the docker daemon into an archive

Layers are gzip-compressed in memory before upload.
"""

from __future__ import annotations

import gzip
import json
import logging
from pathlib import Path
from typing import Any

import httpx

from imagewright import __version__
from imagewright.crt.archive import (
    ImageArchiveError,
    open_archive,
    read_manifest,
    read_member,
    save_image,
    sha256_digest,
)
from imagewright.registry.auth import (
    Credentials,
    RegistryAuth,
    RegistryAuthError,
    RemoteOptions,
)
from imagewright.registry.reference import (
    InvalidReferenceError,
    NameOptions,
    Reference,
    is_local_registry,
    parse_reference,
)

logger = logging.getLogger(__name__)

MANIFEST_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.v2+json"
CONFIG_MEDIA_TYPE = "application/vnd.docker.container.image.v1+json"
LAYER_MEDIA_TYPE = "application/vnd.docker.image.rootfs.diff.tar.gzip"

GZIP_MAGIC = b"\x1f\x8b"


class RegistryError(Exception):
    """Raised when a registry operation fails."""

    def __init__(
        self,
        message: str,
        code: str = "registry_error",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


def _registry_host(registry: str) -> str:
    if registry == "index.docker.io":
        return "registry-1.docker.io"
    return registry


class RegistrySession:
    """HTTP session bound to one repository on one registry."""

    def __init__(
        self,
        reference: Reference,
        credentials: Credentials | None = None,
        timeout: float = 300.0,
        insecure: bool = False,
        client: httpx.Client | None = None,
    ) -> None:
        self.reference = reference
        self.insecure = insecure
        host = _registry_host(reference.registry)
        scheme = "http" if is_local_registry(host) else "https"
        self.base_url = f"{scheme}://{host}"
        self.auth = RegistryAuth(
            credentials, scope=f"repository:{reference.repository}:pull,push"
        )
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": f"imagewright/{__version__}"},
        )

    def __enter__(self) -> RegistrySession:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _repo_url(self, path: str) -> str:
        return f"{self.base_url}/v2/{self.reference.repository}/{path}"

    def _request(self, method: str, url: str | httpx.URL, **kwargs: Any) -> httpx.Response:
        try:
            return self._client.request(method, url, auth=self.auth, **kwargs)
        except RegistryAuthError:
            raise
        except httpx.HTTPError as e:
            raise RegistryError(f"{method} {url} failed: {e}") from e

    @staticmethod
    def _check(response: httpx.Response, expected: tuple[int, ...], what: str) -> None:
        if response.status_code in expected:
            return
        code = "registry_unauthorized" if response.status_code in (401, 403) else (
            "registry_error"
        )
        raise RegistryError(
            f"{what} failed with status {response.status_code}: {response.text[:200]}",
            code=code,
            status_code=response.status_code,
        )

    def ping(self) -> None:
        """Check the API endpoint, falling back to HTTP for insecure registries."""
        url = f"{self.base_url}/v2/"
        try:
            response = self._client.request("GET", url, auth=self.auth)
        except httpx.ConnectError as e:
            if not self.insecure or self.base_url.startswith("http://"):
                raise RegistryError(f"cannot reach registry {url}: {e}") from e
            self.base_url = self.base_url.replace("https://", "http://", 1)
            logger.info("Falling back to insecure registry: %s", self.base_url)
            response = self._request("GET", f"{self.base_url}/v2/")
        except httpx.HTTPError as e:
            raise RegistryError(f"cannot reach registry {url}: {e}") from e
        self._check(response, (200,), "registry ping")

    def blob_exists(self, digest: str) -> bool:
        response = self._request("HEAD", self._repo_url(f"blobs/{digest}"))
        return response.status_code == 200

    def upload_blob(self, digest: str, data: bytes) -> bool:
        """Upload a blob unless the registry already has it.

        Returns:
            True if the blob was uploaded, False if it already existed.
        """
        if self.blob_exists(digest):
            logger.debug("Blob exists: %s", digest)
            return False

        response = self._request("POST", self._repo_url("blobs/uploads/"))
        self._check(response, (202,), "blob upload start")
        location = response.headers.get("Location")
        if not location:
            raise RegistryError("blob upload start returned no location")

        upload_url = httpx.URL(self.base_url).join(location).copy_merge_params(
            {"digest": digest}
        )
        response = self._request(
            "PUT",
            upload_url,
            content=data,
            headers={"Content-Type": "application/octet-stream"},
        )
        self._check(response, (201,), f"blob upload {digest}")
        logger.info("Uploaded blob %s (%d bytes)", digest, len(data))
        return True

    def put_manifest(self, identifier: str, manifest: bytes) -> str:
        """Put the image manifest and return its digest."""
        response = self._request(
            "PUT",
            self._repo_url(f"manifests/{identifier}"),
            content=manifest,
            headers={"Content-Type": MANIFEST_MEDIA_TYPE},
        )
        self._check(response, (200, 201), "manifest upload")
        return response.headers.get("Docker-Content-Digest") or sha256_digest(manifest)


def compress_layer(data: bytes) -> bytes:
    """Gzip a layer unless it is already compressed."""
    if data[:2] == GZIP_MAGIC:
        return data
    return gzip.compress(data, mtime=0)


def push_image_from_archive(
    archive_path: str | Path,
    image_name: str,
    name_options: NameOptions | None = None,
    remote_options: RemoteOptions | None = None,
    client: httpx.Client | None = None,
) -> str:
    """Push a docker image archive to a registry.

    Args:
        archive_path: Docker image archive.
        image_name: Target reference.
        name_options: Reference parsing options.
        remote_options: Credentials and timeouts.
        client: Optional HTTPX client (tests, connection reuse).

    Returns:
        Digest of the pushed manifest.

    Raises:
        RegistryError: If the archive or the push fails.
    """
    if name_options is None:
        name_options = NameOptions()
    if remote_options is None:
        remote_options = RemoteOptions()

    try:
        ref = parse_reference(image_name, name_options)
    except InvalidReferenceError as e:
        raise RegistryError(str(e), code=e.code) from e

    try:
        credentials = remote_options.credentials_for(ref.registry)
    except RegistryAuthError as e:
        raise RegistryError(str(e), code=e.code) from e

    logger.info("Pushing %s to %s", archive_path, ref)
    try:
        with open_archive(archive_path) as tar, RegistrySession(
            ref,
            credentials=credentials,
            timeout=remote_options.timeout,
            insecure=name_options.insecure,
            client=client,
        ) as session:
            manifest = read_manifest(tar)
            config = read_member(tar, manifest.config)
            session.ping()

            layers: list[dict[str, Any]] = []
            for layer_name in manifest.layers:
                blob = compress_layer(read_member(tar, layer_name))
                digest = sha256_digest(blob)
                session.upload_blob(digest, blob)
                layers.append(
                    {"mediaType": LAYER_MEDIA_TYPE, "size": len(blob), "digest": digest}
                )

            config_digest = sha256_digest(config)
            session.upload_blob(config_digest, config)

            document = {
                "schemaVersion": 2,
                "mediaType": MANIFEST_MEDIA_TYPE,
                "config": {
                    "mediaType": CONFIG_MEDIA_TYPE,
                    "size": len(config),
                    "digest": config_digest,
                },
                "layers": layers,
            }
            digest = session.put_manifest(
                ref.identifier, json.dumps(document).encode()
            )
    except ImageArchiveError as e:
        raise RegistryError(str(e), code=e.code) from e
    except RegistryAuthError as e:
        raise RegistryError(str(e), code=e.code) from e

    logger.info("Pushed %s (%s)", ref, digest)
    return digest


def save_image_to_archive(
    client: Any,
    image_ref: str,
    dest_path: str | Path,
    name_options: NameOptions | None = None,
) -> Path:
    """Export an image from the docker daemon into ``dest_path``.

    Raises:
        RegistryError: If the reference is invalid or the export fails.
    """
    try:
        parse_reference(image_ref, name_options)
        return save_image(client, image_ref, dest_path)
    except InvalidReferenceError as e:
        raise RegistryError(str(e), code=e.code) from e
    except ImageArchiveError as e:
        raise RegistryError(str(e), code="image_save_error") from e


__all__ = [
    "CONFIG_MEDIA_TYPE",
    "LAYER_MEDIA_TYPE",
    "MANIFEST_MEDIA_TYPE",
    "RegistryError",
    "RegistrySession",
    "compress_layer",
    "push_image_from_archive",
    "save_image_to_archive",
]
