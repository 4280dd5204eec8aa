"""Container runtime API clients.

This module handles:
- Resolving the Docker daemon address (config, DOCKER_HOST, default socket)
- Resolving the Podman API service socket
- Creating and pinging docker SDK clients for either daemon

Both daemons speak the Docker Engine API, so one SDK serves both.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import docker
from docker.errors import DockerException
from docker.tls import TLSConfig

from imagewright.types import DockerClientConfig

logger = logging.getLogger(__name__)

DEFAULT_DOCKER_SOCKET = "/var/run/docker.sock"
ROOTFUL_PODMAN_SOCKET = "/run/podman/podman.sock"

NATIVE_CONNECT_MESSAGE = "missing Docker connection info"
CONTAINER_CONNECT_MESSAGE = (
    "make sure to pass the Docker connect parameters to the imagewright container"
)


class NoDockerConnectInfoError(Exception):
    """Raised when no Docker daemon address can be resolved."""

    def __init__(
        self,
        message: str = NATIVE_CONNECT_MESSAGE,
        code: str = "no_docker_connect_info",
    ) -> None:
        super().__init__(message)
        self.code = code


class DaemonConnectionError(Exception):
    """Raised when a daemon address is known but the daemon is unusable."""

    def __init__(self, message: str, code: str = "daemon_connection_error") -> None:
        super().__init__(message)
        self.code = code


class PodmanConnectionError(Exception):
    """Raised when the Podman API service is not running."""

    def __init__(self, message: str, code: str = "podman_not_running") -> None:
        super().__init__(message)
        self.code = code


def docker_connect_message(in_container: bool, is_ds_image: bool) -> str:
    """Remediation message for a missing Docker connection."""
    if in_container and is_ds_image:
        return CONTAINER_CONNECT_MESSAGE
    return NATIVE_CONNECT_MESSAGE


def _with_scheme(address: str) -> str:
    if "://" in address:
        return address
    return f"unix://{address}"


def resolve_docker_host(
    config: DockerClientConfig,
    environ: Mapping[str, str] | None = None,
    socket_path: str = DEFAULT_DOCKER_SOCKET,
) -> str | None:
    """Resolve the Docker daemon address.

    Args:
        config: Explicit connection parameters.
        environ: Environment mapping (defaults to os.environ).
        socket_path: Default local daemon socket.

    Returns:
        Daemon base URL, or None when there is no connection info.
    """
    if environ is None:
        environ = os.environ

    if config.host:
        return _with_scheme(config.host)

    env_host = environ.get("DOCKER_HOST", "")
    if env_host:
        return _with_scheme(env_host)

    if Path(socket_path).exists():
        return f"unix://{socket_path}"

    return None


def _tls_config(
    config: DockerClientConfig, environ: Mapping[str, str]
) -> TLSConfig | bool:
    cert_path = config.cert_path or environ.get("DOCKER_CERT_PATH", "")
    verify = config.tls_verify or environ.get("DOCKER_TLS_VERIFY", "") not in ("", "0")
    if not cert_path:
        return bool(verify)

    cert_dir = Path(cert_path)
    return TLSConfig(
        client_cert=(str(cert_dir / "cert.pem"), str(cert_dir / "key.pem")),
        ca_cert=str(cert_dir / "ca.pem"),
        verify=verify,
    )


def new_docker_client(
    config: DockerClientConfig | None = None,
    environ: Mapping[str, str] | None = None,
    socket_path: str = DEFAULT_DOCKER_SOCKET,
) -> docker.DockerClient:
    """Create a pinged Docker daemon client.

    Raises:
        NoDockerConnectInfoError: If no daemon address is available.
        DaemonConnectionError: If the daemon cannot be reached.
    """
    if config is None:
        config = DockerClientConfig()
    if environ is None:
        environ = os.environ

    host = resolve_docker_host(config, environ, socket_path)
    if host is None:
        raise NoDockerConnectInfoError()

    logger.debug("Connecting to Docker daemon: %s", host)
    try:
        client = docker.DockerClient(
            base_url=host,
            version=config.api_version,
            tls=_tls_config(config, environ),
        )
        client.ping()
    except DockerException as e:
        raise DaemonConnectionError(
            f"Docker daemon at {host} is not available: {e}"
        ) from e

    return client


def resolve_podman_host(
    connection: str | None = None,
    environ: Mapping[str, str] | None = None,
    rootful_socket: str = ROOTFUL_PODMAN_SOCKET,
) -> str | None:
    """Resolve the Podman API service address.

    Order: explicit connection, CONTAINER_HOST, the rootless user socket,
    then the rootful system socket.
    """
    if environ is None:
        environ = os.environ

    if connection:
        return _with_scheme(connection)

    env_host = environ.get("CONTAINER_HOST", "")
    if env_host:
        return _with_scheme(env_host)

    candidates: list[str] = []
    runtime_dir = environ.get("XDG_RUNTIME_DIR", "")
    if runtime_dir:
        candidates.append(str(Path(runtime_dir) / "podman" / "podman.sock"))
    candidates.append(rootful_socket)

    for candidate in candidates:
        if Path(candidate).exists():
            return f"unix://{candidate}"

    return None


def new_podman_client(
    connection: str | None = None,
    environ: Mapping[str, str] | None = None,
    rootful_socket: str = ROOTFUL_PODMAN_SOCKET,
) -> docker.DockerClient:
    """Create a pinged client for the Podman API service.

    Raises:
        PodmanConnectionError: If the service is not running.
    """
    host = resolve_podman_host(connection, environ, rootful_socket)
    if host is None:
        raise PodmanConnectionError("no podman API service socket found")

    logger.debug("Connecting to Podman service: %s", host)
    try:
        client = docker.DockerClient(base_url=host, version="auto")
        client.ping()
    except DockerException as e:
        raise PodmanConnectionError(
            f"podman API service at {host} is not available: {e}"
        ) from e

    return client


__all__ = [
    "CONTAINER_CONNECT_MESSAGE",
    "DEFAULT_DOCKER_SOCKET",
    "DaemonConnectionError",
    "NATIVE_CONNECT_MESSAGE",
    "NoDockerConnectInfoError",
    "PodmanConnectionError",
    "ROOTFUL_PODMAN_SOCKET",
    "docker_connect_message",
    "new_docker_client",
    "new_podman_client",
    "resolve_docker_host",
    "resolve_podman_host",
]
