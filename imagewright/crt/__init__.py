"""Container runtime clients: daemon connections and image loading."""

from imagewright.crt.clients import (
    DaemonConnectionError,
    NoDockerConnectInfoError,
    PodmanConnectionError,
    new_docker_client,
    new_podman_client,
)
from imagewright.crt.loader import DaemonImageLoader, ImageLoader, ImageLoadError

__all__ = [
    "DaemonConnectionError",
    "DaemonImageLoader",
    "ImageLoadError",
    "ImageLoader",
    "NoDockerConnectInfoError",
    "PodmanConnectionError",
    "new_docker_client",
    "new_podman_client",
]
