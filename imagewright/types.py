"""Shared type definitions for imagewright.

This module contains enums, dataclasses and type aliases shared across
subpackages to avoid circular imports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

OutVars = dict[str, Any]
"""Structured event fields; values are stringified when rendered."""

GENERIC_FAILURE = -1
CATEGORY_MASK = 0xFF000000


class OutputFormat(str, Enum):
    """Event stream output format."""

    TEXT = "text"
    JSON = "json"
    SUBSCRIPTION = "subscription"


class CommandState(str, Enum):
    """Lifecycle states announced through the event stream."""

    STARTED = "started"
    COMPLETED = "completed"
    DONE = "done"
    EXITED = "exited"


class ExitCodeType(IntEnum):
    """Command-type tag group of an exit code (high byte)."""

    COMMON = 0x01000000
    IMAGEBUILD = 0x02000000
    REGISTRY = 0x03000000
    VERSION = 0x04000000


class ExitCodeCause(IntEnum):
    """Specific-cause group of an exit code (low bits)."""

    NONE = 0
    OTHER = 1
    IMAGE_NOT_FOUND = 2
    NO_DOCKER_CONNECT_INFO = 3
    UNSUPPORTED_ENGINE = 4
    NO_PODMAN_CONNECT_INFO = 5


@dataclass(frozen=True)
class ExitCode:
    """An exit code composed of a command-type tag and a specific cause.

    Attributes:
        category: Command-type tag group.
        cause: Specific cause within the category.
    """

    category: ExitCodeType
    cause: ExitCodeCause = ExitCodeCause.NONE

    @property
    def value(self) -> int:
        """Composed integer value (category OR cause)."""
        return int(self.category) | int(self.cause)

    def has_category(self, category: ExitCodeType) -> bool:
        """Return True if the category byte matches."""
        return self.value & CATEGORY_MASK == int(category)

    def has_cause(self, cause: ExitCodeCause) -> bool:
        """Return True if the cause bits are set."""
        return self.value & 0x00FFFFFF == int(cause)

    def __int__(self) -> int:
        return self.value

    def __str__(self) -> str:
        return str(self.value)


@dataclass
class DockerClientConfig:
    """Docker daemon connection parameters.

    Attributes:
        host: Daemon address (unix://, tcp://); falls back to DOCKER_HOST.
        tls_verify: Verify the daemon TLS certificate.
        cert_path: Directory holding ca.pem, cert.pem and key.pem.
        api_version: Pinned daemon API version ("auto" negotiates).
    """

    host: str | None = None
    tls_verify: bool = False
    cert_path: str | None = None
    api_version: str = "auto"


@dataclass
class GlobalParams:
    """Generic parameters shared by every command invocation."""

    check_version: bool = True
    debug: bool = False
    in_container: bool = False
    is_ds_image: bool = False
    report_location: str | None = None
    client_config: DockerClientConfig = field(default_factory=DockerClientConfig)
    crt_connection: str | None = None


__all__ = [
    "CATEGORY_MASK",
    "CommandState",
    "DockerClientConfig",
    "ExitCode",
    "ExitCodeCause",
    "ExitCodeType",
    "GENERIC_FAILURE",
    "GlobalParams",
    "OutVars",
    "OutputFormat",
]
