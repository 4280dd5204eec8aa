"""Static catalog of build engines, load runtimes and architectures.

These tables are read-only after import. The CLI uses them for defaults and
validation; the orchestrator uses them for engine dispatch.
"""

from __future__ import annotations

import platform
from dataclasses import dataclass

DEFAULT_IMAGE_NAME = "imagewright-new-container-image:latest"
DEFAULT_IMAGE_ARCHIVE_FILE = "imagewright-new-container-image.tar"
DEFAULT_DOCKERFILE_PATH = "Dockerfile"
DEFAULT_CONTEXT_DIR = "."

# Load runtimes
NONE_RUNTIME_LOAD = "none"
DOCKER_RUNTIME_LOAD = "docker"
PODMAN_RUNTIME_LOAD = "podman"

# Build engines
DOCKER_BUILD_ENGINE = "docker"
BUILDKIT_BUILD_ENGINE = "buildkit"
DEPOT_BUILD_ENGINE = "depot"
PODMAN_BUILD_ENGINE = "podman"
SIMPLE_BUILD_ENGINE = "simple"

# Architectures
AMD64_ARCH = "amd64"
ARM64_ARCH = "arm64"

DEFAULT_RUNTIME_LOAD = NONE_RUNTIME_LOAD
DEFAULT_ENGINE_NAME = DOCKER_BUILD_ENGINE

# Base image used by the simple engine for --base-with-certs
BASE_WITH_CERTS_IMAGE = "gcr.io/distroless/static-debian12:latest"


@dataclass(frozen=True)
class EngineProps:
    """Capability metadata for a build engine.

    Attributes:
        info: Human-readable description.
        token_required: Engine needs an API token.
        namespace_required: Engine needs a namespace (project, org...).
        endpoint_required: Engine needs an endpoint address.
        native_token_env_var: Engine's own env var for the token.
        native_namespace_env_var: Engine's own env var for the namespace.
        native_namespace_name: Engine's own name for the namespace concept.
        default_endpoint: Endpoint used when none is given.
    """

    info: str
    token_required: bool = False
    namespace_required: bool = False
    endpoint_required: bool = False
    native_token_env_var: str = ""
    native_namespace_env_var: str = ""
    native_namespace_name: str = ""
    default_endpoint: str = ""


BUILD_ENGINES: dict[str, EngineProps] = {
    DOCKER_BUILD_ENGINE: EngineProps(info="Native Docker container build engine"),
    BUILDKIT_BUILD_ENGINE: EngineProps(
        info="BuildKit container build engine",
        endpoint_required=True,
    ),
    DEPOT_BUILD_ENGINE: EngineProps(
        info="Depot.dev cloud-based container build engine",
        token_required=True,
        namespace_required=True,
        native_token_env_var="DEPOT_TOKEN",
        native_namespace_env_var="DEPOT_PROJECT_ID",
        native_namespace_name="project",
    ),
    PODMAN_BUILD_ENGINE: EngineProps(
        info="Native Podman/Buildah container build engine"
    ),
    SIMPLE_BUILD_ENGINE: EngineProps(
        info=(
            "Built-in container build engine for simple images "
            "that do not use 'RUN' instructions"
        )
    ),
}

RUNTIMES = frozenset({NONE_RUNTIME_LOAD, DOCKER_RUNTIME_LOAD, PODMAN_RUNTIME_LOAD})

ARCHITECTURES = frozenset({AMD64_ARCH, ARM64_ARCH})

# Build engines that build straight into a load runtime's image store
ENGINE_RUNTIMES: dict[str, str] = {
    DOCKER_BUILD_ENGINE: DOCKER_RUNTIME_LOAD,
    PODMAN_BUILD_ENGINE: PODMAN_RUNTIME_LOAD,
}

_MACHINE_ARCH = {
    "x86_64": AMD64_ARCH,
    "amd64": AMD64_ARCH,
    "aarch64": ARM64_ARCH,
    "arm64": ARM64_ARCH,
}


def default_build_arch(machine: str | None = None) -> str:
    """Return the build architecture for the host (amd64 if unknown)."""
    if machine is None:
        machine = platform.machine()
    return _MACHINE_ARCH.get(machine.lower(), AMD64_ARCH)


def is_engine_value(name: str) -> bool:
    """Return True if ``name`` is a known build engine."""
    return name in BUILD_ENGINES


def is_runtime_value(name: str) -> bool:
    """Return True if ``name`` is a known load runtime."""
    return name in RUNTIMES


def is_arch_value(name: str) -> bool:
    """Return True if ``name`` is a supported architecture."""
    return name in ARCHITECTURES


def is_same_engine_runtime(engine: str, runtime: str) -> bool:
    """Return True if ``engine`` already stores its images in ``runtime``."""
    return ENGINE_RUNTIMES.get(engine) == runtime


__all__ = [
    "AMD64_ARCH",
    "ARCHITECTURES",
    "ARM64_ARCH",
    "BASE_WITH_CERTS_IMAGE",
    "BUILDKIT_BUILD_ENGINE",
    "BUILD_ENGINES",
    "DEFAULT_CONTEXT_DIR",
    "DEFAULT_DOCKERFILE_PATH",
    "DEFAULT_ENGINE_NAME",
    "DEFAULT_IMAGE_ARCHIVE_FILE",
    "DEFAULT_IMAGE_NAME",
    "DEFAULT_RUNTIME_LOAD",
    "DEPOT_BUILD_ENGINE",
    "DOCKER_BUILD_ENGINE",
    "DOCKER_RUNTIME_LOAD",
    "ENGINE_RUNTIMES",
    "EngineProps",
    "NONE_RUNTIME_LOAD",
    "PODMAN_BUILD_ENGINE",
    "PODMAN_RUNTIME_LOAD",
    "RUNTIMES",
    "SIMPLE_BUILD_ENGINE",
    "default_build_arch",
    "is_arch_value",
    "is_engine_value",
    "is_runtime_value",
    "is_same_engine_runtime",
]
