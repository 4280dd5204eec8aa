"""Image reference parsing.

Splits ``[registry/]repository[:tag][@digest]`` into its parts, applying
Docker Hub defaults (``index.docker.io`` and the ``library/`` namespace).
"""

from __future__ import annotations

import re
from dataclasses import dataclass

DEFAULT_REGISTRY = "index.docker.io"
DEFAULT_TAG = "latest"

_HUB_ALIASES = {"docker.io", "index.docker.io", "registry-1.docker.io"}

_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
REPOSITORY_PATTERN = re.compile(rf"^{_COMPONENT}(?:/{_COMPONENT})*$")
TAG_PATTERN = re.compile(r"^\w[\w.-]{0,127}$")
DIGEST_PATTERN = re.compile(r"^[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-fA-F0-9]{32,}$")


class InvalidReferenceError(ValueError):
    """Raised when an image reference cannot be parsed."""

    def __init__(self, message: str, code: str = "invalid_reference") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class NameOptions:
    """Reference parsing options.

    Attributes:
        weak_validation: Allow references without a tag (defaults to latest).
        insecure: Allow plain HTTP to the registry.
    """

    weak_validation: bool = True
    insecure: bool = False


@dataclass(frozen=True)
class Reference:
    """A parsed image reference."""

    registry: str
    repository: str
    tag: str = DEFAULT_TAG
    digest: str = ""

    @property
    def identifier(self) -> str:
        """Digest when present, else the tag."""
        return self.digest or self.tag

    @property
    def name(self) -> str:
        return f"{self.registry}/{self.repository}"

    def __str__(self) -> str:
        if self.digest:
            return f"{self.name}@{self.digest}"
        return f"{self.name}:{self.tag}"


def _is_registry_component(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


def parse_reference(ref: str, options: NameOptions | None = None) -> Reference:
    """Parse an image reference.

    Raises:
        InvalidReferenceError: If the reference is malformed, or has no tag
            or digest under strict validation.
    """
    if options is None:
        options = NameOptions()

    original = ref
    ref = ref.strip()
    if not ref:
        raise InvalidReferenceError("empty image reference")

    digest = ""
    if "@" in ref:
        ref, digest = ref.split("@", 1)
        if not DIGEST_PATTERN.match(digest):
            raise InvalidReferenceError(f"invalid digest in {original!r}")

    tag = ""
    last_slash = ref.rfind("/")
    colon = ref.rfind(":")
    if colon > last_slash:
        ref, tag = ref[:colon], ref[colon + 1 :]
        if not TAG_PATTERN.match(tag):
            raise InvalidReferenceError(f"invalid tag in {original!r}")

    if not tag and not digest:
        if not options.weak_validation:
            raise InvalidReferenceError(f"reference {original!r} has no tag or digest")
        tag = DEFAULT_TAG

    registry = DEFAULT_REGISTRY
    repository = ref
    first, sep, rest = ref.partition("/")
    if sep and _is_registry_component(first):
        registry, repository = first, rest
    if registry in _HUB_ALIASES:
        registry = DEFAULT_REGISTRY
        if "/" not in repository:
            repository = f"library/{repository}"

    if not REPOSITORY_PATTERN.match(repository):
        raise InvalidReferenceError(f"invalid repository in {original!r}")

    return Reference(
        registry=registry, repository=repository, tag=tag or DEFAULT_TAG, digest=digest
    )


def is_local_registry(registry: str) -> bool:
    """Return True for loopback registries that are reached over HTTP."""
    host = registry.rsplit(":", 1)[0] if registry.count(":") == 1 else registry
    return host in ("localhost", "127.0.0.1", "::1") or host.startswith("127.")


__all__ = [
    "DEFAULT_REGISTRY",
    "DEFAULT_TAG",
    "InvalidReferenceError",
    "NameOptions",
    "Reference",
    "is_local_registry",
    "parse_reference",
]
