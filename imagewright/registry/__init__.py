"""Container registry support.

This package provides:
- Image reference parsing
- Registry authentication (stored docker credentials, account/secret)
- Pushing docker image archives and saving daemon images to archives
"""

from imagewright.registry.auth import (
    RegistryAuthError,
    RemoteOptions,
    configure_auth,
)
from imagewright.registry.client import (
    RegistryError,
    push_image_from_archive,
    save_image_to_archive,
)
from imagewright.registry.reference import (
    InvalidReferenceError,
    NameOptions,
    Reference,
    parse_reference,
)

__all__ = [
    "InvalidReferenceError",
    "NameOptions",
    "Reference",
    "RegistryAuthError",
    "RegistryError",
    "RemoteOptions",
    "configure_auth",
    "parse_reference",
    "push_image_from_archive",
    "save_image_to_archive",
]
