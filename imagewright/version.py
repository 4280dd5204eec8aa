"""Application version reporting and the background release check.

This module handles:
- Checking for a newer release in the background (one result per run)
- Reporting an outdated version through the event stream
- Debug diagnostics about the tool and the container runtime
"""

from __future__ import annotations

import logging
import platform
import sys
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from imagewright import __version__
from imagewright.config import Settings, get_settings

if TYPE_CHECKING:
    from imagewright.execution.context import ExecutionContext

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_OUTDATED = "outdated"
STATUS_ERROR = "error"


@dataclass
class VersionCheckInfo:
    """Result of a release check.

    Attributes:
        status: ok, outdated or error.
        current: Running version.
        latest: Latest released version (empty when unknown).
        outdated: Whether a newer release exists.
        error: Failure description for status error.
    """

    status: str
    current: str = __version__
    latest: str = ""
    outdated: bool = False
    error: str = ""


def _version_tuple(version: str) -> tuple[int, ...]:
    parts: list[int] = []
    for part in version.strip().lstrip("v").split("."):
        digits = "".join(ch for ch in part if ch.isdigit())
        if not digits:
            break
        parts.append(int(digits))
    return tuple(parts)


def is_newer(latest: str, current: str) -> bool:
    """Return True if ``latest`` is a higher release than ``current``."""
    return _version_tuple(latest) > _version_tuple(current)


def check_version(
    in_container: bool = False,
    is_ds_image: bool = False,
    settings: Settings | None = None,
    client: httpx.Client | None = None,
) -> VersionCheckInfo:
    """Query the release endpoint and compare with the running version.

    Errors are reported in the result, never raised.
    """
    if settings is None:
        settings = get_settings()

    headers = {
        "User-Agent": f"imagewright/{__version__}",
        "X-Imagewright-Container": str(in_container).lower(),
        "X-Imagewright-DS-Image": str(is_ds_image).lower(),
    }
    manage_client = client is None
    http_client = client or httpx.Client(follow_redirects=True)
    try:
        response = http_client.get(
            settings.version_check_url,
            headers=headers,
            timeout=settings.version_check_timeout,
        )
        response.raise_for_status()
        latest = str(response.json().get("tag_name", "")).lstrip("v")
    except httpx.HTTPStatusError as e:
        return VersionCheckInfo(
            status=STATUS_ERROR, error=f"HTTP {e.response.status_code}"
        )
    except httpx.HTTPError as e:
        return VersionCheckInfo(status=STATUS_ERROR, error=str(e))
    except ValueError as e:
        return VersionCheckInfo(status=STATUS_ERROR, error=f"bad response: {e}")
    finally:
        if manage_client:
            http_client.close()

    if not latest:
        return VersionCheckInfo(status=STATUS_ERROR, error="no release tag")

    outdated = is_newer(latest, __version__)
    return VersionCheckInfo(
        status=STATUS_OUTDATED if outdated else STATUS_OK,
        latest=latest,
        outdated=outdated,
    )


def check_async(
    check_enabled: bool,
    in_container: bool = False,
    is_ds_image: bool = False,
    settings: Settings | None = None,
) -> Future[VersionCheckInfo | None]:
    """Start the release check on a background thread.

    Returns:
        Future resolved once: None when the check is disabled, otherwise
        the VersionCheckInfo (status error on failure).
    """
    future: Future[VersionCheckInfo | None] = Future()
    if not check_enabled:
        future.set_result(None)
        return future

    def run() -> None:
        try:
            future.set_result(check_version(in_container, is_ds_image, settings))
        except Exception as e:
            logger.debug("version check failed: %s", e)
            future.set_result(VersionCheckInfo(status=STATUS_ERROR, error=str(e)))

    threading.Thread(target=run, name="imagewright-version-check", daemon=True).start()
    return future


def print_check_version(
    xc: ExecutionContext, prefix: str, info: VersionCheckInfo | None
) -> None:
    """Report an outdated version through the event stream."""
    if info is None:
        return
    if info.status == STATUS_ERROR:
        logger.debug("version check error: %s", info.error)
        return
    if not info.outdated:
        return

    message = "Your version of imagewright is out of date!"
    if prefix:
        message = f"{prefix} {message}"
    xc.out.info(
        "version",
        {
            "status": "OUTDATED",
            "local": info.current,
            "current": info.latest,
            "message": message,
        },
    )


def print_version(
    xc: ExecutionContext,
    cmd_name: str,
    client: Any = None,
    in_container: bool = False,
    is_ds_image: bool = False,
) -> None:
    """Emit debug diagnostics about the tool and the container runtime."""
    fields: dict[str, Any] = {
        "cmd": cmd_name,
        "app": __version__,
        "python": sys.version.split()[0],
        "platform": platform.platform(),
        "in.container": in_container,
        "is.ds.image": is_ds_image,
    }

    if client is not None:
        try:
            daemon = client.version()
        except Exception as e:
            xc.warn_on(e)
        else:
            fields["daemon.version"] = daemon.get("Version", "")
            fields["daemon.api.version"] = daemon.get("ApiVersion", "")
            fields["daemon.os"] = daemon.get("Os", "")
            fields["daemon.arch"] = daemon.get("Arch", "")

    xc.out.info("version", fields)


__all__ = [
    "STATUS_ERROR",
    "STATUS_OK",
    "STATUS_OUTDATED",
    "VersionCheckInfo",
    "check_async",
    "check_version",
    "is_newer",
    "print_check_version",
    "print_version",
]
