"""Registry authentication.

This module handles:
- Choosing the push credentials (stored docker credentials, explicit
  account/secret, or anonymous)
- Reading stored credentials from the Docker config file, including
  credential helpers
- The registry auth challenge flow (Basic and Bearer token) as an
  ``httpx.Auth`` implementation
"""

from __future__ import annotations

import base64
import json
import logging
import os
import re
import subprocess
from collections.abc import Generator, Mapping
from dataclasses import dataclass, replace
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)

DOCKER_HUB_CONFIG_KEY = "https://index.docker.io/v1/"
_HUB_HOSTS = {"index.docker.io", "docker.io", "registry-1.docker.io"}

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')

Credentials = tuple[str, str]


class RegistryAuthError(Exception):
    """Raised when registry credentials cannot be configured or used."""

    def __init__(self, message: str, code: str = "registry_auth_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class RemoteOptions:
    """Options for talking to a remote registry.

    Attributes:
        credentials: Explicit (account, secret) pair.
        use_keychain: Resolve credentials from the Docker config per registry.
        timeout: Request timeout in seconds.
        docker_config: Docker config file (defaults to the standard location).
    """

    credentials: Credentials | None = None
    use_keychain: bool = False
    timeout: float = 300.0
    docker_config: Path | None = None

    def credentials_for(self, registry: str) -> Credentials | None:
        """Credentials to use for ``registry`` (None = anonymous)."""
        if self.credentials is not None:
            return self.credentials
        if self.use_keychain:
            return lookup_docker_credentials(registry, self.docker_config)
        return None


def configure_auth(
    use_docker_creds: bool,
    account: str,
    secret: str,
    options: RemoteOptions | None = None,
) -> RemoteOptions:
    """Configure registry authentication on top of ``options``.

    Raises:
        RegistryAuthError: If only one of account and secret is given.
    """
    if options is None:
        options = RemoteOptions()

    if use_docker_creds:
        return replace(options, use_keychain=True, credentials=None)

    if account and secret:
        return replace(options, credentials=(account, secret), use_keychain=False)

    if account or secret:
        raise RegistryAuthError(
            "registry account and secret must be provided together",
            code="incomplete_credentials",
        )

    return options


def docker_config_path(environ: Mapping[str, str] | None = None) -> Path:
    """Return the Docker client config file path."""
    if environ is None:
        environ = os.environ
    config_dir = environ.get("DOCKER_CONFIG")
    if config_dir:
        return Path(config_dir) / "config.json"
    return Path.home() / ".docker" / "config.json"


def _normalize_host(key: str) -> str:
    host = key.split("://", 1)[-1].split("/", 1)[0]
    if host in _HUB_HOSTS:
        return "index.docker.io"
    return host


def _credential_helper(helper: str, registry: str) -> Credentials | None:
    server = DOCKER_HUB_CONFIG_KEY if registry in _HUB_HOSTS else registry
    try:
        result = subprocess.run(
            [f"docker-credential-{helper}", "get"],
            input=server,
            capture_output=True,
            text=True,
            timeout=30,
            check=True,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning("Credential helper %s failed for %s: %s", helper, registry, e)
        return None

    try:
        data = json.loads(result.stdout)
        return data["Username"], data["Secret"]
    except (ValueError, KeyError) as e:
        raise RegistryAuthError(
            f"credential helper {helper} returned malformed output"
        ) from e


def lookup_docker_credentials(
    registry: str, config_path: Path | None = None
) -> Credentials | None:
    """Find stored credentials for ``registry`` in the Docker config.

    Returns:
        (username, secret) or None when nothing is stored.

    Raises:
        RegistryAuthError: If the config file or an entry is malformed.
    """
    path = config_path or docker_config_path()
    if not path.is_file():
        logger.debug("No docker config at %s", path)
        return None

    try:
        config = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        raise RegistryAuthError(f"cannot read docker config {path}: {e}") from e

    host = _normalize_host(registry)

    helpers = config.get("credHelpers") or {}
    for key, helper in helpers.items():
        if _normalize_host(key) == host:
            return _credential_helper(helper, host)

    for key, entry in (config.get("auths") or {}).items():
        if _normalize_host(key) != host:
            continue
        if entry.get("username") and entry.get("password"):
            return entry["username"], entry["password"]
        encoded = entry.get("auth")
        if encoded:
            try:
                username, _, secret = (
                    base64.b64decode(encoded).decode("utf-8").partition(":")
                )
            except ValueError as e:
                raise RegistryAuthError(f"malformed auth entry for {key}") from e
            return username, secret

    store = config.get("credsStore")
    if store:
        return _credential_helper(store, host)

    return None


def parse_challenge(header: str) -> tuple[str, dict[str, str]]:
    """Parse a WWW-Authenticate header into (scheme, params)."""
    scheme, _, rest = header.strip().partition(" ")
    return scheme.lower(), dict(_CHALLENGE_PARAM.findall(rest))


def _basic_header(credentials: Credentials) -> str:
    token = base64.b64encode(f"{credentials[0]}:{credentials[1]}".encode()).decode()
    return f"Basic {token}"


class RegistryAuth(httpx.Auth):
    """Registry auth challenge flow.

    Requests go out with the cached token (if any). A 401 answer is
    resolved once per request: Basic challenges resend with credentials,
    Bearer challenges fetch a token from the realm for ``scope`` and resend.
    """

    requires_response_body = True

    def __init__(self, credentials: Credentials | None, scope: str) -> None:
        self.credentials = credentials
        self.scope = scope
        self._authorization: str | None = None

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        if self._authorization:
            request.headers["Authorization"] = self._authorization

        response = yield request
        if response.status_code != 401:
            return

        scheme, params = parse_challenge(response.headers.get("WWW-Authenticate", ""))
        if scheme == "basic":
            if self.credentials is None:
                return
            self._authorization = _basic_header(self.credentials)
        elif scheme == "bearer" and params.get("realm"):
            query = {"scope": self.scope}
            if params.get("service"):
                query["service"] = params["service"]
            token_request = httpx.Request("GET", params["realm"], params=query)
            if self.credentials is not None:
                token_request.headers["Authorization"] = _basic_header(
                    self.credentials
                )
            token_response = yield token_request
            if token_response.status_code != 200:
                raise RegistryAuthError(
                    f"token request failed with status {token_response.status_code}"
                )
            try:
                data = token_response.json()
            except ValueError as e:
                raise RegistryAuthError("malformed token response") from e
            token = data.get("token") or data.get("access_token")
            if not token:
                raise RegistryAuthError("token response has no token")
            self._authorization = f"Bearer {token}"
        else:
            return

        request.headers["Authorization"] = self._authorization
        yield request


__all__ = [
    "Credentials",
    "RegistryAuth",
    "RegistryAuthError",
    "RemoteOptions",
    "configure_auth",
    "docker_config_path",
    "lookup_docker_credentials",
    "parse_challenge",
]
