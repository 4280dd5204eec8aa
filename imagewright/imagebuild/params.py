"""Image build command parameters.

This module defines the validated, immutable parameter set for the
``imagebuild`` command and the helpers that produce it from raw CLI input.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from imagewright.imagebuild.catalog import (
    BUILD_ENGINES,
    DEFAULT_CONTEXT_DIR,
    DEFAULT_DOCKERFILE_PATH,
    DEFAULT_ENGINE_NAME,
    DEFAULT_IMAGE_ARCHIVE_FILE,
    DEFAULT_IMAGE_NAME,
    NONE_RUNTIME_LOAD,
    default_build_arch,
    is_arch_value,
    is_runtime_value,
)


class InvalidParamsError(ValueError):
    """Raised when command parameters fail validation."""

    def __init__(self, message: str, code: str = "invalid_params") -> None:
        super().__init__(message)
        self.code = code


class CommandParams(BaseModel):
    """Parameters for one image build.

    Attributes:
        engine: Build engine identifier.
        engine_endpoint: Engine endpoint address (remote engines).
        engine_token: Engine API token (remote engines).
        engine_namespace: Engine namespace (e.g. depot project).
        image_name: Image name including tag.
        image_archive_file: Local path for the image tar archive.
        dockerfile: Dockerfile path.
        context_dir: Build context directory.
        build_args: Ordered build-time variables.
        labels: Image labels.
        architecture: Target architecture.
        base_image: Base image name (simple engine).
        base_image_tar: Base image tar archive (simple engine).
        base_image_with_certs: Use the distroless certs base (simple engine).
        exe_path: Entrypoint executable (simple engine).
        load_runtimes: Local runtimes to load the result into.
        registry_push: Push the result to a registry.
        use_docker_creds: Use stored docker credentials for the push.
        creds_account: Registry account for the push.
        creds_secret: Registry secret for the push.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    engine: str = DEFAULT_ENGINE_NAME
    engine_endpoint: str = ""
    engine_token: str = Field(default="", repr=False)
    engine_namespace: str = ""
    image_name: str = DEFAULT_IMAGE_NAME
    image_archive_file: str = DEFAULT_IMAGE_ARCHIVE_FILE
    dockerfile: str = DEFAULT_DOCKERFILE_PATH
    context_dir: str = DEFAULT_CONTEXT_DIR
    build_args: tuple[tuple[str, str], ...] = ()
    labels: dict[str, str] = Field(default_factory=dict)
    architecture: str = Field(default_factory=default_build_arch)
    base_image: str = ""
    base_image_tar: str = ""
    base_image_with_certs: bool = False
    exe_path: str = ""
    load_runtimes: tuple[str, ...] = ()
    registry_push: bool = False
    use_docker_creds: bool = False
    creds_account: str = ""
    creds_secret: str = Field(default="", repr=False)

    def to_safe_dict(self) -> dict[str, object]:
        """Dump parameters with secrets masked."""
        data = self.model_dump()
        for key in ("engine_token", "creds_secret"):
            if data.get(key):
                data[key] = "******"
        return data

    def to_safe_json(self) -> str:
        """JSON rendering of ``to_safe_dict``."""
        return json.dumps(self.to_safe_dict())


def parse_name_values(values: list[str] | None) -> list[tuple[str, str]]:
    """Parse ``NAME=VALUE`` strings.

    Empty entries are skipped. An entry without ``=`` takes its value from the
    environment (like ``docker build --build-arg NAME``).

    Raises:
        InvalidParamsError: If an entry has an empty name.
    """
    result: list[tuple[str, str]] = []
    for raw in values or []:
        raw = raw.strip()
        if not raw:
            continue
        name, sep, value = raw.partition("=")
        name = name.strip()
        if not name:
            raise InvalidParamsError(f"malformed name=value parameter: {raw!r}")
        if not sep:
            value = os.environ.get(name, "")
        result.append((name, value))
    return result


def normalize_runtimes(runtimes: list[str] | None) -> tuple[str, ...]:
    """Validate load runtimes, drop ``none`` and duplicates (order kept).

    Raises:
        InvalidParamsError: On an unknown runtime.
    """
    seen: list[str] = []
    for rt in runtimes or []:
        rt = rt.strip()
        if not rt:
            continue
        if not is_runtime_value(rt):
            raise InvalidParamsError(
                f"unsupported runtime: {rt!r}", code="unsupported_runtime"
            )
        if rt == NONE_RUNTIME_LOAD or rt in seen:
            continue
        seen.append(rt)
    return tuple(seen)


def resolve_command_params(
    engine: str = DEFAULT_ENGINE_NAME,
    engine_endpoint: str = "",
    engine_token: str = "",
    engine_namespace: str = "",
    image_name: str = DEFAULT_IMAGE_NAME,
    image_archive_file: str = DEFAULT_IMAGE_ARCHIVE_FILE,
    dockerfile: str = DEFAULT_DOCKERFILE_PATH,
    context_dir: str = DEFAULT_CONTEXT_DIR,
    build_args: list[str] | None = None,
    labels: list[str] | None = None,
    architecture: str | None = None,
    base_image: str = "",
    base_image_tar: str = "",
    base_image_with_certs: bool = False,
    exe_path: str = "",
    load_runtimes: list[str] | None = None,
    registry_push: bool = False,
    use_docker_creds: bool = False,
    creds_account: str = "",
    creds_secret: str = "",
    environ: Mapping[str, str] | None = None,
) -> CommandParams:
    """Validate raw CLI input and produce ``CommandParams``.

    Engine credentials missing from the input are taken from the engine's own
    environment variables; a missing endpoint falls back to the engine
    default. Unknown engines pass through untouched.

    Raises:
        InvalidParamsError: If validation fails.
    """
    if environ is None:
        environ = os.environ

    arch = architecture or default_build_arch()
    if not is_arch_value(arch):
        raise InvalidParamsError(
            f"unsupported architecture: {arch!r}", code="unsupported_architecture"
        )

    props = BUILD_ENGINES.get(engine)
    if props is not None:
        if not engine_token and props.native_token_env_var:
            engine_token = environ.get(props.native_token_env_var, "")
        if not engine_namespace and props.native_namespace_env_var:
            engine_namespace = environ.get(props.native_namespace_env_var, "")
        if not engine_endpoint and props.default_endpoint:
            engine_endpoint = props.default_endpoint

        if props.token_required and not engine_token:
            raise InvalidParamsError(
                f"engine {engine!r} requires a token", code="missing_engine_token"
            )
        if props.namespace_required and not engine_namespace:
            name = props.native_namespace_name or "namespace"
            raise InvalidParamsError(
                f"engine {engine!r} requires a {name}",
                code="missing_engine_namespace",
            )
        if props.endpoint_required and not engine_endpoint:
            raise InvalidParamsError(
                f"engine {engine!r} requires an endpoint",
                code="missing_engine_endpoint",
            )

    if bool(creds_account) != bool(creds_secret):
        raise InvalidParamsError(
            "registry account and secret must be provided together",
            code="incomplete_credentials",
        )

    return CommandParams(
        engine=engine,
        engine_endpoint=engine_endpoint,
        engine_token=engine_token,
        engine_namespace=engine_namespace,
        image_name=image_name,
        image_archive_file=image_archive_file,
        dockerfile=dockerfile,
        context_dir=context_dir,
        build_args=tuple(parse_name_values(build_args)),
        labels=dict(parse_name_values(labels)),
        architecture=arch,
        base_image=base_image,
        base_image_tar=base_image_tar,
        base_image_with_certs=base_image_with_certs,
        exe_path=exe_path,
        load_runtimes=normalize_runtimes(load_runtimes),
        registry_push=registry_push,
        use_docker_creds=use_docker_creds,
        creds_account=creds_account,
        creds_secret=creds_secret,
    )


__all__ = [
    "CommandParams",
    "InvalidParamsError",
    "normalize_runtimes",
    "parse_name_values",
    "resolve_command_params",
]
