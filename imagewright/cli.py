"""Thin CLI wrapper for imagewright.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules; every command runs
through an execution context so each run ends with a terminal event.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Annotated

import typer
from rich.console import Console

from imagewright import __version__
from imagewright.config import get_settings, print_settings_json
from imagewright.environment import detect_ds_image, detect_in_container
from imagewright.execution import (
    ExecutionContext,
    UnsupportedOutputFormatError,
    new_execution_context,
)
from imagewright.imagebuild.catalog import (
    BUILD_ENGINES,
    DEFAULT_CONTEXT_DIR,
    DEFAULT_DOCKERFILE_PATH,
    DEFAULT_ENGINE_NAME,
    DEFAULT_IMAGE_ARCHIVE_FILE,
    DEFAULT_IMAGE_NAME,
)
from imagewright.imagebuild.params import InvalidParamsError, resolve_command_params
from imagewright.imagebuild.service import CMD_NAME as IMAGEBUILD_CMD_NAME
from imagewright.imagebuild.service import run_image_build
from imagewright.logging_utils import configure_logging
from imagewright.registry.service import CMD_NAME as REGISTRY_PUSH_CMD_NAME
from imagewright.registry.service import PushParams, run_registry_push
from imagewright.types import GENERIC_FAILURE, DockerClientConfig, GlobalParams

app = typer.Typer(
    name="imagewright",
    help="imagewright - build container images and push them to registries",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

ENV_PREFIX = "IMAGEWRIGHT_IMAGEBUILD_"


@dataclass
class CliState:
    """Global options shared by every command of one invocation."""

    output_format: str = "text"
    quiet: bool = False
    no_color: bool = False
    gparams: GlobalParams = field(default_factory=GlobalParams)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"imagewright version {__version__}")
        raise typer.Exit()


def _state(ctx: typer.Context) -> CliState:
    if not isinstance(ctx.obj, CliState):
        ctx.obj = CliState()
    return ctx.obj


def _new_context(state: CliState, cmd_name: str) -> ExecutionContext:
    return new_execution_context(
        cmd_name,
        quiet=state.quiet,
        output_format=state.output_format,
        console=Console(no_color=state.no_color, highlight=False),
    )


def _run(
    xc: ExecutionContext, action: Callable[..., object], *args: object
) -> None:
    """Run a command flow, routing unexpected errors through the context."""
    try:
        try:
            action(xc, *args)
        except (typer.Exit, UnsupportedOutputFormatError):
            raise
        except Exception as e:
            xc.fail_on(e)
        xc.finish()
    except UnsupportedOutputFormatError as e:
        err_console.print(f"[red]{e}[/red]")
        xc.run_cleanup()
        xc.out.close()
        raise typer.Exit(code=GENERIC_FAILURE) from None


def _image_build(
    xc: ExecutionContext, gparams: GlobalParams, options: dict[str, object]
) -> None:
    try:
        cparams = resolve_command_params(**options)
    except InvalidParamsError as e:
        xc.fail(str(e))
    run_image_build(xc, gparams, cparams)


def _registry_push(
    xc: ExecutionContext, gparams: GlobalParams, cparams: PushParams
) -> None:
    if bool(cparams.creds_account) != bool(cparams.creds_secret):
        xc.fail("registry account and secret must be provided together")
    run_registry_push(xc, gparams, cparams)


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    output_format: Annotated[
        str | None,
        typer.Option(
            "--output-format",
            "-o",
            help="Event stream format: text, json or subscription",
        ),
    ] = None,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Suppress console output"),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Enable debug logging and diagnostics"),
    ] = False,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Logging level (DEBUG..CRITICAL)"),
    ] = None,
    no_color: Annotated[
        bool,
        typer.Option("--no-color", help="Disable colored output"),
    ] = False,
    check_version: Annotated[
        bool | None,
        typer.Option(
            "--check-version/--no-check-version",
            help="Check for a newer release in the background",
        ),
    ] = None,
    report: Annotated[
        str | None,
        typer.Option("--report", help="Command report location ('off' disables)"),
    ] = None,
    host: Annotated[
        str | None,
        typer.Option("--host", help="Docker daemon address"),
    ] = None,
    tls_verify: Annotated[
        bool,
        typer.Option("--tls-verify", help="Verify the daemon TLS certificate"),
    ] = False,
    tls_cert_path: Annotated[
        str | None,
        typer.Option("--tls-cert-path", help="Directory with the daemon TLS certs"),
    ] = None,
    crt_connection: Annotated[
        str | None,
        typer.Option("--crt-connection", help="Podman service connection"),
    ] = None,
) -> None:
    """imagewright - build container images and push them to registries."""
    settings = get_settings()

    level = "DEBUG" if debug else (log_level or settings.log_level)
    configure_logging(level)

    in_container = settings.in_container
    if in_container is None:
        in_container = detect_in_container()
    is_ds_image = settings.is_ds_image
    if is_ds_image is None:
        is_ds_image = detect_ds_image()

    ctx.obj = CliState(
        output_format=output_format or settings.output_format,
        quiet=quiet,
        no_color=no_color,
        gparams=GlobalParams(
            check_version=(
                settings.check_version if check_version is None else check_version
            ),
            debug=debug,
            in_container=in_container,
            is_ds_image=is_ds_image,
            report_location=settings.report_location if report is None else report,
            client_config=DockerClientConfig(
                host=host, tls_verify=tls_verify, cert_path=tls_cert_path
            ),
            crt_connection=crt_connection,
        ),
    )


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings), soft_wrap=True)
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Output:[/bold]")
        console.print(f"  Output format:       {settings.output_format}")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Report location:     {settings.report_location}")
        console.print()
        console.print("[bold]Version check:[/bold]")
        console.print(f"  Enabled:             {settings.check_version}")
        console.print(f"  URL:                 {settings.version_check_url}")
        console.print(f"  Timeout:             {settings.version_check_timeout}")
        console.print()
        console.print("[bold]Registry:[/bold]")
        console.print(f"  Timeout:             {settings.registry_timeout}")


@app.command()
def engines(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List the available build engines."""
    if json_output:
        data = {
            name: {
                "info": props.info,
                "token_required": props.token_required,
                "namespace_required": props.namespace_required,
                "endpoint_required": props.endpoint_required,
            }
            for name, props in BUILD_ENGINES.items()
        }
        console.print(json.dumps(data, indent=2), soft_wrap=True)
        return

    console.print("[bold]Build engines:[/bold]")
    for name, props in BUILD_ENGINES.items():
        needs = [
            label
            for label, required in (
                ("token", props.token_required),
                ("namespace", props.namespace_required),
                ("endpoint", props.endpoint_required),
            )
            if required
        ]
        suffix = f" [dim](requires {', '.join(needs)})[/dim]" if needs else ""
        console.print(f"  [cyan]{name:<10}[/cyan] {props.info}{suffix}")


@app.command()
def imagebuild(
    ctx: typer.Context,
    engine: Annotated[
        str,
        typer.Option(
            "--engine",
            help="Container image build engine to use",
            envvar=f"{ENV_PREFIX}ENGINE",
        ),
    ] = DEFAULT_ENGINE_NAME,
    engine_endpoint: Annotated[
        str,
        typer.Option(
            "--engine-endpoint",
            help="Build engine endpoint address",
            envvar=f"{ENV_PREFIX}ENGINE_ENDPOINT",
        ),
    ] = "",
    engine_token: Annotated[
        str,
        typer.Option(
            "--engine-token",
            help="Build engine specific API token",
            envvar=f"{ENV_PREFIX}ENGINE_TOKEN",
        ),
    ] = "",
    engine_namespace: Annotated[
        str,
        typer.Option(
            "--engine-namespace",
            help="Build engine specific namespace",
            envvar=f"{ENV_PREFIX}ENGINE_NS",
        ),
    ] = "",
    image_name: Annotated[
        str,
        typer.Option(
            "--image-name",
            "-t",
            help="Container image name to use (including tag)",
            envvar=f"{ENV_PREFIX}IMAGE_NAME",
        ),
    ] = DEFAULT_IMAGE_NAME,
    image_archive_file: Annotated[
        str,
        typer.Option(
            "--image-archive-file",
            help="Local file path for the image tar archive",
            envvar=f"{ENV_PREFIX}IMAGE_ARCHIVE",
        ),
    ] = DEFAULT_IMAGE_ARCHIVE_FILE,
    dockerfile: Annotated[
        str,
        typer.Option(
            "--dockerfile",
            "-f",
            help="Dockerfile path",
            envvar=f"{ENV_PREFIX}DOCKERFILE",
        ),
    ] = DEFAULT_DOCKERFILE_PATH,
    context_dir: Annotated[
        str,
        typer.Option(
            "--context-dir",
            "-c",
            help="Local build context directory",
            envvar=f"{ENV_PREFIX}CONTEXT_DIR",
        ),
    ] = DEFAULT_CONTEXT_DIR,
    build_arg: Annotated[
        list[str] | None,
        typer.Option(
            "--build-arg",
            help="Build time variable NAME=VALUE (can be repeated)",
            envvar=f"{ENV_PREFIX}BUILD_ARGS",
        ),
    ] = None,
    label: Annotated[
        list[str] | None,
        typer.Option(
            "--label",
            help="Image label NAME=VALUE (can be repeated)",
            envvar=f"{ENV_PREFIX}LABELS",
        ),
    ] = None,
    architecture: Annotated[
        str | None,
        typer.Option(
            "--architecture",
            help="Build architecture (amd64, arm64)",
            envvar=f"{ENV_PREFIX}ARCH",
        ),
    ] = None,
    base: Annotated[
        str,
        typer.Option(
            "--base",
            help="Base image to use (simple engine)",
            envvar=f"{ENV_PREFIX}BASE",
        ),
    ] = "",
    base_tar: Annotated[
        str,
        typer.Option(
            "--base-tar",
            help="Base image from a local tar file (simple engine)",
            envvar=f"{ENV_PREFIX}BASE_TAR",
        ),
    ] = "",
    base_with_certs: Annotated[
        bool,
        typer.Option(
            "--base-with-certs",
            help="Distroless static base image with certs (simple engine)",
            envvar=f"{ENV_PREFIX}BASE_WITH_CERTS",
        ),
    ] = False,
    exe_path: Annotated[
        str,
        typer.Option(
            "--exe-path",
            help="Local executable used as the image entrypoint (simple engine)",
            envvar=f"{ENV_PREFIX}EXE_PATH",
        ),
    ] = "",
    runtime_load: Annotated[
        list[str] | None,
        typer.Option(
            "--runtime-load",
            help="Container runtime to load the image into (can be repeated)",
            envvar=f"{ENV_PREFIX}RUNTIME_LOAD",
        ),
    ] = None,
    registry_push: Annotated[
        bool,
        typer.Option(
            "--registry-push",
            help="Push the built image to a container registry",
            envvar=f"{ENV_PREFIX}REGISTRY_PUSH",
        ),
    ] = False,
    use_docker_creds: Annotated[
        bool,
        typer.Option(
            "--use-docker-creds",
            help="Use the stored docker credentials for the push",
        ),
    ] = False,
    account: Annotated[
        str,
        typer.Option("--account", help="Registry account for the push"),
    ] = "",
    secret: Annotated[
        str,
        typer.Option("--secret", help="Registry secret for the push"),
    ] = "",
) -> None:
    """Build a container image with the selected engine."""
    state = _state(ctx)
    xc = _new_context(state, IMAGEBUILD_CMD_NAME)

    options: dict[str, object] = dict(
        engine=engine,
        engine_endpoint=engine_endpoint,
        engine_token=engine_token,
        engine_namespace=engine_namespace,
        image_name=image_name,
        image_archive_file=image_archive_file,
        dockerfile=dockerfile,
        context_dir=context_dir,
        build_args=build_arg,
        labels=label,
        architecture=architecture,
        base_image=base,
        base_image_tar=base_tar,
        base_image_with_certs=base_with_certs,
        exe_path=exe_path,
        load_runtimes=runtime_load,
        registry_push=registry_push,
        use_docker_creds=use_docker_creds,
        creds_account=account,
        creds_secret=secret,
    )
    _run(xc, _image_build, state.gparams, options)


registry_app = typer.Typer(help="Container registry commands")
app.add_typer(registry_app, name="registry")


@registry_app.command("push")
def registry_push_cmd(
    ctx: typer.Context,
    target: Annotated[
        str,
        typer.Argument(help="Local docker image to push"),
    ],
    as_tag: Annotated[
        str,
        typer.Option("--as-tag", help="Push the image under this name"),
    ] = "",
    use_docker_creds: Annotated[
        bool,
        typer.Option("--use-docker-creds", help="Use the stored docker credentials"),
    ] = False,
    account: Annotated[
        str,
        typer.Option("--account", help="Registry account"),
    ] = "",
    secret: Annotated[
        str,
        typer.Option("--secret", help="Registry secret"),
    ] = "",
) -> None:
    """Push a local docker image to its registry."""
    state = _state(ctx)
    xc = _new_context(state, REGISTRY_PUSH_CMD_NAME)

    cparams = PushParams(
        target_ref=target,
        as_tag=as_tag,
        use_docker_creds=use_docker_creds,
        creds_account=account,
        creds_secret=secret,
    )
    _run(xc, _registry_push, state.gparams, cparams)


if __name__ == "__main__":
    app()
