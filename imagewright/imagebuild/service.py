"""Image build orchestration.

This module provides run_image_build(), the ``imagebuild`` command flow:
- Engine dispatch with lazily created, memoized runtime clients
- Loading the built image archive into local runtimes
- Optional registry push of the archive
- The started -> completed -> done lifecycle and the run report

Every terminal condition goes through the execution context.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

from imagewright.config import get_settings
from imagewright.crt.clients import (
    DaemonConnectionError,
    NoDockerConnectInfoError,
    PodmanConnectionError,
    docker_connect_message,
    new_docker_client,
    new_podman_client,
)
from imagewright.crt.loader import DaemonImageLoader, ImageLoader, ImageLoadError
from imagewright.imagebuild.catalog import (
    BUILDKIT_BUILD_ENGINE,
    DEPOT_BUILD_ENGINE,
    DOCKER_BUILD_ENGINE,
    DOCKER_RUNTIME_LOAD,
    PODMAN_BUILD_ENGINE,
    PODMAN_RUNTIME_LOAD,
    SIMPLE_BUILD_ENGINE,
    is_same_engine_runtime,
)
from imagewright.imagebuild.engines import (
    EngineBuildError,
    build_with_buildkit,
    build_with_daemon,
    build_with_depot,
    build_with_simple,
)
from imagewright.registry import (
    NameOptions,
    RegistryAuthError,
    RegistryError,
    RemoteOptions,
    configure_auth,
    push_image_from_archive,
)
from imagewright.report import CommandReport, new_imagebuild_report
from imagewright.types import (
    GENERIC_FAILURE,
    CommandState,
    ExitCode,
    ExitCodeCause,
    ExitCodeType,
)
from imagewright.version import check_async, print_check_version, print_version

if TYPE_CHECKING:
    from imagewright.execution.context import ExecutionContext
    from imagewright.imagebuild.params import CommandParams
    from imagewright.types import GlobalParams

logger = logging.getLogger(__name__)

CMD_NAME = "imagebuild"

PUSH_NAME_OPTIONS = NameOptions(weak_validation=True, insecure=True)


class RuntimeClients:
    """Lazily created, memoized docker and podman clients for one run.

    A client that cannot be created ends the run through the execution
    context with the matching exit code.
    """

    def __init__(self, xc: ExecutionContext, gparams: GlobalParams) -> None:
        self.xc = xc
        self.gparams = gparams
        self._docker: Any = None
        self._podman: Any = None

    @property
    def docker_opened(self) -> bool:
        return self._docker is not None

    @property
    def podman_opened(self) -> bool:
        return self._podman is not None

    def docker(self) -> Any:
        if self._docker is not None:
            return self._docker

        try:
            self._docker = new_docker_client(self.gparams.client_config)
        except NoDockerConnectInfoError:
            self.xc.out.error(
                "docker.connect.error",
                docker_connect_message(
                    self.gparams.in_container, self.gparams.is_ds_image
                ),
            )
            self.xc.exit_with_state(
                ExitCode(ExitCodeType.COMMON, ExitCodeCause.NO_DOCKER_CONNECT_INFO)
            )
        except DaemonConnectionError as e:
            self.xc.fail_on(e)
        else:
            self.xc.add_cleanup_handler(self._docker.close)
        return self._docker

    def podman(self) -> Any:
        if self._podman is not None:
            return self._podman

        try:
            self._podman = new_podman_client(self.gparams.crt_connection)
        except PodmanConnectionError as e:
            self.xc.out.info("podman.connect.service", {"message": "not running"})
            self.xc.exit_with_state(GENERIC_FAILURE, **{"podman.error": str(e)})
        else:
            self.xc.add_cleanup_handler(self._podman.close)
        return self._podman


def _fail_on_build_error(
    xc: ExecutionContext, engine: str, err: EngineBuildError
) -> None:
    if err.log_path is not None and err.log_path.is_file():
        try:
            build_log = err.log_path.read_text(errors="replace")
        except OSError as e:
            xc.warn_on(e)
        else:
            xc.out.log_dump("engine.build", build_log, {"engine": engine})
    xc.fail_on(err)


def _build(
    xc: ExecutionContext,
    gparams: GlobalParams,
    cparams: CommandParams,
    clients: RuntimeClients,
) -> None:
    engine = cparams.engine

    if engine in (DOCKER_BUILD_ENGINE, PODMAN_BUILD_ENGINE):
        client = clients.docker() if engine == DOCKER_BUILD_ENGINE else clients.podman()
        if gparams.debug:
            print_version(
                xc, CMD_NAME, client, gparams.in_container, gparams.is_ds_image
            )
        try:
            build_with_daemon(client, cparams, engine, output=sys.stdout)
        except EngineBuildError as e:
            _fail_on_build_error(xc, engine, e)
        return

    if engine in (BUILDKIT_BUILD_ENGINE, DEPOT_BUILD_ENGINE, SIMPLE_BUILD_ENGINE):
        if gparams.debug:
            print_version(
                xc, CMD_NAME, None, gparams.in_container, gparams.is_ds_image
            )
        try:
            if engine == BUILDKIT_BUILD_ENGINE:
                build_with_buildkit(cparams)
            elif engine == DEPOT_BUILD_ENGINE:
                build_with_depot(cparams)
            else:
                build_with_simple(cparams, docker_client=clients.docker)
        except EngineBuildError as e:
            _fail_on_build_error(xc, engine, e)
        return

    xc.out.error("engine", "unsupported engine")
    xc.exit_with_state(
        ExitCode(ExitCodeType.IMAGEBUILD, ExitCodeCause.UNSUPPORTED_ENGINE),
        engine=engine,
    )


def _load_into_runtimes(
    xc: ExecutionContext, cparams: CommandParams, clients: RuntimeClients
) -> None:
    loaders: dict[str, ImageLoader] = {}
    for runtime in cparams.load_runtimes:
        if runtime == DOCKER_RUNTIME_LOAD:
            loaders[runtime] = DaemonImageLoader(clients.docker(), runtime)
        elif runtime == PODMAN_RUNTIME_LOAD:
            loaders[runtime] = DaemonImageLoader(clients.podman(), runtime)

    if not loaders:
        xc.out.info("runtime.load.image.none")
        return

    for runtime, loader in loaders.items():
        xc.out.info(
            "runtime.load.image",
            {"runtime": runtime, "image.archive.file": cparams.image_archive_file},
        )
        if is_same_engine_runtime(cparams.engine, runtime):
            xc.out.info("same.image.engine.runtime", {"runtime": runtime})
            continue
        try:
            loader.load_image(cparams.image_archive_file, sys.stdout)
        except ImageLoadError as e:
            xc.fail_on(e)


def _push(xc: ExecutionContext, cparams: CommandParams, report: CommandReport) -> None:
    try:
        remote_options = configure_auth(
            cparams.use_docker_creds,
            cparams.creds_account,
            cparams.creds_secret,
            RemoteOptions(timeout=get_settings().registry_timeout),
        )
    except RegistryAuthError as e:
        xc.fail_on(e)
        return

    try:
        digest = push_image_from_archive(
            cparams.image_archive_file,
            cparams.image_name,
            PUSH_NAME_OPTIONS,
            remote_options,
        )
    except RegistryError as e:
        xc.fail_on(e)
        return

    report.pushed_as = cparams.image_name
    report.digest = digest
    xc.out.info("registry.push", {"image.name": cparams.image_name, "digest": digest})


def run_image_build(
    xc: ExecutionContext, gparams: GlobalParams, cparams: CommandParams
) -> CommandReport:
    """Run the ``imagebuild`` command.

    Args:
        xc: Execution context of the invocation.
        gparams: Generic parameters.
        cparams: Validated build parameters.

    Returns:
        The final run report (state done).
    """
    version_check = check_async(
        gparams.check_version, gparams.in_container, gparams.is_ds_image
    )

    report = new_imagebuild_report(gparams.report_location, gparams.in_container)
    report.engine = cparams.engine
    report.image_name = cparams.image_name
    report.image_archive_file = cparams.image_archive_file
    report.state = CommandState.STARTED

    xc.out.state(CommandState.STARTED.value)
    xc.out.info("cmd.input.params", {"cparams": cparams.to_safe_json()})

    clients = RuntimeClients(xc, gparams)
    _build(xc, gparams, cparams, clients)
    _load_into_runtimes(xc, cparams, clients)

    if cparams.registry_push:
        _push(xc, cparams, report)

    xc.out.state(CommandState.COMPLETED.value)
    report.state = CommandState.COMPLETED

    print_check_version(xc, "", version_check.result())

    xc.out.state(CommandState.DONE.value)
    report.state = CommandState.DONE
    if report.save():
        xc.out.info("report", {"file": report.report_location()})

    return report


__all__ = [
    "CMD_NAME",
    "RuntimeClients",
    "run_image_build",
]
