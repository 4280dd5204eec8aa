"""Registry push orchestration.

This module provides run_registry_push(), the ``registry push`` command flow:
the target image is saved from the docker daemon to a temporary archive
(removed on exit) and pushed to its registry, optionally under another name.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from imagewright.config import get_settings
from imagewright.crt.clients import (
    DaemonConnectionError,
    NoDockerConnectInfoError,
    docker_connect_message,
    new_docker_client,
)
from imagewright.registry.auth import RegistryAuthError, RemoteOptions, configure_auth
from imagewright.registry.client import (
    RegistryError,
    push_image_from_archive,
    save_image_to_archive,
)
from imagewright.registry.reference import NameOptions
from imagewright.report import CommandReport, new_registry_report
from imagewright.types import CommandState, ExitCode, ExitCodeCause, ExitCodeType
from imagewright.version import check_async, print_check_version, print_version

if TYPE_CHECKING:
    from imagewright.execution.context import ExecutionContext
    from imagewright.types import GlobalParams

logger = logging.getLogger(__name__)

CMD_NAME = "registry.push"

PUSH_NAME_OPTIONS = NameOptions(weak_validation=True, insecure=True)


class PushParams(BaseModel):
    """Parameters for ``registry push``.

    Attributes:
        target_ref: Local docker image to push.
        as_tag: Remote name to push under (defaults to target_ref).
        use_docker_creds: Use stored docker credentials.
        creds_account: Registry account.
        creds_secret: Registry secret.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    target_ref: str
    as_tag: str = ""
    use_docker_creds: bool = False
    creds_account: str = ""
    creds_secret: str = Field(default="", repr=False)

    @property
    def remote_name(self) -> str:
        return self.as_tag or self.target_ref


def unique_tar_file_path(directory: str | None = None) -> Path:
    """Reserve a unique path for a temporary image archive."""
    fd, name = tempfile.mkstemp(prefix="saved-image-", suffix=".tar", dir=directory)
    os.close(fd)
    return Path(name)


def run_registry_push(
    xc: ExecutionContext, gparams: GlobalParams, cparams: PushParams
) -> CommandReport:
    """Run the ``registry push`` command.

    Returns:
        The final run report (state done).
    """
    version_check = check_async(
        gparams.check_version, gparams.in_container, gparams.is_ds_image
    )

    report = new_registry_report(gparams.report_location, gparams.in_container)
    report.target_reference = cparams.target_ref
    report.state = CommandState.STARTED

    xc.out.state(CommandState.STARTED.value)

    try:
        client = new_docker_client(gparams.client_config)
    except NoDockerConnectInfoError:
        message = docker_connect_message(gparams.in_container, gparams.is_ds_image)
        xc.out.info("docker.connect.error", {"message": message})
        xc.exit_with_state(
            ExitCode(ExitCodeType.COMMON, ExitCodeCause.NO_DOCKER_CONNECT_INFO)
        )
    except DaemonConnectionError as e:
        xc.fail_on(e)
        return report
    xc.add_cleanup_handler(client.close)

    if gparams.debug:
        print_version(xc, CMD_NAME, client, gparams.in_container, gparams.is_ds_image)

    try:
        remote_options = configure_auth(
            cparams.use_docker_creds,
            cparams.creds_account,
            cparams.creds_secret,
            RemoteOptions(timeout=get_settings().registry_timeout),
        )
    except RegistryAuthError as e:
        xc.fail_on(e)
        return report

    try:
        tar_path = unique_tar_file_path()
    except OSError as e:
        xc.fail_on(e)
        return report
    xc.add_cleanup_handler(lambda: tar_path.unlink(missing_ok=True))

    try:
        save_image_to_archive(client, cparams.target_ref, tar_path, PUSH_NAME_OPTIONS)
        digest = push_image_from_archive(
            tar_path, cparams.remote_name, PUSH_NAME_OPTIONS, remote_options
        )
    except RegistryError as e:
        xc.fail_on(e)
        return report

    report.pushed_as = cparams.remote_name
    report.digest = digest
    xc.out.info(
        "registry.push", {"image.name": cparams.remote_name, "digest": digest}
    )

    xc.out.state(CommandState.COMPLETED.value)
    report.state = CommandState.COMPLETED
    xc.out.state(CommandState.DONE.value)

    print_check_version(xc, "", version_check.result())

    report.state = CommandState.DONE
    if report.save():
        xc.out.info("report", {"file": report.report_location()})

    return report


__all__ = ["CMD_NAME", "PushParams", "run_registry_push", "unique_tar_file_path"]
