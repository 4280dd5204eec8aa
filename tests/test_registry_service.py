"""Tests for registry/service.py module.

The docker daemon and the registry transfer are mocked; the tests cover
the command flow, its events and its exit paths.
"""

import io
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import typer
from rich.console import Console

from imagewright.crt.clients import (
    CONTAINER_CONNECT_MESSAGE,
    DaemonConnectionError,
    NoDockerConnectInfoError,
)
from imagewright.execution.context import ExecutionContext
from imagewright.execution.output import EXIT_CODE_KEY, Output
from imagewright.registry.client import RegistryError
from imagewright.registry.service import (
    CMD_NAME,
    PushParams,
    run_registry_push,
    unique_tar_file_path,
)
from imagewright.types import ExitCode, ExitCodeCause, ExitCodeType, GlobalParams

SERVICE = "imagewright.registry.service"


@pytest.fixture
def buf() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def xc(buf):
    """Execution context with a JSON event sink writing to ``buf``."""
    console = Console(file=buf, width=500, color_system=None, force_terminal=False)
    out = Output(CMD_NAME, output_format="json", console=console)
    yield ExecutionContext(out, args=["imagewright", "registry", "push"])
    out.close()


@pytest.fixture
def gparams(tmp_path) -> GlobalParams:
    return GlobalParams(check_version=False, report_location=str(tmp_path / "report.json"))


def _events(buf: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in buf.getvalue().splitlines() if line]


class TestPushParams:
    """Tests for PushParams."""

    def test_remote_name(self):
        """The remote name should default to the target."""
        assert PushParams(target_ref="app:1").remote_name == "app:1"
        assert PushParams(target_ref="app:1", as_tag="ghcr.io/o/app:2").remote_name == (
            "ghcr.io/o/app:2"
        )

    def test_secret_hidden_from_repr(self):
        """The secret should not appear in repr."""
        params = PushParams(target_ref="app:1", creds_secret="Zq9-secret")
        assert "Zq9" not in repr(params)


class TestUniqueTarFilePath:
    """Tests for unique_tar_file_path function."""

    def test_unique(self, tmp_path):
        """Each call should reserve a new file."""
        first = unique_tar_file_path(str(tmp_path))
        second = unique_tar_file_path(str(tmp_path))
        assert first != second
        assert first.name.startswith("saved-image-")
        assert first.suffix == ".tar"


class TestRunRegistryPush:
    """Tests for run_registry_push function."""

    def test_push_success(self, xc, buf, gparams, tmp_path):
        """A successful push should report the digest and reach done."""
        client = MagicMock()
        saved: list[Path] = []

        def save(client_, ref, path, options):
            saved.append(Path(path))
            Path(path).write_bytes(b"tar")
            return Path(path)

        params = PushParams(target_ref="app:1", as_tag="localhost:5000/app:2")
        with patch(f"{SERVICE}.new_docker_client", return_value=client), patch(
            f"{SERVICE}.save_image_to_archive", side_effect=save
        ), patch(
            f"{SERVICE}.push_image_from_archive", return_value="sha256:abc"
        ) as mock_push:
            report = run_registry_push(xc, gparams, params)

        assert mock_push.call_args.args[1] == "localhost:5000/app:2"
        assert report.state.value == "done"
        assert report.digest == "sha256:abc"
        assert report.pushed_as == "localhost:5000/app:2"

        events = _events(buf)
        states = [e["state"] for e in events if "state" in e]
        assert states == ["started", "completed", "done"]
        push_event = next(e for e in events if e.get("info") == "registry.push")
        assert push_event["image.name"] == "localhost:5000/app:2"
        assert push_event["digest"] == "sha256:abc"
        assert events[-1] == {
            "cmd": CMD_NAME,
            "info": "report",
            "file": gparams.report_location,
        }

        # the temporary archive and the client are released by cleanup
        xc.run_cleanup()
        assert not saved[0].exists()
        client.close.assert_called_once()

    def test_no_connection_info(self, xc, buf, gparams):
        """Missing daemon info should exit with the common cause code."""
        gparams.in_container = True
        gparams.is_ds_image = True
        with patch(
            f"{SERVICE}.new_docker_client", side_effect=NoDockerConnectInfoError()
        ):
            with pytest.raises(typer.Exit) as exc_info:
                run_registry_push(xc, gparams, PushParams(target_ref="app:1"))

        code = ExitCode(ExitCodeType.COMMON, ExitCodeCause.NO_DOCKER_CONNECT_INFO)
        assert exc_info.value.exit_code == code.value
        events = _events(buf)
        connect = next(e for e in events if e.get("info") == "docker.connect.error")
        assert connect["message"] == CONTAINER_CONNECT_MESSAGE
        exited = next(e for e in events if e.get("state") == "exited")
        assert exited[EXIT_CODE_KEY] == str(code.value)

    def test_daemon_unreachable(self, xc, gparams):
        """An unreachable daemon should fail with -1."""
        with patch(
            f"{SERVICE}.new_docker_client", side_effect=DaemonConnectionError("down")
        ):
            with pytest.raises(typer.Exit) as exc_info:
                run_registry_push(xc, gparams, PushParams(target_ref="app:1"))
        assert exc_info.value.exit_code == -1

    def test_push_failure(self, xc, buf, gparams):
        """A registry failure should fail the command and clean up."""
        client = MagicMock()
        with patch(f"{SERVICE}.new_docker_client", return_value=client), patch(
            f"{SERVICE}.save_image_to_archive"
        ), patch(
            f"{SERVICE}.push_image_from_archive",
            side_effect=RegistryError("denied", status_code=403),
        ):
            with pytest.raises(typer.Exit) as exc_info:
                run_registry_push(xc, gparams, PushParams(target_ref="app:1"))

        assert exc_info.value.exit_code == -1
        client.close.assert_called_once()
        assert any(e.get("info") == "fail.on" for e in _events(buf))

    def test_incomplete_credentials(self, xc, gparams):
        """An account without a secret should fail before saving."""
        with patch(f"{SERVICE}.new_docker_client", return_value=MagicMock()), patch(
            f"{SERVICE}.save_image_to_archive"
        ) as mock_save:
            with pytest.raises(typer.Exit):
                run_registry_push(
                    xc, gparams, PushParams(target_ref="app:1", creds_account="me")
                )
        mock_save.assert_not_called()
