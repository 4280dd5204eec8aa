"""Tests for execution/output.py module.

Tests the text, JSON and subscription renderings of the event sink.
Console output is captured with a Rich console writing to a buffer.
"""

import io
import json
import queue

import pytest
from rich.console import Console

from imagewright.execution.output import (
    COMMUNITY_INFO,
    EXIT_CODE_KEY,
    Output,
    UnsupportedOutputFormatError,
    stringify,
)
from imagewright.types import ExitCode, ExitCodeCause, ExitCodeType


@pytest.fixture
def make_output():
    """Create event sinks writing to an in-memory console; closes them after."""
    created: list[Output] = []

    def _make(
        output_format: str = "text",
        quiet: bool = False,
        data_channels: dict | None = None,
    ) -> tuple[Output, io.StringIO]:
        buf = io.StringIO()
        console = Console(
            file=buf, width=500, color_system=None, force_terminal=False
        )
        out = Output(
            "imagebuild",
            quiet=quiet,
            output_format=output_format,
            data_channels=data_channels,
            console=console,
        )
        created.append(out)
        return out, buf

    yield _make

    for out in created:
        out.close()


def _lines(buf: io.StringIO) -> list[str]:
    return [line for line in buf.getvalue().splitlines() if line]


def _drain(channel: queue.Queue) -> list:
    items = []
    while True:
        try:
            items.append(channel.get_nowait())
        except queue.Empty:
            return items


class TestStringify:
    """Tests for stringify function."""

    def test_bool_lowercase(self):
        """Booleans should render lowercase."""
        assert stringify(True) == "true"
        assert stringify(False) == "false"

    def test_none_empty(self):
        """None should render as an empty string."""
        assert stringify(None) == ""

    def test_other_values(self):
        """Other values should use str()."""
        assert stringify(3) == "3"
        assert stringify("abc") == "abc"


class TestTextFormat:
    """Tests for the text rendering."""

    def test_state_plain(self, make_output):
        """State without fields should be a single line."""
        out, buf = make_output()
        out.state("started")
        assert _lines(buf) == ["cmd=imagebuild state=started"]

    def test_state_with_exit_code(self, make_output):
        """exit.code should render inline and not as a field."""
        out, buf = make_output()
        code = ExitCode(ExitCodeType.COMMON, ExitCodeCause.NO_DOCKER_CONNECT_INFO)
        out.state("exited", {EXIT_CODE_KEY: code, "version": "1.0"})
        line = _lines(buf)[0]
        assert line == f"cmd=imagebuild state=exited code={code.value} version=1.0"
        assert "exit.code" not in line

    def test_state_exit_code_only(self, make_output):
        """A lone exit.code should produce no field block."""
        out, buf = make_output()
        out.state("exited", {EXIT_CODE_KEY: -1})
        assert _lines(buf) == ["cmd=imagebuild state=exited code=-1"]

    def test_state_quotes_spaced_values(self, make_output):
        """Field values with whitespace should be single-quoted."""
        out, buf = make_output()
        out.state("exited", {"reason": "no daemon", "engine": "docker"})
        assert _lines(buf) == [
            "cmd=imagebuild state=exited reason='no daemon' engine=docker"
        ]

    def test_info_fields(self, make_output):
        """Info fields should render as key='value' pairs."""
        out, buf = make_output()
        out.info("runtime.load.image", {"runtime": "docker", "flag": True})
        assert _lines(buf) == [
            "cmd=imagebuild info=runtime.load.image runtime='docker' flag='true'"
        ]

    def test_info_without_fields(self, make_output):
        """Info without fields should carry only the kind."""
        out, buf = make_output()
        out.info("runtime.load.image.none")
        assert _lines(buf) == ["cmd=imagebuild info=runtime.load.image.none"]

    def test_message_error_prompt(self, make_output):
        """Notices should render under their own keys."""
        out, buf = make_output()
        out.message("hello")
        out.error("engine", "unsupported engine")
        out.prompt("continue?")
        assert _lines(buf) == [
            "cmd=imagebuild message='hello'",
            "cmd=imagebuild error=engine message='unsupported engine'",
            "cmd=imagebuild prompt='continue?'",
        ]

    def test_log_dump(self, make_output):
        """Log dumps should be bounded by START/END markers."""
        out, buf = make_output()
        out.log_dump("engine.build", "step 1\nstep 2", {"engine": "buildkit"})
        lines = _lines(buf)
        assert lines[0].startswith(
            "cmd=imagebuild log='engine.build' event=LOG.START engine='buildkit'"
        )
        assert lines[1:3] == ["step 1", "step 2"]
        assert lines[3].startswith(
            "cmd=imagebuild log='engine.build' event=LOG.END engine='buildkit'"
        )

    def test_quiet_suppresses_everything(self, make_output):
        """Quiet text output should print nothing."""
        out, buf = make_output(quiet=True)
        out.state("started")
        out.info("x", {"a": 1})
        out.message("m")
        out.error("e", "m")
        out.prompt("p")
        out.log_dump("l", "data")
        assert buf.getvalue() == ""

    def test_community_info(self, make_output):
        """The community block should print one line per entry."""
        out, buf = make_output()
        out.show_community_info()
        lines = _lines(buf)
        assert len(lines) == len(COMMUNITY_INFO)
        assert lines[0].startswith("app='imagewright'")


class TestJsonFormat:
    """Tests for the JSON rendering."""

    def test_every_event_is_one_json_line(self, make_output):
        """Each event should be one JSON object with cmd and its kind key."""
        out, buf = make_output("json")
        out.state("started")
        out.info("cmd.input.params", {"cparams": "{}"})
        out.message("hello")
        out.error("engine", "unsupported engine")
        out.prompt("continue?")

        events = [json.loads(line) for line in _lines(buf)]
        assert len(events) == 5
        kinds = ["state", "info", "message", "error", "prompt"]
        for event, kind in zip(events, kinds):
            assert event["cmd"] == "imagebuild"
            assert kind in event

    def test_info_fields_round_trip(self, make_output):
        """Info fields should appear stringified under the same keys."""
        out, buf = make_output("json")
        fields = {"runtime": "docker", "count": 2, "enabled": False, "none": None}
        out.info("runtime.load.image", fields)

        event = json.loads(_lines(buf)[0])
        assert set(event) - {"cmd", "info"} == set(fields)
        assert event["count"] == "2"
        assert event["enabled"] == "false"
        assert event["none"] == ""

    def test_state_exit_code_key(self, make_output):
        """exit.code should be its own stringified key."""
        out, buf = make_output("json")
        code = ExitCode(ExitCodeType.IMAGEBUILD, ExitCodeCause.UNSUPPORTED_ENGINE)
        out.state("exited", {EXIT_CODE_KEY: code, "engine": "nope"})
        event = json.loads(_lines(buf)[0])
        assert event == {
            "cmd": "imagebuild",
            "state": "exited",
            EXIT_CODE_KEY: str(code.value),
            "engine": "nope",
        }

    def test_reserved_keys_win_over_fields(self, make_output):
        """Fields cannot overwrite the cmd or event-kind keys."""
        out, buf = make_output("json")
        out.info("report", {"cmd": "other", "info": "other", "file": "r.json"})
        event = json.loads(_lines(buf)[0])
        assert event["cmd"] == "imagebuild"
        assert event["info"] == "report"

    def test_empty_notice_emits_nothing(self, make_output):
        """Empty message/error/prompt text should emit nothing."""
        out, buf = make_output("json")
        out.message("")
        out.error("engine", "")
        out.prompt("")
        assert buf.getvalue() == ""

    def test_log_dump(self, make_output):
        """Log dumps should carry the blob under data."""
        out, buf = make_output("json")
        out.log_dump("engine.build", "line1\nline2")
        event = json.loads(_lines(buf)[0])
        assert event == {
            "cmd": "imagebuild",
            "log": "engine.build",
            "data": "line1\nline2",
        }

    def test_community_info(self, make_output):
        """The community block should be JSON lines."""
        out, buf = make_output("json")
        out.show_community_info()
        events = [json.loads(line) for line in _lines(buf)]
        assert {e["app"] for e in events} == {"imagewright"}


class TestSubscriptionFormat:
    """Tests for the subscription rendering."""

    def test_state_and_info_reach_every_subscriber(self, make_output):
        """Every state/info should reach each subscriber, in call order."""
        out, buf = make_output("subscription")
        first = out.subscribe("first")
        second = out.subscribe("second")

        out.state("started")
        out.info("cmd.input.params", {"cparams": "{}"})
        out.state("completed")
        out.close()

        expected = [
            {"cmd": "imagebuild", "state": "started"},
            {"cmd": "imagebuild", "info": "cmd.input.params", "cparams": "{}"},
            {"cmd": "imagebuild", "state": "completed"},
        ]
        assert _drain(first) == expected
        assert _drain(second) == expected
        assert buf.getvalue() == ""

    def test_constructor_channels_are_subscribers(self, make_output):
        """Channels passed at construction should receive events."""
        channel: queue.Queue = queue.Queue()
        out, _ = make_output("subscription", data_channels={"ui": channel})
        out.state("started")
        out.close()
        assert _drain(channel) == [{"cmd": "imagebuild", "state": "started"}]

    def test_quiet_does_not_suppress_state_and_info(self, make_output):
        """Subscribers should get lifecycle events even when quiet."""
        out, _ = make_output("subscription", quiet=True)
        channel = out.subscribe("ui")
        out.state("started")
        out.info("report", {"file": "r.json"})
        out.close()
        assert len(_drain(channel)) == 2

    def test_subscribers_get_separate_copies(self, make_output):
        """A subscriber mutating its event should not affect the others."""
        out, _ = make_output("subscription")
        first = out.subscribe("first")
        second = out.subscribe("second")
        out.state("started")
        out.close()

        event = first.get_nowait()
        event["state"] = "changed"
        assert second.get_nowait() == {"cmd": "imagebuild", "state": "started"}

    def test_notices_not_published(self, make_output):
        """message/error/prompt/log_dump should not reach subscribers."""
        out, buf = make_output("subscription")
        channel = out.subscribe("ui")
        out.message("m")
        out.error("e", "m")
        out.prompt("p")
        out.log_dump("l", "data")
        out.show_community_info()
        out.close()
        assert _drain(channel) == []
        assert buf.getvalue() == ""

    def test_unsubscribe(self, make_output):
        """An unsubscribed queue should receive nothing further."""
        out, _ = make_output("subscription")
        channel = out.subscribe("ui")
        out.unsubscribe("ui")
        out.state("started")
        out.close()
        assert _drain(channel) == []

    def test_close_is_idempotent(self, make_output):
        """close() should be safe to call twice."""
        out, _ = make_output("subscription")
        out.close()
        out.close()
        assert out.closed

    def test_events_after_close_are_dropped(self, make_output):
        """Events published after close should not be delivered."""
        out, _ = make_output("subscription")
        channel = out.subscribe("ui")
        out.close()
        out.state("done")
        assert _drain(channel) == []


class TestData:
    """Tests for the direct data hand-off."""

    def test_data_to_existing_channel(self, make_output):
        """data() should put the payload on the named channel."""
        out, _ = make_output()
        channel = out.subscribe("results")
        assert out.data("results", {"digest": "sha256:abc"}) is True
        assert channel.get_nowait() == {"digest": "sha256:abc"}

    def test_data_to_missing_channel(self, make_output):
        """data() should report a missing channel."""
        out, _ = make_output()
        assert out.data("missing", "payload") is False


class TestUnsupportedFormat:
    """Tests for unknown output formats."""

    def test_raised_at_first_emission(self, make_output):
        """Construction should succeed; the first event should raise."""
        out, _ = make_output("yaml")
        assert out.output_format == "yaml"
        with pytest.raises(UnsupportedOutputFormatError) as exc_info:
            out.state("started")
        assert exc_info.value.code == "unsupported_output_format"

    def test_info_raises(self, make_output):
        """Info events should raise as well."""
        out, _ = make_output("yaml")
        with pytest.raises(UnsupportedOutputFormatError):
            out.info("report")

    def test_output_format_is_read_only(self, make_output):
        """The output format cannot be changed after construction."""
        out, _ = make_output("json")
        with pytest.raises(AttributeError):
            out.output_format = "text"
