"""Structured event output.

This module provides the event sink every command reports through:
- Lifecycle states, informational events, messages, errors and prompts
- Three renderings: colorized text, one JSON object per line, and
  subscription (events delivered to subscriber queues, no console output)
- A background forwarder that fans subscription events out to every
  registered subscriber queue
- The community/support block shown when a run terminates
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from dataclasses import asdict, dataclass
from typing import Any

from rich.console import Console
from rich.text import Text

from imagewright.types import OutputFormat, OutVars

logger = logging.getLogger(__name__)

EXIT_CODE_KEY = "exit.code"

APP_NAME = "imagewright"

# Styles by semantic category
STATE_ERROR_STYLE = "bold bright_red"
STATE_STYLE = "bold cyan"
INFO_TYPE_STYLE = "bold magenta"
KEY_STYLE = "bold bright_green"
VALUE_STYLE = "bright_blue"
MESSAGE_STYLE = "bright_magenta"
ERROR_STYLE = "bright_red"
PROMPT_STYLE = "bright_red"
COMMUNITY_STYLE = "bright_magenta"

LOG_DUMP_RULE = "=" * 20

_STOP = object()


class UnsupportedOutputFormatError(ValueError):
    """Raised when an event is emitted with an unknown output format."""

    def __init__(
        self, output_format: str, code: str = "unsupported_output_format"
    ) -> None:
        super().__init__(
            f"Unknown console output format: {output_format!r} "
            "(expected 'text', 'json' or 'subscription')"
        )
        self.output_format = output_format
        self.code = code


@dataclass(frozen=True)
class CommunityLine:
    """One entry of the community/support block."""

    app: str
    message: str
    info: str


COMMUNITY_INFO: tuple[CommunityLine, ...] = (
    CommunityLine(
        app=APP_NAME,
        message="GitHub Discussions",
        info="https://github.com/imagewright/imagewright/discussions",
    ),
    CommunityLine(
        app=APP_NAME,
        message="Report issues or share your feedback",
        info="https://github.com/imagewright/imagewright/issues",
    ),
)


def stringify(value: Any) -> str:
    """Render a field value the way events carry it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def _exit_code_str(code: Any) -> str:
    try:
        return str(int(code))
    except (TypeError, ValueError):
        return stringify(code)


def _quote_spaced(value: str) -> str:
    if any(c.isspace() for c in value) and not value.startswith(("'", '"')):
        return f"'{value}'"
    return value


class Output:
    """Event sink for a single command invocation.

    The output format is fixed at construction. In subscription mode every
    state/info event is queued internally and a forwarder thread puts it on
    every subscriber queue. Subscriber queues should be unbounded: a full
    bounded queue blocks the forwarder and stalls delivery to all other
    subscribers.

    Attributes:
        cmd_name: Command name carried by every event.
        quiet: Suppress console output.
        data_channels: Subscriber key to queue mapping.
        console: Rich console used for rendering.
    """

    def __init__(
        self,
        cmd_name: str,
        quiet: bool = False,
        output_format: str = OutputFormat.TEXT.value,
        data_channels: dict[str, queue.Queue[Any]] | None = None,
        console: Console | None = None,
    ) -> None:
        self.cmd_name = cmd_name
        self.quiet = quiet
        self._output_format = str(
            output_format.value
            if isinstance(output_format, OutputFormat)
            else output_format
        )
        self.data_channels: dict[str, queue.Queue[Any]] = dict(data_channels or {})
        self.console = console or Console(highlight=False)

        self._internal: queue.Queue[Any] = queue.Queue()
        self._channels_lock = threading.Lock()
        self._close_lock = threading.Lock()
        self._closed = False
        self._forwarder = threading.Thread(
            target=self._forward,
            name=f"{cmd_name}-event-forwarder",
            daemon=True,
        )
        self._forwarder.start()

    @property
    def output_format(self) -> str:
        """Output format selector (read-only)."""
        return self._output_format

    @property
    def closed(self) -> bool:
        """Whether the forwarder has been shut down."""
        return self._closed

    # Subscribers

    def subscribe(
        self, key: str, channel: queue.Queue[Any] | None = None
    ) -> queue.Queue[Any]:
        """Register a subscriber queue under ``key`` and return it."""
        if channel is None:
            channel = queue.Queue()
        with self._channels_lock:
            self.data_channels[key] = channel
        return channel

    def unsubscribe(self, key: str) -> None:
        """Remove the subscriber registered under ``key``."""
        with self._channels_lock:
            self.data_channels.pop(key, None)

    def _forward(self) -> None:
        while True:
            data = self._internal.get()
            if data is _STOP:
                break
            logger.debug("internal event data: %s", data)
            if data is None:
                continue
            with self._channels_lock:
                channels = list(self.data_channels.values())
            for channel in channels:
                channel.put(dict(data))

    def _publish(self, msg: dict[str, str]) -> None:
        if self._closed:
            logger.debug("event dropped, output closed: %s", msg)
            return
        self._internal.put(msg)

    def close(self, timeout: float | None = None) -> None:
        """Stop the forwarder after delivering every queued event.

        Safe to call more than once.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._internal.put(_STOP)
        self._forwarder.join(timeout)

    # Rendering helpers

    def _write_json(self, msg: dict[str, str] | dict[str, Any]) -> None:
        self.console.out(json.dumps(msg), highlight=False)

    def _write_text(self, text: Text | str, style: str | None = None) -> None:
        if isinstance(text, str):
            text = Text(text, style=style or "")
        self.console.print(text, soft_wrap=True, highlight=False, markup=False)

    def _fields_text(self, fields: OutVars, msg: dict[str, str]) -> Text:
        text = Text()
        for k, v in fields.items():
            val = stringify(v)
            msg.setdefault(k, val)
            text.append(" ")
            text.append(k, style=KEY_STYLE)
            text.append("='")
            text.append(val, style=VALUE_STYLE)
            text.append("'")
        return text

    def _unsupported(self) -> UnsupportedOutputFormatError:
        logger.error(
            "Unknown console output format: %s. It should be either 'text' or 'json'",
            self._output_format,
        )
        return UnsupportedOutputFormatError(self._output_format)

    # Events

    def state(self, state: str, fields: OutVars | None = None) -> None:
        """Emit a lifecycle state.

        The ``exit.code`` field is rendered inline as ``code=<n>`` and kept
        out of the generic field list.
        """
        if self.quiet and self._output_format != OutputFormat.SUBSCRIPTION.value:
            return

        msg: dict[str, str] = {"cmd": self.cmd_name, "state": state}
        exit_info = ""
        parts: list[str] = []

        if fields:
            min_count = 0
            if EXIT_CODE_KEY in fields:
                min_count = 1
                code = _exit_code_str(fields[EXIT_CODE_KEY])
                exit_info = f" code={code}"
                msg[EXIT_CODE_KEY] = code

            if len(fields) > min_count:
                for k, v in fields.items():
                    if k == EXIT_CODE_KEY:
                        continue
                    val = stringify(v)
                    msg.setdefault(k, val)
                    parts.append(f"{k}={_quote_spaced(val)}")

        fmt = self._output_format
        if fmt == OutputFormat.JSON.value:
            self._write_json(msg)
        elif fmt == OutputFormat.TEXT.value:
            if state == "exited" or "error" in state:
                style = STATE_ERROR_STYLE
            else:
                style = STATE_STYLE
            line = f"cmd={self.cmd_name} state={state}{exit_info}"
            if parts:
                line = f"{line} {' '.join(parts)}"
            self._write_text(line, style)
        elif fmt == OutputFormat.SUBSCRIPTION.value:
            self._publish(msg)
        else:
            raise self._unsupported()

    def info(self, info_type: str, fields: OutVars | None = None) -> None:
        """Emit a structured informational event."""
        if self.quiet and self._output_format != OutputFormat.SUBSCRIPTION.value:
            return

        msg: dict[str, str] = {"cmd": self.cmd_name, "info": info_type}
        text = Text(f"cmd={self.cmd_name} info=")
        text.append(info_type, style=INFO_TYPE_STYLE)
        if fields:
            text.append_text(self._fields_text(fields, msg))

        fmt = self._output_format
        if fmt == OutputFormat.JSON.value:
            self._write_json(msg)
        elif fmt == OutputFormat.TEXT.value:
            self._write_text(text)
        elif fmt == OutputFormat.SUBSCRIPTION.value:
            self._publish(msg)
        else:
            raise self._unsupported()

    def _notice(self, msg: dict[str, str], line: str, style: str) -> None:
        fmt = self._output_format
        if fmt == OutputFormat.JSON.value:
            self._write_json(msg)
        elif fmt == OutputFormat.TEXT.value:
            self._write_text(line, style)
        elif fmt == OutputFormat.SUBSCRIPTION.value:
            return
        else:
            raise self._unsupported()

    def message(self, data: str) -> None:
        """Emit a human-facing message."""
        if self.quiet:
            return
        if not data and self._output_format == OutputFormat.JSON.value:
            return
        self._notice(
            {"cmd": self.cmd_name, "message": data},
            f"cmd={self.cmd_name} message='{data}'",
            MESSAGE_STYLE,
        )

    def error(self, error_type: str, data: str) -> None:
        """Emit an error notice."""
        if self.quiet:
            return
        if not data and self._output_format == OutputFormat.JSON.value:
            return
        self._notice(
            {"cmd": self.cmd_name, "error": error_type, "message": data},
            f"cmd={self.cmd_name} error={error_type} message='{data}'",
            ERROR_STYLE,
        )

    def prompt(self, data: str) -> None:
        """Emit a prompt."""
        if self.quiet:
            return
        if not data and self._output_format == OutputFormat.JSON.value:
            return
        self._notice(
            {"cmd": self.cmd_name, "prompt": data},
            f"cmd={self.cmd_name} prompt='{data}'",
            PROMPT_STYLE,
        )

    def data(self, channel_key: str, payload: Any) -> bool:
        """Hand a payload directly to the named subscriber queue.

        Returns:
            True if the channel existed and received the payload.
        """
        with self._channels_lock:
            channel = self.data_channels.get(channel_key)
        if channel is None:
            logger.warning("Channel for channel key '%s' not found", channel_key)
            return False
        channel.put(payload)
        logger.info("Data sent to channel '%s': %s", channel_key, payload)
        return True

    def log_dump(self, log_type: str, data: str, fields: OutVars | None = None) -> None:
        """Emit a delimited block of raw log output."""
        if self.quiet:
            return

        msg: dict[str, str] = {"cmd": self.cmd_name, "log": log_type, "data": data}
        info = self._fields_text(fields, msg) if fields else Text()

        fmt = self._output_format
        if fmt == OutputFormat.JSON.value:
            self._write_json(msg)
        elif fmt == OutputFormat.TEXT.value:
            for marker, body in (("LOG.START", data), ("LOG.END", None)):
                line = Text(f"cmd={self.cmd_name} log='{log_type}' event={marker}")
                line.append_text(info)
                line.append(f" {LOG_DUMP_RULE}")
                self._write_text(line)
                if body is not None:
                    self._write_text(body)
        elif fmt == OutputFormat.SUBSCRIPTION.value:
            return
        else:
            raise self._unsupported()

    def show_community_info(self) -> None:
        """Print the community/support block."""
        fmt = self._output_format
        if fmt == OutputFormat.SUBSCRIPTION.value:
            return
        for line in COMMUNITY_INFO:
            if fmt == OutputFormat.JSON.value:
                self._write_json(asdict(line))
            else:
                self._write_text(
                    f"app='{line.app}' message='{line.message}' info='{line.info}'",
                    COMMUNITY_STYLE,
                )


__all__ = [
    "APP_NAME",
    "COMMUNITY_INFO",
    "CommunityLine",
    "EXIT_CODE_KEY",
    "Output",
    "UnsupportedOutputFormatError",
    "stringify",
]
