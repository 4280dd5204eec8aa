"""Execution context for a single command invocation.

The context owns the event sink and the ordered list of cleanup handlers,
and it is the only sanctioned way to end a run:
- exit(): normal or coded termination
- fail_on(): termination driven by an error value
- fail(): termination driven by a reason string
- finish(): successful completion of the command flow
- warn_on(): log a non-fatal error and continue

Every termination path drains the cleanup handlers (in reverse registration
order, at most once) and ends with the community block. The failure paths
also emit a terminal event and raise ``typer.Exit`` with the exit status.
"""

from __future__ import annotations

import logging
import queue
import sys
import threading
import traceback
from collections.abc import Callable
from typing import Any, NoReturn

import typer
from rich.console import Console

from imagewright import __version__
from imagewright.environment import exe_dir
from imagewright.execution.output import EXIT_CODE_KEY, Output
from imagewright.types import GENERIC_FAILURE, CommandState, ExitCode, OutVars

logger = logging.getLogger(__name__)

CleanupHandler = Callable[[], Any]


class ExecutionContext:
    """Process-wide state for one command invocation.

    Attributes:
        out: Event sink for the run.
        args: Original process arguments.
    """

    def __init__(self, out: Output, args: list[str] | None = None) -> None:
        self.out = out
        self.args = list(sys.argv if args is None else args)
        self._cleanup_handlers: list[CleanupHandler] = []
        self._cleanup_lock = threading.Lock()
        self._cleanup_done = False

    @property
    def cleanup_done(self) -> bool:
        """Whether the cleanup handlers have been drained."""
        return self._cleanup_done

    def add_cleanup_handler(self, handler: CleanupHandler | None) -> None:
        """Register a cleanup handler; None is ignored."""
        if handler is None:
            return
        with self._cleanup_lock:
            if self._cleanup_done:
                logger.debug("cleanup already done, handler not registered")
                return
            self._cleanup_handlers.append(handler)

    def run_cleanup(self) -> None:
        """Run the cleanup handlers in reverse order, at most once."""
        with self._cleanup_lock:
            if self._cleanup_done:
                return
            self._cleanup_done = True
            handlers = self._cleanup_handlers
            self._cleanup_handlers = []

        for handler in reversed(handlers):
            try:
                handler()
            except Exception:
                logger.exception("cleanup handler failed")

    def finish(self) -> None:
        """Complete a successful run.

        Drains the cleanup handlers, shows the community block and closes
        the event sink.
        """
        self.run_cleanup()
        self.out.show_community_info()
        self.out.close()

    def exit(self, exit_code: int | ExitCode) -> NoReturn:
        """Run cleanup and terminate with ``exit_code``."""
        self.run_cleanup()
        self._exit(exit_code)

    def exit_with_state(self, exit_code: int | ExitCode, **fields: Any) -> NoReturn:
        """Announce the abnormal ``exited`` state, then terminate."""
        state_fields: OutVars = {
            EXIT_CODE_KEY: exit_code,
            "version": __version__,
            "location": exe_dir(),
        }
        state_fields.update(fields)
        self.out.state(CommandState.EXITED.value, state_fields)
        self.exit(exit_code)

    def warn_on(self, err: BaseException | None) -> None:
        """Log a non-fatal error and return."""
        if err is not None:
            logger.debug("error.warning: %s", err, exc_info=err)

    def fail_on(self, err: BaseException | None) -> None:
        """Terminate the run if ``err`` is set; no-op otherwise."""
        if err is None:
            return

        self.run_cleanup()
        stack = "".join(traceback.format_stack())
        logger.error(
            "terminating: %s\nstack:\n%s",
            err,
            stack,
            exc_info=(type(err), err, err.__traceback__),
        )
        self.out.info("fail.on", {"version": __version__})
        self._exit(GENERIC_FAILURE)

    def fail(self, reason: str) -> NoReturn:
        """Terminate the run for an explicit reason."""
        self.run_cleanup()
        stack = "".join(traceback.format_stack())
        logger.error("terminating: reason=%s\nstack:\n%s", reason, stack)
        self.out.info("fail.on", {"version": __version__, "reason": reason})
        self._exit(GENERIC_FAILURE)

    def _exit(self, exit_code: int | ExitCode) -> NoReturn:
        code = int(exit_code)
        self.out.info(
            "exit",
            {
                "code": code,
                "version": __version__,
                "location": exe_dir(),
                "args": " ".join(self.args),
            },
        )
        self.out.show_community_info()
        self.out.close()
        raise typer.Exit(code=code)


def new_execution_context(
    cmd_name: str,
    quiet: bool = False,
    output_format: str = "text",
    data_channels: dict[str, queue.Queue[Any]] | None = None,
    console: Console | None = None,
    args: list[str] | None = None,
) -> ExecutionContext:
    """Create an execution context with its event sink."""
    out = Output(
        cmd_name,
        quiet=quiet,
        output_format=output_format,
        data_channels=data_channels,
        console=console,
    )
    return ExecutionContext(out, args=args)


__all__ = ["CleanupHandler", "ExecutionContext", "new_execution_context"]
