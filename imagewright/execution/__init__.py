"""Execution context and structured event output.

This package provides:
- Output: the event sink (text, json and subscription renderings)
- ExecutionContext: cleanup coordination and termination paths
"""

from imagewright.execution.context import ExecutionContext, new_execution_context
from imagewright.execution.output import (
    EXIT_CODE_KEY,
    Output,
    UnsupportedOutputFormatError,
)

__all__ = [
    "EXIT_CODE_KEY",
    "ExecutionContext",
    "Output",
    "UnsupportedOutputFormatError",
    "new_execution_context",
]
