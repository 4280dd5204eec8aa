"""Container image build command.

This package provides:
- The engine catalog and the build parameter set
- Build engine implementations
- run_image_build(): the build orchestration flow
"""

from imagewright.imagebuild.params import (
    CommandParams,
    InvalidParamsError,
    resolve_command_params,
)
from imagewright.imagebuild.service import run_image_build

__all__ = [
    "CommandParams",
    "InvalidParamsError",
    "resolve_command_params",
    "run_image_build",
]
