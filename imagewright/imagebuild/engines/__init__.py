"""Build engine implementations.

Every engine produces a docker image archive at the build parameters'
``image_archive_file`` and raises ``EngineBuildError`` on failure.
"""

from imagewright.imagebuild.engines.buildkit import build_with_buildkit
from imagewright.imagebuild.engines.daemon import build_with_daemon
from imagewright.imagebuild.engines.depot import build_with_depot
from imagewright.imagebuild.engines.runner import EngineBuildError
from imagewright.imagebuild.engines.simple import build_with_simple

__all__ = [
    "EngineBuildError",
    "build_with_buildkit",
    "build_with_daemon",
    "build_with_depot",
    "build_with_simple",
]
