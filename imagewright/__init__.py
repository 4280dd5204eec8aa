"""imagewright - container image build orchestration.

This package runs a single image-tooling operation (build an image, push an
image to a registry) to completion while emitting a structured event stream,
coordinating cleanup on every exit path, and dispatching the work to one of
several pluggable build engines.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
