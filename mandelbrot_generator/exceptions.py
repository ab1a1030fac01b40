"""
Exception types raised by the Mandelbrot generation engine.

Invalid input is rejected at the boundary with ``ValueError`` subclasses so
callers that only catch ``ValueError`` keep working. Cancellation and worker
faults are reported through the blocking helpers only; the asynchronous
request path never raises them.
"""

from typing import Optional


class MandelbrotError(Exception):
    """Base class for all engine errors."""


class InvalidAreaError(MandelbrotError, ValueError):
    """A view area with inverted bounds or non-positive pixel dimensions."""


class InvalidSettingsError(MandelbrotError, ValueError):
    """Engine configuration that cannot be used."""


class RunCancelledError(MandelbrotError):
    """A generation run was superseded or stopped before it completed."""

    def __init__(self, run_id: int, message: Optional[str] = None):
        self.run_id = run_id
        super().__init__(message or f"Generation run {run_id} was cancelled")


class WorkerFaultError(MandelbrotError):
    """A tile failed while a run was executing; the run produced no image."""

    def __init__(self, run_id: int, tile_id: int, cause: BaseException):
        self.run_id = run_id
        self.tile_id = tile_id
        self.cause = cause
        super().__init__(f"Generation run {run_id} failed on tile {tile_id}: {cause}")
