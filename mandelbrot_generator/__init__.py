"""
Multi-core Mandelbrot set generation.

This library computes escape-time iteration counts for a rectangular region
of the complex plane by splitting the pixel grid into tiles and running them
on a bounded pool of worker threads. A newer request supersedes the one in
flight; only completed runs are ever delivered.

Key Features:
- Numba-compiled escape-time kernel that releases the GIL
- Exact tiling of the pixel grid with configurable granularity
- Lock-free shared output buffer (tiles own disjoint pixel ranges)
- Last-request-wins cancellation with a single completion notification
- Optional palette-based color mapping

Example usage:
    >>> from mandelbrot_generator import GenerationController, ViewArea
    >>> with GenerationController() as controller:
    ...     result = controller.generate(ViewArea(-2, -1, 1, 1, 640, 480))
    >>> result.image.iterations.shape
    (480, 640)
"""

__version__ = "1.0.0"
__author__ = "Mandelbrot Generator Team"

from mandelbrot_generator.core.view_area import ViewArea
from mandelbrot_generator.core.tiling import Tile, TilingStrategy, GridTiling, ProcessorTiling, split_area
from mandelbrot_generator.core.image_buffer import ImageBuffer
from mandelbrot_generator.core.kernel import EscapeKernel
from mandelbrot_generator.acceleration.threading_backend import TileScheduler
from mandelbrot_generator.rendering.coloring import Palette, EscapeTimeColorMapper
from mandelbrot_generator.io.config import EngineSettings, ConfigManager
from mandelbrot_generator.exceptions import (
    MandelbrotError,
    InvalidAreaError,
    InvalidSettingsError,
    RunCancelledError,
    WorkerFaultError,
)

# Main API classes
from mandelbrot_generator.api import (
    GenerationController,
    GenerationResult,
    GenerationRun,
    GenerationState,
    benchmark_generation,
)

__all__ = [
    "GenerationController",
    "GenerationResult",
    "GenerationRun",
    "GenerationState",
    "benchmark_generation",
    "ViewArea",
    "Tile",
    "TilingStrategy",
    "GridTiling",
    "ProcessorTiling",
    "split_area",
    "ImageBuffer",
    "EscapeKernel",
    "TileScheduler",
    "Palette",
    "EscapeTimeColorMapper",
    "EngineSettings",
    "ConfigManager",
    "MandelbrotError",
    "InvalidAreaError",
    "InvalidSettingsError",
    "RunCancelledError",
    "WorkerFaultError",
]
