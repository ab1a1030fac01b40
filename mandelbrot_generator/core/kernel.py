"""
Escape-time kernel for the Mandelbrot set.

This module wraps the JIT-compiled iteration in an object carrying the
global iteration parameters and provides the per-tile work unit executed
by the scheduler's worker threads.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional
import logging

import numpy as np

from .image_buffer import ImageBuffer
from .tiling import Tile
from .view_area import ViewArea
from ..acceleration.numba_backend import escape_time, fill_region, fill_row
from ..exceptions import InvalidSettingsError

logger = logging.getLogger(__name__)

ColorMapper = Callable[[np.ndarray], np.ndarray]


@dataclass
class TileResult:
    """Outcome of processing a single tile."""
    tile_id: int
    rows_completed: int
    cancelled: bool
    processing_time: float


class EscapeKernel:
    """Escape-time iteration with fixed ``max_iterations`` and escape radius."""

    def __init__(self, max_iterations: int = 1000, escape_radius: float = 2.0):
        """
        Initialize the kernel.

        Args:
            max_iterations: Iteration cap; points reaching it are inside the set
            escape_radius: Magnitude beyond which a point has escaped
        """
        if isinstance(max_iterations, bool) or not isinstance(max_iterations, int) or max_iterations < 1:
            raise InvalidSettingsError("max_iterations must be a positive integer")
        if not escape_radius > 0:
            raise InvalidSettingsError("escape_radius must be positive")

        self.max_iterations = max_iterations
        self.escape_radius = float(escape_radius)
        self.escape_radius_sq = self.escape_radius * self.escape_radius

    def escape_time(self, c: complex) -> int:
        """Iteration count for a single point of the plane."""
        return int(escape_time(c.real, c.imag, self.max_iterations, self.escape_radius_sq))

    def compute_row(self, out: np.ndarray, area: ViewArea, y: int, x_start: int) -> None:
        """Fill ``out`` with the counts of row ``y`` starting at column ``x_start``."""
        fill_row(out, y, x_start,
                 area.min_real, area.min_imag, area.step_real, area.step_imag,
                 self.max_iterations, self.escape_radius_sq)

    def render_tile(self, tile: Tile, area: ViewArea, buffer: ImageBuffer,
                    cancel_event: Optional[threading.Event] = None,
                    color_mapper: Optional[ColorMapper] = None) -> TileResult:
        """
        Compute every pixel of a tile into the shared buffer.

        The cancellation flag is checked before each pixel row. Once it is
        set the tile stops without writing further rows or colors.

        Args:
            tile: Tile owned by the calling worker
            area: Area the tile belongs to
            buffer: Run buffer; only the tile's pixels are written
            cancel_event: Run cancellation flag
            color_mapper: Pure function mapping an iteration block to RGB

        Returns:
            TileResult describing how far the tile got
        """
        start_time = time.perf_counter()
        rows_completed = 0

        for y in tile.rows():
            if cancel_event is not None and cancel_event.is_set():
                return TileResult(tile.tile_id, rows_completed, True, time.perf_counter() - start_time)
            self.compute_row(buffer.row_view(y, tile.x_start, tile.x_end), area, y, tile.x_start)
            rows_completed += 1

        if color_mapper is not None:
            if cancel_event is not None and cancel_event.is_set():
                return TileResult(tile.tile_id, rows_completed, True, time.perf_counter() - start_time)
            buffer.color_view(tile)[...] = color_mapper(buffer.tile_view(tile))

        return TileResult(tile.tile_id, rows_completed, False, time.perf_counter() - start_time)

    def render_reference(self, area: ViewArea) -> np.ndarray:
        """
        Compute the full grid on the calling thread, without tiling.

        Returns:
            int32 iteration grid of shape ``area.shape``
        """
        out = np.zeros(area.shape, dtype=np.int32)
        fill_region(out, 0, 0,
                    area.min_real, area.min_imag, area.step_real, area.step_imag,
                    self.max_iterations, self.escape_radius_sq)
        return out

    def __repr__(self) -> str:
        return f"EscapeKernel(max_iterations={self.max_iterations}, escape_radius={self.escape_radius})"
