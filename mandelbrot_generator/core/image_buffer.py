"""
Output pixel grid shared by the workers of one generation run.

Workers only ever write through views of their own tile. Tiles are disjoint,
so no two threads touch the same cell and the buffer carries no lock; the
scheduler's completion barrier orders the last worker write before the
controller reads the grid.
"""

import numpy as np
from typing import Optional, Tuple
import logging

from .tiling import Tile
from .view_area import ViewArea

logger = logging.getLogger(__name__)


class ImageBuffer:
    """Iteration counts (and optionally mapped colors) for one view area."""

    def __init__(self, area: ViewArea, with_colors: bool = False):
        """
        Allocate the pixel grid for an area.

        Args:
            area: Area defining the grid size
            with_colors: Also allocate an RGB grid for injected color mapping
        """
        self.area = area
        self.iterations = np.zeros(area.shape, dtype=np.int32)
        self.colors: Optional[np.ndarray] = None
        if with_colors:
            self.colors = np.zeros(area.shape + (3,), dtype=np.uint8)

    @property
    def width(self) -> int:
        return self.area.pixel_width

    @property
    def height(self) -> int:
        return self.area.pixel_height

    @property
    def shape(self) -> Tuple[int, int]:
        return self.iterations.shape

    def row_view(self, y: int, x_start: int, x_end: int) -> np.ndarray:
        """Writable view of one row segment of the iteration grid."""
        return self.iterations[y, x_start:x_end]

    def tile_view(self, tile: Tile) -> np.ndarray:
        """Writable view of the iteration grid covered by ``tile``."""
        return self.iterations[tile.y_start:tile.y_end, tile.x_start:tile.x_end]

    def color_view(self, tile: Tile) -> np.ndarray:
        """Writable view of the RGB grid covered by ``tile``."""
        if self.colors is None:
            raise RuntimeError("Image buffer was allocated without a color grid")
        return self.colors[tile.y_start:tile.y_end, tile.x_start:tile.x_end]

    def histogram(self, max_iterations: int) -> np.ndarray:
        """Pixel count per iteration value ``0..max_iterations``."""
        return np.bincount(self.iterations.ravel(), minlength=max_iterations + 1)

    def inside_fraction(self, max_iterations: int) -> float:
        """Fraction of pixels that never escaped."""
        return float(np.count_nonzero(self.iterations == max_iterations)) / self.iterations.size

    def equals(self, other: 'ImageBuffer') -> bool:
        """Bit-for-bit comparison of iteration (and color) grids."""
        if not np.array_equal(self.iterations, other.iterations):
            return False
        if self.colors is None or other.colors is None:
            return self.colors is None and other.colors is None
        return np.array_equal(self.colors, other.colors)

    def __repr__(self) -> str:
        mode = "iterations+rgb" if self.colors is not None else "iterations"
        return f"ImageBuffer({self.width}x{self.height}, {mode})"
