"""
Partitioning of a view area into independently computable tiles.

Tiles are the scheduling unit of parallel generation. Every partition
produced here is exact: tiles are pairwise disjoint and their union is the
full ``[0, pixel_width) x [0, pixel_height)`` grid. Tiling is uniform, so
tiles covering the interior of the set cost more than tiles outside it.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import logging

from .view_area import ViewArea
from ..exceptions import InvalidSettingsError

logger = logging.getLogger(__name__)

# 1024 tiles per image, as a 32x32 grid
DEFAULT_GRID_SCALE = 32


@dataclass(frozen=True)
class Tile:
    """A rectangular sub-range of the pixel grid, in pixel-index coordinates."""
    tile_id: int
    x_start: int
    y_start: int
    width: int
    height: int

    @property
    def x_end(self) -> int:
        return self.x_start + self.width

    @property
    def y_end(self) -> int:
        return self.y_start + self.height

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    def rows(self) -> range:
        """Pixel rows covered by this tile, top to bottom."""
        return range(self.y_start, self.y_end)

    def contains(self, px: int, py: int) -> bool:
        return self.x_start <= px < self.x_end and self.y_start <= py < self.y_end

    def get_bounds(self, area: ViewArea) -> Tuple[float, float, float, float]:
        """Get complex plane bounds (min_real, min_imag, max_real, max_imag) for this tile."""
        min_real = area.min_real + self.x_start * area.step_real
        max_real = area.min_real + self.x_end * area.step_real
        min_imag = area.min_imag + self.y_start * area.step_imag
        max_imag = area.min_imag + self.y_end * area.step_imag
        return min_real, min_imag, max_real, max_imag


def clamp_scale(area: ViewArea, scale: int) -> int:
    """Clamp a grid scale so that no tile of ``area`` is empty."""
    limit = min(area.pixel_width, area.pixel_height)
    clamped = max(1, min(int(scale), limit))
    if clamped != scale:
        logger.debug(f"Clamped grid scale {scale} to {clamped} for {area.pixel_width}x{area.pixel_height}")
    return clamped


def _axis_bounds(length: int, scale: int) -> List[int]:
    step = length // scale
    # The last band absorbs the remainder of the integer division
    return [i * step for i in range(scale)] + [length]


def split_area(area: ViewArea, scale: int) -> List[Tile]:
    """
    Split an area into a ``scale x scale`` grid of tiles.

    Args:
        area: Area whose pixel grid is partitioned
        scale: Number of tiles per axis; clamped to ``[1, min(width, height)]``

    Returns:
        Tiles in row-major order
    """
    scale = clamp_scale(area, scale)
    xs = _axis_bounds(area.pixel_width, scale)
    ys = _axis_bounds(area.pixel_height, scale)

    tiles = []
    tile_id = 0
    for row in range(scale):
        for col in range(scale):
            tiles.append(Tile(
                tile_id=tile_id,
                x_start=xs[col],
                y_start=ys[row],
                width=xs[col + 1] - xs[col],
                height=ys[row + 1] - ys[row],
            ))
            tile_id += 1

    logger.debug(f"Split {area.pixel_width}x{area.pixel_height} into {len(tiles)} tiles ({scale}x{scale})")
    return tiles


def verify_partition(tiles: List[Tile], area: ViewArea) -> None:
    """
    Check that ``tiles`` cover every pixel of ``area`` exactly once.

    Raises:
        ValueError: If a tile leaves the grid, tiles overlap, or pixels are uncovered
    """
    coverage = np.zeros(area.shape, dtype=np.int32)
    for tile in tiles:
        if tile.width < 1 or tile.height < 1:
            raise ValueError(f"Tile {tile.tile_id} is empty")
        if tile.x_end > area.pixel_width or tile.y_end > area.pixel_height or tile.x_start < 0 or tile.y_start < 0:
            raise ValueError(f"Tile {tile.tile_id} lies outside the pixel grid")
        coverage[tile.y_start:tile.y_end, tile.x_start:tile.x_end] += 1

    if np.any(coverage > 1):
        raise ValueError("Tiles overlap")
    if np.any(coverage == 0):
        missing = int(np.count_nonzero(coverage == 0))
        raise ValueError(f"Tiles leave {missing} pixels uncovered")


class TilingStrategy(ABC):
    """Policy deciding how a view area is partitioned into tiles."""

    name = "abstract"

    @abstractmethod
    def partition(self, area: ViewArea) -> List[Tile]:
        """
        Partition the pixel grid of ``area``.

        Args:
            area: Area to partition

        Returns:
            Disjoint tiles covering the full grid
        """
        pass

    def describe(self) -> str:
        return self.name


class GridTiling(TilingStrategy):
    """Fixed ``scale x scale`` grid regardless of the worker count."""

    name = "grid"

    def __init__(self, scale: int = DEFAULT_GRID_SCALE):
        if scale < 1:
            raise InvalidSettingsError("tile scale must be >= 1")
        self.scale = scale

    def partition(self, area: ViewArea) -> List[Tile]:
        return split_area(area, self.scale)

    def describe(self) -> str:
        return f"grid {self.scale}x{self.scale}"


class ProcessorTiling(TilingStrategy):
    """Grid sized from the worker count: about ``tiles_per_worker`` tiles per worker."""

    name = "processor"

    def __init__(self, tiles_per_worker: int = 4, worker_count: Optional[int] = None):
        if tiles_per_worker < 1:
            raise InvalidSettingsError("tiles_per_worker must be >= 1")
        self.tiles_per_worker = tiles_per_worker
        self.worker_count = worker_count

    def grid_scale(self) -> int:
        # Deferred: the scheduler module imports this one
        from ..acceleration.threading_backend import get_optimal_worker_count

        workers = self.worker_count or get_optimal_worker_count()
        return max(1, math.ceil(math.sqrt(workers * self.tiles_per_worker)))

    def partition(self, area: ViewArea) -> List[Tile]:
        return split_area(area, self.grid_scale())

    def describe(self) -> str:
        scale = self.grid_scale()
        return f"processor {scale}x{scale} ({self.tiles_per_worker} per worker)"


TILING_STRATEGIES: Dict[str, type] = {
    'grid': GridTiling,
    'processor': ProcessorTiling,
}


def create_tiling_strategy(name: str, **options) -> TilingStrategy:
    """
    Create a tiling strategy by name.

    Args:
        name: Strategy identifier ('grid' or 'processor')
        **options: Constructor arguments for the strategy

    Returns:
        Configured tiling strategy
    """
    strategy_class = TILING_STRATEGIES.get(name.lower())
    if strategy_class is None:
        available = ', '.join(TILING_STRATEGIES.keys())
        raise InvalidSettingsError(f"Unknown tiling strategy '{name}'. Available: {available}")
    return strategy_class(**options)
