import numpy as np
import pytest

from mandelbrot_generator.core.tiling import (
    GridTiling,
    ProcessorTiling,
    Tile,
    clamp_scale,
    create_tiling_strategy,
    split_area,
    verify_partition,
)
from mandelbrot_generator.core.view_area import ViewArea
from mandelbrot_generator.exceptions import InvalidSettingsError


def coverage(tiles, area):
    grid = np.zeros(area.shape, dtype=np.int32)
    for tile in tiles:
        grid[tile.y_start:tile.y_end, tile.x_start:tile.x_end] += 1
    return grid


@pytest.mark.parametrize("width,height", [(640, 480), (641, 479), (1, 1), (7, 300), (1000, 3)])
@pytest.mark.parametrize("scale", [1, 2, 3, 4, 16, 32, 40])
def test_every_pixel_in_exactly_one_tile(width, height, scale):
    area = ViewArea(-2.0, -1.0, 1.0, 1.0, width, height)
    tiles = split_area(area, scale)
    assert np.all(coverage(tiles, area) == 1)
    verify_partition(tiles, area)


def test_last_row_and_column_absorb_remainder():
    area = ViewArea(-2.0, -1.0, 1.0, 1.0, 103, 50)
    tiles = split_area(area, 4)
    assert len(tiles) == 16
    widths = [t.width for t in tiles[:4]]
    heights = [tiles[i * 4].height for i in range(4)]
    assert widths == [25, 25, 25, 28]
    assert heights == [12, 12, 12, 14]


def test_tiles_are_row_major_with_sequential_ids():
    area = ViewArea(-2.0, -1.0, 1.0, 1.0, 64, 64)
    tiles = split_area(area, 4)
    assert [t.tile_id for t in tiles] == list(range(16))
    assert [(t.x_start, t.y_start) for t in tiles[:5]] == [(0, 0), (16, 0), (32, 0), (48, 0), (0, 16)]


def test_scale_clamped_so_no_tile_is_empty():
    area = ViewArea(-2.0, -1.0, 1.0, 1.0, 5, 3)
    assert clamp_scale(area, 40) == 3
    tiles = split_area(area, 40)
    assert len(tiles) == 9
    assert all(t.width >= 1 and t.height >= 1 for t in tiles)
    verify_partition(tiles, area)


def test_scale_below_one_clamped_to_single_tile():
    area = ViewArea(-2.0, -1.0, 1.0, 1.0, 10, 10)
    assert split_area(area, 0) == [Tile(0, 0, 0, 10, 10)]


def test_verify_partition_detects_overlap_and_gaps():
    area = ViewArea(-2.0, -1.0, 1.0, 1.0, 10, 10)
    with pytest.raises(ValueError, match="overlap"):
        verify_partition([Tile(0, 0, 0, 10, 10), Tile(1, 5, 5, 5, 5)], area)
    with pytest.raises(ValueError, match="uncovered"):
        verify_partition([Tile(0, 0, 0, 10, 5)], area)
    with pytest.raises(ValueError, match="outside"):
        verify_partition([Tile(0, 0, 0, 11, 10)], area)


def test_tile_bounds_follow_area_mapping():
    area = ViewArea(-2.0, -1.0, 1.0, 1.0, 300, 200)
    tile = Tile(0, 100, 50, 100, 50)
    min_real, min_imag, max_real, max_imag = tile.get_bounds(area)
    assert min_real == pytest.approx(-1.0)
    assert max_real == pytest.approx(0.0)
    assert min_imag == pytest.approx(-0.5)
    assert max_imag == pytest.approx(0.0)
    assert tile.contains(100, 50) and not tile.contains(200, 50)
    assert list(tile.rows()) == list(range(50, 100))


def test_grid_tiling_strategy():
    area = ViewArea.default()
    tiles = GridTiling(8).partition(area)
    assert len(tiles) == 64
    verify_partition(tiles, area)


def test_processor_tiling_sizes_grid_from_worker_count():
    strategy = ProcessorTiling(tiles_per_worker=4, worker_count=8)
    assert strategy.grid_scale() == 6
    area = ViewArea.default()
    tiles = strategy.partition(area)
    assert len(tiles) == 36
    verify_partition(tiles, area)


def test_create_tiling_strategy():
    assert isinstance(create_tiling_strategy('grid', scale=4), GridTiling)
    assert isinstance(create_tiling_strategy('Processor'), ProcessorTiling)
    with pytest.raises(InvalidSettingsError):
        create_tiling_strategy('spiral')
    with pytest.raises(InvalidSettingsError):
        GridTiling(0)


def test_processor_tiling_uses_available_workers(monkeypatch):
    monkeypatch.setattr('mandelbrot_generator.acceleration.threading_backend.get_optimal_worker_count',
                        lambda: 2)
    assert ProcessorTiling(tiles_per_worker=4).grid_scale() == 3
    assert ProcessorTiling(tiles_per_worker=4, worker_count=16).grid_scale() == 8
