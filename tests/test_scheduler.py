import threading
import time

import pytest

from mandelbrot_generator.acceleration.threading_backend import (
    TileBatchReport,
    TileScheduler,
    get_optimal_worker_count,
)
from mandelbrot_generator.core.kernel import TileResult
from mandelbrot_generator.core.tiling import split_area
from mandelbrot_generator.core.view_area import ViewArea


@pytest.fixture
def tiles():
    return split_area(ViewArea(-2.0, -1.0, 1.0, 1.0, 64, 64), 6)


@pytest.fixture
def scheduler():
    scheduler = TileScheduler(pool_size=3)
    yield scheduler
    scheduler.shutdown()


def test_default_pool_size_is_cpu_count():
    scheduler = TileScheduler()
    assert scheduler.pool_size == get_optimal_worker_count() >= 1
    assert TileScheduler(pool_size=0).pool_size == 1


@pytest.mark.parametrize("pool_size", [1, 2, 8, 64])
def test_every_tile_runs_exactly_once(tiles, pool_size):
    seen = []
    lock = threading.Lock()

    def work(tile):
        with lock:
            seen.append(tile.tile_id)
        return TileResult(tile.tile_id, tile.height, False, 0.0)

    scheduler = TileScheduler(pool_size=pool_size)
    try:
        report = scheduler.run_tiles(tiles, work, threading.Event())
    finally:
        scheduler.shutdown()

    assert sorted(seen) == [t.tile_id for t in tiles]
    assert report.completed == report.total == len(tiles)
    assert not report.failed


def test_concurrency_bounded_by_pool_size(tiles, scheduler):
    active = 0
    peak = 0
    lock = threading.Lock()

    def work(tile):
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.005)
        with lock:
            active -= 1
        return TileResult(tile.tile_id, tile.height, False, 0.005)

    scheduler.run_tiles(tiles, work, threading.Event())
    assert 1 <= peak <= 3


def test_barrier_waits_for_all_tiles(tiles, scheduler):
    finished = []

    def work(tile):
        time.sleep(0.001 * (tile.tile_id % 4))
        finished.append(tile.tile_id)
        return TileResult(tile.tile_id, tile.height, False, 0.0)

    report = scheduler.run_tiles(tiles, work, threading.Event())
    assert len(finished) == len(tiles)
    assert report.wall_time > 0


def test_failed_tile_is_recorded_and_cancels_the_batch(tiles, scheduler):
    cancel = threading.Event()

    def work(tile):
        if tile.tile_id == 3:
            raise FloatingPointError("overflow")
        return TileResult(tile.tile_id, tile.height, cancel.is_set(), 0.0)

    report = scheduler.run_tiles(tiles, work, cancel)

    assert report.failed
    assert list(report.failed_tiles) == [3]
    assert isinstance(report.failed_tiles[3], FloatingPointError)
    assert cancel.is_set()
    assert report.completed == len(tiles)


def test_progress_callback_counts_up_and_errors_are_ignored(tiles, scheduler):
    calls = []

    def progress(completed, total):
        calls.append((completed, total))
        if completed == 2:
            raise ValueError("display went away")

    def work(tile):
        return TileResult(tile.tile_id, tile.height, False, 0.0)

    report = scheduler.run_tiles(tiles, work, threading.Event(), progress)

    assert [c for c, _ in calls] == list(range(1, len(tiles) + 1))
    assert all(total == len(tiles) for _, total in calls)
    assert report.completed == len(tiles)


def test_cancelled_tiles_are_counted(tiles, scheduler):
    def work(tile):
        return TileResult(tile.tile_id, 0, True, 0.0)

    report = scheduler.run_tiles(tiles, work, threading.Event())
    assert report.cancelled_tiles == len(tiles)


def test_scheduler_restarts_after_shutdown(tiles):
    scheduler = TileScheduler(pool_size=2)

    def work(tile):
        return TileResult(tile.tile_id, tile.height, False, 0.0)

    scheduler.run_tiles(tiles, work, threading.Event())
    scheduler.shutdown()
    report = scheduler.run_tiles(tiles, work, threading.Event())
    scheduler.shutdown()
    assert report.completed == len(tiles)


def test_report_efficiency():
    report = TileBatchReport(total=4, completed=4, processing_time=6.0, wall_time=2.0)
    assert report.efficiency == pytest.approx(3.0)
    assert TileBatchReport(total=0).efficiency == 0.0
