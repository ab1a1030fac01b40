"""
Thread pool backend for parallel tile computation.

This module dispatches tiles to a bounded pool of worker threads and blocks
the calling run until every tile has reported back. Workers share the run's
image buffer; the JIT kernels release the GIL, so tiles execute in parallel
across cores.
"""

import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
import logging

from ..core.kernel import TileResult
from ..core.tiling import Tile

logger = logging.getLogger(__name__)

TileWork = Callable[[Tile], TileResult]
ProgressCallback = Callable[[int, int], None]


@dataclass
class TileBatchReport:
    """Summary of one batch of tiles run through the scheduler."""
    total: int
    completed: int = 0
    cancelled_tiles: int = 0
    failed_tiles: Dict[int, BaseException] = field(default_factory=dict)
    processing_time: float = 0.0
    wall_time: float = 0.0

    @property
    def failed(self) -> bool:
        return bool(self.failed_tiles)

    @property
    def efficiency(self) -> float:
        """Summed tile time over wall time; approaches the worker count when well balanced."""
        if self.wall_time <= 0:
            return 0.0
        return self.processing_time / self.wall_time


def get_optimal_worker_count() -> int:
    """Number of execution units available to this process."""
    if hasattr(os, 'sched_getaffinity'):
        return max(1, len(os.sched_getaffinity(0)))
    return max(1, os.cpu_count() or 1)


class TileScheduler:
    """Bounded pool of worker threads executing tiles."""

    def __init__(self, pool_size: Optional[int] = None):
        """
        Initialize the scheduler.

        Args:
            pool_size: Number of worker threads (None for the available CPU count)
        """
        if pool_size is None:
            self.pool_size = get_optimal_worker_count()
        else:
            self.pool_size = max(1, pool_size)

        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        logger.info(f"Tile scheduler: {self.pool_size} worker threads")

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.pool_size,
                                                    thread_name_prefix='mandelbrot-tile')
            return self._executor

    def run_tiles(self, tiles: List[Tile], work: TileWork,
                  cancel_event: threading.Event,
                  progress_callback: Optional[ProgressCallback] = None) -> TileBatchReport:
        """
        Execute every tile once and wait for all of them.

        A tile whose work raises is recorded as failed and ``cancel_event`` is
        set so the remaining tiles of the batch stop early.

        Args:
            tiles: Tiles to execute
            work: Function computing one tile
            cancel_event: Cancellation flag shared by the batch
            progress_callback: Optional function called with (completed, total)

        Returns:
            TileBatchReport for the batch
        """
        start_time = time.perf_counter()
        report = TileBatchReport(total=len(tiles))
        executor = self._get_executor()

        future_to_tile: Dict[Future, Tile] = {executor.submit(work, tile): tile for tile in tiles}
        log_every = max(1, len(tiles) // 10)

        for future in as_completed(future_to_tile):
            tile = future_to_tile[future]
            try:
                result = future.result()
            except Exception as e:
                logger.error(f"Tile {tile.tile_id} failed: {e}")
                report.failed_tiles[tile.tile_id] = e
                cancel_event.set()
            else:
                report.processing_time += result.processing_time
                if result.cancelled:
                    report.cancelled_tiles += 1
            report.completed += 1

            if report.completed % log_every == 0:
                progress = (report.completed / report.total) * 100
                logger.debug(f"Completed {report.completed}/{report.total} tiles ({progress:.1f}%)")

            if progress_callback is not None:
                try:
                    progress_callback(report.completed, report.total)
                except Exception as e:
                    logger.warning(f"Progress callback failed: {e}")

        report.wall_time = time.perf_counter() - start_time
        return report

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker threads; a later batch starts a fresh pool."""
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
            logger.debug("Tile scheduler shut down")
