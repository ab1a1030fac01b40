"""
Main API classes for Mandelbrot generation.

This module provides the high-level interface of the engine: the
``GenerationController`` accepts generation requests, supersedes any run
still in flight (last request wins), schedules the tiles of the new run on
the worker pool and reports each completed image exactly once.
"""

import itertools
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional
import logging

import numpy as np

from .acceleration.numba_backend import warm_up
from .acceleration.threading_backend import TileBatchReport, TileScheduler
from .core.image_buffer import ImageBuffer
from .core.kernel import ColorMapper, EscapeKernel, TileResult
from .core.tiling import GridTiling, Tile, TilingStrategy
from .core.view_area import ViewArea
from .exceptions import InvalidAreaError, RunCancelledError, WorkerFaultError
from .io.config import EngineSettings
from .rendering.coloring import create_color_mapper

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[ViewArea, ImageBuffer, float], None]
ProgressCallback = Callable[[ViewArea, int, int], None]


class GenerationState(Enum):
    """Lifecycle of a generation run."""
    IDLE = 'idle'
    RUNNING = 'running'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    FAILED = 'failed'


@dataclass(frozen=True)
class GenerationResult:
    """A finished image together with the request that produced it."""
    area: ViewArea
    image: ImageBuffer
    elapsed: float  # seconds


class GenerationRun:
    """Ephemeral state of one generation request."""

    def __init__(self, run_id: int, area: ViewArea, tiles: List[Tile]):
        self.run_id = run_id
        self.area = area
        self.tiles = tiles
        self.cancel_event = threading.Event()
        self.state = GenerationState.RUNNING
        self.completed_tiles = 0
        self.report: Optional[TileBatchReport] = None
        self.result: Optional[GenerationResult] = None
        self.error: Optional[BaseException] = None
        self.started_at = time.perf_counter()
        self._finished = threading.Event()

    @property
    def done(self) -> bool:
        """True once the run's worker threads have all returned."""
        return self._finished.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the run has finished; False on timeout."""
        return self._finished.wait(timeout)

    def get_result(self) -> GenerationResult:
        """
        Result of a finished run.

        Raises:
            RunCancelledError: If the run was superseded or stopped
            WorkerFaultError: If a tile failed
            RuntimeError: If the run is still in flight
        """
        if self.state is GenerationState.COMPLETED:
            return self.result
        if self.state is GenerationState.CANCELLED:
            raise RunCancelledError(self.run_id)
        if self.state is GenerationState.FAILED:
            raise self.error
        raise RuntimeError(f"Generation run {self.run_id} has not finished")

    def __repr__(self) -> str:
        return (f"GenerationRun(id={self.run_id}, state={self.state.value}, "
                f"tiles={self.completed_tiles}/{len(self.tiles)})")


class GenerationController:
    """Top-level entry point: one running generation at a time, newest request wins."""

    def __init__(self, settings: Optional[EngineSettings] = None,
                 on_completed: Optional[CompletionCallback] = None,
                 tiling: Optional[TilingStrategy] = None,
                 pool_size: Optional[int] = None,
                 color_mapper: Optional[ColorMapper] = None,
                 on_progress: Optional[ProgressCallback] = None):
        """
        Initialize the controller.

        Args:
            settings: Engine configuration (uses defaults if None)
            on_completed: Called with (area, image, elapsed_seconds) for each completed run
            tiling: Tiling strategy (built from settings if None)
            pool_size: Worker thread count (settings or CPU count if None)
            color_mapper: Pure function mapping iteration blocks to RGB
                (built from ``settings.palette`` if None)
            on_progress: Called with (area, completed_tiles, total_tiles)
        """
        self.settings = (settings or EngineSettings()).validate()
        self.kernel = EscapeKernel(self.settings.max_iterations, self.settings.escape_radius)
        self.tiling = tiling or self.settings.create_tiling()
        self.scheduler = TileScheduler(pool_size if pool_size is not None else self.settings.pool_size)

        if color_mapper is None and self.settings.palette:
            color_mapper = create_color_mapper(self.settings.palette, self.settings.max_iterations)
        self.color_mapper = color_mapper

        self.on_completed = on_completed
        self.on_progress = on_progress

        self._lock = threading.Lock()
        self._current_run: Optional[GenerationRun] = None
        self._run_ids = itertools.count(1)
        self._threads: Dict[int, threading.Thread] = {}
        self._closed = False

        warm_up()
        logger.info(f"GenerationController initialized: {self.kernel}, tiling={self.tiling.describe()}, "
                    f"workers={self.scheduler.pool_size}")

    @property
    def state(self) -> GenerationState:
        """State of the most recent run, or IDLE if there was none."""
        with self._lock:
            if self._current_run is None:
                return GenerationState.IDLE
            return self._current_run.state

    @property
    def current_run(self) -> Optional[GenerationRun]:
        with self._lock:
            return self._current_run

    def request_generation(self, area: ViewArea) -> GenerationRun:
        """
        Start generating ``area`` in the background.

        Any run still in flight is cancelled first and will never notify.

        Args:
            area: Region and resolution to generate

        Returns:
            Handle of the new run
        """
        if not isinstance(area, ViewArea):
            raise InvalidAreaError(f"Expected a ViewArea, got {type(area).__name__}")

        tiles = self.tiling.partition(area)

        with self._lock:
            if self._closed:
                raise RuntimeError("GenerationController has been shut down")
            if self._current_run is not None:
                self._cancel_locked(self._current_run, "superseded by a new request")
            run = GenerationRun(next(self._run_ids), area, tiles)
            self._current_run = run

            thread = threading.Thread(target=self._execute, args=(run,),
                                      name=f"mandelbrot-run-{run.run_id}", daemon=True)
            self._threads[run.run_id] = thread
            logger.info(f"Run {run.run_id} started: {area}, {len(tiles)} tiles")
            thread.start()

        return run

    def generate(self, area: ViewArea, timeout: Optional[float] = None) -> GenerationResult:
        """
        Generate ``area`` and block until the image is complete.

        Args:
            area: Region and resolution to generate
            timeout: Optional deadline in seconds; the run is cancelled when exceeded

        Returns:
            GenerationResult of the completed run

        Raises:
            RunCancelledError: If the run was superseded, stopped, or timed out
            WorkerFaultError: If a tile failed
        """
        run = self.request_generation(area)
        if not run.wait(timeout):
            self.cancel(run)
            run.wait()
            if run.state is GenerationState.CANCELLED:
                raise RunCancelledError(run.run_id, f"Generation run {run.run_id} exceeded {timeout}s")
        return run.get_result()

    def cancel(self, run: GenerationRun) -> bool:
        """Cancel ``run`` if it is still running."""
        with self._lock:
            return self._cancel_locked(run, "cancelled by caller")

    def stop(self) -> bool:
        """Cancel the current run; False if nothing was running."""
        with self._lock:
            if self._current_run is None:
                return False
            return self._cancel_locked(self._current_run, "stop requested")

    def wait(self, timeout: Optional[float] = None) -> Optional[GenerationResult]:
        """
        Wait for the current run to finish.

        Returns:
            Its result if it completed, otherwise None
        """
        run = self.current_run
        if run is None:
            return None
        run.wait(timeout)
        return run.result

    def shutdown(self, wait: bool = True) -> None:
        """Cancel the current run and stop the worker pool."""
        with self._lock:
            self._closed = True
            if self._current_run is not None:
                self._cancel_locked(self._current_run, "controller shutting down")
            threads = list(self._threads.values())

        if wait:
            for thread in threads:
                thread.join()
        self.scheduler.shutdown(wait=wait)
        logger.debug("GenerationController shut down")

    def __enter__(self) -> 'GenerationController':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def _cancel_locked(self, run: GenerationRun, reason: str) -> bool:
        if run.state is not GenerationState.RUNNING:
            return False
        run.state = GenerationState.CANCELLED
        run.cancel_event.set()
        logger.info(f"Run {run.run_id} cancelled: {reason}")
        return True

    def _execute(self, run: GenerationRun) -> None:
        """Body of a run thread: dispatch tiles, wait for the barrier, settle the outcome."""
        def progress(completed: int, total: int) -> None:
            run.completed_tiles = completed
            if self.on_progress is not None:
                self.on_progress(run.area, completed, total)

        notify = False
        try:
            buffer = ImageBuffer(run.area, with_colors=self.color_mapper is not None)

            def work(tile: Tile) -> TileResult:
                return self.kernel.render_tile(tile, run.area, buffer, run.cancel_event, self.color_mapper)

            run.report = self.scheduler.run_tiles(run.tiles, work, run.cancel_event, progress)
            elapsed = time.perf_counter() - run.started_at

            with self._lock:
                if run.state is GenerationState.RUNNING:
                    if run.report.failed:
                        tile_id, cause = next(iter(run.report.failed_tiles.items()))
                        run.error = WorkerFaultError(run.run_id, tile_id, cause)
                        run.state = GenerationState.FAILED
                    else:
                        run.result = GenerationResult(run.area, buffer, elapsed)
                        run.state = GenerationState.COMPLETED
                        notify = True

            if run.state is GenerationState.COMPLETED:
                logger.info(f"Run {run.run_id} completed: {elapsed:.3f}s, "
                            f"efficiency {run.report.efficiency:.2f}")
            elif run.state is GenerationState.FAILED:
                logger.error(f"Run {run.run_id} failed: {run.error}")
            else:
                logger.info(f"Run {run.run_id} discarded after {run.completed_tiles}/{len(run.tiles)} tiles")

        except Exception as e:
            logger.exception(f"Run {run.run_id} aborted")
            with self._lock:
                if run.state is GenerationState.RUNNING:
                    run.error = e
                    run.state = GenerationState.FAILED

        finally:
            try:
                if notify:
                    self._notify(run)
            finally:
                with self._lock:
                    self._threads.pop(run.run_id, None)
                run._finished.set()

    def _notify(self, run: GenerationRun) -> None:
        callback = self.on_completed
        if callback is None:
            return
        result = run.result
        try:
            callback(result.area, result.image, result.elapsed)
        except Exception as e:
            logger.warning(f"Completion callback failed for run {run.run_id}: {e}")


def benchmark_generation(area: Optional[ViewArea] = None,
                         settings: Optional[EngineSettings] = None,
                         scales: Iterable[int] = (1, 4, 16, 32),
                         pool_sizes: Iterable[Optional[int]] = (None,)) -> Dict[str, Any]:
    """
    Benchmark tiled generation against the single-threaded kernel.

    Args:
        area: Area to generate (settings area if None)
        settings: Engine configuration
        scales: Grid scales to try
        pool_sizes: Worker counts to try (None for the CPU count)

    Returns:
        Performance comparison data
    """
    settings = (settings or EngineSettings()).validate()
    area = area or settings.area
    kernel = EscapeKernel(settings.max_iterations, settings.escape_radius)
    warm_up()

    start_time = time.perf_counter()
    reference = kernel.render_reference(area)
    sequential_time = time.perf_counter() - start_time

    results: Dict[str, Any] = {
        'resolution': f'{area.pixel_width}x{area.pixel_height}',
        'max_iterations': settings.max_iterations,
        'sequential_time': sequential_time,
        'sequential_pixels_per_second': area.pixel_count / sequential_time if sequential_time > 0 else 0.0,
        'runs': [],
    }

    for pool_size in pool_sizes:
        for scale in scales:
            tiling = GridTiling(scale)
            with GenerationController(settings, tiling=tiling, pool_size=pool_size,
                                      color_mapper=None) as controller:
                result = controller.generate(area)
                workers = controller.scheduler.pool_size
                tile_count = len(controller.current_run.tiles)

            speedup = sequential_time / result.elapsed if result.elapsed > 0 else 0.0
            results['runs'].append({
                'scale': scale,
                'tiles': tile_count,
                'workers': workers,
                'time': result.elapsed,
                'speedup': speedup,
                'efficiency': speedup / workers,
                'identical': bool(np.array_equal(result.image.iterations, reference)),
            })
            logger.info(f"Benchmark scale={scale} workers={workers}: {result.elapsed:.3f}s "
                        f"(speedup {speedup:.2f}x)")

    return results
