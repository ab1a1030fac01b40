import threading

import numpy as np
import pytest

from mandelbrot_generator.api import (
    GenerationController,
    GenerationState,
    benchmark_generation,
)
from mandelbrot_generator.core.kernel import EscapeKernel
from mandelbrot_generator.core.tiling import GridTiling
from mandelbrot_generator.core.view_area import ViewArea
from mandelbrot_generator.exceptions import InvalidAreaError, RunCancelledError, WorkerFaultError
from mandelbrot_generator.io.config import EngineSettings
from mandelbrot_generator.rendering.coloring import create_color_mapper


class Recorder:
    """Collects completion notifications."""

    def __init__(self):
        self.calls = []
        self.lock = threading.Lock()

    def __call__(self, area, image, elapsed):
        with self.lock:
            self.calls.append((area, image, elapsed))

    @property
    def areas(self):
        return [area for area, _, _ in self.calls]


@pytest.fixture
def recorder():
    return Recorder()


def test_scenario_image_independent_of_tile_count(scenario_area):
    settings = EngineSettings(max_iterations=1000, escape_radius=2.0)
    reference = EscapeKernel(1000, 2.0).render_reference(scenario_area)

    for scale in (1, 4, 16, 40):
        with GenerationController(settings, tiling=GridTiling(scale)) as controller:
            result = controller.generate(scenario_area)
            assert len(controller.current_run.tiles) == scale * scale
        assert np.array_equal(result.image.iterations, reference), f"scale {scale} differs"


def test_generate_notifies_once_with_area_image_and_elapsed(small_area, recorder):
    with GenerationController(on_completed=recorder, pool_size=2) as controller:
        assert controller.state is GenerationState.IDLE
        result = controller.generate(small_area)
        assert controller.state is GenerationState.COMPLETED

    assert len(recorder.calls) == 1
    area, image, elapsed = recorder.calls[0]
    assert area == small_area
    assert image is result.image
    assert image.shape == (64, 96)
    assert elapsed == result.elapsed > 0


def test_identical_requests_give_identical_images(small_area):
    with GenerationController(EngineSettings(max_iterations=500)) as controller:
        first = controller.generate(small_area)
        second = controller.generate(small_area)
    assert first.image is not second.image
    assert first.image.equals(second.image)


def test_result_independent_of_pool_size(small_area):
    images = []
    for pool_size in (1, 2, 5):
        with GenerationController(pool_size=pool_size, tiling=GridTiling(8)) as controller:
            images.append(controller.generate(small_area).image)
    assert images[0].equals(images[1]) and images[1].equals(images[2])


def test_new_request_supersedes_running_one(slow_area, outside_area, slow_settings, recorder):
    with GenerationController(slow_settings, on_completed=recorder, pool_size=2) as controller:
        first = controller.request_generation(slow_area)
        second = controller.request_generation(outside_area)

        assert second.wait(60)
        assert first.wait(60)

    assert first.state is GenerationState.CANCELLED
    assert first.result is None
    assert second.state is GenerationState.COMPLETED
    assert recorder.areas == [outside_area]

    expected = EscapeKernel(slow_settings.max_iterations).render_reference(outside_area)
    assert np.array_equal(second.result.image.iterations, expected)


def test_at_most_one_running_run(slow_area, slow_settings, recorder):
    with GenerationController(slow_settings, on_completed=recorder, pool_size=2) as controller:
        runs = [controller.request_generation(slow_area) for _ in range(4)]
        assert [r.state for r in runs[:-1]] == [GenerationState.CANCELLED] * 3
        assert runs[-1].state is GenerationState.RUNNING
        assert controller.stop()
        assert not controller.stop()
        for run in runs:
            assert run.wait(60)

    assert all(r.state is GenerationState.CANCELLED for r in runs)
    assert recorder.calls == []


def test_stopped_run_raises_on_result(slow_area, slow_settings):
    with GenerationController(slow_settings, pool_size=2) as controller:
        run = controller.request_generation(slow_area)
        controller.stop()
        assert run.wait(60)
        assert controller.state is GenerationState.CANCELLED
        with pytest.raises(RunCancelledError):
            run.get_result()


def test_generate_timeout_cancels(slow_area, slow_settings, recorder):
    with GenerationController(slow_settings, on_completed=recorder, pool_size=2) as controller:
        with pytest.raises(RunCancelledError):
            controller.generate(slow_area, timeout=0.05)
        assert controller.current_run.state is GenerationState.CANCELLED
    assert recorder.calls == []


def test_superseded_run_does_not_disturb_next_image(slow_area, small_area):
    settings = EngineSettings(max_iterations=50_000, tile_scale=8)
    expected = EscapeKernel(50_000).render_reference(small_area)
    with GenerationController(settings, pool_size=2) as controller:
        controller.request_generation(slow_area)
        run = controller.request_generation(small_area)
        assert run.wait(120)
    assert np.array_equal(run.get_result().image.iterations, expected)


def test_worker_fault_fails_run_without_notification(small_area, recorder):
    def broken_mapper(iterations):
        raise FloatingPointError("mapper blew up")

    with GenerationController(on_completed=recorder, color_mapper=broken_mapper, pool_size=2) as controller:
        with pytest.raises(WorkerFaultError) as excinfo:
            controller.generate(small_area)
        run = controller.current_run

    assert run.state is GenerationState.FAILED
    assert run.result is None
    assert isinstance(excinfo.value.cause, FloatingPointError)
    assert recorder.calls == []


def test_callback_failure_does_not_break_controller(small_area):
    def explode(area, image, elapsed):
        raise RuntimeError("display closed")

    with GenerationController(on_completed=explode) as controller:
        result = controller.generate(small_area)
        assert controller.generate(small_area).image.equals(result.image)


def test_palette_setting_produces_mapped_colors(small_area):
    settings = EngineSettings(max_iterations=100, palette='fire')
    with GenerationController(settings) as controller:
        image = controller.generate(small_area).image

    mapper = create_color_mapper('fire', 100)
    assert image.colors is not None
    assert np.array_equal(image.colors, mapper(image.iterations))


def test_progress_reports_every_tile(small_area):
    calls = []
    with GenerationController(tiling=GridTiling(4),
                              on_progress=lambda area, done, total: calls.append((done, total))) as controller:
        run = controller.request_generation(small_area)
        run.wait(60)
    assert calls[-1] == (16, 16)
    assert run.completed_tiles == 16


def test_invalid_requests_rejected_synchronously():
    with GenerationController() as controller:
        with pytest.raises(InvalidAreaError):
            controller.request_generation((-2, -1, 1, 1, 640, 480))
        with pytest.raises(InvalidAreaError):
            controller.request_generation(ViewArea(1, -1, -2, 1, 640, 480))
        assert controller.state is GenerationState.IDLE


def test_requests_after_shutdown_rejected(small_area):
    controller = GenerationController()
    controller.shutdown()
    with pytest.raises(RuntimeError):
        controller.request_generation(small_area)


def test_wait_returns_current_result(small_area):
    with GenerationController() as controller:
        assert controller.wait() is None
        controller.request_generation(small_area)
        result = controller.wait(60)
    assert result is not None and result.area == small_area


def test_benchmark_reports_identical_images():
    area = ViewArea(-2.0, -1.0, 1.0, 1.0, 80, 60)
    results = benchmark_generation(area, EngineSettings(max_iterations=200), scales=(1, 5), pool_sizes=(1, 2))
    assert results['resolution'] == '80x60'
    assert len(results['runs']) == 4
    assert all(run['identical'] for run in results['runs'])
    assert {run['tiles'] for run in results['runs']} == {1, 25}


def test_buffer_allocation_failure_fails_run(small_area, recorder, monkeypatch):
    def no_memory(area, with_colors=False):
        raise MemoryError("Unable to allocate image buffer")

    monkeypatch.setattr('mandelbrot_generator.api.ImageBuffer', no_memory)

    with GenerationController(on_completed=recorder, pool_size=2) as controller:
        run = controller.request_generation(small_area)
        assert run.wait(10)
        with pytest.raises(MemoryError):
            controller.generate(small_area)

    assert run.state is GenerationState.FAILED
    assert isinstance(run.error, MemoryError)
    assert recorder.calls == []
