import pytest

from mandelbrot_generator.core.view_area import ViewArea
from mandelbrot_generator.io.config import EngineSettings


@pytest.fixture
def small_area():
    return ViewArea(-2.0, -1.0, 1.0, 1.0, 96, 64)


@pytest.fixture
def scenario_area():
    return ViewArea(-2.0, -1.0, 1.0, 1.0, 640, 480)


@pytest.fixture
def slow_area():
    # Inside the disk |c| < 1/4, so every pixel runs to max_iterations
    return ViewArea(-0.15, -0.15, 0.15, 0.15, 160, 160)


@pytest.fixture
def outside_area():
    # Entirely outside the set: every pixel escapes after one iteration
    return ViewArea(2.0, 2.0, 3.0, 3.0, 48, 32)


@pytest.fixture
def slow_settings():
    return EngineSettings(max_iterations=200_000, tile_scale=16)
