"""Shared fixtures for the renderer tests."""

import pytest

from mandelbrot_tiles.core.math_functions import Region, PixelRect
from mandelbrot_tiles.rendering.coloring import Palette, GradientConfig


@pytest.fixture
def full_region():
    """The classic full view of the set."""
    return Region.from_bounds(-2.5, -1.0, 1.0, 1.0)


@pytest.fixture
def small_rect():
    return PixelRect.from_size(24, 16)


@pytest.fixture
def gray_palette():
    return Palette([(0, 0, 0), (255, 255, 255)], name="bw")


@pytest.fixture
def red_interior():
    """Gradient whose interior color is distinct from anything in the gray palette."""
    return GradientConfig(max_iteration_color=(255, 0, 0))
