import math

import pytest

from mandelbrot_tiles.core.exceptions import InvalidConfigurationError
from mandelbrot_tiles.core.math_functions import (
    ComplexPlane,
    PixelRect,
    Region,
    pixel_to_complex,
    recommend_max_iterations,
    scale,
)


class TestScale:
    def test_full_view(self):
        assert scale(4, 4, -2.5, 1.0, -1.0, 1.0) == (0.875, 0.5)

    def test_pixel_to_complex(self):
        assert pixel_to_complex(0, 0, 0.875, 0.5, -2.5, -1.0) == complex(-2.5, -1.0)
        assert pixel_to_complex(2, 2, 0.875, 0.5, -2.5, -1.0) == complex(-0.75, 0.0)
        assert pixel_to_complex(3, 1, 0.875, 0.5, -2.5, -1.0) == complex(0.125, -0.5)


class TestRegion:
    def test_normalize_keeps_ordered_region(self, full_region):
        assert full_region.normalize().to_tuple() == (-2.5, -1.0, 1.0, 1.0)

    def test_normalize_swaps_corners(self):
        region = Region(complex(1, 1), complex(-1, -1)).normalize()
        assert region.min == complex(-1, -1)
        assert region.max == complex(1, 1)

    def test_origin_and_extent(self):
        region = Region(complex(-2, -1), complex(3, 2), origin_and_extent=True).normalize()
        assert region.to_tuple() == (-2.0, -1.0, 1.0, 1.0)
        assert not region.origin_and_extent

    def test_negative_extent(self):
        region = Region(complex(0, 0), complex(-1, -0.5), origin_and_extent=True).normalize()
        assert region.to_tuple() == (-1.0, -0.5, 0.0, 0.0)

    def test_from_bounds(self):
        region = Region.from_bounds(-2.0, -1.5, 1.0, 1.5)
        assert region.width == 3.0
        assert region.height == 3.0

    @pytest.mark.parametrize("bounds", [
        (0.0, -1.0, 0.0, 1.0),
        (-1.0, 0.5, 1.0, 0.5),
    ])
    def test_zero_size_rejected(self, bounds):
        with pytest.raises(InvalidConfigurationError):
            Region.from_bounds(*bounds).normalize()

    def test_zero_extent_rejected(self):
        with pytest.raises(InvalidConfigurationError):
            Region(complex(1, 1), complex(0, 2), origin_and_extent=True).normalize()

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
    def test_non_finite_rejected(self, value):
        with pytest.raises(InvalidConfigurationError):
            Region.from_bounds(value, -1.0, 1.0, 1.0).normalize()

    def test_invalid_configuration_is_value_error(self):
        with pytest.raises(ValueError):
            Region.from_bounds(0.0, 0.0, 0.0, 0.0).normalize()


class TestPixelRect:
    def test_size(self):
        rect = PixelRect(10, 20, 18, 26)
        assert rect.width == 8
        assert rect.height == 6

    @pytest.mark.parametrize("corners", [(0, 0, 0, 5), (0, 0, 5, 0), (5, 5, 3, 8)])
    def test_empty_rejected(self, corners):
        with pytest.raises(InvalidConfigurationError):
            PixelRect(*corners)


class TestComplexPlane:
    def test_mapping(self, full_region):
        plane = ComplexPlane(full_region, PixelRect.from_size(4, 4))
        assert plane.x_scale == 0.875
        assert plane.y_scale == 0.5
        assert plane.pixel_to_complex(0, 0) == complex(-2.5, -1.0)
        assert plane.complex_to_pixel(complex(-0.75, 0.0)) == (2, 2)

    def test_normalizes_region(self):
        plane = ComplexPlane(Region(complex(1, 1), complex(-1, -1)), PixelRect.from_size(2, 2))
        assert plane.pixel_to_complex(0, 0) == complex(-1, -1)
        assert plane.pixel_to_complex(1, 1) == complex(0, 0)


class TestRecommendMaxIterations:
    def test_wide_region_uses_minimum(self, full_region):
        assert recommend_max_iterations(full_region) == 5000

    def test_deep_zoom(self):
        region = Region.from_bounds(-0.75, 0.1, -0.75 + 1e-6, 0.1 + 1e-6)
        smaller = min(region.width, region.height)
        expected = int(math.floor(347.0 / math.sqrt(0.001 + 2.0 * smaller)))
        assert expected > 5000
        assert recommend_max_iterations(region) == expected

    def test_uses_smaller_side(self):
        tall = Region.from_bounds(0.0, 0.0, 1e-6, 10.0)
        narrow = Region.from_bounds(0.0, 0.0, 10.0, 1e-6)
        assert recommend_max_iterations(tall) == recommend_max_iterations(narrow)

    def test_custom_minimum(self, full_region):
        assert recommend_max_iterations(full_region, minimum=10) == int(347.0 / math.sqrt(0.001 + 4.0))
