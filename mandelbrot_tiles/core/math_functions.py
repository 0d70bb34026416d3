"""
Coordinate mapping between pixel space and the complex plane.

This module provides the region and pixel-rectangle value types used by the
renderer, the pure scale/translation functions that map a pixel onto the
complex plane, and the iteration-budget advisor used by callers to pick a
default iteration cap for a given zoom depth.
"""

import math
from dataclasses import dataclass
from typing import Tuple
import logging

from .exceptions import InvalidConfigurationError

logger = logging.getLogger(__name__)


def scale(width: int, height: int, real_min: float, real_max: float,
          imag_min: float, imag_max: float) -> Tuple[float, float]:
    """
    Compute the per-pixel real and imaginary deltas.

    Args:
        width, height: Pixel dimensions (callers reject zero)
        real_min, real_max: Real axis bounds
        imag_min, imag_max: Imaginary axis bounds

    Returns:
        Tuple of (scale_real, scale_imag)
    """
    return (real_max - real_min) / width, (imag_max - imag_min) / height


def pixel_to_complex(px: int, py: int, scale_real: float, scale_imag: float,
                     real_start: float, imag_start: float) -> complex:
    """Translate a pixel position to its point on the complex plane."""
    return complex(px * scale_real + real_start, py * scale_imag + imag_start)


@dataclass(frozen=True)
class Region:
    """
    Rectangular region of the complex plane.

    When ``origin_and_extent`` is set, ``max`` holds (width, height) relative to
    ``min`` instead of an absolute corner; :meth:`normalize` resolves it.
    """

    min: complex
    max: complex
    origin_and_extent: bool = False

    @classmethod
    def from_bounds(cls, real_min: float, imag_min: float, real_max: float,
                    imag_max: float, origin_and_extent: bool = False) -> 'Region':
        """Create a region from four scalar coordinates."""
        return cls(complex(real_min, imag_min), complex(real_max, imag_max), origin_and_extent)

    @property
    def width(self) -> float:
        return self.max.real - self.min.real

    @property
    def height(self) -> float:
        return self.max.imag - self.min.imag

    def normalize(self) -> 'Region':
        """
        Resolve origin+extent mode and order the corners.

        Returns:
            Absolute region with min < max on both axes

        Raises:
            InvalidConfigurationError: If a coordinate is not finite or the
                region has zero width or height
        """
        for value in (self.min.real, self.min.imag, self.max.real, self.max.imag):
            if not math.isfinite(value):
                raise InvalidConfigurationError(f"Region coordinates must be finite, got {self}")

        corner = self.min + self.max if self.origin_and_extent else self.max

        real_min, real_max = sorted((self.min.real, corner.real))
        imag_min, imag_max = sorted((self.min.imag, corner.imag))

        if real_min == real_max or imag_min == imag_max:
            raise InvalidConfigurationError(
                f"Region must have non-zero width and height, got "
                f"[{real_min}, {real_max}] x [{imag_min}, {imag_max}]")

        return Region(complex(real_min, imag_min), complex(real_max, imag_max))

    def to_tuple(self) -> Tuple[float, float, float, float]:
        """Get (real_min, imag_min, real_max, imag_max)."""
        return (self.min.real, self.min.imag, self.max.real, self.max.imag)


@dataclass(frozen=True)
class PixelRect:
    """Half-open pixel rectangle [start_x, end_x) x [start_y, end_y)."""

    start_x: int
    start_y: int
    end_x: int
    end_y: int

    def __post_init__(self):
        if self.end_x <= self.start_x or self.end_y <= self.start_y:
            raise InvalidConfigurationError(
                f"Pixel rectangle must have positive width and height, got "
                f"({self.start_x}, {self.start_y})-({self.end_x}, {self.end_y})")

    @classmethod
    def from_size(cls, width: int, height: int) -> 'PixelRect':
        """Rectangle anchored at the origin."""
        return cls(0, 0, width, height)

    @property
    def width(self) -> int:
        return self.end_x - self.start_x

    @property
    def height(self) -> int:
        return self.end_y - self.start_y


class ComplexPlane:
    """Global mapping of a pixel rectangle onto a normalized region."""

    def __init__(self, region: Region, rect: PixelRect):
        """
        Initialize the mapping.

        Args:
            region: Target region (normalized here)
            rect: Pixel rectangle covering the region
        """
        self.region = region.normalize()
        self.rect = rect

        # Calculate scaling factors
        self.x_scale, self.y_scale = scale(
            rect.width, rect.height,
            self.region.min.real, self.region.max.real,
            self.region.min.imag, self.region.max.imag)

    @property
    def width(self) -> int:
        return self.rect.width

    @property
    def height(self) -> int:
        return self.rect.height

    def pixel_to_complex(self, px: int, py: int) -> complex:
        """Convert rectangle-relative pixel coordinates to a complex number."""
        return pixel_to_complex(px, py, self.x_scale, self.y_scale,
                                self.region.min.real, self.region.min.imag)

    def complex_to_pixel(self, c: complex) -> Tuple[int, int]:
        """Convert complex number to rectangle-relative pixel coordinates."""
        px = int((c.real - self.region.min.real) / self.x_scale)
        py = int((c.imag - self.region.min.imag) / self.y_scale)
        return px, py


def recommend_max_iterations(region: Region, minimum: int = 5000) -> int:
    """
    Suggest an iteration cap for a region based on its zoom depth.

    Smaller regions need more iterations to resolve the boundary. This is a
    heuristic default for callers; the renderer never applies it on its own.

    Args:
        region: Region to be rendered (origin+extent regions are resolved)
        minimum: Lower bound on the returned cap

    Returns:
        Recommended maximum iteration count
    """
    region = region.normalize()
    imag_delta = abs(region.height)
    real_delta = abs(region.width)
    f = math.sqrt(0.001 + 2.0 * min(imag_delta, real_delta))
    iterations = int(math.floor(347.0 / f))
    recommended = max(minimum, iterations)
    logger.debug(f"Recommended {recommended} iterations for region {region.to_tuple()}")
    return recommended
