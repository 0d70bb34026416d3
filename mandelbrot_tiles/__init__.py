"""
Multi-worker escape-time renderer for the Mandelbrot set.

This library renders any rectangle of the complex plane into a packed
24-bit pixel buffer using a fixed grid of tile workers that write into
disjoint slices of one shared buffer.

Key Features:
- Escape-time iteration with period-1/period-2 cycle detection
- Smooth coloring with optional root and logarithmic gradient stages
- Cyclic interpolated palettes (ramps, palette files, matplotlib colormaps)
- Thread, process and serial tile backends with byte-identical output
- Image export with embedded render metadata

Example usage:
    >>> from mandelbrot_tiles import render, Region, PixelRect, PaletteRegistry
    >>> palette = PaletteRegistry().get_palette('ultra_fractal')
    >>> buffer = render((1, 8), PixelRect.from_size(800, 600),
    ...                 Region.from_bounds(-2.5, -1.0, 1.0, 1.0), 1000, palette)
"""

__version__ = "1.0.0"
__author__ = "Mandelbrot Tiles Team"

from mandelbrot_tiles.core.exceptions import InvalidConfigurationError, RenderError
from mandelbrot_tiles.core.math_functions import (
    Region,
    PixelRect,
    ComplexPlane,
    scale,
    pixel_to_complex,
    recommend_max_iterations,
)
from mandelbrot_tiles.core.pixel_buffer import PixelBuffer
from mandelbrot_tiles.rendering.coloring import GradientConfig, Palette, PaletteRegistry, RgbValue
from mandelbrot_tiles.rendering.image_output import ImageExporter, RenderMetadata
from mandelbrot_tiles.acceleration.tiling import TileScheduler, WorkerGrid

# Main API classes
from mandelbrot_tiles.api import MandelbrotRenderer, RenderConfig, render
from mandelbrot_tiles.config import ConfigManager

__all__ = [
    "render",
    "MandelbrotRenderer",
    "RenderConfig",
    "ConfigManager",
    "Region",
    "PixelRect",
    "ComplexPlane",
    "scale",
    "pixel_to_complex",
    "recommend_max_iterations",
    "PixelBuffer",
    "GradientConfig",
    "Palette",
    "PaletteRegistry",
    "RgbValue",
    "ImageExporter",
    "RenderMetadata",
    "TileScheduler",
    "WorkerGrid",
    "InvalidConfigurationError",
    "RenderError",
]
