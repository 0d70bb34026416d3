"""
Main API classes for Mandelbrot rendering.

This module provides the high-level interface: the render configuration,
the ``render`` entry point that maps a region onto a pixel rectangle with a
grid of tile workers, and a renderer that also resolves palettes and writes
the finished buffer to disk.
"""

import os
import time
import logging
from dataclasses import dataclass, field, asdict, replace
from pathlib import Path
from typing import Optional, Union, Dict, Any, Tuple, Sequence

from .core.exceptions import InvalidConfigurationError
from .core.math_functions import Region, PixelRect, recommend_max_iterations
from .core.pixel_buffer import PixelBuffer
from .acceleration.numba_backend import PERIODICITY_EPSILON
from .acceleration.tiling import TileScheduler, WorkerGrid, BACKENDS
from .rendering.coloring import GradientConfig, Palette, PaletteRegistry
from .rendering.image_output import ImageExporter, RenderMetadata

logger = logging.getLogger(__name__)

WORKERS_ENV_VAR = 'MANDELBROT_TILES_WORKERS'


def default_worker_grid() -> Tuple[int, int]:
    """Worker grid from the environment, else one strip per CPU."""
    env_value = os.environ.get(WORKERS_ENV_VAR)
    grid = WorkerGrid.parse(env_value) if env_value else WorkerGrid.default()
    return (grid.columns, grid.rows)


def render(worker_grid: Union[WorkerGrid, Tuple[int, int]], pixel_rect: PixelRect, region: Region,
           max_iterations: int, palette: Union[Palette, Sequence], gradient: Optional[GradientConfig] = None,
           bailout: float = 1e10) -> PixelBuffer:
    """
    Render ``region`` onto ``pixel_rect`` with one thread per tile.

    Args:
        worker_grid: Tile columns and rows
        pixel_rect: Target pixel rectangle
        region: Region of the complex plane (absolute or origin+extent)
        max_iterations: Iteration cap
        palette: Cyclic palette
        gradient: Gradient configuration
        bailout: Escape radius

    Returns:
        Completed BGR pixel buffer
    """
    return TileScheduler('thread').render(worker_grid, pixel_rect, region, max_iterations,
                                          palette, gradient, bailout)


@dataclass
class RenderConfig:
    """Configuration for rendering."""

    # Image parameters
    width: int = 1024
    height: int = 1024
    region: Tuple[float, float, float, float] = (-2.5, -1.0, 1.0, 1.0)  # real_min, imag_min, real_max, imag_max
    origin_and_extent: bool = False

    # Iteration parameters (None picks a budget from the region size)
    max_iterations: Optional[int] = None
    bailout: float = 1e10
    periodicity_epsilon: float = PERIODICITY_EPSILON

    # Coloring
    palette: str = 'ultra_fractal'
    palette_file: Optional[str] = None
    gradient: GradientConfig = field(default_factory=GradientConfig)

    # Performance
    worker_grid: Tuple[int, int] = field(default_factory=default_worker_grid)
    backend: str = 'thread'

    # Output
    jpeg_quality: int = 95
    save_metadata: bool = True

    def validate(self):
        """Validate configuration parameters."""
        if self.width <= 0 or self.height <= 0:
            raise InvalidConfigurationError("Width and height must be positive")

        if len(self.region) != 4:
            raise InvalidConfigurationError("region must be (real_min, imag_min, real_max, imag_max)")
        self.get_region().normalize()

        if self.max_iterations is not None and self.max_iterations < 1:
            raise InvalidConfigurationError(f"max_iterations must be >= 1, is {self.max_iterations}")

        if not self.bailout > 0:
            raise InvalidConfigurationError("bailout must be positive")

        if not self.periodicity_epsilon >= 0:
            raise InvalidConfigurationError("periodicity_epsilon must be >= 0")

        self.get_worker_grid()

        if self.backend not in BACKENDS:
            raise InvalidConfigurationError(f"Unknown backend '{self.backend}'. Available: {', '.join(BACKENDS)}")

        if not 1 <= self.jpeg_quality <= 100:
            raise InvalidConfigurationError("jpeg_quality must be in [1, 100]")

        self.gradient.validate()

    def get_region(self) -> Region:
        return Region.from_bounds(*self.region, origin_and_extent=self.origin_and_extent)

    def get_worker_grid(self) -> WorkerGrid:
        return WorkerGrid(*self.worker_grid)

    def get_pixel_rect(self) -> PixelRect:
        return PixelRect.from_size(self.width, self.height)

    def resolve_max_iterations(self) -> int:
        """Configured iteration cap, or the recommended one for the region."""
        if self.max_iterations is not None:
            return self.max_iterations
        return recommend_max_iterations(self.get_region())

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a JSON-friendly dictionary."""
        data = asdict(self)
        data['region'] = list(self.region)
        data['worker_grid'] = list(self.worker_grid)
        data['gradient'] = self.gradient.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RenderConfig':
        """Create configuration from dictionary, rejecting unknown keys."""
        data = dict(data)
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise InvalidConfigurationError(f"Unknown configuration parameter(s): {', '.join(sorted(unknown))}")

        if 'region' in data:
            data['region'] = tuple(float(v) for v in data['region'])
        if 'worker_grid' in data:
            grid = data['worker_grid']
            if isinstance(grid, str):
                parsed = WorkerGrid.parse(grid)
                data['worker_grid'] = (parsed.columns, parsed.rows)
            else:
                data['worker_grid'] = tuple(int(v) for v in grid)
        if isinstance(data.get('gradient'), dict):
            data['gradient'] = GradientConfig.from_dict(data['gradient'])

        return cls(**data)


class MandelbrotRenderer:
    """Render engine that resolves palettes and writes images."""

    def __init__(self, config: Optional[RenderConfig] = None):
        """
        Initialize renderer.

        Args:
            config: Rendering configuration (uses defaults if None)
        """
        self.config = config or RenderConfig()
        self.config.validate()

        self.palette_registry = PaletteRegistry()
        self.image_exporter = ImageExporter()
        self.scheduler = TileScheduler(self.config.backend)
        self.last_render_time: Optional[float] = None

        logger.info(f"MandelbrotRenderer initialized: {self.config.width}x{self.config.height}, "
                    f"grid={self.config.worker_grid}, backend={self.config.backend}")

    def get_palette(self) -> Palette:
        """Palette from ``palette_file`` if set, else the named built-in."""
        if self.config.palette_file:
            return Palette.load_from_file(Path(self.config.palette_file))
        return self.palette_registry.get_palette(self.config.palette)

    def render(self, output_path: Optional[Union[str, Path]] = None) -> PixelBuffer:
        """
        Render the configured region.

        Args:
            output_path: Optional output file path

        Returns:
            Completed pixel buffer
        """
        start_time = time.time()

        max_iterations = self.config.resolve_max_iterations()
        palette = self.get_palette()

        logger.info(f"Starting render: region={self.config.region}, max_iterations={max_iterations}, "
                    f"palette={palette.name}")

        buffer = self.scheduler.render(
            self.config.get_worker_grid(),
            self.config.get_pixel_rect(),
            self.config.get_region(),
            max_iterations,
            palette,
            self.config.gradient,
            self.config.bailout,
            self.config.periodicity_epsilon,
        )

        self.last_render_time = time.time() - start_time

        if output_path:
            self._save_image(buffer, Path(output_path), max_iterations, palette)

        logger.info(f"Render complete: {self.last_render_time:.2f}s")
        return buffer

    def _save_image(self, buffer: PixelBuffer, output_path: Path, max_iterations: int, palette: Palette):
        """Save rendered image with metadata."""
        metadata = None
        if self.config.save_metadata:
            metadata = RenderMetadata(
                region=self.config.get_region().normalize().to_tuple(),
                resolution=(self.config.width, self.config.height),
                max_iterations=max_iterations,
                bailout=self.config.bailout,
                palette=palette.name,
                worker_grid=tuple(self.config.worker_grid),
                backend=self.config.backend,
                render_time_seconds=self.last_render_time,
                gradient=self.config.gradient.to_dict(),
            )

        self.image_exporter.save_image(buffer, output_path, metadata, self.config.jpeg_quality)

    def update_config(self, **kwargs):
        """Update rendering configuration."""
        for key in kwargs:
            if not hasattr(self.config, key):
                raise InvalidConfigurationError(f"Unknown configuration parameter: {key}")

        self.config = replace(self.config, **kwargs)
        self.config.validate()

        if 'backend' in kwargs:
            self.scheduler = TileScheduler(self.config.backend)
