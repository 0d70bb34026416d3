"""
Palette management and gradient configuration for escape-time coloring.

This module provides the cyclic RGB palettes sampled by the renderer, the
palette providers (control-point ramps, palette files, matplotlib colormaps
and built-in palettes), the gradient configuration that shapes the smooth
palette index, and the per-render gradient context that holds every derived
constant the tile kernel needs.
"""

import math
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, List, Tuple, Union, Optional, Sequence, NamedTuple
import logging

import numpy as np
from matplotlib import colormaps

from ..core.exceptions import InvalidConfigurationError
from ..acceleration.numba_backend import (
    ROOT_TOLERANCE,
    lerp,
    clamp_channel,
    normalize_index,
    sample_palette,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RgbValue:
    """RGB color with integer channels, nominally 0-255."""
    red: int
    green: int
    blue: int

    def to_tuple(self) -> Tuple[int, int, int]:
        """Convert to RGB tuple."""
        return (self.red, self.green, self.blue)

    def clamped(self) -> 'RgbValue':
        """Channels clamped to the byte range."""
        return RgbValue(clamp_channel(self.red), clamp_channel(self.green), clamp_channel(self.blue))

    @staticmethod
    def lerp_colors(a: 'RgbValue', b: 'RgbValue', alpha: float) -> 'RgbValue':
        """Interpolate each channel independently, truncating toward zero."""
        return RgbValue(
            int(lerp(a.red, b.red, alpha)),
            int(lerp(a.green, b.green, alpha)),
            int(lerp(a.blue, b.blue, alpha)),
        )


BLACK = RgbValue(0, 0, 0)

ColorLike = Union[RgbValue, Sequence[int]]


def _to_rgb(color: ColorLike) -> RgbValue:
    if isinstance(color, RgbValue):
        return color
    if isinstance(color, (tuple, list, np.ndarray)) and len(color) == 3:
        return RgbValue(int(color[0]), int(color[1]), int(color[2]))
    raise InvalidConfigurationError(f"Invalid color format: {color}")


class Palette:
    """Cyclic, read-only color table."""

    def __init__(self, colors: Sequence[ColorLike], name: str = "Custom"):
        """
        Initialize color palette.

        Args:
            colors: RGB colors, indexed cyclically
            name: Human-readable name for the palette
        """
        self.name = name
        self.colors: Tuple[RgbValue, ...] = tuple(_to_rgb(color) for color in colors)

        if not self.colors:
            raise InvalidConfigurationError("Palette must contain at least 1 color")

        self._array = np.array([color.to_tuple() for color in self.colors], dtype=np.int64)
        self._array.setflags(write=False)

    def __len__(self) -> int:
        return len(self.colors)

    def __getitem__(self, index: int) -> RgbValue:
        return self.colors[index % len(self.colors)]

    def __repr__(self) -> str:
        return f"Palette(name={self.name!r}, colors={len(self.colors)})"

    @property
    def array(self) -> np.ndarray:
        """Colors as a read-only int64 array of shape (n, 3)."""
        return self._array

    def color_at(self, index: float) -> RgbValue:
        """
        Interpolated color at a continuous index.

        Args:
            index: Any real index; wrapped into the palette range

        Returns:
            Interpolated color with byte channels
        """
        length = len(self.colors)
        wrapped = normalize_index(float(index), float(length))
        red, green, blue = sample_palette(wrapped, self._array, 0, 1, self._array[0])
        return RgbValue(red, green, blue)

    @classmethod
    def from_stops(cls, stops: Sequence[Tuple[float, ColorLike]], num_colors: int,
                   name: str = "Ramp") -> 'Palette':
        """
        Generate a linear ramp from control points.

        Args:
            stops: (position, color) pairs with positions increasing from 0 to 1
            num_colors: Number of palette entries to generate
            name: Palette name

        Returns:
            Palette of ``num_colors`` entries
        """
        if num_colors < 1:
            raise InvalidConfigurationError("num_colors must be >= 1")
        if len(stops) < 2:
            raise InvalidConfigurationError("A ramp needs at least 2 stops")

        positions = np.array([float(position) for position, _ in stops])
        values = np.array([_to_rgb(color).to_tuple() for _, color in stops], dtype=np.float64)

        if positions[0] != 0.0 or positions[-1] != 1.0:
            raise InvalidConfigurationError("Ramp stops must start at 0 and end at 1")
        if np.any(np.diff(positions) <= 0):
            raise InvalidConfigurationError("Ramp stop positions must be strictly increasing")

        # The palette is cyclic, so sample [0, 1) and let the last stop wrap
        t = np.arange(num_colors, dtype=np.float64) / num_colors
        channels = [np.interp(t, positions, values[:, c]).astype(np.int64) for c in range(3)]
        ramp = np.stack(channels, axis=1)

        return cls([tuple(row) for row in ramp], name=name)

    @classmethod
    def from_matplotlib(cls, cmap_name: str, n_samples: int = 256) -> 'Palette':
        """Create palette from matplotlib colormap."""
        try:
            cmap = colormaps[cmap_name]
        except KeyError:
            raise InvalidConfigurationError(f"Unknown matplotlib colormap '{cmap_name}'") from None

        t_values = np.linspace(0, 1, n_samples)
        rgba = cmap(t_values)
        colors = [(int(r * 255), int(g * 255), int(b * 255)) for r, g, b, _ in rgba]

        return cls(colors, name=cmap_name)

    def save_to_file(self, filepath: Path) -> None:
        """Save palette as whitespace-separated integer triples."""
        with open(filepath, 'w') as f:
            for color in self.colors:
                f.write(f"{color.red} {color.green} {color.blue}\n")

    @classmethod
    def load_from_file(cls, filepath: Path) -> 'Palette':
        """
        Load palette from a text file of "r g b" lines.

        Blank and malformed lines are skipped.
        """
        filepath = Path(filepath)
        colors = []

        with open(filepath, 'r') as f:
            for line_number, line in enumerate(f, start=1):
                parts = line.split()
                if not parts:
                    continue
                try:
                    r, g, b = int(parts[0]), int(parts[1]), int(parts[2])
                except (ValueError, IndexError):
                    logger.debug(f"Skipping malformed palette line {line_number} in {filepath}")
                    continue
                colors.append(RgbValue(r, g, b))

        if not colors:
            raise InvalidConfigurationError(f"No valid colors found in {filepath}")

        logger.info(f"Loaded palette {filepath.stem} with {len(colors)} colors")
        return cls(colors, name=filepath.stem)


# Control points of the default viewer palette
ULTRA_FRACTAL_STOPS = [
    (0.0, (0, 7, 100)),
    (0.16, (32, 107, 203)),
    (0.42, (237, 255, 255)),
    (0.6425, (255, 170, 0)),
    (0.8575, (0, 2, 0)),
    (1.0, (0, 7, 100)),
]

ULTRA_FRACTAL_COLORS = 768


class PaletteRegistry:
    """Registry of named palettes."""

    def __init__(self):
        """Initialize registry with built-in palettes."""
        self.palettes = self._create_builtin_palettes()

    def _create_builtin_palettes(self) -> Dict[str, Palette]:
        """Create built-in color palettes."""
        palettes = {}

        palettes['ultra_fractal'] = Palette.from_stops(
            ULTRA_FRACTAL_STOPS, ULTRA_FRACTAL_COLORS, name="Ultra Fractal")

        palettes['gray'] = Palette([
            (0, 0, 0),          # Black
            (255, 255, 255),    # White
        ], name="Grayscale")

        palettes['fire'] = Palette([
            (0, 0, 0),          # Black
            (127, 0, 0),        # Dark red
            (255, 0, 0),        # Red
            (255, 127, 0),      # Orange
            (255, 255, 0),      # Yellow
            (255, 255, 255),    # White
        ], name="Fire")

        palettes['ocean'] = Palette([
            (0, 0, 51),         # Deep blue
            (0, 0, 204),        # Blue
            (0, 127, 255),      # Light blue
            (0, 255, 255),      # Cyan
            (127, 255, 255),    # Light cyan
            (255, 255, 255),    # White
        ], name="Ocean")

        palettes['rainbow'] = Palette([
            (255, 0, 0),        # Red
            (255, 127, 0),      # Orange
            (255, 255, 0),      # Yellow
            (0, 255, 0),        # Green
            (0, 255, 255),      # Cyan
            (0, 0, 255),        # Blue
            (127, 0, 255),      # Purple
        ], name="Rainbow")

        for name in ['viridis', 'plasma', 'inferno', 'magma']:
            palettes[name] = Palette.from_matplotlib(name, 256)

        return palettes

    def add_palette(self, name: str, palette: Palette) -> None:
        """Add a custom color palette."""
        self.palettes[name] = palette
        logger.info(f"Added color palette: {name}")

    def get_palette(self, name: str) -> Palette:
        """Get color palette by name."""
        if name not in self.palettes:
            available = ', '.join(self.palettes.keys())
            raise InvalidConfigurationError(f"Unknown color palette '{name}'. Available: {available}")
        return self.palettes[name]

    def list_palettes(self) -> List[str]:
        """Get list of available color palettes."""
        return list(self.palettes.keys())


@dataclass(frozen=True)
class GradientConfig:
    """How raw iteration counts are shaped into a palette index."""

    max_iteration_color: Tuple[int, int, int] = (0, 0, 0)
    palette_bailout: float = 1e10
    min_iterations: float = 1.0
    log_index: bool = False
    root_index: bool = False
    root_exponent: float = 2.0
    index_scale: float = 1.0
    weight: float = 1.0

    def validate(self) -> None:
        """Validate parameter values that do not depend on the render."""
        if len(self.max_iteration_color) != 3:
            raise InvalidConfigurationError("max_iteration_color must be an (r, g, b) triple")
        for channel in self.max_iteration_color:
            if not 0 <= channel <= 255:
                raise InvalidConfigurationError(
                    f"max_iteration_color channels must be in [0, 255], got {self.max_iteration_color}")

        if not self.palette_bailout > 1.0:
            raise InvalidConfigurationError(
                f"palette_bailout must be greater than 1, got {self.palette_bailout}")

        if (self.log_index or self.root_index) and not self.min_iterations > 0:
            raise InvalidConfigurationError(
                f"min_iterations must be positive when a root or log stage is enabled, "
                f"got {self.min_iterations}")

        for name in ('root_exponent', 'index_scale', 'weight', 'min_iterations'):
            if not math.isfinite(getattr(self, name)):
                raise InvalidConfigurationError(f"{name} must be finite")

    def to_dict(self) -> Dict[str, object]:
        """Convert parameters to dictionary."""
        data = asdict(self)
        data['max_iteration_color'] = list(self.max_iteration_color)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> 'GradientConfig':
        """Create parameters from dictionary."""
        data = dict(data)
        if 'max_iteration_color' in data:
            data['max_iteration_color'] = tuple(int(c) for c in data['max_iteration_color'])
        return cls(**data)


class GradientContext(NamedTuple):
    """Per-render constants shared read-only by every tile worker."""

    palette: np.ndarray
    max_color: np.ndarray
    max_iterations: int
    bailout_squared: float
    epsilon: float
    half_over_log_bailout: float
    index_scale: float
    weight: float
    root_index: bool
    use_sqrt: bool
    root: float
    root_min_iterations: float
    log_index: bool
    log_of_log_base: float
    log_min_iterations: float

    @classmethod
    def build(cls, gradient: GradientConfig, palette: Palette, max_iterations: int,
              bailout: float, epsilon: float) -> 'GradientContext':
        """
        Precompute the derived gradient constants once per render.

        Args:
            gradient: Gradient configuration
            palette: Palette to sample
            max_iterations: Iteration cap
            bailout: Escape radius
            epsilon: Periodicity tolerance

        Returns:
            Context passed by value to every tile
        """
        gradient.validate()

        root = float(gradient.root_exponent)
        root_min_iterations = gradient.min_iterations ** root if gradient.root_index else 0.0

        log_of_log_base = 1.0
        log_min_iterations = 0.0
        if gradient.log_index:
            ratio = max_iterations / gradient.min_iterations
            log_base = math.log(ratio) if ratio > 0 else 0.0
            if log_base <= 0.0 or log_base == 1.0:
                raise InvalidConfigurationError(
                    f"Log gradient needs log(max_iterations / min_iterations) to be a valid "
                    f"logarithm base, got {log_base} for max_iterations={max_iterations}, "
                    f"min_iterations={gradient.min_iterations}")
            log_of_log_base = math.log(log_base)
            log_min_iterations = math.log(gradient.min_iterations) / log_of_log_base

        return cls(
            palette=np.array(palette.array, dtype=np.int64),
            max_color=np.array(gradient.max_iteration_color, dtype=np.int64),
            max_iterations=int(max_iterations),
            bailout_squared=float(bailout) * float(bailout),
            epsilon=float(epsilon),
            half_over_log_bailout=0.5 / math.log(gradient.palette_bailout),
            index_scale=float(gradient.index_scale),
            weight=float(gradient.weight),
            root_index=bool(gradient.root_index),
            use_sqrt=bool(gradient.root_index and abs(root - 2.0) < ROOT_TOLERANCE),
            root=root,
            root_min_iterations=float(root_min_iterations),
            log_index=bool(gradient.log_index),
            log_of_log_base=float(log_of_log_base),
            log_min_iterations=float(log_min_iterations),
        )
