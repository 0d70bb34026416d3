"""
Command-line interface for Mandelbrot rendering.

This module provides a CLI for rendering regions of the Mandelbrot set to
image files, inspecting the available palettes and benchmarking worker-grid
layouts.
"""

import click
import sys
import os
from pathlib import Path
from typing import Optional, Callable, Any
import logging
import time

import numba
import numpy as np

from .. import __version__
from ..api import MandelbrotRenderer, RenderConfig, render
from ..config import ConfigManager
from ..core.exceptions import InvalidConfigurationError, RenderError
from ..core.math_functions import Region, PixelRect, recommend_max_iterations
from ..acceleration.tiling import WorkerGrid, BACKENDS
from ..rendering.coloring import GradientConfig, PaletteRegistry

logger = logging.getLogger(__name__)


def _parse_or_default(value: Optional[str], converter: Callable[[str], Any], default: Any, name: str) -> Any:
    """Convert user input, falling back to ``default`` with a warning when it is invalid."""
    if value is None:
        return default
    try:
        return converter(value)
    except (ValueError, InvalidConfigurationError) as e:
        logger.warning(f"Invalid {name} '{value}' ({e}); using default {default!r}")
        return default


def _positive_int(text: str) -> int:
    value = int(text)
    if value < 1:
        raise ValueError("must be >= 1")
    return value


def _positive_float(text: str) -> float:
    value = float(text)
    if not value > 0:
        raise ValueError("must be positive")
    return value


def _parse_region(origin_and_extent: bool) -> Callable[[str], tuple]:
    def parse(text: str) -> tuple:
        values = tuple(float(part.strip()) for part in text.split(','))
        if len(values) != 4:
            raise ValueError("expected 4 comma-separated numbers")
        Region.from_bounds(*values, origin_and_extent=origin_and_extent).normalize()
        return values
    return parse


def _parse_grid(text: str) -> tuple:
    grid = WorkerGrid.parse(text)
    return (grid.columns, grid.rows)


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--quiet', '-q', is_flag=True, help='Suppress most output')
@click.pass_context
def main(ctx, version, verbose, quiet):
    """
    Mandelbrot tiles - multi-worker escape-time renderer.

    Render any rectangle of the complex plane to an image using a grid of
    independent tile workers.
    """
    # Setup logging
    if quiet:
        logging.basicConfig(level=logging.ERROR)
    elif verbose:
        logging.basicConfig(level=logging.DEBUG,
                            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    else:
        logging.basicConfig(level=logging.INFO,
                            format='%(levelname)s: %(message)s')

    if version:
        click.echo(f"mandelbrot-tiles v{__version__}")
        click.echo(f"Python: {sys.version}")
        click.echo(f"Numba: {numba.__version__}")

        if ctx.invoked_subcommand is None:
            sys.exit(0)

    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose


@main.command('render')
@click.argument('output', type=click.Path())
@click.option('--config', 'config_file', type=click.Path(exists=True), help='JSON configuration file')
@click.option('--width', '-w', help='Image width')
@click.option('--height', '-h', help='Image height')
@click.option('--region', help='Region "real_min,imag_min,real_max,imag_max"')
@click.option('--origin-extent', is_flag=True, help='Read --region as "real,imag,width,height"')
@click.option('--max-iter', help='Maximum iterations (default: picked from the region size)')
@click.option('--bailout', help='Escape radius')
@click.option('--workers', help='Worker grid COLSxROWS, e.g. 1x8')
@click.option('--backend', type=click.Choice(BACKENDS), help='Tile worker backend')
@click.option('--palette', help='Built-in palette name')
@click.option('--palette-file', type=click.Path(exists=True), help='Palette file of "r g b" lines')
@click.option('--log-index/--no-log-index', default=None, help='Logarithmic gradient stage')
@click.option('--root-index/--no-root-index', default=None, help='Root gradient stage')
@click.option('--root-exponent', type=float, help='Exponent of the root stage')
@click.option('--min-iterations', type=float, help='Minimum iterations for root/log stages')
@click.option('--index-scale', type=float, help='Palette index scale')
@click.option('--weight', type=float, help='Weight of the smoothing term')
@click.pass_context
def render_command(ctx, output, config_file, width, height, region, origin_extent, max_iter,
                   bailout, workers, backend, palette, palette_file, **gradient_options):
    """
    Render a region to an image file.

    OUTPUT: Output image path (.png, .bmp, .tif, .jpg)
    """
    try:
        if config_file:
            config = ConfigManager().load_render_config(config_file)
        else:
            config = RenderConfig()

        config.width = _parse_or_default(width, _positive_int, config.width, 'width')
        config.height = _parse_or_default(height, _positive_int, config.height, 'height')
        if origin_extent:
            config.origin_and_extent = True
        config.region = _parse_or_default(region, _parse_region(config.origin_and_extent),
                                          config.region, 'region')
        config.max_iterations = _parse_or_default(max_iter, _positive_int, config.max_iterations, 'max-iter')
        config.bailout = _parse_or_default(bailout, _positive_float, config.bailout, 'bailout')
        config.worker_grid = _parse_or_default(workers, _parse_grid, config.worker_grid, 'workers')

        if backend:
            config.backend = backend
        if palette:
            config.palette = palette
        if palette_file:
            config.palette_file = palette_file

        gradient_overrides = {k: v for k, v in gradient_options.items() if v is not None}
        if gradient_overrides:
            gradient = config.gradient.to_dict()
            gradient.update(gradient_overrides)
            config.gradient = GradientConfig.from_dict(gradient)

        renderer = MandelbrotRenderer(config)

        click.echo(f"Rendering {config.width}x{config.height} with a "
                   f"{config.worker_grid[0]}x{config.worker_grid[1]} worker grid...")
        renderer.render(Path(output))

        click.echo(f"Render complete: {renderer.last_render_time:.2f}s")
        click.echo(f"Saved: {output}")

    except (InvalidConfigurationError, RenderError, ValueError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        if ctx.obj.get('verbose'):
            import traceback
            traceback.print_exc()
        sys.exit(1)


@main.command()
def list_palettes():
    """List available color palettes."""
    registry = PaletteRegistry()

    click.echo("Available color palettes:")
    for name in registry.list_palettes():
        click.echo(f"  {name} ({len(registry.get_palette(name))} colors)")


@main.command()
def system_info():
    """Display system capabilities and the default worker grid."""
    cpu_count = os.cpu_count() or 1
    config = RenderConfig()

    click.echo("System Information:")
    click.echo(f"  CPU cores: {cpu_count}")
    click.echo(f"  Numba: {numba.__version__} (threading layer: {numba.config.THREADING_LAYER})")
    click.echo(f"  NumPy: {np.__version__}")
    click.echo(f"  Default worker grid: {config.worker_grid[0]}x{config.worker_grid[1]}")
    click.echo(f"  Recommended iterations for default region: "
               f"{recommend_max_iterations(config.get_region())}")


@main.command()
@click.option('--size', type=str, default='800x800', help='Benchmark image size (widthxheight)')
@click.option('--iterations', type=int, default=1000, help='Maximum iterations for benchmark')
@click.pass_context
def benchmark(ctx, size, iterations):
    """
    Compare worker-grid layouts and check that they agree byte for byte.
    """
    try:
        try:
            width, height = map(int, size.split('x'))
        except ValueError:
            click.echo("Error: Invalid size format. Use 'widthxheight'", err=True)
            sys.exit(1)

        cpu_count = os.cpu_count() or 1
        layouts = [WorkerGrid(1, 1), WorkerGrid(1, cpu_count), WorkerGrid(cpu_count, 1)]
        if cpu_count >= 4:
            layouts.append(WorkerGrid(2, cpu_count // 2))

        palette = PaletteRegistry().get_palette('ultra_fractal')
        rect = PixelRect.from_size(width, height)
        region = Region.from_bounds(-2.5, -1.0, 1.0, 1.0)

        click.echo("Mandelbrot tiles benchmark")
        click.echo(f"Image size: {width}x{height} ({width * height:,} pixels)")
        click.echo(f"Max iterations: {iterations}")
        click.echo("")

        reference = None
        for grid in layouts:
            start_time = time.time()
            buffer = render(grid, rect, region, iterations, palette)
            elapsed = time.time() - start_time

            if reference is None:
                reference = buffer
            identical = np.array_equal(reference.data, buffer.data)

            click.echo(f"  {grid.columns}x{grid.rows}: {elapsed:.2f}s "
                       f"({width * height / elapsed:,.0f} pixels/sec)"
                       f"{'' if identical else '  MISMATCH'}")

    except (InvalidConfigurationError, RenderError) as e:
        click.echo(f"Error: {e}", err=True)
        if ctx.obj.get('verbose'):
            import traceback
            traceback.print_exc()
        sys.exit(1)


@main.command()
@click.option('--output', '-o', type=click.Path(), default='mandelbrot.json', help='Output file path')
def init_config(output):
    """Write the default configuration as JSON."""
    ConfigManager().save_config(RenderConfig(), output)
    click.echo(f"Configuration template saved: {output}")


@main.command()
@click.argument('config_file', type=click.Path(exists=True))
@click.pass_context
def validate_config(ctx, config_file):
    """Validate a configuration file."""
    try:
        ConfigManager().load_render_config(config_file)
        click.echo(f"Configuration is valid: {config_file}")
    except InvalidConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
