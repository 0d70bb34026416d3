"""
Fork-join tile scheduler for parallel rendering.

This module partitions the target pixel rectangle into a fixed grid of
balanced tiles and renders every tile with its own worker. Workers write
straight into disjoint slices of one shared pixel buffer, so the only
synchronization is the final join.
"""

import os
import time
import logging
from dataclasses import dataclass
from typing import List, Tuple, Optional, Sequence, Union
from concurrent.futures import ThreadPoolExecutor, ProcessPoolExecutor, as_completed
from multiprocessing import shared_memory

import numpy as np

from ..core.exceptions import InvalidConfigurationError, RenderError
from ..core.math_functions import ComplexPlane, PixelRect, Region
from ..core.pixel_buffer import PixelBuffer, BYTES_PER_PIXEL
from ..rendering.coloring import GradientConfig, GradientContext, Palette
from .numba_backend import PERIODICITY_EPSILON, compile_kernels, render_tile_kernel

logger = logging.getLogger(__name__)

BACKENDS = ('thread', 'process', 'serial')


@dataclass(frozen=True)
class WorkerGrid:
    """Number of tiles along each axis."""
    columns: int = 1
    rows: int = 1

    def __post_init__(self):
        for name in ('columns', 'rows'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise InvalidConfigurationError(f"Worker grid {name} must be an integer >= 1, got {value!r}")

    @property
    def count(self) -> int:
        return self.columns * self.rows

    @classmethod
    def parse(cls, text: str) -> 'WorkerGrid':
        """Parse "COLSxROWS", e.g. "1x8"."""
        try:
            columns, rows = (int(part) for part in text.lower().split('x'))
        except ValueError:
            raise InvalidConfigurationError(f"Invalid worker grid '{text}'. Use COLSxROWS") from None
        return cls(columns, rows)

    @classmethod
    def default(cls) -> 'WorkerGrid':
        """One horizontal strip per available CPU."""
        return cls(1, os.cpu_count() or 1)


def split_extent(start: int, end: int, parts: int, index: int) -> Tuple[int, int]:
    """
    Bounds of part ``index`` when [start, end) is split into ``parts``.

    Part sizes differ by at most one; the remainder goes to the earliest parts.
    """
    size, remainder = divmod(end - start, parts)
    part_start = start + index * size + min(index, remainder)
    part_end = part_start + size + (1 if index < remainder else 0)
    return part_start, part_end


@dataclass(frozen=True)
class TileSpec:
    """Specification for a single tile in parallel rendering."""
    tile_id: int
    column: int
    row: int
    x_start: int
    x_end: int
    y_start: int
    y_end: int

    @property
    def width(self) -> int:
        return self.x_end - self.x_start

    @property
    def height(self) -> int:
        return self.y_end - self.y_start

    def get_origin(self, plane: ComplexPlane) -> complex:
        """Point of the tile's first pixel on the complex plane."""
        return plane.pixel_to_complex(self.x_start - plane.rect.start_x,
                                      self.y_start - plane.rect.start_y)


def create_tile_grid(rect: PixelRect, grid: WorkerGrid) -> List[TileSpec]:
    """
    Create a grid of tiles for parallel processing.

    Args:
        rect: Pixel rectangle to cover
        grid: Number of columns and rows

    Returns:
        Non-overlapping tiles covering ``rect`` exactly, in row-major order;
        empty tiles (more parts than pixels along an axis) are dropped
    """
    tiles = []
    tile_id = 0

    for row in range(grid.rows):
        y_start, y_end = split_extent(rect.start_y, rect.end_y, grid.rows, row)
        if y_end == y_start:
            continue
        for column in range(grid.columns):
            x_start, x_end = split_extent(rect.start_x, rect.end_x, grid.columns, column)
            if x_end == x_start:
                continue

            tiles.append(TileSpec(
                tile_id=tile_id,
                column=column,
                row=row,
                x_start=x_start,
                x_end=x_end,
                y_start=y_start,
                y_end=y_end,
            ))
            tile_id += 1

    logger.info(f"Created {len(tiles)} tiles for a {grid.columns}x{grid.rows} grid "
                f"over {rect.width}x{rect.height} pixels")
    return tiles


@dataclass(frozen=True)
class TileTask:
    """Immutable inputs of one tile worker."""
    tile: TileSpec
    scan_width: int
    offset_x: int
    offset_y: int
    real_start: float
    imag_start: float
    real_scale: float
    imag_scale: float
    context: GradientContext


def render_tile(image: np.ndarray, task: TileTask) -> float:
    """
    Render a single tile into the shared buffer.

    Args:
        image: Flat uint8 buffer of the whole rectangle
        task: Tile inputs

    Returns:
        Processing time in seconds
    """
    start_time = time.time()
    ctx = task.context

    render_tile_kernel(
        image, task.scan_width, task.offset_x, task.offset_y,
        task.tile.width, task.tile.height,
        task.real_start, task.imag_start, task.real_scale, task.imag_scale,
        ctx.max_iterations, ctx.bailout_squared, ctx.epsilon,
        ctx.palette, ctx.max_color, ctx.half_over_log_bailout,
        ctx.index_scale, ctx.weight, ctx.root_index, ctx.use_sqrt, ctx.root,
        ctx.root_min_iterations, ctx.log_index, ctx.log_of_log_base,
        ctx.log_min_iterations)

    processing_time = time.time() - start_time
    logger.debug(f"Tile {task.tile.tile_id} ({task.tile.width}x{task.tile.height}) "
                 f"done in {processing_time:.3f}s")
    return processing_time


def process_shared_tile(shm_name: str, size: int, task: TileTask) -> Tuple[int, float]:
    """
    Render a tile in a worker process into a shared memory block.

    Args:
        shm_name: Name of the block holding the pixel buffer
        size: Buffer size in bytes
        task: Tile inputs

    Returns:
        Tuple of (tile_id, processing_time)
    """
    shm = shared_memory.SharedMemory(name=shm_name)
    try:
        image = np.ndarray((size,), dtype=np.uint8, buffer=shm.buf)
        processing_time = render_tile(image, task)
        del image
    finally:
        shm.close()
    return task.tile.tile_id, processing_time


class TileScheduler:
    """Renders a region over a fixed tile grid with one worker per tile."""

    def __init__(self, backend: str = 'thread'):
        """
        Initialize scheduler.

        Args:
            backend: 'thread' (shared numpy buffer), 'process' (shared memory
                block) or 'serial' (calling thread only)
        """
        if backend not in BACKENDS:
            raise InvalidConfigurationError(f"Unknown backend '{backend}'. Available: {', '.join(BACKENDS)}")
        self.backend = backend

    def render(self, worker_grid: Union[WorkerGrid, Tuple[int, int]], rect: PixelRect,
               region: Region, max_iterations: int, palette: Union[Palette, Sequence],
               gradient: Optional[GradientConfig] = None, bailout: float = 1e10,
               epsilon: float = PERIODICITY_EPSILON) -> PixelBuffer:
        """
        Render ``region`` onto ``rect``.

        Args:
            worker_grid: Tile columns and rows
            rect: Target pixel rectangle; its start corner maps to region.min
            region: Region of the complex plane
            max_iterations: Iteration cap (>= 1)
            palette: Cyclic palette
            gradient: Gradient configuration (defaults when None)
            bailout: Escape radius
            epsilon: Periodicity tolerance on squared distances

        Returns:
            Completed pixel buffer of rect.width x rect.height pixels

        Raises:
            InvalidConfigurationError: Before any worker starts
            RenderError: If any tile worker fails
        """
        start_time = time.time()

        if not isinstance(worker_grid, WorkerGrid):
            worker_grid = WorkerGrid(*worker_grid)
        if not isinstance(palette, Palette):
            palette = Palette(palette)
        if gradient is None:
            gradient = GradientConfig()

        if isinstance(max_iterations, bool) or not isinstance(max_iterations, (int, np.integer)):
            raise InvalidConfigurationError(f"Max iterations must be an integer, is {max_iterations!r}")
        if max_iterations < 1:
            raise InvalidConfigurationError(f"Max iterations must be >= 1, is {max_iterations}")
        if not bailout > 0 or not np.isfinite(bailout):
            raise InvalidConfigurationError(f"Bailout must be positive and finite, is {bailout}")
        if not epsilon >= 0:
            raise InvalidConfigurationError(f"Periodicity epsilon must be >= 0, is {epsilon}")

        plane = ComplexPlane(region, rect)
        context = GradientContext.build(gradient, palette, int(max_iterations), bailout, epsilon)

        tiles = create_tile_grid(rect, worker_grid)
        tasks = [
            TileTask(
                tile=tile,
                scan_width=rect.width,
                offset_x=tile.x_start - rect.start_x,
                offset_y=tile.y_start - rect.start_y,
                real_start=float(plane.region.min.real),
                imag_start=float(plane.region.min.imag),
                real_scale=float(plane.x_scale),
                imag_scale=float(plane.y_scale),
                context=context,
            )
            for tile in tiles
        ]

        compile_kernels()

        logger.info(f"Rendering {rect.width}x{rect.height} over {len(tasks)} tiles "
                    f"({self.backend} backend, max_iterations={max_iterations})")

        if self.backend == 'process':
            buffer, processing_times = self._render_processes(tasks, rect)
        else:
            buffer = PixelBuffer.allocate(rect.width, rect.height)
            if self.backend == 'thread':
                processing_times = self._render_threads(tasks, buffer.data)
            else:
                processing_times = self._render_serial(tasks, buffer.data)

        total_time = time.time() - start_time
        total_processing_time = sum(processing_times)
        logger.info(f"Parallel rendering complete: {total_time:.2f}s total, "
                    f"{total_processing_time:.2f}s processing time, "
                    f"efficiency: {total_processing_time / max(total_time, 1e-9):.2f}")

        return buffer

    def _render_threads(self, tasks: List[TileTask], image: np.ndarray) -> List[float]:
        """One thread per tile, all writing into ``image``."""
        processing_times = []

        with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix='tile') as executor:
            future_to_tile = {executor.submit(render_tile, image, task): task.tile.tile_id
                              for task in tasks}
            try:
                for future in as_completed(future_to_tile):
                    processing_times.append(self._result(future, future_to_tile[future]))
            except RenderError:
                executor.shutdown(wait=True, cancel_futures=True)
                raise

        return processing_times

    def _render_serial(self, tasks: List[TileTask], image: np.ndarray) -> List[float]:
        """Every tile on the calling thread, in tile order."""
        processing_times = []
        for task in tasks:
            try:
                processing_times.append(render_tile(image, task))
            except Exception as e:
                logger.error(f"Tile {task.tile.tile_id} failed: {e}")
                raise RenderError(task.tile.tile_id, str(e)) from e
        return processing_times

    def _render_processes(self, tasks: List[TileTask], rect: PixelRect) -> Tuple[PixelBuffer, List[float]]:
        """One process per tile, all writing into a shared memory block."""
        size = rect.width * rect.height * BYTES_PER_PIXEL
        shm = shared_memory.SharedMemory(create=True, size=size)
        processing_times = []

        try:
            with ProcessPoolExecutor(max_workers=len(tasks)) as executor:
                future_to_tile = {executor.submit(process_shared_tile, shm.name, size, task): task.tile.tile_id
                                  for task in tasks}
                try:
                    for future in as_completed(future_to_tile):
                        _, processing_time = self._result(future, future_to_tile[future])
                        processing_times.append(processing_time)
                except RenderError:
                    executor.shutdown(wait=True, cancel_futures=True)
                    raise

            view = np.ndarray((size,), dtype=np.uint8, buffer=shm.buf)
            data = view.copy()
            del view
        finally:
            shm.close()
            shm.unlink()

        return PixelBuffer(data, rect.width, rect.height), processing_times

    @staticmethod
    def _result(future, tile_id: int):
        try:
            return future.result()
        except Exception as e:
            logger.error(f"Tile {tile_id} failed: {e}")
            raise RenderError(tile_id, str(e)) from e
