"""
Numba JIT compilation backend for the escape-time rendering kernel.

This module provides JIT-compiled versions of the per-pixel pipeline:
escape-time iteration with periodicity detection, the smooth palette index
with its root/log gradient transforms, cyclic palette sampling and the
per-tile loop that writes BGR triples into a shared pixel buffer.

Every kernel is compiled with ``nogil=True`` so that tile workers running on
separate threads execute in parallel.
"""

import math
import time
import logging

import numpy as np
import numba
from numba import jit

from ..core.pixel_buffer import BYTES_PER_PIXEL

logger = logging.getLogger(__name__)

# Squared-distance tolerance used to detect period-1 and period-2 orbits
PERIODICITY_EPSILON = 1e-20

# Tolerance for treating the root exponent as exactly 2 (square root fast path)
ROOT_TOLERANCE = 1e-10

ONE_OVER_LOG2 = 1.0 / math.log(2.0)


@jit(nopython=True, nogil=True, cache=True)
def escape_time(x0, y0, max_iterations, bailout_squared, epsilon):
    """
    Iterate z = z^2 + c from z = 0 for a single point.

    The new iterate is compared against the current one and the one before
    it; once the orbit has settled into a period-1 or period-2 cycle within
    ``epsilon`` it can never escape and the point is reported as interior.

    Args:
        x0, y0: Real and imaginary parts of c
        max_iterations: Iteration cap
        bailout_squared: Squared escape radius
        epsilon: Squared-distance periodicity tolerance

    Returns:
        Tuple of (iterations, final_modulus_squared); iterations equal to
        max_iterations marks a non-escaping point
    """
    x = 0.0
    y = 0.0
    xp = 0.0
    yp = 0.0
    modulus_squared = 0.0
    iterations = 0

    while modulus_squared < bailout_squared and iterations < max_iterations:
        xtemp = x * x - y * y + x0
        ytemp = 2.0 * x * y + y0

        dx = xtemp - x
        dy = ytemp - y
        dxp = xtemp - xp
        dyp = ytemp - yp
        if dx * dx + dy * dy < epsilon or dxp * dxp + dyp * dyp < epsilon:
            iterations = max_iterations
            break

        xp = x
        yp = y
        x = xtemp
        y = ytemp
        modulus_squared = x * x + y * y
        iterations += 1

    return iterations, modulus_squared


@jit(nopython=True, nogil=True, cache=True)
def normalize_index(index, length):
    """
    Wrap a continuous palette index into [0, length) by floored modulo.

    Non-finite indices map to 0.
    """
    if not math.isfinite(index):
        return 0.0
    if index >= 0.0 and index < length:
        return index

    result = index - length * math.floor(index / length)
    # Rounding can land exactly on the upper bound or just below zero
    if result < 0.0 or result >= length:
        return 0.0
    return result


@jit(nopython=True, nogil=True, cache=True)
def smooth_index(iterations, modulus_squared, palette_length,
                 half_over_log_bailout, index_scale, weight,
                 root_index, use_sqrt, root, root_min_iterations,
                 log_index, log_of_log_base, log_min_iterations):
    """
    Continuous palette index for an escaped point.

    Applies the continuous iteration-count correction, the optional root
    stage and the optional logarithmic stage, then wraps the result into the
    palette range.

    Returns:
        Index in [0, palette_length)
    """
    smoothed = math.log(math.log(modulus_squared) * half_over_log_bailout) * ONE_OVER_LOG2
    index = index_scale * (iterations + 1 - weight * smoothed)

    if use_sqrt:
        if index >= 0.0:
            index = math.sqrt(index) - root_min_iterations
        else:
            index = math.nan
    elif root_index:
        if index >= 0.0:
            index = index ** root - root_min_iterations
        else:
            index = math.nan

    if log_index:
        if index > 0.0:
            index = math.log(index) / log_of_log_base - log_min_iterations
        else:
            index = math.nan

    return normalize_index(index, float(palette_length))


@jit(nopython=True, nogil=True, cache=True)
def lerp(v0, v1, t):
    """Linear interpolation, exact at both ends."""
    return (1.0 - t) * v0 + t * v1


@jit(nopython=True, nogil=True, cache=True)
def clamp_channel(value):
    """Truncate toward zero and clamp to a byte."""
    channel = int(value)
    if channel < 0:
        return 0
    if channel > 255:
        return 255
    return channel


@jit(nopython=True, nogil=True, cache=True)
def sample_palette(index, palette, iterations, max_iterations, max_color):
    """
    Map a continuous index to an RGB triple.

    Args:
        index: Normalized index in [0, len(palette))
        palette: int64 array of shape (n, 3)
        iterations: Iteration count of the pixel
        max_iterations: Iteration cap of the render
        max_color: int64 array (r, g, b) used for non-escaping points

    Returns:
        Tuple of (red, green, blue) bytes
    """
    if iterations >= max_iterations:
        return clamp_channel(max_color[0]), clamp_channel(max_color[1]), clamp_channel(max_color[2])

    colors = palette.shape[0]
    floor_index = math.floor(index)
    i = int(floor_index) % colors
    j = (i + 1) % colors
    frac = index - floor_index

    red = clamp_channel(lerp(palette[i, 0], palette[j, 0], frac))
    green = clamp_channel(lerp(palette[i, 1], palette[j, 1], frac))
    blue = clamp_channel(lerp(palette[i, 2], palette[j, 2], frac))
    return red, green, blue


@jit(nopython=True, nogil=True, cache=True)
def render_tile_kernel(image, scan_width, offset_x, offset_y, width, height,
                       real_start, imag_start, real_scale, imag_scale,
                       max_iterations, bailout_squared, epsilon,
                       palette, max_color, half_over_log_bailout,
                       index_scale, weight, root_index, use_sqrt, root,
                       root_min_iterations, log_index, log_of_log_base,
                       log_min_iterations):
    """
    Render one tile into its slice of the shared BGR buffer.

    ``offset_x``/``offset_y`` locate the tile inside the buffer whose rows are
    ``scan_width`` pixels wide. Points are mapped from buffer coordinates
    with the global origin ``real_start``/``imag_start``, so a pixel gets the
    same value whichever tile it falls in.
    """
    colors = palette.shape[0]

    for py in range(height):
        y0 = (offset_y + py) * imag_scale + imag_start
        for px in range(width):
            x0 = (offset_x + px) * real_scale + real_start

            iterations, modulus_squared = escape_time(
                x0, y0, max_iterations, bailout_squared, epsilon)

            index = 0.0
            if iterations < max_iterations:
                index = smooth_index(
                    iterations, modulus_squared, colors,
                    half_over_log_bailout, index_scale, weight,
                    root_index, use_sqrt, root, root_min_iterations,
                    log_index, log_of_log_base, log_min_iterations)

            red, green, blue = sample_palette(
                index, palette, iterations, max_iterations, max_color)

            offset = BYTES_PER_PIXEL * ((offset_y + py) * scan_width + (offset_x + px))
            image[offset] = blue
            image[offset + 1] = green
            image[offset + 2] = red


def compile_kernels() -> float:
    """
    Trigger JIT compilation of the tile kernel with the signature used by the
    renderer.

    Returns:
        Seconds spent (near zero once compiled or loaded from cache)
    """
    start_time = time.time()

    image = np.zeros(BYTES_PER_PIXEL, dtype=np.uint8)
    palette = np.zeros((1, 3), dtype=np.int64)
    max_color = np.zeros(3, dtype=np.int64)
    render_tile_kernel(image, 1, 0, 0, 1, 1,
                       0.0, 0.0, 1.0, 1.0,
                       1, 4.0, PERIODICITY_EPSILON,
                       palette, max_color, 0.5,
                       1.0, 1.0, False, False, 2.0,
                       0.0, False, 1.0,
                       0.0)

    elapsed = time.time() - start_time
    logger.debug(f"Numba {numba.__version__} kernels ready in {elapsed:.3f}s")
    return elapsed
