"""
Numba JIT compilation backend for the escape-time kernel.

This module provides JIT-compiled versions of the Mandelbrot iteration.
All kernels are compiled with ``nogil=True`` so the tile worker threads of
the scheduler execute them truly in parallel.
"""

import numpy as np
import logging

import numba
from numba import jit

logger = logging.getLogger(__name__)


@jit(nopython=True, nogil=True, cache=True)
def escape_time(c_real, c_imag, max_iter, escape_radius_sq):
    """
    Count iterations of ``z = z^2 + c`` from ``z = 0`` until escape.

    Args:
        c_real: Real part of c
        c_imag: Imaginary part of c
        max_iter: Maximum iterations
        escape_radius_sq: Squared escape radius

    Returns:
        Iteration count in ``[0, max_iter]``
    """
    zr = 0.0
    zi = 0.0
    k = 0
    while zr * zr + zi * zi < escape_radius_sq and k < max_iter:
        zr_new = zr * zr - zi * zi + c_real
        zi = 2.0 * zr * zi + c_imag
        zr = zr_new
        k += 1
    return k


@jit(nopython=True, nogil=True, cache=True)
def fill_row(out, y, x_start, min_real, min_imag, step_real, step_imag, max_iter, escape_radius_sq):
    """
    JIT-compiled kernel for one pixel row segment.

    Args:
        out: 1D int32 array receiving the counts of pixels ``x_start..x_start+len(out)``
        y: Absolute pixel row
        x_start: Absolute pixel column of ``out[0]``
        min_real, min_imag: Lower plane bounds of the full area
        step_real, step_imag: Pixel size of the full area
        max_iter: Maximum iterations
        escape_radius_sq: Squared escape radius
    """
    c_imag = min_imag + y * step_imag
    for i in range(out.shape[0]):
        c_real = min_real + (x_start + i) * step_real
        out[i] = escape_time(c_real, c_imag, max_iter, escape_radius_sq)


@jit(nopython=True, nogil=True, cache=True)
def fill_region(out, x_start, y_start, min_real, min_imag, step_real, step_imag, max_iter, escape_radius_sq):
    """
    JIT-compiled kernel for a rectangular block, single threaded.

    Args:
        out: 2D int32 array (rows, columns) receiving the counts
        x_start, y_start: Absolute pixel position of ``out[0, 0]``
        min_real, min_imag: Lower plane bounds of the full area
        step_real, step_imag: Pixel size of the full area
        max_iter: Maximum iterations
        escape_radius_sq: Squared escape radius
    """
    for j in range(out.shape[0]):
        c_imag = min_imag + (y_start + j) * step_imag
        for i in range(out.shape[1]):
            c_real = min_real + (x_start + i) * step_real
            out[j, i] = escape_time(c_real, c_imag, max_iter, escape_radius_sq)


def warm_up():
    """Compile the kernels ahead of the first timed run."""
    row = np.zeros(4, dtype=np.int32)
    fill_row(row, 0, 0, -2.0, -1.0, 0.5, 0.5, 10, 4.0)
    block = np.zeros((2, 2), dtype=np.int32)
    fill_region(block, 0, 0, -2.0, -1.0, 0.5, 0.5, 10, 4.0)
    logger.debug("Numba kernels compiled")


def numba_version() -> str:
    return numba.__version__
