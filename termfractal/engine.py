from __future__ import annotations

import logging
import os
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from termfractal.util.logging_setup import get_logger, logging_initialiser
from termfractal.variants import BurningShip, Custom, FractalVariant, Julia, Mandelbrot, Multibrot, Tricorn
from termfractal.viewport import Viewport, plane_axes

ESCAPE_RADIUS_SQ = 4.0
ADAPTIVE_ZOOM_THRESHOLD = 10.0
PERFORMANCE_MIN_ITER = 20
QUALITY_MAX_ITER = 512

GRID_DTYPE = np.uint32

_G: Dict[str, Any] = {}


@dataclass(frozen=True)
class GenerationRequest:
    variant: FractalVariant
    viewport: Viewport
    max_iterations: int
    performance_mode: bool = False
    quality_mode: bool = False
    adaptive_sampling: bool = False
    super_sampling: bool = False

    def __post_init__(self) -> None:
        if int(self.max_iterations) <= 0:
            raise ValueError(f"max_iterations must be positive, got {self.max_iterations}")


def effective_budget(request: GenerationRequest) -> int:
    # performance_mode is checked first and wins when both flags are set
    n = int(request.max_iterations)
    if request.performance_mode:
        return max(n // 2, PERFORMANCE_MIN_ITER)
    if request.quality_mode:
        return min(n * 3 // 2, QUALITY_MAX_ITER)
    return n


Rule = Callable[[np.ndarray, np.ndarray, Any, Any], Tuple[np.ndarray, np.ndarray]]


def _square_step(zr, zi, cr, ci):
    return zr * zr - zi * zi + cr, 2.0 * zr * zi + ci


def _burning_ship_step(zr, zi, cr, ci):
    a = np.abs(zr)
    b = np.abs(zi)
    return a * a - b * b + cr, 2.0 * a * b + ci


def _tricorn_step(zr, zi, cr, ci):
    return zr * zr - zi * zi + cr, -2.0 * zr * zi + ci


def _power_step(power: float) -> Rule:
    def step(zr, zi, cr, ci):
        r = np.hypot(zr, zi) ** power
        theta = np.arctan2(zi, zr) * power
        return r * np.cos(theta) + cr, r * np.sin(theta) + ci
    return step


def iteration_rule(variant: FractalVariant) -> Rule:
    # Custom equations are not evaluated; they render with the Mandelbrot rule
    if isinstance(variant, (Mandelbrot, Julia, Custom)):
        return _square_step
    if isinstance(variant, BurningShip):
        return _burning_ship_step
    if isinstance(variant, Tricorn):
        return _tricorn_step
    if isinstance(variant, Multibrot):
        return _power_step(variant.power)
    raise ValueError(f"Unsupported fractal variant: {variant!r}")


def escape_counts(variant: FractalVariant, re: np.ndarray, im: np.ndarray, budget: int) -> np.ndarray:
    """Escape-time counts for arrays of plane coordinates.

    Mandelbrot-family variants start from z = 0 with c at the point; Julia
    starts from the point with its fixed c. A cell whose |z|^2 turns
    non-finite is treated as never escaping and gets the full budget.
    """
    step = iteration_rule(variant)
    shape = np.shape(re)
    pts_re = np.asarray(re, dtype=np.float64).reshape(-1)
    pts_im = np.asarray(im, dtype=np.float64).reshape(-1)
    julia = isinstance(variant, Julia)

    if julia:
        zr, zi = pts_re.copy(), pts_im.copy()
        cr, ci = variant.c.real, variant.c.imag
    else:
        zr, zi = np.zeros_like(pts_re), np.zeros_like(pts_im)

    counts = np.zeros(pts_re.shape, dtype=GRID_DTYPE)
    idx = np.arange(pts_re.size)

    with np.errstate(over="ignore", invalid="ignore"):
        mag = zr * zr + zi * zi
        counts[~np.isfinite(mag)] = budget
        live = mag <= ESCAPE_RADIUS_SQ
        idx, zr, zi = idx[live], zr[live], zi[live]

        for _ in range(budget):
            if idx.size == 0:
                break
            if not julia:
                cr, ci = pts_re[idx], pts_im[idx]
            zr, zi = step(zr, zi, cr, ci)
            counts[idx] += 1
            mag = zr * zr + zi * zi
            bad = ~np.isfinite(mag)
            if bad.any():
                counts[idx[bad]] = budget
            live = mag <= ESCAPE_RADIUS_SQ
            idx, zr, zi = idx[live], zr[live], zi[live]

    return counts.reshape(shape)


def _compute_band(variant: FractalVariant, viewport: Viewport, budget: int, step: int,
                  y0: int, y1: int) -> np.ndarray:
    xs, ys = plane_axes(viewport, step)
    re, im = np.meshgrid(xs, ys[y0:y1])
    return escape_counts(variant, re, im, budget)


def _init_worker(variant, viewport, budget, step, log_queue, log_level):
    _G["variant"] = variant
    _G["viewport"] = viewport
    _G["budget"] = budget
    _G["step"] = step
    if log_queue is not None:
        logging_initialiser(log_queue, log_level)


def _render_band(y0_y1: Tuple[int, int]):
    y0, y1 = y0_y1
    band = _compute_band(_G["variant"], _G["viewport"], _G["budget"], _G["step"], y0, y1)
    get_logger().debug("Band rows %s..%s done (%s)", y0, y1, _G["variant"].encode())
    return y0, band


def replicate_blocks(coarse: np.ndarray, height: int, width: int, factor: int = 2) -> np.ndarray:
    """Nearest-neighbour block replication of a coarse grid, cropped to size."""
    full = np.repeat(np.repeat(coarse, factor, axis=0), factor, axis=1)
    return np.ascontiguousarray(full[:height, :width])


def box_downsample(grid: np.ndarray, factor: int = 2) -> np.ndarray:
    """Floor of the mean over each factor x factor block.

    Edge blocks that run past the grid average only the samples they have.
    """
    h, w = grid.shape
    rows = np.arange(0, h, factor)
    cols = np.arange(0, w, factor)
    sums = np.add.reduceat(np.add.reduceat(grid.astype(np.uint64), rows, axis=0), cols, axis=1)
    row_n = np.minimum(rows + factor, h) - rows
    col_n = np.minimum(cols + factor, w) - cols
    n = np.outer(row_n, col_n).astype(np.uint64)
    return (sums // n).astype(grid.dtype)


class EscapeTimeEngine:
    """Computes iteration grids, fanning row bands out to a process pool.

    ``workers=1`` keeps everything in the calling process, as does any grid
    with no more rows than one band.
    """

    def __init__(self, *, workers: Optional[int] = None, band_height: int = 16,
                 log_queue=None, log_level: int = logging.INFO):
        if workers is not None and workers <= 0:
            raise ValueError("workers must be positive.")
        if band_height <= 0:
            raise ValueError("band_height must be positive.")
        self.workers = workers or os.cpu_count() or 1
        self.band_height = band_height
        self.log_queue = log_queue
        self.log_level = log_level
        self.calls = 0

    def info(self) -> Dict[str, Any]:
        return {"engine": "escape-time", "workers": self.workers, "band_height": self.band_height}

    def generate(self, request: GenerationRequest) -> np.ndarray:
        logger = get_logger()
        self.calls += 1
        budget = effective_budget(request)
        vp = request.viewport
        logger.debug("Generate start %s %sx%s zoom=%s budget=%s",
                     request.variant.encode(), vp.width, vp.height, vp.zoom, budget)

        if request.super_sampling:
            fine = self._sample(request.variant, vp.scaled(2), budget, request.adaptive_sampling)
            grid = box_downsample(fine, 2)
        else:
            grid = self._sample(request.variant, vp, budget, request.adaptive_sampling)

        logger.debug("Generate done %s", request.variant.encode())
        return grid

    def _sample(self, variant: FractalVariant, viewport: Viewport, budget: int, adaptive: bool) -> np.ndarray:
        if adaptive and viewport.zoom > ADAPTIVE_ZOOM_THRESHOLD:
            coarse = self._compute(variant, viewport, budget, 2)
            return replicate_blocks(coarse, viewport.height, viewport.width, 2)
        return self._compute(variant, viewport, budget, 1)

    def _compute(self, variant: FractalVariant, viewport: Viewport, budget: int, step: int) -> np.ndarray:
        rows = len(range(0, viewport.height, step))
        cols = len(range(0, viewport.width, step))

        if self.workers <= 1 or rows <= self.band_height:
            return _compute_band(variant, viewport, budget, step, 0, rows)

        bands: List[Tuple[int, int]] = []
        y = 0
        while y < rows:
            y1 = min(rows, y + self.band_height)
            bands.append((y, y1))
            y = y1

        buf = np.zeros((rows, cols), dtype=GRID_DTYPE)
        with ProcessPoolExecutor(
            max_workers=min(self.workers, len(bands)),
            initializer=_init_worker,
            initargs=(variant, viewport, budget, step, self.log_queue, self.log_level),
        ) as pool:
            for y0, band in pool.map(_render_band, bands):
                buf[y0:y0 + band.shape[0]] = band
        return buf
