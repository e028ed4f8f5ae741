from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

HALF_EXTENT = 2.0


@dataclass(frozen=True)
class Viewport:
    center_x: float
    center_y: float
    zoom: float
    width: int
    height: int

    def __post_init__(self) -> None:
        if not (math.isfinite(self.zoom) and self.zoom > 0):
            raise ValueError(f"zoom must be a positive finite number, got {self.zoom!r}")
        if not (math.isfinite(self.center_x) and math.isfinite(self.center_y)):
            raise ValueError("center must be finite.")
        if int(self.width) <= 0 or int(self.height) <= 0:
            raise ValueError(f"width/height must be positive, got {self.width}x{self.height}")

    def scaled(self, factor: int) -> "Viewport":
        """Same plane window sampled on a grid `factor` times denser per axis."""
        return Viewport(self.center_x, self.center_y, self.zoom, self.width * factor, self.height * factor)


def plane_bounds(viewport: Viewport) -> Tuple[float, float, float, float]:
    half = HALF_EXTENT / viewport.zoom
    return (
        viewport.center_x - half,
        viewport.center_x + half,
        viewport.center_y - half,
        viewport.center_y + half,
    )


def _scales(viewport: Viewport) -> Tuple[float, float, float, float]:
    x_min, x_max, y_min, y_max = plane_bounds(viewport)
    x_scale = (x_max - x_min) / viewport.width
    y_scale = (y_max - y_min) / viewport.height
    return x_min, x_scale, y_min, y_scale


def pixel_to_plane(viewport: Viewport, px: float, py: float) -> Tuple[float, float]:
    x_min, x_scale, y_min, y_scale = _scales(viewport)
    return x_min + px * x_scale, y_min + py * y_scale


def plane_axes(viewport: Viewport, step: int = 1) -> Tuple[np.ndarray, np.ndarray]:
    """Real and imaginary axis samples for every `step`-th pixel.

    Uses the same float64 operations as `pixel_to_plane`, so each sample is
    bit-identical to the scalar mapping of its pixel.
    """
    x_min, x_scale, y_min, y_scale = _scales(viewport)
    xs = np.arange(0, viewport.width, step, dtype=np.float64)
    ys = np.arange(0, viewport.height, step, dtype=np.float64)
    return x_min + xs * x_scale, y_min + ys * y_scale
