from __future__ import annotations

import math
import os
from dataclasses import replace
from typing import Any, Dict, Optional, Tuple

import numpy as np
from PIL import Image

from termfractal.cache import ResultCache
from termfractal.engine import EscapeTimeEngine, GenerationRequest
from termfractal.quantizer import TERM_RGB, Detail, GlyphQuantizer, Palette, QuantizedGrid
from termfractal.util.logging_setup import get_logger
from termfractal.variants import FractalVariant
from termfractal.viewport import Viewport

def _ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)

def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t

def _exp_lerp(a: float, b: float, t: float) -> float:
    if a <= 0 or b <= 0:
        raise ValueError("Zoom values must be positive.")
    return math.exp(_lerp(math.log(a), math.log(b), t))

def build_request(
    cfg: Dict[str, Any],
    variant: FractalVariant,
    *,
    center: Optional[Tuple[float, float]] = None,
    zoom: Optional[float] = None,
    max_iterations: Optional[int] = None,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> GenerationRequest:
    display, fractal, perf = cfg["display"], cfg["fractal"], cfg["performance"]
    cx, cy = center if center is not None else fractal["default_center"]
    viewport = Viewport(
        center_x=float(cx),
        center_y=float(cy),
        zoom=float(zoom if zoom is not None else fractal["default_zoom"]),
        width=int(width if width is not None else display["default_width"]),
        height=int(height if height is not None else display["default_height"]),
    )
    return GenerationRequest(
        variant=variant,
        viewport=viewport,
        max_iterations=int(max_iterations if max_iterations is not None else fractal["default_max_iterations"]),
        performance_mode=perf["performance_mode"],
        quality_mode=display["quality_mode"],
        adaptive_sampling=perf["adaptive_sampling"],
        super_sampling=display["super_sampling"],
    )

def palette_of(cfg: Dict[str, Any]) -> Palette:
    return Palette.UNICODE if cfg["display"]["use_unicode"] else Palette.ASCII

def build_cache(cfg: Dict[str, Any], engine: EscapeTimeEngine) -> ResultCache:
    perf = cfg["performance"]
    return ResultCache(engine, capacity=perf["max_cache_size"], enabled=perf["enable_caching"])

def render_once(
    request: GenerationRequest,
    cache: ResultCache,
    quantizer: GlyphQuantizer,
    *,
    palette=Palette.UNICODE,
    detail=Detail.STANDARD,
    differential: bool = False,
) -> Tuple[np.ndarray, QuantizedGrid]:
    """One render tick: cached grid generation followed by quantization."""
    cache.observe(request)
    grid = cache.get_or_compute(request)
    return grid, quantizer.quantize(grid, palette, detail, differential=differential)

def format_frame(qgrid: QuantizedGrid, use_colors: bool) -> str:
    return qgrid.to_ansi() if use_colors else qgrid.to_text()

def save_png(qgrid: QuantizedGrid, path: str, cell_size: int = 8) -> str:
    if cell_size <= 0:
        raise ValueError("cell_size must be positive.")
    lut = np.array([TERM_RGB[c] for c in sorted(TERM_RGB)], dtype=np.uint8)
    buf = lut[qgrid.colors]
    img = Image.fromarray(buf)
    h, w = qgrid.shape
    img = img.resize((w * cell_size, h * cell_size), Image.NEAREST)
    img.save(path, format="PNG", optimize=True)
    return path

def _save_frame(text: str, frames_dir: str, frame_index: int) -> str:
    path = os.path.join(frames_dir, f"frame_{frame_index:06d}.txt")
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return path

def zoom_sequence(
    *,
    base: GenerationRequest,
    cache: ResultCache,
    quantizer: GlyphQuantizer,
    total_frames: int,
    end_zoom: float,
    frames_dir: str,
    palette=Palette.UNICODE,
    detail=Detail.STANDARD,
    differential: bool = False,
    use_colors: bool = False,
) -> Dict[str, Any]:
    """Render frames zooming from the base request's zoom to ``end_zoom``.

    Zoom is interpolated in log space so every frame magnifies by the same
    factor.
    """
    logger = get_logger()
    if total_frames <= 0:
        raise ValueError("total_frames must be positive.")
    vp = base.viewport
    start_zoom = vp.zoom

    _ensure_dir(frames_dir)
    logger.info("Zoom start total_frames=%s size=%sx%s zoom=%s..%s variant=%s",
                total_frames, vp.width, vp.height, start_zoom, end_zoom, base.variant.encode())

    for i in range(total_frames):
        t = 0.0 if total_frames == 1 else i / (total_frames - 1)
        zoom = _exp_lerp(start_zoom, end_zoom, t)
        request = replace(base, viewport=replace(vp, zoom=zoom))
        _, qgrid = render_once(request, cache, quantizer, palette=palette, detail=detail,
                               differential=differential)
        path = _save_frame(format_frame(qgrid, use_colors), frames_dir, i)
        logger.info("Saved frame %s -> %s (zoom=%.6g)", i, path, zoom)

    logger.info("Zoom complete frames_dir=%s cache=%s", frames_dir, cache.stats())
    return {
        "frames_dir": frames_dir,
        "total_frames": total_frames,
        "width": vp.width,
        "height": vp.height,
        "start_zoom": start_zoom,
        "end_zoom": end_zoom,
        "cache": cache.stats(),
    }

def describe_request(request: GenerationRequest) -> Dict[str, Any]:
    vp = request.viewport
    return {
        "variant": request.variant.encode(),
        "center": [vp.center_x, vp.center_y],
        "zoom": vp.zoom,
        "width": vp.width,
        "height": vp.height,
        "max_iterations": request.max_iterations,
        "performance_mode": request.performance_mode,
        "quality_mode": request.quality_mode,
        "adaptive_sampling": request.adaptive_sampling,
        "super_sampling": request.super_sampling,
    }
