from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional

from termfractal.config import load_config, normalise_config, worker_count
from termfractal.engine import EscapeTimeEngine
from termfractal.pipeline import (
    build_cache,
    build_request,
    describe_request,
    format_frame,
    palette_of,
    render_once,
    save_png,
    zoom_sequence,
)
from termfractal.quantizer import GlyphQuantizer, legend
from termfractal.util.logging_setup import get_logger, logging_session
from termfractal.util.manifest import build_manifest, write_manifest
from termfractal.variants import VARIANT_NAMES, variant_from_name

def _add_view_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--fractal", type=str, default="mandelbrot", choices=VARIANT_NAMES, help="Fractal variant.")
    p.add_argument("--julia-c", type=float, nargs=2, default=[-0.7, 0.27015], metavar=("RE", "IM"),
                   help="Julia constant.")
    p.add_argument("--power", type=float, default=3.0, help="Multibrot exponent (>= 2).")
    p.add_argument("--equation", type=str, default="z^2 + c",
                   help="Descriptor for --fractal custom (rendered with the Mandelbrot rule).")
    p.add_argument("--center", type=float, nargs=2, default=None, metavar=("RE", "IM"),
                   help="Viewport center (defaults to config).")
    p.add_argument("--zoom", type=float, default=None, help="Zoom (defaults to config).")
    p.add_argument("--iterations", type=int, default=None, help="Iteration budget (defaults to config).")
    p.add_argument("--width", type=int, default=None, help="Columns (defaults to config).")
    p.add_argument("--height", type=int, default=None, help="Rows (defaults to config).")
    p.add_argument("--no-color", action="store_true", help="Plain glyphs without ANSI colors.")

def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="termfractal", description="Escape-time fractals rendered as terminal glyphs.")
    p.add_argument("--config", type=str, default=None, help="Path to config JSON. Defaults are used if omitted.")
    p.add_argument("--log-level", type=str, default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                   help="Log level.")
    p.add_argument("--log-file", type=str, default=None, help="Rotating log file path.")
    sub = p.add_subparsers(dest="cmd", required=True)

    r = sub.add_parser("render", help="Render one frame to stdout.")
    _add_view_args(r)
    r.add_argument("--png", type=str, default=None, help="Also write the colors as a PNG image.")
    r.add_argument("--cell-size", type=int, default=8, help="PNG pixels per cell.")
    r.add_argument("--legend", action="store_true", help="Print the palette legend after the frame.")

    z = sub.add_parser("zoom", help="Render a zoom sequence of text frames.")
    _add_view_args(z)
    z.add_argument("--frames", type=int, default=30, help="Number of frames.")
    z.add_argument("--end-zoom", type=float, default=1000.0, help="Zoom of the last frame.")
    z.add_argument("--frames-dir", type=str, default="frames", help="Output directory for frames.")
    z.add_argument("--manifest", type=str, default=os.path.join("artifacts", "run.json"),
                   help="Run manifest path (empty to skip).")

    return p

def _run_render(args, cfg, engine: EscapeTimeEngine) -> int:
    variant = variant_from_name(args.fractal, julia_c=complex(*args.julia_c), power=args.power,
                                equation=args.equation)
    request = build_request(cfg, variant, center=args.center, zoom=args.zoom, max_iterations=args.iterations,
                            width=args.width, height=args.height)
    palette = palette_of(cfg)
    detail = cfg["display"]["detail"]
    _, qgrid = render_once(request, build_cache(cfg, engine), GlyphQuantizer(), palette=palette, detail=detail)

    use_colors = cfg["display"]["use_colors"] and not args.no_color
    sys.stdout.write(format_frame(qgrid, use_colors))
    if args.legend:
        for label, glyph, color in legend(palette, detail):
            sys.stdout.write(f"{glyph} {label:>8} {color.name.lower()}\n")
    if args.png:
        save_png(qgrid, args.png, args.cell_size)
        get_logger().info("PNG written: %s", args.png)
    return 0

def _run_zoom(args, cfg, engine: EscapeTimeEngine) -> int:
    variant = variant_from_name(args.fractal, julia_c=complex(*args.julia_c), power=args.power,
                                equation=args.equation)
    base = build_request(cfg, variant, center=args.center, zoom=args.zoom, max_iterations=args.iterations,
                         width=args.width, height=args.height)
    summary = zoom_sequence(
        base=base,
        cache=build_cache(cfg, engine),
        quantizer=GlyphQuantizer(),
        total_frames=args.frames,
        end_zoom=args.end_zoom,
        frames_dir=args.frames_dir,
        palette=palette_of(cfg),
        detail=cfg["display"]["detail"],
        differential=cfg["display"]["differential"],
        use_colors=cfg["display"]["use_colors"] and not args.no_color,
    )
    if args.manifest:
        manifest = build_manifest(config=cfg, request=describe_request(base), engine_info=engine.info(),
                                  summary=summary)
        write_manifest(args.manifest, manifest)
        get_logger().info("Run manifest written: %s", args.manifest)
    return 0

def main(argv: Optional[list] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    log_level = getattr(logging, args.log_level.upper(), logging.WARNING)

    with logging_session(level=log_level, log_file=args.log_file) as (logger, queue):
        try:
            cfg = normalise_config(load_config(args.config))
            engine = EscapeTimeEngine(workers=worker_count(cfg), log_queue=queue, log_level=log_level)
            if args.cmd == "render":
                return _run_render(args, cfg, engine)
            if args.cmd == "zoom":
                return _run_zoom(args, cfg, engine)
            raise RuntimeError("Unknown command.")
        except ValueError as e:
            logger.error("%s", e)
            return 2

if __name__ == "__main__":
    sys.exit(main())
