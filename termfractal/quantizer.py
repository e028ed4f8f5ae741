"""Iteration counts to character cells.

Each (palette, detail) pair selects a fixed table of half-open count ranges.
The last range is open ended and holds the in-set glyph. Lookups depend on
nothing but the count and the two selectors.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np


class TermColor(IntEnum):
    """The 16 terminal colors, in ANSI order."""

    BLACK = 0
    RED = 1
    GREEN = 2
    YELLOW = 3
    BLUE = 4
    MAGENTA = 5
    CYAN = 6
    GRAY = 7
    DARK_GRAY = 8
    LIGHT_RED = 9
    LIGHT_GREEN = 10
    LIGHT_YELLOW = 11
    LIGHT_BLUE = 12
    LIGHT_MAGENTA = 13
    LIGHT_CYAN = 14
    WHITE = 15


# RGB used for image export
TERM_RGB = {
    TermColor.BLACK: (0, 0, 0),
    TermColor.RED: (170, 0, 0),
    TermColor.GREEN: (0, 170, 0),
    TermColor.YELLOW: (170, 85, 0),
    TermColor.BLUE: (0, 0, 170),
    TermColor.MAGENTA: (170, 0, 170),
    TermColor.CYAN: (0, 170, 170),
    TermColor.GRAY: (170, 170, 170),
    TermColor.DARK_GRAY: (85, 85, 85),
    TermColor.LIGHT_RED: (255, 85, 85),
    TermColor.LIGHT_GREEN: (85, 255, 85),
    TermColor.LIGHT_YELLOW: (255, 255, 85),
    TermColor.LIGHT_BLUE: (85, 85, 255),
    TermColor.LIGHT_MAGENTA: (255, 85, 255),
    TermColor.LIGHT_CYAN: (85, 255, 255),
    TermColor.WHITE: (255, 255, 255),
}


class Palette(str, Enum):
    ASCII = "ascii"
    UNICODE = "unicode"


class Detail(str, Enum):
    STANDARD = "standard"
    HIGH = "high"


class QuantizedCell(NamedTuple):
    glyph: str
    color: TermColor


BLANK = QuantizedCell(" ", TermColor.BLACK)


class Bucket(NamedTuple):
    lower: int
    upper: Optional[int]  # exclusive, None for the open-ended last bucket
    glyph: str
    color: TermColor

    def contains(self, count: int) -> bool:
        return count >= self.lower and (self.upper is None or count < self.upper)

    @property
    def label(self) -> str:
        if self.upper is None:
            return f"{self.lower}+"
        return f"{self.lower}-{self.upper - 1}"


class GlyphTable:
    def __init__(self, name: str, rows: Sequence[Tuple[int, str, TermColor]]):
        lowers = [r[0] for r in rows]
        if not lowers or lowers[0] != 0:
            raise ValueError(f"{name}: first range must start at 0")
        if any(b <= a for a, b in zip(lowers, lowers[1:])):
            raise ValueError(f"{name}: range bounds must be strictly increasing")
        if any(len(r[1]) != 1 for r in rows):
            raise ValueError(f"{name}: glyphs must be single characters")
        self.name = name
        uppers: List[Optional[int]] = list(lowers[1:]) + [None]
        self.buckets = tuple(Bucket(lo, up, g, TermColor(c)) for (lo, g, c), up in zip(rows, uppers))
        self._lowers = lowers
        self._np_lowers = np.array(lowers, dtype=np.uint64)
        self._np_glyphs = np.array([b.glyph for b in self.buckets], dtype="<U1")
        self._np_colors = np.array([int(b.color) for b in self.buckets], dtype=np.uint8)

    @property
    def in_set_threshold(self) -> int:
        return self.buckets[-1].lower

    def bucket(self, count: int) -> Bucket:
        if count < 0:
            raise ValueError("iteration counts are non-negative")
        return self.buckets[bisect.bisect_right(self._lowers, count) - 1]

    def indices(self, counts: np.ndarray) -> np.ndarray:
        return np.searchsorted(self._np_lowers, counts.astype(np.uint64, copy=False), side="right") - 1

    def lookup(self, counts: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        idx = self.indices(counts)
        return self._np_glyphs[idx], self._np_colors[idx]


C = TermColor

_STANDARD = [
    # lower, ascii, unicode, color
    (0, " ", " ", C.BLACK),
    (3, ".", "░", C.DARK_GRAY),
    (6, ":", "▒", C.GRAY),
    (11, ";", "▓", C.WHITE),
    (16, "!", "█", C.BLUE),
    (21, "|", "█", C.CYAN),
    (31, "$", "█", C.GREEN),
    (41, "@", "█", C.YELLOW),
    (51, "&", "█", C.RED),
    (71, "%", "█", C.MAGENTA),
    (91, "*", "█", C.LIGHT_RED),
    (100, "#", "█", C.LIGHT_MAGENTA),
]

_HIGH = [
    (0, " ", " ", C.BLACK),
    (2, ".", "·", C.DARK_GRAY),
    (3, ",", "∙", C.DARK_GRAY),
    (4, "-", "░", C.DARK_GRAY),
    (6, ":", "░", C.GRAY),
    (8, ";", "▒", C.GRAY),
    (11, "=", "▒", C.WHITE),
    (13, "+", "▓", C.WHITE),
    (16, "!", "▓", C.BLUE),
    (18, "?", "█", C.BLUE),
    (21, "|", "▆", C.CYAN),
    (26, "i", "█", C.CYAN),
    (31, "l", "▇", C.GREEN),
    (36, "$", "█", C.GREEN),
    (41, "x", "▇", C.YELLOW),
    (46, "@", "█", C.YELLOW),
    (51, "X", "▇", C.RED),
    (61, "&", "█", C.RED),
    (71, "K", "▇", C.MAGENTA),
    (81, "%", "█", C.MAGENTA),
    (91, "B", "▇", C.LIGHT_RED),
    (96, "*", "█", C.LIGHT_RED),
    (100, "#", "█", C.LIGHT_MAGENTA),
]


def _build_tables() -> Dict[Tuple[Palette, Detail], GlyphTable]:
    tables = {}
    for detail, rows in ((Detail.STANDARD, _STANDARD), (Detail.HIGH, _HIGH)):
        tables[(Palette.ASCII, detail)] = GlyphTable(f"ascii/{detail.value}", [(r[0], r[1], r[3]) for r in rows])
        tables[(Palette.UNICODE, detail)] = GlyphTable(f"unicode/{detail.value}", [(r[0], r[2], r[3]) for r in rows])
    return tables


TABLES = _build_tables()


def get_table(palette, detail) -> GlyphTable:
    return TABLES[(Palette(palette), Detail(detail))]


def legend(palette=Palette.UNICODE, detail=Detail.STANDARD) -> List[Tuple[str, str, TermColor]]:
    return [(b.label, b.glyph, b.color) for b in get_table(palette, detail).buckets]


def _ansi_code(color: int) -> str:
    return f"\x1b[{30 + color if color < 8 else 90 + color - 8}m"


@dataclass(frozen=True)
class QuantizedGrid:
    glyphs: np.ndarray
    colors: np.ndarray

    @property
    def shape(self) -> Tuple[int, int]:
        return self.glyphs.shape

    def cell(self, y: int, x: int) -> QuantizedCell:
        return QuantizedCell(str(self.glyphs[y, x]), TermColor(int(self.colors[y, x])))

    def rows(self) -> Iterator[List[QuantizedCell]]:
        for y in range(self.shape[0]):
            yield [self.cell(y, x) for x in range(self.shape[1])]

    def to_text(self) -> str:
        return "".join("".join(row.tolist()) + "\n" for row in self.glyphs)

    def to_ansi(self) -> str:
        out = []
        for glyph_row, color_row in zip(self.glyphs, self.colors):
            parts = []
            current = None
            for g, c in zip(glyph_row.tolist(), color_row.tolist()):
                if c != current:
                    parts.append(_ansi_code(c))
                    current = c
                parts.append(g)
            parts.append("\x1b[0m\n")
            out.append("".join(parts))
        return "".join(out)


def _as_grid(grid) -> np.ndarray:
    arr = np.asarray(grid)
    if arr.ndim != 2:
        raise ValueError(f"iteration grid must be 2-D, got shape {arr.shape}")
    if arr.size and arr.dtype.kind not in "ui":
        raise ValueError(f"iteration grid must hold integers, got {arr.dtype}")
    if arr.size and arr.dtype.kind == "i" and arr.min() < 0:
        raise ValueError("iteration counts are non-negative")
    return arr


def _blank(h: int, w: int) -> Tuple[np.ndarray, np.ndarray]:
    return np.full((h, w), BLANK.glyph, dtype="<U1"), np.full((h, w), int(BLANK.color), dtype=np.uint8)


class GlyphQuantizer:
    """Maps iteration grids to glyph/color grids.

    The instance remembers the last grid quantized in differential mode.
    In that mode cells whose count did not change since then come out as
    the blank placeholder, so only changed cells need redrawing. A grid of
    a different shape is always rendered in full.
    """

    def __init__(self):
        self._last: Optional[np.ndarray] = None

    @property
    def last_grid(self) -> Optional[np.ndarray]:
        return self._last

    def reset(self) -> None:
        self._last = None

    def quantize(self, grid, palette=Palette.UNICODE, detail=Detail.STANDARD, *,
                 differential: bool = False) -> QuantizedGrid:
        counts = _as_grid(grid)
        glyphs, colors = get_table(palette, detail).lookup(counts)
        if differential:
            if self._last is not None and self._last.shape == counts.shape:
                same = counts == self._last
                glyphs[same] = BLANK.glyph
                colors[same] = int(BLANK.color)
            self._last = counts.copy()
        return QuantizedGrid(glyphs, colors)

    def quantize_window(self, grid, start_x: int, start_y: int, window_w: int, window_h: int,
                        target_w: int, target_h: int, palette=Palette.UNICODE,
                        detail=Detail.STANDARD) -> QuantizedGrid:
        """Quantize a sub-rectangle of ``grid`` centered in a target area.

        Padding around the window, and window cells that fall outside the
        grid, are blank.
        """
        if min(start_x, start_y, window_w, window_h, target_w, target_h) < 0:
            raise ValueError("window origin and sizes must be non-negative")
        counts = _as_grid(grid)
        table = get_table(palette, detail)
        glyphs, colors = _blank(target_h, target_w)

        data_h, data_w = counts.shape
        off_x = (target_w - window_w) // 2 if window_w < target_w else 0
        off_y = (target_h - window_h) // 2 if window_h < target_h else 0
        y_end = min(off_y + window_h, target_h, off_y + max(0, data_h - start_y))
        x_end = min(off_x + window_w, target_w, off_x + max(0, data_w - start_x))
        if y_end > off_y and x_end > off_x:
            src = counts[start_y:start_y + (y_end - off_y), start_x:start_x + (x_end - off_x)]
            g, c = table.lookup(src)
            glyphs[off_y:y_end, off_x:x_end] = g
            colors[off_y:y_end, off_x:x_end] = c
        return QuantizedGrid(glyphs, colors)


def render_text(grid, palette=Palette.UNICODE, detail=Detail.STANDARD) -> str:
    """Glyphs only, one newline-terminated line per grid row."""
    return QuantizedGrid(*get_table(palette, detail).lookup(_as_grid(grid))).to_text()
