"""Fractal variants understood by the escape-time engine.

Variants are a closed set of immutable values. Each one has a stable text
encoding (``encode``) which is part of the cache key, and ``decode_variant``
turns that text back into the value.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Mandelbrot:
    kind = "mandelbrot"

    def encode(self) -> str:
        return self.kind


@dataclass(frozen=True)
class Julia:
    c: complex = complex(-0.7, 0.27015)
    kind = "julia"

    def __post_init__(self) -> None:
        object.__setattr__(self, "c", complex(self.c))
        if not (math.isfinite(self.c.real) and math.isfinite(self.c.imag)):
            raise ValueError(f"Julia constant must be finite, got {self.c!r}")

    def encode(self) -> str:
        return f"{self.kind}({self.c.real!r},{self.c.imag!r})"


@dataclass(frozen=True)
class BurningShip:
    kind = "burning_ship"

    def encode(self) -> str:
        return self.kind


@dataclass(frozen=True)
class Tricorn:
    kind = "tricorn"

    def encode(self) -> str:
        return self.kind


@dataclass(frozen=True)
class Multibrot:
    power: float = 3.0
    kind = "multibrot"

    def __post_init__(self) -> None:
        object.__setattr__(self, "power", float(self.power))
        if not (self.power >= 2.0):
            raise ValueError(f"Multibrot power must be >= 2, got {self.power!r}")

    def encode(self) -> str:
        return f"{self.kind}({self.power!r})"


@dataclass(frozen=True)
class Custom:
    """User equation the engine cannot evaluate.

    Rendered with the Mandelbrot rule. The descriptor is kept so that
    different equations still get different cache entries.
    """

    descriptor: str = "z^2 + c"
    kind = "custom"

    def encode(self) -> str:
        return f"{self.kind}:{self.descriptor}"


FractalVariant = Union[Mandelbrot, Julia, BurningShip, Tricorn, Multibrot, Custom]

_SIMPLE = {
    Mandelbrot.kind: Mandelbrot,
    BurningShip.kind: BurningShip,
    Tricorn.kind: Tricorn,
}
_JULIA_RE = re.compile(r"^julia\(([^,()]+),([^,()]+)\)$")
_MULTIBROT_RE = re.compile(r"^multibrot\(([^,()]+)\)$")


def decode_variant(text: str) -> FractalVariant:
    if text in _SIMPLE:
        return _SIMPLE[text]()
    if text.startswith(Custom.kind + ":"):
        return Custom(text[len(Custom.kind) + 1:])
    m = _JULIA_RE.match(text)
    if m:
        return Julia(complex(float(m.group(1)), float(m.group(2))))
    m = _MULTIBROT_RE.match(text)
    if m:
        return Multibrot(float(m.group(1)))
    raise ValueError(f"Unknown fractal variant encoding: {text!r}")


def variant_from_name(name: str, *, julia_c: complex = complex(-0.7, 0.27015), power: float = 3.0,
                      equation: str = "z^2 + c") -> FractalVariant:
    """Resolve a variant from a plain name as accepted on the command line."""
    key = name.strip().lower().replace("-", "_")
    if key in _SIMPLE:
        return _SIMPLE[key]()
    if key == Julia.kind:
        return Julia(julia_c)
    if key == Multibrot.kind:
        return Multibrot(power)
    if key == Custom.kind:
        return Custom(equation)
    raise ValueError(f"Unknown fractal: {name!r}")


VARIANT_NAMES = ("mandelbrot", "julia", "burning_ship", "tricorn", "multibrot", "custom")
