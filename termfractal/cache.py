from __future__ import annotations

from typing import Dict, Optional, Protocol, Tuple

import numpy as np

from termfractal.engine import GenerationRequest
from termfractal.util.logging_setup import get_logger

DEFAULT_CAPACITY = 100
COORD_DIGITS = 6
ZOOM_DIGITS = 3


class GridSource(Protocol):
    def generate(self, request: GenerationRequest) -> np.ndarray: ...


def _fixed(value: float, digits: int) -> str:
    # + 0.0 folds -0.0 into 0.0 after rounding
    return f"{round(value, digits) + 0.0:.{digits}f}"


def cache_key(request: GenerationRequest) -> str:
    """Deterministic key for a request.

    Coordinates are rounded to 6 decimals and zoom to 3, so requests that
    differ only below that precision share one entry.
    """
    vp = request.viewport
    flags = "".join("1" if f else "0" for f in (
        request.performance_mode, request.quality_mode, request.adaptive_sampling, request.super_sampling,
    ))
    return "|".join((
        request.variant.encode(),
        f"{vp.width}x{vp.height}",
        f"{_fixed(vp.center_x, COORD_DIGITS)},{_fixed(vp.center_y, COORD_DIGITS)}",
        _fixed(vp.zoom, ZOOM_DIGITS),
        str(int(request.max_iterations)),
        flags,
    ))


def _signature(request: GenerationRequest) -> Tuple:
    vp = request.viewport
    return (vp.width, vp.height, request.performance_mode, request.quality_mode,
            request.adaptive_sampling, request.super_sampling)


class ResultCache:
    """Bounded store of iteration grids in front of an engine.

    Inserts stop once the cache holds ``insert_ceiling`` entries. If it ever
    holds ``capacity`` entries the next insert clears it completely first;
    there is no per-entry eviction.
    """

    def __init__(self, engine: GridSource, *, capacity: int = DEFAULT_CAPACITY,
                 insert_ceiling: Optional[int] = None, enabled: bool = True):
        if capacity <= 0:
            raise ValueError("capacity must be positive.")
        if insert_ceiling is None:
            insert_ceiling = max(1, capacity // 2)
        if not 0 < insert_ceiling <= capacity:
            raise ValueError("insert_ceiling must be in 1..capacity.")
        self.engine = engine
        self.capacity = capacity
        self.insert_ceiling = insert_ceiling
        self.enabled = enabled
        self.hits = 0
        self.misses = 0
        self._entries: Dict[str, np.ndarray] = {}
        self._last_signature: Optional[Tuple] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request: GenerationRequest) -> bool:
        return cache_key(request) in self._entries

    def get_or_compute(self, request: GenerationRequest) -> np.ndarray:
        logger = get_logger()
        if not self.enabled:
            return self.engine.generate(request)

        key = cache_key(request)
        grid = self._entries.get(key)
        if grid is not None:
            self.hits += 1
            logger.debug("Cache hit %s", key)
            return grid.copy()

        self.misses += 1
        logger.debug("Cache miss %s", key)
        grid = self.engine.generate(request)
        self.store(key, grid)
        return grid

    def store(self, key: str, grid: np.ndarray) -> bool:
        """Insert a grid under ``key``; returns whether it was kept."""
        if len(self._entries) >= self.capacity:
            get_logger().info("Cache full (%s entries), clearing", len(self._entries))
            self._entries.clear()
        if len(self._entries) >= self.insert_ceiling:
            return False
        frozen = grid.copy()
        frozen.flags.writeable = False
        self._entries[key] = frozen
        return True

    def invalidate(self, reason: str = "settings changed") -> None:
        if self._entries:
            get_logger().info("Cache invalidated (%s), dropping %s entries", reason, len(self._entries))
        self._entries.clear()

    def observe(self, request: GenerationRequest) -> None:
        """Invalidate when dimensions or mode flags differ from the last request seen."""
        sig = _signature(request)
        if self._last_signature is not None and sig != self._last_signature:
            self.invalidate("resize or mode toggle")
        self._last_signature = sig

    def stats(self) -> Dict[str, int]:
        return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses,
                "capacity": self.capacity, "insert_ceiling": self.insert_ceiling}
