import copy
import json
import os
from typing import Any, Dict, Optional

_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "display": {
        "use_colors": True,
        "use_unicode": True,
        "detail": "standard",
        "default_width": 80,
        "default_height": 40,
        "quality_mode": True,
        "super_sampling": False,
        "differential": False,
    },
    "fractal": {
        "default_zoom": 1.0,
        "default_center": [-0.5, 0.0],
        "default_max_iterations": 256,
    },
    "performance": {
        "use_parallel_processing": True,
        "thread_count": None,
        "enable_caching": True,
        "max_cache_size": 100,
        "performance_mode": False,
        "adaptive_sampling": True,
    },
}

def default_config() -> Dict[str, Any]:
    return copy.deepcopy(_DEFAULTS)

def load_config(config_path: Optional[str]) -> Dict[str, Any]:
    if not config_path:
        return default_config()
    with open(config_path, "r", encoding="utf-8") as f:
        cfg = json.load(f)
    if not isinstance(cfg, dict):
        raise ValueError("Config JSON must be an object.")
    return cfg

def _bool(section: Dict[str, Any], key: str) -> bool:
    v = section[key]
    if not isinstance(v, bool):
        raise ValueError(f"Config field {key} must be true/false.")
    return v

def normalise_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    out = default_config()
    for name, section in cfg.items():
        if name not in out:
            raise ValueError(f"Unknown config section: {name}")
        if not isinstance(section, dict):
            raise ValueError(f"Config section {name} must be an object.")
        for k, v in section.items():
            if k not in out[name]:
                raise ValueError(f"Unknown config field: {name}.{k}")
            out[name][k] = v

    display = out["display"]
    for k in ("use_colors", "use_unicode", "quality_mode", "super_sampling", "differential"):
        display[k] = _bool(display, k)
    display["default_width"] = int(display["default_width"])
    display["default_height"] = int(display["default_height"])
    if display["default_width"] <= 0 or display["default_height"] <= 0:
        raise ValueError("default_width/default_height must be positive.")
    if display["detail"] not in ("standard", "high"):
        raise ValueError("detail must be 'standard' or 'high'.")

    fractal = out["fractal"]
    fractal["default_zoom"] = float(fractal["default_zoom"])
    if not fractal["default_zoom"] > 0:
        raise ValueError("default_zoom must be positive.")
    center = fractal["default_center"]
    if not (isinstance(center, (list, tuple)) and len(center) == 2):
        raise ValueError("default_center must be [re, im].")
    fractal["default_center"] = [float(center[0]), float(center[1])]
    fractal["default_max_iterations"] = int(fractal["default_max_iterations"])
    if fractal["default_max_iterations"] <= 0:
        raise ValueError("default_max_iterations must be positive.")

    perf = out["performance"]
    for k in ("use_parallel_processing", "enable_caching", "performance_mode", "adaptive_sampling"):
        perf[k] = _bool(perf, k)
    if perf["thread_count"] is not None:
        perf["thread_count"] = int(perf["thread_count"])
        if perf["thread_count"] <= 0:
            raise ValueError("thread_count must be positive.")
    perf["max_cache_size"] = int(perf["max_cache_size"])
    if perf["max_cache_size"] <= 0:
        raise ValueError("max_cache_size must be positive.")
    return out

def worker_count(cfg: Dict[str, Any]) -> int:
    perf = cfg["performance"]
    if not perf["use_parallel_processing"]:
        return 1
    return perf["thread_count"] or os.cpu_count() or 1
