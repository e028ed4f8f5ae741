import json

import pytest

from termfractal.config import default_config, load_config, normalise_config, worker_count


def test_defaults_normalise_cleanly():
    cfg = normalise_config(default_config())
    assert cfg["display"]["default_width"] == 80
    assert cfg["display"]["default_height"] == 40
    assert cfg["fractal"]["default_zoom"] == 1.0
    assert cfg["fractal"]["default_center"] == [-0.5, 0.0]
    assert cfg["fractal"]["default_max_iterations"] == 256
    assert cfg["performance"]["max_cache_size"] == 100
    assert cfg["performance"]["adaptive_sampling"] is True


def test_partial_config_is_merged_onto_defaults():
    cfg = normalise_config({"display": {"use_unicode": False, "default_width": "120"}})
    assert cfg["display"]["use_unicode"] is False
    assert cfg["display"]["default_width"] == 120
    assert cfg["display"]["use_colors"] is True


def test_defaults_are_not_shared():
    cfg = default_config()
    cfg["display"]["default_width"] = 1
    assert default_config()["display"]["default_width"] == 80


@pytest.mark.parametrize("cfg, field", [
    ({"display": {"default_width": 0}}, "default_width"),
    ({"display": {"detail": "ultra"}}, "detail"),
    ({"display": {"use_colors": "yes"}}, "use_colors"),
    ({"fractal": {"default_zoom": 0}}, "default_zoom"),
    ({"fractal": {"default_center": [1.0]}}, "default_center"),
    ({"fractal": {"default_max_iterations": 0}}, "default_max_iterations"),
    ({"performance": {"thread_count": 0}}, "thread_count"),
    ({"performance": {"max_cache_size": 0}}, "max_cache_size"),
    ({"controls": {}}, "controls"),
    ({"display": {"colour": True}}, "colour"),
])
def test_invalid_values_name_the_field(cfg, field):
    with pytest.raises(ValueError, match=field):
        normalise_config(cfg)


def test_load_config_reads_json(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"fractal": {"default_zoom": 2.5}}), encoding="utf-8")
    assert normalise_config(load_config(str(path)))["fractal"]["default_zoom"] == 2.5


def test_load_config_requires_an_object(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_load_config_without_path_gives_defaults():
    assert load_config(None) == default_config()


def test_worker_count():
    cfg = normalise_config({"performance": {"thread_count": 3}})
    assert worker_count(cfg) == 3
    cfg = normalise_config({"performance": {"use_parallel_processing": False, "thread_count": 3}})
    assert worker_count(cfg) == 1
    assert worker_count(normalise_config({})) >= 1
