import json

import pytest

from bitmap_engine.config import EngineConfig, load_config
from bitmap_engine.errors import IOFailure


def test_defaults():
    config = EngineConfig()
    assert config.max_history_size == 50
    assert config.large_image_max_history == 10
    assert config.large_image_threshold == 2 * 1024 * 1024
    assert config.pool_size == 3
    assert config.auto_select_tolerance == 30
    assert config.jpeg_quality == 0.95
    assert ".webp" in config.extensions
    assert config.zoom_limit == 1.0


def test_dict_round_trip():
    config = EngineConfig(max_history_size=7, scroll_cycle=False, extensions=(".png",), auto_zoom_limit=False)
    restored = EngineConfig.from_dict(config.to_dict())
    assert restored == config
    assert restored.zoom_limit is None


def test_from_dict_tolerates_malformed_values():
    config = EngineConfig.from_dict(
        {
            "max_history_size": "twelve",
            "pool_size": "5",
            "scroll_cycle": "no",
            "jpeg_quality": 3,
            "extensions": ["PNG", "", 4, ".Jpg"],
            "zoom_levels": [2, "x", 0.5, -1],
            "preload_workers": 0,
        }
    )
    assert config.max_history_size == 50
    assert config.pool_size == 5
    assert config.scroll_cycle is False
    assert config.jpeg_quality == 0.95
    assert config.extensions == (".png", ".jpg")
    assert config.zoom_levels == (0.5, 2.0)
    assert config.preload_workers == 2


def test_load_config(tmp_path):
    path = tmp_path / "engine.json"
    path.write_text(json.dumps({"max_history_size": 20, "auto_select_tolerance": 12.5}), encoding="utf-8")
    config = load_config(path)
    assert config.max_history_size == 20
    assert config.auto_select_tolerance == 12.5


def test_load_config_errors(tmp_path):
    with pytest.raises(IOFailure):
        load_config(tmp_path / "missing.json")
    bad = tmp_path / "bad.json"
    bad.write_text("{", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(bad)
