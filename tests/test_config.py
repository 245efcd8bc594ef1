"""
Tests for static configuration and the active config files
"""

import json

import pytest

from src.strategies.som_qlearning.config import (
    ConfigurationError,
    SomQLearningConfig,
    load_active_config,
    save_active_config,
)


def test_defaults_are_valid():
    config = SomQLearningConfig()
    assert config.validate() is config
    assert config.learning_start_bar == 20


@pytest.mark.parametrize(
    "overrides",
    [
        {"window_length": 0},
        {"forward_window": -1},
        {"n_nodes": 0},
        {"update_every_n_bars": 0},
        {"action_window": -1},
        {"warmup_bars": -5},
        {"delay_bars": -1},
        {"epsilon": 0.0},
        {"feature_mode": "spectral"},
        {"clip_value": 0.0},
        {"neutral_volume": -1.0},
        {"decay_factor": 0.0},
        {"decay_factor": 1.5},
        {"state_init_low": 0.2, "state_init_high": 0.1},
        {"value_init_low": 1.0, "value_init_high": 0.0},
        {"action_sizes": ()},
        {"action_sizes": (0.01, -0.02)},
        {"volatility_penalty_cap": -0.1},
        {"initial_exploration": 1.5},
    ],
)
def test_invalid_settings_rejected(overrides):
    with pytest.raises(ConfigurationError):
        SomQLearningConfig(**overrides).validate()


def test_configuration_error_is_value_error():
    assert issubclass(ConfigurationError, ValueError)


def test_to_dict_is_json_serializable():
    data = SomQLearningConfig(action_sizes=[0.5, 1]).to_dict()
    assert data["action_sizes"] == [0.5, 1.0]
    json.dumps(data)


def test_save_and_load_active_config(tmp_path):
    config = SomQLearningConfig(ticker="SOLUSDT", interval="5m", n_nodes=12, action_sizes=(0.1, 0.2))
    path = save_active_config({"ticker": "SOLUSDT", "interval": "5m", "best_params": config.to_dict()}, str(tmp_path))
    assert path.name == "SOMQ_SOLUSDT_5m.json"

    loaded = load_active_config("SOLUSDT", "5m", reports_dir=str(tmp_path))
    assert loaded == config
    assert loaded.action_sizes == (0.1, 0.2)


def test_load_flat_params_and_ignore_unknown_keys(tmp_path):
    active = tmp_path / "active"
    active.mkdir()
    (active / "SOMQ_BTCUSDT_1h.json").write_text(json.dumps({"n_nodes": 40, "legacy": 1}), encoding="utf-8")
    loaded = load_active_config("BTCUSDT", "1h", reports_dir=str(tmp_path))
    assert loaded.n_nodes == 40
    assert loaded.interval == "1h"


def test_missing_active_config_returns_none(tmp_path):
    assert load_active_config("BTCUSDT", "15m", reports_dir=str(tmp_path)) is None


def test_save_requires_ticker_and_interval(tmp_path):
    with pytest.raises(ValueError):
        save_active_config({"best_params": {}}, str(tmp_path))
