"""
Shared pytest fixtures for the SOM + Q-learning tests.

Synthetic series only: a seeded random walk with a slow cycle for realistic
replays and a perfectly flat series for the degenerate cases.
"""

import numpy as np
import pandas as pd
import pytest

from src.strategies.som_qlearning.config import SomQLearningConfig
from src.strategies.som_qlearning.data import SampleStream


@pytest.fixture(scope="session")
def sample_market_data():
    """400 bars of 15m candles: drifting random walk plus a slow oscillation."""
    rng = np.random.default_rng(42)
    n = 400
    returns = rng.normal(0.0, 0.003, n) + 0.0005 * np.sin(np.arange(n) / 15.0)
    close = 100.0 * np.exp(np.cumsum(returns))
    volume = rng.lognormal(mean=8.0, sigma=0.3, size=n)
    dates = pd.date_range("2024-01-01", periods=n, freq="15min")
    return pd.DataFrame({"Date": dates, "close": close, "volume": volume})


@pytest.fixture
def market_stream(sample_market_data):
    return SampleStream.from_dataframe(sample_market_data)


@pytest.fixture
def flat_stream():
    return SampleStream(np.full(150, 100.0), np.full(150, 1_000.0))


@pytest.fixture
def small_config():
    """Short windows and warmup so a few hundred bars reach every phase."""
    return SomQLearningConfig(
        window_length=8,
        forward_window=3,
        action_window=2,
        n_nodes=6,
        warmup_bars=20,
        seed=7,
    )


@pytest.fixture
def candles_csv(tmp_path, sample_market_data):
    path = tmp_path / "candles.csv"
    sample_market_data.to_csv(path, index=False)
    return path
