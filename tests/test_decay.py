"""
Unit tests for the hyperparameter decay schedule
"""

import pytest

from src.strategies.som_qlearning.config import SomQLearningConfig
from src.strategies.som_qlearning.decay import HyperparameterDecay, decay_value


def test_decay_value_at_start_is_one_plus_epsilon():
    assert decay_value(0, 0.9992, 1e-8) == 1.0 + 1e-8


def test_bars_before_start_do_not_grow_decay():
    assert decay_value(-50, 0.9) == decay_value(0, 0.9)


def test_decay_is_monotone_and_positive():
    values = [decay_value(n, 0.99) for n in range(0, 2000, 50)]
    assert all(b < a for a, b in zip(values, values[1:]))
    assert values[-1] > 0.0


def test_decay_never_reaches_zero():
    assert decay_value(10**7, 0.5, 1e-8) == pytest.approx(1e-8)


def test_rates_scale_with_decay():
    schedule = HyperparameterDecay(
        n_nodes=20,
        learning_start_bar=30,
        initial_exploration=0.3,
        initial_sigma_factor=0.5,
        initial_beta=0.6,
        initial_gamma=0.9,
        decay_factor=0.99,
    )
    hp = schedule.at_bar(130)
    d = 0.99**100 + 1e-8
    assert hp.decay == pytest.approx(d)
    assert hp.exploration == pytest.approx(0.3 * d)
    assert hp.sigma == pytest.approx(20 * 0.5 * d)
    assert hp.beta == pytest.approx(0.6 * d)
    assert hp.gamma == pytest.approx(0.9 * d)


def test_elapsed_counts_from_learning_start():
    schedule = HyperparameterDecay(n_nodes=4, learning_start_bar=12)
    assert schedule.elapsed(12) == 0
    assert schedule.elapsed(20) == 8
    assert schedule.at_bar(5) == schedule.at_bar(12)


def test_exploration_is_capped_at_one():
    schedule = HyperparameterDecay(n_nodes=4, learning_start_bar=0, initial_exploration=1.0, decay_factor=1.0)
    assert schedule.at_elapsed(0).exploration == 1.0


def test_from_config_uses_learning_start():
    config = SomQLearningConfig(window_length=10, forward_window=5, delay_bars=40, n_nodes=8)
    schedule = HyperparameterDecay.from_config(config)
    assert schedule.learning_start_bar == 40
    assert schedule.n_nodes == 8
    assert schedule.at_bar(40).decay == pytest.approx(1.0)
