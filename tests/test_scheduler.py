"""
Tests for the per-bar scheduler: phases, learning anchors and trading
"""

import dataclasses
import logging
import math

import numpy as np
import pytest

from src.strategies.som_qlearning.config import ConfigurationError, SomQLearningConfig
from src.strategies.som_qlearning.data import LookaheadError, SampleStream
from src.strategies.som_qlearning.scheduler import Phase, Scheduler, phase_for_bar


def _run(scheduler, stream):
    return [scheduler.on_bar(stream, bar) for bar in range(len(stream))]


class TestPhases:
    def test_phase_boundaries(self):
        assert phase_for_bar(10, 11, 20) is Phase.IDLE
        assert phase_for_bar(11, 11, 20) is Phase.LEARN_ONLY
        assert phase_for_bar(30, 11, 20) is Phase.LEARN_ONLY
        assert phase_for_bar(31, 11, 20) is Phase.LEARN_AND_TRADE

    def test_no_warmup_goes_straight_to_trading(self):
        assert phase_for_bar(5, 5, 0) is Phase.LEARN_AND_TRADE

    def test_learning_start_accounts_for_delay(self):
        assert SomQLearningConfig(window_length=8, forward_window=3).learning_start_bar == 11
        assert SomQLearningConfig(window_length=8, forward_window=3, delay_bars=50).learning_start_bar == 50

    def test_phase_changes_are_logged(self, small_config, market_stream, caplog):
        scheduler = Scheduler(small_config)
        with caplog.at_level(logging.INFO):
            _run(scheduler, market_stream)
        messages = [r.getMessage() for r in caplog.records]
        assert any("LEARN_ONLY" in m for m in messages)
        assert any("LEARN_AND_TRADE" in m for m in messages)


class TestOnBar:
    def test_idle_bars_do_nothing(self, small_config, market_stream):
        scheduler = Scheduler(small_config)
        before = scheduler.som.states.copy()
        for bar in range(small_config.learning_start_bar):
            result = scheduler.on_bar(market_stream, bar)
            assert result.phase is Phase.IDLE
            assert not result.learned and result.order is None and result.monitoring is None
        assert np.array_equal(before, scheduler.som.states)
        assert scheduler.learning_steps == 0

    def test_no_orders_before_trading_phase(self, small_config, market_stream):
        results = _run(Scheduler(small_config), market_stream)
        for result in results:
            if result.phase is not Phase.LEARN_AND_TRADE:
                assert result.order is None
        assert any(r.monitoring is not None for r in results if r.phase is Phase.LEARN_AND_TRADE)

    def test_action_history_is_bounded(self, small_config, market_stream):
        scheduler = Scheduler(small_config)
        for bar in range(len(market_stream)):
            scheduler.on_bar(market_stream, bar)
            assert len(scheduler.history) <= small_config.action_window
        assert len(scheduler.history) == small_config.action_window

    def test_rewards_are_bounded(self, small_config, market_stream):
        rewards = [r.reward for r in _run(Scheduler(small_config), market_stream) if r.reward is not None]
        assert rewards
        assert all(-1.0 < r < 1.0 for r in rewards)

    def test_learning_and_trading_records_are_both_kept(self, small_config, market_stream):
        results = _run(Scheduler(small_config), market_stream)
        both = [r for r in results if r.learned and r.phase is Phase.LEARN_AND_TRADE]
        assert both
        for result in both:
            assert result.learn_monitoring is not None
            assert result.trade_monitoring is not None
            assert result.monitoring is result.trade_monitoring
        for result in results:
            if result.phase is Phase.LEARN_ONLY and result.learned:
                assert result.trade_monitoring is None
                assert result.monitoring is result.learn_monitoring

    def test_lookahead_learning_stops_before_end(self, small_config, market_stream):
        results = _run(Scheduler(small_config), market_stream)
        last = market_stream.last_index
        horizon = small_config.forward_window
        for result in results[-horizon:]:
            assert not result.learned
        assert results[last - horizon - 1].learned

    def test_map_update_stride(self, small_config, market_stream):
        scheduler = Scheduler(small_config)
        _run(scheduler, market_stream)
        assert scheduler.learning_steps == 386
        assert scheduler.map_updates == math.ceil(386 / 2)

    def test_invalid_configuration_raises(self):
        with pytest.raises(ConfigurationError):
            Scheduler(SomQLearningConfig(n_nodes=0))
        with pytest.raises(ConfigurationError):
            Scheduler(SomQLearningConfig(feature_mode="spectral"))


class TestCausalMode:
    def test_strict_stream_never_raises(self, small_config, sample_market_data):
        config = dataclasses.replace(small_config, lookahead=False)
        stream = SampleStream.from_dataframe(sample_market_data, strict=True)
        scheduler = Scheduler(config)
        for bar in range(len(stream)):
            stream.set_cursor(bar)
            scheduler.on_bar(stream, bar)
        assert scheduler.learning_steps == len(stream) - config.learning_start_bar

    def test_lookahead_on_live_stream_is_detected(self, small_config, sample_market_data):
        stream = SampleStream.from_dataframe(sample_market_data, strict=True)
        stream.set_cursor(40)
        with pytest.raises(LookaheadError):
            Scheduler(small_config).on_bar(stream, 40)

    def test_learned_state_uses_context_of_anchor(self, small_config, market_stream, monkeypatch):
        config = dataclasses.replace(small_config, lookahead=False)
        scheduler = Scheduler(config)
        horizon = config.forward_window

        builds = []
        build = scheduler.vectorizer.build

        def recording_build(stream, bar, window_length=None, offset=0, history=()):
            builds.append((bar, offset, tuple(history)))
            return build(stream, bar, window_length=window_length, offset=offset, history=history)

        positions = []
        reward = scheduler.reward_model.reward

        def recording_reward(action, position_magnitude, stream, anchor):
            positions.append((anchor, position_magnitude))
            return reward(action, position_magnitude, stream, anchor)

        monkeypatch.setattr(scheduler.vectorizer, "build", recording_build)
        monkeypatch.setattr(scheduler.reward_model, "reward", recording_reward)

        seen_history = {}
        checked = 0
        for bar in range(len(market_stream)):
            seen_history[bar] = tuple(scheduler.history)
            builds.clear()
            positions.clear()
            result = scheduler.on_bar(market_stream, bar, position_magnitude=bar / 1000.0)
            if not result.learned:
                continue
            anchor = bar - horizon
            learned = [h for b, offset, h in builds if b == anchor and offset == 0]
            assert learned == [seen_history[anchor]]
            assert positions == [(anchor, anchor / 1000.0)]
            if seen_history[anchor] != tuple(scheduler.history):
                checked += 1
        assert checked > 0
        assert scheduler.context_at(len(market_stream) - 1 - horizon) is not None
        assert scheduler.context_at(len(market_stream) - 2 - horizon) is None

    def test_missing_anchor_context_skips_learning(self, small_config, market_stream):
        config = dataclasses.replace(small_config, lookahead=False)
        scheduler = Scheduler(config)
        result = scheduler.on_bar(market_stream, 100)
        assert not result.learned
        assert scheduler.learning_steps == 0
        assert scheduler.context_at(100).history == ()

    def test_streaming_append(self, small_config, sample_market_data):
        config = dataclasses.replace(small_config, lookahead=False)
        stream = SampleStream(strict=True)
        scheduler = Scheduler(config)
        for price, volume in zip(sample_market_data["close"], sample_market_data["volume"]):
            bar = stream.append(price, volume)
            scheduler.on_bar(stream, bar)
        assert len(stream) == len(sample_market_data)
        assert scheduler.learning_steps > 0


class TestDeterminism:
    def test_same_seed_same_session(self, small_config, market_stream):
        first = _run(Scheduler(small_config), market_stream)
        second = _run(Scheduler(small_config), market_stream)
        assert [r.monitoring for r in first] == [r.monitoring for r in second]
        assert [r.order for r in first] == [r.order for r in second]

    def test_different_seed_different_map(self, small_config):
        other = dataclasses.replace(small_config, seed=8)
        assert not np.array_equal(Scheduler(small_config).som.states, Scheduler(other).som.states)


class TestFlatSeries:
    def test_flat_prices_never_reward_trading(self, small_config, flat_stream):
        scheduler = Scheduler(small_config)
        rewards = [r.reward for r in _run(scheduler, flat_stream) if r.reward is not None]
        assert rewards
        assert all(r <= 0.0 for r in rewards)
        assert scheduler.counter["zero_std"] > 0

    def test_magnitude_mode_with_volume(self, small_config, market_stream):
        config = dataclasses.replace(
            small_config, feature_mode="magnitude", metric="euclidean", include_volume=True
        )
        scheduler = Scheduler(config)
        results = _run(scheduler, market_stream)
        assert scheduler.som.dimension == 8 + 8 + 4
        assert all(np.isfinite(r.monitoring.distance) for r in results if r.monitoring is not None)
