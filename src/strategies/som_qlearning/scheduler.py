from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Optional, Tuple

import numpy as np

from .actions import ActionSpec, Direction, build_action_set
from .agent import QLearningAgent
from .config import SomQLearningConfig
from .data import SampleStream
from .decay import HyperparameterDecay, Hyperparameters
from .diagnostics import DegeneracyCounter
from .distance import resolve_metric
from .reward import RewardModel
from .som import SelfOrganizingMap
from .vectorizer import Vectorizer


class Phase(Enum):
    IDLE = "idle"
    LEARN_ONLY = "learn_only"
    LEARN_AND_TRADE = "learn_and_trade"


def phase_for_bar(bar: int, learning_start_bar: int, warmup_bars: int) -> Phase:
    """Phase of ``bar``; depends on nothing but the bar index."""

    if bar < learning_start_bar:
        return Phase.IDLE
    if bar < learning_start_bar + warmup_bars:
        return Phase.LEARN_ONLY
    return Phase.LEARN_AND_TRADE


@dataclass(frozen=True)
class OrderRequest:
    direction: Direction
    magnitude: float

    @property
    def signed_quantity(self) -> float:
        return int(self.direction) * self.magnitude


@dataclass(frozen=True)
class MonitoringRecord:
    bar: int
    decay: float
    node_index: int
    distance: float
    action_index: int
    q_value: float


@dataclass(frozen=True)
class BarContext:
    """What the agent knew when a bar was decided."""

    bar: int
    history: Tuple[int, ...]
    position_magnitude: float


@dataclass
class BarResult:
    bar: int
    phase: Phase
    learned: bool = False
    reward: Optional[float] = None
    order: Optional[OrderRequest] = None
    learn_monitoring: Optional[MonitoringRecord] = None
    trade_monitoring: Optional[MonitoringRecord] = None

    @property
    def monitoring(self) -> Optional[MonitoringRecord]:
        """Trading record when one exists, otherwise the learning record."""

        if self.trade_monitoring is not None:
            return self.trade_monitoring
        return self.learn_monitoring


class Scheduler:
    """Per-bar driver: vectorize, match, update the map, learn, trade.

    One instance is one session. It owns the map, the action history and the
    random generator; nothing is shared between instances.

    With ``config.lookahead`` the decision anchor is the current bar and the
    evaluation window looks ``forward_window`` bars ahead, which is only valid
    when replaying known history. Without it the anchor is ``forward_window``
    bars in the past, so the update only reads bars that already closed; the
    learned state then uses the action history and position recorded when the
    anchor bar was processed.
    """

    def __init__(
        self,
        config: SomQLearningConfig,
        rng: Optional[np.random.Generator] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config.validate()
        self.logger = logger or logging.getLogger(__name__)
        self.rng = rng if rng is not None else np.random.default_rng(config.seed)
        self.counter = DegeneracyCounter(self.logger)

        self.actions = build_action_set(config.action_sizes)
        n_actions = len(self.actions)

        metric = resolve_metric(config.metric)

        self.vectorizer = Vectorizer(
            window_length=config.window_length,
            n_actions=n_actions,
            action_window=config.action_window,
            include_volume=config.include_volume,
            mode=config.feature_mode,
            clip_value=config.clip_value,
            lead_constant=config.lead_constant,
            epsilon=config.epsilon,
            counter=self.counter,
            neutral_return=config.neutral_return,
            neutral_volume=config.neutral_volume,
        )
        self.som = SelfOrganizingMap(
            n_nodes=config.n_nodes,
            dimension=self.vectorizer.dimension,
            n_actions=n_actions,
            rng=self.rng,
            metric=metric,
            epsilon=config.epsilon,
            state_bounds=(config.state_init_low, config.state_init_high),
            value_bounds=(config.value_init_low, config.value_init_high),
            counter=self.counter,
        )
        self.agent = QLearningAgent(n_actions, self.rng)
        self.reward_model = RewardModel(
            window_length=config.window_length,
            forward_window=config.forward_window,
            max_magnitude=max(config.action_sizes),
            volatility_penalty_factor=config.volatility_penalty_factor,
            volatility_penalty_cap=config.volatility_penalty_cap,
            position_penalty_factor=config.position_penalty_factor,
            trading_penalty=config.trading_penalty,
            directional_bonus=config.directional_bonus,
            epsilon=config.epsilon,
            counter=self.counter,
            neutral_return=config.neutral_return,
        )
        self.decay = HyperparameterDecay.from_config(config)
        self.history: Deque[int] = deque(maxlen=config.action_window)
        # one entry per bar, enough to reach back to a causal anchor
        self._contexts: Deque[BarContext] = deque(maxlen=config.forward_window + 1)

        self.learning_start_bar = config.learning_start_bar
        self.learning_steps = 0
        self.map_updates = 0
        self._last_phase: Optional[Phase] = None

    def phase(self, bar: int) -> Phase:
        return phase_for_bar(bar, self.learning_start_bar, self.config.warmup_bars)

    def learning_anchor(self, stream: SampleStream, bar: int) -> Optional[int]:
        """Decision bar whose evaluation window is complete at ``bar``, if any."""

        horizon = self.config.forward_window
        if self.config.lookahead:
            if bar >= stream.last_index or bar + horizon > stream.last_index:
                return None
            return bar
        return bar - horizon

    def on_bar(self, stream: SampleStream, bar: int, position_magnitude: float = 0.0) -> BarResult:
        phase = self.phase(bar)
        if phase is not self._last_phase:
            self.logger.info("Barra %d: fase %s", bar, phase.name)
            self._last_phase = phase

        current = BarContext(bar, tuple(self.history), float(position_magnitude))
        self._contexts.append(current)

        result = BarResult(bar=bar, phase=phase)
        if phase is Phase.IDLE:
            return result

        hp = self.decay.at_bar(bar)
        anchor = self.learning_anchor(stream, bar)
        if anchor is not None:
            context = self.context_at(anchor)
            if context is None:
                self.logger.debug("bar=%d sem contexto para a âncora %d; aprendizado ignorado", bar, anchor)
            else:
                self._learn(stream, bar, context, current, hp, result)
        if phase is Phase.LEARN_AND_TRADE:
            self._trade(stream, bar, hp, result)

        if self.logger.isEnabledFor(logging.DEBUG):
            for kind, m in (("learn", result.learn_monitoring), ("trade", result.trade_monitoring)):
                if m is None:
                    continue
                self.logger.debug(
                    "%s bar=%d decay=%.4f node=%d dist=%.4f action=%d q=%.4f reward=%s",
                    kind,
                    m.bar,
                    m.decay,
                    m.node_index,
                    m.distance,
                    m.action_index,
                    m.q_value,
                    "-" if result.reward is None else f"{result.reward:.4f}",
                )
        return result

    def context_at(self, bar: int) -> Optional[BarContext]:
        """Action history and position seen when ``bar`` was processed, if still kept."""

        for context in reversed(self._contexts):
            if context.bar == bar:
                return context
        return None

    def _learn(
        self,
        stream: SampleStream,
        bar: int,
        context: BarContext,
        current: BarContext,
        hp: Hyperparameters,
        result: BarResult,
    ) -> None:
        # the state is described as it was at the anchor, the next state as it is now
        anchor = context.bar
        horizon = self.config.forward_window
        x_now = self.vectorizer.build(stream, anchor, history=context.history)
        x_next = self.vectorizer.build(stream, anchor, offset=horizon, history=current.history)

        winner, dist, values = self.som.find_best_node(x_now)
        action, q = self.agent.select_action(values, hp.exploration)

        if self.decay.elapsed(bar) % self.config.update_every_n_bars == 0:
            self.som.update(winner, x_now, hp.sigma, hp.beta)
            self.map_updates += 1

        _, _, next_values = self.som.find_best_node(x_next)
        _, next_best_q = self.agent.select_action(next_values, 0.0)

        reward = self.reward_model.reward(self.actions[action], context.position_magnitude, stream, anchor)
        self.agent.learn(values, action, reward, next_best_q, hp.beta, hp.gamma)
        self.learning_steps += 1

        result.learned = True
        result.reward = reward
        result.learn_monitoring = MonitoringRecord(bar, hp.decay, winner, dist, action, q)

    def _trade(self, stream: SampleStream, bar: int, hp: Hyperparameters, result: BarResult) -> None:
        x_live = self.vectorizer.build(stream, bar, history=tuple(self.history))
        winner, dist, values = self.som.find_best_node(x_live)
        action, q = self.agent.select_action(values, 0.0)
        self.history.append(action)

        spec: ActionSpec = self.actions[action]
        if not spec.is_hold:
            result.order = OrderRequest(spec.direction, spec.magnitude)
        result.trade_monitoring = MonitoringRecord(bar, hp.decay, winner, dist, action, q)
