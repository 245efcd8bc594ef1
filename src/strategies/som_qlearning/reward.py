from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .actions import ActionSpec
from .data import SampleStream
from .diagnostics import DegeneracyCounter
from .vectorizer import NEUTRAL_RETURN, window_returns

# tanh(10) is already 1 - 4e-9; clipping keeps exp() finite and the result
# strictly inside (-1, 1) whatever epsilon is configured.
SQUASH_LIMIT = 10.0


def squash(x: float, epsilon: float = 1e-8) -> float:
    x = float(np.clip(x, -SQUASH_LIMIT, SQUASH_LIMIT))
    pos = np.exp(x)
    neg = np.exp(-x)
    return float((pos - neg) / (pos + neg + epsilon))


def smoothed_mean(returns: np.ndarray) -> float:
    """Exponentially weighted mean with the first (nearest) return weighted most."""

    if returns.size == 0:
        return 0.0
    alpha = 2.0 / (returns.size + 1.0)
    weights = (1.0 - alpha) ** np.arange(returns.size)
    return float(np.dot(weights, returns) / weights.sum())


@dataclass
class RewardComponents:
    base_return: float
    volatility_penalty: float
    position_penalty: float
    trading_cost: float
    directional_bonus: float

    @property
    def raw(self) -> float:
        return (
            self.base_return
            - self.volatility_penalty
            - self.position_penalty
            - self.trading_cost
            + self.directional_bonus
        )


class RewardModel:
    """Bounded reward for taking ``action`` at a decision bar.

    The forward window (``forward_window`` bars after the anchor) measures
    what the action would have earned; the backward window (``window_length``
    samples ending at the anchor) measures the recent dispersion used to
    normalize it and to penalize trading in noisy conditions.
    """

    def __init__(
        self,
        window_length: int,
        forward_window: int,
        max_magnitude: float,
        volatility_penalty_factor: float = 10.0,
        volatility_penalty_cap: float = 0.2,
        position_penalty_factor: float = 0.5,
        trading_penalty: float = 0.02,
        directional_bonus: float = 0.05,
        epsilon: float = 1e-8,
        counter: Optional[DegeneracyCounter] = None,
        neutral_return: float = NEUTRAL_RETURN,
    ) -> None:
        self.window_length = int(window_length)
        self.forward_window = int(forward_window)
        self.max_magnitude = max(float(max_magnitude), epsilon)
        self.volatility_penalty_factor = float(volatility_penalty_factor)
        self.volatility_penalty_cap = float(volatility_penalty_cap)
        self.position_penalty_factor = float(position_penalty_factor)
        self.trading_penalty = float(trading_penalty)
        self.directional_bonus = float(directional_bonus)
        self.epsilon = float(epsilon)
        self.counter = counter if counter is not None else DegeneracyCounter()
        self.neutral_return = float(neutral_return)

    def recent_dispersion(self, stream: SampleStream, anchor: int) -> float:
        start = max(0, anchor - self.window_length + 1)
        returns = window_returns(stream.prices(start, anchor), self.epsilon, self.counter, self.neutral_return)
        return float(returns.std()) if returns.size else 0.0

    def forward_return(self, stream: SampleStream, anchor: int) -> float:
        prices = stream.prices(anchor, anchor + self.forward_window)
        return smoothed_mean(window_returns(prices, self.epsilon, self.counter, self.neutral_return))

    def recent_change_sign(self, stream: SampleStream, anchor: int) -> int:
        if anchor < 1:
            return 0
        change = window_returns(stream.prices(anchor - 1, anchor), self.epsilon, self.counter, self.neutral_return)
        return int(np.sign(change[0]))

    def components(
        self,
        action: ActionSpec,
        position_magnitude: float,
        stream: SampleStream,
        anchor: int,
    ) -> RewardComponents:
        dispersion = self.recent_dispersion(stream, anchor)
        if dispersion <= self.epsilon:
            self.counter.record(DegeneracyCounter.ZERO_STD)
        scale = int(action.direction) * (action.magnitude / self.max_magnitude)
        base = scale * self.forward_return(stream, anchor) / max(dispersion, self.epsilon)

        direction = int(action.direction)
        bonus = 0.0
        if direction != 0 and self.recent_change_sign(stream, anchor) == direction:
            bonus = self.directional_bonus

        return RewardComponents(
            base_return=base,
            volatility_penalty=min(self.volatility_penalty_factor * dispersion, self.volatility_penalty_cap),
            position_penalty=abs(position_magnitude) * self.position_penalty_factor,
            trading_cost=0.0 if action.is_hold else self.trading_penalty,
            directional_bonus=bonus,
        )

    def reward(
        self,
        action: ActionSpec,
        position_magnitude: float,
        stream: SampleStream,
        anchor: int,
    ) -> float:
        """Reward in ``(-1, 1)`` for ``action`` decided at bar ``anchor``."""

        return squash(self.components(action, position_magnitude, stream, anchor).raw, self.epsilon)
