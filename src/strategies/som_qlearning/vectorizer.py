from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np

from .config import ConfigurationError
from .data import SampleStream
from .diagnostics import DegeneracyCounter

PATTERN = "pattern"
MAGNITUDE = "magnitude"

RETURN_SCALE = 10_000.0
NEUTRAL_RETURN = 0.0
NEUTRAL_VOLUME = 1.0


def window_returns(
    prices: np.ndarray,
    epsilon: float = 1e-8,
    counter: Optional[DegeneracyCounter] = None,
    neutral: float = NEUTRAL_RETURN,
) -> np.ndarray:
    """Fractional one-bar returns of ``prices`` (length ``len(prices) - 1``).

    A missing price on either side of a pair, or a previous price at or below
    ``epsilon``, gives ``neutral``.
    """

    prev = prices[:-1]
    curr = prices[1:]
    missing = np.isnan(prev) | np.isnan(curr)
    tiny = ~missing & (np.abs(prev) <= epsilon)
    if counter is not None:
        counter.record(DegeneracyCounter.MISSING_PRICE, int(missing.sum()))
        counter.record(DegeneracyCounter.ZERO_PRICE_DENOMINATOR, int(tiny.sum()))

    safe_prev = np.where(missing | tiny, 1.0, prev)
    out = (np.nan_to_num(curr) - np.nan_to_num(prev)) / safe_prev
    out[missing | tiny] = neutral
    return out


class Vectorizer:
    """Turn a window of samples plus recent actions into a feature vector.

    Layout: ``price block (M) | volume block (M, optional) | action block (2K)``.

    In ``pattern`` mode the price block holds basis-point returns with a small
    constant in the lead slot, which keeps cosine distance well defined. In
    ``magnitude`` mode every block is z-scored over the window and clipped,
    so squared Euclidean distances stay on a comparable scale.
    """

    def __init__(
        self,
        window_length: int,
        n_actions: int,
        action_window: int = 0,
        include_volume: bool = False,
        mode: str = PATTERN,
        clip_value: float = 3.0,
        lead_constant: float = 0.1,
        epsilon: float = 1e-8,
        counter: Optional[DegeneracyCounter] = None,
        neutral_return: float = NEUTRAL_RETURN,
        neutral_volume: float = NEUTRAL_VOLUME,
    ) -> None:
        if window_length <= 0:
            raise ConfigurationError(f"window_length precisa ser positivo (recebido {window_length})")
        if n_actions <= 0:
            raise ConfigurationError("O conjunto de ações não pode ser vazio")
        if mode not in (PATTERN, MAGNITUDE):
            raise ConfigurationError(f"Modo de vetorização desconhecido: {mode}")

        self.window_length = int(window_length)
        self.n_actions = int(n_actions)
        self.action_window = int(action_window)
        self.include_volume = bool(include_volume)
        self.mode = mode
        self.clip_value = float(clip_value)
        self.lead_constant = float(lead_constant)
        self.epsilon = float(epsilon)
        self.counter = counter if counter is not None else DegeneracyCounter()
        self.neutral_return = float(neutral_return)
        self.neutral_volume = float(neutral_volume)

    @property
    def dimension(self) -> int:
        return self.dimension_for(self.window_length)

    def dimension_for(self, window_length: int) -> int:
        volume = window_length if self.include_volume else 0
        return window_length + volume + 2 * self.action_window

    def build(
        self,
        stream: SampleStream,
        bar: int,
        window_length: Optional[int] = None,
        offset: int = 0,
        history: Sequence[int] = (),
    ) -> np.ndarray:
        """Feature vector of the window ending at ``bar + offset``.

        Args:
            stream: Sample source.
            bar: Reference bar (usually the bar being processed).
            window_length: Samples in the window; defaults to the configured one.
            offset: Shift of the window end relative to ``bar``.
            history: Chosen action indices, most recent last.

        Raises:
            ConfigurationError: If ``window_length <= 0``.
        """

        length = self.window_length if window_length is None else int(window_length)
        if length <= 0:
            raise ConfigurationError(f"window_length precisa ser positivo (recebido {length})")

        end = bar + offset
        start = end - length + 1
        blocks = [self._price_block(stream.prices(start, end))]
        if self.include_volume:
            blocks.append(self._volume_block(stream.volumes(start, end)))
        if self.action_window > 0:
            blocks.append(self.encode_actions(history))
        return np.concatenate(blocks)

    def _price_block(self, prices: np.ndarray) -> np.ndarray:
        block = np.empty(prices.size, dtype=float)
        block[0] = self.lead_constant
        block[1:] = window_returns(prices, self.epsilon, self.counter, self.neutral_return) * RETURN_SCALE
        if self.mode == MAGNITUDE:
            block = self._standardize(block)
        return block

    def _volume_block(self, volumes: np.ndarray) -> np.ndarray:
        missing = np.isnan(volumes)
        self.counter.record(DegeneracyCounter.MISSING_VOLUME, int(missing.sum()))
        block = np.log1p(np.where(missing, self.neutral_volume, volumes))
        block = block - block.mean()
        if self.mode == MAGNITUDE:
            block = self._standardize(block)
        return block

    def _standardize(self, block: np.ndarray) -> np.ndarray:
        std = float(block.std())
        if std <= self.epsilon:
            self.counter.record(DegeneracyCounter.ZERO_STD)
            std = self.epsilon
        z = (block - block.mean()) / std
        return np.clip(z, -self.clip_value, self.clip_value)

    def encode_actions(self, history: Sequence[int]) -> np.ndarray:
        """``(cos, sin)`` of each of the last K actions, most recent first."""

        out = np.zeros(2 * self.action_window, dtype=float)
        recent = list(history)[-self.action_window :][::-1] if self.action_window else []
        for slot, action in enumerate(recent):
            theta = 2.0 * math.pi * int(action) / self.n_actions
            out[2 * slot] = math.cos(theta)
            out[2 * slot + 1] = math.sin(theta)
        return out
