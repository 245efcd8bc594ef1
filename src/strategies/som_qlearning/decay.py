from __future__ import annotations

from dataclasses import dataclass

from .config import SomQLearningConfig


@dataclass(frozen=True)
class Hyperparameters:
    """Learning rates in effect for one bar."""

    decay: float
    exploration: float
    sigma: float
    beta: float
    gamma: float


def decay_value(elapsed_bars: int, decay_factor: float = 0.9992, epsilon: float = 1e-8) -> float:
    """``decay_factor ** elapsed + epsilon``; bars before the start count as zero."""

    return decay_factor ** max(int(elapsed_bars), 0) + epsilon


class HyperparameterDecay:
    """Anneal exploration, neighbourhood width, learning rate and discount together."""

    def __init__(
        self,
        n_nodes: int,
        learning_start_bar: int,
        initial_exploration: float = 0.3,
        initial_sigma_factor: float = 0.5,
        initial_beta: float = 0.6,
        initial_gamma: float = 0.9,
        decay_factor: float = 0.9992,
        epsilon: float = 1e-8,
    ) -> None:
        self.n_nodes = int(n_nodes)
        self.learning_start_bar = int(learning_start_bar)
        self.initial_exploration = float(initial_exploration)
        self.initial_sigma_factor = float(initial_sigma_factor)
        self.initial_beta = float(initial_beta)
        self.initial_gamma = float(initial_gamma)
        self.decay_factor = float(decay_factor)
        self.epsilon = float(epsilon)

    @classmethod
    def from_config(cls, config: SomQLearningConfig) -> "HyperparameterDecay":
        return cls(
            n_nodes=config.n_nodes,
            learning_start_bar=config.learning_start_bar,
            initial_exploration=config.initial_exploration,
            initial_sigma_factor=config.initial_sigma_factor,
            initial_beta=config.initial_beta,
            initial_gamma=config.initial_gamma,
            decay_factor=config.decay_factor,
            epsilon=config.epsilon,
        )

    def elapsed(self, bar: int) -> int:
        return int(bar) - self.learning_start_bar

    def at_bar(self, bar: int) -> Hyperparameters:
        return self.at_elapsed(self.elapsed(bar))

    def at_elapsed(self, elapsed_bars: int) -> Hyperparameters:
        d = decay_value(elapsed_bars, self.decay_factor, self.epsilon)
        return Hyperparameters(
            decay=d,
            exploration=min(self.initial_exploration * d, 1.0),
            sigma=self.n_nodes * self.initial_sigma_factor * d,
            beta=self.initial_beta * d,
            gamma=self.initial_gamma * d,
        )
