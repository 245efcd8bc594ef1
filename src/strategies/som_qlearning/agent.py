from __future__ import annotations

from typing import Optional, Tuple

import numpy as np


class QLearningAgent:
    """Epsilon-greedy policy and one-step Q-learning over map nodes.

    The state is the identity of the winning node, so the agent itself keeps
    no table: it reads and writes the value row handed over by the map.
    """

    def __init__(self, n_actions: int, rng: Optional[np.random.Generator] = None) -> None:
        self.n_actions = int(n_actions)
        self.rng = rng if rng is not None else np.random.default_rng()

    def select_action(self, values: np.ndarray, exploration: float) -> Tuple[int, float]:
        """Choose an action index following an epsilon-greedy strategy."""

        if exploration > 0.0 and self.rng.random() < exploration:
            action = int(self.rng.integers(0, self.n_actions))
        else:
            action = self.greedy(values)
        return action, float(values[action])

    @staticmethod
    def greedy(values: np.ndarray) -> int:
        # argmax returns the first maximum
        return int(np.argmax(values))

    def learn(
        self,
        values: np.ndarray,
        action: int,
        reward: float,
        next_best_q: float,
        beta: float,
        gamma: float,
    ) -> float:
        """Apply the TD update to ``values[action]`` in place and return it."""

        old_q = float(values[action])
        target = reward + gamma * next_best_q
        values[action] = old_q + beta * (target - old_q)
        return float(values[action])
