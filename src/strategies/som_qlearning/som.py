from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from .config import ConfigurationError
from .diagnostics import DegeneracyCounter
from .distance import COSINE, distances, resolve_metric


class SelfOrganizingMap:
    """1-D self-organizing map whose nodes also own an action-value row.

    ``states`` (N x D) holds the prototypes and ``values`` (N x |A|) the
    Q-values; row ``i`` of both arrays is node ``i``. The topology is a line:
    node 0 and node N-1 are not neighbours.
    """

    def __init__(
        self,
        n_nodes: int,
        dimension: int,
        n_actions: int,
        rng: np.random.Generator,
        metric: str = COSINE,
        epsilon: float = 1e-8,
        state_bounds: Tuple[float, float] = (-0.1, 0.1),
        value_bounds: Tuple[float, float] = (0.0, 0.01),
        counter: Optional[DegeneracyCounter] = None,
    ) -> None:
        if n_nodes <= 0:
            raise ConfigurationError("O mapa precisa de pelo menos um nó")
        if dimension <= 0 or n_actions <= 0:
            raise ConfigurationError("Dimensão e número de ações precisam ser positivos")
        for low, high in (state_bounds, value_bounds):
            if low > high:
                raise ConfigurationError(f"Limites invertidos: [{low}, {high}]")

        self.metric = resolve_metric(metric)
        self.epsilon = float(epsilon)
        self.counter = counter if counter is not None else DegeneracyCounter()
        self.states = rng.uniform(state_bounds[0], state_bounds[1], size=(n_nodes, dimension))
        self.values = rng.uniform(value_bounds[0], value_bounds[1], size=(n_nodes, n_actions))
        self._index = np.arange(n_nodes, dtype=float)

    @property
    def n_nodes(self) -> int:
        return int(self.states.shape[0])

    @property
    def dimension(self) -> int:
        return int(self.states.shape[1])

    def find_best_node(self, x: np.ndarray) -> Tuple[int, float, np.ndarray]:
        """Return ``(index, distance, values_row)`` of the closest node.

        ``values_row`` is a view into ``values``; writing to it updates the map.
        Exact ties go to the lowest index.
        """

        if self.n_nodes == 0:
            raise ConfigurationError("O mapa não possui nós")
        d = distances(x, self.states, self.metric, self.epsilon, self.counter)
        winner = int(np.argmin(d))
        return winner, float(d[winner]), self.values[winner]

    def neighborhood(self, winner: int, sigma: float) -> np.ndarray:
        """Gaussian influence of ``winner`` over every node index."""

        offsets = self._index - float(winner)
        h = np.exp(-(offsets ** 2) / (2.0 * sigma ** 2 + self.epsilon))
        h[winner] = 1.0
        return h

    def update(self, winner: int, x: np.ndarray, sigma: float, beta: float) -> np.ndarray:
        """Pull every prototype toward ``x`` weighted by its neighbourhood."""

        h = self.neighborhood(winner, sigma)
        self.states += (beta * h)[:, None] * (np.asarray(x, dtype=float) - self.states)
        return h
