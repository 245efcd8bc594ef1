from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from .diagnostics import DegeneracyCounter

logger = logging.getLogger(__name__)

COSINE = "cosine"
EUCLIDEAN = "euclidean"

_ALIASES = {
    "cosine": COSINE,
    "cos": COSINE,
    "euclidean": EUCLIDEAN,
    "sqeuclidean": EUCLIDEAN,
    "squared_euclidean": EUCLIDEAN,
}


def cosine_distance(a: np.ndarray, b: np.ndarray, epsilon: float = 1e-8) -> float:
    """``1 - cos(a, b)``; ``1.0`` when either vector has (near) zero norm."""

    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a <= epsilon or norm_b <= epsilon:
        return 1.0
    return 1.0 - float(np.dot(a, b)) / max(norm_a * norm_b, epsilon)


def squared_euclidean(a: np.ndarray, b: np.ndarray) -> float:
    diff = np.asarray(a, dtype=float) - np.asarray(b, dtype=float)
    return float(np.dot(diff, diff))


def resolve_metric(name: str) -> str:
    """Normalize a metric name; unknown names fall back to cosine."""

    key = (name or "").strip().lower()
    if key not in _ALIASES:
        logger.warning("Métrica desconhecida '%s'; usando distância cosseno.", name)
        return COSINE
    return _ALIASES[key]


def distance(a: np.ndarray, b: np.ndarray, metric: str = COSINE, epsilon: float = 1e-8) -> float:
    if resolve_metric(metric) == EUCLIDEAN:
        return squared_euclidean(a, b)
    return cosine_distance(a, b, epsilon)


def distances(
    x: np.ndarray,
    matrix: np.ndarray,
    metric: str = COSINE,
    epsilon: float = 1e-8,
    counter: Optional[DegeneracyCounter] = None,
) -> np.ndarray:
    """Distance from ``x`` to every row of ``matrix`` (one row per node)."""

    x = np.asarray(x, dtype=float)
    if resolve_metric(metric) == EUCLIDEAN:
        diff = matrix - x
        return np.einsum("ij,ij->i", diff, diff)

    row_norms = np.linalg.norm(matrix, axis=1)
    x_norm = float(np.linalg.norm(x))
    degenerate = row_norms <= epsilon
    if x_norm <= epsilon:
        degenerate = np.ones_like(degenerate)
    if counter is not None:
        counter.record(DegeneracyCounter.ZERO_NORM, int(degenerate.sum()))

    denom = np.maximum(row_norms * x_norm, epsilon)
    out = 1.0 - (matrix @ x) / denom
    out[degenerate] = 1.0
    return out
