"""Online SOM + Q-learning decision engine for a single price series.

A self-organizing map quantizes a rolling window of returns (optionally
volume and the last few actions) into prototype nodes, and each node carries
a Q-value row over a fixed set of HOLD/LONG/SHORT actions. Both are updated
once per bar, with no offline training phase.

Run a replay:
  python -m src.strategies.som_qlearning.train --data data/BTCUSDT_15m.csv --plot
"""

from .actions import ActionSpec, Direction, build_action_set
from .config import ConfigurationError, SomQLearningConfig
from .data import LookaheadError, SampleStream
from .scheduler import BarContext, BarResult, MonitoringRecord, OrderRequest, Phase, Scheduler, phase_for_bar

__all__ = [
    "ActionSpec",
    "BarContext",
    "BarResult",
    "ConfigurationError",
    "Direction",
    "LookaheadError",
    "MonitoringRecord",
    "OrderRequest",
    "Phase",
    "SampleStream",
    "Scheduler",
    "SomQLearningConfig",
    "build_action_set",
    "phase_for_bar",
]
