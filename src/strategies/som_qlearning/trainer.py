from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from .data import SampleStream
from .env import PaperBroker
from .scheduler import BarResult, Phase, Scheduler


@dataclass
class TrainingConfig:
    """Runtime options of a replay."""

    render_every: Optional[int] = None
    start_bar: int = 0
    end_bar: Optional[int] = None


@dataclass
class ReplayResult:
    """Summary of a finished replay."""

    bars: int
    learning_steps: int
    map_updates: int
    orders: int
    trades: int
    winning_trades: int
    mean_reward: float
    final_balance: float
    final_equity: float
    degeneracies: Dict[str, int] = field(default_factory=dict)
    history: pd.DataFrame = field(default_factory=pd.DataFrame)

    @property
    def win_rate(self) -> float:
        return self.winning_trades / self.trades if self.trades else 0.0


class Trainer:
    """Replay a sample stream bar by bar through a scheduler and a broker.

    The broker's current position is fed back into the scheduler every bar
    and each emitted order is executed at that bar's price before the next
    bar is processed.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        broker: PaperBroker,
        config: Optional[TrainingConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.scheduler = scheduler
        self.broker = broker
        self.config = config or TrainingConfig()
        self.logger = logger or logging.getLogger(__name__)

    def run(self, stream: SampleStream) -> ReplayResult:
        end = stream.last_index if self.config.end_bar is None else min(self.config.end_bar, stream.last_index)
        rows: List[Dict[str, Any]] = []
        rewards: List[float] = []
        orders = 0
        last_price = np.nan

        for bar in range(self.config.start_bar, end + 1):
            if stream.strict:
                stream.set_cursor(bar)
            result = self.scheduler.on_bar(stream, bar, position_magnitude=self.broker.position)

            price = stream.price(bar)
            if not np.isnan(price):
                last_price = price
            info: Dict[str, Any] = {}
            if result.order is not None and not np.isnan(last_price):
                info = self.broker.submit(result.order, last_price, bar)
                orders += 1
            if result.reward is not None:
                rewards.append(result.reward)

            rows.append(self._row(result, last_price, info))
            if self._should_render(bar, result):
                self._render_step(rows[-1])

        mark = last_price if not np.isnan(last_price) else 0.0
        trades = self.broker.trade_log
        return ReplayResult(
            bars=len(rows),
            learning_steps=self.scheduler.learning_steps,
            map_updates=self.scheduler.map_updates,
            orders=orders,
            trades=len(trades),
            winning_trades=sum(1 for trade in trades if trade.pnl > 0),
            mean_reward=float(np.mean(rewards)) if rewards else 0.0,
            final_balance=self.broker.balance,
            final_equity=self.broker.equity(mark),
            degeneracies=self.scheduler.counter.as_dict(),
            history=pd.DataFrame(rows),
        )

    def _row(self, result: BarResult, price: float, info: Dict[str, Any]) -> Dict[str, Any]:
        m = result.monitoring
        lm = result.learn_monitoring
        return {
            "bar": result.bar,
            "phase": result.phase.value,
            "close": price,
            "reward": result.reward,
            "node": None if m is None else m.node_index,
            "distance": None if m is None else m.distance,
            "action": None if m is None else m.action_index,
            "q_value": None if m is None else m.q_value,
            "decay": None if m is None else m.decay,
            "learn_node": None if lm is None else lm.node_index,
            "learn_action": None if lm is None else lm.action_index,
            "learn_q": None if lm is None else lm.q_value,
            "order": None if result.order is None else result.order.signed_quantity,
            "position": self.broker.position,
            "equity": self.broker.equity(price) if not np.isnan(price) else self.broker.balance,
            "event": info.get("event", ""),
        }

    def _should_render(self, bar: int, result: BarResult) -> bool:
        if not self.config.render_every or result.phase is Phase.IDLE:
            return False
        return bar % self.config.render_every == 0

    def _render_step(self, row: Dict[str, Any]) -> None:
        self.logger.info(
            "%-7d %-16s %-10.2f %-8s %-8s %-10.4f %-10.2f %s",
            row["bar"],
            row["phase"],
            row["close"],
            "-" if row["node"] is None else row["node"],
            "-" if row["action"] is None else row["action"],
            0.0 if row["reward"] is None else row["reward"],
            row["equity"],
            row["event"],
        )
