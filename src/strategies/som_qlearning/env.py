from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from .scheduler import OrderRequest


@dataclass
class Trade:
    """Record of a position that went back to flat (or flipped side).

    ``quantity`` is the signed total opened over the life of the position and
    ``pnl`` the realized result of every partial reduce plus the close, net of
    the fees paid on that position.
    """

    entry_index: int
    exit_index: int
    entry_price: float
    exit_price: float
    quantity: float
    pnl: float


class PaperBroker:
    """Paper execution collaborator for replays.

    Applies ``OrderRequest`` objects at the bar's price, keeps a signed
    position (positive long, negative short) bounded by ``max_position``,
    charges a fractional fee on traded notional and records closed trades.
    """

    def __init__(
        self,
        starting_balance: float = 1_000.0,
        trading_fee: float = 0.001,
        max_position: Optional[float] = None,
    ) -> None:
        self.starting_balance = float(starting_balance)
        self.fee = float(trading_fee)
        self.max_position = None if max_position is None else abs(float(max_position))
        self.reset()

    def reset(self) -> None:
        self.balance = self.starting_balance
        self.position = 0.0
        self.entry_price = 0.0
        self.entry_index = -1
        self.fees_paid = 0.0
        self.trades: List[Trade] = []
        self._open_quantity = 0.0
        self._open_pnl = 0.0

    def equity(self, mark_price: float) -> float:
        """Cash plus unrealized PnL of the open position at ``mark_price``."""

        return self.balance + self.position * (mark_price - self.entry_price)

    def submit(self, order: OrderRequest, price: float, bar: int) -> Dict[str, Any]:
        """Execute ``order`` at ``price`` and return logging metadata."""

        details: Dict[str, Any] = {}
        target = self.position + order.signed_quantity
        if self.max_position is not None:
            target = max(-self.max_position, min(self.max_position, target))
        delta = target - self.position
        if abs(delta) < 1e-12:
            details["event"] = "Ordem ignorada (limite de posição)"
            return details

        fee = abs(delta) * price * self.fee
        self.balance -= fee
        self.fees_paid += fee

        if self.position == 0.0 or (self.position > 0) == (delta > 0):
            # opening or adding: average the entry price
            new_size = abs(target)
            self.entry_price = (abs(self.position) * self.entry_price + abs(delta) * price) / new_size
            if self.position == 0.0:
                self.entry_index = bar
                self._open_quantity = 0.0
                self._open_pnl = 0.0
            self._open_quantity += abs(delta)
            self._open_pnl -= fee
            self.position = target
            details["event"] = "Posição aberta/aumentada"
        else:
            closed = min(abs(delta), abs(self.position))
            close_fee = fee * closed / abs(delta)
            sign = 1.0 if self.position > 0 else -1.0
            pnl = sign * closed * (price - self.entry_price)
            self.balance += pnl
            self._open_pnl += pnl - close_fee
            remaining = self.position + delta
            if abs(remaining) < 1e-12 or (remaining > 0) != (self.position > 0):
                trade = Trade(
                    entry_index=self.entry_index,
                    exit_index=bar,
                    entry_price=self.entry_price,
                    exit_price=price,
                    quantity=sign * self._open_quantity,
                    pnl=self._open_pnl,
                )
                self.trades.append(trade)
                details["trade"] = asdict(trade)
                if abs(remaining) < 1e-12:
                    remaining = 0.0
                    self.entry_price = 0.0
                    self.entry_index = -1
                    self._open_quantity = 0.0
                    self._open_pnl = 0.0
                else:
                    # flipped side: the excess opens a fresh position at this price
                    self.entry_price = price
                    self.entry_index = bar
                    self._open_quantity = abs(remaining)
                    self._open_pnl = -(fee - close_fee)
            self.position = remaining
            details["event"] = "Posição reduzida/encerrada"

        details.update({"price": price, "position": self.position, "balance": self.balance})
        return details

    @property
    def trade_log(self) -> List[Trade]:
        return self.trades
