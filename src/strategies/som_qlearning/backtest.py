from __future__ import annotations

import os
from typing import List

import matplotlib

matplotlib.use("Agg", force=True)
import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402

from .trainer import ReplayResult  # noqa: E402


def summary_lines(result: ReplayResult) -> List[str]:
    """Human-readable summary of a replay, one line per metric."""

    lines = [
        "--- Resumo do Replay SOM-Q ---",
        f"Barras processadas: {result.bars}",
        f"Passos de aprendizado: {result.learning_steps}",
        f"Atualizações do mapa: {result.map_updates}",
        f"Ordens emitidas: {result.orders}",
        f"Recompensa média: {result.mean_reward:.4f}",
        f"Saldo final: {result.final_balance:.2f}",
        f"Equity final: {result.final_equity:.2f}",
    ]
    if result.trades:
        lines.append(f"Trades encerrados: {result.trades}")
        lines.append(f"Taxa de Acerto: {result.win_rate * 100:.2f}%")
    else:
        lines.append("Nenhum trade foi encerrado durante o período.")
    if result.degeneracies:
        detail = ", ".join(f"{k}={v}" for k, v in sorted(result.degeneracies.items()))
        lines.append(f"Degenerescências numéricas: {detail}")
    return lines


def plot_backtest(history: pd.DataFrame, ticker: str, interval: str, chart_dir: str = os.path.join("reports", "charts")) -> str:
    """Plot price, orders and equity of a replay and return the PNG path."""

    plt.style.use("seaborn-v0_8-darkgrid")
    fig, (ax_price, ax_equity) = plt.subplots(2, 1, figsize=(18, 10), sharex=True)

    ax_price.plot(history["bar"], history["close"], label="Close Price", color="gray", alpha=0.8, zorder=1)
    orders = history.dropna(subset=["order"])
    buys = orders[orders["order"] > 0]
    sells = orders[orders["order"] < 0]
    ax_price.scatter(buys["bar"], buys["close"], label="Long", marker="^", color="green", s=60, zorder=2)
    ax_price.scatter(sells["bar"], sells["close"], label="Short", marker="v", color="red", s=60, zorder=2)
    ax_price.set_title(f"Replay SOM + Q-learning - {ticker} ({interval})")
    ax_price.set_ylabel("Preço")
    ax_price.legend()

    ax_equity.plot(history["bar"], history["equity"], label="Equity", color="steelblue")
    ax_equity.set_xlabel("Barra")
    ax_equity.set_ylabel("Equity")
    ax_equity.legend()

    os.makedirs(chart_dir, exist_ok=True)
    chart_path = os.path.join(chart_dir, f"som_qlearning_{ticker}_{interval}.png")
    fig.savefig(chart_path)
    plt.close(fig)
    return chart_path
