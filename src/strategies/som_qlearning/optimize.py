from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, List, Optional

import optuna
import pandas as pd

from .config import ConfigurationError, SomQLearningConfig, save_active_config
from .data import SampleStream, load_price_history
from .env import PaperBroker
from .scheduler import Scheduler
from .train import configure_logging
from .trainer import ReplayResult, Trainer

FAILED_TRIAL = -1e12


def replay(df: pd.DataFrame, config: SomQLearningConfig, balance: float, fee: float) -> ReplayResult:
    stream = SampleStream.from_dataframe(df, strict=not config.lookahead)
    trainer = Trainer(Scheduler(config), PaperBroker(starting_balance=balance, trading_fee=fee))
    return trainer.run(stream)


def metrics_of(result: ReplayResult, balance: float) -> Dict[str, Any]:
    return {
        "pnl": result.final_equity - balance,
        "mean_reward": result.mean_reward,
        "orders": result.orders,
        "trades": result.trades,
        "win_rate": result.win_rate,
        "learning_steps": result.learning_steps,
    }


def suggest_config(trial: optuna.Trial, base: SomQLearningConfig) -> SomQLearningConfig:
    return replace(
        base,
        window_length=trial.suggest_int("window_length", 8, 32),
        forward_window=trial.suggest_int("forward_window", 1, 8),
        n_nodes=trial.suggest_int("n_nodes", 8, 64),
        initial_exploration=trial.suggest_float("initial_exploration", 0.05, 0.5),
        initial_beta=trial.suggest_float("initial_beta", 0.1, 0.9),
        initial_sigma_factor=trial.suggest_float("initial_sigma_factor", 0.1, 1.0),
        decay_factor=trial.suggest_float("decay_factor", 0.995, 0.99995),
        trading_penalty=trial.suggest_float("trading_penalty", 0.0, 0.1),
    )


def make_objective(df_train: pd.DataFrame, base: SomQLearningConfig, balance: float, fee: float):
    def objective(trial: optuna.Trial) -> float:
        config = suggest_config(trial, base)
        try:
            result = replay(df_train, config, balance, fee)
        except ConfigurationError:
            return FAILED_TRIAL
        return result.final_equity - balance

    return objective


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Otimiza hiperparâmetros do SOM + Q-learning com Optuna")
    ap.add_argument("--data", required=True, help="CSV com colunas Date/close/volume")
    ap.add_argument("--ticker", default="BTCUSDT")
    ap.add_argument("--interval", default="15m")
    ap.add_argument("--train_frac", type=float, default=0.7)
    ap.add_argument("--balance", type=float, default=1_000.0)
    ap.add_argument("--fee", type=float, default=0.001)
    ap.add_argument("--warmup_bars", type=int, default=200)
    ap.add_argument("--trials", type=int, default=50)
    ap.add_argument("--seed", type=int, default=42)
    ap.add_argument("--outdir", default="reports")
    ap.add_argument("--log-level", default="WARNING")
    return ap.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging(args.log_level)

    df = load_price_history(args.data)
    n = len(df)
    split = int(n * args.train_frac)
    df_train = df.iloc[:split].reset_index(drop=True)
    df_valid = df.iloc[split:].reset_index(drop=True)
    print(f"Total candles: {n} | Treino: {len(df_train)} | Validação: {len(df_valid)}")

    base = SomQLearningConfig(
        ticker=args.ticker,
        interval=args.interval,
        warmup_bars=args.warmup_bars,
        seed=args.seed,
    )
    study = optuna.create_study(direction="maximize", sampler=optuna.samplers.TPESampler(seed=args.seed))
    study.optimize(make_objective(df_train, base, args.balance, args.fee), n_trials=args.trials)

    print("\nMelhores parâmetros (treino):")
    print(study.best_params)
    print(f"Melhor P&L (treino): $ {study.best_value:.2f}")

    best = replace(base, **study.best_params)
    tr_metrics = metrics_of(replay(df_train, best, args.balance, args.fee), args.balance)
    va_metrics = metrics_of(replay(df_valid, best, args.balance, args.fee), args.balance)

    rec = {
        "ticker": args.ticker,
        "interval": args.interval,
        "train_frac": args.train_frac,
        "fee_rate": args.fee,
        "best_params": best.to_dict(),
        "train_metrics": tr_metrics,
        "valid_metrics": va_metrics,
    }

    outdir = Path(args.outdir)
    outdir.mkdir(parents=True, exist_ok=True)
    ts = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
    base_name = f"som_qlearning_optuna_{args.ticker}_{args.interval}_{ts}"

    (outdir / f"{base_name}.json").write_text(json.dumps(rec, ensure_ascii=False, indent=2), encoding="utf-8")
    with (outdir / f"{base_name}.md").open("w", encoding="utf-8") as f:
        f.write("# SOM + Q-learning Optimization Report\n\n")
        f.write(f"- Ticker: {args.ticker}\n")
        f.write(f"- Interval: {args.interval}\n")
        f.write(f"- Trials: {args.trials}\n")
        f.write(f"- Train frac: {args.train_frac}\n")
        f.write("\n## Best Parameters\n")
        for k, v in study.best_params.items():
            f.write(f"- {k}: {v}\n")
        f.write("\n## Train Metrics\n")
        for k, v in tr_metrics.items():
            f.write(f"- {k}: {v}\n")
        f.write("\n## Validation Metrics\n")
        for k, v in va_metrics.items():
            f.write(f"- {k}: {v}\n")

    active_path = save_active_config(rec, reports_dir=args.outdir)
    print(f"\nRelatórios salvos em: {outdir / (base_name + '.json')} e {outdir / (base_name + '.md')}")
    print(f"Config ativa (SOM-Q) atualizada: {active_path}")


if __name__ == "__main__":
    logging.getLogger("optuna").setLevel(logging.WARNING)
    main()
