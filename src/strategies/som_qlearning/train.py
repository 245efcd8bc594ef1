from __future__ import annotations

import argparse
import logging
import os
from typing import List, Optional

from .backtest import plot_backtest, summary_lines
from .config import ConfigurationError, SomQLearningConfig, load_active_config
from .data import SampleStream, load_price_history
from .env import PaperBroker
from .scheduler import Scheduler
from .trainer import Trainer, TrainingConfig

# Flags that map one-to-one onto SomQLearningConfig fields
_CONFIG_FLAGS = {
    "window_length": int,
    "forward_window": int,
    "action_window": int,
    "n_nodes": int,
    "feature_mode": str,
    "metric": str,
    "clip_value": float,
    "neutral_return": float,
    "neutral_volume": float,
    "initial_exploration": float,
    "initial_sigma_factor": float,
    "initial_beta": float,
    "initial_gamma": float,
    "decay_factor": float,
    "delay_bars": int,
    "warmup_bars": int,
    "update_every_n_bars": int,
    "volatility_penalty_factor": float,
    "volatility_penalty_cap": float,
    "position_penalty_factor": float,
    "trading_penalty": float,
    "directional_bonus": float,
    "seed": int,
}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line flags into a structured namespace."""

    parser = argparse.ArgumentParser(
        description="Replay de candles com um mapa auto-organizável + Q-learning online.",
    )
    parser.add_argument("--data", required=True, help="CSV com colunas Date/close/volume")
    parser.add_argument("--ticker", default="BTCUSDT", help="Ticker usado nos relatórios (default: BTCUSDT)")
    parser.add_argument("--interval", default="15m", help="Intervalo dos candles (default: 15m)")
    parser.add_argument("--start", default=None, help="Data inicial (ex.: 2021-01-01 00:00:00)")
    parser.add_argument("--end", default=None, help="Data final opcional")
    parser.add_argument("--reports-dir", default="reports", help="Diretório da config ativa e dos gráficos")
    parser.add_argument("--use-active", action="store_true", help="Parte da config ativa salva pelo optimize")
    parser.add_argument("--include-volume", action="store_true", help="Inclui o bloco de volume nas features")
    parser.add_argument("--causal", action="store_true", help="Aprende só com barras já fechadas (modo live)")
    parser.add_argument("--balance", type=float, default=1_000.0, help="Saldo inicial do broker de papel")
    parser.add_argument("--fee", type=float, default=0.001, help="Taxa percentual cobrada em cada operação")
    parser.add_argument("--max-position", type=float, default=None, help="Limite absoluto de posição")
    parser.add_argument("--render-every", type=int, default=None, help="Loga uma barra a cada N")
    parser.add_argument("--plot", action="store_true", help="Salva gráfico do replay em reports/charts")
    for name, kind in _CONFIG_FLAGS.items():
        parser.add_argument(f"--{name.replace('_', '-')}", dest=name, type=kind, default=None)
    parser.add_argument("--log-level", default="INFO", help="Nível de log (DEBUG, INFO, WARNING...)")
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    """Set up console logging with a friendly format."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
    )


def build_config(args: argparse.Namespace) -> SomQLearningConfig:
    """Active config (optional) overridden by explicit flags."""

    config = None
    if args.use_active:
        config = load_active_config(args.ticker, args.interval, reports_dir=args.reports_dir)
        if config is None:
            logging.warning("Nenhuma config ativa encontrada; usando valores padrão.")
    if config is None:
        config = SomQLearningConfig(ticker=args.ticker, interval=args.interval)

    for name in _CONFIG_FLAGS:
        value = getattr(args, name, None)
        if value is not None:
            setattr(config, name, value)
    if args.include_volume:
        config.include_volume = True
    if args.causal:
        config.lookahead = False
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Entry-point used by ``python -m`` execution."""

    args = parse_args(argv)
    configure_logging(args.log_level)

    config = build_config(args)
    try:
        scheduler = Scheduler(config, logger=logging.getLogger("scheduler"))
    except ConfigurationError as exc:
        logging.error("Configuração inválida: %s", exc)
        return 2

    logging.info("Carregando candles de %s...", args.data)
    data = load_price_history(args.data, start=args.start, end=args.end, min_rows=config.learning_start_bar + 2)
    stream = SampleStream.from_dataframe(data, strict=not config.lookahead)

    broker = PaperBroker(starting_balance=args.balance, trading_fee=args.fee, max_position=args.max_position)
    trainer = Trainer(
        scheduler,
        broker,
        TrainingConfig(render_every=args.render_every),
        logger=logging.getLogger("trainer"),
    )

    logging.info(
        "Iniciando replay de %d barras (aprendizado a partir da barra %d, %s)...",
        len(stream),
        config.learning_start_bar,
        "causal" if not config.lookahead else "com lookahead",
    )
    result = trainer.run(stream)

    logging.info("")
    for line in summary_lines(result):
        logging.info(line)

    if args.plot:
        path = plot_backtest(
            result.history, config.ticker, config.interval, chart_dir=os.path.join(args.reports_dir, "charts")
        )
        logging.info("Gráfico do replay salvo em: %s", path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
