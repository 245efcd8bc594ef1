from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import json


class ConfigurationError(ValueError):
    """Raised at session start when a static setting can never work."""


@dataclass
class SomQLearningConfig:
    """Static settings of one SOM + Q-learning session (read once at start)."""

    ticker: str = "BTCUSDT"
    interval: str = "15m"

    # Feature window
    window_length: int = 16
    forward_window: int = 4
    action_window: int = 2
    include_volume: bool = False
    feature_mode: str = "pattern"  # "pattern" (cosine) | "magnitude" (euclidean)
    metric: str = "cosine"
    clip_value: float = 3.0
    lead_constant: float = 0.1
    # Stand-ins for missing samples: one-bar return, and volume before log1p
    neutral_return: float = 0.0
    neutral_volume: float = 1.0

    # Map
    n_nodes: int = 24
    state_init_low: float = -0.1
    state_init_high: float = 0.1
    value_init_low: float = 0.0
    value_init_high: float = 0.01

    # Actions
    action_sizes: Tuple[float, ...] = (0.01, 0.02, 0.03, 0.04)

    # Reward shaping
    volatility_penalty_factor: float = 10.0
    volatility_penalty_cap: float = 0.2
    position_penalty_factor: float = 0.5
    trading_penalty: float = 0.02
    directional_bonus: float = 0.05

    # Hyperparameters and decay
    initial_exploration: float = 0.3
    initial_sigma_factor: float = 0.5
    initial_beta: float = 0.6
    initial_gamma: float = 0.9
    decay_factor: float = 0.9992

    # Scheduling
    delay_bars: int = 0
    warmup_bars: int = 200
    update_every_n_bars: int = 2
    lookahead: bool = True

    epsilon: float = 1e-8
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        self.action_sizes = tuple(float(s) for s in self.action_sizes)

    @property
    def learning_start_bar(self) -> int:
        return max(self.window_length + self.forward_window, self.delay_bars)

    def validate(self) -> "SomQLearningConfig":
        """Raise ``ConfigurationError`` for the first invalid field found."""

        positive_ints = {
            "window_length": self.window_length,
            "forward_window": self.forward_window,
            "n_nodes": self.n_nodes,
            "update_every_n_bars": self.update_every_n_bars,
        }
        for name, value in positive_ints.items():
            if int(value) <= 0:
                raise ConfigurationError(f"{name} precisa ser positivo (recebido {value})")

        for name in ("action_window", "warmup_bars", "delay_bars"):
            if int(getattr(self, name)) < 0:
                raise ConfigurationError(f"{name} não pode ser negativo")

        if self.epsilon <= 0:
            raise ConfigurationError("epsilon precisa ser positivo")
        if self.feature_mode not in ("pattern", "magnitude"):
            raise ConfigurationError(f"feature_mode desconhecido: {self.feature_mode}")
        if self.clip_value <= 0:
            raise ConfigurationError("clip_value precisa ser positivo")
        if self.neutral_volume < 0:
            raise ConfigurationError("neutral_volume não pode ser negativo")
        if not 0.0 < self.decay_factor <= 1.0:
            raise ConfigurationError(f"decay_factor fora de (0, 1]: {self.decay_factor}")
        if self.state_init_low > self.state_init_high:
            raise ConfigurationError("state_init_low > state_init_high (limites invertidos)")
        if self.value_init_low > self.value_init_high:
            raise ConfigurationError("value_init_low > value_init_high (limites invertidos)")
        if not self.action_sizes or any(s <= 0 for s in self.action_sizes):
            raise ConfigurationError("action_sizes precisa conter tamanhos positivos")
        if self.volatility_penalty_cap < 0:
            raise ConfigurationError("volatility_penalty_cap não pode ser negativo")
        if not 0.0 <= self.initial_exploration <= 1.0:
            raise ConfigurationError("initial_exploration precisa estar em [0, 1]")
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["action_sizes"] = list(self.action_sizes)
        return data


def _parse(data: Dict[str, Any], ticker: str, interval: str) -> SomQLearningConfig:
    # Accept both a full optimization record and a flat dict of params
    p = data.get("best_params", data)
    known = {f.name for f in fields(SomQLearningConfig)}
    kwargs = {k: v for k, v in p.items() if k in known}
    kwargs["ticker"] = ticker
    kwargs["interval"] = interval
    return SomQLearningConfig(**kwargs)


def load_active_config(ticker: str, interval: str, reports_dir: str = "reports") -> Optional[SomQLearningConfig]:
    path = Path(reports_dir) / "active" / f"SOMQ_{ticker}_{interval}.json"
    if not path.exists():
        return None
    data = json.loads(path.read_text(encoding="utf-8"))
    return _parse(data, ticker, interval)


def save_active_config(rec: Dict[str, Any], reports_dir: str = "reports") -> Path:
    ticker = rec.get("ticker") or rec.get("best_params", {}).get("ticker")
    interval = rec.get("interval") or rec.get("best_params", {}).get("interval")
    if not ticker or not interval:
        raise ValueError("ticker/interval ausentes para salvar config ativa SOM-Q")
    out = Path(reports_dir) / "active"
    out.mkdir(parents=True, exist_ok=True)
    path = out / f"SOMQ_{ticker}_{interval}.json"
    path.write_text(json.dumps(rec, ensure_ascii=False, indent=2), encoding="utf-8")
    return path
