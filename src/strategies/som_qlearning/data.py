from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Union

import numpy as np
import pandas as pd


class LookaheadError(RuntimeError):
    """Raised when a causal stream is read past its current bar."""


class SampleStream:
    """Append-only ``{price, volume}`` series indexed from the oldest bar.

    Missing values (``NaN``/``None``, non-positive prices, negative volumes)
    are stored as ``NaN`` and resolved by the readers, so the raw stream never
    carries a made-up number.

    When ``strict`` is set the stream behaves like a live feed: only bars up to
    ``cursor`` may be read and anything later raises ``LookaheadError``.
    """

    def __init__(
        self,
        prices: Iterable[Optional[float]] = (),
        volumes: Optional[Iterable[Optional[float]]] = None,
        strict: bool = False,
    ) -> None:
        price_arr = _clean(prices)
        if volumes is None:
            volume_arr = np.full(price_arr.shape, np.nan)
        else:
            volume_arr = _clean(volumes)
        if volume_arr.shape != price_arr.shape:
            raise ValueError(
                f"Preços e volumes com tamanhos diferentes ({price_arr.size} != {volume_arr.size})."
            )

        price_arr[price_arr <= 0] = np.nan
        volume_arr[volume_arr < 0] = np.nan

        self._prices = price_arr
        self._volumes = volume_arr
        self.strict = bool(strict)
        self.cursor = len(self) - 1

    def __len__(self) -> int:
        return int(self._prices.size)

    @property
    def last_index(self) -> int:
        return len(self) - 1

    def append(self, price: Optional[float], volume: Optional[float] = None) -> int:
        """Add one bar at the end and move the cursor onto it."""

        p = _clean([price])
        v = _clean([volume])
        p[p <= 0] = np.nan
        v[v < 0] = np.nan
        self._prices = np.concatenate([self._prices, p])
        self._volumes = np.concatenate([self._volumes, v])
        self.cursor = self.last_index
        return self.cursor

    def set_cursor(self, bar: int) -> None:
        if bar < 0 or bar > self.last_index:
            raise IndexError(f"Barra {bar} fora do intervalo [0, {self.last_index}]")
        self.cursor = int(bar)

    def _check(self, start: int, end: int) -> None:
        if start < 0 or end > self.last_index:
            raise IndexError(f"Janela [{start}, {end}] fora do intervalo [0, {self.last_index}]")
        if self.strict and end > self.cursor:
            raise LookaheadError(f"Leitura da barra {end} com cursor em {self.cursor}")

    def prices(self, start: int, end: int) -> np.ndarray:
        """Raw prices of bars ``start..end`` inclusive, ``NaN`` where missing."""

        self._check(start, end)
        return self._prices[start : end + 1].copy()

    def volumes(self, start: int, end: int) -> np.ndarray:
        self._check(start, end)
        return self._volumes[start : end + 1].copy()

    def price(self, bar: int) -> float:
        return float(self.prices(bar, bar)[0])

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        price_col: str = "close",
        volume_col: Optional[str] = "volume",
        strict: bool = False,
    ) -> "SampleStream":
        if price_col not in df.columns:
            raise ValueError(f"Coluna de preço ausente: {price_col}")
        volumes = None
        if volume_col is not None and volume_col in df.columns:
            volumes = pd.to_numeric(df[volume_col], errors="coerce").to_numpy(dtype=float)
        prices = pd.to_numeric(df[price_col], errors="coerce").to_numpy(dtype=float)
        return cls(prices, volumes, strict=strict)


def _clean(values: Iterable[Optional[float]]) -> np.ndarray:
    return np.array([np.nan if v is None else v for v in values], dtype=float)


def load_price_history(
    path: Union[str, Path],
    start: Optional[str] = None,
    end: Optional[str] = None,
    min_rows: int = 2,
) -> pd.DataFrame:
    """Read candles exported to CSV and normalize them for replay.

    Args:
        path: CSV file with at least a ``close`` column. ``Date``/``date``/
            ``timestamp``/``open_time`` (text or epoch milliseconds) and
            ``volume`` are used when present.
        start: Optional ISO timestamp string to trim the beginning.
        end: Optional ISO timestamp string to trim the end.
        min_rows: Minimum number of rows required after trimming.

    Returns:
        A ``pandas.DataFrame`` ordered by time with the columns
        ``["Date", "close", "volume", "return"]``. Missing volume becomes
        ``NaN`` and is resolved later by the vectorizer.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the file lacks a close column or has too few rows.
    """

    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Arquivo de candles não encontrado: {csv_path}")

    df = pd.read_csv(csv_path)
    df = df.rename(columns={c: c.strip().lower() for c in df.columns})
    if "close" not in df.columns:
        raise ValueError(f"O arquivo {csv_path} não possui a coluna 'close'.")

    date_col = next((c for c in ("date", "timestamp", "open_time", "time") if c in df.columns), None)
    if date_col is not None and pd.api.types.is_numeric_dtype(df[date_col]):
        # Binance open_time / timestamp: epoch milliseconds
        df["Date"] = pd.to_datetime(df[date_col], unit="ms", errors="coerce")
    elif date_col is not None:
        df["Date"] = pd.to_datetime(df[date_col], utc=False, errors="coerce")
    else:
        df["Date"] = pd.RangeIndex(len(df))
    if "volume" not in df.columns:
        df["volume"] = np.nan

    df = df.sort_values("Date").reset_index(drop=True)
    if start is not None:
        df = df[df["Date"] >= pd.to_datetime(start)]
    if end is not None:
        df = df[df["Date"] <= pd.to_datetime(end)]
    df = df.reset_index(drop=True)

    if len(df) < min_rows:
        raise ValueError(f"Quantidade de candles insuficiente ({len(df)} < {min_rows}).")

    df[["close", "volume"]] = df[["close", "volume"]].apply(pd.to_numeric, errors="coerce")
    df["return"] = df["close"].pct_change(fill_method=None).fillna(0.0)
    return df[["Date", "close", "volume", "return"]]
