"""
Technical indicators computed over a chronological price sequence.

Every function returns ``None`` when the input is too short for the requested
period ("insufficient data") and never raises for short or degenerate input.

Supported indicators:
- RSI (Wilder smoothing)
- EMA / SMA
- MACD with signal line and histogram
- Bollinger Bands (population standard deviation)
- Stochastic Oscillator (%K / %D)
"""
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class MACDResult:
    macd: np.ndarray
    signal: np.ndarray
    histogram: np.ndarray


@dataclass(frozen=True)
class BollingerBands:
    upper: np.ndarray
    middle: np.ndarray
    lower: np.ndarray

    @property
    def width(self) -> np.ndarray:
        return self.upper - self.lower


@dataclass(frozen=True)
class StochasticResult:
    k: np.ndarray
    d: np.ndarray


@dataclass(frozen=True)
class IndicatorParams:
    """Periods used when building an ``IndicatorSnapshot``."""

    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    sma_period: int = 20
    ema_period: int = 20
    bollinger_period: int = 20
    bollinger_k: float = 2.0
    stochastic_period: int = 14
    stochastic_d_period: int = 3


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Most recent value of each indicator; ``None`` where data was insufficient."""

    price: float
    rsi: Optional[float] = None
    macd: Optional[float] = None
    macd_signal: Optional[float] = None
    sma: Optional[float] = None
    ema: Optional[float] = None
    bollinger_upper: Optional[float] = None
    bollinger_middle: Optional[float] = None
    bollinger_lower: Optional[float] = None
    stochastic_k: Optional[float] = None
    stochastic_d: Optional[float] = None


def _as_array(prices: Sequence[float]) -> np.ndarray:
    return np.asarray(prices, dtype=np.float64)


def rsi(prices: Sequence[float], period: int = 14) -> Optional[np.ndarray]:
    """
    Relative Strength Index with Wilder smoothing.

    The averages are seeded from the first ``period`` price changes and then
    updated recursively: avg = (avg * (period - 1) + x) / period.

    Returns:
        One RSI value per price from index ``period`` onwards, or None when
        fewer than ``period + 1`` prices are given
    """
    values = _as_array(prices)
    if period <= 0 or len(values) < period + 1:
        return None

    deltas = np.diff(values)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()

    out = np.empty(len(deltas) - period + 1, dtype=np.float64)
    out[0] = _rsi_value(avg_gain, avg_loss)
    for i, (gain, loss) in enumerate(zip(gains[period:], losses[period:]), start=1):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
        out[i] = _rsi_value(avg_gain, avg_loss)

    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)


def sma(prices: Sequence[float], period: int = 20) -> Optional[np.ndarray]:
    """Trailing simple moving average, one value per full window."""
    values = _as_array(prices)
    if period <= 0 or len(values) < period:
        return None

    return pd.Series(values).rolling(period).mean().to_numpy()[period - 1:]


def ema(prices: Sequence[float], period: int = 20) -> Optional[np.ndarray]:
    """
    Exponential moving average seeded with the SMA of the first ``period`` prices.

    Returns:
        ``len(prices) - period + 1`` values, or None on insufficient data
    """
    values = _as_array(prices)
    if period <= 0 or len(values) < period:
        return None

    k = 2.0 / (period + 1)
    out = np.empty(len(values) - period + 1, dtype=np.float64)
    out[0] = values[:period].mean()
    for i, price in enumerate(values[period:], start=1):
        out[i] = price * k + out[i - 1] * (1 - k)

    return out


def macd(
    prices: Sequence[float],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> Optional[MACDResult]:
    """
    Moving Average Convergence Divergence.

    The MACD line is EMA(fast) - EMA(slow) over their overlapping tail; the
    signal line is the EMA of the MACD line; the histogram is their difference
    over the tail both lines cover.
    """
    values = _as_array(prices)
    if len(values) < max(fast_period, slow_period) + signal_period:
        return None

    fast = ema(values, fast_period)
    slow = ema(values, slow_period)
    if fast is None or slow is None:
        return None

    overlap = min(len(fast), len(slow))
    macd_line = fast[-overlap:] - slow[-overlap:]

    signal_line = ema(macd_line, signal_period)
    if signal_line is None:
        return None

    histogram = macd_line[-len(signal_line):] - signal_line
    return MACDResult(macd=macd_line, signal=signal_line, histogram=histogram)


def bollinger_bands(
    prices: Sequence[float], period: int = 20, k: float = 2.0
) -> Optional[BollingerBands]:
    """Bollinger Bands around the SMA using the population standard deviation."""
    values = _as_array(prices)
    if period <= 0 or len(values) < period:
        return None

    rolling = pd.Series(values).rolling(period)
    middle = rolling.mean().to_numpy()[period - 1:]
    std = rolling.std(ddof=0).to_numpy()[period - 1:]
    # rolling variance can come out as a tiny negative on flat input
    std = np.nan_to_num(std, nan=0.0).clip(min=0.0)

    return BollingerBands(upper=middle + k * std, middle=middle, lower=middle - k * std)


def stochastic(
    prices: Sequence[float], period: int = 14, d_period: int = 3
) -> Optional[StochasticResult]:
    """
    Stochastic Oscillator on a close-only series.

    %K is NaN (undefined) wherever the trailing window is flat, since the
    highest and lowest price coincide.
    """
    values = _as_array(prices)
    if period <= 0 or len(values) < period:
        return None

    series = pd.Series(values)
    lowest = series.rolling(period).min().to_numpy()[period - 1:]
    highest = series.rolling(period).max().to_numpy()[period - 1:]
    close = values[period - 1:]

    price_range = highest - lowest
    with np.errstate(divide="ignore", invalid="ignore"):
        k = np.where(price_range > 0, (close - lowest) / price_range * 100.0, np.nan)

    if len(k) >= d_period:
        d = pd.Series(k).rolling(d_period).mean().to_numpy()[d_period - 1:]
    else:
        d = np.empty(0, dtype=np.float64)

    return StochasticResult(k=k, d=d)


def _last(values) -> Optional[float]:
    if values is None or len(values) == 0:
        return None
    return float(values[-1])


def latest_indicators(
    prices: Sequence[float], params: Optional[IndicatorParams] = None
) -> IndicatorSnapshot:
    """
    Compute every indicator and keep only its most recent value.

    Args:
        prices: Chronological price sequence (must not be empty)
        params: Indicator periods (defaults to the classic 14/12-26-9/20 settings)

    Returns:
        IndicatorSnapshot with ``None`` for indicators lacking data
    """
    params = params or IndicatorParams()
    values = _as_array(prices)

    macd_result = macd(values, params.macd_fast, params.macd_slow, params.macd_signal)
    bands = bollinger_bands(values, params.bollinger_period, params.bollinger_k)
    stoch = stochastic(values, params.stochastic_period, params.stochastic_d_period)

    return IndicatorSnapshot(
        price=float(values[-1]),
        rsi=_last(rsi(values, params.rsi_period)),
        macd=_last(macd_result.macd) if macd_result else None,
        macd_signal=_last(macd_result.signal) if macd_result else None,
        sma=_last(sma(values, params.sma_period)),
        ema=_last(ema(values, params.ema_period)),
        bollinger_upper=_last(bands.upper) if bands else None,
        bollinger_middle=_last(bands.middle) if bands else None,
        bollinger_lower=_last(bands.lower) if bands else None,
        stochastic_k=_last(stoch.k) if stoch else None,
        stochastic_d=_last(stoch.d) if stoch else None,
    )
