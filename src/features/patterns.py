"""
Short-horizon price pattern statistics used as extra model features.

- Consecutive up/down streaks over the recent moves
- Momentum, volatility and trend of the last few relative changes
- Simple exhaustion-reversal detection
"""
from dataclasses import dataclass
from typing import Sequence

import numpy as np


@dataclass(frozen=True)
class StreakAnalysis:
    current_bull_streak: int
    current_bear_streak: int
    max_bull_streak: int
    max_bear_streak: int
    bullish_probability: float
    bearish_probability: float


@dataclass(frozen=True)
class PriceMovement:
    momentum: float
    volatility: float
    trend: int  # 1 bullish, -1 bearish, 0 neutral


@dataclass(frozen=True)
class ReversalSignal:
    direction: int  # 1 potential bullish reversal, -1 potential bearish, 0 none
    strength: float


def _reversal_odds(opposite_streak: int, same_streak: int) -> float:
    # long streaks lean towards a reversal
    if opposite_streak >= 3:
        return 0.7
    if opposite_streak >= 2:
        return 0.6
    if same_streak >= 3:
        return 0.3
    if same_streak >= 2:
        return 0.4
    return 0.5


def analyze_streaks(prices: Sequence[float], lookback: int = 20) -> StreakAnalysis:
    """
    Analyze consecutive up/down moves over the last ``lookback`` prices.

    Args:
        prices: Chronological prices
        lookback: Number of trailing prices to inspect

    Returns:
        StreakAnalysis; neutral (0.5/0.5) when fewer than 3 prices are given
    """
    values = np.asarray(prices, dtype=np.float64)
    if len(values) < 3:
        return StreakAnalysis(0, 0, 0, 0, 0.5, 0.5)

    bull = bear = max_bull = max_bear = 0
    for change in np.diff(values[-lookback:]):
        if change > 0:
            bull, bear = bull + 1, 0
            max_bull = max(max_bull, bull)
        elif change < 0:
            bull, bear = 0, bear + 1
            max_bear = max(max_bear, bear)
        else:
            bull = bear = 0

    return StreakAnalysis(
        current_bull_streak=bull,
        current_bear_streak=bear,
        max_bull_streak=max_bull,
        max_bear_streak=max_bear,
        bullish_probability=_reversal_odds(max_bear, max_bull),
        bearish_probability=_reversal_odds(max_bull, max_bear),
    )


def analyze_price_movement(prices: Sequence[float], horizon: int = 5) -> PriceMovement:
    """Momentum (sum), volatility (std) and trend of the last ``horizon`` relative changes."""
    values = np.asarray(prices, dtype=np.float64)
    if len(values) < horizon:
        return PriceMovement(momentum=0.0, volatility=0.0, trend=0)

    with np.errstate(divide="ignore", invalid="ignore"):
        changes = np.diff(values) / values[:-1]
    recent = np.nan_to_num(changes[-horizon:], nan=0.0, posinf=0.0, neginf=0.0)

    momentum = float(recent.sum())
    volatility = float(np.sqrt(np.mean((recent - momentum / horizon) ** 2)))
    ups = int((recent > 0).sum())
    downs = int((recent < 0).sum())
    trend = 1 if ups > downs else -1 if downs > ups else 0

    return PriceMovement(momentum=momentum, volatility=volatility, trend=trend)


def detect_reversal(prices: Sequence[float]) -> ReversalSignal:
    """
    Flag an accelerating run of four same-direction moves as a potential reversal.
    """
    values = np.asarray(prices, dtype=np.float64)
    if len(values) < 5:
        return ReversalSignal(direction=0, strength=0.0)

    changes = np.diff(values[-5:])
    last, earlier = changes[-1], changes[:-1]

    if np.all(changes > 0) and last > earlier.max():
        return ReversalSignal(direction=-1, strength=0.7)
    if np.all(changes < 0) and last < earlier.min():
        return ReversalSignal(direction=1, strength=0.7)
    return ReversalSignal(direction=0, strength=0.0)
