"""
Heuristic confidence score from technical indicators.

Each indicator adds a signed vote in {-2, -1, 0, +1, +2}; positive votes are
bullish, negative bearish. The score is the plain sum of the votes and is not
normalized here (bet sizing clamps it).
"""
import math
from dataclasses import dataclass
from typing import Optional

from src.features.indicators import IndicatorSnapshot


@dataclass(frozen=True)
class ConfidenceThresholds:
    """Threshold levels for the indicator votes."""

    rsi_oversold: float = 30.0
    rsi_neutral: float = 50.0
    rsi_overbought: float = 70.0
    stochastic_oversold: float = 20.0
    stochastic_overbought: float = 80.0
    macd_crossover_band: float = 0.01


def _defined(*values: Optional[float]) -> bool:
    return all(v is not None and math.isfinite(v) for v in values)


class ConfidenceScorer:
    """Sums indicator votes into a bounded score (range -7..+7)."""

    def __init__(self, thresholds: Optional[ConfidenceThresholds] = None):
        self.thresholds = thresholds or ConfidenceThresholds()

    def score(self, snapshot: IndicatorSnapshot) -> int:
        """
        Score the latest indicator values.

        Indicators that are missing (insufficient data) or non-finite vote 0.

        Args:
            snapshot: Latest indicator values and current price

        Returns:
            Integer score; positive = bullish, negative = bearish
        """
        return (
            self.rsi_vote(snapshot.rsi)
            + self.macd_vote(snapshot.macd, snapshot.macd_signal)
            + self.bollinger_vote(snapshot.price, snapshot.bollinger_lower, snapshot.bollinger_upper)
            + self.stochastic_vote(snapshot.stochastic_k)
            + self.trend_vote(snapshot.price, snapshot.sma, snapshot.ema)
        )

    def rsi_vote(self, value: Optional[float]) -> int:
        if not _defined(value):
            return 0
        t = self.thresholds
        if value < t.rsi_oversold:
            return 2
        if value < t.rsi_neutral:
            return 1
        if value > t.rsi_overbought:
            return -2
        if value > t.rsi_neutral:
            return -1
        return 0

    def macd_vote(self, macd_value: Optional[float], signal_value: Optional[float]) -> int:
        """Line above signal is bullish; inside the crossover band the vote is halved."""
        if not _defined(macd_value, signal_value):
            return 0
        diff = macd_value - signal_value
        band = self.thresholds.macd_crossover_band
        if diff > band:
            return 2
        if diff < -band:
            return -2
        if diff > 0:
            return 1
        if diff < 0:
            return -1
        return 0

    def bollinger_vote(
        self, price: float, lower: Optional[float], upper: Optional[float]
    ) -> int:
        if not _defined(price, lower, upper):
            return 0
        if price < lower:
            return 1
        if price > upper:
            return -1
        return 0

    def stochastic_vote(self, percent_k: Optional[float]) -> int:
        if not _defined(percent_k):
            return 0
        if percent_k < self.thresholds.stochastic_oversold:
            return 1
        if percent_k > self.thresholds.stochastic_overbought:
            return -1
        return 0

    def trend_vote(
        self, price: float, sma_value: Optional[float], ema_value: Optional[float]
    ) -> int:
        if not _defined(price, sma_value, ema_value):
            return 0
        if price > sma_value and price > ema_value:
            return 1
        if price < sma_value and price < ema_value:
            return -1
        return 0
