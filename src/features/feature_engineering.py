"""
Feature engineering for next-round direction prediction.

CRITICAL: Every feature row only uses prices up to (and including) the point it
describes. The label of a row is the direction of the NEXT price change, so no
row ever sees the price it is labelled with.
"""
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd

from src.features.patterns import analyze_price_movement, analyze_streaks, detect_reversal

DEFAULT_LOOKBACK = 50

_SUMMARY_FEATURES = [
    "volatility",
    "momentum",
    "current_bull_streak",
    "current_bear_streak",
    "bullish_probability",
    "bearish_probability",
    "recent_momentum",
    "recent_volatility",
    "recent_trend",
    "reversal_direction",
    "reversal_strength",
]


def labels(window: Sequence[float]) -> np.ndarray:
    """
    Binary direction labels: ``labels[i] = 1 if window[i + 1] > window[i] else 0``.

    Returns:
        Array with one fewer element than ``window`` (empty for fewer than 2 prices)
    """
    values = np.asarray(window, dtype=np.float64)
    if len(values) < 2:
        return np.empty(0, dtype=np.int64)
    return (values[1:] > values[:-1]).astype(np.int64)


class PriceFeatureEngineer:
    """
    Turns a chronological price window into model features.

    Each feature vector describes the last ``lookback`` prices: the prices
    relative to the latest one, return volatility, overall momentum, and the
    pattern statistics from ``src.features.patterns``.
    """

    def __init__(self, lookback: int = DEFAULT_LOOKBACK):
        """
        Initialize feature engineer.

        Args:
            lookback: Number of trailing prices described by one feature vector
        """
        if lookback < 5:
            raise ValueError("lookback must be at least 5")
        self.lookback = lookback

    @property
    def feature_names(self) -> List[str]:
        return [f"rel_price_{i}" for i in range(self.lookback)] + _SUMMARY_FEATURES

    def features(self, window: Sequence[float]) -> np.ndarray:
        """
        Feature vector for the latest point of ``window``.

        Returns:
            1-D array of ``len(feature_names)`` floats, or an empty array when the
            window is shorter than ``lookback``, contains non-positive or
            non-finite prices, or has no price movement at all
        """
        values = np.asarray(window, dtype=np.float64)
        if len(values) < self.lookback:
            return np.empty(0, dtype=np.float64)

        recent = values[-self.lookback:]
        if not np.all(np.isfinite(recent)) or np.any(recent <= 0):
            return np.empty(0, dtype=np.float64)
        if recent.max() == recent.min():
            return np.empty(0, dtype=np.float64)

        returns = np.diff(recent) / recent[:-1]
        volatility = float(np.sqrt(np.mean(returns ** 2)))
        momentum = float((recent[-1] - recent[0]) / recent[0])

        streaks = analyze_streaks(recent)
        movement = analyze_price_movement(recent)
        reversal = detect_reversal(recent)

        summary = [
            volatility,
            momentum,
            streaks.current_bull_streak,
            streaks.current_bear_streak,
            streaks.bullish_probability,
            streaks.bearish_probability,
            movement.momentum,
            movement.volatility,
            movement.trend,
            reversal.direction,
            reversal.strength,
        ]
        vector = np.concatenate((recent / recent[-1] - 1.0, np.asarray(summary, dtype=np.float64)))
        return np.nan_to_num(vector, nan=0.0, posinf=0.0, neginf=0.0)

    def labels(self, window: Sequence[float]) -> np.ndarray:
        return labels(window)

    def training_set(self, window: Sequence[float]) -> Tuple[pd.DataFrame, pd.Series]:
        """
        Build the supervised training set contained in ``window``.

        Row ``j`` describes the prices up to index ``j - 1`` and is labelled with
        the direction of the move from ``window[j - 1]`` to ``window[j]``.
        Degenerate rows (flat lookback) are skipped.

        Returns:
            (X, y) with X columns equal to ``feature_names``
        """
        values = np.asarray(window, dtype=np.float64)
        all_labels = labels(values)

        rows = []
        targets = []
        for j in range(self.lookback, len(values)):
            vector = self.features(values[:j])
            if vector.size == 0:
                continue
            rows.append(vector)
            targets.append(all_labels[j - 1])

        X = pd.DataFrame(rows, columns=self.feature_names)
        y = pd.Series(targets, name="next_up", dtype=np.int64)
        return X, y

    def latest_frame(self, window: Sequence[float]) -> pd.DataFrame:
        """Latest feature vector as a one-row frame (empty frame on insufficient data)."""
        vector = self.features(window)
        if vector.size == 0:
            return pd.DataFrame(columns=self.feature_names)
        return pd.DataFrame([vector], columns=self.feature_names)
