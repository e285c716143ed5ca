"""
Feature engineering package for prediction-round backtesting.

Provides:
- PriceWindow: fixed-capacity chronological price buffer
- Indicators: RSI, EMA, SMA, MACD, Bollinger Bands, Stochastic Oscillator
- Patterns: streak, movement and reversal statistics
- PriceFeatureEngineer: model features and next-move labels from a price window
"""

from src.features.price_window import PriceWindow
from src.features.indicators import (
    IndicatorParams,
    IndicatorSnapshot,
    bollinger_bands,
    ema,
    latest_indicators,
    macd,
    rsi,
    sma,
    stochastic,
)
from src.features.feature_engineering import PriceFeatureEngineer, labels

__all__ = [
    "PriceWindow",
    "IndicatorParams",
    "IndicatorSnapshot",
    "PriceFeatureEngineer",
    "bollinger_bands",
    "ema",
    "labels",
    "latest_indicators",
    "macd",
    "rsi",
    "sma",
    "stochastic",
]
