"""Strategy module: confidence scoring, bet sizing and per-round decisions."""

from .decision import Decision, Direction
from .confidence import ConfidenceScorer, ConfidenceThresholds
from .bet_sizing import BetSizer, sigmoid
from .prediction_engine import PredictionEngine

__all__ = [
    "BetSizer",
    "ConfidenceScorer",
    "ConfidenceThresholds",
    "Decision",
    "Direction",
    "PredictionEngine",
    "sigmoid",
]
