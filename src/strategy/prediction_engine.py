"""
Per-round prediction: ensemble probability + technical confidence → direction and stake.

1. Reject windows that are not yet full
2. Build features and next-move labels from the window
3. Train a fresh predictor on the window and score the latest point
4. Score the latest technical indicators
5. combined = (p - 0.5) * 5 + technical * 0.5; confidence = combined / 2
6. Size the stake from |confidence|
7. Pick bull / bear / none from the configured thresholds

The engine holds no state between calls; a failure anywhere in steps 2-6
degrades to a no-bet decision instead of propagating.
"""
import logging
from typing import Callable, Optional, Sequence

import numpy as np

from src.features.feature_engineering import PriceFeatureEngineer
from src.features.indicators import IndicatorParams, latest_indicators
from src.models.base_predictor import BasePredictor
from src.strategy.bet_sizing import BetSizer
from src.strategy.confidence import ConfidenceScorer
from src.strategy.decision import Decision, Direction

logger = logging.getLogger(__name__)

PROBABILITY_WEIGHT = 5.0
TECHNICAL_WEIGHT = 0.5
CONFIDENCE_DIVISOR = 2.0


class PredictionEngine:
    """Turns a full price window into one betting decision."""

    def __init__(
        self,
        predictor_factory: Callable[[], BasePredictor],
        bet_sizer: BetSizer,
        bull_threshold: float,
        bear_threshold: float,
        window_capacity: int = 100,
        feature_engineer: Optional[PriceFeatureEngineer] = None,
        scorer: Optional[ConfidenceScorer] = None,
        indicator_params: Optional[IndicatorParams] = None,
    ):
        """
        Initialize prediction engine.

        Args:
            predictor_factory: Returns a fresh, untrained predictor per call
            bet_sizer: Stake sizing from |confidence|
            bull_threshold: Confidence above which the engine bets bull
            bear_threshold: Confidence below which the engine bets bear
            window_capacity: Number of prices required before predicting
            feature_engineer: Feature/label builder (default lookback 50)
            scorer: Technical confidence scorer (default thresholds)
            indicator_params: Indicator periods for the scorer
        """
        if bear_threshold > bull_threshold:
            raise ValueError("bear_threshold must not exceed bull_threshold")

        self.predictor_factory = predictor_factory
        self.bet_sizer = bet_sizer
        self.bull_threshold = bull_threshold
        self.bear_threshold = bear_threshold
        self.window_capacity = window_capacity
        self.feature_engineer = feature_engineer or PriceFeatureEngineer()
        self.scorer = scorer or ConfidenceScorer()
        self.indicator_params = indicator_params or IndicatorParams()

    def decide(self, window: Sequence[float]) -> Decision:
        """
        Decide direction and stake for the round following ``window``.

        Args:
            window: Chronological prices, oldest first

        Returns:
            Decision; ``Decision.no_bet()`` while the window is short or
            uninformative, ``Decision.no_bet(min_stake)`` if prediction failed
        """
        prices = np.asarray(window, dtype=np.float64)
        if len(prices) < self.window_capacity:
            logger.debug(
                "Not enough data to predict: %d/%d prices", len(prices), self.window_capacity
            )
            return Decision.no_bet()

        try:
            latest = self.feature_engineer.latest_frame(prices)
            if latest.empty:
                logger.debug("Insufficient features for window ending at %.6f", prices[-1])
                return Decision.no_bet()

            X, y = self.feature_engineer.training_set(prices)
            predictor = self.predictor_factory()
            predictor.train(X, y)
            probability = predictor.predict(latest)

            technical_score = self.scorer.score(
                latest_indicators(prices, self.indicator_params)
            )
            return self.combine(probability, technical_score)
        except Exception as e:
            logger.error("Prediction failed, skipping round: %s", e, exc_info=True)
            return Decision.no_bet(self.bet_sizer.min_stake)

    def combine(self, probability: float, technical_score: float) -> Decision:
        """Blend the model probability with the technical score into a decision."""
        combined = (probability - 0.5) * PROBABILITY_WEIGHT + technical_score * TECHNICAL_WEIGHT
        confidence = combined / CONFIDENCE_DIVISOR
        stake = self.bet_sizer.stake(abs(confidence))

        if confidence > self.bull_threshold:
            direction = Direction.BULL
        elif confidence < self.bear_threshold:
            direction = Direction.BEAR
        else:
            direction = Direction.NONE

        logger.debug(
            "p=%.4f technical=%s confidence=%.4f stake=%.6f direction=%s",
            probability,
            technical_score,
            confidence,
            stake,
            direction.value,
        )
        return Decision(direction=direction, stake=stake, confidence=confidence)
