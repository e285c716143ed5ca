"""
Stake sizing from a confidence magnitude.

stake = min_stake + sigmoid(clamp(score, min_score, max_score)) * (max_stake - min_stake)

The score is clamped BEFORE the sigmoid so extreme scores never reach the
exponential, and any non-finite result falls back to ``min_stake``.
"""
import logging
import math

logger = logging.getLogger(__name__)


def sigmoid(x: float) -> float:
    return 1.0 / (1.0 + math.exp(-x))


class BetSizer:
    """Maps a confidence score to a stake within [min_stake, max_stake]."""

    def __init__(
        self,
        min_stake: float,
        max_stake: float,
        min_score: float,
        max_score: float,
    ):
        """
        Initialize bet sizer.

        Args:
            min_stake: Smallest stake ever returned
            max_stake: Largest stake ever returned
            min_score: Lower clamp bound for the score
            max_score: Upper clamp bound for the score

        Raises:
            ValueError: If the bounds are inverted, negative or not finite
        """
        for name, value in (
            ("min_stake", min_stake),
            ("max_stake", max_stake),
            ("min_score", min_score),
            ("max_score", max_score),
        ):
            if not math.isfinite(value):
                raise ValueError(f"{name} must be finite")
        if min_stake < 0:
            raise ValueError("min_stake must be non-negative")
        if max_stake < min_stake:
            raise ValueError("max_stake must be >= min_stake")
        if max_score < min_score:
            raise ValueError("max_score must be >= min_score")

        self.min_stake = float(min_stake)
        self.max_stake = float(max_stake)
        self.min_score = float(min_score)
        self.max_score = float(max_score)

    def clamp(self, score: float) -> float:
        return max(self.min_score, min(self.max_score, score))

    def stake(self, score: float) -> float:
        """
        Stake for ``score``.

        Returns:
            Stake within [min_stake, max_stake]; ``min_stake`` for NaN input
        """
        try:
            score = float(score)
        except (TypeError, ValueError):
            logger.warning("Non-numeric score %r, defaulting to min stake", score)
            return self.min_stake

        if math.isnan(score):
            logger.warning("Score is NaN, defaulting to min stake")
            return self.min_stake

        normalized = sigmoid(self.clamp(score))
        stake = self.min_stake + normalized * (self.max_stake - self.min_stake)

        if not math.isfinite(stake):
            logger.warning("Calculated stake %r is not finite, defaulting to min stake", stake)
            return self.min_stake

        return min(max(stake, self.min_stake), self.max_stake)

    __call__ = stake
