"""Per-round betting decision produced by the prediction engine."""
from dataclasses import dataclass
from enum import Enum


class Direction(str, Enum):
    """Side of a round to bet on."""
    BULL = "bull"
    BEAR = "bear"
    NONE = "none"


@dataclass(frozen=True)
class Decision:
    """Direction, stake and the confidence they were derived from."""

    direction: Direction
    stake: float
    confidence: float = 0.0

    @property
    def places_bet(self) -> bool:
        return self.direction is not Direction.NONE and self.stake > 0

    @classmethod
    def no_bet(cls, stake: float = 0.0) -> "Decision":
        return cls(direction=Direction.NONE, stake=stake, confidence=0.0)
