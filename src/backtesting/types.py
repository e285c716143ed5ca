"""
Data structures for the round replay backtester.
"""
import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from src.strategy.decision import Direction


class Outcome(str, Enum):
    """Settled result of a bet."""
    WIN = "win"
    LOSE = "lose"


@dataclass(frozen=True)
class Round:
    """One historical prediction round; immutable once written."""

    round_id: int
    starting_price: float
    ending_price: float


@dataclass(frozen=True)
class BetRecord:
    """
    Settled bet for one round.

    Validated at construction: a record always has a real side, a positive
    finite stake and a finite profit.
    """

    epoch: int
    direction: Direction
    stake: float
    outcome: Outcome
    profit: float
    round_id: int
    starting_price: float

    def __post_init__(self):
        # accept plain strings from storage rows
        object.__setattr__(self, "direction", Direction(self.direction))
        object.__setattr__(self, "outcome", Outcome(self.outcome))

        if self.direction is Direction.NONE:
            raise ValueError("BetRecord direction must be bull or bear")
        if not math.isfinite(self.stake) or self.stake <= 0:
            raise ValueError(f"BetRecord stake must be positive and finite, got {self.stake}")
        if not math.isfinite(self.profit):
            raise ValueError(f"BetRecord profit must be finite, got {self.profit}")
        if not math.isfinite(self.starting_price):
            raise ValueError("BetRecord starting_price must be finite")

    @property
    def won(self) -> bool:
        return self.outcome is Outcome.WIN

    def to_row(self) -> Dict[str, Any]:
        return {
            "epoch": self.epoch,
            "direction": self.direction.value,
            "stake": self.stake,
            "outcome": self.outcome.value,
            "profit": self.profit,
            "round_id": self.round_id,
            "starting_price": self.starting_price,
        }


@dataclass(frozen=True)
class CheckpointEntry:
    """Durable cursor of one worker through its partition."""

    worker_id: int
    last_processed_offset: int
    end_offset: int
    processed_count: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.end_offset - self.last_processed_offset)


@dataclass(frozen=True)
class PartitionAssignment:
    """Contiguous offset range ``[start_offset, end_offset)`` handed to one worker."""

    worker_id: int
    start_offset: int
    end_offset: int

    @property
    def size(self) -> int:
        return self.end_offset - self.start_offset


@dataclass(frozen=True)
class Summary:
    """Aggregate over the bet ledger (derived, never stored)."""

    total_bets: int = 0
    wins: int = 0
    losses: int = 0
    total_profit: float = 0.0

    @property
    def win_rate(self) -> float:
        return self.wins / self.total_bets if self.total_bets else 0.0


class SignalKind(str, Enum):
    PROGRESS = "progress"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class WorkerSignal:
    """One-way message from a worker process to the coordinator."""

    kind: SignalKind
    worker_id: int
    processed: int = 0
    message: Optional[str] = None


@dataclass(frozen=True)
class BacktestConfig:
    """
    Complete configuration of a backtest run.

    Plain, picklable values only: the config is shipped to every worker
    process, which builds its own storage engines from the URLs.
    """

    rounds_database_url: str = "sqlite:///historicalData.db"
    ledger_database_url: str = "sqlite:///profitability.db"

    # Bet sizing
    min_stake: float = 0.01
    max_stake: float = 0.1
    min_score: float = 0.0
    max_score: float = 5.0
    bull_threshold: float = 0.5
    bear_threshold: float = -0.5
    platform_fee: float = 0.05

    # Confidence scorer thresholds
    rsi_oversold: float = 30.0
    rsi_neutral: float = 50.0
    rsi_overbought: float = 70.0
    stochastic_oversold: float = 20.0
    stochastic_overbought: float = 80.0
    macd_crossover_band: float = 0.01

    # Prediction
    window_capacity: int = 100
    lookback: int = 50
    predictor_members: Tuple[str, ...] = ("random_forest",)
    predictor_estimators: int = 100

    # Replay
    batch_size: int = 500
    flush_threshold: int = 100
    workers: int = 0  # 0 = cpu_count - 1
    warm_start: bool = True
    memory_ceiling_fraction: float = 0.9
    memory_pause_seconds: float = 0.1
    deduplicate_summary: bool = True
    reset_ledger_on_fresh_run: bool = True
    start_method: str = "spawn"

    log_level: str = "INFO"

    def __post_init__(self):
        if self.window_capacity <= 0:
            raise ValueError("window_capacity must be positive")
        if self.lookback >= self.window_capacity:
            raise ValueError("lookback must be smaller than window_capacity")
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.flush_threshold <= 0:
            raise ValueError("flush_threshold must be positive")
        if not 0.0 < self.memory_ceiling_fraction <= 1.0:
            raise ValueError("memory_ceiling_fraction must be between 0 and 1")
        if not 0.0 <= self.platform_fee < 1.0:
            raise ValueError("platform_fee must be in [0, 1)")

    @classmethod
    def from_settings(cls, settings: Any, **overrides: Any) -> "BacktestConfig":
        """Build a config from ``src.core.config.Settings`` (or any object with the same fields)."""
        values: Dict[str, Any] = {
            "rounds_database_url": settings.ROUNDS_DATABASE_URL,
            "ledger_database_url": settings.LEDGER_DATABASE_URL,
            "min_stake": settings.MIN_STAKE,
            "max_stake": settings.MAX_STAKE,
            "min_score": settings.MIN_SCORE,
            "max_score": settings.MAX_SCORE,
            "bull_threshold": settings.BULL_THRESHOLD,
            "bear_threshold": settings.BEAR_THRESHOLD,
            "platform_fee": settings.PLATFORM_FEE,
            "rsi_oversold": settings.RSI_OVERSOLD,
            "rsi_neutral": settings.RSI_NEUTRAL,
            "rsi_overbought": settings.RSI_OVERBOUGHT,
            "stochastic_oversold": settings.STOCHASTIC_OVERSOLD,
            "stochastic_overbought": settings.STOCHASTIC_OVERBOUGHT,
            "macd_crossover_band": settings.MACD_CROSSOVER_BAND,
            "window_capacity": settings.WINDOW_CAPACITY,
            "lookback": settings.LOOKBACK,
            "predictor_members": tuple(
                m.strip() for m in settings.PREDICTOR_MEMBERS.split(",") if m.strip()
            ),
            "predictor_estimators": settings.PREDICTOR_ESTIMATORS,
            "batch_size": settings.BATCH_SIZE,
            "flush_threshold": settings.FLUSH_THRESHOLD,
            "workers": settings.WORKERS,
            "warm_start": settings.WARM_START,
            "memory_ceiling_fraction": settings.MEMORY_CEILING_FRACTION,
            "memory_pause_seconds": settings.MEMORY_PAUSE_SECONDS,
            "deduplicate_summary": settings.DEDUPLICATE_SUMMARY,
            "reset_ledger_on_fresh_run": settings.RESET_LEDGER_ON_FRESH_RUN,
            "log_level": settings.LOG_LEVEL,
        }
        values.update(overrides)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["predictor_members"] = list(self.predictor_members)
        return data


@dataclass
class BacktestRunResult:
    """What the coordinator reports once every worker has exited."""

    summary: Summary
    total_rounds: int
    resumed: bool
    assignments: List[PartitionAssignment] = field(default_factory=list)
    completed: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    exit_codes: Dict[int, Optional[int]] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.failed


@dataclass
class BacktestMetrics:
    """Evaluation metrics over the settled bets of a run."""

    total_bets: int
    wins: int
    losses: int
    win_rate: float
    total_staked: float
    total_profit: float
    roi: float  # (total_profit / total_staked) * 100
    bull_bets: int
    bull_win_rate: float
    bear_bets: int
    bear_win_rate: float
    max_drawdown: float
    longest_losing_streak: int
    sharpe_ratio: float
    profit_curve: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("profit_curve")
        return data
