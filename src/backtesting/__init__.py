"""
Parallel, resumable replay of historical prediction rounds.

Each round is replayed in order:
- Push the starting price into a rolling price window
- Decide a direction and stake from the window
- Settle the bet against the realized ending price
- Append the result to the ledger and advance the checkpoint

Key components:
- BacktestCoordinator: Partitions the round space and supervises worker processes
- BacktestWorker: Replays one partition with checkpointing
- Stores: RoundSource, CheckpointStore, BetLedger
- Metrics / report: Evaluation of the settled bets
- Types: Data structures (Round, BetRecord, BacktestConfig, etc.)
"""

from src.backtesting.checkpoint_store import SqlCheckpointStore
from src.backtesting.coordinator import BacktestCoordinator, partition_rounds
from src.backtesting.ledger import SqlBetLedger
from src.backtesting.metrics import calculate_metrics
from src.backtesting.round_source import InMemoryRoundSource, SqlRoundSource
from src.backtesting.settlement import settle_bet
from src.backtesting.types import (
    BacktestConfig,
    BacktestMetrics,
    BacktestRunResult,
    BetRecord,
    CheckpointEntry,
    Outcome,
    PartitionAssignment,
    Round,
    Summary,
)
from src.backtesting.worker import BacktestWorker

__all__ = [
    "BacktestCoordinator",
    "BacktestWorker",
    "BacktestConfig",
    "BacktestMetrics",
    "BacktestRunResult",
    "BetRecord",
    "CheckpointEntry",
    "InMemoryRoundSource",
    "Outcome",
    "PartitionAssignment",
    "Round",
    "SqlBetLedger",
    "SqlCheckpointStore",
    "SqlRoundSource",
    "Summary",
    "calculate_metrics",
    "partition_rounds",
    "settle_bet",
]
