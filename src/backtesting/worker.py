"""
Per-partition replay loop.

States: RESUMING -> FETCHING -> PREDICTING -> RECORDING -> CHECKPOINTING -> (loop)
        -> DRAINING -> DONE | FAILED

Ordering within a partition is strict (ascending round_id) because the price
window is order-sensitive. Storage failures abort only this partition; the
next coordinator run resumes it from its last committed checkpoint.
"""
import gc
import logging
import sys
import time
from enum import Enum
from typing import Callable, List, Optional

import psutil

from src.backtesting.checkpoint_store import CheckpointStore, SqlCheckpointStore
from src.backtesting.ledger import BetLedger, SqlBetLedger
from src.backtesting.round_source import RoundSource, SqlRoundSource
from src.backtesting.settlement import settle_bet
from src.backtesting.types import (
    BacktestConfig,
    BetRecord,
    CheckpointEntry,
    PartitionAssignment,
    Round,
    SignalKind,
    WorkerSignal,
)
from src.core.db import StorageError, create_db_engine
from src.core.log import configure_logging
from src.features.feature_engineering import PriceFeatureEngineer
from src.features.price_window import PriceWindow
from src.strategy.bet_sizing import BetSizer
from src.strategy.confidence import ConfidenceScorer, ConfidenceThresholds
from src.strategy.prediction_engine import PredictionEngine

logger = logging.getLogger(__name__)


class WorkerState(str, Enum):
    RESUMING = "resuming"
    FETCHING = "fetching"
    PREDICTING = "predicting"
    RECORDING = "recording"
    CHECKPOINTING = "checkpointing"
    DRAINING = "draining"
    DONE = "done"
    FAILED = "failed"


def process_memory_fraction() -> float:
    """Resident memory of this process as a fraction of total system memory."""
    rss = psutil.Process().memory_info().rss
    return rss / psutil.virtual_memory().total


def build_prediction_engine(config: BacktestConfig) -> PredictionEngine:
    """Assemble the prediction engine described by ``config``."""
    from src.models.ensemble_model import EnsemblePredictor

    members = config.predictor_members
    estimators = config.predictor_estimators

    def predictor_factory():
        return EnsemblePredictor(members=members, n_estimators=estimators)

    return PredictionEngine(
        predictor_factory=predictor_factory,
        bet_sizer=BetSizer(
            min_stake=config.min_stake,
            max_stake=config.max_stake,
            min_score=config.min_score,
            max_score=config.max_score,
        ),
        bull_threshold=config.bull_threshold,
        bear_threshold=config.bear_threshold,
        window_capacity=config.window_capacity,
        feature_engineer=PriceFeatureEngineer(lookback=config.lookback),
        scorer=ConfidenceScorer(
            ConfidenceThresholds(
                rsi_oversold=config.rsi_oversold,
                rsi_neutral=config.rsi_neutral,
                rsi_overbought=config.rsi_overbought,
                stochastic_oversold=config.stochastic_oversold,
                stochastic_overbought=config.stochastic_overbought,
                macd_crossover_band=config.macd_crossover_band,
            )
        ),
    )


class BacktestWorker:
    """
    Replays one partition of the round space.

    The worker owns its price window and its checkpoint row; the round
    source, ledger and checkpoint store are explicit handles passed in.
    """

    def __init__(
        self,
        assignment: PartitionAssignment,
        round_source: RoundSource,
        checkpoint_store: CheckpointStore,
        ledger: BetLedger,
        engine: PredictionEngine,
        config: BacktestConfig,
        signal: Optional[Callable[[WorkerSignal], None]] = None,
        memory_probe: Callable[[], float] = process_memory_fraction,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize worker.

        Args:
            assignment: Partition ``[start_offset, end_offset)`` and worker id
            round_source: Read-only round access
            checkpoint_store: Durable cursor store
            ledger: Bet ledger
            engine: Per-round decision engine
            config: Backtest configuration
            signal: Receives progress/done/failed signals (one-way)
            memory_probe: Returns current memory usage as a fraction of total memory
            sleep: Pause function used for memory back-pressure
        """
        self.assignment = assignment
        self.round_source = round_source
        self.checkpoint_store = checkpoint_store
        self.ledger = ledger
        self.engine = engine
        self.config = config
        self._signal = signal
        self._memory_probe = memory_probe
        self._sleep = sleep

        self.window = PriceWindow(config.window_capacity)
        self.state = WorkerState.RESUMING
        self.pending: List[BetRecord] = []
        self.processed_count = 0
        self.bets_recorded = 0

    @property
    def worker_id(self) -> int:
        return self.assignment.worker_id

    def _emit(self, kind: SignalKind, processed: int = 0, message: Optional[str] = None) -> None:
        if self._signal is not None:
            self._signal(WorkerSignal(kind=kind, worker_id=self.worker_id, processed=processed, message=message))

    def run(self) -> int:
        """
        Replay the partition to completion.

        Returns:
            Total rounds processed for this partition (including earlier runs)

        Raises:
            StorageError: If the round source, ledger or checkpoint store fails
        """
        try:
            offset = self._resume()
            end = self.assignment.end_offset
            # offset up to which every settled record is durable
            flushed_offset, flushed_count = offset, self.processed_count

            while offset < end:
                self._wait_for_memory()

                self.state = WorkerState.FETCHING
                rounds = self.round_source.fetch(offset, min(self.config.batch_size, end - offset))
                if not rounds:
                    logger.info("Worker %d: no more rounds from offset %d", self.worker_id, offset)
                    break

                self.state = WorkerState.PREDICTING
                for round_ in rounds:
                    self._process_round(round_)
                offset += len(rounds)
                self.processed_count += len(rounds)

                self.state = WorkerState.RECORDING
                if len(self.pending) >= self.config.flush_threshold:
                    self._flush()
                if not self.pending:
                    flushed_offset, flushed_count = offset, self.processed_count

                self.state = WorkerState.CHECKPOINTING
                self.checkpoint_store.put(
                    CheckpointEntry(
                        worker_id=self.worker_id,
                        last_processed_offset=flushed_offset,
                        end_offset=end,
                        processed_count=flushed_count,
                    )
                )
                self._emit(SignalKind.PROGRESS, processed=len(rounds))

            self.state = WorkerState.DRAINING
            self._flush()
            self.checkpoint_store.delete(self.worker_id)
            self.window.clear()

            self.state = WorkerState.DONE
            logger.info(
                "Worker %d finished [%d, %d): %d rounds, %d bets",
                self.worker_id,
                self.assignment.start_offset,
                end,
                self.processed_count,
                self.bets_recorded,
            )
            self._emit(SignalKind.DONE, processed=self.processed_count)
            return self.processed_count
        except StorageError as e:
            self.state = WorkerState.FAILED
            logger.error("Worker %d failed: %s", self.worker_id, e)
            self._emit(SignalKind.FAILED, processed=self.processed_count, message=str(e))
            raise

    def _resume(self) -> int:
        self.state = WorkerState.RESUMING
        entry = self.checkpoint_store.get(self.worker_id)
        if entry is not None:
            offset = entry.last_processed_offset
            self.processed_count = entry.processed_count
            logger.info(
                "Worker %d resuming at offset %d (%d rounds already processed)",
                self.worker_id,
                offset,
                entry.processed_count,
            )
        else:
            offset = self.assignment.start_offset
            logger.info(
                "Worker %d starting fresh at offset %d", self.worker_id, offset
            )

        if self.config.warm_start:
            self._warm_up(offset)
        return offset

    def _warm_up(self, offset: int) -> None:
        """Fill the window with the rounds preceding ``offset`` (read only)."""
        needed = self.window.capacity - 1
        start = max(0, offset - needed)
        if offset <= start:
            return
        for round_ in self.round_source.fetch(start, offset - start):
            self.window.push(round_.starting_price)
        logger.debug("Worker %d warmed window with %d prices", self.worker_id, len(self.window))

    def _wait_for_memory(self) -> None:
        """Back-pressure: pause while resident memory is above the configured ceiling."""
        while True:
            usage = self._memory_probe()
            if usage < self.config.memory_ceiling_fraction:
                return
            logger.debug(
                "Worker %d memory at %.1f%% (ceiling %.1f%%), pausing",
                self.worker_id,
                usage * 100,
                self.config.memory_ceiling_fraction * 100,
            )
            gc.collect()
            self._sleep(self.config.memory_pause_seconds)

    def _process_round(self, round_: Round) -> None:
        self.window.push(round_.starting_price)
        if not self.window.is_full:
            return

        decision = self.engine.decide(self.window.to_sequence())
        try:
            record = settle_bet(round_, decision, fee=self.config.platform_fee)
        except ValueError as e:
            logger.warning("Worker %d: discarding bet for round %d: %s", self.worker_id, round_.round_id, e)
            return
        if record is not None:
            self.pending.append(record)

    def _flush(self) -> None:
        if not self.pending:
            return
        self.ledger.append_batch(self.pending)
        self.bets_recorded += len(self.pending)
        self.pending = []


def run_partition(assignment: PartitionAssignment, config: BacktestConfig, queue=None) -> None:
    """
    Process entry point: build explicit storage handles and replay one partition.

    Exits the process with status 1 on failure so the coordinator can observe it.
    """
    configure_logging(config.log_level)

    def signal(message: WorkerSignal) -> None:
        if queue is not None:
            queue.put(message)

    engines = []
    worker = None
    try:
        rounds_engine = create_db_engine(config.rounds_database_url)
        engines.append(rounds_engine)
        ledger_engine = create_db_engine(config.ledger_database_url)
        engines.append(ledger_engine)
        worker = BacktestWorker(
            assignment=assignment,
            round_source=SqlRoundSource(rounds_engine),
            checkpoint_store=SqlCheckpointStore(ledger_engine),
            ledger=SqlBetLedger(ledger_engine, deduplicate=config.deduplicate_summary),
            engine=build_prediction_engine(config),
            config=config,
            signal=signal,
        )
        worker.run()
    except StorageError as e:
        if worker is None:
            # the worker reports its own failures once it is running
            logger.error("Worker %d could not open storage: %s", assignment.worker_id, e)
            signal(WorkerSignal(kind=SignalKind.FAILED, worker_id=assignment.worker_id, message=str(e)))
        sys.exit(1)
    except Exception as e:
        logger.exception("Worker %d crashed", assignment.worker_id)
        signal(WorkerSignal(kind=SignalKind.FAILED, worker_id=assignment.worker_id, message=str(e)))
        sys.exit(1)
    finally:
        for engine in engines:
            engine.dispose()
