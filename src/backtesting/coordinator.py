"""
Backtest coordinator.

Splits the ordered round space into contiguous partitions, runs one worker
process per partition and reports the ledger summary once every process has
exited. A failed partition never stops its siblings; it keeps its checkpoint
row so the next run resumes it.
"""
import logging
import multiprocessing as mp
import os
import queue
import time
from typing import Callable, Dict, List, Tuple

from src.backtesting.checkpoint_store import CheckpointStore
from src.backtesting.ledger import BetLedger
from src.backtesting.round_source import RoundSource
from src.backtesting.types import (
    BacktestConfig,
    BacktestRunResult,
    CheckpointEntry,
    PartitionAssignment,
    SignalKind,
    Summary,
    WorkerSignal,
)
from src.backtesting.worker import run_partition

logger = logging.getLogger(__name__)

SIGNAL_POLL_SECONDS = 0.5


def resolve_worker_count(requested: int, total: int) -> int:
    """
    Number of partitions for ``total`` rounds.

    ``requested <= 0`` means one process per CPU, leaving one core free.
    """
    if total <= 0:
        return 0
    if requested > 0:
        count = requested
    else:
        count = max(1, (os.cpu_count() or 1) - 1)
    return min(count, total)


def partition_rounds(total: int, workers: int) -> List[PartitionAssignment]:
    """
    Split ``[0, total)`` into ``workers`` contiguous ranges.

    Every range has ``total // workers`` rounds except the last, which also
    takes the remainder.

    Examples:
        >>> [(p.start_offset, p.end_offset) for p in partition_rounds(10, 3)]
        [(0, 3), (3, 6), (6, 10)]
    """
    if total <= 0 or workers <= 0:
        return []
    workers = min(workers, total)
    size = total // workers
    assignments = []
    for worker_id in range(workers):
        start = worker_id * size
        end = total if worker_id == workers - 1 else start + size
        assignments.append(PartitionAssignment(worker_id=worker_id, start_offset=start, end_offset=end))
    return assignments


class BacktestCoordinator:
    """
    Plans partitions and supervises the worker processes of one backtest run.

    Example:
        >>> coordinator = BacktestCoordinator(config, rounds, checkpoints, ledger)
        >>> result = coordinator.run()
        >>> print(result.summary.total_profit)
    """

    def __init__(
        self,
        config: BacktestConfig,
        round_source: RoundSource,
        checkpoint_store: CheckpointStore,
        ledger: BetLedger,
        worker_target: Callable = run_partition,
        mp_context=None,
    ):
        """
        Initialize coordinator.

        Args:
            config: Backtest configuration, shipped to every worker process
            round_source: Used for the total round count
            checkpoint_store: Used to detect and create partition cursors
            ledger: Summarized after all workers exit
            worker_target: Process entry point ``(assignment, config, queue)``
            mp_context: multiprocessing context (defaults to ``config.start_method``)
        """
        self.config = config
        self.round_source = round_source
        self.checkpoint_store = checkpoint_store
        self.ledger = ledger
        self.worker_target = worker_target
        self.mp_context = mp_context or mp.get_context(config.start_method)

    def plan(self) -> Tuple[List[PartitionAssignment], bool, int]:
        """
        Decide which partitions to run.

        Unfinished checkpoint entries mean the previous run crashed: exactly
        those partitions are resumed. Otherwise the round space is split
        afresh and an initial checkpoint entry is written for each partition.

        Returns:
            (assignments, resumed, total_rounds)
        """
        total = self.round_source.count()
        entries = self.checkpoint_store.list_entries()

        if entries:
            assignments = [
                PartitionAssignment(
                    worker_id=entry.worker_id,
                    start_offset=entry.last_processed_offset,
                    end_offset=entry.end_offset,
                )
                for entry in entries
            ]
            logger.info(
                "Resuming %d unfinished partitions (%d rounds remaining)",
                len(assignments),
                sum(entry.remaining for entry in entries),
            )
            return assignments, True, total

        workers = resolve_worker_count(self.config.workers, total)
        assignments = partition_rounds(total, workers)

        if assignments and self.config.reset_ledger_on_fresh_run:
            self.ledger.clear()

        for assignment in assignments:
            self.checkpoint_store.put(
                CheckpointEntry(
                    worker_id=assignment.worker_id,
                    last_processed_offset=assignment.start_offset,
                    end_offset=assignment.end_offset,
                )
            )
        logger.info("Planned %d partitions over %d rounds", len(assignments), total)
        return assignments, False, total

    def run(self) -> BacktestRunResult:
        """
        Run every planned partition in its own process and summarize the ledger.

        Returns:
            BacktestRunResult with the summary and per-worker outcome
        """
        assignments, resumed, total = self.plan()
        if not assignments:
            logger.warning("No rounds to replay; nothing to do")
            return BacktestRunResult(summary=Summary(), total_rounds=total, resumed=resumed)

        signals = self.mp_context.Queue()
        processes = {}
        started = time.time()

        for assignment in assignments:
            process = self.mp_context.Process(
                target=self.worker_target,
                args=(assignment, self.config, signals),
                name=f"backtest-worker-{assignment.worker_id}",
            )
            process.start()
            processes[assignment.worker_id] = process
            logger.info(
                "Started worker %d on [%d, %d) (pid %s)",
                assignment.worker_id,
                assignment.start_offset,
                assignment.end_offset,
                process.pid,
            )

        progress: Dict[int, int] = {worker_id: 0 for worker_id in processes}
        while any(p.is_alive() for p in processes.values()):
            try:
                self._handle_signal(signals.get(timeout=SIGNAL_POLL_SECONDS), progress)
            except queue.Empty:
                continue

        for process in processes.values():
            process.join()
        self._drain(signals, progress)

        exit_codes = {worker_id: p.exitcode for worker_id, p in processes.items()}
        completed = sorted(w for w, code in exit_codes.items() if code == 0)
        failed = sorted(w for w, code in exit_codes.items() if code != 0)
        for worker_id in failed:
            logger.error(
                "Worker %d exited with code %s; its partition will resume on the next run",
                worker_id,
                exit_codes[worker_id],
            )

        summary = self.ledger.summary()
        logger.info(
            "Backtest finished in %.1fs: %d bets, %d wins, %d losses, profit %.4f",
            time.time() - started,
            summary.total_bets,
            summary.wins,
            summary.losses,
            summary.total_profit,
        )

        return BacktestRunResult(
            summary=summary,
            total_rounds=total,
            resumed=resumed,
            assignments=assignments,
            completed=completed,
            failed=failed,
            exit_codes=exit_codes,
        )

    def _handle_signal(self, signal: WorkerSignal, progress: Dict[int, int]) -> None:
        if signal.kind is SignalKind.PROGRESS:
            progress[signal.worker_id] = progress.get(signal.worker_id, 0) + signal.processed
            logger.debug("Worker %d processed %d rounds", signal.worker_id, progress[signal.worker_id])
        elif signal.kind is SignalKind.DONE:
            logger.info("Worker %d done (%d rounds)", signal.worker_id, signal.processed)
        else:
            logger.error("Worker %d reported failure: %s", signal.worker_id, signal.message)

    def _drain(self, signals, progress: Dict[int, int]) -> None:
        while True:
            try:
                self._handle_signal(signals.get_nowait(), progress)
            except queue.Empty:
                return
