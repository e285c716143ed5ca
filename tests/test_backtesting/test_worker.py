"""
Tests for the per-partition replay worker.

Most tests use a stand-in prediction engine that bets on every full window so
that the replay, flush and checkpoint mechanics can be checked exactly.
"""
import dataclasses
import queue
from unittest.mock import Mock

import numpy as np
import pytest

from src.backtesting.checkpoint_store import SqlCheckpointStore
from src.backtesting.ledger import SqlBetLedger
from src.backtesting.round_source import InMemoryRoundSource, import_rounds
from src.backtesting.types import CheckpointEntry, PartitionAssignment, SignalKind
from src.backtesting.worker import (
    BacktestWorker,
    WorkerState,
    build_prediction_engine,
    run_partition,
)
from src.core.db import StorageError
from src.models.ensemble_model import EnsemblePredictor
from src.strategy.decision import Direction


@pytest.fixture
def checkpoints(ledger_engine):
    return SqlCheckpointStore(ledger_engine)


@pytest.fixture
def ledger(ledger_engine):
    return SqlBetLedger(ledger_engine)


def make_worker(config, rounds, checkpoints, ledger, engine, start=0, end=None, **kwargs):
    kwargs.setdefault("memory_probe", lambda: 0.0)
    return BacktestWorker(
        assignment=PartitionAssignment(0, start, len(rounds) if end is None else end),
        round_source=InMemoryRoundSource(rounds),
        checkpoint_store=checkpoints,
        ledger=ledger,
        engine=engine,
        config=config,
        **kwargs,
    )


class TestReplay:
    def test_full_partition(self, small_config, round_factory, checkpoints, ledger, stub_engine_class):
        rounds = round_factory(30)
        worker = make_worker(small_config, rounds, checkpoints, ledger, stub_engine_class())

        assert worker.run() == 30

        # the first decision needs a full window of 10 prices
        assert ledger.count() == 21
        assert ledger.records()[0].round_id == rounds[9].round_id
        assert worker.state is WorkerState.DONE
        assert checkpoints.get(0) is None
        assert len(worker.window) == 0

    def test_bets_settle_against_realized_move(self, small_config, round_factory, checkpoints, ledger,
                                               stub_engine_class):
        rounds = {r.round_id: r for r in round_factory(30)}
        make_worker(small_config, list(rounds.values()), checkpoints, ledger, stub_engine_class()).run()

        for record in ledger.records():
            round_ = rounds[record.round_id]
            assert record.direction is Direction.BULL
            assert record.won == (round_.ending_price > round_.starting_price)
            assert record.starting_price == round_.starting_price

    def test_windows_are_chronological(self, small_config, round_factory, checkpoints, ledger,
                                       stub_engine_class):
        rounds = round_factory(12)
        engine = stub_engine_class()
        make_worker(small_config, rounds, checkpoints, ledger, engine).run()

        assert len(engine.windows) == 3
        np.testing.assert_array_equal(engine.windows[0], [r.starting_price for r in rounds[:10]])
        np.testing.assert_array_equal(engine.windows[-1], [r.starting_price for r in rounds[2:12]])

    def test_no_bet_decisions_are_not_recorded(self, small_config, round_factory, checkpoints, ledger,
                                               stub_engine_class):
        engine = stub_engine_class(direction=Direction.NONE, stake=0.01)
        make_worker(small_config, round_factory(30), checkpoints, ledger, engine).run()

        assert ledger.count() == 0

    def test_empty_fetch_ends_partition(self, small_config, round_factory, checkpoints, ledger,
                                        stub_engine_class):
        worker = make_worker(small_config, round_factory(20), checkpoints, ledger, stub_engine_class(), end=30)

        assert worker.run() == 20
        assert checkpoints.get(0) is None


class TestWarmStart:
    def test_mid_partition_sees_preceding_prices(self, small_config, round_factory, checkpoints, ledger,
                                                 stub_engine_class):
        rounds = round_factory(30)
        engine = stub_engine_class()
        make_worker(small_config, rounds, checkpoints, ledger, engine, start=15).run()

        assert ledger.count() == 15
        assert ledger.records()[0].round_id == rounds[15].round_id
        np.testing.assert_array_equal(engine.windows[0], [r.starting_price for r in rounds[6:16]])

    def test_without_warm_start(self, small_config, round_factory, checkpoints, ledger, stub_engine_class):
        config = dataclasses.replace(small_config, warm_start=False)
        rounds = round_factory(30)
        make_worker(config, rounds, checkpoints, ledger, stub_engine_class(), start=15).run()

        assert ledger.count() == 6
        assert ledger.records()[0].round_id == rounds[24].round_id


class TestCheckpointing:
    def test_resumes_from_checkpoint(self, small_config, round_factory, checkpoints, ledger,
                                     stub_engine_class):
        rounds = round_factory(30)
        checkpoints.put(CheckpointEntry(0, last_processed_offset=20, end_offset=30, processed_count=20))

        worker = make_worker(small_config, rounds, checkpoints, ledger, stub_engine_class())

        assert worker.run() == 30
        assert [r.round_id for r in ledger.records()] == [r.round_id for r in rounds[20:]]
        assert checkpoints.get(0) is None

    def test_checkpoint_never_passes_unflushed_bets(self, small_config, round_factory, checkpoints, ledger,
                                                    stub_engine_class):
        config = dataclasses.replace(small_config, batch_size=10, flush_threshold=15)
        spy = Mock(wraps=checkpoints)

        make_worker(config, round_factory(40), spy, ledger, stub_engine_class()).run()

        written = [call.args[0] for call in spy.put.call_args_list]
        assert [e.last_processed_offset for e in written] == [0, 0, 30, 30]
        assert [e.processed_count for e in written] == [0, 0, 30, 30]
        assert all(e.end_offset == 40 for e in written)
        spy.delete.assert_called_once_with(0)
        assert ledger.count() == 31

    def test_storage_failure_keeps_last_checkpoint(self, small_config, round_factory, checkpoints,
                                                   stub_engine_class):
        failing_ledger = Mock()
        failing_ledger.append_batch.side_effect = [None, StorageError("disk full")]
        signals = []

        worker = make_worker(
            small_config, round_factory(30), checkpoints, failing_ledger, stub_engine_class(),
            signal=signals.append,
        )

        with pytest.raises(StorageError):
            worker.run()

        assert worker.state is WorkerState.FAILED
        assert checkpoints.get(0).last_processed_offset == 20
        assert signals[-1].kind is SignalKind.FAILED
        assert "disk full" in signals[-1].message

    def test_failure_before_first_flush(self, small_config, round_factory, checkpoints, stub_engine_class):
        config = dataclasses.replace(small_config, flush_threshold=1)
        failing_ledger = Mock()
        failing_ledger.append_batch.side_effect = StorageError("locked")

        worker = make_worker(config, round_factory(20), checkpoints, failing_ledger, stub_engine_class())

        with pytest.raises(StorageError):
            worker.run()
        assert checkpoints.get(0) is None


class TestSignalsAndBackPressure:
    def test_progress_and_done_signals(self, small_config, round_factory, checkpoints, ledger,
                                       stub_engine_class):
        signals = []
        make_worker(small_config, round_factory(30), checkpoints, ledger, stub_engine_class(),
                    signal=signals.append).run()

        kinds = [s.kind for s in signals]
        assert kinds == [SignalKind.PROGRESS] * 3 + [SignalKind.DONE]
        assert [s.processed for s in signals] == [10, 10, 10, 30]

    def test_pauses_above_memory_ceiling(self, small_config, round_factory, checkpoints, ledger,
                                         stub_engine_class):
        config = dataclasses.replace(small_config, memory_ceiling_fraction=0.9, memory_pause_seconds=0.25)
        probe = Mock(side_effect=[0.95, 0.95] + [0.1] * 10)
        sleep = Mock()

        make_worker(config, round_factory(20), checkpoints, ledger, stub_engine_class(),
                    memory_probe=probe, sleep=sleep).run()

        assert sleep.call_count == 2
        sleep.assert_called_with(0.25)
        assert ledger.count() == 11


class TestBuildPredictionEngine:
    def test_uses_config(self, small_config):
        engine = build_prediction_engine(small_config)

        assert engine.window_capacity == 10
        assert engine.feature_engineer.lookback == 5
        assert engine.bet_sizer.min_stake == small_config.min_stake
        assert engine.bet_sizer.max_stake == small_config.max_stake
        assert engine.scorer.thresholds.rsi_oversold == small_config.rsi_oversold
        predictor = engine.predictor_factory()
        assert isinstance(predictor, EnsemblePredictor)
        assert predictor.member_names == ["logistic"]

    def test_replay_with_real_engine(self, small_config, round_factory, checkpoints, ledger):
        make_worker(small_config, round_factory(30), checkpoints, ledger,
                    build_prediction_engine(small_config)).run()

        records = ledger.records()
        assert len(records) <= 21
        for record in records:
            assert small_config.min_stake <= record.stake <= small_config.max_stake


class TestRunPartition:
    def test_runs_partition_from_urls(self, small_config, round_factory, rounds_engine, ledger):
        import_rounds(rounds_engine, round_factory(30))
        signals = queue.Queue()

        run_partition(PartitionAssignment(0, 0, 30), small_config, signals)

        received = []
        while not signals.empty():
            received.append(signals.get_nowait())
        assert received[-1].kind is SignalKind.DONE
        assert received[-1].processed == 30
        assert SqlCheckpointStore(ledger.engine).get(0) is None

    def test_storage_failure_exits_non_zero(self, small_config, tmp_path):
        config = dataclasses.replace(
            small_config, rounds_database_url=f"sqlite:///{tmp_path / 'missing.db'}"
        )
        signals = queue.Queue()

        with pytest.raises(SystemExit) as exc_info:
            run_partition(PartitionAssignment(0, 0, 30), config, signals)

        assert exc_info.value.code == 1
        assert signals.get_nowait().kind is SignalKind.FAILED
