"""Tests for the SQL round source, checkpoint store and bet ledger."""
import json

import pytest
from sqlalchemy import text

from src.backtesting.checkpoint_store import SqlCheckpointStore
from src.backtesting.ledger import SqlBetLedger
from src.backtesting.round_source import (
    InMemoryRoundSource,
    SqlRoundSource,
    import_rounds,
    load_rounds_json,
)
from src.backtesting.settlement import settle_bet
from src.backtesting.types import CheckpointEntry, Round
from src.core.db import StorageError, create_db_engine
from src.strategy.decision import Decision, Direction


class TestRoundSource:
    def test_count_and_fetch(self, rounds_engine, rounds):
        import_rounds(rounds_engine, rounds)
        source = SqlRoundSource(rounds_engine)

        assert source.count() == 60
        batch = source.fetch(10, 5)
        assert [r.round_id for r in batch] == [1010, 1011, 1012, 1013, 1014]
        assert batch[0] == rounds[10]

    def test_fetch_is_ordered_by_round_id(self, rounds_engine, rounds):
        import_rounds(rounds_engine, list(reversed(rounds)))
        fetched = SqlRoundSource(rounds_engine).fetch(0, 60)
        assert [r.round_id for r in fetched] == sorted(r.round_id for r in rounds)

    def test_fetch_past_end(self, rounds_engine, rounds):
        import_rounds(rounds_engine, rounds)
        source = SqlRoundSource(rounds_engine)

        assert len(source.fetch(55, 50)) == 5
        assert source.fetch(60, 10) == []
        assert source.fetch(0, 0) == []

    def test_import_skips_existing(self, rounds_engine, rounds):
        assert import_rounds(rounds_engine, rounds[:30]) == 30
        assert import_rounds(rounds_engine, rounds + rounds[:5]) == 30
        assert SqlRoundSource(rounds_engine).count() == 60

    def test_missing_table_is_storage_error(self, tmp_path):
        source = SqlRoundSource(create_db_engine(f"sqlite:///{tmp_path / 'empty.db'}"))
        with pytest.raises(StorageError):
            source.count()

    def test_in_memory_source(self, rounds):
        source = InMemoryRoundSource(reversed(rounds))
        assert source.count() == 60
        assert source.fetch(0, 2) == rounds[:2]
        assert source.fetch(59, 10) == rounds[59:]


class TestLoadRoundsJson:
    def test_ending_price_from_next_round(self, tmp_path):
        path = tmp_path / "rounds.json"
        path.write_text(json.dumps([
            {"roundId": 3, "price": 102.0},
            {"roundId": 1, "startingPrice": 100.0, "endingPrice": 101.5},
            {"roundId": 2, "price": 101.0},
        ]))

        rounds = load_rounds_json(str(path))

        assert rounds == [
            Round(1, 100.0, 101.5),
            Round(2, 101.0, 102.0),
        ]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_rounds_json(str(tmp_path / "nope.json"))

    def test_invalid_entry(self, tmp_path):
        path = tmp_path / "rounds.json"
        path.write_text(json.dumps([{"price": 1.0}]))
        with pytest.raises(ValueError):
            load_rounds_json(str(path))


class TestCheckpointStore:
    def test_put_get_delete(self, ledger_engine):
        store = SqlCheckpointStore(ledger_engine)
        assert store.get(0) is None

        store.put(CheckpointEntry(0, 0, 250))
        store.put(CheckpointEntry(0, 100, 250, processed_count=100))

        assert store.get(0) == CheckpointEntry(0, 100, 250, processed_count=100)
        store.delete(0)
        assert store.get(0) is None

    def test_list_entries_ordered(self, ledger_engine):
        store = SqlCheckpointStore(ledger_engine)
        store.put(CheckpointEntry(2, 500, 750))
        store.put(CheckpointEntry(0, 0, 250))

        assert [e.worker_id for e in store.list_entries()] == [0, 2]
        store.clear()
        assert store.list_entries() == []

    def test_survives_new_engine(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'ledger.db'}"
        SqlCheckpointStore(create_db_engine(url)).put(CheckpointEntry(1, 10, 20, 10))

        assert SqlCheckpointStore(create_db_engine(url)).get(1).last_processed_offset == 10


def bet(round_, direction=Direction.BULL, stake=0.01):
    return settle_bet(round_, Decision(direction, stake))


class TestBetLedger:
    def test_summary(self, ledger_engine):
        ledger = SqlBetLedger(ledger_engine)
        up = Round(1, 100.0, 110.0)
        down = Round(2, 100.0, 90.0)
        another_down = Round(3, 100.0, 95.0)
        ledger.append_batch([bet(up), bet(down), bet(another_down, Direction.BEAR)])

        summary = ledger.summary()
        assert summary.total_bets == 3
        assert summary.wins == 2
        assert summary.losses == 1
        assert summary.total_profit == pytest.approx(0.0095 - 0.01 + 0.0095)

    def test_empty_summary(self, ledger_engine):
        summary = SqlBetLedger(ledger_engine).summary()
        assert (summary.total_bets, summary.wins, summary.losses, summary.total_profit) == (0, 0, 0, 0.0)

    def test_empty_batch_is_noop(self, ledger_engine):
        ledger = SqlBetLedger(ledger_engine)
        ledger.append_batch([])
        assert ledger.count() == 0

    def test_duplicates_counted_once(self, ledger_engine):
        ledger = SqlBetLedger(ledger_engine)
        round_ = Round(5, 100.0, 110.0)
        ledger.append_batch([bet(round_)])
        ledger.append_batch([bet(round_, Direction.BEAR)])

        assert ledger.count() == 2
        assert ledger.count(include_duplicates=False) == 1
        summary = ledger.summary()
        assert summary.total_bets == 1
        assert summary.wins == 1
        assert len(ledger.get_bets(5)) == 2
        assert ledger.get_bets(5)[0].direction is Direction.BULL

    def test_duplicates_counted_without_dedup(self, ledger_engine):
        ledger = SqlBetLedger(ledger_engine, deduplicate=False)
        round_ = Round(5, 100.0, 110.0)
        ledger.append_batch([bet(round_), bet(round_)])
        assert ledger.summary().total_bets == 2

    def test_batch_is_atomic(self, ledger_engine):
        ledger = SqlBetLedger(ledger_engine)
        ledger.append_batch([bet(Round(1, 100.0, 110.0))])
        with ledger_engine.begin() as conn:
            conn.execute(text("CREATE TRIGGER reject_round_3 BEFORE INSERT ON bets "
                              "WHEN NEW.round_id = 3 BEGIN SELECT RAISE(ABORT, 'rejected'); END"))

        with pytest.raises(StorageError):
            ledger.append_batch([bet(Round(2, 100.0, 110.0)), bet(Round(3, 100.0, 110.0))])

        assert ledger.count() == 1

    def test_records_and_dataframe(self, ledger_engine):
        ledger = SqlBetLedger(ledger_engine)
        ledger.append_batch([bet(Round(2, 100.0, 90.0)), bet(Round(1, 100.0, 110.0))])

        assert [r.round_id for r in ledger.records()] == [1, 2]
        assert len(ledger.records(limit=1)) == 1
        frame = ledger.to_dataframe()
        assert list(frame["round_id"]) == [1, 2]
        assert list(frame["outcome"]) == ["win", "lose"]

    def test_clear(self, ledger_engine):
        ledger = SqlBetLedger(ledger_engine)
        ledger.append_batch([bet(Round(1, 100.0, 110.0))])
        assert ledger.clear() == 1
        assert ledger.summary().total_bets == 0
