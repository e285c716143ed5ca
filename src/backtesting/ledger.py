"""
Append-only ledger of settled bets.

Any number of worker processes append concurrently; every ``append_batch``
call is one transaction, so a batch is stored completely or not at all.
Rows are never updated.

Replay is at-least-once: a worker that crashes after flushing a batch but
before advancing its checkpoint re-settles those rounds on resume. The
summary therefore counts each round id once (the earliest row) unless
de-duplication is turned off.
"""
import logging
from typing import List, Optional, Protocol, Sequence

import pandas as pd
from sqlalchemy import case, delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from src.backtesting.types import BetRecord, Summary
from src.core.db import StorageError, bets_table, init_ledger_schema

logger = logging.getLogger(__name__)


class BetLedger(Protocol):
    def append_batch(self, records: Sequence[BetRecord]) -> None:
        ...

    def summary(self) -> Summary:
        ...


def _to_record(row) -> BetRecord:
    return BetRecord(
        epoch=int(row.epoch),
        direction=row.direction,
        stake=float(row.stake),
        outcome=row.outcome,
        profit=float(row.profit),
        round_id=int(row.round_id),
        starting_price=float(row.starting_price),
    )


class SqlBetLedger:
    """BetLedger backed by the ``bets`` table."""

    def __init__(self, engine: Engine, deduplicate: bool = True, create_schema: bool = True):
        """
        Initialize ledger.

        Args:
            engine: Engine for the ledger database
            deduplicate: Count each round id once in summaries and record listings
            create_schema: Create the tables if they do not exist
        """
        self.engine = engine
        self.deduplicate = deduplicate
        if create_schema:
            try:
                init_ledger_schema(engine)
            except SQLAlchemyError as e:
                raise StorageError(f"Could not initialize bet ledger: {e}") from e

    def append_batch(self, records: Sequence[BetRecord]) -> None:
        """
        Append ``records`` in a single transaction.

        Raises:
            StorageError: If the batch could not be committed (nothing is stored)
        """
        if not records:
            return
        rows = [record.to_row() for record in records]
        try:
            with self.engine.begin() as conn:
                conn.execute(bets_table.insert(), rows)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not append {len(rows)} bets: {e}") from e
        logger.debug("Recorded %d bets", len(rows))

    def _visible_ids(self):
        return select(func.min(bets_table.c.id)).group_by(bets_table.c.round_id)

    def summary(self) -> Summary:
        """Total bets, wins, losses and profit over the ledger."""
        stmt = select(
            func.count(bets_table.c.id),
            func.sum(case((bets_table.c.outcome == "win", 1), else_=0)),
            func.sum(case((bets_table.c.outcome == "lose", 1), else_=0)),
            func.sum(bets_table.c.profit),
        )
        if self.deduplicate:
            stmt = stmt.where(bets_table.c.id.in_(self._visible_ids()))

        try:
            with self.engine.connect() as conn:
                total, wins, losses, profit = conn.execute(stmt).one()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not summarize bets: {e}") from e

        return Summary(
            total_bets=int(total or 0),
            wins=int(wins or 0),
            losses=int(losses or 0),
            total_profit=float(profit or 0.0),
        )

    def count(self, include_duplicates: bool = True) -> int:
        """Number of stored rows (or distinct round ids)."""
        column = bets_table.c.id if include_duplicates else bets_table.c.round_id.distinct()
        try:
            with self.engine.connect() as conn:
                return int(conn.execute(select(func.count(column))).scalar_one())
        except SQLAlchemyError as e:
            raise StorageError(f"Could not count bets: {e}") from e

    def get_bets(self, round_id: int) -> List[BetRecord]:
        """Every stored record for ``round_id`` (more than one only after a crash)."""
        stmt = select(bets_table).where(bets_table.c.round_id == round_id).order_by(bets_table.c.id)
        try:
            with self.engine.connect() as conn:
                return [_to_record(row) for row in conn.execute(stmt)]
        except SQLAlchemyError as e:
            raise StorageError(f"Could not read bets for round {round_id}: {e}") from e

    def records(self, limit: Optional[int] = None) -> List[BetRecord]:
        """Records in round order, honouring de-duplication."""
        stmt = select(bets_table).order_by(bets_table.c.round_id, bets_table.c.id)
        if self.deduplicate:
            stmt = stmt.where(bets_table.c.id.in_(self._visible_ids()))
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            with self.engine.connect() as conn:
                return [_to_record(row) for row in conn.execute(stmt)]
        except SQLAlchemyError as e:
            raise StorageError(f"Could not read bets: {e}") from e

    def to_dataframe(self) -> pd.DataFrame:
        """Records as a DataFrame (one row per bet, round order)."""
        return pd.DataFrame([record.to_row() for record in self.records()])

    def clear(self) -> int:
        """Delete every bet. Returns the number of rows removed."""
        try:
            with self.engine.begin() as conn:
                removed = conn.execute(delete(bets_table)).rowcount
        except SQLAlchemyError as e:
            raise StorageError(f"Could not clear bets: {e}") from e
        logger.info("Cleared %d bets from the ledger", removed)
        return removed
