"""
Durable per-worker replay cursors.

One row per worker id. A row exists while its partition is unfinished: it is
created when the partition is assigned, rewritten after every processed
batch and deleted once the partition completes. Rows left behind at start-up
mean the previous run crashed and must be resumed.
"""
from typing import List, Optional, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from src.backtesting.types import CheckpointEntry
from src.core.db import StorageError, checkpoints_table, init_ledger_schema


class CheckpointStore(Protocol):
    def get(self, worker_id: int) -> Optional[CheckpointEntry]:
        ...

    def put(self, entry: CheckpointEntry) -> None:
        ...

    def delete(self, worker_id: int) -> None:
        ...

    def list_entries(self) -> List[CheckpointEntry]:
        ...


def _to_entry(row) -> CheckpointEntry:
    return CheckpointEntry(
        worker_id=int(row.worker_id),
        last_processed_offset=int(row.last_processed_offset),
        end_offset=int(row.end_offset),
        processed_count=int(row.processed_count),
    )


class SqlCheckpointStore:
    """CheckpointStore backed by the ``checkpoints`` table."""

    def __init__(self, engine: Engine, create_schema: bool = True):
        self.engine = engine
        if create_schema:
            try:
                init_ledger_schema(engine)
            except SQLAlchemyError as e:
                raise StorageError(f"Could not initialize checkpoint store: {e}") from e

    def get(self, worker_id: int) -> Optional[CheckpointEntry]:
        stmt = select(checkpoints_table).where(checkpoints_table.c.worker_id == worker_id)
        try:
            with self.engine.connect() as conn:
                row = conn.execute(stmt).first()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not read checkpoint for worker {worker_id}: {e}") from e
        return _to_entry(row) if row is not None else None

    def put(self, entry: CheckpointEntry) -> None:
        """Insert or replace the entry for ``entry.worker_id``."""
        values = {
            "last_processed_offset": entry.last_processed_offset,
            "end_offset": entry.end_offset,
            "processed_count": entry.processed_count,
        }
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(checkpoints_table)
                    .where(checkpoints_table.c.worker_id == entry.worker_id)
                    .values(**values)
                )
                if result.rowcount == 0:
                    conn.execute(checkpoints_table.insert().values(worker_id=entry.worker_id, **values))
        except SQLAlchemyError as e:
            raise StorageError(f"Could not write checkpoint for worker {entry.worker_id}: {e}") from e

    def delete(self, worker_id: int) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(checkpoints_table).where(checkpoints_table.c.worker_id == worker_id))
        except SQLAlchemyError as e:
            raise StorageError(f"Could not delete checkpoint for worker {worker_id}: {e}") from e

    def list_entries(self) -> List[CheckpointEntry]:
        """All unfinished partitions, ordered by worker id."""
        stmt = select(checkpoints_table).order_by(checkpoints_table.c.worker_id)
        try:
            with self.engine.connect() as conn:
                return [_to_entry(row) for row in conn.execute(stmt)]
        except SQLAlchemyError as e:
            raise StorageError(f"Could not list checkpoints: {e}") from e

    def clear(self) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(checkpoints_table))
        except SQLAlchemyError as e:
            raise StorageError(f"Could not clear checkpoints: {e}") from e
