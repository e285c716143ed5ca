"""
Read-only, ordered, offset-addressable access to historical rounds.

Offsets are positions in ascending ``round_id`` order, NOT round_id values.

CRITICAL: The replay never writes to the rounds table. Only the import tool
(``import_rounds``) populates it, from a historical JSON export.
"""
import json
import logging
from pathlib import Path
from typing import Iterable, List, Protocol, Sequence

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from src.backtesting.types import Round
from src.core.db import StorageError, init_rounds_schema, rounds_table

logger = logging.getLogger(__name__)


class RoundSource(Protocol):
    """Protocol for round stores used by the backtest."""

    def count(self) -> int:
        """Total number of rounds."""
        ...

    def fetch(self, offset: int, limit: int) -> List[Round]:
        """Up to ``limit`` rounds starting at position ``offset`` (ascending round_id)."""
        ...


class SqlRoundSource:
    """RoundSource backed by the ``rounds`` table."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def count(self) -> int:
        try:
            with self.engine.connect() as conn:
                return int(conn.execute(select(func.count()).select_from(rounds_table)).scalar_one())
        except SQLAlchemyError as e:
            raise StorageError(f"Could not count rounds: {e}") from e

    def fetch(self, offset: int, limit: int) -> List[Round]:
        if limit <= 0:
            return []
        stmt = (
            select(rounds_table.c.round_id, rounds_table.c.starting_price, rounds_table.c.ending_price)
            .order_by(rounds_table.c.round_id.asc())
            .offset(max(0, offset))
            .limit(limit)
        )
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not fetch rounds at offset {offset}: {e}") from e

        return [
            Round(round_id=int(r.round_id), starting_price=float(r.starting_price), ending_price=float(r.ending_price))
            for r in rows
        ]


class InMemoryRoundSource:
    """RoundSource over an in-memory list (sorted by round_id on construction)."""

    def __init__(self, rounds: Iterable[Round]):
        self._rounds = sorted(rounds, key=lambda r: r.round_id)

    def count(self) -> int:
        return len(self._rounds)

    def fetch(self, offset: int, limit: int) -> List[Round]:
        if limit <= 0:
            return []
        start = max(0, offset)
        return self._rounds[start:start + limit]


def load_rounds_json(path: str) -> List[Round]:
    """
    Load rounds from a historical JSON export.

    Each entry needs ``roundId`` and either ``startingPrice`` or ``price``.
    When ``endingPrice`` is missing, the next round's starting price is used
    (the following oracle reading); a trailing round without one is dropped.

    Raises:
        FileNotFoundError: If the export does not exist
        ValueError: If an entry lacks a round id or price
    """
    source = Path(path)
    if not source.exists():
        raise FileNotFoundError(f"No rounds export found: {source}")

    with open(source, "r") as f:
        entries = json.load(f)

    parsed = []
    for entry in entries:
        try:
            round_id = int(entry["roundId"])
            starting = float(entry.get("startingPrice", entry.get("price")))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid round entry {entry!r}: {e}") from e
        ending = entry.get("endingPrice")
        parsed.append((round_id, starting, float(ending) if ending is not None else None))

    parsed.sort(key=lambda item: item[0])

    rounds = []
    for i, (round_id, starting, ending) in enumerate(parsed):
        if ending is None:
            if i + 1 >= len(parsed):
                logger.warning("Dropping round %d: no ending price available", round_id)
                continue
            ending = parsed[i + 1][1]
        rounds.append(Round(round_id=round_id, starting_price=starting, ending_price=ending))

    return rounds


def import_rounds(engine: Engine, rounds: Sequence[Round]) -> int:
    """
    Insert rounds that are not yet stored; existing round ids are left untouched.

    Returns:
        Number of rounds inserted
    """
    init_rounds_schema(engine)
    try:
        with engine.begin() as conn:
            existing = set(conn.execute(select(rounds_table.c.round_id)).scalars())
            pending = {r.round_id: r for r in rounds if r.round_id not in existing}
            new_rows = [
                {"round_id": r.round_id, "starting_price": r.starting_price, "ending_price": r.ending_price}
                for r in pending.values()
            ]
            if new_rows:
                conn.execute(rounds_table.insert(), new_rows)
    except SQLAlchemyError as e:
        raise StorageError(f"Could not import rounds: {e}") from e

    logger.info("Imported %d new rounds (%d already present)", len(new_rows), len(rounds) - len(new_rows))
    return len(new_rows)
