"""
Database engines and table definitions for the backtester.

Two databases are involved:
- the rounds database, opened READ-ONLY by workers (historical oracle rounds)
- the ledger database, holding the ``bets`` and ``checkpoints`` tables

Every worker process builds its own engine from a URL; engines are never shared
across processes.
"""
from sqlalchemy import (
    Column,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine


class StorageError(RuntimeError):
    """A round source, ledger or checkpoint store could not be reached."""


rounds_metadata = MetaData()
ledger_metadata = MetaData()

rounds_table = Table(
    "rounds",
    rounds_metadata,
    Column("round_id", Integer, primary_key=True, autoincrement=False),
    Column("starting_price", Float, nullable=False),
    Column("ending_price", Float, nullable=False),
)

bets_table = Table(
    "bets",
    ledger_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("epoch", Integer, nullable=False),
    Column("direction", String(8), nullable=False),
    Column("stake", Float, nullable=False),
    Column("outcome", String(8), nullable=False),
    Column("profit", Float, nullable=False),
    Column("round_id", Integer, nullable=False),
    Column("starting_price", Float, nullable=False),
    Index("idx_bets_round_id", "round_id"),
)

checkpoints_table = Table(
    "checkpoints",
    ledger_metadata,
    Column("worker_id", Integer, primary_key=True, autoincrement=False),
    Column("last_processed_offset", Integer, nullable=False),
    Column("end_offset", Integer, nullable=False),
    Column("processed_count", Integer, nullable=False),
)


def _enable_sqlite_wal(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_db_engine(url: str, busy_timeout: float = 30.0) -> Engine:
    """
    Create an engine suitable for several concurrent writer processes.

    SQLite databases are switched to WAL mode and given a busy timeout so that
    independent workers appending bets do not fail on a locked database.

    Args:
        url: SQLAlchemy database URL
        busy_timeout: Seconds a SQLite writer waits for a lock

    Returns:
        SQLAlchemy Engine
    """
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={"timeout": busy_timeout},
            pool_pre_ping=True,
            echo=False,
        )
        if ":memory:" not in url and url not in ("sqlite://", "sqlite:///"):
            event.listen(engine, "connect", _enable_sqlite_wal)
        return engine

    return create_engine(url, pool_pre_ping=True, echo=False)


def init_rounds_schema(engine: Engine) -> None:
    """Create the ``rounds`` table if missing (used by the import tool and tests)."""
    rounds_metadata.create_all(engine)


def init_ledger_schema(engine: Engine) -> None:
    """Create the ``bets`` and ``checkpoints`` tables if missing."""
    ledger_metadata.create_all(engine)
