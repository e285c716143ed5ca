import pytest
import numpy as np

from src.backtesting.types import BacktestConfig, Round
from src.core.db import create_db_engine, init_ledger_schema, init_rounds_schema
from src.strategy.decision import Decision, Direction


def random_walk(n: int, seed: int = 42, start: float = 300.0, scale: float = 0.01) -> np.ndarray:
    """Positive, non-degenerate price path of length ``n``."""
    rng = np.random.default_rng(seed)
    return start * np.exp(np.cumsum(rng.normal(0.0, scale, n)))


def make_rounds(n: int, seed: int = 42, first_round_id: int = 1000):
    """``n`` consecutive rounds; each ends at the next round's starting price."""
    prices = random_walk(n + 1, seed=seed)
    return [
        Round(
            round_id=first_round_id + i,
            starting_price=float(prices[i]),
            ending_price=float(prices[i + 1]),
        )
        for i in range(n)
    ]


class AlwaysBet:
    """Stand-in prediction engine: same decision for every full window."""

    def __init__(self, direction: Direction = Direction.BULL, stake: float = 0.02):
        self.direction = direction
        self.stake = stake
        self.windows = []

    def decide(self, window):
        self.windows.append(np.asarray(window).copy())
        return Decision(direction=self.direction, stake=self.stake, confidence=1.0)


@pytest.fixture
def rounds():
    return make_rounds(60)


@pytest.fixture
def rounds_engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'rounds.db'}")
    init_rounds_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def ledger_engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_ledger_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def small_config(tmp_path):
    """Small window and the fast logistic member so real predictions stay quick."""
    return BacktestConfig(
        rounds_database_url=f"sqlite:///{tmp_path / 'rounds.db'}",
        ledger_database_url=f"sqlite:///{tmp_path / 'ledger.db'}",
        window_capacity=10,
        lookback=5,
        predictor_members=("logistic",),
        batch_size=10,
        flush_threshold=5,
        workers=2,
        memory_pause_seconds=0.0,
    )


@pytest.fixture
def round_factory():
    return make_rounds


@pytest.fixture
def price_path():
    return random_walk


@pytest.fixture
def stub_engine_class():
    return AlwaysBet
