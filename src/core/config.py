from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Configuration for the prediction round backtester."""

    # Storage (rounds are READ-ONLY; bets and checkpoints are written)
    ROUNDS_DATABASE_URL: str = "sqlite:///historicalData.db"
    LEDGER_DATABASE_URL: str = "sqlite:///profitability.db"

    # Bet sizing
    MIN_STAKE: float = 0.01
    MAX_STAKE: float = 0.1
    MIN_SCORE: float = 0.0
    MAX_SCORE: float = 5.0
    BULL_THRESHOLD: float = 0.5
    BEAR_THRESHOLD: float = -0.5
    PLATFORM_FEE: float = 0.05  # taken from winnings only

    # Confidence scorer thresholds
    RSI_OVERSOLD: float = 30.0
    RSI_NEUTRAL: float = 50.0
    RSI_OVERBOUGHT: float = 70.0
    STOCHASTIC_OVERSOLD: float = 20.0
    STOCHASTIC_OVERBOUGHT: float = 80.0
    MACD_CROSSOVER_BAND: float = 0.01

    # Prediction
    WINDOW_CAPACITY: int = 100
    LOOKBACK: int = 50
    PREDICTOR_MEMBERS: str = "random_forest"  # comma separated
    PREDICTOR_ESTIMATORS: int = 100

    # Replay
    BATCH_SIZE: int = 500
    FLUSH_THRESHOLD: int = 100
    WORKERS: int = 0  # 0 = cpu_count - 1
    WARM_START: bool = True
    MEMORY_CEILING_FRACTION: float = 0.9
    MEMORY_PAUSE_SECONDS: float = 0.1
    DEDUPLICATE_SUMMARY: bool = True
    RESET_LEDGER_ON_FRESH_RUN: bool = True

    # App
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env"}


settings = Settings()
