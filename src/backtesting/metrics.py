"""
Evaluation metrics for backtesting.

All metrics functions take settled bet records (in round order) and return
calculated values.
"""

import numpy as np
from typing import List, Sequence, Tuple

from src.backtesting.types import BacktestMetrics, BetRecord
from src.strategy.decision import Direction


def calculate_win_rate(records: Sequence[BetRecord]) -> float:
    """Fraction of bets won."""
    if not records:
        return 0.0
    return sum(1 for r in records if r.won) / len(records)


def calculate_direction_win_rates(
    records: Sequence[BetRecord],
) -> Tuple[int, float, int, float]:
    """
    Calculate bet counts and win rates for bull and bear bets separately.

    Returns:
        (bull_bets, bull_win_rate, bear_bets, bear_win_rate)
    """
    bull = [r for r in records if r.direction is Direction.BULL]
    bear = [r for r in records if r.direction is Direction.BEAR]
    return len(bull), calculate_win_rate(bull), len(bear), calculate_win_rate(bear)


def calculate_roi(records: Sequence[BetRecord]) -> Tuple[float, float, float]:
    """
    Calculate ROI and related betting metrics.

    Returns:
        (total_staked, total_profit, roi_percentage)
    """
    if not records:
        return 0.0, 0.0, 0.0

    total_staked = sum(r.stake for r in records)
    total_profit = sum(r.profit for r in records)
    roi = (total_profit / total_staked * 100) if total_staked > 0 else 0.0

    return total_staked, total_profit, roi


def profit_curve(records: Sequence[BetRecord]) -> List[float]:
    """Cumulative profit after each bet."""
    return [float(v) for v in np.cumsum([r.profit for r in records])]


def calculate_max_drawdown(records: Sequence[BetRecord]) -> float:
    """
    Calculate maximum drawdown (peak-to-trough decline) of cumulative profit.

    The curve starts at zero, so an initial losing run counts as drawdown.
    """
    if not records:
        return 0.0

    curve = np.concatenate([[0.0], np.cumsum([r.profit for r in records])])
    peaks = np.maximum.accumulate(curve)
    return float(np.max(peaks - curve))


def calculate_longest_losing_streak(records: Sequence[BetRecord]) -> int:
    longest = current = 0
    for r in records:
        if r.won:
            current = 0
        else:
            current += 1
            longest = max(longest, current)
    return longest


def calculate_sharpe_ratio(records: Sequence[BetRecord], risk_free_rate: float = 0.0) -> float:
    """
    Calculate Sharpe ratio (risk-adjusted return).

    Returns are measured per bet as profit / stake (not annualized).

    Returns:
        Sharpe ratio (higher is better)
    """
    if len(records) < 2:
        return 0.0

    returns = np.array([r.profit / r.stake for r in records])
    std_return = np.std(returns, ddof=1)
    if std_return == 0:
        return 0.0

    return float((np.mean(returns) - risk_free_rate) / std_return)


def calculate_metrics(records: Sequence[BetRecord]) -> BacktestMetrics:
    """Compute every metric over ``records``."""
    wins = sum(1 for r in records if r.won)
    total_staked, total_profit, roi = calculate_roi(records)
    bull_bets, bull_win_rate, bear_bets, bear_win_rate = calculate_direction_win_rates(records)

    return BacktestMetrics(
        total_bets=len(records),
        wins=wins,
        losses=len(records) - wins,
        win_rate=calculate_win_rate(records),
        total_staked=total_staked,
        total_profit=total_profit,
        roi=roi,
        bull_bets=bull_bets,
        bull_win_rate=bull_win_rate,
        bear_bets=bear_bets,
        bear_win_rate=bear_win_rate,
        max_drawdown=calculate_max_drawdown(records),
        longest_losing_streak=calculate_longest_losing_streak(records),
        sharpe_ratio=calculate_sharpe_ratio(records),
        profit_curve=profit_curve(records),
    )
