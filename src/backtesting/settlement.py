"""
Bet settlement: the single outcome rule for every replayed round.

- bull wins iff ending_price > starting_price
- bear wins iff ending_price < starting_price
- a tie (ending_price == starting_price) loses for both sides
- a win pays stake * (1 - fee); a loss costs the full stake
"""

from typing import Optional, Tuple

from src.backtesting.types import BetRecord, Outcome, Round
from src.strategy.decision import Decision, Direction

PLATFORM_FEE = 0.05


def realized_direction(round_: Round) -> Direction:
    """Direction the price actually moved; NONE for a tie."""
    if round_.ending_price > round_.starting_price:
        return Direction.BULL
    if round_.ending_price < round_.starting_price:
        return Direction.BEAR
    return Direction.NONE


def calculate_bet_payout(stake: float, won: bool, fee: float = PLATFORM_FEE) -> Tuple[Outcome, float]:
    """
    Settle a stake.

    Returns:
        (outcome, profit)

    Examples:
        >>> calculate_bet_payout(2.0, False)
        (<Outcome.LOSE: 'lose'>, -2.0)
    """
    if won:
        return Outcome.WIN, stake * (1.0 - fee)
    return Outcome.LOSE, -stake


def settle_bet(round_: Round, decision: Decision, fee: float = PLATFORM_FEE) -> Optional[BetRecord]:
    """
    Settle ``decision`` against the realized move of ``round_``.

    Returns:
        BetRecord, or None when the decision places no bet
    """
    if not decision.places_bet:
        return None

    won = decision.direction is realized_direction(round_)
    outcome, profit = calculate_bet_payout(decision.stake, won, fee)

    return BetRecord(
        epoch=round_.round_id,
        direction=decision.direction,
        stake=decision.stake,
        outcome=outcome,
        profit=profit,
        round_id=round_.round_id,
        starting_price=round_.starting_price,
    )
