"""Referral commission calculation - pure business rules"""

from typing import List, Sequence
from furby_gateway.domain.models import CommissionKind, CommissionShare

MAX_COMMISSION_LEVELS = 3


def rate_table(kind: CommissionKind, investment_bps: Sequence[int], deposit_bps: Sequence[int]) -> List[int]:
    """
    Select the configured rate table for an earning event.

    Investment profit pays down three levels (8% / 3% / 1% by default);
    deposits pay the direct referrer only (5% by default). Tables longer
    than three levels are truncated.
    """
    rates = investment_bps if kind == CommissionKind.INVESTMENT_PROFIT else deposit_bps
    return list(rates)[:MAX_COMMISSION_LEVELS]


def investment_profit(amount_cents: int, actual_return_cents: int) -> int:
    """Realized profit used as commission base; never negative"""
    return max(actual_return_cents - amount_cents, 0)


def compute_commissions(base_cents: int, rates_bps: Sequence[int]) -> List[CommissionShare]:
    """
    Split a commission base across upline levels.

    Args:
        base_cents: Earning event base (profit or deposit net amount)
        rates_bps: Rate per level in basis points, level 1 first

    Returns:
        One CommissionShare per level with a positive payout. Amounts are
        floored to the cent.

    Example:
        30000 cents profit, [800, 300, 100] -> 2400, 900, 300
    """
    if base_cents <= 0:
        return []

    shares = []
    for index, rate in enumerate(rates_bps[:MAX_COMMISSION_LEVELS]):
        amount = base_cents * rate // 10_000
        if amount > 0:
            shares.append(CommissionShare(level=index + 1, rate_bps=rate, amount_cents=amount))
    return shares
