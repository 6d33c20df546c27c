"""Trader catalog for simulated investment products"""

from typing import List
from furby_gateway.domain.models import TraderProfile
from furby_gateway.domain.exceptions import NotFound, ValidationError


TRADERS: List[TraderProfile] = [
    TraderProfile(
        trader_id="trader_1",
        name="Carlos Silva",
        success_rate=85.5,
        period_label="30 dias",
        period_in_days=30,
        min_investment_cents=10_000,
        max_investment_cents=1_000_000,
        description="Day trade specialist focused on technology stocks",
    ),
    TraderProfile(
        trader_id="trader_2",
        name="Ana Costa",
        success_rate=92.3,
        period_label="45 dias",
        period_in_days=45,
        min_investment_cents=50_000,
        max_investment_cents=2_500_000,
        description="Forex and commodities, ten years of experience",
    ),
    TraderProfile(
        trader_id="trader_3",
        name="Roberto Santos",
        success_rate=78.9,
        period_label="60 dias",
        period_in_days=60,
        min_investment_cents=20_000,
        max_investment_cents=1_500_000,
        description="Cryptocurrencies and digital assets",
    ),
    TraderProfile(
        trader_id="trader_4",
        name="Marina Oliveira",
        success_rate=88.7,
        period_label="90 dias",
        period_in_days=90,
        min_investment_cents=100_000,
        max_investment_cents=5_000_000,
        description="Fund manager focused on long-term positions",
    ),
]


def get_trader(trader_id: str) -> TraderProfile:
    """Look up a trader by id, raising NotFound for unknown ids"""
    for trader in TRADERS:
        if trader.trader_id == trader_id:
            return trader
    raise NotFound(f"Trader {trader_id} not found")


def validate_investment_amount(trader: TraderProfile, amount_cents: int) -> None:
    """Reject amounts outside the trader's bounds"""
    if amount_cents < trader.min_investment_cents:
        raise ValidationError(
            f"Minimum investment for {trader.name} is {trader.min_investment_cents} cents",
            field="amount_cents",
        )
    if amount_cents > trader.max_investment_cents:
        raise ValidationError(
            f"Maximum investment for {trader.name} is {trader.max_investment_cents} cents",
            field="amount_cents",
        )


def expected_return_cents(amount_cents: int, success_rate: float) -> int:
    """Expected return = amount x success_rate / 100"""
    return int(round(amount_cents * success_rate / 100))
