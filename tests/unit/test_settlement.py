"""Unit tests for the settlement sweep"""

import random
from datetime import datetime, timedelta

from furby_gateway.domain.models import InvestmentStatus
from furby_gateway.domain.settlement import DailyReturnSimulator
from furby_gateway.infrastructure.database.models import DailyReturn
from furby_gateway.services import settlement
from furby_gateway.services.investments import create_investment
from furby_gateway.services.settlement import run_settlement_sweep

NOW = datetime(2025, 3, 10, 15, 0, 0)


class FixedSimulator(DailyReturnSimulator):
    def __init__(self, pct: float):
        super().__init__(pct, pct, rng=random.Random(0))


def test_sweep_accrues_one_daily_return(db, make_user):
    user = make_user("Clara", balance_cents=100_000)
    investment, _ = create_investment(db, user.id, "trader_1", 100_000, now=NOW)

    report = run_settlement_sweep(db, now=NOW + timedelta(days=3), simulator=FixedSimulator(2.0))

    assert report.processed == 1
    assert report.daily_returns == 1
    assert report.completed == 0
    db.refresh(user)
    db.refresh(investment)
    assert user.balance_cents == 2_000
    assert investment.progress == 10
    assert investment.actual_return_cents == 2_000


def test_sweep_is_idempotent_within_a_business_day(db, make_user):
    user = make_user("Clara", balance_cents=100_000)
    create_investment(db, user.id, "trader_1", 100_000, now=NOW)
    later = NOW + timedelta(days=3)

    run_settlement_sweep(db, now=later, simulator=FixedSimulator(2.0))
    second = run_settlement_sweep(db, now=later + timedelta(hours=1), simulator=FixedSimulator(2.0))

    assert second.processed == 1
    assert second.daily_returns == 0
    assert db.query(DailyReturn).count() == 1
    db.refresh(user)
    assert user.balance_cents == 2_000


def test_sweep_completes_matured_investment(db, make_user):
    a = make_user("Alice")
    user = make_user("Clara", balance_cents=100_000, referrer=a)
    investment, _ = create_investment(db, user.id, "trader_1", 100_000, now=NOW)

    report = run_settlement_sweep(db, now=NOW + timedelta(days=31), simulator=FixedSimulator(2.0))

    assert report.completed == 1
    assert report.daily_returns == 0
    db.refresh(investment)
    assert investment.status == InvestmentStatus.COMPLETED.value
    assert investment.progress == 100
    # No daily returns accrued, so actual return is zero and there is no profit
    db.refresh(a)
    assert a.balance_cents == 0


def test_sweep_never_lowers_progress(db, make_user):
    user = make_user("Clara", balance_cents=100_000)
    investment, _ = create_investment(db, user.id, "trader_1", 100_000, now=NOW)
    investment.progress = 40
    db.commit()

    run_settlement_sweep(db, now=NOW + timedelta(days=3), simulator=FixedSimulator(1.0))

    db.refresh(investment)
    assert investment.progress == 40


def test_sweep_isolates_failures(db, make_user, monkeypatch):
    first_user = make_user("Clara", balance_cents=100_000)
    second_user = make_user("Davi", balance_cents=100_000)
    broken, _ = create_investment(db, first_user.id, "trader_1", 100_000, now=NOW)
    healthy, _ = create_investment(db, second_user.id, "trader_1", 100_000, now=NOW)

    real_apply = settlement.apply_daily_return

    def flaky_apply(session, investment, amount_cents, percentage, now):
        if investment.id == broken.id:
            raise RuntimeError("deadlock detected")
        return real_apply(session, investment, amount_cents, percentage, now)

    monkeypatch.setattr(settlement, "apply_daily_return", flaky_apply)

    report = run_settlement_sweep(db, now=NOW + timedelta(days=3), simulator=FixedSimulator(2.0))

    assert report.failed == 1
    assert report.processed == 1
    assert report.daily_returns == 1
    db.refresh(broken)
    db.refresh(healthy)
    assert broken.progress == 0
    assert healthy.progress == 10
    db.refresh(second_user)
    assert second_user.balance_cents == 2_000
