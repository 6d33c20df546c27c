"""Investment lifecycle operations: create, cancel, daily returns, completion"""

import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from sqlalchemy.orm import Session

from furby_gateway.config import settings
from furby_gateway.domain.commissions import investment_profit
from furby_gateway.domain.exceptions import InvalidStateTransition, NotFound, ValidationError
from furby_gateway.domain.models import (
    CommissionKind,
    InvestmentStatus,
    PaymentMethod,
    TraderProfile,
    TransactionStatus,
    TransactionType,
)
from furby_gateway.domain.settlement import time_progress
from furby_gateway.domain.traders import TRADERS, get_trader, validate_investment_amount
from furby_gateway.infrastructure.database.models import DailyReturn, Investment, Transaction, User
from furby_gateway.infrastructure.database.repositories import (
    InvestmentRepository,
    TransactionRepository,
    UserRepository,
)
from furby_gateway.infrastructure.database.session import unit_of_work
from furby_gateway.infrastructure.observability.metrics import investment_counter
from furby_gateway.services import ledger
from furby_gateway.services.commissions import disburse_commissions
from furby_gateway.utils.date_utils import business_date, utc_now


def list_traders() -> List[TraderProfile]:
    return list(TRADERS)


def _system_transaction(
    user: User,
    type_: TransactionType,
    amount_cents: int,
    description: str,
    investment: Investment,
    now: datetime,
) -> Transaction:
    return Transaction(
        user_id=user.id,
        type=type_.value,
        method=PaymentMethod.SYSTEM.value,
        amount_cents=amount_cents,
        fee_cents=0,
        status=TransactionStatus.COMPLETED.value,
        processed_at=now,
        completed_at=now,
        description=description[:200],
        investment_id=investment.id,
    )


def create_investment(
    db: Session,
    user_id: uuid.UUID,
    trader_id: str,
    amount_cents: int,
    now: Optional[datetime] = None,
) -> Tuple[Investment, Transaction]:
    """
    Open a position with a trader.

    Flow:
    1. Validate trader and amount bounds
    2. Lock the user and debit the principal
    3. Snapshot the trader profile, activate (stamping start/end dates)
    4. Record a completed ``investment`` transaction
    All in one commit; InsufficientFunds leaves nothing behind.
    """
    try:
        trader = get_trader(trader_id)
    except NotFound as e:
        raise ValidationError(str(e), field="trader_id") from e
    validate_investment_amount(trader, amount_cents)
    now = now or utc_now()

    with unit_of_work(db):
        user = UserRepository(db).get_for_update(user_id)
        if not user.is_active:
            raise ValidationError("User account is inactive", field="user_id")

        ledger.record_investment(db, user, amount_cents)

        investment = InvestmentRepository(db).add(
            Investment(
                user_id=user.id,
                trader_id=trader.trader_id,
                trader_name=trader.name,
                trader_success_rate=trader.success_rate,
                trader_period_label=trader.period_label,
                trader_period_days=trader.period_in_days,
                trader_min_cents=trader.min_investment_cents,
                trader_max_cents=trader.max_investment_cents,
                amount_cents=amount_cents,
                actual_return_cents=0,
                progress=0,
                status=InvestmentStatus.PENDING.value,
            )
        )
        transaction = TransactionRepository(db).add(
            _system_transaction(
                user, TransactionType.INVESTMENT, amount_cents, f"Investment with {trader.name}", investment, now
            )
        )
        investment.activate(now)

    investment_counter.labels(event="created").inc()
    logging.info(
        "Investment created",
        extra={
            "investment_id": str(investment.id),
            "user_id": str(user_id),
            "trader_id": trader.trader_id,
            "amount_cents": amount_cents,
        },
    )
    return investment, transaction


def cancel_investment(
    db: Session,
    investment_id: uuid.UUID,
    user_id: Optional[uuid.UUID] = None,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Investment:
    """
    Cancel a pending or active investment.

    A pending investment has not been debited yet, so nothing is released.
    An active one gets its principal back as a ``return`` transaction;
    daily returns already paid stay with the user.
    """
    now = now or utc_now()
    with unit_of_work(db):
        investment = InvestmentRepository(db).get_for_update(investment_id)
        if user_id is not None and investment.user_id != user_id:
            raise NotFound(f"Investment {investment_id} not found")
        if investment.status not in (InvestmentStatus.PENDING.value, InvestmentStatus.ACTIVE.value):
            raise InvalidStateTransition(f"Investment {investment_id} is {investment.status}, cannot cancel")

        was_active = investment.status == InvestmentStatus.ACTIVE.value
        investment.status = InvestmentStatus.CANCELLED.value
        investment.notes = (reason or "Investment cancelled")[:500]

        if was_active:
            user = UserRepository(db).get_for_update(investment.user_id)
            ledger.credit(db, user, investment.amount_cents)
            TransactionRepository(db).add(
                _system_transaction(
                    user,
                    TransactionType.RETURN,
                    investment.amount_cents,
                    f"Principal refund - cancelled investment with {investment.trader_name}",
                    investment,
                    now,
                )
            )

    investment_counter.labels(event="cancelled").inc()
    logging.info(
        "Investment cancelled",
        extra={"investment_id": str(investment.id), "refunded": was_active, "reason": investment.notes},
    )
    return investment


def apply_daily_return(
    db: Session,
    investment: Investment,
    amount_cents: int,
    percentage: float,
    now: datetime,
) -> DailyReturn:
    """Append a daily return and pay it out; caller owns the commit"""
    if investment.status != InvestmentStatus.ACTIVE.value:
        raise InvalidStateTransition(f"Investment {investment.id} is {investment.status}, no daily returns")
    if amount_cents < 0 or percentage < 0:
        raise ValidationError("Daily return must not be negative", field="amount_cents")

    day = business_date(now, settings.business_timezone)
    if investment.has_return_on(day):
        raise ValidationError(f"Daily return already recorded for {day.isoformat()}", field="date")

    entry = DailyReturn(return_date=day, amount_cents=amount_cents, percentage=percentage, created_at=now)
    investment.daily_returns.append(entry)
    investment.actual_return_cents += amount_cents

    if amount_cents > 0:
        user = UserRepository(db).get_for_update(investment.user_id)
        ledger.record_earnings(db, user, amount_cents)
        TransactionRepository(db).add(
            _system_transaction(
                user,
                TransactionType.RETURN,
                amount_cents,
                f"Daily return - {investment.trader_name}",
                investment,
                now,
            )
        )
    db.flush()
    investment_counter.labels(event="daily_return").inc()
    return entry


def add_daily_return(
    db: Session,
    investment_id: uuid.UUID,
    amount_cents: int,
    percentage: float,
    now: Optional[datetime] = None,
) -> Investment:
    """Record one daily return for an active investment (at most one per business day)"""
    now = now or utc_now()
    with unit_of_work(db):
        investment = InvestmentRepository(db).get_for_update(investment_id)
        apply_daily_return(db, investment, amount_cents, percentage, now)
    return investment


def finalize_investment(
    db: Session,
    investment: Investment,
    now: datetime,
    actual_return_cents: Optional[int] = None,
) -> Investment:
    """
    Complete an active investment; caller owns the commit.

    Pays whatever part of the actual return has not already been paid as
    daily returns, then disburses referral commissions on the realized
    profit (actual return minus principal).
    """
    if investment.status != InvestmentStatus.ACTIVE.value:
        raise InvalidStateTransition(f"Investment {investment.id} is {investment.status}, cannot complete")

    paid = investment.paid_returns_cents()
    if actual_return_cents is not None:
        if actual_return_cents < paid:
            raise ValidationError(
                f"Actual return {actual_return_cents} is below returns already paid ({paid})",
                field="actual_return_cents",
            )
        investment.actual_return_cents = actual_return_cents

    user = UserRepository(db).get_for_update(investment.user_id)
    remainder = investment.actual_return_cents - paid
    if remainder > 0:
        ledger.record_earnings(db, user, remainder)
        TransactionRepository(db).add(
            _system_transaction(
                user,
                TransactionType.RETURN,
                remainder,
                f"Investment return - {investment.trader_name}",
                investment,
                now,
            )
        )

    investment.status = InvestmentStatus.COMPLETED.value
    investment.completed_at = now
    investment.progress = 100
    db.flush()

    profit = investment_profit(investment.amount_cents, investment.actual_return_cents)
    disburse_commissions(db, user, profit, CommissionKind.INVESTMENT_PROFIT, investment=investment)

    investment_counter.labels(event="completed").inc()
    logging.info(
        "Investment completed",
        extra={
            "investment_id": str(investment.id),
            "user_id": str(investment.user_id),
            "actual_return_cents": investment.actual_return_cents,
            "profit_cents": profit,
        },
    )
    return investment


def complete_investment(
    db: Session,
    investment_id: uuid.UUID,
    actual_return_cents: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Investment:
    now = now or utc_now()
    with unit_of_work(db):
        investment = InvestmentRepository(db).get_for_update(investment_id)
        finalize_investment(db, investment, now, actual_return_cents)
    return investment


def current_progress(investment: Investment, now: Optional[datetime] = None) -> int:
    """Progress as shown to users: stored value, advanced by elapsed time while active"""
    if investment.status != InvestmentStatus.ACTIVE.value or investment.start_date is None:
        return investment.progress
    elapsed = time_progress(investment.start_date, investment.end_date, now or utc_now())
    return max(investment.progress, round(elapsed))


def get_investment(
    db: Session,
    investment_id: uuid.UUID,
    user_id: Optional[uuid.UUID] = None,
) -> Tuple[Investment, List[Transaction]]:
    """Investment with its related transactions; ``user_id`` enforces ownership"""
    investment = InvestmentRepository(db).get(investment_id)
    if user_id is not None and investment.user_id != user_id:
        raise NotFound(f"Investment {investment_id} not found")
    return investment, TransactionRepository(db).list_for_investment(investment.id)


def list_user_investments(
    db: Session,
    user_id: uuid.UUID,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Investment], int]:
    return InvestmentRepository(db).list_by_user(user_id, status=status, page=page, limit=limit)


def investment_stats(db: Session, user_id: Optional[uuid.UUID] = None) -> Dict[str, int]:
    return InvestmentRepository(db).stats(user_id)
