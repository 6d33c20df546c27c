"""Balance mutators on the User aggregate.

Callers load the user through ``UserRepository.get_for_update`` so the row is
locked for the rest of the database transaction; the ``version`` column on
User turns any concurrent write that slipped through into a StaleDataError,
which ``unit_of_work`` reports as InvalidStateTransition.
Each mutator flushes the new ledger state. The caller commits the mutation
together with the Transaction row that records it.
"""

from sqlalchemy.orm import Session

from furby_gateway.domain.exceptions import InsufficientFunds, ValidationError
from furby_gateway.infrastructure.database.models import User


def _require_positive(amount_cents: int) -> None:
    if amount_cents <= 0:
        raise ValidationError("Amount must be positive", field="amount_cents")


def credit(db: Session, user: User, amount_cents: int) -> User:
    """Increase balance"""
    _require_positive(amount_cents)
    user.balance_cents += amount_cents
    db.flush()
    return user


def debit(db: Session, user: User, amount_cents: int) -> User:
    """Decrease balance; rejects debits larger than the balance"""
    _require_positive(amount_cents)
    if amount_cents > user.balance_cents:
        raise InsufficientFunds(user.balance_cents, amount_cents)
    user.balance_cents -= amount_cents
    db.flush()
    return user


def record_investment(db: Session, user: User, amount_cents: int) -> User:
    """Debit the principal and bump the investment accumulators"""
    debit(db, user, amount_cents)
    user.total_invested_cents += amount_cents
    user.investment_count += 1
    db.flush()
    return user


def record_earnings(db: Session, user: User, amount_cents: int) -> User:
    credit(db, user, amount_cents)
    user.total_earnings_cents += amount_cents
    db.flush()
    return user


def record_referral_earnings(db: Session, user: User, amount_cents: int) -> User:
    credit(db, user, amount_cents)
    user.referral_earnings_cents += amount_cents
    db.flush()
    return user
