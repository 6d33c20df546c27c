"""Referral commission disbursement up the referrer chain"""

import logging
from typing import List, Optional
from sqlalchemy.orm import Session

from furby_gateway.config import settings
from furby_gateway.domain.commissions import compute_commissions, rate_table
from furby_gateway.domain.models import (
    CommissionKind,
    CommissionShare,
    PaymentMethod,
    TransactionStatus,
    TransactionType,
)
from furby_gateway.infrastructure.database.models import Investment, Transaction, User
from furby_gateway.infrastructure.database.repositories import UserRepository
from furby_gateway.infrastructure.observability.logging import log_commission
from furby_gateway.infrastructure.observability.metrics import commission_failure_counter, record_commission
from furby_gateway.services import ledger
from furby_gateway.utils.date_utils import utc_now

_DESCRIPTIONS = {
    CommissionKind.DEPOSIT: "Referral commission - deposit by {name}",
    CommissionKind.INVESTMENT_PROFIT: "Referral commission - investment by {name}",
}


def upline(db: Session, user: User, depth: int) -> List[User]:
    """
    Referrers of a user, direct referrer first, at most ``depth`` of them.

    The walk stops at the first missing referrer and at any cycle.
    """
    chain: List[User] = []
    seen = {user.id}
    current = user
    while len(chain) < depth and current.referred_by_id is not None:
        if current.referred_by_id in seen:
            logging.warning(
                "Referral cycle detected",
                extra={"user_id": str(user.id), "repeated_id": str(current.referred_by_id)},
            )
            break
        referrer = db.get(User, current.referred_by_id)
        if referrer is None:
            break
        seen.add(referrer.id)
        chain.append(referrer)
        current = referrer
    return chain


def disburse_commissions(
    db: Session,
    beneficiary: User,
    base_cents: int,
    kind: CommissionKind,
    investment: Optional[Investment] = None,
) -> List[CommissionShare]:
    """
    Pay referral commissions for one earning event.

    Each level is paid inside its own savepoint: a completed ``referral``
    transaction for the payer plus the referral-earnings credit. A failing
    level is logged and skipped without undoing the levels already paid.

    Returns:
        Shares that were actually paid
    """
    rates = rate_table(kind, settings.investment_commission_bps, settings.deposit_commission_bps)
    shares = compute_commissions(base_cents, rates)
    if not shares:
        return []

    referrers = upline(db, beneficiary, len(rates))
    users = UserRepository(db)
    paid: List[CommissionShare] = []

    for share in shares:
        if share.level > len(referrers):
            break
        payer_id = referrers[share.level - 1].id
        try:
            with db.begin_nested():
                payer = users.get_for_update(payer_id)
                db.add(
                    Transaction(
                        user_id=payer.id,
                        type=TransactionType.REFERRAL.value,
                        method=PaymentMethod.SYSTEM.value,
                        amount_cents=share.amount_cents,
                        fee_cents=0,
                        status=TransactionStatus.COMPLETED.value,
                        completed_at=utc_now(),
                        description=_DESCRIPTIONS[kind].format(name=beneficiary.name)[:200],
                        referred_user_id=beneficiary.id,
                        investment_id=investment.id if investment is not None else None,
                        extra={"level": share.level, "rate_bps": share.rate_bps, "kind": kind.value},
                    )
                )
                ledger.record_referral_earnings(db, payer, share.amount_cents)
        except Exception as e:
            commission_failure_counter.inc()
            logging.error(
                f"Referral commission failed: {e}",
                extra={"payer_id": str(payer_id), "beneficiary_id": str(beneficiary.id), "referral_level": share.level},
            )
            continue

        paid.append(share)
        record_commission(kind.value, share.level)
        log_commission(str(payer_id), str(beneficiary.id), share.level, kind.value, share.amount_cents)

    return paid
