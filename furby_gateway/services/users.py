"""User accounts: registration with referral codes, profile and stats"""

import logging
import secrets
import time
import uuid
from typing import Dict, List, Optional
from sqlalchemy.orm import Session

from furby_gateway.domain.exceptions import ValidationError
from furby_gateway.domain.models import PixKeyType
from furby_gateway.domain.pix import BASE36_DIGITS, to_base36, validate_pix_key
from furby_gateway.infrastructure.database.models import User
from furby_gateway.infrastructure.database.repositories import (
    InvestmentRepository,
    TransactionRepository,
    UserRepository,
)
from furby_gateway.infrastructure.database.session import unit_of_work


def generate_referral_code() -> str:
    """FURBY + base-36 millisecond timestamp + 4 random base-36 characters"""
    suffix = "".join(secrets.choice(BASE36_DIGITS) for _ in range(4))
    return f"FURBY{to_base36(int(time.time() * 1000))}{suffix}"


def register_user(
    db: Session,
    name: str,
    email: str,
    referral_code: Optional[str] = None,
    role: str = "user",
) -> User:
    """
    Create an account, optionally linked to the referrer owning ``referral_code``.

    Raises:
        ValidationError: Blank name, email already registered or unknown referral code
    """
    name = name.strip()
    email = email.strip().lower()
    if not name:
        raise ValidationError("Name is required", field="name")

    users = UserRepository(db)
    with unit_of_work(db):
        if users.get_by_email(email) is not None:
            raise ValidationError("Email already registered", field="email")

        referrer = None
        if referral_code:
            referrer = users.get_by_referral_code(referral_code.strip().upper())
            if referrer is None:
                raise ValidationError("Invalid referral code", field="referral_code")

        user = users.add(
            User(
                name=name,
                email=email,
                role=role,
                referral_code=generate_referral_code(),
                referred_by_id=referrer.id if referrer is not None else None,
            )
        )

    logging.info(
        "User registered",
        extra={"user_id": str(user.id), "referred_by": str(referrer.id) if referrer else None},
    )
    return user


def get_user(db: Session, user_id: uuid.UUID) -> User:
    return UserRepository(db).get(user_id)


def deactivate_user(db: Session, user_id: uuid.UUID) -> User:
    """Soft delete: the account and its ledger history are kept"""
    with unit_of_work(db):
        user = UserRepository(db).get_for_update(user_id)
        user.is_active = False
    logging.info("User deactivated", extra={"user_id": str(user_id)})
    return user


def set_pix_key(db: Session, user_id: uuid.UUID, pix_key: str, pix_key_type: PixKeyType) -> User:
    """Store the default PIX key used for withdrawals"""
    if not validate_pix_key(pix_key, pix_key_type):
        raise ValidationError("Invalid PIX key", field="pix_key")
    with unit_of_work(db):
        user = UserRepository(db).get_for_update(user_id)
        user.pix_key = pix_key
        user.pix_key_type = pix_key_type.value
    return user


def user_stats(db: Session, user_id: uuid.UUID) -> Dict[str, int]:
    """Ledger totals plus activity counters for the dashboard"""
    user = UserRepository(db).get(user_id)
    return {
        "balance_cents": user.balance_cents,
        "total_invested_cents": user.total_invested_cents,
        "total_earnings_cents": user.total_earnings_cents,
        "referral_earnings_cents": user.referral_earnings_cents,
        "investment_count": user.investment_count,
        "active_investments": InvestmentRepository(db).count_active(user.id),
        "transaction_count": TransactionRepository(db).count_by_user(user.id),
        "referral_count": UserRepository(db).count_referrals(user.id),
    }


def list_referrals(db: Session, user_id: uuid.UUID) -> List[User]:
    UserRepository(db).get(user_id)
    return UserRepository(db).list_referrals(user_id)
