"""Data access layer for users, investments and transactions"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session
from furby_gateway.infrastructure.database.models import User, Investment, Transaction
from furby_gateway.domain.exceptions import NotFound
from furby_gateway.domain.models import (
    InvestmentStatus,
    PaymentMethod,
    TransactionStatus,
    TransactionType,
)


class UserRepository:
    """Repository for user accounts"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: uuid.UUID) -> User:
        """Fetch user or raise NotFound"""
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user

    def get_for_update(self, user_id: uuid.UUID) -> User:
        """Fetch user with a row lock for a balance mutation"""
        user = (
            self.db.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user

    def get_by_referral_code(self, code: str) -> Optional[User]:
        return (
            self.db.query(User)
            .filter(User.referral_code == code, User.is_active.is_(True))
            .first()
        )

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def add(self, user: User) -> User:
        self.db.add(user)
        self.db.flush()
        return user

    def list_referrals(self, user_id: uuid.UUID) -> List[User]:
        """Direct downline of a user, newest first"""
        return (
            self.db.query(User)
            .filter(User.referred_by_id == user_id)
            .order_by(User.created_at.desc())
            .all()
        )

    def count_referrals(self, user_id: uuid.UUID) -> int:
        return self.db.query(func.count(User.id)).filter(User.referred_by_id == user_id).scalar()


class InvestmentRepository:
    """Repository for investments and their daily returns"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, investment_id: uuid.UUID) -> Investment:
        investment = self.db.get(Investment, investment_id)
        if investment is None:
            raise NotFound(f"Investment {investment_id} not found")
        return investment

    def get_for_update(self, investment_id: uuid.UUID) -> Investment:
        """Fetch investment with a row lock before a lifecycle change"""
        investment = (
            self.db.query(Investment)
            .filter(Investment.id == investment_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if investment is None:
            raise NotFound(f"Investment {investment_id} not found")
        return investment

    def add(self, investment: Investment) -> Investment:
        self.db.add(investment)
        self.db.flush()
        return investment

    def list_by_user(
        self,
        user_id: uuid.UUID,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Investment], int]:
        """Paginated investments for a user, newest first, with total count"""
        query = self.db.query(Investment).filter(Investment.user_id == user_id)
        if status:
            query = query.filter(Investment.status == status)
        total = query.count()
        items = (
            query.order_by(Investment.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def list_active_ids(self) -> List[uuid.UUID]:
        """Ids of every active investment (full scan for the settlement sweep)"""
        rows = (
            self.db.query(Investment.id)
            .filter(Investment.status == InvestmentStatus.ACTIVE.value)
            .order_by(Investment.end_date)
            .all()
        )
        return [row.id for row in rows]

    def count_active(self, user_id: uuid.UUID) -> int:
        return (
            self.db.query(func.count(Investment.id))
            .filter(Investment.user_id == user_id, Investment.status == InvestmentStatus.ACTIVE.value)
            .scalar()
        )

    def stats(self, user_id: Optional[uuid.UUID] = None) -> Dict[str, int]:
        """Counts and totals grouped by status"""
        query = self.db.query(
            Investment.status,
            func.count(Investment.id),
            func.coalesce(func.sum(Investment.amount_cents), 0),
            func.coalesce(func.sum(Investment.actual_return_cents), 0),
        )
        if user_id is not None:
            query = query.filter(Investment.user_id == user_id)
        rows = query.group_by(Investment.status).all()

        result = {
            "total": 0,
            "pending": 0,
            "active": 0,
            "completed": 0,
            "cancelled": 0,
            "total_invested_cents": 0,
            "total_returns_cents": 0,
        }
        for status, count, amount, returns in rows:
            result["total"] += count
            result[status] = count
            result["total_invested_cents"] += int(amount)
            result["total_returns_cents"] += int(returns)
        return result


class TransactionRepository:
    """Repository for ledger transactions"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, transaction: Transaction) -> Transaction:
        self.db.add(transaction)
        self.db.flush()
        return transaction

    def get_by_public_id(self, transaction_id: str, user_id: Optional[uuid.UUID] = None) -> Transaction:
        query = self.db.query(Transaction).filter(Transaction.transaction_id == transaction_id)
        if user_id is not None:
            query = query.filter(Transaction.user_id == user_id)
        transaction = query.first()
        if transaction is None:
            raise NotFound(f"Transaction {transaction_id} not found")
        return transaction

    def find_for_update(self, txid: Optional[str] = None, external_id: Optional[str] = None) -> Transaction:
        """Locate a PIX transaction by txid or provider id, locking the row"""
        query = self.db.query(Transaction)
        if txid:
            query = query.filter(Transaction.pix_txid == txid)
        elif external_id:
            query = query.filter(Transaction.external_id == external_id)
        else:
            raise NotFound("Transaction reference missing")
        transaction = query.with_for_update().populate_existing().first()
        if transaction is None:
            raise NotFound(f"Transaction {txid or external_id} not found")
        return transaction

    def list_by_user(
        self,
        user_id: uuid.UUID,
        method: Optional[str] = None,
        type_: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Transaction], int]:
        query = self.db.query(Transaction).filter(Transaction.user_id == user_id)
        if method:
            query = query.filter(Transaction.method == method)
        if type_:
            query = query.filter(Transaction.type == type_)
        total = query.count()
        items = (
            query.order_by(Transaction.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def list_for_investment(self, investment_id: uuid.UUID) -> List[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(Transaction.investment_id == investment_id)
            .order_by(Transaction.created_at.desc())
            .all()
        )

    def count_by_user(self, user_id: uuid.UUID) -> int:
        return self.db.query(func.count(Transaction.id)).filter(Transaction.user_id == user_id).scalar()

    def pending_pix_deposit_ids(self, created_after: datetime) -> List[uuid.UUID]:
        rows = (
            self.db.query(Transaction.id)
            .filter(
                Transaction.type == TransactionType.DEPOSIT.value,
                Transaction.method == PaymentMethod.PIX.value,
                Transaction.status == TransactionStatus.PENDING.value,
                Transaction.external_id.isnot(None),
                Transaction.created_at >= created_after,
            )
            .all()
        )
        return [row.id for row in rows]

    def processing_pix_withdrawal_ids(self) -> List[uuid.UUID]:
        rows = (
            self.db.query(Transaction.id)
            .filter(
                Transaction.type == TransactionType.WITHDRAWAL.value,
                Transaction.method == PaymentMethod.PIX.value,
                Transaction.status == TransactionStatus.PROCESSING.value,
                Transaction.external_id.isnot(None),
            )
            .all()
        )
        return [row.id for row in rows]

    def expired_pix_deposits(self, now: datetime) -> List[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(
                Transaction.type == TransactionType.DEPOSIT.value,
                Transaction.method == PaymentMethod.PIX.value,
                Transaction.status == TransactionStatus.PENDING.value,
                Transaction.pix_expires_at.isnot(None),
                Transaction.pix_expires_at <= now,
            )
            .all()
        )

    def delete_expired_before(self, cutoff: datetime) -> int:
        return (
            self.db.query(Transaction)
            .filter(
                Transaction.status == TransactionStatus.EXPIRED.value,
                Transaction.created_at < cutoff,
            )
            .delete(synchronize_session=False)
        )
