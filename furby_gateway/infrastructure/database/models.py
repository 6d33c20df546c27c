"""SQLAlchemy ORM models for users, investments and ledger transactions"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column,
    String,
    BigInteger,
    Boolean,
    Float,
    DateTime,
    Date,
    Integer,
    ForeignKey,
    Text,
    JSON,
    Uuid,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import declarative_base, relationship

from furby_gateway.domain.exceptions import InvalidStateTransition
from furby_gateway.domain.traders import expected_return_cents
from furby_gateway.domain.models import (
    InvestmentStatus,
    TransactionStatus,
    TRANSACTION_TRANSITIONS,
    TERMINAL_STATUSES,
)
from furby_gateway.utils.date_utils import utc_now, add_days

Base = declarative_base()


class User(Base):
    """Account holder and aggregate root for balance truth"""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(String(20), nullable=False, default="user")
    is_active = Column(Boolean, nullable=False, default=True)

    balance_cents = Column(BigInteger, nullable=False, default=0)
    total_invested_cents = Column(BigInteger, nullable=False, default=0)
    total_earnings_cents = Column(BigInteger, nullable=False, default=0)
    referral_earnings_cents = Column(BigInteger, nullable=False, default=0)
    investment_count = Column(Integer, nullable=False, default=0)

    referral_code = Column(String(32), nullable=False, unique=True, index=True)
    referred_by_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)

    pix_key = Column(Text, nullable=True)
    pix_key_type = Column(String(10), nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    referred_by = relationship("User", remote_side=[id])

    # Concurrent read-modify-write on the ledger fields fails with StaleDataError
    __mapper_args__ = {"version_id_col": version}


class Investment(Base):
    """Position in a trader product; trader fields are a snapshot taken at creation"""

    __tablename__ = "investments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    trader_id = Column(String(50), nullable=False)
    trader_name = Column(String(100), nullable=False, index=True)
    trader_success_rate = Column(Float, nullable=False)
    trader_period_label = Column(String(50), nullable=False)
    trader_period_days = Column(Integer, nullable=False)
    trader_min_cents = Column(BigInteger, nullable=False)
    trader_max_cents = Column(BigInteger, nullable=False)

    amount_cents = Column(BigInteger, nullable=False)
    expected_return_cents = Column(BigInteger, nullable=False, default=0)
    actual_return_cents = Column(BigInteger, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=InvestmentStatus.PENDING.value, index=True)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True, index=True)
    completed_at = Column(DateTime, nullable=True)
    progress = Column(Integer, nullable=False, default=0)
    notes = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)
    version = Column(Integer, nullable=False)

    user = relationship("User")
    daily_returns = relationship(
        "DailyReturn",
        back_populates="investment",
        cascade="all, delete-orphan",
        order_by="DailyReturn.return_date",
    )

    # Settling a position twice from stale state fails with StaleDataError
    __mapper_args__ = {"version_id_col": version}

    def activate(self, now: datetime | None = None) -> None:
        """pending -> active; start/end dates are stamped only once"""
        if self.status != InvestmentStatus.PENDING.value:
            raise InvalidStateTransition(f"Investment {self.id} is {self.status}, cannot activate")
        self.status = InvestmentStatus.ACTIVE.value
        if self.start_date is None:
            self.start_date = now or utc_now()
            self.end_date = add_days(self.start_date, self.trader_period_days)

    def paid_returns_cents(self) -> int:
        return sum(entry.amount_cents for entry in self.daily_returns)

    def has_return_on(self, day) -> bool:
        return any(entry.return_date == day for entry in self.daily_returns)


class DailyReturn(Base):
    """Append-only daily return log entry; one per investment per business day"""

    __tablename__ = "investment_daily_returns"
    __table_args__ = (UniqueConstraint("investment_id", "return_date", name="uq_daily_return_day"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    investment_id = Column(Uuid, ForeignKey("investments.id", ondelete="CASCADE"), nullable=False)
    return_date = Column(Date, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    percentage = Column(Float, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    investment = relationship("Investment", back_populates="daily_returns")


class Transaction(Base):
    """Ledger entry recording one movement of funds"""

    __tablename__ = "transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    transaction_id = Column(String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    method = Column(String(20), nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    fee_cents = Column(BigInteger, nullable=False, default=0)
    net_amount_cents = Column(BigInteger, nullable=False)
    status = Column(String(20), nullable=False, default=TransactionStatus.PENDING.value, index=True)
    description = Column(String(200), nullable=False)

    pix_key = Column(Text, nullable=True)
    pix_key_type = Column(String(10), nullable=True)
    pix_txid = Column(String(35), nullable=True, unique=True, index=True)
    pix_payload = Column(Text, nullable=True)
    pix_qr_image = Column(Text, nullable=True)
    pix_end_to_end_id = Column(String(64), nullable=True)
    pix_expires_at = Column(DateTime, nullable=True)

    investment_id = Column(Uuid, ForeignKey("investments.id"), nullable=True)
    referred_user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)

    external_id = Column(String(64), nullable=True, index=True)
    processed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    failure_reason = Column(Text, nullable=True)
    notes = Column(String(500), nullable=True)
    extra = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now, index=True)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    user = relationship("User", foreign_keys=[user_id])
    investment = relationship("Investment")

    @property
    def is_terminal(self) -> bool:
        return TransactionStatus(self.status) in TERMINAL_STATUSES

    def transition_to(self, new_status: TransactionStatus, now: datetime | None = None) -> None:
        """Move to a new status; terminal statuses are final"""
        current = TransactionStatus(self.status)
        if new_status not in TRANSACTION_TRANSITIONS.get(current, frozenset()):
            raise InvalidStateTransition(
                f"Transaction {self.transaction_id} cannot go from {current.value} to {new_status.value}"
            )
        now = now or utc_now()
        self.status = new_status.value
        if new_status == TransactionStatus.PROCESSING:
            self.processed_at = now
        elif new_status == TransactionStatus.COMPLETED:
            self.completed_at = now


@event.listens_for(Transaction, "before_insert")
@event.listens_for(Transaction, "before_update")
def _recompute_net_amount(mapper, connection, target: Transaction) -> None:
    target.net_amount_cents = target.amount_cents - (target.fee_cents or 0)


@event.listens_for(Investment, "before_insert")
@event.listens_for(Investment, "before_update")
def _recompute_expected_return(mapper, connection, target: Investment) -> None:
    target.expected_return_cents = expected_return_cents(target.amount_cents, target.trader_success_rate)
