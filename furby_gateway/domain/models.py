"""Domain models - pure Python dataclasses and enums shared across layers"""

from dataclasses import dataclass
from enum import Enum


class InvestmentStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    INVESTMENT = "investment"
    RETURN = "return"
    REFERRAL = "referral"
    BONUS = "bonus"


class PaymentMethod(str, Enum):
    PIX = "pix"
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    SYSTEM = "system"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset(
    {
        TransactionStatus.COMPLETED,
        TransactionStatus.FAILED,
        TransactionStatus.CANCELLED,
        TransactionStatus.EXPIRED,
    }
)

# Allowed transaction status moves; terminal statuses have none
TRANSACTION_TRANSITIONS = {
    TransactionStatus.PENDING: frozenset(
        {
            TransactionStatus.PROCESSING,
            TransactionStatus.COMPLETED,
            TransactionStatus.FAILED,
            TransactionStatus.CANCELLED,
            TransactionStatus.EXPIRED,
        }
    ),
    TransactionStatus.PROCESSING: frozenset({TransactionStatus.COMPLETED, TransactionStatus.FAILED}),
}


class PixKeyType(str, Enum):
    CPF = "cpf"
    EMAIL = "email"
    PHONE = "phone"
    RANDOM = "random"


class CommissionKind(str, Enum):
    DEPOSIT = "deposit"
    INVESTMENT_PROFIT = "investment_profit"


class ProviderStatus(str, Enum):
    """Normalized payment/transfer status reported by a provider"""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class TraderProfile:
    """Catalog entry for a simulated investment product"""

    trader_id: str
    name: str
    success_rate: float
    period_label: str
    period_in_days: int
    min_investment_cents: int
    max_investment_cents: int
    description: str = ""


@dataclass
class CommissionShare:
    """Commission owed to one level of the upline"""

    level: int
    rate_bps: int
    amount_cents: int


@dataclass
class PixCharge:
    """Charge created with a payment provider for a PIX deposit"""

    provider_id: str
    payload: str


@dataclass
class SweepReport:
    """Outcome counters of a scheduled sweep"""

    processed: int = 0
    daily_returns: int = 0
    completed: int = 0
    failed: int = 0
