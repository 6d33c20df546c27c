"""Pydantic schemas for API request/response validation"""

import uuid
from datetime import date, datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

from furby_gateway.domain.models import PixKeyType


class UserCreateRequest(BaseModel):
    """Request body for POST /v1/users"""

    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
    referral_code: Optional[str] = Field(None, max_length=32, description="Code of the referring user")


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    role: str
    is_active: bool
    balance_cents: int
    total_invested_cents: int
    total_earnings_cents: int
    referral_earnings_cents: int
    investment_count: int
    referral_code: str
    pix_key: Optional[str] = None
    pix_key_type: Optional[str] = None
    created_at: datetime


class PixKeyUpdateRequest(BaseModel):
    pix_key: str = Field(..., min_length=1)
    pix_key_type: PixKeyType


class UserStatsResponse(BaseModel):
    balance_cents: int
    total_invested_cents: int
    total_earnings_cents: int
    referral_earnings_cents: int
    investment_count: int
    active_investments: int
    transaction_count: int
    referral_count: int


class ReferralItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    is_active: bool
    created_at: datetime


class ReferralListResponse(BaseModel):
    total: int
    referrals: List[ReferralItem]


class TraderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    trader_id: str
    name: str
    success_rate: float
    period_label: str
    period_in_days: int
    min_investment_cents: int
    max_investment_cents: int
    description: str


class InvestmentCreateRequest(BaseModel):
    """Request body for POST /v1/investments"""

    trader_id: str = Field(..., min_length=1)
    amount_cents: int = Field(..., gt=0, description="Principal in cents")


class DailyReturnSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    return_date: date
    amount_cents: int
    percentage: float


class InvestmentResponse(BaseModel):
    id: uuid.UUID
    trader_id: str
    trader_name: str
    trader_success_rate: float
    trader_period_label: str
    amount_cents: int
    expected_return_cents: int
    actual_return_cents: int
    status: str
    progress: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    daily_returns: List[DailyReturnSchema] = []
    created_at: datetime


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    transaction_id: str
    type: str
    method: str
    amount_cents: int
    fee_cents: int
    net_amount_cents: int
    status: str
    description: str
    pix_key: Optional[str] = None
    pix_key_type: Optional[str] = None
    pix_txid: Optional[str] = None
    pix_end_to_end_id: Optional[str] = None
    pix_expires_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class InvestmentCreateResponse(BaseModel):
    investment: InvestmentResponse
    transaction: TransactionResponse


class InvestmentDetailResponse(BaseModel):
    investment: InvestmentResponse
    transactions: List[TransactionResponse]


class InvestmentListResponse(BaseModel):
    items: List[InvestmentResponse]
    total: int
    page: int
    limit: int


class InvestmentStatsResponse(BaseModel):
    total: int
    pending: int
    active: int
    completed: int
    cancelled: int
    total_invested_cents: int
    total_returns_cents: int


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class CompleteInvestmentRequest(BaseModel):
    """Admin completion; omit ``actual_return_cents`` to keep the accrued returns"""

    actual_return_cents: Optional[int] = Field(None, ge=0)


class DailyReturnRequest(BaseModel):
    amount_cents: int = Field(..., ge=0)
    percentage: float = Field(..., ge=0)


class PixDepositRequest(BaseModel):
    amount_cents: int = Field(..., gt=0, description="Deposit amount in cents")


class PixDepositResponse(BaseModel):
    transaction_id: str
    txid: str
    amount_cents: int
    status: str
    pix_payload: str
    qr_code_image: Optional[str] = None
    expires_at: datetime


class PixWithdrawalRequest(BaseModel):
    amount_cents: int = Field(..., gt=0, description="Gross withdrawal amount in cents")
    pix_key: str = Field(..., min_length=1)
    pix_key_type: PixKeyType


class TransactionListResponse(BaseModel):
    items: List[TransactionResponse]
    total: int
    page: int
    limit: int


class PixWebhookRequest(BaseModel):
    """Signed notification from the PIX settlement network"""

    txid: str = Field(..., min_length=1)
    status: Literal["completed", "failed"]
    end_to_end_id: Optional[str] = None
    reason: Optional[str] = None


class AsaasWebhookRequest(BaseModel):
    event: str
    payment: Optional[dict] = None
    transfer: Optional[dict] = None


class WebhookResponse(BaseModel):
    status: str
