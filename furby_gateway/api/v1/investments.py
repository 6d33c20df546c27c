"""/v1/investments - trader catalog, positions and admin settlement"""

import logging
import uuid
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from furby_gateway.api.dependencies import get_current_user, get_request_id, rate_limited, require_admin
from furby_gateway.api.errors import to_http_exception
from furby_gateway.api.v1.schemas import (
    CancelRequest,
    CompleteInvestmentRequest,
    DailyReturnRequest,
    DailyReturnSchema,
    InvestmentCreateRequest,
    InvestmentCreateResponse,
    InvestmentDetailResponse,
    InvestmentListResponse,
    InvestmentResponse,
    InvestmentStatsResponse,
    TraderResponse,
    TransactionResponse,
)
from furby_gateway.domain.exceptions import DomainException
from furby_gateway.domain.models import InvestmentStatus
from furby_gateway.infrastructure.database.models import Investment, User
from furby_gateway.infrastructure.database.session import get_db
from furby_gateway.services import investments as investment_service

router = APIRouter()


def _investment_response(investment: Investment) -> InvestmentResponse:
    return InvestmentResponse(
        id=investment.id,
        trader_id=investment.trader_id,
        trader_name=investment.trader_name,
        trader_success_rate=investment.trader_success_rate,
        trader_period_label=investment.trader_period_label,
        amount_cents=investment.amount_cents,
        expected_return_cents=investment.expected_return_cents,
        actual_return_cents=investment.actual_return_cents,
        status=investment.status,
        progress=investment_service.current_progress(investment),
        start_date=investment.start_date,
        end_date=investment.end_date,
        completed_at=investment.completed_at,
        notes=investment.notes,
        daily_returns=[DailyReturnSchema.model_validate(d) for d in investment.daily_returns],
        created_at=investment.created_at,
    )


@router.get("/investments/traders", response_model=List[TraderResponse])
def list_traders():
    return [TraderResponse.model_validate(t) for t in investment_service.list_traders()]


@router.post("/investments", response_model=InvestmentCreateResponse, status_code=201)
def create_investment(
    request_body: InvestmentCreateRequest,
    request: Request,
    user: User = Depends(rate_limited("investment")),
    db: Session = Depends(get_db),
):
    """
    Open a position with a trader.

    The principal is debited from the caller's balance in the same commit
    that records the investment and its ledger transaction.
    """
    request_id = get_request_id(request)
    try:
        investment, transaction = investment_service.create_investment(
            db, user.id, request_body.trader_id, request_body.amount_cents
        )
        return InvestmentCreateResponse(
            investment=_investment_response(investment),
            transaction=TransactionResponse.model_validate(transaction),
        )

    except DomainException as e:
        logging.warning(f"Investment rejected: {e}", extra={"request_id": request_id})
        raise to_http_exception(e)

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/investments", response_model=InvestmentListResponse)
def list_investments(
    status: Optional[InvestmentStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items, total = investment_service.list_user_investments(
        db, user.id, status=status.value if status else None, page=page, limit=limit
    )
    return InvestmentListResponse(
        items=[_investment_response(i) for i in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/investments/stats/summary", response_model=InvestmentStatsResponse)
def investment_summary(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return InvestmentStatsResponse(**investment_service.investment_stats(db, user.id))


@router.get("/investments/{investment_id}", response_model=InvestmentDetailResponse)
def get_investment(
    investment_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        investment, transactions = investment_service.get_investment(db, investment_id, user_id=user.id)
    except DomainException as e:
        raise to_http_exception(e)
    return InvestmentDetailResponse(
        investment=_investment_response(investment),
        transactions=[TransactionResponse.model_validate(t) for t in transactions],
    )


@router.put("/investments/{investment_id}/cancel", response_model=InvestmentResponse)
def cancel_investment(
    investment_id: uuid.UUID,
    request_body: CancelRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        investment = investment_service.cancel_investment(
            db, investment_id, user_id=user.id, reason=request_body.reason
        )
        return _investment_response(investment)
    except DomainException as e:
        raise to_http_exception(e)


@router.put("/investments/admin/{investment_id}/complete", response_model=InvestmentResponse)
def complete_investment(
    investment_id: uuid.UUID,
    request_body: CompleteInvestmentRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Settle an active investment now, optionally overriding the actual return"""
    try:
        investment = investment_service.complete_investment(
            db, investment_id, actual_return_cents=request_body.actual_return_cents
        )
        logging.info(
            "Investment completed by admin",
            extra={"request_id": get_request_id(request), "admin_id": str(admin.id), "investment_id": str(investment_id)},
        )
        return _investment_response(investment)
    except DomainException as e:
        raise to_http_exception(e)


@router.post("/investments/admin/{investment_id}/daily-return", response_model=InvestmentResponse)
def add_daily_return(
    investment_id: uuid.UUID,
    request_body: DailyReturnRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        investment = investment_service.add_daily_return(
            db, investment_id, request_body.amount_cents, request_body.percentage
        )
        return _investment_response(investment)
    except DomainException as e:
        raise to_http_exception(e)
