"""/v1/pix - PIX deposits, withdrawals, history and provider webhooks"""

import hashlib
import hmac
import logging
from typing import Optional
import pydantic
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from sqlalchemy.orm import Session

from furby_gateway.api.dependencies import get_current_user, get_payment_provider, get_request_id, rate_limited
from furby_gateway.api.errors import to_http_exception
from furby_gateway.api.v1.schemas import (
    AsaasWebhookRequest,
    CancelRequest,
    PixDepositRequest,
    PixDepositResponse,
    PixWebhookRequest,
    PixWithdrawalRequest,
    TransactionListResponse,
    TransactionResponse,
    WebhookResponse,
)
from furby_gateway.config import settings
from furby_gateway.domain.exceptions import DomainException, ExternalProviderError, NotFound
from furby_gateway.domain.models import PaymentMethod, TransactionType
from furby_gateway.infrastructure.clients.payments import PaymentProvider
from furby_gateway.infrastructure.database.models import User
from furby_gateway.infrastructure.database.repositories import TransactionRepository
from furby_gateway.infrastructure.database.session import get_db
from furby_gateway.services import pix as pix_service

router = APIRouter()

_ASAAS_CONFIRM_EVENTS = {"PAYMENT_RECEIVED", "PAYMENT_CONFIRMED", "TRANSFER_DONE"}
_ASAAS_FAIL_EVENTS = {
    "PAYMENT_OVERDUE",
    "PAYMENT_DELETED",
    "PAYMENT_REFUNDED",
    "TRANSFER_FAILED",
    "TRANSFER_CANCELLED",
}


def sign_payload(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of a webhook body"""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


@router.post("/pix/deposit", response_model=PixDepositResponse, status_code=201)
async def create_deposit(
    request_body: PixDepositRequest,
    request: Request,
    user: User = Depends(rate_limited("deposit")),
    db: Session = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
):
    """
    Create a PIX charge for the caller.

    Returns the BR Code payload and its QR image; the balance is credited
    only when the payment is confirmed by webhook or by the payment check job.
    """
    request_id = get_request_id(request)
    try:
        transaction = await pix_service.create_pix_deposit(db, provider, user.id, request_body.amount_cents)
        return PixDepositResponse(
            transaction_id=transaction.transaction_id,
            txid=transaction.pix_txid,
            amount_cents=transaction.amount_cents,
            status=transaction.status,
            pix_payload=transaction.pix_payload,
            qr_code_image=transaction.pix_qr_image,
            expires_at=transaction.pix_expires_at,
        )

    except ExternalProviderError as e:
        logging.error(f"Payment provider error: {e}", extra={"request_id": request_id})
        raise to_http_exception(e)

    except DomainException as e:
        logging.warning(f"Deposit rejected: {e}", extra={"request_id": request_id})
        raise to_http_exception(e)

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/pix/withdrawal", response_model=TransactionResponse, status_code=201)
async def create_withdrawal(
    request_body: PixWithdrawalRequest,
    request: Request,
    user: User = Depends(rate_limited("withdrawal")),
    db: Session = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
):
    """Debit the gross amount and send the net amount to the given PIX key"""
    request_id = get_request_id(request)
    try:
        transaction = await pix_service.create_pix_withdrawal(
            db,
            provider,
            user.id,
            request_body.amount_cents,
            request_body.pix_key,
            request_body.pix_key_type,
        )
        return TransactionResponse.model_validate(transaction)

    except ExternalProviderError as e:
        logging.error(f"Payment provider error: {e}", extra={"request_id": request_id})
        raise to_http_exception(e)

    except DomainException as e:
        logging.warning(f"Withdrawal rejected: {e}", extra={"request_id": request_id})
        raise to_http_exception(e)

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/pix/transactions", response_model=TransactionListResponse)
def list_transactions(
    type: Optional[TransactionType] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items, total = TransactionRepository(db).list_by_user(
        user.id,
        method=PaymentMethod.PIX.value,
        type_=type.value if type else None,
        page=page,
        limit=limit,
    )
    return TransactionListResponse(
        items=[TransactionResponse.model_validate(t) for t in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/pix/transactions/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        transaction = TransactionRepository(db).get_by_public_id(transaction_id, user_id=user.id)
    except NotFound as e:
        raise to_http_exception(e)
    return TransactionResponse.model_validate(transaction)


@router.put("/pix/transactions/{transaction_id}/cancel", response_model=TransactionResponse)
def cancel_transaction(
    transaction_id: str,
    request_body: CancelRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        transaction = pix_service.cancel_pix_transaction(db, transaction_id, user.id, request_body.reason)
        return TransactionResponse.model_validate(transaction)
    except DomainException as e:
        raise to_http_exception(e)


@router.post("/pix/webhook", response_model=WebhookResponse)
async def pix_webhook(
    request: Request,
    x_pix_signature: Optional[str] = Header(None, alias="X-Pix-Signature"),
    db: Session = Depends(get_db),
):
    """
    Settlement notification signed with HMAC-SHA256 over the raw body.

    Flow:
    1. Verify the signature against ``pix_webhook_secret``
    2. completed -> confirm (credits deposits, pays deposit commission)
    3. failed -> fail (reverses withdrawal debits)
    """
    request_id = get_request_id(request)
    body = await request.body()

    if not settings.pix_webhook_secret or not x_pix_signature:
        raise HTTPException(status_code=401, detail="Missing webhook signature")
    if not hmac.compare_digest(sign_payload(body, settings.pix_webhook_secret), x_pix_signature):
        logging.warning("Invalid PIX webhook signature", extra={"request_id": request_id})
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        notification = PixWebhookRequest.model_validate_json(body)
    except pydantic.ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))

    try:
        if notification.status == "completed":
            pix_service.confirm_pix_payment(db, txid=notification.txid, end_to_end_id=notification.end_to_end_id)
        else:
            pix_service.fail_pix_transaction(
                db, txid=notification.txid, reason=notification.reason or "Payment failed"
            )
    except DomainException as e:
        logging.warning(f"PIX webhook rejected: {e}", extra={"request_id": request_id, "txid": notification.txid})
        raise to_http_exception(e)

    return WebhookResponse(status="ok")


@router.post("/pix/asaas/webhook", response_model=WebhookResponse)
def asaas_webhook(
    notification: AsaasWebhookRequest,
    request: Request,
    asaas_access_token: Optional[str] = Header(None, alias="asaas-access-token"),
    db: Session = Depends(get_db),
):
    """Asaas payment/transfer events, authenticated by the shared access token"""
    request_id = get_request_id(request)
    if not settings.asaas_webhook_token or not hmac.compare_digest(
        asaas_access_token or "", settings.asaas_webhook_token
    ):
        raise HTTPException(status_code=401, detail="Invalid webhook token")

    entity = notification.payment or notification.transfer or {}
    external_id = entity.get("id")
    if not external_id or notification.event not in _ASAAS_CONFIRM_EVENTS | _ASAAS_FAIL_EVENTS:
        return WebhookResponse(status="ignored")

    try:
        if notification.event in _ASAAS_CONFIRM_EVENTS:
            pix_service.confirm_pix_payment(db, external_id=external_id, end_to_end_id=entity.get("endToEndIdentifier"))
        else:
            pix_service.fail_pix_transaction(db, external_id=external_id, reason=f"Asaas event {notification.event}")

    except NotFound:
        # Charges created outside this service
        logging.warning(
            "Asaas webhook for unknown transaction",
            extra={"request_id": request_id, "external_id": external_id, "asaas_event": notification.event},
        )
        return WebhookResponse(status="ignored")

    except DomainException as e:
        logging.warning(f"Asaas webhook rejected: {e}", extra={"request_id": request_id, "external_id": external_id})
        raise to_http_exception(e)

    return WebhookResponse(status="ok")
