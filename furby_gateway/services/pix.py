"""PIX transaction lifecycle: creation, confirmation, failure, cancellation and sweeps"""

import logging
import time
import uuid
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import Session

from furby_gateway.config import settings
from furby_gateway.domain.exceptions import ExternalProviderError, InvalidStateTransition, ValidationError
from furby_gateway.domain.models import (
    CommissionKind,
    PaymentMethod,
    PixKeyType,
    ProviderStatus,
    SweepReport,
    TransactionStatus,
    TransactionType,
)
from furby_gateway.domain.pix import generate_end_to_end_id, generate_txid, validate_pix_key, withdrawal_fee
from furby_gateway.infrastructure.clients.payments import PaymentProvider
from furby_gateway.infrastructure.database.models import Transaction
from furby_gateway.infrastructure.database.repositories import TransactionRepository, UserRepository
from furby_gateway.infrastructure.database.session import unit_of_work
from furby_gateway.infrastructure.observability.logging import log_pix_event, log_sweep
from furby_gateway.infrastructure.observability.metrics import (
    record_pix,
    sweep_duration_histogram,
    sweep_item_failure_counter,
)
from furby_gateway.services import ledger
from furby_gateway.services.commissions import disburse_commissions
from furby_gateway.utils.date_utils import utc_now
from furby_gateway.utils.qr import render_qr_data_url


def _check_bounds(amount_cents: int, minimum: int, maximum: int) -> None:
    if amount_cents < minimum or amount_cents > maximum:
        raise ValidationError(
            f"Amount must be between {minimum} and {maximum} cents",
            field="amount_cents",
        )


async def create_pix_deposit(
    db: Session,
    provider: PaymentProvider,
    user_id: uuid.UUID,
    amount_cents: int,
    now: Optional[datetime] = None,
) -> Transaction:
    """
    Create a pending PIX deposit.

    Flow:
    1. Validate amount bounds
    2. Create the charge with the provider (BR Code payload + provider id)
    3. Render the payload as a QR data URL
    4. Persist a pending deposit that expires after the configured TTL
    """
    _check_bounds(amount_cents, settings.deposit_min_cents, settings.deposit_max_cents)
    now = now or utc_now()

    user = UserRepository(db).get(user_id)
    if not user.is_active:
        raise ValidationError("User account is inactive", field="user_id")

    txid = generate_txid()
    charge = await provider.create_charge(txid, amount_cents, f"Deposit {user.name}", user.name, user.email)

    with unit_of_work(db):
        transaction = TransactionRepository(db).add(
            Transaction(
                user_id=user.id,
                type=TransactionType.DEPOSIT.value,
                method=PaymentMethod.PIX.value,
                amount_cents=amount_cents,
                fee_cents=0,
                status=TransactionStatus.PENDING.value,
                description="PIX deposit",
                pix_key=settings.pix_company_key,
                pix_key_type=PixKeyType.RANDOM.value,
                pix_txid=txid,
                pix_payload=charge.payload,
                pix_qr_image=render_qr_data_url(charge.payload),
                pix_expires_at=now + timedelta(minutes=settings.pix_deposit_ttl_minutes),
                external_id=charge.provider_id,
                created_at=now,
            )
        )

    record_pix(TransactionType.DEPOSIT.value, TransactionStatus.PENDING.value)
    log_pix_event("deposit_created", transaction.transaction_id, str(user.id), amount_cents, txid=txid)
    return transaction


async def create_pix_withdrawal(
    db: Session,
    provider: PaymentProvider,
    user_id: uuid.UUID,
    amount_cents: int,
    pix_key: str,
    pix_key_type: PixKeyType,
    now: Optional[datetime] = None,
) -> Transaction:
    """
    Request a PIX withdrawal.

    The gross amount is debited together with the pending transaction in one
    commit, so InsufficientFunds leaves nothing persisted. The withdrawal is
    then moved to processing, which closes it to user cancellation, and the
    provider receives a transfer for the net amount. On provider failure the
    withdrawal is failed, the debit reversed and ExternalProviderError raised.
    """
    _check_bounds(amount_cents, settings.withdrawal_min_cents, settings.withdrawal_max_cents)
    if not validate_pix_key(pix_key, pix_key_type):
        raise ValidationError("Invalid PIX key", field="pix_key")
    now = now or utc_now()
    fee = withdrawal_fee(amount_cents, settings.withdrawal_fee_bps, settings.withdrawal_min_fee_cents)
    txid = generate_txid()

    with unit_of_work(db):
        user = UserRepository(db).get_for_update(user_id)
        if not user.is_active:
            raise ValidationError("User account is inactive", field="user_id")
        ledger.debit(db, user, amount_cents)
        transaction = TransactionRepository(db).add(
            Transaction(
                user_id=user.id,
                type=TransactionType.WITHDRAWAL.value,
                method=PaymentMethod.PIX.value,
                amount_cents=amount_cents,
                fee_cents=fee,
                status=TransactionStatus.PENDING.value,
                description="PIX withdrawal",
                pix_key=pix_key,
                pix_key_type=pix_key_type.value,
                pix_txid=txid,
                created_at=now,
            )
        )

    # Claimed before the provider call; a processing withdrawal can no longer
    # be cancelled by the user
    with unit_of_work(db):
        transaction = TransactionRepository(db).find_for_update(txid=txid)
        transaction.transition_to(TransactionStatus.PROCESSING, now)

    try:
        provider_id = await provider.create_transfer(
            txid, transaction.net_amount_cents, pix_key, pix_key_type, f"Withdrawal {user.name}"
        )
    except ExternalProviderError as e:
        with unit_of_work(db):
            transaction = TransactionRepository(db).find_for_update(txid=txid)
            _fail(db, transaction, f"Provider rejected transfer: {e}", now)
        raise

    try:
        with unit_of_work(db):
            transaction = TransactionRepository(db).find_for_update(txid=txid)
            transaction.external_id = provider_id
    except Exception:
        logging.critical(
            "Transfer accepted by provider but not recorded",
            extra={"txid": txid, "provider_id": provider_id, "user_id": str(user_id)},
        )
        raise

    record_pix(TransactionType.WITHDRAWAL.value, TransactionStatus.PROCESSING.value)
    log_pix_event(
        "withdrawal_requested",
        transaction.transaction_id,
        str(user_id),
        amount_cents,
        fee_cents=fee,
        provider_id=provider_id,
    )
    return transaction


def confirm_pix_payment(
    db: Session,
    txid: Optional[str] = None,
    external_id: Optional[str] = None,
    end_to_end_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Transaction:
    """
    Mark a PIX transaction as paid.

    Deposits credit the net amount to the user and pay the deposit referral
    commission; withdrawals were debited at creation and are only finalized.
    Confirming an already completed transaction is a no-op.
    """
    now = now or utc_now()
    with unit_of_work(db):
        transaction = TransactionRepository(db).find_for_update(txid=txid, external_id=external_id)
        if transaction.status == TransactionStatus.COMPLETED.value:
            return transaction

        transaction.transition_to(TransactionStatus.COMPLETED, now)
        transaction.pix_end_to_end_id = end_to_end_id or generate_end_to_end_id()

        if transaction.type == TransactionType.DEPOSIT.value:
            user = UserRepository(db).get_for_update(transaction.user_id)
            ledger.credit(db, user, transaction.net_amount_cents)
            disburse_commissions(db, user, transaction.net_amount_cents, CommissionKind.DEPOSIT)

    record_pix(transaction.type, TransactionStatus.COMPLETED.value, transaction.amount_cents)
    log_pix_event(
        "confirmed",
        transaction.transaction_id,
        str(transaction.user_id),
        transaction.amount_cents,
        type=transaction.type,
        end_to_end_id=transaction.pix_end_to_end_id,
    )
    return transaction


def _fail(db: Session, transaction: Transaction, reason: str, now: datetime) -> None:
    transaction.transition_to(TransactionStatus.FAILED, now)
    transaction.failure_reason = reason
    if transaction.type == TransactionType.WITHDRAWAL.value:
        # Withdrawals are debited up front; any failure gives the money back
        user = UserRepository(db).get_for_update(transaction.user_id)
        ledger.credit(db, user, transaction.amount_cents)
        transaction.extra = {**(transaction.extra or {}), "reversed_cents": transaction.amount_cents}
    db.flush()


def fail_pix_transaction(
    db: Session,
    txid: Optional[str] = None,
    external_id: Optional[str] = None,
    reason: str = "Payment failed or was cancelled",
    now: Optional[datetime] = None,
) -> Transaction:
    """pending/processing -> failed; withdrawals have their debit reversed"""
    now = now or utc_now()
    with unit_of_work(db):
        transaction = TransactionRepository(db).find_for_update(txid=txid, external_id=external_id)
        if transaction.status == TransactionStatus.FAILED.value:
            return transaction
        _fail(db, transaction, reason, now)

    record_pix(transaction.type, TransactionStatus.FAILED.value)
    log_pix_event(
        "failed",
        transaction.transaction_id,
        str(transaction.user_id),
        transaction.amount_cents,
        type=transaction.type,
        reason=reason,
    )
    return transaction


def cancel_pix_transaction(
    db: Session,
    transaction_id: str,
    user_id: uuid.UUID,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Transaction:
    """User cancellation of a pending PIX transaction"""
    now = now or utc_now()
    with unit_of_work(db):
        transaction = TransactionRepository(db).get_by_public_id(transaction_id, user_id=user_id)
        if transaction.method != PaymentMethod.PIX.value:
            raise InvalidStateTransition(f"Transaction {transaction_id} is not a PIX transaction")
        transaction.transition_to(TransactionStatus.CANCELLED, now)
        transaction.notes = (reason or "Cancelled by user")[:500]
        if transaction.type == TransactionType.WITHDRAWAL.value:
            user = UserRepository(db).get_for_update(transaction.user_id)
            ledger.credit(db, user, transaction.amount_cents)

    record_pix(transaction.type, TransactionStatus.CANCELLED.value)
    return transaction


def run_expiry_sweep(db: Session, now: Optional[datetime] = None) -> int:
    """Expire pending PIX deposits whose payment window has elapsed"""
    now = now or utc_now()
    start_time = time.time()
    expired = failed = 0

    with sweep_duration_histogram.labels(job="pix_expiry").time():
        for transaction in TransactionRepository(db).expired_pix_deposits(now):
            transaction_id = transaction.transaction_id
            try:
                with unit_of_work(db):
                    transaction.transition_to(TransactionStatus.EXPIRED, now)
                    transaction.extra = {
                        **(transaction.extra or {}),
                        "expired_at": now.isoformat(),
                        "reason": "Payment window elapsed",
                    }
                expired += 1
                record_pix(TransactionType.DEPOSIT.value, TransactionStatus.EXPIRED.value)
            except Exception as e:
                failed += 1
                sweep_item_failure_counter.labels(job="pix_expiry").inc()
                logging.error(f"Failed to expire PIX deposit: {e}", extra={"transaction_id": transaction_id})

    log_sweep("pix_expiry", (time.time() - start_time) * 1000, expired=expired, failed=failed)
    return expired


def run_cleanup(db: Session, now: Optional[datetime] = None) -> int:
    """Delete expired transactions older than the retention window"""
    now = now or utc_now()
    cutoff = now - timedelta(days=settings.pix_expired_retention_days)
    with unit_of_work(db):
        deleted = TransactionRepository(db).delete_expired_before(cutoff)
    logging.info("Expired transactions removed", extra={"deleted": deleted, "cutoff": cutoff.isoformat()})
    return deleted


async def run_payment_check(db: Session, provider: PaymentProvider, now: Optional[datetime] = None) -> SweepReport:
    """Ask the provider about recent pending deposits and settle the ones it reports on"""
    now = now or utc_now()
    report = SweepReport()
    start_time = time.time()
    created_after = now - timedelta(hours=settings.pix_payment_lookback_hours)

    for transaction_id in TransactionRepository(db).pending_pix_deposit_ids(created_after):
        try:
            transaction = db.get(Transaction, transaction_id)
            status = await provider.get_payment_status(transaction.external_id)
            if status == ProviderStatus.CONFIRMED:
                confirm_pix_payment(db, external_id=transaction.external_id, now=now)
                report.completed += 1
            elif status == ProviderStatus.FAILED:
                fail_pix_transaction(db, external_id=transaction.external_id, reason="Provider reported failure", now=now)
            report.processed += 1
        except Exception as e:
            report.failed += 1
            sweep_item_failure_counter.labels(job="payment_check").inc()
            logging.error(f"Payment check failed: {e}", extra={"transaction_pk": str(transaction_id)})

    log_sweep(
        "payment_check",
        (time.time() - start_time) * 1000,
        processed=report.processed,
        completed=report.completed,
        failed=report.failed,
    )
    return report


async def run_withdrawal_check(db: Session, provider: PaymentProvider, now: Optional[datetime] = None) -> SweepReport:
    """Finalize or fail processing withdrawals according to the provider"""
    now = now or utc_now()
    report = SweepReport()
    start_time = time.time()

    for transaction_id in TransactionRepository(db).processing_pix_withdrawal_ids():
        try:
            transaction = db.get(Transaction, transaction_id)
            status = await provider.get_transfer_status(transaction.external_id)
            if status == ProviderStatus.CONFIRMED:
                confirm_pix_payment(db, external_id=transaction.external_id, now=now)
                report.completed += 1
            elif status == ProviderStatus.FAILED:
                fail_pix_transaction(db, external_id=transaction.external_id, reason="Transfer failed", now=now)
            report.processed += 1
        except Exception as e:
            report.failed += 1
            sweep_item_failure_counter.labels(job="withdrawal_check").inc()
            logging.error(f"Withdrawal check failed: {e}", extra={"transaction_pk": str(transaction_id)})

    log_sweep(
        "withdrawal_check",
        (time.time() - start_time) * 1000,
        processed=report.processed,
        completed=report.completed,
        failed=report.failed,
    )
    return report
