"""Unit tests for the PIX transaction lifecycle"""

import pytest
from datetime import datetime, timedelta

from furby_gateway.domain.exceptions import (
    ExternalProviderError,
    InsufficientFunds,
    InvalidStateTransition,
    ValidationError,
)
from furby_gateway.domain.models import PixKeyType, ProviderStatus, TransactionStatus, TransactionType
from furby_gateway.infrastructure.database.models import Transaction
from furby_gateway.services.pix import (
    cancel_pix_transaction,
    confirm_pix_payment,
    create_pix_deposit,
    create_pix_withdrawal,
    fail_pix_transaction,
    run_cleanup,
    run_expiry_sweep,
    run_payment_check,
    run_withdrawal_check,
)

NOW = datetime(2025, 3, 10, 15, 0, 0)
PIX_EMAIL = "clara@example.com"


async def test_create_deposit_is_pending_with_payload(db, make_user, sandbox_provider):
    user = make_user("Clara")

    transaction = await create_pix_deposit(db, sandbox_provider, user.id, 20_000, now=NOW)

    assert transaction.status == TransactionStatus.PENDING.value
    assert transaction.type == TransactionType.DEPOSIT.value
    assert transaction.pix_expires_at == NOW + timedelta(minutes=30)
    assert transaction.external_id == f"sandbox_{transaction.pix_txid}"
    assert transaction.pix_payload.startswith("000201")
    assert transaction.pix_qr_image.startswith("data:image/png;base64,")
    db.refresh(user)
    assert user.balance_cents == 0


@pytest.mark.parametrize("amount_cents", [99, 5_000_001])
async def test_deposit_bounds(db, make_user, sandbox_provider, amount_cents):
    user = make_user("Clara")

    with pytest.raises(ValidationError):
        await create_pix_deposit(db, sandbox_provider, user.id, amount_cents, now=NOW)


async def test_deposit_expires_after_window(db, make_user, sandbox_provider):
    """A deposit created at T and never paid is expired by the sweep at T+31min"""
    user = make_user("Clara")
    transaction = await create_pix_deposit(db, sandbox_provider, user.id, 20_000, now=NOW)

    assert run_expiry_sweep(db, now=NOW + timedelta(minutes=29)) == 0
    assert run_expiry_sweep(db, now=NOW + timedelta(minutes=31)) == 1

    db.refresh(transaction)
    assert transaction.status == TransactionStatus.EXPIRED.value
    assert transaction.extra["reason"] == "Payment window elapsed"
    db.refresh(user)
    assert user.balance_cents == 0

    with pytest.raises(InvalidStateTransition):
        confirm_pix_payment(db, txid=transaction.pix_txid)


async def test_deposit_expires_exactly_at_deadline(db, make_user, sandbox_provider):
    user = make_user("Clara")
    transaction = await create_pix_deposit(db, sandbox_provider, user.id, 20_000, now=NOW)

    assert run_expiry_sweep(db, now=transaction.pix_expires_at - timedelta(seconds=1)) == 0
    assert run_expiry_sweep(db, now=transaction.pix_expires_at) == 1


async def test_confirm_deposit_credits_and_pays_referrer(db, make_user, sandbox_provider):
    a = make_user("Alice")
    b = make_user("Bruno", referrer=a)
    c = make_user("Clara", referrer=b)
    transaction = await create_pix_deposit(db, sandbox_provider, c.id, 20_000, now=NOW)

    confirm_pix_payment(db, txid=transaction.pix_txid, end_to_end_id="E123", now=NOW)

    for user in (a, b, c):
        db.refresh(user)
    assert c.balance_cents == 20_000
    assert b.balance_cents == 1_000
    assert a.balance_cents == 0
    assert transaction.status == TransactionStatus.COMPLETED.value
    assert transaction.pix_end_to_end_id == "E123"


async def test_confirm_is_idempotent(db, make_user, sandbox_provider):
    c = make_user("Clara")
    transaction = await create_pix_deposit(db, sandbox_provider, c.id, 20_000, now=NOW)

    confirm_pix_payment(db, txid=transaction.pix_txid, now=NOW)
    confirm_pix_payment(db, txid=transaction.pix_txid, now=NOW)

    db.refresh(c)
    assert c.balance_cents == 20_000


async def test_withdrawal_debits_and_moves_to_processing(db, make_user, sandbox_provider):
    user = make_user("Clara", balance_cents=50_000)

    transaction = await create_pix_withdrawal(
        db, sandbox_provider, user.id, 30_000, PIX_EMAIL, PixKeyType.EMAIL, now=NOW
    )

    db.refresh(user)
    assert user.balance_cents == 20_000
    assert transaction.status == TransactionStatus.PROCESSING.value
    assert transaction.fee_cents == 300
    assert transaction.net_amount_cents == 29_700
    assert transaction.external_id == f"sandbox_tr_{transaction.pix_txid}"


async def test_withdrawal_over_balance_persists_nothing(db, make_user, sandbox_provider):
    """Withdrawing 50.00 with a 30.00 balance fails and leaves no record"""
    user = make_user("Clara", balance_cents=3_000)

    with pytest.raises(InsufficientFunds):
        await create_pix_withdrawal(db, sandbox_provider, user.id, 5_000, PIX_EMAIL, PixKeyType.EMAIL, now=NOW)

    db.refresh(user)
    assert user.balance_cents == 3_000
    assert db.query(Transaction).count() == 0


async def test_withdrawal_rejects_invalid_key(db, make_user, sandbox_provider):
    user = make_user("Clara", balance_cents=50_000)

    with pytest.raises(ValidationError) as exc_info:
        await create_pix_withdrawal(db, sandbox_provider, user.id, 5_000, "nope", PixKeyType.EMAIL, now=NOW)

    assert exc_info.value.field == "pix_key"


async def test_withdrawal_provider_error_reverses_debit(db, make_user, sandbox_provider, monkeypatch):
    user = make_user("Clara", balance_cents=50_000)

    async def broken_transfer(*args, **kwargs):
        raise ExternalProviderError("Asaas error: 500")

    monkeypatch.setattr(sandbox_provider, "create_transfer", broken_transfer)

    with pytest.raises(ExternalProviderError):
        await create_pix_withdrawal(db, sandbox_provider, user.id, 30_000, PIX_EMAIL, PixKeyType.EMAIL, now=NOW)

    db.refresh(user)
    assert user.balance_cents == 50_000
    transaction = db.query(Transaction).one()
    assert transaction.status == TransactionStatus.FAILED.value
    assert "Provider rejected transfer" in transaction.failure_reason


async def test_failed_withdrawal_restores_balance(db, make_user, sandbox_provider):
    user = make_user("Clara", balance_cents=50_000)
    transaction = await create_pix_withdrawal(
        db, sandbox_provider, user.id, 30_000, PIX_EMAIL, PixKeyType.EMAIL, now=NOW
    )

    fail_pix_transaction(db, external_id=transaction.external_id, reason="Bank rejected", now=NOW)

    db.refresh(user)
    assert user.balance_cents == 50_000
    assert transaction.status == TransactionStatus.FAILED.value
    assert transaction.extra["reversed_cents"] == 30_000


async def test_cancel_pending_deposit(db, make_user, sandbox_provider):
    user = make_user("Clara")
    transaction = await create_pix_deposit(db, sandbox_provider, user.id, 20_000, now=NOW)

    cancel_pix_transaction(db, transaction.transaction_id, user.id, reason="Wrong amount", now=NOW)

    assert transaction.status == TransactionStatus.CANCELLED.value
    with pytest.raises(InvalidStateTransition):
        confirm_pix_payment(db, txid=transaction.pix_txid)


async def test_processing_withdrawal_cannot_be_cancelled(db, make_user, sandbox_provider):
    user = make_user("Clara", balance_cents=50_000)
    transaction = await create_pix_withdrawal(
        db, sandbox_provider, user.id, 30_000, PIX_EMAIL, PixKeyType.EMAIL, now=NOW
    )

    with pytest.raises(InvalidStateTransition):
        cancel_pix_transaction(db, transaction.transaction_id, user.id)

    db.refresh(user)
    assert user.balance_cents == 20_000


async def test_withdrawal_cannot_be_cancelled_while_transfer_in_flight(
    db, make_user, sandbox_provider, monkeypatch
):
    user = make_user("Clara", balance_cents=50_000)
    send_transfer = sandbox_provider.create_transfer
    rejected = []

    async def transfer_with_user_cancel(txid, *args, **kwargs):
        pending = db.query(Transaction).filter(Transaction.pix_txid == txid).one()
        try:
            cancel_pix_transaction(db, pending.transaction_id, user.id)
        except InvalidStateTransition as e:
            rejected.append(e)
        return await send_transfer(txid, *args, **kwargs)

    monkeypatch.setattr(sandbox_provider, "create_transfer", transfer_with_user_cancel)

    transaction = await create_pix_withdrawal(
        db, sandbox_provider, user.id, 30_000, PIX_EMAIL, PixKeyType.EMAIL, now=NOW
    )

    assert len(rejected) == 1
    db.refresh(user)
    assert user.balance_cents == 20_000
    assert transaction.status == TransactionStatus.PROCESSING.value
    assert transaction.external_id == f"sandbox_tr_{transaction.pix_txid}"


async def test_payment_check_follows_provider(db, make_user, sandbox_provider):
    user = make_user("Clara")
    paid = await create_pix_deposit(db, sandbox_provider, user.id, 20_000, now=NOW)
    refused = await create_pix_deposit(db, sandbox_provider, user.id, 10_000, now=NOW)
    waiting = await create_pix_deposit(db, sandbox_provider, user.id, 5_000, now=NOW)
    sandbox_provider.set_outcome(paid.external_id, ProviderStatus.CONFIRMED)
    sandbox_provider.set_outcome(refused.external_id, ProviderStatus.FAILED)

    report = await run_payment_check(db, sandbox_provider, now=NOW + timedelta(minutes=5))

    assert report.processed == 3
    assert report.completed == 1
    assert report.failed == 0
    for transaction in (paid, refused, waiting):
        db.refresh(transaction)
    assert paid.status == TransactionStatus.COMPLETED.value
    assert refused.status == TransactionStatus.FAILED.value
    assert waiting.status == TransactionStatus.PENDING.value
    db.refresh(user)
    assert user.balance_cents == 20_000


async def test_payment_check_ignores_deposits_outside_lookback(db, make_user, sandbox_provider):
    user = make_user("Clara")
    old = await create_pix_deposit(db, sandbox_provider, user.id, 20_000, now=NOW - timedelta(days=2))
    sandbox_provider.set_outcome(old.external_id, ProviderStatus.CONFIRMED)

    report = await run_payment_check(db, sandbox_provider, now=NOW)

    assert report.processed == 0


async def test_payment_check_isolates_provider_errors(db, make_user, sandbox_provider, monkeypatch):
    user = make_user("Clara")
    first = await create_pix_deposit(db, sandbox_provider, user.id, 20_000, now=NOW)
    second = await create_pix_deposit(db, sandbox_provider, user.id, 10_000, now=NOW)
    sandbox_provider.set_outcome(second.external_id, ProviderStatus.CONFIRMED)

    real_status = sandbox_provider.get_payment_status

    async def flaky_status(provider_id):
        if provider_id == first.external_id:
            raise ExternalProviderError("Asaas timeout after 10.0s")
        return await real_status(provider_id)

    monkeypatch.setattr(sandbox_provider, "get_payment_status", flaky_status)

    report = await run_payment_check(db, sandbox_provider, now=NOW)

    assert report.failed == 1
    assert report.completed == 1
    db.refresh(user)
    assert user.balance_cents == 10_000


async def test_withdrawal_check_settles_transfers(db, make_user, sandbox_provider):
    user = make_user("Clara", balance_cents=100_000)
    done = await create_pix_withdrawal(db, sandbox_provider, user.id, 30_000, PIX_EMAIL, PixKeyType.EMAIL, now=NOW)
    bounced = await create_pix_withdrawal(
        db, sandbox_provider, user.id, 20_000, PIX_EMAIL, PixKeyType.EMAIL, now=NOW
    )
    sandbox_provider.set_outcome(done.external_id, ProviderStatus.CONFIRMED)
    sandbox_provider.set_outcome(bounced.external_id, ProviderStatus.FAILED)

    report = await run_withdrawal_check(db, sandbox_provider, now=NOW)

    assert report.processed == 2
    db.refresh(done)
    db.refresh(bounced)
    assert done.status == TransactionStatus.COMPLETED.value
    assert bounced.status == TransactionStatus.FAILED.value
    db.refresh(user)
    assert user.balance_cents == 70_000


async def test_cleanup_removes_old_expired_only(db, make_user, sandbox_provider):
    user = make_user("Clara")
    old = await create_pix_deposit(db, sandbox_provider, user.id, 20_000, now=NOW - timedelta(days=10))
    recent = await create_pix_deposit(db, sandbox_provider, user.id, 20_000, now=NOW - timedelta(days=1))
    old_id, recent_id = old.transaction_id, recent.transaction_id
    run_expiry_sweep(db, now=NOW)

    deleted = run_cleanup(db, now=NOW)

    assert deleted == 1
    remaining = {t.transaction_id for t in db.query(Transaction).all()}
    assert remaining == {recent_id}
    assert old_id not in remaining
