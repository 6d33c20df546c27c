"""Background worker: payment checks, settlement, PIX expiry and cleanup

Run with ``python -m furby_gateway.jobs.scheduler``.
"""

import asyncio
import logging
import sys
from typing import Callable
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from furby_gateway.config import settings
from furby_gateway.infrastructure.clients.payments import PaymentProvider, build_payment_provider
from furby_gateway.infrastructure.database.session import SessionLocal, check_database_connection
from furby_gateway.infrastructure.observability.logging import setup_logging
from furby_gateway.services import pix as pix_service
from furby_gateway.services.settlement import run_settlement_sweep

SessionFactory = Callable[[], Session]

_JOB_OPTIONS = {"max_instances": 1, "coalesce": True}


async def payment_check_job(session_factory: SessionFactory, provider: PaymentProvider) -> None:
    db = session_factory()
    try:
        await pix_service.run_payment_check(db, provider)
    finally:
        db.close()


async def withdrawal_check_job(session_factory: SessionFactory, provider: PaymentProvider) -> None:
    db = session_factory()
    try:
        await pix_service.run_withdrawal_check(db, provider)
    finally:
        db.close()


def settlement_job(session_factory: SessionFactory) -> None:
    db = session_factory()
    try:
        run_settlement_sweep(db)
    finally:
        db.close()


def expiry_job(session_factory: SessionFactory) -> None:
    db = session_factory()
    try:
        pix_service.run_expiry_sweep(db)
    finally:
        db.close()


def cleanup_job(session_factory: SessionFactory) -> None:
    db = session_factory()
    try:
        pix_service.run_cleanup(db)
    finally:
        db.close()


def build_scheduler(provider: PaymentProvider, session_factory: SessionFactory = SessionLocal) -> AsyncIOScheduler:
    """
    Register every periodic job on a fresh scheduler.

    A job never overlaps with itself and missed runs collapse into one.
    """
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        payment_check_job,
        IntervalTrigger(minutes=settings.payment_check_interval_minutes),
        args=[session_factory, provider],
        id="payment_check",
        name="PIX deposit payment check",
        **_JOB_OPTIONS,
    )
    scheduler.add_job(
        withdrawal_check_job,
        IntervalTrigger(minutes=settings.withdrawal_check_interval_minutes),
        args=[session_factory, provider],
        id="withdrawal_check",
        name="PIX withdrawal status check",
        **_JOB_OPTIONS,
    )
    scheduler.add_job(
        settlement_job,
        IntervalTrigger(minutes=settings.settlement_interval_minutes),
        args=[session_factory],
        id="settlement",
        name="Investment settlement sweep",
        **_JOB_OPTIONS,
    )
    scheduler.add_job(
        expiry_job,
        IntervalTrigger(minutes=settings.payment_check_interval_minutes),
        args=[session_factory],
        id="pix_expiry",
        name="PIX deposit expiry sweep",
        **_JOB_OPTIONS,
    )
    scheduler.add_job(
        cleanup_job,
        CronTrigger(hour=settings.cleanup_hour, minute=0),
        args=[session_factory],
        id="cleanup",
        name="Expired transaction cleanup",
        **_JOB_OPTIONS,
    )
    return scheduler


async def run_forever() -> None:
    scheduler = build_scheduler(build_payment_provider())
    scheduler.start()
    logging.info("Scheduler started", extra={"jobs": [job.id for job in scheduler.get_jobs()]})
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)


def main() -> None:
    setup_logging(settings.log_level)
    try:
        check_database_connection()
    except Exception as e:
        logging.critical(f"Database unavailable, worker not started: {e}")
        sys.exit(1)

    asyncio.run(run_forever())


if __name__ == "__main__":
    main()
