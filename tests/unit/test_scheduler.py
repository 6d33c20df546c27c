"""Unit tests for worker job registration"""

from unittest.mock import AsyncMock, MagicMock, patch
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from furby_gateway.infrastructure.clients.payments import SandboxPixProvider
from furby_gateway.jobs import scheduler as worker


def test_build_scheduler_registers_all_jobs():
    scheduler = worker.build_scheduler(SandboxPixProvider(), session_factory=MagicMock())

    jobs = {job.id: job for job in scheduler.get_jobs()}

    assert set(jobs) == {"payment_check", "withdrawal_check", "settlement", "pix_expiry", "cleanup"}
    assert isinstance(jobs["cleanup"].trigger, CronTrigger)
    assert jobs["payment_check"].trigger.interval.total_seconds() == 120
    assert jobs["withdrawal_check"].trigger.interval.total_seconds() == 300
    assert jobs["settlement"].trigger.interval.total_seconds() == 3600
    assert isinstance(jobs["pix_expiry"].trigger, IntervalTrigger)
    assert all(job.max_instances == 1 and job.coalesce for job in jobs.values())


def test_job_closes_session_even_on_failure():
    session = MagicMock()

    with patch.object(worker, "run_settlement_sweep", side_effect=RuntimeError("boom")):
        try:
            worker.settlement_job(lambda: session)
        except RuntimeError:
            pass

    session.close.assert_called_once()


async def test_payment_check_job_uses_fresh_session():
    session = MagicMock()
    provider = SandboxPixProvider()

    with patch.object(worker.pix_service, "run_payment_check", new=AsyncMock()) as run_check:
        await worker.payment_check_job(lambda: session, provider)

    run_check.assert_called_once_with(session, provider)
    session.close.assert_called_once()


def test_main_exits_when_database_unavailable():
    with patch.object(worker, "check_database_connection", side_effect=ConnectionError("refused")), patch.object(
        worker, "setup_logging"
    ), patch.object(worker, "run_forever") as run_forever:
        try:
            worker.main()
        except SystemExit as e:
            assert e.code == 1
        else:
            raise AssertionError("worker started without a database")

    run_forever.assert_not_called()
