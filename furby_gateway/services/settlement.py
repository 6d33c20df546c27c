"""Settlement sweep: advances active investments, accrues daily returns, completes matured ones"""

import logging
import time
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from furby_gateway.config import settings
from furby_gateway.domain.models import InvestmentStatus, SweepReport
from furby_gateway.domain.settlement import (
    DailyReturnSimulator,
    daily_return_amount,
    should_add_daily_return,
    time_progress,
)
from furby_gateway.infrastructure.database.repositories import InvestmentRepository
from furby_gateway.infrastructure.database.session import unit_of_work
from furby_gateway.infrastructure.observability.logging import log_sweep
from furby_gateway.infrastructure.observability.metrics import sweep_duration_histogram, sweep_item_failure_counter
from furby_gateway.services.investments import apply_daily_return, finalize_investment
from furby_gateway.utils.date_utils import business_date, utc_now


def default_simulator() -> DailyReturnSimulator:
    return DailyReturnSimulator(settings.daily_return_min_pct, settings.daily_return_max_pct)


def run_settlement_sweep(
    db: Session,
    now: Optional[datetime] = None,
    simulator: Optional[DailyReturnSimulator] = None,
) -> SweepReport:
    """
    Walk every active investment once.

    Per investment:
    1. progress = round(clamp(elapsed / duration x 100, 0, 100)), never lowered
    2. strictly inside the window and no return yet today: accrue one
       simulated daily return
    3. at or past 100%: complete and disburse referral commissions

    Each investment is committed on its own; a failure rolls back that
    investment only and the sweep continues. Re-running on the same business
    day adds nothing new.
    """
    now = now or utc_now()
    simulator = simulator or default_simulator()
    report = SweepReport()
    start_time = time.time()
    today = business_date(now, settings.business_timezone)

    with sweep_duration_histogram.labels(job="settlement").time():
        for investment_id in InvestmentRepository(db).list_active_ids():
            accrued = completed = False
            try:
                with unit_of_work(db):
                    investment = InvestmentRepository(db).get_for_update(investment_id)
                    if investment.status != InvestmentStatus.ACTIVE.value:
                        continue

                    elapsed = time_progress(investment.start_date, investment.end_date, now)
                    investment.progress = max(investment.progress or 0, round(elapsed))

                    if should_add_daily_return(elapsed, investment.has_return_on(today)):
                        percentage = simulator.percentage()
                        amount = daily_return_amount(investment.amount_cents, percentage)
                        apply_daily_return(db, investment, amount, round(percentage, 4), now)
                        accrued = True

                    if elapsed >= 100:
                        finalize_investment(db, investment, now)
                        completed = True

                report.processed += 1
                report.daily_returns += int(accrued)
                report.completed += int(completed)

            except Exception as e:
                report.failed += 1
                sweep_item_failure_counter.labels(job="settlement").inc()
                logging.error(
                    f"Settlement failed for investment: {e}",
                    extra={"investment_id": str(investment_id)},
                )

    log_sweep(
        "settlement",
        (time.time() - start_time) * 1000,
        processed=report.processed,
        daily_returns=report.daily_returns,
        completed=report.completed,
        failed=report.failed,
    )
    return report
