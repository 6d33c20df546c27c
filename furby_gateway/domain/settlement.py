"""Investment progress and simulated daily return rules"""

import random
from datetime import datetime


def time_progress(start: datetime, end: datetime, now: datetime) -> float:
    """
    Elapsed share of an investment's duration as a percentage.

    Clamped to [0, 100]. A zero-length window counts as finished.
    """
    total = (end - start).total_seconds()
    if total <= 0:
        return 100.0
    elapsed = (now - start).total_seconds()
    return min(max(elapsed / total * 100, 0.0), 100.0)


def should_add_daily_return(progress: float, has_return_today: bool) -> bool:
    """Daily returns accrue only strictly inside the investment window, once per day"""
    return not has_return_today and 0 < progress < 100


def daily_return_amount(principal_cents: int, percentage: float) -> int:
    return int(round(principal_cents * percentage / 100))


class DailyReturnSimulator:
    """
    Placeholder market simulation for daily returns.

    Draws a percentage uniformly in [min_pct, max_pct) of the principal. The
    random source is injected so runs can be reproduced.
    """

    def __init__(self, min_pct: float = 1.0, max_pct: float = 5.0, rng: random.Random | None = None):
        self.min_pct = min_pct
        self.max_pct = max_pct
        self.rng = rng or random.Random()

    def percentage(self) -> float:
        return self.min_pct + self.rng.random() * (self.max_pct - self.min_pct)
