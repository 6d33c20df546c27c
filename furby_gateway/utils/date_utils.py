"""Date manipulation utilities"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def business_date(moment: datetime, tz_name: str) -> date:
    """Calendar date of a naive UTC datetime in the business timezone"""
    return moment.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name)).date()


def add_days(moment: datetime, days: int) -> datetime:
    return moment + timedelta(days=days)
