"""School-local wall clock. Receipt numbers and "collected today" both read it."""

from datetime import date, datetime, tzinfo
from zoneinfo import ZoneInfo

from feeledger.core.config import settings


def local_zone() -> tzinfo:
    return ZoneInfo(settings.timezone)


def local_now() -> datetime:
    return datetime.now(local_zone())


def local_today() -> date:
    return local_now().date()


def local_date(ts: datetime) -> date:
    """Calendar day of a stored timestamp. Naive values are already school-local."""
    if ts.tzinfo is None:
        return ts.date()
    return ts.astimezone(local_zone()).date()
