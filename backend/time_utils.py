import os
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

DEFAULT_STATS_WINDOW_DAYS = 30


def _timezone() -> ZoneInfo:
    name = os.environ.get("APP_TIMEZONE", "UTC")
    return ZoneInfo(name)


def now_tz() -> datetime:
    return datetime.now(_timezone())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def today_tz() -> date:
    return now_tz().date()


def ensure_timezone(dt: datetime) -> datetime:
    tz = _timezone()
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive values; everything is stored as UTC.
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def trailing_window(
    start: Optional[date],
    end: Optional[date],
    today: Optional[date] = None,
    days: int = DEFAULT_STATS_WINDOW_DAYS,
) -> Tuple[date, date]:
    end_date = end or today or today_tz()
    start_date = start or (end_date - timedelta(days=days))
    return start_date, end_date
