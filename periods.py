from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


_RANGE_MONTHS = {
    "1m": 1,
    "3m": 3,
    "6m": 6,
    "12m": 12,
    "1y": 12,
    "24m": 24,
    "2y": 24,
}


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def add_months(base: date, months: int) -> date:
    """Shift by calendar months, clamping the day to the target month's end."""
    total = base.year * 12 + (base.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    last_day = (next_month - date.resolution).day
    return date(year, month, min(base.day, last_day))


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def resolve_range(
    range_slug: Optional[str],
    *,
    default: str = "6m",
    today: Optional[date] = None,
) -> Period:
    today = today or local_today()
    slug = range_slug if range_slug in _RANGE_MONTHS else default
    start = add_months(today, -_RANGE_MONTHS[slug])
    return Period(slug, start, today)


def trailing_days(days: int, *, today: Optional[date] = None) -> Period:
    today = today or local_today()
    return Period(f"last_{days}d", today - timedelta(days=days), today)
