"""Date helpers shared by generation, grouping and conflict checks."""

from datetime import date, datetime, time, timezone

from dateutil.relativedelta import relativedelta


def to_date(value: date | datetime) -> date:
    """Truncate a datetime to its calendar day (dates pass through)."""
    if isinstance(value, datetime):
        return value.date()
    return value


def to_naive_utc(value: datetime) -> datetime:
    """Drop tzinfo after converting to UTC.

    SQLite returns naive datetimes for DateTime(timezone=True) columns, so
    everything compared against stored values is normalized to naive UTC.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def month_range(reference: date | datetime) -> tuple[datetime, datetime]:
    """Return the half-open [first instant, first instant of next month) of a month."""
    day = to_date(reference)
    start = datetime.combine(day.replace(day=1), time.min)
    return start, start + relativedelta(months=1)


def month_key(reference: date | datetime) -> tuple[int, int]:
    """(year, month) bucket of a date."""
    day = to_date(reference)
    return day.year, day.month


__all__ = ["to_date", "to_naive_utc", "month_range", "month_key"]
