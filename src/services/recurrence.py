"""Recurrence generator: projects a recurrence profile into ledger entry drafts.

The generator is pure. It reads nothing but its arguments, so calling it
twice with the same profile and the same "now" yields the same drafts.
Output is bounded by a calendar horizon (default 6 months ahead) and an
iteration cap (default 365 steps) to keep every write batch small.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterator

from dateutil.relativedelta import relativedelta

from src.models.category import Direction
from src.models.ledger_entry import EntryOrigin, EntryStatus
from src.models.recurrence_profile import Frequency
from src.services.dates import to_date

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_MONTHS = 6
DEFAULT_MAX_ITERATIONS = 365

_STEPS = {
    Frequency.DAILY: timedelta(days=1),
    Frequency.WEEKLY: timedelta(weeks=1),
    Frequency.BIWEEKLY: timedelta(weeks=2),
    Frequency.MONTHLY: relativedelta(months=1),
}


@dataclass(frozen=True)
class LedgerDraft:
    """Unsaved ledger entry produced by the generator."""

    account_id: int
    recurrence_profile_id: int | None
    description: str
    amount: Decimal
    direction: Direction
    due_date: date
    category_id: int | None = None
    status: EntryStatus = EntryStatus.PENDING
    origin: EntryOrigin = EntryOrigin.MANUAL


def next_occurrence(current: date, frequency: Frequency) -> date:
    """Advance a cursor by one step of the given frequency.

    Monthly steps use relativedelta, which clamps to the last day of a
    shorter month (Jan 31 -> Feb 28). The clamped day is then carried
    forward (Feb 28 -> Mar 28): month-end drift is not corrected.
    """
    return current + _STEPS[Frequency(frequency)]


def has_month_end_drift(profile) -> bool:
    """True if a monthly profile starts on a day some months do not have."""
    return Frequency(profile.frequency) == Frequency.MONTHLY and to_date(profile.start_date).day > 28


def generate_drafts(
    profile,
    now: datetime | date,
    horizon_months: int = DEFAULT_HORIZON_MONTHS,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> Iterator[LedgerDraft]:
    """Yield one draft per occurrence of a profile within the horizon.

    Args:
        profile: RecurrenceProfile (or any object with the same attributes)
        now: Reference time; the horizon is counted from its calendar day
        horizon_months: Calendar months ahead of now to project
        max_iterations: Hard cap on loop steps, emitted or not

    Yields:
        LedgerDraft objects in due-date order, all with status pending
    """
    frequency = Frequency(profile.frequency)
    weekdays = set(profile.weekdays or [])
    current = to_date(profile.start_date)
    limit = to_date(now) + relativedelta(months=horizon_months)
    end = to_date(profile.end_date) if profile.end_date else limit

    if current > end:
        return

    iterations = 0
    while current <= end and current <= limit and iterations < max_iterations:
        iterations += 1

        if frequency != Frequency.DAILY or not weekdays or current.weekday() in weekdays:
            yield LedgerDraft(
                account_id=profile.account_id,
                recurrence_profile_id=profile.id,
                description=profile.description,
                amount=Decimal(profile.amount),
                direction=Direction(profile.direction),
                due_date=current,
                category_id=profile.category_id,
            )

        current = next_occurrence(current, frequency)

    if iterations >= max_iterations and current <= min(end, limit):
        logger.warning(
            "Recurrence profile %s hit the %d step cap before reaching %s",
            profile.id,
            max_iterations,
            min(end, limit),
        )


__all__ = [
    "LedgerDraft",
    "generate_drafts",
    "next_occurrence",
    "has_month_end_drift",
    "DEFAULT_HORIZON_MONTHS",
    "DEFAULT_MAX_ITERATIONS",
]
