"""Vehicle double-booking detection.

Two half-open intervals [s, e) and [ns, ne) overlap iff ns < e and ne > s,
so back-to-back jobs sharing a boundary are not a conflict. The check is
advisory: it flags the condition and never blocks a write. Nothing is
cached; callers re-run it whenever the vehicle, start or end changes.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.service_event import ServiceEvent, ServiceStatus
from src.services.dates import to_naive_utc
from src.services.errors import OperationResult

logger = logging.getLogger(__name__)

CONFLICT_REASON = "Vehicle {vehicle_id} already has a job scheduled between {start} and {end}."


@dataclass(frozen=True)
class Assignment:
    """A vehicle booked for an interval."""

    id: int
    vehicle_id: int
    start: datetime
    end: datetime
    completed: bool = False


@dataclass
class ConflictResult:
    """Outcome of a conflict check."""

    conflict: bool
    reason: str | None = None
    conflicting_ids: list[int] = field(default_factory=list)


def intervals_overlap(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """Half-open interval overlap test."""
    return start < other_end and end > other_start


def detect_conflict(
    start: datetime,
    end: datetime,
    vehicle_id: int,
    assignments: Iterable[Assignment],
) -> ConflictResult:
    """Check a proposed [start, end) on a vehicle against known assignments.

    Completed assignments and assignments of other vehicles are ignored.
    """
    start, end = to_naive_utc(start), to_naive_utc(end)
    clashes = [
        a
        for a in assignments
        if a.vehicle_id == vehicle_id
        and not a.completed
        and intervals_overlap(start, end, to_naive_utc(a.start), to_naive_utc(a.end))
    ]
    if not clashes:
        return ConflictResult(conflict=False)

    first = min(clashes, key=lambda a: a.start)
    reason = CONFLICT_REASON.format(
        vehicle_id=vehicle_id,
        start=first.start.strftime("%Y-%m-%d %H:%M"),
        end=first.end.strftime("%Y-%m-%d %H:%M"),
    )
    return ConflictResult(conflict=True, reason=reason, conflicting_ids=[a.id for a in clashes])


class ConflictService:
    """Loads a vehicle's bookings from the store and runs the detector."""

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    def load_assignments(
        self, account_id: int, vehicle_id: int, exclude_event_id: int | None = None
    ) -> list[Assignment]:
        """Active service events holding the vehicle, as assignments."""
        query = self.db.query(ServiceEvent).filter(
            ServiceEvent.account_id == account_id,
            ServiceEvent.vehicle_id == vehicle_id,
            ServiceEvent.status == ServiceStatus.ACTIVE,
        )
        if exclude_event_id is not None:
            query = query.filter(ServiceEvent.id != exclude_event_id)

        return [
            Assignment(
                id=event.id,
                vehicle_id=event.vehicle_id,
                start=event.start_at,
                end=event.end_at,
                completed=event.status == ServiceStatus.COMPLETED,
            )
            for event in query.all()
        ]

    def check(
        self,
        account_id: int,
        vehicle_id: int,
        start: datetime,
        end: datetime,
        exclude_event_id: int | None = None,
    ) -> OperationResult:
        """Check a proposed booking.

        Args:
            account_id: Owning account
            vehicle_id: Vehicle to book
            start: Proposed start (inclusive)
            end: Proposed end (exclusive)
            exclude_event_id: Event being edited, so it does not clash with itself

        Returns:
            OperationResult with a ConflictResult, or a validation error when
            end is not after start
        """
        if to_naive_utc(end) <= to_naive_utc(start):
            return OperationResult.failure(
                "validation_error",
                "End must be after start",
                {"end": ["must be after start"]},
            )

        try:
            assignments = self.load_assignments(account_id, vehicle_id, exclude_event_id)
        except SQLAlchemyError as e:
            logger.exception("Failed to load assignments for vehicle %s", vehicle_id)
            return OperationResult.failure("store_error", str(e))

        result = detect_conflict(start, end, vehicle_id, assignments)
        if result.conflict:
            logger.info(
                "Schedule conflict for vehicle %s: %s overlaps events %s",
                vehicle_id,
                start,
                result.conflicting_ids,
            )
        return OperationResult.success(result)


__all__ = [
    "Assignment",
    "ConflictResult",
    "ConflictService",
    "detect_conflict",
    "intervals_overlap",
]
