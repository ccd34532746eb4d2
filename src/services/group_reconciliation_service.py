"""Group reconciliation: one ledger entry per standing agreement per month.

Service events created from the same standing agreement share a
recurrence_parent_id. Within one calendar month every completed sibling is
folded into a single income entry linked to the group's representative
(the most recently completed sibling; ties on the completion timestamp go
to the higher event id). The entry amount is the sum of sibling values.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.ledger_entry import EntryStatus, LedgerEntry
from src.models.service_event import ServiceEvent, ServiceKind, ServiceStatus
from src.services.billing_sync_service import BillingSyncService, ServiceMeta
from src.services.dates import month_range
from src.services.errors import OperationResult

logger = logging.getLogger(__name__)


@dataclass
class GroupSummary:
    """What a group reconciliation produced."""

    entry_id: int
    representative_id: int
    amount: Decimal
    size: int


def pick_representative(events: Sequence[ServiceEvent]) -> ServiceEvent:
    """Latest completed event; the higher id wins on identical timestamps."""
    return max(events, key=lambda e: (e.completed_at, e.id))


def aggregate_value(events: Sequence[ServiceEvent]) -> Decimal:
    """Sum of realized values."""
    return sum((Decimal(e.value or 0) for e in events), Decimal("0"))


def has_representative_tie(events: Sequence[ServiceEvent]) -> bool:
    """True if more than one event shares the latest completion timestamp."""
    if len(events) < 2:
        return False
    latest = max(e.completed_at for e in events)
    return sum(1 for e in events if e.completed_at == latest) > 1


class GroupReconciliationService:
    """Folds completed sibling events into a single monthly ledger entry."""

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session
        self.sync = BillingSyncService(db_session)

    def find_siblings(
        self,
        account_id: int,
        parent_id: str,
        reference_date: date | datetime,
        kind: ServiceKind | None = None,
    ) -> list[ServiceEvent]:
        """Completed events of a standing agreement completed in the reference month.

        Args:
            account_id: Owning account
            parent_id: Recurrence parent shared by the siblings
            reference_date: Any date inside the month to reconcile
            kind: Restrict to rentals or operations

        Returns:
            Siblings, latest completion first
        """
        month_start, next_month = month_range(reference_date)
        query = self.db.query(ServiceEvent).filter(
            ServiceEvent.account_id == account_id,
            ServiceEvent.recurrence_parent_id == parent_id,
            ServiceEvent.status == ServiceStatus.COMPLETED,
            ServiceEvent.completed_at >= month_start,
            ServiceEvent.completed_at < next_month,
        )
        if kind is not None:
            query = query.filter(ServiceEvent.kind == kind)
        return query.order_by(ServiceEvent.completed_at.desc(), ServiceEvent.id.desc()).all()

    def collapse_sibling_entries(
        self, account_id: int, representative: ServiceEvent, siblings: Sequence[ServiceEvent]
    ) -> int:
        """Leave at most one entry for the group, linked to the representative.

        Entries billed per sibling before the group formed (or linked to a
        previous representative) are folded away: if the representative has
        no entry yet, the newest sibling entry is re-linked to it, and the
        remaining sibling entries are deleted. Changes are flushed, not
        committed; the following upsert commits them.

        Returns:
            Number of deleted entries
        """
        sibling_ids = [s.id for s in siblings]
        entries = (
            self.db.query(LedgerEntry)
            .filter(
                LedgerEntry.account_id == account_id,
                LedgerEntry.service_event_id.in_(sibling_ids),
            )
            .order_by(LedgerEntry.id)
            .all()
        )
        own = [e for e in entries if e.service_event_id == representative.id]
        others = [e for e in entries if e.service_event_id != representative.id]

        if not own and others:
            relinked = others.pop()
            previous_id = relinked.service_event_id
            relinked.service_event_id = representative.id
            logger.info(
                "Re-linked ledger entry %d from service %d to representative %d",
                relinked.id,
                previous_id,
                representative.id,
            )

        for entry in others:
            self.db.delete(entry)
        self.db.flush()
        return len(others)

    def reconcile_group(
        self,
        account_id: int,
        parent_id: str,
        reference_date: date | datetime,
        kind: ServiceKind | None = None,
        status: EntryStatus | None = None,
    ) -> OperationResult:
        """Rebuild the single ledger entry of a standing agreement for one month.

        Idempotent: re-running with unchanged events yields the same entry
        (same representative, same amount).

        Returns:
            OperationResult with a GroupSummary, or an error when the month
            has no completed siblings or the store fails
        """
        try:
            siblings = self.find_siblings(account_id, parent_id, reference_date, kind)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to load group %s for reconciliation", parent_id)
            return OperationResult.failure("store_error", str(e))

        if not siblings:
            return OperationResult.failure(
                "not_found",
                f"No completed services for agreement {parent_id} in {reference_date:%Y-%m}",
            )
        return self.reconcile_siblings(account_id, parent_id, siblings, status=status)

    def reconcile_siblings(
        self,
        account_id: int,
        parent_id: str,
        siblings: Sequence[ServiceEvent],
        status: EntryStatus | None = None,
    ) -> OperationResult:
        """Fold an already loaded set of completed siblings into one entry.

        Args:
            account_id: Owning account
            parent_id: Agreement the siblings belong to (for messages)
            siblings: Completed events of one agreement month, no repeats
            status: New entry status; None keeps the existing one

        Returns:
            OperationResult with a GroupSummary, or a store error
        """
        representative = pick_representative(siblings)
        total = aggregate_value(siblings)
        month = f"{representative.completed_at:%Y-%m}"

        try:
            self.collapse_sibling_entries(account_id, representative, siblings)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to collapse entries of group %s for %s", parent_id, month)
            return OperationResult.failure("store_error", str(e))

        warnings = []
        if has_representative_tie(siblings):
            warnings.append(
                f"Services of agreement {parent_id} share the latest completion time; "
                f"representative chosen by highest id ({representative.id})"
            )
            logger.warning(warnings[-1])

        result = self.sync.upsert_for_service(
            account_id,
            representative.id,
            total,
            ServiceMeta.from_event(representative, group_size=len(siblings)),
            status=status,
        )
        if not result.ok:
            return result

        logger.info(
            "Reconciled group %s for %s: %d services, amount=%s, representative=%d",
            parent_id,
            month,
            len(siblings),
            total,
            representative.id,
        )
        return OperationResult.success(
            GroupSummary(
                entry_id=result.data,
                representative_id=representative.id,
                amount=total,
                size=len(siblings),
            ),
            warnings=warnings,
        )

__all__ = [
    "GroupReconciliationService",
    "GroupSummary",
    "pick_representative",
    "aggregate_value",
    "has_representative_tie",
]
