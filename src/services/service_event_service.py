"""Service event lifecycle: completing and deleting rentals and operations.

Completing a service is the primary operation; billing it is a side effect.
If the ledger sync fails, the failure is logged and the completion still
succeeds.
"""

import logging
import math
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.ledger_entry import EntryStatus
from src.models.service_event import ServiceEvent, ServiceKind, ServiceStatus
from src.services.audit_service import AuditService
from src.services.billing_sync_service import BillingSyncService, ServiceMeta
from src.services.dates import to_naive_utc
from src.services.errors import OperationResult
from src.services.group_reconciliation_service import GroupReconciliationService, pick_representative

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def compute_rental_total(
    daily_value: Decimal,
    start: datetime,
    end: datetime,
    units: int = 1,
    lump_sum: Decimal | None = None,
) -> Decimal:
    """Realized value of a rental.

    Rental days are the started days between start and end, at least one.
    A lump sum, when agreed, replaces the per-day price.

    Args:
        daily_value: Price per dumpster per day
        start: Rental start
        end: Rental end
        units: Number of dumpsters
        lump_sum: Fixed price for the whole rental

    Returns:
        Total value
    """
    if lump_sum is not None:
        return Decimal(lump_sum)
    seconds = abs((to_naive_utc(end) - to_naive_utc(start)).total_seconds())
    days = max(math.ceil(seconds / SECONDS_PER_DAY), 1)
    return Decimal(daily_value) * days * units


class ServiceEventService:
    """Completes and removes service events and keeps their billing in sync."""

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session
        self.sync = BillingSyncService(db_session)
        self.groups = GroupReconciliationService(db_session)

    def get_event(self, account_id: int, event_id: int) -> ServiceEvent | None:
        """Get an account's service event by ID."""
        return (
            self.db.query(ServiceEvent)
            .filter(ServiceEvent.account_id == account_id, ServiceEvent.id == event_id)
            .first()
        )

    def complete(
        self,
        account_id: int,
        event_id: int,
        now: datetime,
        value: Decimal | None = None,
        status: EntryStatus | None = None,
        actor_id: int | None = None,
    ) -> OperationResult:
        """Mark an active service completed and bill it.

        Args:
            account_id: Owning account
            event_id: Service to complete
            now: Completion time
            value: Realized value; None keeps the stored value
            status: Ledger status to set; applied to a new entry and also
                overwrites the status and payment date of an existing one.
                None keeps an existing entry's status (new entries are pending)
            actor_id: User completing the service

        Returns:
            OperationResult with the completed event id. Billing problems are
            logged and reported as warnings, never as a failure.
        """
        try:
            event = self.get_event(account_id, event_id)
            if event is None:
                return OperationResult.failure("not_found", f"Service {event_id} not found")
            if event.status == ServiceStatus.COMPLETED:
                return OperationResult.failure("already_completed", f"Service {event_id} is already completed")

            event.status = ServiceStatus.COMPLETED
            event.completed_at = now
            if value is not None:
                event.value = value
            AuditService.log(
                self.db,
                account_id,
                "service_event",
                event.id,
                "complete",
                actor_id,
                {"value": str(event.value)},
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to complete service %d", event_id)
            return OperationResult.failure("store_error", str(e))

        logger.info("Completed %s #%d (service %d)", event.kind.value, event.sequence_number, event.id)

        billing = self._bill(account_id, event, status)
        warnings = [] if billing.ok else [f"Billing sync failed: {billing.reason}"]
        if not billing.ok:
            logger.error("Billing sync failed for completed service %d: %s", event_id, billing.reason)
        warnings.extend(billing.warnings)
        return OperationResult.success(event.id, warnings=warnings)

    def delete(self, account_id: int, event_id: int, actor_id: int | None = None) -> OperationResult:
        """Delete a service event and its billing.

        A grouped completed event leaves its month's group. If it carried the
        group's entry, the entry moves to the next representative, so its
        status and payment date survive; the remaining siblings are then
        reconciled again.

        Returns:
            OperationResult with the deleted event id
        """
        try:
            event = self.get_event(account_id, event_id)
            if event is None:
                return OperationResult.failure("not_found", f"Service {event_id} not found")
            parent_id = event.recurrence_parent_id
            completed_at = event.completed_at
            kind = ServiceKind(event.kind)
            remaining = []
            if parent_id and completed_at is not None:
                remaining = [
                    sibling
                    for sibling in self.groups.find_siblings(account_id, parent_id, completed_at, kind)
                    if sibling.id != event_id
                ]
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to load service %d for deletion", event_id)
            return OperationResult.failure("store_error", str(e))

        if remaining:
            successor = pick_representative(remaining)
            billing = self.sync.relink_for_service(account_id, event_id, successor.id)
        else:
            billing = self.sync.delete_for_service(account_id, event_id)
        if not billing.ok:
            return billing

        try:
            self.db.delete(event)
            AuditService.log(self.db, account_id, "service_event", event_id, "delete", actor_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to delete service %d", event_id)
            return OperationResult.failure("store_error", str(e))

        warnings = []
        if remaining:
            regroup = self.groups.reconcile_siblings(account_id, parent_id, remaining)
            if not regroup.ok:
                warnings.append(f"Group re-reconciliation failed: {regroup.reason}")
            warnings.extend(regroup.warnings)

        logger.info("Deleted service %d", event_id)
        return OperationResult.success(event_id, warnings=warnings)

    def _bill(self, account_id: int, event: ServiceEvent, status: EntryStatus | None) -> OperationResult:
        if event.recurrence_parent_id:
            return self.groups.reconcile_group(
                account_id,
                event.recurrence_parent_id,
                event.completed_at,
                ServiceKind(event.kind),
                status=status,
            )
        return self.sync.upsert_for_service(
            account_id,
            event.id,
            event.value,
            ServiceMeta.from_event(event),
            status=status,
        )


__all__ = ["ServiceEventService", "compute_rental_total"]
