"""Service billing sync: one ledger entry per completed service event.

Completing a rental or operation must leave exactly one income entry linked
to it. Re-syncing the same event updates that entry in place instead of
adding another one, unless the caller explicitly asks for a duplicate (used
for audit re-runs of the bulk processor).

Store failures are caught here, logged and returned as an error result; the
operational flow that triggered the sync is never aborted by billing.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.category import Direction
from src.models.ledger_entry import EntryOrigin, EntryStatus, LedgerEntry
from src.models.service_event import ServiceEvent, ServiceKind
from src.services.category_service import CategoryService
from src.services.dates import to_date
from src.services.errors import OperationResult

logger = logging.getLogger(__name__)

KIND_LABELS = {
    ServiceKind.RENTAL: "Rental",
    ServiceKind.OPERATION: "Operation",
}


@dataclass
class ServiceMeta:
    """Descriptive data copied from a service event onto its ledger entry."""

    kind: ServiceKind
    sequence_number: int
    client_name: str
    completed_at: datetime
    assigned_user_id: int | None = None
    vehicle_id: int | None = None
    group_size: int = 1

    @classmethod
    def from_event(cls, event: ServiceEvent, group_size: int = 1) -> "ServiceMeta":
        return cls(
            kind=ServiceKind(event.kind),
            sequence_number=event.sequence_number,
            client_name=event.client_name,
            completed_at=event.completed_at,
            assigned_user_id=event.assigned_user_id,
            vehicle_id=event.vehicle_id,
            group_size=group_size,
        )

    @property
    def grouped(self) -> bool:
        return self.group_size > 1

    def describe(self) -> str:
        """Ledger description, e.g. 'Revenue Rental #12 - ACME (grouped, 3 services)'."""
        label = KIND_LABELS.get(ServiceKind(self.kind), "Service")
        text = f"Revenue {label} #{self.sequence_number} - {self.client_name}"
        if self.grouped:
            text += f" (grouped, {self.group_size} services)"
        return text


class BillingSyncService:
    """Upserts and removes service-derived ledger entries."""

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session
        self.categories = CategoryService(db_session)

    def find_for_service(self, account_id: int, service_event_id: int) -> list[LedgerEntry]:
        """All entries linked to a service event, oldest first."""
        return (
            self.db.query(LedgerEntry)
            .filter(
                LedgerEntry.account_id == account_id,
                LedgerEntry.service_event_id == service_event_id,
            )
            .order_by(LedgerEntry.id)
            .all()
        )

    def upsert_for_service(
        self,
        account_id: int,
        service_event_id: int,
        amount: Decimal,
        meta: ServiceMeta,
        status: EntryStatus | None = None,
        duplicate: bool = False,
    ) -> OperationResult:
        """Create or update the ledger entry linked to a service event.

        Args:
            account_id: Owning account
            service_event_id: Service link (the representative for groups)
            amount: Amount to bill
            meta: Descriptive data of the service
            status: New status; None keeps an existing entry's status and
                makes new entries pending
            duplicate: Insert a new entry even if one is already linked

        Returns:
            OperationResult with the entry id, or a store error
        """
        try:
            category = self.categories.ensure_service_revenue_category(account_id)
            existing = None if duplicate else next(iter(self.find_for_service(account_id, service_event_id)), None)
            completed_on = to_date(meta.completed_at)

            if existing:
                existing.amount = Decimal(amount)
                existing.description = meta.describe()
                existing.due_date = completed_on
                existing.category_id = category.id
                existing.assigned_user_id = meta.assigned_user_id
                existing.vehicle_id = meta.vehicle_id
                if status is not None:
                    existing.status = status
                    existing.payment_date = completed_on if status == EntryStatus.PAID else None
                entry = existing
                action = "updated"
            else:
                new_status = status or EntryStatus.PENDING
                entry = LedgerEntry(
                    account_id=account_id,
                    description=meta.describe(),
                    amount=Decimal(amount),
                    direction=Direction.INCOME,
                    status=new_status,
                    due_date=completed_on,
                    payment_date=completed_on if new_status == EntryStatus.PAID else None,
                    category_id=category.id,
                    origin=EntryOrigin.SERVICE,
                    service_event_id=service_event_id,
                    assigned_user_id=meta.assigned_user_id,
                    vehicle_id=meta.vehicle_id,
                )
                self.db.add(entry)
                action = "created"

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to sync ledger entry for service %s", service_event_id)
            return OperationResult.failure("store_error", str(e))

        logger.info(
            "Service billing %s: service_id=%d, entry_id=%d, amount=%s",
            action,
            service_event_id,
            entry.id,
            amount,
        )
        return OperationResult.success(entry.id)

    def delete_for_service(self, account_id: int, service_event_id: int) -> OperationResult:
        """Remove every ledger entry linked to a service event.

        All linked rows are removed, so leftovers from an earlier duplicate
        are cleaned up too.

        Returns:
            OperationResult with the number of deleted entries
        """
        try:
            entries = self.find_for_service(account_id, service_event_id)
            for entry in entries:
                self.db.delete(entry)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to delete ledger entries for service %s", service_event_id)
            return OperationResult.failure("store_error", str(e))

        logger.info("Deleted %d ledger entries for service %d", len(entries), service_event_id)
        return OperationResult.success(len(entries))

    def relink_for_service(self, account_id: int, from_event_id: int, to_event_id: int) -> OperationResult:
        """Move the entries linked to one service over to another.

        Status, payment date and amount stay as they are; a later upsert for
        the new service refreshes the amount and description.

        Returns:
            OperationResult with the number of re-linked entries
        """
        try:
            entries = self.find_for_service(account_id, from_event_id)
            for entry in entries:
                entry.service_event_id = to_event_id
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to re-link ledger entries of service %s", from_event_id)
            return OperationResult.failure("store_error", str(e))

        if entries:
            logger.info(
                "Re-linked %d ledger entries from service %d to service %d",
                len(entries),
                from_event_id,
                to_event_id,
            )
        return OperationResult.success(len(entries))

    def update_amount_for_service(self, account_id: int, service_event_id: int, amount: Decimal) -> OperationResult:
        """Correct the amount of the entry linked to a service, if any.

        Returns:
            OperationResult with the entry id, or None when nothing is linked
        """
        try:
            entry = next(iter(self.find_for_service(account_id, service_event_id)), None)
            if entry is None:
                return OperationResult.success(None)
            entry.amount = Decimal(amount)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to update ledger amount for service %s", service_event_id)
            return OperationResult.failure("store_error", str(e))

        return OperationResult.success(entry.id)


__all__ = ["BillingSyncService", "ServiceMeta", "KIND_LABELS"]
