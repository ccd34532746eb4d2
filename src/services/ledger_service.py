"""Ledger entries: manual bookkeeping, queries and status changes."""

import logging
from datetime import date, datetime

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.category import Category
from src.models.ledger_entry import EntryOrigin, EntryStatus, LedgerEntry
from src.schemas.billing import LedgerEntryIn, LedgerEntryUpdate
from src.services.audit_service import AuditService
from src.services.dates import month_range, to_date
from src.services.errors import BillingError, NotFoundError, OperationResult, ValidationFailed

logger = logging.getLogger(__name__)


class LedgerService:
    """Read and update ledger entries of an account."""

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    def get_entry(self, account_id: int, entry_id: int) -> LedgerEntry | None:
        """Get an account's ledger entry by ID."""
        return (
            self.db.query(LedgerEntry)
            .filter(LedgerEntry.account_id == account_id, LedgerEntry.id == entry_id)
            .first()
        )

    def list_entries(
        self,
        account_id: int,
        year: int | None = None,
        month: int | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[LedgerEntry]:
        """List entries by due date, newest first.

        An explicit start/end range wins over year/month. Both bounds are
        inclusive.
        """
        query = self.db.query(LedgerEntry).filter(LedgerEntry.account_id == account_id)

        if start is not None and end is not None:
            query = query.filter(LedgerEntry.due_date >= start, LedgerEntry.due_date <= end)
        elif year is not None and month is not None:
            month_start, next_month = month_range(date(year, month, 1))
            query = query.filter(
                LedgerEntry.due_date >= month_start.date(),
                LedgerEntry.due_date < next_month.date(),
            )

        return query.order_by(LedgerEntry.due_date.desc(), LedgerEntry.id.desc()).all()

    def create_entry(
        self,
        account_id: int,
        payload: LedgerEntryIn | dict,
        now: datetime,
        actor_id: int | None = None,
    ) -> OperationResult:
        """Record a manual ledger entry.

        Args:
            account_id: Owning account
            payload: Entry fields (validated before any write)
            now: Reference time; a paid entry without a payment date is paid today
            actor_id: User entering the entry, for the audit trail

        Returns:
            OperationResult with the new entry id, or a validation / store error
        """
        try:
            data = payload if isinstance(payload, LedgerEntryIn) else LedgerEntryIn.model_validate(payload)
        except ValidationError as e:
            return OperationResult.from_error(ValidationFailed.from_pydantic(e))

        try:
            self._check_category(account_id, data.category_id)
            entry = LedgerEntry(
                account_id=account_id,
                description=data.description,
                amount=data.amount,
                direction=data.direction,
                status=data.status,
                due_date=data.due_date,
                payment_date=self._payment_date(data.status, data.payment_date, now),
                category_id=data.category_id,
                origin=EntryOrigin.MANUAL,
                vehicle_id=data.vehicle_id,
                assigned_user_id=data.assigned_user_id,
            )
            self.db.add(entry)
            self.db.flush()
            AuditService.log(
                self.db, account_id, "ledger_entry", entry.id, "create", actor_id, {"amount": str(entry.amount)}
            )
            self.db.commit()
        except BillingError as e:
            self.db.rollback()
            return OperationResult.from_error(e)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to create ledger entry for account %d", account_id)
            return OperationResult.failure("store_error", str(e))

        logger.info("Created ledger entry %d for account %d: amount=%s", entry.id, account_id, entry.amount)
        return OperationResult.success(entry.id)

    def update_entry(
        self,
        account_id: int,
        entry_id: int,
        payload: LedgerEntryUpdate | dict,
        now: datetime,
        actor_id: int | None = None,
    ) -> OperationResult:
        """Change the fields sent in the payload; other fields stay.

        Moving an entry to paid records a payment date (today unless one is
        sent); leaving paid clears it.

        Returns:
            OperationResult with the entry id, or a validation / not-found /
            store error
        """
        try:
            data = payload if isinstance(payload, LedgerEntryUpdate) else LedgerEntryUpdate.model_validate(payload)
        except ValidationError as e:
            return OperationResult.from_error(ValidationFailed.from_pydantic(e))

        changes = data.model_dump(exclude_unset=True)
        try:
            entry = self.get_entry(account_id, entry_id)
            if entry is None:
                raise NotFoundError(f"Ledger entry {entry_id} not found")
            if "category_id" in changes:
                self._check_category(account_id, changes["category_id"])

            for name, value in changes.items():
                if name != "payment_date":
                    setattr(entry, name, value)

            status = EntryStatus(entry.status)
            if status != EntryStatus.PAID and changes.get("payment_date") is not None:
                raise ValidationFailed(
                    "Invalid input", {"payment_date": ["payment_date is only allowed on paid entries"]}
                )
            if "status" in changes or "payment_date" in changes:
                current = entry.payment_date if "payment_date" not in changes else changes["payment_date"]
                entry.payment_date = self._payment_date(status, current, now)

            AuditService.log(
                self.db, account_id, "ledger_entry", entry.id, "update", actor_id, {"fields": sorted(changes)}
            )
            self.db.commit()
        except BillingError as e:
            self.db.rollback()
            return OperationResult.from_error(e)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to update ledger entry %d", entry_id)
            return OperationResult.failure("store_error", str(e))

        logger.info("Updated ledger entry %d: %s", entry_id, ", ".join(sorted(changes)) or "no changes")
        return OperationResult.success(entry_id)

    def delete_entry(self, account_id: int, entry_id: int, actor_id: int | None = None) -> OperationResult:
        """Remove a single ledger entry.

        Returns:
            OperationResult with the deleted entry id
        """
        try:
            entry = self.get_entry(account_id, entry_id)
            if entry is None:
                return OperationResult.failure("not_found", f"Ledger entry {entry_id} not found")
            self.db.delete(entry)
            AuditService.log(self.db, account_id, "ledger_entry", entry_id, "delete", actor_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to delete ledger entry %d", entry_id)
            return OperationResult.failure("store_error", str(e))

        logger.info("Deleted ledger entry %d", entry_id)
        return OperationResult.success(entry_id)

    def _check_category(self, account_id: int, category_id: int | None) -> None:
        if category_id is None:
            return
        exists = (
            self.db.query(Category.id)
            .filter(Category.account_id == account_id, Category.id == category_id)
            .first()
        )
        if exists is None:
            raise ValidationFailed("Invalid input", {"category_id": ["unknown category"]})

    @staticmethod
    def _payment_date(status: EntryStatus, payment_date: date | None, now: datetime) -> date | None:
        if status != EntryStatus.PAID:
            return None
        return payment_date or to_date(now)

    def toggle_status(self, account_id: int, entry_id: int, now: datetime) -> OperationResult:
        """Flip an entry between paid and pending.

        Paying records today as the payment date; reverting clears it.

        Returns:
            OperationResult with the new status
        """
        try:
            entry = self.get_entry(account_id, entry_id)
            if entry is None:
                return OperationResult.failure("not_found", f"Ledger entry {entry_id} not found")

            if entry.status == EntryStatus.PAID:
                entry.status = EntryStatus.PENDING
                entry.payment_date = None
            else:
                entry.status = EntryStatus.PAID
                entry.payment_date = to_date(now)
            new_status = entry.status
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to toggle ledger entry %d", entry_id)
            return OperationResult.failure("store_error", str(e))

        return OperationResult.success(new_status)

    def mark_overdue(self, account_id: int, now: datetime) -> OperationResult:
        """Move pending entries due before today to overdue.

        Returns:
            OperationResult with the number of updated entries
        """
        today = to_date(now)
        try:
            count = (
                self.db.query(LedgerEntry)
                .filter(
                    LedgerEntry.account_id == account_id,
                    LedgerEntry.status == EntryStatus.PENDING,
                    LedgerEntry.due_date < today,
                )
                .update({LedgerEntry.status: EntryStatus.OVERDUE}, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to mark overdue entries for account %d", account_id)
            return OperationResult.failure("store_error", str(e))

        if count:
            logger.info("Marked %d ledger entries overdue for account %d", count, account_id)
        return OperationResult.success(count)


__all__ = ["LedgerService"]
