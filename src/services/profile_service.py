"""Profile reconciler: keeps a recurrence profile's future schedule derived from it.

Saving a profile never patches its schedule incrementally. Every pending
entry due after today is deleted and the schedule is regenerated from the
current definition, so an amount or frequency change rewrites all
not-yet-due obligations while paid and past entries stay untouched.

Deletes and inserts are committed in bounded groups (write_batch_size,
default 400). A failure between groups leaves the earlier groups
committed; running save again converges because regeneration is keyed by
(profile, due date).
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterator, Sequence, TypeVar

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.category import Category
from src.models.ledger_entry import EntryStatus, LedgerEntry
from src.models.recurrence_profile import RecurrenceProfile
from src.schemas.billing import RecurrenceProfileIn
from src.services.audit_service import AuditService
from src.services.config import get_settings
from src.services.dates import to_date
from src.services.errors import BillingError, NotFoundError, OperationResult, StoreError, ValidationFailed
from src.services.recurrence import LedgerDraft, generate_drafts, has_month_end_drift

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Split a sequence into consecutive slices of at most size items."""
    for start in range(0, len(items), size):
        yield items[start : start + size]


@dataclass
class ReconcileSummary:
    """Outcome of a profile save or delete."""

    profile_id: int
    deleted: int
    created: int


class ProfileService:
    """Save and delete recurrence profiles and regenerate their schedules."""

    def __init__(self, db_session: Session, batch_size: int | None = None):
        """Initialize with database session.

        Args:
            db_session: SQLAlchemy session
            batch_size: Writes per committed group (defaults to settings)
        """
        self.db = db_session
        settings = get_settings()
        self.batch_size = batch_size or settings.write_batch_size
        self.horizon_months = settings.generation_horizon_months
        self.max_iterations = settings.max_generation_steps

    def get_profile(self, account_id: int, profile_id: int) -> RecurrenceProfile | None:
        """Get an account's profile by ID."""
        return (
            self.db.query(RecurrenceProfile)
            .filter(RecurrenceProfile.account_id == account_id, RecurrenceProfile.id == profile_id)
            .first()
        )

    def list_profiles(self, account_id: int) -> list[RecurrenceProfile]:
        """List an account's profiles ordered by start date."""
        return (
            self.db.query(RecurrenceProfile)
            .filter(RecurrenceProfile.account_id == account_id)
            .order_by(RecurrenceProfile.start_date, RecurrenceProfile.id)
            .all()
        )

    def future_entries(self, profile_id: int, today: date) -> list[LedgerEntry]:
        """Entries of a profile due strictly after today, any status."""
        return (
            self.db.query(LedgerEntry)
            .filter(
                LedgerEntry.recurrence_profile_id == profile_id,
                LedgerEntry.due_date > today,
            )
            .order_by(LedgerEntry.due_date)
            .all()
        )

    def save(
        self,
        account_id: int,
        payload: RecurrenceProfileIn | dict,
        now: datetime,
        actor_id: int | None = None,
    ) -> OperationResult:
        """Create or replace a profile and regenerate its future schedule.

        Args:
            account_id: Owning account
            payload: Profile definition (validated before any write)
            now: Reference time; entries due after its day are regenerated
            actor_id: User performing the change, for the audit trail

        Returns:
            OperationResult with a ReconcileSummary, or a validation /
            not-found / store error
        """
        try:
            data = payload if isinstance(payload, RecurrenceProfileIn) else RecurrenceProfileIn.model_validate(payload)
        except ValidationError as e:
            return OperationResult.from_error(ValidationFailed.from_pydantic(e))

        today = to_date(now)
        try:
            profile = self._upsert_profile(account_id, data)
            deleted = self._delete_future_pending(profile.id, today)
            created = self._insert_schedule(profile, now, today)

            AuditService.log(
                self.db,
                account_id,
                "recurrence_profile",
                profile.id,
                "save",
                actor_id,
                {"deleted": deleted, "created": created, "version": profile.version},
            )
            self.db.commit()
        except BillingError as e:
            self.db.rollback()
            logger.warning("Profile save rejected for account %d: %s", account_id, e.message)
            return OperationResult.from_error(e)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Profile save failed for account %d", account_id)
            return OperationResult.failure("store_error", str(e))

        warnings = []
        if has_month_end_drift(profile):
            warnings.append(
                f"Profile starts on day {profile.start_date.day}; shorter months move "
                f"the due day and later months keep the earlier day"
            )

        logger.info(
            "Saved recurrence profile %d: deleted=%d, created=%d",
            profile.id,
            deleted,
            created,
        )
        return OperationResult.success(ReconcileSummary(profile.id, deleted, created), warnings=warnings)

    def delete(self, account_id: int, profile_id: int, now: datetime, actor_id: int | None = None) -> OperationResult:
        """Delete a profile and its future pending entries.

        Paid and past entries stay; their profile link is cleared.

        Returns:
            OperationResult with a ReconcileSummary, or a not-found / store error
        """
        today = to_date(now)
        try:
            profile = self.get_profile(account_id, profile_id)
            if profile is None:
                raise NotFoundError(f"Recurrence profile {profile_id} not found")

            deleted = self._delete_future_pending(profile_id, today)

            (
                self.db.query(LedgerEntry)
                .filter(LedgerEntry.recurrence_profile_id == profile_id)
                .update({LedgerEntry.recurrence_profile_id: None}, synchronize_session=False)
            )
            self.db.delete(profile)
            AuditService.log(
                self.db, account_id, "recurrence_profile", profile_id, "delete", actor_id, {"deleted": deleted}
            )
            self.db.commit()
        except BillingError as e:
            self.db.rollback()
            return OperationResult.from_error(e)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Profile delete failed for profile %d", profile_id)
            return OperationResult.failure("store_error", str(e))

        logger.info("Deleted recurrence profile %d and %d future entries", profile_id, deleted)
        return OperationResult.success(ReconcileSummary(profile_id, deleted, 0))

    def _upsert_profile(self, account_id: int, data: RecurrenceProfileIn) -> RecurrenceProfile:
        if data.category_id is not None:
            category = (
                self.db.query(Category)
                .filter(Category.account_id == account_id, Category.id == data.category_id)
                .first()
            )
            if category is None:
                raise ValidationFailed("Invalid input", {"category_id": ["unknown category"]})

        if data.id is not None:
            profile = self.get_profile(account_id, data.id)
            if profile is None:
                raise NotFoundError(f"Recurrence profile {data.id} not found")
            if data.version is not None and data.version != profile.version:
                raise StoreError(
                    f"Recurrence profile {data.id} was changed by someone else "
                    f"(version {profile.version}, edit based on {data.version})"
                )
        else:
            profile = RecurrenceProfile(account_id=account_id)
            self.db.add(profile)

        profile.description = data.description
        profile.amount = data.amount
        profile.direction = data.direction
        profile.frequency = data.frequency
        profile.weekdays = data.weekdays or None
        profile.category_id = data.category_id
        profile.start_date = data.start_date
        profile.end_date = data.end_date

        self.db.commit()
        return profile

    def _delete_future_pending(self, profile_id: int, today: date) -> int:
        """Delete pending entries due after today, one committed group per batch."""
        ids = [
            entry_id
            for (entry_id,) in self.db.query(LedgerEntry.id)
            .filter(
                LedgerEntry.recurrence_profile_id == profile_id,
                LedgerEntry.status == EntryStatus.PENDING,
                LedgerEntry.due_date > today,
            )
            .all()
        ]
        for batch in chunked(ids, self.batch_size):
            self.db.query(LedgerEntry).filter(LedgerEntry.id.in_(batch)).delete(synchronize_session=False)
            self.db.commit()
            logger.debug("Deleted %d future entries of profile %d", len(batch), profile_id)
        return len(ids)

    def _insert_schedule(self, profile: RecurrenceProfile, now: datetime, today: date) -> int:
        """Insert drafts due after today, skipping dates still held by a kept entry."""
        occupied = {entry.due_date for entry in self.future_entries(profile.id, today)}
        drafts = [
            draft
            for draft in generate_drafts(profile, now, self.horizon_months, self.max_iterations)
            if draft.due_date > today and draft.due_date not in occupied
        ]
        for batch in chunked(drafts, self.batch_size):
            self.db.add_all([self._entry_from_draft(draft) for draft in batch])
            self.db.commit()
            logger.debug("Inserted %d entries for profile %d", len(batch), profile.id)
        return len(drafts)

    @staticmethod
    def _entry_from_draft(draft: LedgerDraft) -> LedgerEntry:
        return LedgerEntry(
            account_id=draft.account_id,
            description=draft.description,
            amount=draft.amount,
            direction=draft.direction,
            status=draft.status,
            due_date=draft.due_date,
            category_id=draft.category_id,
            origin=draft.origin,
            recurrence_profile_id=draft.recurrence_profile_id,
        )


__all__ = ["ProfileService", "ReconcileSummary", "chunked"]
