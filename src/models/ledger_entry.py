"""Ledger entry ORM model for single financial obligations."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel
from src.models.category import Direction


class EntryStatus(str, Enum):
    """Lifecycle status of a ledger entry."""

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class EntryOrigin(str, Enum):
    """Where a ledger entry came from."""

    MANUAL = "manual"
    """Entered by a user or generated from a recurrence profile"""

    SERVICE = "service"
    """Derived from a completed rental or operation"""


class LedgerEntry(Base, BaseModel):
    """A single financial obligation with a due date and a status.

    An entry may be linked to a recurrence profile (generated schedule) or to
    a service event (billing of completed work), never both in practice.

    Generated entries are keyed by (recurrence_profile_id, due_date). The
    service link is unique by convention: the sync service updates in place
    unless an audit duplicate is explicitly requested.
    """

    __tablename__ = "ledger_entries"

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
        comment="Owning account",
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Obligation amount",
    )
    direction: Mapped[Direction] = mapped_column(SQLEnum(Direction), nullable=False)
    status: Mapped[EntryStatus] = mapped_column(
        SQLEnum(EntryStatus),
        nullable=False,
        default=EntryStatus.PENDING,
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    category_id: Mapped[int | None] = mapped_column(
        ForeignKey("categories.id"),
        nullable=True,
        index=True,
    )
    origin: Mapped[EntryOrigin] = mapped_column(
        SQLEnum(EntryOrigin),
        nullable=False,
        default=EntryOrigin.MANUAL,
    )

    # Links
    service_event_id: Mapped[int | None] = mapped_column(
        ForeignKey("service_events.id", ondelete="SET NULL"),
        nullable=True,
        comment="Source service event (representative for grouped billing)",
    )
    recurrence_profile_id: Mapped[int | None] = mapped_column(
        ForeignKey("recurrence_profiles.id", ondelete="SET NULL"),
        nullable=True,
        comment="Recurrence profile that generated this entry",
    )
    assigned_user_id: Mapped[int | None] = mapped_column(
        nullable=True,
        comment="User who performed the service (external reference)",
    )
    vehicle_id: Mapped[int | None] = mapped_column(
        nullable=True,
        comment="Vehicle used for the service (external reference)",
    )

    category: Mapped["Category | None"] = relationship(  # noqa: F821
        "Category",
        foreign_keys=[category_id],
    )

    __table_args__ = (
        UniqueConstraint("recurrence_profile_id", "due_date", name="uq_ledger_profile_due_date"),
        Index("idx_ledger_service_event", "service_event_id"),
        Index("idx_ledger_profile_status", "recurrence_profile_id", "status"),
        Index("idx_ledger_account_due", "account_id", "due_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(id={self.id}, amount={self.amount}, status={self.status}, "
            f"due={self.due_date}, service={self.service_event_id}, "
            f"profile={self.recurrence_profile_id})>"
        )


__all__ = ["LedgerEntry", "EntryStatus", "EntryOrigin"]
