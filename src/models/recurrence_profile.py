"""Recurrence profile ORM model describing a repeating financial obligation."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, Date, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel
from src.models.category import Direction


class Frequency(str, Enum):
    """How often a recurrence profile produces an obligation."""

    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class RecurrenceProfile(Base, BaseModel):
    """Rule for a repeating financial obligation (rent, insurance, fuel card...).

    The future schedule of pending ledger entries is always derived from the
    current row; editing the profile regenerates every not-yet-due entry.

    Weekdays use Python numbering (Monday=0 ... Sunday=6) and only apply to
    the daily frequency.
    """

    __tablename__ = "recurrence_profiles"

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
        comment="Owning account",
    )
    description: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Human description copied onto generated entries",
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Amount of each generated obligation",
    )
    direction: Mapped[Direction] = mapped_column(
        SQLEnum(Direction),
        nullable=False,
    )
    frequency: Mapped[Frequency] = mapped_column(
        SQLEnum(Frequency),
        nullable=False,
    )
    weekdays: Mapped[list[int] | None] = mapped_column(
        JSON,
        nullable=True,
        comment="Optional weekday filter for daily profiles (Monday=0)",
    )
    category_id: Mapped[int | None] = mapped_column(
        ForeignKey("categories.id"),
        nullable=True,
        index=True,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Optimistic concurrency: a stale replace raises StaleDataError on flush
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    account: Mapped["Account"] = relationship(  # noqa: F821
        "Account",
        back_populates="recurrence_profiles",
    )
    category: Mapped["Category | None"] = relationship(  # noqa: F821
        "Category",
        foreign_keys=[category_id],
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (Index("idx_profile_account", "account_id"),)

    def __repr__(self) -> str:
        return (
            f"<RecurrenceProfile(id={self.id}, frequency={self.frequency}, "
            f"amount={self.amount}, start={self.start_date}, end={self.end_date})>"
        )


__all__ = ["RecurrenceProfile", "Frequency"]
