"""Account ORM model for tenant accounts that own the ledger."""

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class Account(Base, BaseModel):
    """Model representing a tenant (business) account.

    Every category, recurrence profile, ledger entry and service event
    belongs to exactly one account. Authentication and membership are
    handled outside this engine; only the identity is stored here.
    """

    __tablename__ = "accounts"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Business name (e.g., 'Acme Dumpsters')",
    )

    # Relationships
    categories: Mapped[list["Category"]] = relationship(  # noqa: F821
        "Category",
        back_populates="account",
        cascade="all, delete-orphan",
    )
    recurrence_profiles: Mapped[list["RecurrenceProfile"]] = relationship(  # noqa: F821
        "RecurrenceProfile",
        back_populates="account",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("idx_account_name", "name"),)

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, name={self.name!r})>"


__all__ = ["Account"]
