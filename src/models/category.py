"""Category ORM model for classifying ledger entries."""

from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class Direction(str, Enum):
    """Money flow direction shared by categories, profiles and entries."""

    INCOME = "income"
    EXPENSE = "expense"


class Category(Base, BaseModel):
    """Financial category of an account.

    Categories are keyed rows; the (account, name, direction) triple is
    unique so name-based provisioning stays idempotent.
    """

    __tablename__ = "categories"

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
        comment="Owning account",
    )
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Display name (e.g., 'Service Revenue', 'Fuel')",
    )
    direction: Mapped[Direction] = mapped_column(
        SQLEnum(Direction),
        nullable=False,
        comment="income or expense",
    )
    color: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="#64748b",
        comment="Display color as hex string",
    )
    is_default: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Created automatically by the engine",
    )

    account: Mapped["Account"] = relationship(  # noqa: F821
        "Account",
        back_populates="categories",
    )

    __table_args__ = (
        UniqueConstraint("account_id", "name", "direction", name="uq_category_account_name_direction"),
        Index("idx_category_account_direction", "account_id", "direction"),
    )

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name={self.name!r}, direction={self.direction})>"


__all__ = ["Category", "Direction"]
