"""Service event ORM model for rentals and field operations."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel


class ServiceKind(str, Enum):
    """Kind of billable work."""

    RENTAL = "rental"
    OPERATION = "operation"


class ServiceStatus(str, Enum):
    """Whether the work is still scheduled/in progress or finished."""

    ACTIVE = "active"
    COMPLETED = "completed"


class ServiceEvent(Base, BaseModel):
    """A unit of business work: a dumpster rental or a field operation.

    Active events hold a vehicle for [start_at, end_at) and are what the
    conflict detector checks against. Completed events carry a realized
    value and are billed into the ledger.

    Events created from one standing agreement (e.g. a weekly pickup
    contract) share a recurrence_parent_id; completed siblings within one
    calendar month are billed as a single ledger entry.
    """

    __tablename__ = "service_events"

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
        comment="Owning account",
    )
    kind: Mapped[ServiceKind] = mapped_column(SQLEnum(ServiceKind), nullable=False)
    sequence_number: Mapped[int] = mapped_column(
        nullable=False,
        comment="Sequential display number shown to users",
    )
    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[ServiceStatus] = mapped_column(
        SQLEnum(ServiceStatus),
        nullable=False,
        default=ServiceStatus.ACTIVE,
    )
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )
    value: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Realized monetary value",
    )
    assigned_user_id: Mapped[int | None] = mapped_column(nullable=True)
    vehicle_id: Mapped[int | None] = mapped_column(nullable=True, index=True)
    recurrence_parent_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Standing agreement shared by sibling events",
    )

    __table_args__ = (
        Index("idx_service_parent", "recurrence_parent_id"),
        Index("idx_service_vehicle_status", "vehicle_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<ServiceEvent(id={self.id}, kind={self.kind}, number={self.sequence_number}, "
            f"status={self.status}, value={self.value})>"
        )


__all__ = ["ServiceEvent", "ServiceKind", "ServiceStatus"]
