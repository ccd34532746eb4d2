"""Audit log model for tracking billing lifecycle events."""

from typing import Any

from sqlalchemy import JSON, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel


class AuditLog(Base, BaseModel):
    """Audit log entry for changes made by the billing engine.

    Records, per account, who (actor_id) did what (action) to which entity
    (entity_type, entity_id) and an optional snapshot of counts or fields.
    """

    __tablename__ = "audit_logs"

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        comment="Account the change belongs to",
    )
    """Owning account; every billing change is account scoped."""

    entity_type: Mapped[str] = mapped_column(index=False)
    """Entity type being audited: "recurrence_profile", "ledger_entry", etc."""

    entity_id: Mapped[int] = mapped_column(index=False)
    """Primary key of the entity being audited."""

    action: Mapped[str] = mapped_column(index=False)
    """Action performed: "save", "delete", "reconcile", etc."""

    actor_id: Mapped[int | None] = mapped_column(nullable=True, index=False)
    """User who triggered the action. None for system actions."""

    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True, index=False)
    """Optional JSON snapshot: {"deleted": 12, "created": 26}."""

    __table_args__ = (Index("idx_audit_account_entity", "account_id", "entity_type", "entity_id"),)

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, account_id={self.account_id}, "
            f"entity_type={self.entity_type}, entity_id={self.entity_id}, "
            f"action={self.action}, actor_id={self.actor_id}, created_at={self.created_at})>"
        )


__all__ = ["AuditLog"]
