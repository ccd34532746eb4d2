"""Audit trail of billing changes, scoped per account."""

from sqlalchemy.orm import Session

from src.models.audit_log import AuditLog


class AuditService:
    """Records and reads audit rows for one account's billing changes.

    Rows are only staged on the session; the caller's commit persists them
    together with the audited change, and a rollback discards both.
    """

    @staticmethod
    def log(
        db: Session,
        account_id: int,
        entity_type: str,
        entity_id: int,
        action: str,
        actor_id: int | None = None,
        changes: dict | None = None,
    ) -> AuditLog:
        """Stage an audit row for a billing change.

        Args:
            db: Database session
            account_id: Account the change belongs to
            entity_type: "recurrence_profile", "service_event", "ledger_entry",
                "category" or "account"
            entity_id: Primary key of the entity
            action: What happened ("save", "complete", "bulk_reconcile", ...)
            actor_id: User who requested the change; None for system runs
            changes: JSON snapshot of counts or changed fields

        Returns:
            The staged AuditLog row
        """
        audit = AuditLog(
            account_id=account_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            changes=changes,
        )
        db.add(audit)
        return audit

    @staticmethod
    def history(
        db: Session,
        account_id: int,
        entity_type: str | None = None,
        entity_id: int | None = None,
    ) -> list[AuditLog]:
        """Audit rows of an account, newest first, optionally for one entity."""
        query = db.query(AuditLog).filter(AuditLog.account_id == account_id)
        if entity_type is not None:
            query = query.filter(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            query = query.filter(AuditLog.entity_id == entity_id)
        return query.order_by(AuditLog.id.desc()).all()


__all__ = ["AuditService"]
