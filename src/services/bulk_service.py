"""Bulk processor for "regenerate revenue" requests over many completed services."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.service_event import ServiceEvent, ServiceKind, ServiceStatus
from src.services.audit_service import AuditService
from src.services.billing_sync_service import BillingSyncService, ServiceMeta
from src.services.dates import month_key
from src.services.errors import OperationResult
from src.services.group_reconciliation_service import (
    GroupReconciliationService,
    aggregate_value,
    pick_representative,
)

logger = logging.getLogger(__name__)


class BulkMode(str, Enum):
    """How existing service-linked entries are treated."""

    UPDATE = "update"
    """Upsert in place"""

    DUPLICATE = "duplicate"
    """Always insert new entries (audit re-run)"""


@dataclass
class ServiceRef:
    """A completed service to (re)bill, optionally part of a standing agreement."""

    service_event_id: int
    recurrence_parent_id: str | None = None


@dataclass
class BulkResult:
    """Per-item outcome of a bulk run."""

    processed: int = 0
    succeeded_ids: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return len(self.succeeded_ids)


class BulkProcessor:
    """Partitions completed services into singles and monthly groups and bills them."""

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session
        self.sync = BillingSyncService(db_session)
        self.groups = GroupReconciliationService(db_session)

    def process(
        self,
        account_id: int,
        refs: Iterable[ServiceRef],
        mode: BulkMode = BulkMode.UPDATE,
        actor_id: int | None = None,
    ) -> OperationResult:
        """Bill every referenced completed service.

        Singles are synced one by one. Events sharing a recurrence parent,
        a kind and a completion month are billed once: the latest event is
        the representative and the amount is the sum of the group. In update
        mode the group also takes in every stored sibling of that month, so
        naming part of an agreement never adds a second entry for it. A
        repeated reference is billed once. A failing item is recorded in the
        result and the batch continues.

        Args:
            account_id: Owning account
            refs: Services to bill
            mode: update (upsert) or duplicate (always insert)
            actor_id: User who requested the run, for the audit trail

        Returns:
            OperationResult with a BulkResult; ok=False only when the
            services could not be loaded at all
        """
        mode = BulkMode(mode)
        refs = list(refs)
        result = BulkResult()

        try:
            events = self._load_events(account_id, [ref.service_event_id for ref in refs])
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Bulk reconciliation could not load services for account %d", account_id)
            return OperationResult.failure("store_error", str(e))

        singles: list[ServiceEvent] = []
        groups: dict[tuple[str, ServiceKind, int, int], list[ServiceEvent]] = defaultdict(list)
        seen: set[int] = set()

        for ref in refs:
            if ref.service_event_id in seen:
                logger.debug("Skipping repeated reference to service %d", ref.service_event_id)
                continue
            seen.add(ref.service_event_id)

            event = events.get(ref.service_event_id)
            if event is None:
                result.processed += 1
                result.failed[ref.service_event_id] = "service not found"
                continue
            if event.status != ServiceStatus.COMPLETED or event.completed_at is None:
                result.processed += 1
                result.failed[ref.service_event_id] = "service is not completed"
                continue

            parent_id = ref.recurrence_parent_id or event.recurrence_parent_id
            if parent_id:
                groups[(parent_id, ServiceKind(event.kind), *month_key(event.completed_at))].append(event)
            else:
                singles.append(event)

        duplicate = mode == BulkMode.DUPLICATE
        warnings: list[str] = []

        for event in singles:
            outcome = self.sync.upsert_for_service(
                account_id,
                event.id,
                event.value,
                ServiceMeta.from_event(event),
                duplicate=duplicate,
            )
            self._record(result, [event], outcome)

        for (parent_id, kind, *_), members in groups.items():
            if duplicate:
                representative = pick_representative(members)
                outcome = self.sync.upsert_for_service(
                    account_id,
                    representative.id,
                    aggregate_value(members),
                    ServiceMeta.from_event(representative, group_size=len(members)),
                    duplicate=True,
                )
            else:
                outcome = self._reconcile_month(account_id, parent_id, kind, members)
                warnings.extend(outcome.warnings)
            self._record(result, members, outcome)

        try:
            AuditService.log(
                self.db,
                account_id,
                "account",
                account_id,
                "bulk_reconcile",
                actor_id,
                {"mode": mode.value, "succeeded": result.succeeded, "failed": len(result.failed)},
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to write bulk reconciliation audit for account %d", account_id)

        logger.info(
            "Bulk reconciliation for account %d: processed=%d, succeeded=%d, failed=%d",
            account_id,
            result.processed,
            result.succeeded,
            len(result.failed),
        )
        return OperationResult.success(result, warnings=warnings)

    def _load_events(self, account_id: int, event_ids: list[int]) -> dict[int, ServiceEvent]:
        if not event_ids:
            return {}
        rows = (
            self.db.query(ServiceEvent)
            .filter(ServiceEvent.account_id == account_id, ServiceEvent.id.in_(event_ids))
            .all()
        )
        return {event.id: event for event in rows}

    def _reconcile_month(
        self,
        account_id: int,
        parent_id: str,
        kind: ServiceKind,
        members: list[ServiceEvent],
    ) -> OperationResult:
        """Reconcile the referenced members together with every stored sibling of their month."""
        try:
            stored = self.groups.find_siblings(account_id, parent_id, members[0].completed_at, kind)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to load group %s for bulk reconciliation", parent_id)
            return OperationResult.failure("store_error", str(e))

        siblings = {event.id: event for event in stored}
        siblings.update((event.id, event) for event in members)
        return self.groups.reconcile_siblings(account_id, parent_id, list(siblings.values()))

    @staticmethod
    def _record(result: BulkResult, events: list[ServiceEvent], outcome: OperationResult) -> None:
        for event in events:
            result.processed += 1
            if outcome.ok:
                result.succeeded_ids.append(event.id)
            else:
                result.failed[event.id] = outcome.reason or outcome.error or "unknown error"


__all__ = ["BulkProcessor", "BulkMode", "BulkResult", "ServiceRef"]
