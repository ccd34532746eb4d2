"""Billing API endpoints used by the presentation layer.

Every endpoint delegates to a service that returns an OperationResult and
turns error results into HTTP errors. "now" comes from the get_clock
dependency so tests can pin it.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from src.models.ledger_entry import EntryStatus
from src.schemas.billing import (
    BulkReconcilePayload,
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    CompleteServicePayload,
    ConflictCheckPayload,
    ErrorResponse,
    GroupReconcilePayload,
    LedgerEntryIn,
    LedgerEntryOut,
    LedgerEntryUpdate,
    RecurrenceProfileIn,
    RecurrenceProfileOut,
)
from src.services import get_db
from src.services.bulk_service import BulkMode, BulkProcessor, ServiceRef
from src.services.category_service import CategoryService
from src.services.conflict_service import ConflictService
from src.services.errors import OperationResult
from src.services.group_reconciliation_service import GroupReconciliationService
from src.services.ledger_service import LedgerService
from src.services.profile_service import ProfileService
from src.services.service_event_service import ServiceEventService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/billing", tags=["billing"])

ERROR_STATUS = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "store_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_clock() -> datetime:
    """Current time as naive UTC, matching what SQLite hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _unwrap(result: OperationResult):
    """Return result data or raise the matching HTTPException."""
    if result.ok:
        return result.data
    http_status = ERROR_STATUS.get(result.error, status.HTTP_400_BAD_REQUEST)
    body = ErrorResponse(error=result.error or "error", detail=result.reason, field_errors=result.field_errors)
    raise HTTPException(status_code=http_status, detail=body.model_dump())


@router.put("/accounts/{account_id}/profiles")
def save_profile(
    account_id: int,
    payload: RecurrenceProfileIn,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_clock),
) -> dict:
    """Create or replace a recurrence profile and regenerate its schedule."""
    result = ProfileService(db).save(account_id, payload, now)
    summary = _unwrap(result)
    return {
        "profile_id": summary.profile_id,
        "deleted": summary.deleted,
        "created": summary.created,
        "warnings": result.warnings,
    }


@router.get("/accounts/{account_id}/profiles", response_model=list[RecurrenceProfileOut])
def list_profiles(account_id: int, db: Session = Depends(get_db)):
    """List recurrence profiles of an account."""
    return ProfileService(db).list_profiles(account_id)


@router.delete("/accounts/{account_id}/profiles/{profile_id}")
def delete_profile(
    account_id: int,
    profile_id: int,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_clock),
) -> dict:
    """Delete a recurrence profile and its future pending entries."""
    summary = _unwrap(ProfileService(db).delete(account_id, profile_id, now))
    return {"profile_id": summary.profile_id, "deleted": summary.deleted}


@router.post("/accounts/{account_id}/services/{event_id}/complete")
def complete_service(
    account_id: int,
    event_id: int,
    payload: CompleteServicePayload | None = None,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_clock),
) -> dict:
    """Complete a rental or operation; billing runs as a side effect."""
    payload = payload or CompleteServicePayload()
    result = ServiceEventService(db).complete(account_id, event_id, now, payload.value, payload.status)
    return {"service_event_id": _unwrap(result), "warnings": result.warnings}


@router.delete("/accounts/{account_id}/services/{event_id}")
def delete_service(account_id: int, event_id: int, db: Session = Depends(get_db)) -> dict:
    """Delete a service event and its billing."""
    result = ServiceEventService(db).delete(account_id, event_id)
    return {"service_event_id": _unwrap(result), "warnings": result.warnings}


@router.post("/accounts/{account_id}/reconcile")
def bulk_reconcile(account_id: int, payload: BulkReconcilePayload, db: Session = Depends(get_db)) -> dict:
    """Regenerate revenue entries for a batch of completed services."""
    refs = [ServiceRef(item.service_event_id, item.recurrence_parent_id) for item in payload.items]
    result = BulkProcessor(db).process(account_id, refs, BulkMode(payload.mode))
    outcome = _unwrap(result)
    return {
        "processed": outcome.processed,
        "succeeded": outcome.succeeded,
        "succeeded_ids": outcome.succeeded_ids,
        "failed": {str(event_id): reason for event_id, reason in outcome.failed.items()},
        "warnings": result.warnings,
    }


@router.post("/accounts/{account_id}/groups/{parent_id}/reconcile")
def reconcile_group(
    account_id: int,
    parent_id: str,
    payload: GroupReconcilePayload,
    db: Session = Depends(get_db),
) -> dict:
    """Rebuild the monthly entry of a standing agreement."""
    result = GroupReconciliationService(db).reconcile_group(
        account_id, parent_id, payload.reference_date, payload.kind
    )
    summary = _unwrap(result)
    return {
        "entry_id": summary.entry_id,
        "representative_id": summary.representative_id,
        "amount": str(summary.amount),
        "size": summary.size,
        "warnings": result.warnings,
    }


@router.post("/accounts/{account_id}/conflicts")
def check_conflict(account_id: int, payload: ConflictCheckPayload, db: Session = Depends(get_db)) -> dict:
    """Advisory double-booking check for a proposed vehicle booking."""
    outcome = _unwrap(
        ConflictService(db).check(
            account_id,
            payload.vehicle_id,
            payload.start,
            payload.end,
            payload.exclude_event_id,
        )
    )
    return {
        "conflict": outcome.conflict,
        "reason": outcome.reason,
        "conflicting_ids": outcome.conflicting_ids,
    }


@router.get("/accounts/{account_id}/entries", response_model=list[LedgerEntryOut])
def list_entries(
    account_id: int,
    year: int | None = Query(None, ge=2000, le=2100),
    month: int | None = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
):
    """List ledger entries, optionally for one month."""
    return LedgerService(db).list_entries(account_id, year=year, month=month)


@router.post("/accounts/{account_id}/entries", status_code=status.HTTP_201_CREATED)
def create_entry(
    account_id: int,
    payload: LedgerEntryIn,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_clock),
) -> dict:
    """Record a manual ledger entry."""
    return {"entry_id": _unwrap(LedgerService(db).create_entry(account_id, payload, now))}


@router.patch("/accounts/{account_id}/entries/{entry_id}")
def update_entry(
    account_id: int,
    entry_id: int,
    payload: LedgerEntryUpdate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_clock),
) -> dict:
    """Edit the fields sent for a ledger entry."""
    return {"entry_id": _unwrap(LedgerService(db).update_entry(account_id, entry_id, payload, now))}


@router.delete("/accounts/{account_id}/entries/{entry_id}")
def delete_entry(account_id: int, entry_id: int, db: Session = Depends(get_db)) -> dict:
    """Delete a ledger entry."""
    return {"entry_id": _unwrap(LedgerService(db).delete_entry(account_id, entry_id))}


@router.post("/accounts/{account_id}/entries/{entry_id}/toggle")
def toggle_entry(
    account_id: int,
    entry_id: int,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_clock),
) -> dict:
    """Flip a ledger entry between paid and pending."""
    new_status: EntryStatus = _unwrap(LedgerService(db).toggle_status(account_id, entry_id, now))
    return {"entry_id": entry_id, "status": new_status.value}


@router.get("/accounts/{account_id}/categories", response_model=list[CategoryOut])
def list_categories(account_id: int, db: Session = Depends(get_db)):
    """List categories of an account."""
    return CategoryService(db).list_categories(account_id)


@router.post("/accounts/{account_id}/categories", status_code=status.HTTP_201_CREATED)
def create_category(account_id: int, payload: CategoryIn, db: Session = Depends(get_db)) -> dict:
    """Add a category."""
    return {"category_id": _unwrap(CategoryService(db).create_category(account_id, payload))}


@router.patch("/accounts/{account_id}/categories/{category_id}")
def update_category(
    account_id: int,
    category_id: int,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
) -> dict:
    """Rename, recolor or re-direct a category."""
    return {"category_id": _unwrap(CategoryService(db).update_category(account_id, category_id, payload))}


@router.delete("/accounts/{account_id}/categories/{category_id}")
def delete_category(account_id: int, category_id: int, db: Session = Depends(get_db)) -> dict:
    """Delete a category; its entries become uncategorized."""
    detached = _unwrap(CategoryService(db).delete_category(account_id, category_id))
    return {"category_id": category_id, "detached": detached}


__all__ = ["router", "get_clock"]
