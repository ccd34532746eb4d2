"""Pydantic schemas for recurrence profiles, ledger entries, categories, service billing and conflict checks."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.models.category import Direction
from src.models.ledger_entry import EntryStatus
from src.models.recurrence_profile import Frequency
from src.models.service_event import ServiceKind


class RecurrenceProfileIn(BaseModel):
    """Recurrence profile as submitted by a user (create or full replace)."""

    id: int | None = Field(None, description="Existing profile id; omit to create")
    version: int | None = Field(None, description="Version the edit was based on")
    description: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    direction: Direction
    frequency: Frequency
    weekdays: list[int] | None = Field(
        None, description="Weekday filter for daily profiles, Monday=0 ... Sunday=6"
    )
    category_id: int | None = None
    start_date: date
    end_date: date | None = None

    @field_validator("weekdays")
    @classmethod
    def check_weekdays(cls, value: list[int] | None) -> list[int] | None:
        if value is None:
            return None
        invalid = [day for day in value if day < 0 or day > 6]
        if invalid:
            raise ValueError(f"weekdays must be between 0 (Monday) and 6 (Sunday), got {invalid}")
        return sorted(set(value))

    @model_validator(mode="after")
    def check_dates(self) -> "RecurrenceProfileIn":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class RecurrenceProfileOut(BaseModel):
    """Stored recurrence profile."""

    id: int
    version: int
    description: str
    amount: Decimal
    direction: Direction
    frequency: Frequency
    weekdays: list[int] | None = None
    category_id: int | None = None
    start_date: date
    end_date: date | None = None

    model_config = ConfigDict(from_attributes=True)


class LedgerEntryOut(BaseModel):
    """Ledger entry as returned to the presentation layer."""

    id: int
    description: str
    amount: Decimal
    direction: Direction
    status: EntryStatus
    due_date: date
    payment_date: date | None = None
    category_id: int | None = None
    service_event_id: int | None = None
    recurrence_profile_id: int | None = None

    model_config = ConfigDict(from_attributes=True)


class LedgerEntryIn(BaseModel):
    """Manually entered ledger entry."""

    description: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    direction: Direction = Direction.EXPENSE
    status: EntryStatus = EntryStatus.PENDING
    due_date: date
    payment_date: date | None = Field(None, description="Defaults to today when created as paid")
    category_id: int | None = None
    vehicle_id: int | None = None
    assigned_user_id: int | None = None

    @model_validator(mode="after")
    def check_payment_date(self) -> "LedgerEntryIn":
        if self.payment_date is not None and self.status != EntryStatus.PAID:
            raise ValueError("payment_date is only allowed on paid entries")
        return self


class LedgerEntryUpdate(BaseModel):
    """Partial edit of a ledger entry; only the fields sent are changed."""

    description: str | None = Field(None, min_length=1, max_length=255)
    amount: Decimal | None = Field(None, gt=0, max_digits=10, decimal_places=2)
    direction: Direction | None = None
    status: EntryStatus | None = None
    due_date: date | None = None
    payment_date: date | None = None
    category_id: int | None = None
    vehicle_id: int | None = None
    assigned_user_id: int | None = None

    @model_validator(mode="after")
    def check_required_fields(self) -> "LedgerEntryUpdate":
        for name in ("description", "amount", "direction", "status", "due_date"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self


class CategoryIn(BaseModel):
    """New ledger category."""

    name: str = Field(..., min_length=1, max_length=100)
    direction: Direction
    color: str = Field("#64748b", pattern=r"^#[0-9a-fA-F]{6}$")


class CategoryUpdate(BaseModel):
    """Partial edit of a category."""

    name: str | None = Field(None, min_length=1, max_length=100)
    direction: Direction | None = None
    color: str | None = Field(None, pattern=r"^#[0-9a-fA-F]{6}$")


class CategoryOut(BaseModel):
    """Stored category."""

    id: int
    name: str
    direction: Direction
    color: str
    is_default: bool

    model_config = ConfigDict(from_attributes=True)


class CompleteServicePayload(BaseModel):
    """Request payload for completing a rental or operation."""

    value: Decimal | None = Field(None, ge=0, description="Realized value; defaults to the stored value")
    status: EntryStatus | None = Field(None, description="Initial ledger status (pending or paid)")


class ServiceRefIn(BaseModel):
    """Reference to a completed service in a bulk request."""

    service_event_id: int
    recurrence_parent_id: str | None = None


class BulkReconcilePayload(BaseModel):
    """Request payload for bulk revenue regeneration."""

    items: list[ServiceRefIn] = Field(..., min_length=1)
    mode: str = Field("update", pattern="^(update|duplicate)$")


class GroupReconcilePayload(BaseModel):
    """Request payload for reconciling one standing agreement for one month."""

    reference_date: date
    kind: ServiceKind | None = None


class ConflictCheckPayload(BaseModel):
    """Proposed vehicle booking."""

    vehicle_id: int
    start: datetime
    end: datetime
    exclude_event_id: int | None = None


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: str | None = None
    field_errors: dict[str, list[str]] = Field(default_factory=dict)


__all__ = [
    "RecurrenceProfileIn",
    "RecurrenceProfileOut",
    "LedgerEntryOut",
    "LedgerEntryIn",
    "LedgerEntryUpdate",
    "CategoryIn",
    "CategoryUpdate",
    "CategoryOut",
    "CompleteServicePayload",
    "ServiceRefIn",
    "BulkReconcilePayload",
    "GroupReconcilePayload",
    "ConflictCheckPayload",
    "ErrorResponse",
]
