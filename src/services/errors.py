"""Error taxonomy and the result shape returned by every billing operation.

Public service methods never raise across their boundary. Internally they
raise BillingError subclasses (or let SQLAlchemyError escape a helper) and
convert them to an OperationResult at the top of the method.
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError


class BillingError(Exception):
    """Base billing engine error."""

    def __init__(self, message: str, code: str = "billing_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationFailed(BillingError):
    """Malformed input rejected before any write."""

    def __init__(self, message: str = "Invalid input", field_errors: dict[str, list[str]] | None = None):
        super().__init__(message, "validation_error")
        self.field_errors = field_errors or {}

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "ValidationFailed":
        """Collect pydantic errors into a {field: [messages]} mapping."""
        field_errors: dict[str, list[str]] = {}
        for err in exc.errors():
            name = ".".join(str(part) for part in err.get("loc", ())) or "__root__"
            field_errors.setdefault(name, []).append(err.get("msg", "invalid value"))
        return cls("Invalid input", field_errors)


class NotFoundError(BillingError):
    """Referenced entity does not exist for the account."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, "not_found")


class StoreError(BillingError):
    """Database I/O failure, constraint violation or stale write."""

    def __init__(self, message: str = "Store operation failed"):
        super().__init__(message, "store_error")


@dataclass
class OperationResult:
    """Discriminated result: ok with data, or error with a reason."""

    ok: bool
    data: Any = None
    error: str | None = None
    reason: str | None = None
    field_errors: dict[str, list[str]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def success(cls, data: Any = None, warnings: list[str] | None = None) -> "OperationResult":
        return cls(ok=True, data=data, warnings=list(warnings or []))

    @classmethod
    def failure(cls, error: str, reason: str, field_errors: dict[str, list[str]] | None = None) -> "OperationResult":
        return cls(ok=False, error=error, reason=reason, field_errors=dict(field_errors or {}))

    @classmethod
    def from_error(cls, exc: BillingError) -> "OperationResult":
        return cls.failure(exc.code, exc.message, getattr(exc, "field_errors", None))


__all__ = [
    "BillingError",
    "ValidationFailed",
    "NotFoundError",
    "StoreError",
    "OperationResult",
]
