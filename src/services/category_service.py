"""Ledger categories: user management and service revenue provisioning."""

import logging

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.category import Category, Direction
from src.models.ledger_entry import LedgerEntry
from src.models.recurrence_profile import RecurrenceProfile
from src.schemas.billing import CategoryIn, CategoryUpdate
from src.services.audit_service import AuditService
from src.services.config import get_settings
from src.services.errors import BillingError, NotFoundError, OperationResult, ValidationFailed

logger = logging.getLogger(__name__)


class CategoryService:
    """Management and provisioning of ledger categories.

    The service revenue category can be provisioned explicitly as an account
    setup step; the billing sync also calls it lazily so the first completed
    service of a fresh account still gets a category.
    """

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    def find_by_name(self, account_id: int, name: str, direction: Direction) -> Category | None:
        """Get category by its (name, direction) key within an account."""
        return (
            self.db.query(Category)
            .filter(
                Category.account_id == account_id,
                Category.name == name,
                Category.direction == direction,
            )
            .first()
        )

    def get_category(self, account_id: int, category_id: int) -> Category | None:
        """Get an account's category by ID."""
        return (
            self.db.query(Category)
            .filter(Category.account_id == account_id, Category.id == category_id)
            .first()
        )

    def list_categories(self, account_id: int) -> list[Category]:
        """List an account's categories ordered by name."""
        return (
            self.db.query(Category)
            .filter(Category.account_id == account_id)
            .order_by(Category.name)
            .all()
        )

    def ensure_service_revenue_category(self, account_id: int) -> Category:
        """Return the account's service revenue category, creating it if missing.

        Idempotent: the category is looked up by name and direction before
        anything is inserted. The new row is flushed, not committed, so it
        joins the caller's unit of work.

        Raises:
            SQLAlchemyError: On store failure (callers convert it)
        """
        settings = get_settings()
        category = self.find_by_name(account_id, settings.service_category_name, Direction.INCOME)
        if category:
            return category

        category = Category(
            account_id=account_id,
            name=settings.service_category_name,
            direction=Direction.INCOME,
            color=settings.service_category_color,
            is_default=True,
        )
        self.db.add(category)
        self.db.flush()

        logger.info(
            "Provisioned service revenue category: account_id=%d, category_id=%d",
            account_id,
            category.id,
        )
        return category

    def create_category(
        self, account_id: int, payload: CategoryIn | dict, actor_id: int | None = None
    ) -> OperationResult:
        """Add a user-defined category.

        Returns:
            OperationResult with the new category id; a name already used
            for the same direction is a validation error on "name"
        """
        try:
            data = payload if isinstance(payload, CategoryIn) else CategoryIn.model_validate(payload)
        except ValidationError as e:
            return OperationResult.from_error(ValidationFailed.from_pydantic(e))

        try:
            self._check_name_free(account_id, data.name, data.direction)
            category = Category(account_id=account_id, name=data.name, direction=data.direction, color=data.color)
            self.db.add(category)
            self.db.flush()
            AuditService.log(self.db, account_id, "category", category.id, "create", actor_id, {"name": data.name})
            self.db.commit()
        except BillingError as e:
            self.db.rollback()
            return OperationResult.from_error(e)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to create category for account %d", account_id)
            return OperationResult.failure("store_error", str(e))

        logger.info("Created category %d (%s) for account %d", category.id, category.name, account_id)
        return OperationResult.success(category.id)

    def update_category(
        self,
        account_id: int,
        category_id: int,
        payload: CategoryUpdate | dict,
        actor_id: int | None = None,
    ) -> OperationResult:
        """Rename, recolor or move a category to the other direction.

        Returns:
            OperationResult with the category id
        """
        try:
            data = payload if isinstance(payload, CategoryUpdate) else CategoryUpdate.model_validate(payload)
        except ValidationError as e:
            return OperationResult.from_error(ValidationFailed.from_pydantic(e))

        changes = {name: value for name, value in data.model_dump(exclude_unset=True).items() if value is not None}
        try:
            category = self.get_category(account_id, category_id)
            if category is None:
                raise NotFoundError(f"Category {category_id} not found")

            name = changes.get("name", category.name)
            direction = changes.get("direction", category.direction)
            if (name, direction) != (category.name, category.direction):
                self._check_name_free(account_id, name, direction)

            for field, value in changes.items():
                setattr(category, field, value)
            AuditService.log(
                self.db, account_id, "category", category_id, "update", actor_id, {"fields": sorted(changes)}
            )
            self.db.commit()
        except BillingError as e:
            self.db.rollback()
            return OperationResult.from_error(e)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to update category %d", category_id)
            return OperationResult.failure("store_error", str(e))

        return OperationResult.success(category_id)

    def delete_category(self, account_id: int, category_id: int, actor_id: int | None = None) -> OperationResult:
        """Delete a category; entries and profiles using it become uncategorized.

        Deleting the service revenue category is allowed; the next billed
        service provisions it again.

        Returns:
            OperationResult with the number of entries that lost the category
        """
        try:
            category = self.get_category(account_id, category_id)
            if category is None:
                return OperationResult.failure("not_found", f"Category {category_id} not found")

            detached = (
                self.db.query(LedgerEntry)
                .filter(LedgerEntry.account_id == account_id, LedgerEntry.category_id == category_id)
                .update({LedgerEntry.category_id: None}, synchronize_session=False)
            )
            (
                self.db.query(RecurrenceProfile)
                .filter(RecurrenceProfile.account_id == account_id, RecurrenceProfile.category_id == category_id)
                .update({RecurrenceProfile.category_id: None}, synchronize_session=False)
            )
            self.db.delete(category)
            AuditService.log(self.db, account_id, "category", category_id, "delete", actor_id, {"detached": detached})
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to delete category %d", category_id)
            return OperationResult.failure("store_error", str(e))

        logger.info("Deleted category %d; %d ledger entries uncategorized", category_id, detached)
        return OperationResult.success(detached)

    def _check_name_free(self, account_id: int, name: str, direction: Direction) -> None:
        if self.find_by_name(account_id, name, direction) is not None:
            raise ValidationFailed("Invalid input", {"name": [f"a {direction.value} category named {name!r} exists"]})


__all__ = ["CategoryService"]
