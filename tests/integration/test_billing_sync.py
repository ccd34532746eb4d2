"""Integration tests for service billing sync and category provisioning."""

from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from src.models import Category, Direction, EntryOrigin, EntryStatus, LedgerEntry
from src.services.billing_sync_service import BillingSyncService, ServiceMeta
from src.services.category_service import CategoryService

pytestmark = pytest.mark.integration


@pytest.fixture
def sync(db_session) -> BillingSyncService:
    return BillingSyncService(db_session)


@pytest.fixture
def completed(make_event):
    return make_event(completed_at=datetime(2025, 3, 10, 16, 30), value="100.00")


def entries_for(db_session, event_id) -> list[LedgerEntry]:
    return db_session.query(LedgerEntry).filter(LedgerEntry.service_event_id == event_id).all()


class TestServiceMeta:
    """Ledger descriptions."""

    def test_single_description(self, completed):
        meta = ServiceMeta.from_event(completed)

        assert meta.describe() == f"Revenue Operation #{completed.sequence_number} - ACME Construction"
        assert not meta.grouped

    def test_grouped_description(self, completed):
        meta = ServiceMeta.from_event(completed, group_size=3)

        assert meta.describe().endswith("(grouped, 3 services)")


class TestUpsertForService:
    """Exactly one entry per service event."""

    def test_creates_pending_income_entry(self, db_session, sync, account, completed):
        result = sync.upsert_for_service(account.id, completed.id, Decimal("100.00"), ServiceMeta.from_event(completed))

        assert result.ok
        entry = db_session.get(LedgerEntry, result.data)
        assert entry.amount == Decimal("100.00")
        assert entry.direction == Direction.INCOME
        assert entry.status == EntryStatus.PENDING
        assert entry.origin == EntryOrigin.SERVICE
        assert entry.due_date == date(2025, 3, 10)
        assert entry.payment_date is None
        assert entry.vehicle_id == 7
        assert entry.assigned_user_id == 3

    def test_second_sync_updates_in_place(self, db_session, sync, account, completed):
        """100 then 150 leaves one entry of 150."""
        meta = ServiceMeta.from_event(completed)
        first = sync.upsert_for_service(account.id, completed.id, Decimal("100"), meta)
        second = sync.upsert_for_service(account.id, completed.id, Decimal("150"), meta)

        assert first.data == second.data
        entries = entries_for(db_session, completed.id)
        assert len(entries) == 1
        assert entries[0].amount == Decimal("150.00")

    def test_update_keeps_status_when_not_given(self, db_session, sync, account, completed):
        meta = ServiceMeta.from_event(completed)
        sync.upsert_for_service(account.id, completed.id, Decimal("100"), meta, status=EntryStatus.PAID)

        sync.upsert_for_service(account.id, completed.id, Decimal("120"), meta)

        (entry,) = entries_for(db_session, completed.id)
        assert entry.status == EntryStatus.PAID
        assert entry.payment_date == date(2025, 3, 10)

    def test_paid_status_sets_payment_date(self, db_session, sync, account, completed):
        result = sync.upsert_for_service(
            account.id, completed.id, Decimal("100"), ServiceMeta.from_event(completed), status=EntryStatus.PAID
        )

        entry = db_session.get(LedgerEntry, result.data)
        assert entry.status == EntryStatus.PAID
        assert entry.payment_date == date(2025, 3, 10)

    def test_duplicate_mode_always_inserts(self, db_session, sync, account, completed):
        meta = ServiceMeta.from_event(completed)
        sync.upsert_for_service(account.id, completed.id, Decimal("100"), meta)

        sync.upsert_for_service(account.id, completed.id, Decimal("100"), meta, duplicate=True)

        assert len(entries_for(db_session, completed.id)) == 2

    def test_store_failure_is_reported(self, db_session, sync, account, completed, monkeypatch):
        """A failing commit is returned as a store error, not raised."""
        def broken_commit():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(db_session, "commit", broken_commit)

        result = sync.upsert_for_service(account.id, completed.id, Decimal("100"), ServiceMeta.from_event(completed))

        assert not result.ok
        assert result.error == "store_error"


class TestDeleteAndAmount:
    """Removal and amount correction."""

    def test_delete_removes_every_linked_entry(self, db_session, sync, account, completed):
        meta = ServiceMeta.from_event(completed)
        sync.upsert_for_service(account.id, completed.id, Decimal("100"), meta)
        sync.upsert_for_service(account.id, completed.id, Decimal("100"), meta, duplicate=True)

        result = sync.delete_for_service(account.id, completed.id)

        assert result.ok
        assert result.data == 2
        assert entries_for(db_session, completed.id) == []

    def test_delete_without_entries(self, sync, account, completed):
        assert sync.delete_for_service(account.id, completed.id).data == 0

    def test_update_amount(self, db_session, sync, account, completed):
        sync.upsert_for_service(account.id, completed.id, Decimal("100"), ServiceMeta.from_event(completed))

        result = sync.update_amount_for_service(account.id, completed.id, Decimal("175.50"))

        assert result.ok
        (entry,) = entries_for(db_session, completed.id)
        assert entry.amount == Decimal("175.50")

    def test_update_amount_without_entry(self, sync, account, completed):
        result = sync.update_amount_for_service(account.id, completed.id, Decimal("10"))

        assert result.ok
        assert result.data is None


class TestServiceRevenueCategory:
    """Lookup-or-create of the service revenue category."""

    def test_created_once(self, db_session, account):
        service = CategoryService(db_session)

        first = service.ensure_service_revenue_category(account.id)
        second = service.ensure_service_revenue_category(account.id)
        db_session.commit()

        assert first.id == second.id
        assert first.is_default is True
        assert first.color == "#22c55e"
        assert db_session.query(Category).filter(Category.account_id == account.id).count() == 1

    def test_sync_uses_provisioned_category(self, db_session, sync, account, completed):
        category = CategoryService(db_session).ensure_service_revenue_category(account.id)
        db_session.commit()

        result = sync.upsert_for_service(account.id, completed.id, Decimal("100"), ServiceMeta.from_event(completed))

        assert db_session.get(LedgerEntry, result.data).category_id == category.id

    def test_expense_category_with_same_name_is_separate(self, db_session, account):
        db_session.add(Category(account_id=account.id, name="Service Revenue", direction=Direction.EXPENSE))
        db_session.commit()

        income = CategoryService(db_session).ensure_service_revenue_category(account.id)

        assert income.direction == Direction.INCOME
        assert len(CategoryService(db_session).list_categories(account.id)) == 2
