"""Integration tests for monthly group reconciliation of standing agreements."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from src.models import LedgerEntry, ServiceKind
from src.services.billing_sync_service import BillingSyncService, ServiceMeta
from src.services.group_reconciliation_service import (
    GroupReconciliationService,
    aggregate_value,
    has_representative_tie,
    pick_representative,
)

pytestmark = pytest.mark.integration

PARENT = "agreement-42"


@pytest.fixture
def groups(db_session) -> GroupReconciliationService:
    return GroupReconciliationService(db_session)


@pytest.fixture
def march_siblings(make_event):
    """Three completed March services of the same agreement: 100 + 150 + 200."""
    return [
        make_event(completed_at=datetime(2025, 3, 5, 10, 0), value="100.00", parent_id=PARENT),
        make_event(completed_at=datetime(2025, 3, 12, 10, 0), value="150.00", parent_id=PARENT),
        make_event(completed_at=datetime(2025, 3, 20, 10, 0), value="200.00", parent_id=PARENT),
    ]


def linked_entries(db_session, events) -> list[LedgerEntry]:
    ids = [e.id for e in events]
    return db_session.query(LedgerEntry).filter(LedgerEntry.service_event_id.in_(ids)).all()


class TestHelpers:
    """Representative choice and aggregation."""

    def test_latest_completion_is_representative(self, march_siblings):
        assert pick_representative(march_siblings) is march_siblings[2]

    def test_tie_goes_to_higher_id(self, make_event):
        same_time = datetime(2025, 3, 9, 14, 0)
        first = make_event(completed_at=same_time, parent_id=PARENT)
        second = make_event(completed_at=same_time, parent_id=PARENT)

        assert pick_representative([second, first]) is second
        assert has_representative_tie([first, second])

    def test_aggregate(self, march_siblings):
        assert aggregate_value(march_siblings) == Decimal("450.00")
        assert not has_representative_tie(march_siblings)


class TestReconcileGroup:
    """One entry per agreement per month."""

    def test_march_siblings_fold_into_one_entry(self, db_session, groups, account, march_siblings):
        result = groups.reconcile_group(account.id, PARENT, date(2025, 3, 1))

        assert result.ok
        summary = result.data
        assert summary.amount == Decimal("450.00")
        assert summary.size == 3
        assert summary.representative_id == march_siblings[2].id

        entries = linked_entries(db_session, march_siblings)
        assert len(entries) == 1
        assert entries[0].amount == Decimal("450.00")
        assert entries[0].service_event_id == march_siblings[2].id
        assert entries[0].due_date == date(2025, 3, 20)
        assert "(grouped, 3 services)" in entries[0].description

    def test_april_sibling_gets_its_own_entry(self, db_session, groups, account, march_siblings, make_event):
        april = make_event(completed_at=datetime(2025, 4, 2, 9, 0), value="300.00", parent_id=PARENT)

        march = groups.reconcile_group(account.id, PARENT, date(2025, 3, 31))
        april_result = groups.reconcile_group(account.id, PARENT, datetime(2025, 4, 15, 12, 0))

        assert march.data.entry_id != april_result.data.entry_id
        assert march.data.amount == Decimal("450.00")
        assert april_result.data.amount == Decimal("300.00")
        assert april_result.data.size == 1
        assert len(linked_entries(db_session, march_siblings + [april])) == 2

    def test_rerun_is_idempotent(self, db_session, groups, account, march_siblings):
        first = groups.reconcile_group(account.id, PARENT, date(2025, 3, 1))
        second = groups.reconcile_group(account.id, PARENT, date(2025, 3, 1))

        assert first.data.entry_id == second.data.entry_id
        assert second.data.amount == Decimal("450.00")
        assert len(linked_entries(db_session, march_siblings)) == 1

    def test_new_sibling_moves_entry_to_new_representative(
        self, db_session, groups, account, march_siblings, make_event
    ):
        """A later completion takes over the existing group entry."""
        first = groups.reconcile_group(account.id, PARENT, date(2025, 3, 1))
        late = make_event(completed_at=datetime(2025, 3, 28, 18, 0), value="50.00", parent_id=PARENT)

        second = groups.reconcile_group(account.id, PARENT, date(2025, 3, 1))

        assert second.data.representative_id == late.id
        assert second.data.entry_id == first.data.entry_id
        (entry,) = linked_entries(db_session, march_siblings + [late])
        assert entry.service_event_id == late.id
        assert entry.amount == Decimal("500.00")

    def test_individually_billed_siblings_are_collapsed(self, db_session, groups, account, march_siblings):
        """Entries billed per service before grouping leave a single entry."""
        sync = BillingSyncService(db_session)
        for event in march_siblings:
            sync.upsert_for_service(account.id, event.id, event.value, ServiceMeta.from_event(event))
        assert len(linked_entries(db_session, march_siblings)) == 3

        result = groups.reconcile_group(account.id, PARENT, date(2025, 3, 1))

        (entry,) = linked_entries(db_session, march_siblings)
        assert entry.id == result.data.entry_id
        assert entry.service_event_id == march_siblings[2].id
        assert entry.amount == Decimal("450.00")

    def test_tie_reported_as_warning(self, groups, account, make_event):
        same_time = datetime(2025, 3, 9, 14, 0)
        make_event(completed_at=same_time, parent_id=PARENT)
        second = make_event(completed_at=same_time, parent_id=PARENT)

        result = groups.reconcile_group(account.id, PARENT, date(2025, 3, 9))

        assert result.data.representative_id == second.id
        assert any("highest id" in warning for warning in result.warnings)

    def test_active_and_other_agreements_excluded(self, groups, account, march_siblings, make_event):
        make_event(completed_at=None, value="999.00", parent_id=PARENT)
        make_event(completed_at=datetime(2025, 3, 6), value="999.00", parent_id="other-agreement")

        result = groups.reconcile_group(account.id, PARENT, date(2025, 3, 1))

        assert result.data.amount == Decimal("450.00")

    def test_kind_filter(self, groups, account, march_siblings, make_event):
        make_event(completed_at=datetime(2025, 3, 7), value="80.00", parent_id=PARENT, kind=ServiceKind.RENTAL)

        operations = groups.reconcile_group(account.id, PARENT, date(2025, 3, 1), kind=ServiceKind.OPERATION)

        assert operations.data.amount == Decimal("450.00")

    def test_empty_month_is_not_found(self, groups, account, march_siblings):
        result = groups.reconcile_group(account.id, PARENT, date(2025, 5, 1))

        assert not result.ok
        assert result.error == "not_found"
