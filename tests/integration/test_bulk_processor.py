"""Integration tests for bulk revenue regeneration."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from src.models import AuditLog, EntryStatus, LedgerEntry, ServiceKind
from src.services.bulk_service import BulkMode, BulkProcessor, ServiceRef
from src.services.errors import OperationResult
from src.services.group_reconciliation_service import GroupReconciliationService

pytestmark = pytest.mark.integration


@pytest.fixture
def processor(db_session) -> BulkProcessor:
    return BulkProcessor(db_session)


def service_entries(db_session) -> list[LedgerEntry]:
    return db_session.query(LedgerEntry).order_by(LedgerEntry.id).all()


class TestPartition:
    """Singles and monthly groups."""

    def test_singles_and_groups(self, db_session, processor, account, make_event):
        single = make_event(completed_at=datetime(2025, 3, 3), value="80.00")
        g1 = make_event(completed_at=datetime(2025, 3, 5), value="100.00", parent_id="weekly-clean")
        g2 = make_event(completed_at=datetime(2025, 3, 19), value="150.00", parent_id="weekly-clean")
        g3 = make_event(completed_at=datetime(2025, 4, 2), value="200.00", parent_id="weekly-clean")

        result = processor.process(account.id, [ServiceRef(e.id) for e in (single, g1, g2, g3)])

        assert result.ok
        outcome = result.data
        assert outcome.processed == 4
        assert outcome.succeeded == 4
        assert outcome.failed == {}

        entries = service_entries(db_session)
        amounts = {e.service_event_id: e.amount for e in entries}
        assert amounts == {
            single.id: Decimal("80.00"),
            g2.id: Decimal("250.00"),
            g3.id: Decimal("200.00"),
        }

    def test_parent_from_reference(self, db_session, processor, account, make_event):
        """A parent given in the reference groups events stored without one."""
        a = make_event(completed_at=datetime(2025, 3, 5), value="10.00")
        b = make_event(completed_at=datetime(2025, 3, 6), value="20.00")

        processor.process(account.id, [ServiceRef(a.id, "ad-hoc"), ServiceRef(b.id, "ad-hoc")])

        (entry,) = service_entries(db_session)
        assert entry.service_event_id == b.id
        assert entry.amount == Decimal("30.00")

    def test_update_mode_is_idempotent(self, db_session, processor, account, make_event):
        events = [
            make_event(completed_at=datetime(2025, 3, 3), value="80.00"),
            make_event(completed_at=datetime(2025, 3, 5), value="100.00", parent_id="p"),
            make_event(completed_at=datetime(2025, 3, 9), value="100.00", parent_id="p"),
        ]
        refs = [ServiceRef(e.id) for e in events]

        processor.process(account.id, refs)
        processor.process(account.id, refs, BulkMode.UPDATE)

        assert len(service_entries(db_session)) == 2

    def test_duplicate_mode_inserts_again(self, db_session, processor, account, make_event):
        single = make_event(completed_at=datetime(2025, 3, 3), value="80.00")
        grouped = [
            make_event(completed_at=datetime(2025, 3, 5), value="100.00", parent_id="p"),
            make_event(completed_at=datetime(2025, 3, 9), value="100.00", parent_id="p"),
        ]
        refs = [ServiceRef(e.id) for e in [single, *grouped]]

        processor.process(account.id, refs)
        processor.process(account.id, refs, "duplicate")

        assert len(service_entries(db_session)) == 4


class TestAgreementMonth:
    """One entry per agreement, kind and month, whatever the batch names."""

    @pytest.fixture
    def march(self, make_event):
        return [
            make_event(completed_at=datetime(2025, 3, 3), value="100.00", parent_id="weekly-clean"),
            make_event(completed_at=datetime(2025, 3, 10), value="150.00", parent_id="weekly-clean"),
            make_event(completed_at=datetime(2025, 3, 17), value="200.00", parent_id="weekly-clean"),
        ]

    def test_partial_batch_keeps_reconciled_group_whole(self, db_session, processor, account, march):
        GroupReconciliationService(db_session).reconcile_group(account.id, "weekly-clean", date(2025, 3, 1))

        result = processor.process(account.id, [ServiceRef(march[0].id)])

        assert result.data.succeeded_ids == [march[0].id]
        (entry,) = service_entries(db_session)
        assert entry.service_event_id == march[2].id
        assert entry.amount == Decimal("450.00")
        assert "(grouped, 3 services)" in entry.description

    def test_partial_batch_bills_whole_month(self, db_session, processor, account, march):
        processor.process(account.id, [ServiceRef(march[1].id)])

        (entry,) = service_entries(db_session)
        assert entry.service_event_id == march[2].id
        assert entry.amount == Decimal("450.00")

    def test_partial_batch_keeps_paid_status(self, db_session, processor, account, march):
        GroupReconciliationService(db_session).reconcile_group(
            account.id, "weekly-clean", date(2025, 3, 1), status=EntryStatus.PAID
        )

        processor.process(account.id, [ServiceRef(march[0].id)])

        (entry,) = service_entries(db_session)
        assert entry.status == EntryStatus.PAID

    def test_kinds_billed_separately(self, db_session, processor, account, make_event):
        operation = make_event(completed_at=datetime(2025, 3, 3), value="100.00", parent_id="site-42")
        rental = make_event(
            completed_at=datetime(2025, 3, 4), value="60.00", parent_id="site-42", kind=ServiceKind.RENTAL
        )

        processor.process(account.id, [ServiceRef(operation.id), ServiceRef(rental.id)])

        amounts = {e.service_event_id: e.amount for e in service_entries(db_session)}
        assert amounts == {operation.id: Decimal("100.00"), rental.id: Decimal("60.00")}


class TestRepeatedReferences:
    """A service named twice is billed once."""

    def test_repeat_in_group_not_summed_twice(self, db_session, processor, account, make_event):
        a = make_event(completed_at=datetime(2025, 3, 3), value="100.00", parent_id="p")
        b = make_event(completed_at=datetime(2025, 3, 9), value="150.00", parent_id="p")

        outcome = processor.process(account.id, [ServiceRef(a.id), ServiceRef(b.id), ServiceRef(b.id)]).data

        assert outcome.processed == 2
        assert outcome.succeeded_ids == [a.id, b.id]
        (entry,) = service_entries(db_session)
        assert entry.amount == Decimal("250.00")
        assert entry.description.endswith("(grouped, 2 services)")

    def test_repeat_in_duplicate_mode_inserts_once(self, db_session, processor, account, make_event):
        single = make_event(completed_at=datetime(2025, 3, 3), value="80.00")

        processor.process(account.id, [ServiceRef(single.id), ServiceRef(single.id)], BulkMode.DUPLICATE)

        assert len(service_entries(db_session)) == 1

    def test_repeat_of_unknown_reported_once(self, processor, account):
        outcome = processor.process(account.id, [ServiceRef(404), ServiceRef(404)]).data

        assert outcome.processed == 1
        assert outcome.failed == {404: "service not found"}


class TestFailures:
    """Per-item failures do not stop the batch."""

    def test_unknown_and_active_services_reported(self, db_session, processor, account, make_event):
        done = make_event(completed_at=datetime(2025, 3, 3), value="80.00")
        active = make_event(completed_at=None)

        result = processor.process(account.id, [ServiceRef(done.id), ServiceRef(active.id), ServiceRef(9999)])

        outcome = result.data
        assert outcome.processed == 3
        assert outcome.succeeded_ids == [done.id]
        assert outcome.failed == {
            active.id: "service is not completed",
            9999: "service not found",
        }
        assert len(service_entries(db_session)) == 1

    def test_store_failure_marks_item_failed(self, processor, account, make_event, monkeypatch):
        done = make_event(completed_at=datetime(2025, 3, 3), value="80.00")

        monkeypatch.setattr(
            processor.sync,
            "upsert_for_service",
            lambda *args, **kwargs: OperationResult.failure("store_error", "disk full"),
        )

        outcome = processor.process(account.id, [ServiceRef(done.id)]).data

        assert outcome.failed == {done.id: "disk full"}
        assert outcome.succeeded == 0

    def test_empty_batch(self, processor, account):
        outcome = processor.process(account.id, []).data

        assert outcome.processed == 0

    def test_run_is_audited(self, db_session, processor, account, make_event):
        done = make_event(completed_at=datetime(2025, 3, 3), value="80.00")

        processor.process(account.id, [ServiceRef(done.id)])

        audit = db_session.query(AuditLog).filter(AuditLog.action == "bulk_reconcile").one()
        assert audit.entity_id == account.id
        assert audit.account_id == account.id
        assert audit.changes == {"mode": "update", "succeeded": 1, "failed": 0}
