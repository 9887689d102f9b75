"""
Tests for AuditorService.

The audit trail is best effort: a failed insert rolls back its own
savepoint and never disturbs the caller's work.
"""

from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select

from household_kernel.models.audit_event import AuditAction, AuditEventModel
from household_kernel.models.household import BillModel
from household_kernel.services.auditor_service import AuditorService


class TestRecord:
    def test_event_written(self, session, clock, user_id):
        entity_id = uuid4()
        event_id = AuditorService(session, clock).record(
            user_id,
            AuditAction.BILL_AMOUNT_UPDATED,
            "bill",
            entity_id,
            before={"amount": Decimal("15.99")},
            after={"amount": Decimal("17.99")},
            metadata={"source_suggestion_id": "s-1"},
        )

        assert event_id is not None
        event = session.get(AuditEventModel, event_id)
        assert event.action == "bill_amount_updated"
        assert event.entity_id == str(entity_id)
        assert event.before == {"amount": "15.99"}
        assert event.after == {"amount": "17.99"}
        assert event.metadata_json["recorded_at"] == clock.now_ms()
        assert event.metadata_json["source_suggestion_id"] == "s-1"
        assert event.created_at == clock.now_ms()

    def test_missing_payloads_stored_as_null(self, session, clock, user_id):
        event_id = AuditorService(session, clock).record(
            user_id, AuditAction.ALERT_CREATED, "alert", "a-1"
        )
        event = session.get(AuditEventModel, event_id)
        assert event.before is None
        assert event.after is None


class TestBestEffort:
    def test_failed_write_returns_none(self, session, clock, captured_logs):
        result = AuditorService(session, clock).record(
            None, AuditAction.ALERT_CREATED, "alert", "a-1"
        )
        assert result is None
        assert any(r["message"] == "audit_event_write_failed" for r in captured_logs())

    def test_failed_write_keeps_caller_work(self, session, clock, user_id, make_bill):
        bill = make_bill()
        AuditorService(session, clock).record(None, AuditAction.ALERT_CREATED, "alert", "a-1")

        assert session.get(BillModel, bill.id) is not None
        assert session.execute(select(AuditEventModel)).scalars().all() == []

        AuditorService(session, clock).record(user_id, AuditAction.ALERT_CREATED, "alert", "a-2")
        assert len(session.execute(select(AuditEventModel)).scalars().all()) == 1
