"""
Tests for the hash-chained audit trail
"""

import pytest
from decimal import Decimal

from customer_ledger.audit import AuditTrail, AuditEventType
from customer_ledger.storage import InMemoryStorage


class TestAuditTrail:

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def test_log_event(self):
        event = self.audit_trail.log_event(
            AuditEventType.ACCOUNT_CREATED, "account", "acc_1",
            {"initial_balance": Decimal("10.00")}
        )

        assert event.sequence == 1
        assert event.previous_hash == ""
        assert event.verify_hash()
        assert event.metadata == {"initial_balance": "10.00"}

    def test_events_chain(self):
        first = self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "acc_1")
        second = self.audit_trail.log_event(AuditEventType.ACCOUNT_UPDATED, "account", "acc_1")

        assert second.sequence == 2
        assert second.previous_hash == first.current_hash

    def test_events_for_entity(self):
        self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "acc_1")
        self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "acc_2")
        self.audit_trail.log_event(AuditEventType.ACCOUNT_DELETED, "account", "acc_1")

        events = self.audit_trail.get_events_for_entity("account", "acc_1")

        assert [e.event_type for e in events] == [
            AuditEventType.ACCOUNT_CREATED, AuditEventType.ACCOUNT_DELETED
        ]

    def test_verify_integrity(self):
        for i in range(3):
            self.audit_trail.log_event(AuditEventType.BATCH_POSTED, "batch", f"batch_{i}")

        result = self.audit_trail.verify_integrity()

        assert result["valid"]
        assert result["total_events"] == 3

    def test_tampering_detected(self):
        event = self.audit_trail.log_event(
            AuditEventType.TRANSACTION_DELETED, "transaction", "txn_1", {"amount": "5.00"}
        )
        self.audit_trail.log_event(AuditEventType.BATCH_POSTED, "batch", "batch_1")

        data = self.storage.load("audit_events", event.id)
        data["metadata"]["amount"] = "500.00"
        self.storage.save("audit_events", event.id, data)

        result = self.audit_trail.verify_integrity()

        assert not result["valid"]
        assert result["hash_errors"]

    def test_event_rolls_back_with_unit_of_work(self):
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "acc_1")
                raise RuntimeError("boom")

        assert self.audit_trail.count_events() == 0

    def test_disabled_trail(self):
        audit_trail = AuditTrail(self.storage, enabled=False)

        assert audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "acc_1") is None
        assert audit_trail.count_events() == 0
