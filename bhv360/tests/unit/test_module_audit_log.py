"""
Unit tests for the module audit log.

Tests cover:
- Entry fields and actor rendering
- Ring-buffer trimming to capacity (oldest evicted first)
- Newest-first reads, with and without a customer filter
- Mirroring to the bhv360.audit logger
"""

import logging
from datetime import timedelta

import pytest

from bhv360.entitlements.audit import ModuleAuditLogger
from bhv360.entitlements.models import Actor, AuditAction
from bhv360.repositories.module_state_repo import AuditLogRepository

from conftest import CLOCK_START, TickingClock


@pytest.fixture
def small_audit(store):
    """Audit logger with a capacity of 3 and a one-minute ticking clock."""
    return ModuleAuditLogger(
        AuditLogRepository(store),
        capacity=3,
        clock=TickingClock(step=timedelta(minutes=1)),
    )


class TestLogModuleChange:
    """Tests for appending entries."""

    def test_entry_fields(self, audit):
        entry = audit.log_module_change(
            "cust-1", "rapportages", AuditAction.ENABLED, Actor.approval("admin-7"),
            details={"request_id": "r-1"},
        )

        assert entry.customer_id == "cust-1"
        assert entry.module_id == "rapportages"
        assert entry.action == AuditAction.ENABLED
        assert entry.performed_by == "approved_by_admin-7"
        assert entry.timestamp == CLOCK_START
        assert entry.details == {"request_id": "r-1"}
        assert entry.id

    def test_accepts_string_action_and_actor(self, audit):
        entry = audit.log_module_change("cust-1", "plotkaart", "disabled", "user-5")

        assert entry.action == AuditAction.DISABLED
        assert entry.performed_by == "user-5"

    def test_unknown_action_rejected(self, audit):
        with pytest.raises(ValueError):
            audit.log_module_change("cust-1", "plotkaart", "deleted", "user-5")

    def test_entries_are_persisted(self, audit, store):
        audit.log_module_change("cust-1", "plotkaart", "enabled", Actor.system())

        assert len(AuditLogRepository(store).load()) == 1

    def test_mirrored_to_audit_logger(self, audit, caplog):
        with caplog.at_level(logging.INFO, logger="bhv360.audit"):
            audit.log_module_change("cust-1", "plotkaart", "configured", "user-5")

        assert "module.configured" in caplog.text

    def test_capacity_must_be_positive(self, store):
        with pytest.raises(ValueError):
            ModuleAuditLogger(AuditLogRepository(store), capacity=0)


class TestCapacity:
    """Tests for the ring-buffer bound."""

    def test_oldest_entries_evicted(self, small_audit):
        for module_id in ["a", "b", "c", "d", "e"]:
            small_audit.log_module_change("cust-1", module_id, "enabled", "user-1")

        logs = small_audit.get_audit_logs()

        assert len(logs) == 3
        assert [e.module_id for e in logs] == ["e", "d", "c"]

    def test_eviction_is_global_across_customers(self, small_audit):
        small_audit.log_module_change("cust-1", "a", "enabled", "user-1")
        for module_id in ["b", "c", "d"]:
            small_audit.log_module_change("cust-2", module_id, "enabled", "user-2")

        assert small_audit.get_audit_logs("cust-1") == []
        assert len(small_audit.get_audit_logs("cust-2")) == 3


class TestGetAuditLogs:
    """Tests for reading the trail."""

    def test_newest_first(self, audit):
        audit.log_module_change("cust-1", "a", "enabled", "user-1")
        audit.log_module_change("cust-1", "b", "enabled", "user-1")
        audit.log_module_change("cust-1", "c", "enabled", "user-1")

        assert [e.module_id for e in audit.get_audit_logs("cust-1")] == ["c", "b", "a"]

    def test_same_timestamp_keeps_append_order_reversed(self, store):
        frozen = TickingClock(step=timedelta(0))
        audit = ModuleAuditLogger(AuditLogRepository(store), clock=frozen)
        audit.log_module_change("cust-1", "a", "enabled", "user-1")
        audit.log_module_change("cust-1", "b", "enabled", "user-1")

        assert [e.module_id for e in audit.get_audit_logs()] == ["b", "a"]

    def test_filter_by_customer(self, audit):
        audit.log_module_change("cust-1", "a", "enabled", "user-1")
        audit.log_module_change("cust-2", "b", "enabled", "user-2")

        assert [e.module_id for e in audit.get_audit_logs("cust-2")] == ["b"]
        assert len(audit.get_audit_logs()) == 2

    def test_empty_log(self, audit):
        assert audit.get_audit_logs() == []
        assert audit.get_audit_logs("cust-1") == []
