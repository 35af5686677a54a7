"""
Tests for the audit logger.
"""

import pytest

from ledger_core.audit import AuditLogger
from ledger_core.models import AuditEventBuilder, AuditEventType, AuditSeverity
from ledger_core.services.storage import AuditStorageInterface, InMemoryAuditStore


class ExplodingAuditStore(AuditStorageInterface):
    async def append_event(self, event):
        raise RuntimeError("sheet unavailable")

    async def get_events_by_correlation_id(self, correlation_id):
        return []

    async def get_recent_events(self, limit=100):
        return []


class TestAuditLogger:
    """Tests for AuditLogger."""

    @pytest.mark.asyncio
    async def test_local_only(self):
        logger = AuditLogger()
        assert await logger.log(AuditEventBuilder.transactions_added(["t1"]))

    @pytest.mark.asyncio
    async def test_persists_to_storage(self):
        store = InMemoryAuditStore()
        logger = AuditLogger(store)
        await logger.log_transactions_added(["t1", "t2"])

        assert len(store.events) == 1
        assert store.events[0].details["transaction_ids"] == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self):
        logger = AuditLogger(ExplodingAuditStore())
        assert not await logger.log(AuditEventBuilder.transactions_added(["t1"]))

    @pytest.mark.asyncio
    async def test_convenience_methods(self):
        store = InMemoryAuditStore()
        logger = AuditLogger(store)

        await logger.log_initialization_timeout(10.0)
        await logger.log_transfer_unmatched("a", "b")
        await logger.log_orphaned_links_cleaned(2, [])
        await logger.log_drift_corrected("category_type_sync", 1, ["t9: invalid"])
        await logger.log_persistence_failed("add_transactions", "disk full")
        await logger.log_error("ledger_reload_failed", "store offline")

        assert [e.event_type for e in store.events] == [
            AuditEventType.INITIALIZATION_TIMEOUT,
            AuditEventType.TRANSFER_UNMATCHED,
            AuditEventType.ORPHANED_LINKS_CLEANED,
            AuditEventType.DRIFT_CORRECTED,
            AuditEventType.PERSISTENCE_FAILED,
            AuditEventType.SYSTEM_ERROR,
        ]
        assert [e.severity for e in store.events] == [
            AuditSeverity.WARNING,
            AuditSeverity.INFO,
            AuditSeverity.INFO,
            AuditSeverity.WARNING,
            AuditSeverity.ERROR,
            AuditSeverity.ERROR,
        ]
