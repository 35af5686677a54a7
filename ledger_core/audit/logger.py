"""
Audit Logger

DESIGN DECISION: Every mutation, migration and integrity pass on the ledger
emits an AuditEvent. Events go to the local structured log first and then,
if configured, to an audit store the owner can inspect.

Failures to persist an event are logged and reported as False; they never
propagate into ledger operations. Related events share a correlation ID.
"""

from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from ledger_core.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from ledger_core.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


_LOG_METHODS = {
    AuditSeverity.DEBUG: "debug",
    AuditSeverity.INFO: "info",
    AuditSeverity.WARNING: "warning",
    AuditSeverity.ERROR: "error",
    AuditSeverity.CRITICAL: "error",
}


class AuditLogger:
    """
    Sink for ledger audit events.

    Args:
        storage: Audit store to persist events to. Without one, events
            only reach the local structured log.
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        self._storage = storage
        self._logger = structlog.get_logger("ledger_core.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Record an event locally, then in the audit store.

        Returns:
            False only when the audit store rejected or failed the write.
        """
        method = _LOG_METHODS.get(event.severity, "info")
        getattr(self._logger, method)("audit_event", **event.to_log_dict())

        if self._storage is None:
            return True

        try:
            return await self._storage.append_event(event)
        except Exception as e:
            self._logger.error(
                "audit_persist_failed",
                event_id=str(event.event_id),
                event_type=event.event_type.value,
                error=str(e),
            )
            return False

    async def log_ledger_initialized(
        self,
        transaction_count: int,
        migrations_run: list[str],
        drift_fixed: int,
    ) -> None:
        """Log completion of startup load and migrations."""
        event = AuditEventBuilder.ledger_initialized(
            transaction_count=transaction_count,
            migrations_run=migrations_run,
            drift_fixed=drift_fixed,
        )
        await self.log(event)

    async def log_initialization_timeout(self, timeout_seconds: float) -> None:
        event = AuditEventBuilder.initialization_timeout(timeout_seconds)
        await self.log(event)

    async def log_transactions_added(
        self,
        transaction_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transactions_added(
            transaction_ids=transaction_ids,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transactions_updated(
        self,
        transaction_ids: list[str],
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transactions_updated(
            transaction_ids=transaction_ids,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transactions_deleted(
        self,
        transaction_ids: list[str],
        unlinked_partner_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transactions_deleted(
            transaction_ids=transaction_ids,
            unlinked_partner_ids=unlinked_partner_ids,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_duplicates_detected(
        self,
        candidate_count: int,
        duplicate_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.duplicates_detected(
            candidate_count=candidate_count,
            duplicate_count=duplicate_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transfers_matched(
        self,
        pairs: list[tuple[str, str]],
        manual: bool = False,
    ) -> None:
        event = AuditEventBuilder.transfers_matched(pairs=pairs, manual=manual)
        await self.log(event)

    async def log_transfer_unmatched(
        self,
        transaction_id: str,
        partner_id: Optional[str],
    ) -> None:
        event = AuditEventBuilder.transfer_unmatched(transaction_id, partner_id)
        await self.log(event)

    async def log_reversals_matched(self, pairs: list[tuple[str, str]]) -> None:
        event = AuditEventBuilder.reversals_matched(pairs)
        await self.log(event)

    async def log_migration_completed(
        self,
        migration_key: str,
        fixed: int,
        errors: list[str],
    ) -> None:
        """Log a one-time migration, including per-record failures."""
        event = AuditEventBuilder.migration_completed(
            migration_key=migration_key,
            fixed=fixed,
            errors=errors,
        )
        await self.log(event)

    async def log_drift_corrected(
        self,
        pass_name: str,
        fixed: int,
        errors: list[str],
    ) -> None:
        event = AuditEventBuilder.drift_corrected(pass_name, fixed, errors)
        await self.log(event)

    async def log_orphaned_links_cleaned(self, fixed: int, errors: list[str]) -> None:
        event = AuditEventBuilder.orphaned_links_cleaned(fixed, errors)
        await self.log(event)

    async def log_link_integrity_report(
        self,
        summary: str,
        healthy: bool,
        details: dict[str, Any],
    ) -> None:
        """Forward an integrity diagnostic to the sink."""
        event = AuditEventBuilder.link_integrity_report(summary, healthy, details)
        await self.log(event)

    async def log_persistence_failed(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.persistence_failed(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """New correlation ID for one batch of related ledger operations."""
    return uuid4()
