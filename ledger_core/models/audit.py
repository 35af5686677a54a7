"""
Audit Models for the Ledger

Every mutation of the ledger and every diagnostic produced by the
consistency engine is recorded as an AuditEvent. This provides:
1. Traceability of all ledger mutations
2. Debugging information when links or types drift
3. An operator-visible diagnostic feed

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ledger_core.models.transaction import utcnow


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Lifecycle
    LEDGER_INITIALIZED = "ledger_initialized"
    INITIALIZATION_TIMEOUT = "initialization_timeout"

    # Mutations
    TRANSACTIONS_ADDED = "transactions_added"
    TRANSACTIONS_UPDATED = "transactions_updated"
    TRANSACTIONS_DELETED = "transactions_deleted"

    # Matching
    DUPLICATES_DETECTED = "duplicates_detected"
    TRANSFERS_MATCHED = "transfers_matched"
    TRANSFER_UNMATCHED = "transfer_unmatched"
    REVERSALS_MATCHED = "reversals_matched"

    # Reconciliation
    MIGRATION_COMPLETED = "migration_completed"
    DRIFT_CORRECTED = "drift_corrected"
    ORPHANED_LINKS_CLEANED = "orphaned_links_cleaned"
    LINK_INTEGRITY_REPORT = "link_integrity_report"

    # Failures
    PERSISTENCE_FAILED = "persistence_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of the diagnostic trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'migration', 'ledger')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one import batch)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transactions_added(ids, correlation_id)
        event = AuditEventBuilder.migration_completed(key, fixed, errors)
    """

    @staticmethod
    def ledger_initialized(
        transaction_count: int,
        migrations_run: list[str],
        drift_fixed: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_INITIALIZED,
            entity_type="ledger",
            description=f"Ledger loaded with {transaction_count} transactions",
            details={
                "transaction_count": transaction_count,
                "migrations_run": migrations_run,
                "drift_fixed": drift_fixed,
            },
        )

    @staticmethod
    def initialization_timeout(timeout_seconds: float) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INITIALIZATION_TIMEOUT,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            description=(
                f"Gave up waiting for ledger initialization after {timeout_seconds}s; "
                "proceeding as initialized"
            ),
            details={"timeout_seconds": timeout_seconds},
        )

    @staticmethod
    def transactions_added(
        transaction_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_ADDED,
            entity_type="transaction",
            entity_id=transaction_ids[0] if len(transaction_ids) == 1 else None,
            correlation_id=correlation_id,
            description=f"Added {len(transaction_ids)} transaction(s)",
            details={"transaction_ids": transaction_ids},
        )

    @staticmethod
    def transactions_updated(
        transaction_ids: list[str],
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_UPDATED,
            entity_type="transaction",
            entity_id=transaction_ids[0] if len(transaction_ids) == 1 else None,
            correlation_id=correlation_id,
            description=f"Updated {len(transaction_ids)} transaction(s)",
            details={
                "transaction_ids": transaction_ids,
                "changed_fields": sorted(changed_fields),
            },
        )

    @staticmethod
    def transactions_deleted(
        transaction_ids: list[str],
        unlinked_partner_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_DELETED,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=(
                f"Deleted {len(transaction_ids)} transaction(s), "
                f"unlinked {len(unlinked_partner_ids)} partner(s)"
            ),
            details={
                "transaction_ids": transaction_ids,
                "unlinked_partner_ids": unlinked_partner_ids,
            },
        )

    @staticmethod
    def duplicates_detected(
        candidate_count: int,
        duplicate_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUPLICATES_DETECTED,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"{duplicate_count} of {candidate_count} candidate(s) are duplicates",
            details={
                "candidate_count": candidate_count,
                "duplicate_count": duplicate_count,
            },
        )

    @staticmethod
    def transfers_matched(
        pairs: list[tuple[str, str]],
        manual: bool = False,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFERS_MATCHED,
            entity_type="transaction",
            description=(
                f"{'Manually matched' if manual else 'Auto-matched'} "
                f"{len(pairs)} transfer pair(s)"
            ),
            details={
                "pairs": [list(pair) for pair in pairs],
                "manual": manual,
            },
        )

    @staticmethod
    def transfer_unmatched(transaction_id: str, partner_id: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_UNMATCHED,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transfer link removed",
            details={"partner_id": partner_id},
        )

    @staticmethod
    def reversals_matched(pairs: list[tuple[str, str]]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REVERSALS_MATCHED,
            entity_type="transaction",
            description=f"Matched {len(pairs)} same-account reversal pair(s)",
            details={"pairs": [list(pair) for pair in pairs]},
        )

    @staticmethod
    def migration_completed(
        migration_key: str,
        fixed: int,
        errors: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_COMPLETED,
            severity=AuditSeverity.WARNING if errors else AuditSeverity.INFO,
            entity_type="migration",
            entity_id=migration_key,
            description=(
                f"Migration {migration_key} completed: {fixed} fixed, "
                f"{len(errors)} error(s)"
            ),
            details={
                "fixed": fixed,
                "errors": errors,
            },
        )

    @staticmethod
    def drift_corrected(pass_name: str, fixed: int, errors: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRIFT_CORRECTED,
            severity=AuditSeverity.WARNING if errors else AuditSeverity.INFO,
            entity_type="ledger",
            description=f"{pass_name}: corrected {fixed} record(s)",
            details={
                "pass": pass_name,
                "fixed": fixed,
                "errors": errors,
            },
        )

    @staticmethod
    def orphaned_links_cleaned(fixed: int, errors: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ORPHANED_LINKS_CLEANED,
            severity=AuditSeverity.WARNING if errors else AuditSeverity.INFO,
            entity_type="ledger",
            description=f"Cleared {fixed} orphaned link(s)",
            details={
                "fixed": fixed,
                "errors": errors,
            },
        )

    @staticmethod
    def link_integrity_report(
        summary: str,
        healthy: bool,
        details: dict[str, Any],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LINK_INTEGRITY_REPORT,
            severity=AuditSeverity.INFO if healthy else AuditSeverity.WARNING,
            entity_type="ledger",
            description=summary[:500],
            details=details,
        )

    @staticmethod
    def persistence_failed(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Persisting ledger after {operation} failed; reloaded last durable snapshot",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
