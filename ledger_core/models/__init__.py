"""
Data Models Package

This package contains all Pydantic models used by the ledger.
All data flowing through the consistency engine must conform to these schemas.
"""

from ledger_core.models.transaction import (
    ASSET_ALLOCATION_CATEGORY,
    IMMUTABLE_FIELDS,
    LINK_FIELDS,
    INTERNAL_TRANSFER_CATEGORY,
    RESERVED_CATEGORY_TYPES,
    DuplicateDetectionConfig,
    Transaction,
    TransactionBase,
    TransactionInput,
    TransactionType,
    new_transaction_id,
    reserved_type_for,
    type_from_amount,
    utcnow,
)
from ledger_core.models.reports import (
    DuplicateDetectionResult,
    DuplicateTransaction,
    LinkIntegrityReport,
    LinkIssue,
    MatchType,
    ReconciliationResult,
    SimilarityResult,
    TransferMatch,
    TransferMatchType,
)
from ledger_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "ASSET_ALLOCATION_CATEGORY",
    "IMMUTABLE_FIELDS",
    "LINK_FIELDS",
    "INTERNAL_TRANSFER_CATEGORY",
    "RESERVED_CATEGORY_TYPES",
    "DuplicateDetectionConfig",
    "Transaction",
    "TransactionBase",
    "TransactionInput",
    "TransactionType",
    "new_transaction_id",
    "reserved_type_for",
    "type_from_amount",
    "utcnow",
    # Result models
    "DuplicateDetectionResult",
    "DuplicateTransaction",
    "LinkIntegrityReport",
    "LinkIssue",
    "MatchType",
    "ReconciliationResult",
    "SimilarityResult",
    "TransferMatch",
    "TransferMatchType",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
