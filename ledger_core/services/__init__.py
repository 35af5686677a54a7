"""Services package."""

from ledger_core.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryAuditStore,
    InMemoryLedgerStore,
    JsonFileLedgerStore,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
    "InMemoryAuditStore",
    "InMemoryLedgerStore",
    "JsonFileLedgerStore",
    "LedgerStorageInterface",
    "NotFoundError",
    "StorageError",
]
