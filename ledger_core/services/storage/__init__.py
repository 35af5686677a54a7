"""
Storage Services Package

Provides abstract interfaces and concrete implementations for ledger storage.
Backends: in-memory (tests), a JSON file, and Google Sheets.
"""

from ledger_core.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from ledger_core.services.storage.memory import (
    InMemoryAuditStore,
    InMemoryLedgerStore,
)
from ledger_core.services.storage.json_file import JsonFileLedgerStore
from ledger_core.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStore",
    "InMemoryLedgerStore",
    # JSON file implementation
    "JsonFileLedgerStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
]
