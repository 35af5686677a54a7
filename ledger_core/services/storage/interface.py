"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets or a JSON file for a real database later
2. Use in-memory storage for testing
3. Keep the consistency engine decoupled from storage implementation

The ledger is persisted as a whole-collection snapshot. Migration flags are
stored independently of the collection so that a snapshot replace never
resets them.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from ledger_core.models.audit import AuditEvent
from ledger_core.models.transaction import Transaction


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (Google Sheets, JSON file, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def load_transactions(self) -> list[Transaction]:
        """
        Load the full transaction collection in stored order.

        Returns:
            All stored transactions (empty list if nothing stored yet)

        Raises:
            StorageError: If the collection cannot be read
        """
        pass

    @abstractmethod
    async def replace_transactions(self, transactions: list[Transaction]) -> None:
        """
        Replace the whole stored collection with a new snapshot.

        Args:
            transactions: The complete ledger, in order

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """
        Retrieve a single stored transaction.

        Args:
            transaction_id: The transaction's identifier

        Returns:
            The transaction if found, None otherwise
        """
        pass

    @abstractmethod
    async def put_transaction(self, transaction: Transaction) -> None:
        """
        Insert or overwrite a single stored transaction by id.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_migration_flag(self, key: str) -> bool:
        """
        Read a named one-time migration flag.

        Returns:
            True if the migration has completed, False if unset
        """
        pass

    @abstractmethod
    async def set_migration_flag(self, key: str, value: bool = True) -> None:
        """
        Persist a named one-time migration flag.

        Raises:
            StorageError: If the write fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one import batch).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Args:
            limit: Maximum number of events to return

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
