"""
In-Memory Storage Implementation

Used by the test suite and for ephemeral sessions. Records are deep-copied
on the way in and out, so callers can never mutate stored state by holding
on to a returned object.
"""

from typing import Optional
from uuid import UUID

from ledger_core.models.audit import AuditEvent
from ledger_core.models.transaction import Transaction
from ledger_core.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
)


class InMemoryLedgerStore(LedgerStorageInterface):
    """Ledger storage held in a Python list."""

    def __init__(self, transactions: Optional[list[Transaction]] = None):
        self._transactions: list[Transaction] = [
            t.model_copy(deep=True) for t in (transactions or [])
        ]
        self._flags: dict[str, bool] = {}
        self.replace_count = 0

    async def load_transactions(self) -> list[Transaction]:
        return [t.model_copy(deep=True) for t in self._transactions]

    async def replace_transactions(self, transactions: list[Transaction]) -> None:
        self._transactions = [t.model_copy(deep=True) for t in transactions]
        self.replace_count += 1

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        for transaction in self._transactions:
            if transaction.id == transaction_id:
                return transaction.model_copy(deep=True)
        return None

    async def put_transaction(self, transaction: Transaction) -> None:
        stored = transaction.model_copy(deep=True)
        for idx, existing in enumerate(self._transactions):
            if existing.id == transaction.id:
                self._transactions[idx] = stored
                return
        self._transactions.append(stored)

    async def get_migration_flag(self, key: str) -> bool:
        return self._flags.get(key, False)

    async def set_migration_flag(self, key: str, value: bool = True) -> None:
        self._flags[key] = value


class InMemoryAuditStore(AuditStorageInterface):
    """Append-only audit log held in a Python list."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self.events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
