"""
One-Time Migrations

Each migration is a reconciliation pass keyed by a stable identifier. The
key is persisted as a flag once the migration has run, so it runs once
across restarts.

A migration is marked complete even if some records failed; the failures
are reported in its ReconciliationResult and surfaced through the audit log.
The always-on drift passes in the ledger service catch anything left over.
"""

from typing import Callable

from ledger_core.models.reports import ReconciliationResult
from ledger_core.models.transaction import (
    ASSET_ALLOCATION_CATEGORY,
    INTERNAL_TRANSFER_CATEGORY,
    Transaction,
)
from ledger_core.reconciliation.reconciler import IntegrityReconciler
from ledger_core.services.storage import LedgerStorageInterface


INTERNAL_TRANSFER_TYPE_SYNC = "internal-transfer-type-sync"
ASSET_ALLOCATION_TYPE_SYNC = "asset-allocation-type-sync"
ORPHANED_LINK_CLEANUP = "orphaned-link-cleanup"

MigrationPass = Callable[
    [list[Transaction]],
    tuple[list[Transaction], ReconciliationResult],
]


class MigrationRunner:
    """
    Applies registered migrations whose flags are not yet set.

    Usage:
        runner = MigrationRunner(store, reconciler)
        ledger, results = await runner.apply_pending(ledger)
        # ... persist ledger ...
        await runner.mark_completed(results.keys())
    """

    def __init__(
        self,
        store: LedgerStorageInterface,
        reconciler: IntegrityReconciler,
    ):
        self._store = store
        self._migrations: dict[str, MigrationPass] = {
            INTERNAL_TRANSFER_TYPE_SYNC: lambda ledger: reconciler.sync_category_types(
                ledger, {INTERNAL_TRANSFER_CATEGORY}
            ),
            ASSET_ALLOCATION_TYPE_SYNC: lambda ledger: reconciler.sync_category_types(
                ledger, {ASSET_ALLOCATION_CATEGORY}
            ),
            ORPHANED_LINK_CLEANUP: reconciler.cleanup_orphaned_links,
        }

    @property
    def keys(self) -> list[str]:
        return list(self._migrations)

    async def pending(self) -> list[str]:
        """Keys of migrations that have not completed, in registration order."""
        return [
            key for key in self._migrations
            if not await self._store.get_migration_flag(key)
        ]

    async def apply_pending(
        self,
        ledger: list[Transaction],
    ) -> tuple[list[Transaction], dict[str, ReconciliationResult]]:
        """
        Run every pending migration over the ledger, in order.

        Does not persist anything; the caller stores the ledger first and
        then calls mark_completed.
        """
        results: dict[str, ReconciliationResult] = {}
        for key in await self.pending():
            ledger, results[key] = self._migrations[key](ledger)
        return ledger, results

    async def mark_completed(self, keys) -> None:
        for key in keys:
            await self._store.set_migration_flag(key, True)
