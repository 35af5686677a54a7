"""Reconciliation package: drift passes, link diagnostics and one-time migrations."""

from ledger_core.reconciliation.reconciler import IntegrityReconciler
from ledger_core.reconciliation.migrations import (
    ASSET_ALLOCATION_TYPE_SYNC,
    INTERNAL_TRANSFER_TYPE_SYNC,
    ORPHANED_LINK_CLEANUP,
    MigrationRunner,
)

__all__ = [
    "ASSET_ALLOCATION_TYPE_SYNC",
    "INTERNAL_TRANSFER_TYPE_SYNC",
    "ORPHANED_LINK_CLEANUP",
    "IntegrityReconciler",
    "MigrationRunner",
]
