"""
Tests for one-time migrations and their persisted flags.
"""

import pytest

from ledger_core.models import TransactionType
from ledger_core.reconciliation import (
    ASSET_ALLOCATION_TYPE_SYNC,
    INTERNAL_TRANSFER_TYPE_SYNC,
    ORPHANED_LINK_CLEANUP,
    IntegrityReconciler,
    MigrationRunner,
)
from ledger_core.services.storage import InMemoryLedgerStore


@pytest.fixture
def runner(store):
    return MigrationRunner(store, IntegrityReconciler())


class TestMigrationRunner:
    """Tests for MigrationRunner."""

    def test_registered_in_order(self, runner):
        assert runner.keys == [
            INTERNAL_TRANSFER_TYPE_SYNC,
            ASSET_ALLOCATION_TYPE_SYNC,
            ORPHANED_LINK_CLEANUP,
        ]

    @pytest.mark.asyncio
    async def test_all_pending_on_fresh_store(self, runner):
        assert await runner.pending() == runner.keys

    @pytest.mark.asyncio
    async def test_apply_pending_runs_every_pass(self, runner, make_transaction, make_leg):
        ledger = [
            make_transaction(id="t1", category="Internal Transfer", type=TransactionType.EXPENSE),
            make_transaction(id="t2", category="Asset Allocation", type=TransactionType.EXPENSE),
            make_leg("t3", "-5.00", "Checking", reimbursement_id="gone"),
        ]
        result, results = await runner.apply_pending(ledger)

        assert list(results) == runner.keys
        assert all(r.fixed == 1 for r in results.values())
        assert result[0].type == TransactionType.TRANSFER
        assert result[1].type == TransactionType.ASSET_ALLOCATION
        assert result[2].reimbursement_id is None

    @pytest.mark.asyncio
    async def test_apply_pending_does_not_set_flags(self, runner, store):
        await runner.apply_pending([])
        assert not await store.get_migration_flag(INTERNAL_TRANSFER_TYPE_SYNC)

    @pytest.mark.asyncio
    async def test_completed_migrations_are_skipped(self, runner, make_transaction):
        await runner.mark_completed([INTERNAL_TRANSFER_TYPE_SYNC])
        ledger = [make_transaction(category="Internal Transfer", type=TransactionType.EXPENSE)]
        result, results = await runner.apply_pending(ledger)

        assert INTERNAL_TRANSFER_TYPE_SYNC not in results
        assert result[0].type == TransactionType.EXPENSE

    @pytest.mark.asyncio
    async def test_flags_survive_snapshot_replace(self, runner, store, make_transaction):
        await runner.mark_completed(runner.keys)
        await store.replace_transactions([make_transaction()])
        assert await runner.pending() == []

    @pytest.mark.asyncio
    async def test_flags_are_per_store(self, make_transaction):
        first = MigrationRunner(InMemoryLedgerStore(), IntegrityReconciler())
        second = MigrationRunner(InMemoryLedgerStore(), IntegrityReconciler())
        await first.mark_completed(first.keys)

        assert await first.pending() == []
        assert await second.pending() == second.keys
