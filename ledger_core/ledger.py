"""
Ledger Service

This module ties together the consistency engine and defines every
operation the rest of the application performs on the ledger:
1. Import (candidates -> duplicate check -> admit -> transfer matching)
2. Edit (category/type rules -> persist -> re-match if transfer status flips)
3. Delete (unlink partners -> remove -> persist)
4. Maintenance (migrations at startup, drift passes, link diagnostics)

DESIGN DECISION: The service enforces the boundaries:
- Only strict TransactionInput records are admitted
- Every mutation is persisted before it becomes visible
- Every mutation is audited

CONCURRENCY:
- initialize() is single-flight; concurrent callers wait on an event with a
  bounded timeout and proceed if it expires. The load holds the write
  lock, so a writer that gave up waiting still queues behind it
- One asyncio.Lock serializes every mutating operation
- A matching pass requested while one is running is skipped, not queued
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional
from uuid import UUID

import structlog

from ledger_core.audit import AuditLogger, create_correlation_id
from ledger_core.config import LedgerSettings, get_settings
from ledger_core.exceptions import LedgerNotReadyError, PersistenceError
from ledger_core.matching import (
    DuplicateDetector,
    LinkIndex,
    SimilarityScorer,
    TransferMatcher,
    clear_link,
)
from ledger_core.matching.transfers import (
    SUGGESTION_AMOUNT_TOLERANCE,
    SUGGESTION_WINDOW_DAYS,
)
from ledger_core.models import (
    IMMUTABLE_FIELDS,
    LINK_FIELDS,
    DuplicateDetectionConfig,
    DuplicateDetectionResult,
    DuplicateTransaction,
    LinkIntegrityReport,
    ReconciliationResult,
    Transaction,
    TransactionInput,
    TransferMatch,
    reserved_type_for,
    utcnow,
)
from ledger_core.reconciliation import IntegrityReconciler, MigrationRunner
from ledger_core.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryLedgerStore,
    JsonFileLedgerStore,
    LedgerStorageInterface,
)


logger = structlog.get_logger(__name__)


class LedgerService:
    """
    The ledger consistency engine.

    Holds the in-memory ledger for one store. Create one instance per
    store and pass it to whatever needs it.

    Usage:
        service = LedgerService(store)
        await service.initialize()
        result = await service.detect_duplicates(candidates)
        await service.add_transactions(result.unique_transactions)
    """

    def __init__(
        self,
        store: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        settings = settings or LedgerSettings()
        self._store = store
        self._audit_logger = audit_logger or AuditLogger()  # Local-only logging
        self._config = settings.duplicate_detection_config()
        self._init_timeout = settings.init_wait_timeout_seconds

        self._detector = DuplicateDetector(
            SimilarityScorer(self._config),
            threshold=settings.duplicate_threshold,
        )
        self._matcher = TransferMatcher(self._config, settings.transfer_window_days)
        self._reconciler = IntegrityReconciler()
        self._migrations = MigrationRunner(store, self._reconciler)

        self._transactions: list[Transaction] = []
        self._initialized = False
        self._init_in_progress = False
        self._init_event = asyncio.Event()
        self._write_lock = asyncio.Lock()
        self._matching_in_progress = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_matching(self) -> bool:
        return self._matching_in_progress

    @property
    def config(self) -> DuplicateDetectionConfig:
        return self._config

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    async def initialize(self) -> None:
        """
        Load the ledger, run pending migrations and drift passes.

        Single-flight: only the first caller does the work. Callers arriving
        while it runs wait up to init_wait_timeout_seconds and then return
        regardless.
        """
        if self._initialized:
            return

        if self._init_in_progress:
            event = self._init_event
            try:
                await asyncio.wait_for(event.wait(), timeout=self._init_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "initialization_wait_timed_out",
                    timeout_seconds=self._init_timeout,
                )
                await self._audit_logger.log_initialization_timeout(self._init_timeout)
            return

        self._init_in_progress = True
        self._init_event = asyncio.Event()
        try:
            await self._load_and_migrate()
        finally:
            self._init_in_progress = False
            self._init_event.set()

    async def _load_and_migrate(self) -> None:
        # Held until the ledger is in memory; writers that gave up waiting
        # for init queue here instead of writing over an unloaded ledger.
        async with self._write_lock:
            transactions = await self._store.load_transactions()

            # One-time migrations
            transactions, migration_results = await self._migrations.apply_pending(transactions)

            # Always-on drift correction
            transactions, drift = self._reconciler.sync_category_types(transactions)

            changed = drift.fixed > 0 or any(r.fixed for r in migration_results.values())
            if changed:
                await self._store.replace_transactions(transactions)
            await self._migrations.mark_completed(migration_results.keys())

            self._transactions = transactions
            self._initialized = True

        for key, result in migration_results.items():
            await self._audit_logger.log_migration_completed(key, result.fixed, result.errors)
        if drift.fixed or drift.errors:
            await self._audit_logger.log_drift_corrected(
                "category_type_sync", drift.fixed, drift.errors
            )
        await self._audit_logger.log_ledger_initialized(
            transaction_count=len(transactions),
            migrations_run=list(migration_results),
            drift_fixed=drift.fixed,
        )

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    @asynccontextmanager
    async def _writing(self) -> AsyncIterator[None]:
        """
        Hold the write lock for a mutation of a loaded ledger.

        Raises:
            LedgerNotReadyError: If initialization has not completed, so the
                snapshot a write would replace was never loaded
        """
        async with self._write_lock:
            if not self._initialized:
                raise LedgerNotReadyError(
                    "Ledger has not been loaded; refusing to replace stored transactions"
                )
            yield

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def _commit(
        self,
        ledger: list[Transaction],
        operation: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Persist a new ledger snapshot and make it current.

        On failure the in-memory ledger is reloaded from the store and
        PersistenceError is raised.
        """
        try:
            await self._store.replace_transactions(ledger)
        except Exception as e:
            await self._audit_logger.log_persistence_failed(
                operation=operation,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            await self._reload()
            raise PersistenceError(f"Failed to persist ledger after {operation}: {e}") from e

        self._transactions = ledger

    async def _reload(self) -> None:
        try:
            self._transactions = await self._store.load_transactions()
        except Exception as e:
            # In-memory state stays at the last successful commit
            logger.error("ledger_reload_failed", error=str(e))
            await self._audit_logger.log_error("ledger_reload_failed", str(e))

    # =========================================================================
    # READS
    # =========================================================================

    def _find_index(self, transaction_id: str) -> Optional[int]:
        for idx, transaction in enumerate(self._transactions):
            if transaction.id == transaction_id:
                return idx
        return None

    def _current(self, transaction_id: str) -> Optional[Transaction]:
        idx = self._find_index(transaction_id)
        return None if idx is None else self._transactions[idx].model_copy(deep=True)

    async def get_all_transactions(self) -> list[Transaction]:
        """All records in stored order (copies)."""
        await self._ensure_initialized()
        return [t.model_copy(deep=True) for t in self._transactions]

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        await self._ensure_initialized()
        return self._current(transaction_id)

    # =========================================================================
    # DUPLICATE DETECTION
    # =========================================================================

    async def detect_duplicates(
        self,
        candidates: list[TransactionInput],
        config: Optional[DuplicateDetectionConfig] = None,
        correlation_id: Optional[UUID] = None,
    ) -> DuplicateDetectionResult:
        """
        Check candidates against the ledger. Does not admit anything.
        """
        await self._ensure_initialized()
        correlation_id = correlation_id or create_correlation_id()

        result = self._detector.detect(candidates, self._transactions, config or self._config)

        await self._audit_logger.log_duplicates_detected(
            candidate_count=len(candidates),
            duplicate_count=len(result.duplicates),
            correlation_id=correlation_id,
        )
        return result

    async def find_existing_duplicates(
        self,
        config: Optional[DuplicateDetectionConfig] = None,
    ) -> list[DuplicateTransaction]:
        """Records on the ledger that duplicate an earlier record."""
        await self._ensure_initialized()
        return self._detector.find_existing_duplicates(self._transactions, config or self._config)

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def add_transaction(
        self,
        record: TransactionInput,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        added = await self.add_transactions([record], correlation_id)
        return added[0]

    async def add_transactions(
        self,
        records: list[TransactionInput],
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Admit records to the ledger.

        Reserved categories force their type. Transfer matching runs
        afterwards if anything on the ledger is a transfer.

        Returns:
            The admitted records as stored (after matching)
        """
        await self._ensure_initialized()
        if not records:
            return []
        correlation_id = correlation_id or create_correlation_id()

        async with self._writing():
            now = utcnow()
            admitted = []
            for record in records:
                transaction = Transaction.from_input(record, now)
                forced = reserved_type_for(transaction.category)
                if forced is not None and transaction.type != forced:
                    transaction = transaction.model_copy(update={"type": forced})
                admitted.append(transaction)

            await self._commit(
                self._transactions + admitted,
                "add_transactions",
                correlation_id,
            )

        admitted_ids = [t.id for t in admitted]
        await self._audit_logger.log_transactions_added(admitted_ids, correlation_id)

        if any(t.is_transfer for t in self._transactions):
            await self.run_transfer_matching()

        return [self._current(transaction_id) for transaction_id in admitted_ids]

    def _apply_update(self, current: Transaction, updates: dict[str, Any]) -> Transaction:
        forbidden = IMMUTABLE_FIELDS & updates.keys()
        if forbidden:
            raise ValueError(f"Fields cannot be updated: {sorted(forbidden)}")
        links = LINK_FIELDS & updates.keys()
        if links:
            raise ValueError(
                f"Link fields cannot be updated directly: {sorted(links)}; "
                "use manual_match_transfers or unmatch_transfer"
            )
        unknown = updates.keys() - Transaction.model_fields.keys()
        if unknown:
            raise ValueError(f"Unknown fields: {sorted(unknown)}")

        resolved = self._reconciler.resolve_update(current, updates)
        return Transaction.model_validate({
            **current.model_dump(),
            **resolved,
            "last_modified_date": utcnow(),
        })

    async def update_transaction(
        self,
        transaction_id: str,
        updates: dict[str, Any],
    ) -> Optional[Transaction]:
        """
        Update fields of one record.

        Category changes apply the category/type rules. If the record starts
        or stops being a transfer, transfer matching runs afterwards.

        Returns:
            The updated record, or None if it does not exist

        Raises:
            ValueError: If updates name id, added_date, a link field or an
                unknown field
            ValidationError: If the merged record is invalid
        """
        results = await self.batch_update_transactions({transaction_id: updates})
        return results[0] if results else None

    async def batch_update_transactions(
        self,
        updates: dict[str, dict[str, Any]],
    ) -> list[Transaction]:
        """
        Update several records in one persisted step.

        Unknown ids are skipped. Either every update is applied or none is.

        Returns:
            The updated records, in the order given
        """
        await self._ensure_initialized()

        async with self._writing():
            ledger = list(self._transactions)
            flipped = False
            updated_ids = []
            changed_fields: set[str] = set()

            for transaction_id, fields in updates.items():
                idx = next(
                    (i for i, t in enumerate(ledger) if t.id == transaction_id),
                    None,
                )
                if idx is None:
                    continue
                current = ledger[idx]
                updated = self._apply_update(current, fields)
                flipped = flipped or (current.is_transfer != updated.is_transfer)
                ledger[idx] = updated
                updated_ids.append(transaction_id)
                changed_fields.update(fields)

            if not updated_ids:
                return []

            await self._commit(ledger, "update_transactions")

        await self._audit_logger.log_transactions_updated(updated_ids, list(changed_fields))

        if flipped:
            await self.run_transfer_matching()

        return [self._current(transaction_id) for transaction_id in updated_ids]

    async def delete_transaction(self, transaction_id: str) -> bool:
        return await self.delete_transactions([transaction_id]) == 1

    async def delete_transactions(self, transaction_ids: Iterable[str]) -> int:
        """
        Delete records, first unlinking every surviving partner.

        A partner is any record whose reimbursement_id or transfer_id names a
        deleted record. If both legs of a pair are deleted together, neither
        is unlinked; the pair simply disappears.

        Returns:
            Number of records actually deleted (unknown ids are ignored)
        """
        await self._ensure_initialized()
        requested = set(transaction_ids)

        async with self._writing():
            deleted_ids = {t.id for t in self._transactions if t.id in requested}
            if not deleted_ids:
                return 0

            index = LinkIndex(self._transactions)
            partner_ids: set[str] = set()
            for transaction_id in deleted_ids:
                partner_ids |= index.referrers_of(transaction_id)
            partner_ids -= deleted_ids

            now = utcnow()
            ledger = []
            for transaction in self._transactions:
                if transaction.id in deleted_ids:
                    continue
                if transaction.id in partner_ids:
                    transaction = clear_link(transaction, ids=deleted_ids, now=now)
                ledger.append(transaction)

            await self._commit(ledger, "delete_transactions")

        await self._audit_logger.log_transactions_deleted(
            transaction_ids=sorted(deleted_ids),
            unlinked_partner_ids=sorted(partner_ids),
        )
        return len(deleted_ids)

    # =========================================================================
    # TRANSFER MATCHING
    # =========================================================================

    async def run_transfer_matching(self) -> int:
        """
        Link every qualifying unlinked transfer pair.

        Returns:
            Number of records newly linked (0 if skipped because a pass is
            already running)
        """
        await self._ensure_initialized()
        if self._matching_in_progress:
            logger.info("transfer_matching_skipped", reason="pass already running")
            return 0

        self._matching_in_progress = True
        try:
            async with self._writing():
                matches = self._matcher.find_matches(self._transactions)
                if not matches:
                    return 0
                ledger = self._matcher.apply_matches(self._transactions, matches)
                await self._commit(ledger, "transfer_matching")
        finally:
            self._matching_in_progress = False

        # Guard must be clear before awaiting the audit sink
        await self._audit_logger.log_transfers_matched(
            [(m.source_transaction_id, m.target_transaction_id) for m in matches]
        )
        return 2 * len(matches)

    async def manual_match_transfers(
        self,
        source_id: str,
        target_id: str,
    ) -> list[Transaction]:
        """
        Link two transfer records chosen by the user.

        Raises:
            TransferMatchError: If the pair is not allowed
        """
        await self._ensure_initialized()

        async with self._writing():
            ledger = self._matcher.manual_match(self._transactions, source_id, target_id)
            await self._commit(ledger, "manual_match_transfers")

        await self._audit_logger.log_transfers_matched([(source_id, target_id)], manual=True)
        return [self._current(source_id), self._current(target_id)]

    async def unmatch_transfer(self, transaction_id: str) -> list[Transaction]:
        """
        Remove a link from both legs.

        Returns:
            The records that changed (empty if the record is unknown or
            was not linked)
        """
        await self._ensure_initialized()

        async with self._writing():
            ledger, changed_ids = self._matcher.unmatch(self._transactions, transaction_id)
            if not changed_ids:
                return []
            await self._commit(ledger, "unmatch_transfer")

        partner_ids = [i for i in changed_ids if i != transaction_id]
        await self._audit_logger.log_transfer_unmatched(
            transaction_id,
            partner_ids[0] if partner_ids else None,
        )
        return [self._current(i) for i in changed_ids]

    async def get_matched_transfers(self) -> list[TransferMatch]:
        await self._ensure_initialized()
        return self._matcher.matched_transfers(self._transactions)

    async def get_unmatched_transfers(self) -> list[Transaction]:
        await self._ensure_initialized()
        return [t.model_copy(deep=True) for t in self._matcher.unmatched_transfers(self._transactions)]

    async def suggest_transfer_matches(
        self,
        window_days: int = SUGGESTION_WINDOW_DAYS,
        tolerance: float = SUGGESTION_AMOUNT_TOLERANCE,
    ) -> list[TransferMatch]:
        """Relaxed candidate pairs for the user to confirm. Read-only."""
        await self._ensure_initialized()
        return self._matcher.suggest_matches(self._transactions, window_days, tolerance)

    async def match_reversals(self) -> int:
        """
        Link same-account reversal pairs (a charge and its cancellation).

        Returns:
            Number of records newly linked
        """
        await self._ensure_initialized()
        if self._matching_in_progress:
            logger.info("reversal_matching_skipped", reason="pass already running")
            return 0

        self._matching_in_progress = True
        try:
            async with self._writing():
                ledger, matches = self._matcher.auto_match_reversals(self._transactions)
                if not matches:
                    return 0
                await self._commit(ledger, "reversal_matching")
        finally:
            self._matching_in_progress = False

        await self._audit_logger.log_reversals_matched(
            [(m.source_transaction_id, m.target_transaction_id) for m in matches]
        )
        return 2 * len(matches)

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def diagnose_link_integrity(self) -> LinkIntegrityReport:
        """
        Check link integrity and send the report to the diagnostic sink.

        Read-only: nothing is repaired.
        """
        await self._ensure_initialized()
        report = self._reconciler.diagnose_link_integrity(self._transactions)

        await self._audit_logger.log_link_integrity_report(
            summary=report.summary(),
            healthy=report.is_healthy,
            details={
                "total_transactions": report.total_transactions,
                "total_links": report.total_links,
                "orphaned": [i.model_dump() for i in report.orphaned_links],
                "one_directional": [i.model_dump() for i in report.one_directional_links],
                "self_links": [i.model_dump() for i in report.self_links],
            },
        )
        return report

    async def manual_cleanup(self) -> ReconciliationResult:
        """
        Run the orphaned-link cleanup and category/type sync on demand.
        """
        await self._ensure_initialized()

        async with self._writing():
            ledger, orphans = self._reconciler.cleanup_orphaned_links(self._transactions)
            ledger, drift = self._reconciler.sync_category_types(ledger)
            result = orphans.merge(drift)
            if result.fixed:
                await self._commit(ledger, "manual_cleanup")

        await self._audit_logger.log_orphaned_links_cleaned(orphans.fixed, orphans.errors)
        if drift.fixed or drift.errors:
            await self._audit_logger.log_drift_corrected(
                "category_type_sync", drift.fixed, drift.errors
            )
        return result


def create_ledger_service(
    settings: Optional[LedgerSettings] = None,
) -> LedgerService:
    """
    Factory function to create a ledger service for the configured backend.

    Args:
        settings: Ledger settings; loaded from the environment if omitted

    Returns:
        An uninitialized LedgerService (call initialize() before use)
    """
    settings = settings or get_settings().ledger
    audit_storage = None

    if settings.storage_backend == "memory":
        store = InMemoryLedgerStore()
    elif settings.storage_backend == "json":
        store = JsonFileLedgerStore(settings.json_path)
    else:
        sheets_client = GoogleSheetsClient()
        store = GoogleSheetsLedgerStore(sheets_client)
        audit_storage = GoogleSheetsAuditStorage(sheets_client)

    return LedgerService(
        store,
        audit_logger=AuditLogger(audit_storage),
        settings=settings,
    )
