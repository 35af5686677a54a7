"""
Integrity Reconciler

Keeps the derived invariants of the ledger true as it mutates:

1. Category <-> type: "Internal Transfer" is always a transfer,
   "Asset Allocation" is always an asset allocation. Moving a record away
   from a reserved category re-derives its type from the amount sign.
2. Links: no record points at a missing record or at itself.

Every pass is independent and idempotent. Passes never raise for a single
bad record; the failure is collected in ReconciliationResult.errors and the
record is left as it was.

The bidirectional check is a read-only diagnostic. One-directional links
are reported, never repaired.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import ValidationError

from ledger_core.matching.links import LinkIndex, clear_link
from ledger_core.models.reports import (
    LinkIntegrityReport,
    LinkIssue,
    ReconciliationResult,
)
from ledger_core.models.transaction import (
    RESERVED_CATEGORY_TYPES,
    Transaction,
    TransactionType,
    reserved_type_for,
    type_from_amount,
    utcnow,
)


LINK_FIELDS = ("reimbursement_id", "transfer_id")


class IntegrityReconciler:
    """
    Corrects category/type drift and broken links.

    Usage:
        reconciler = IntegrityReconciler()
        ledger, result = reconciler.sync_category_types(ledger)
        ledger, result = reconciler.cleanup_orphaned_links(ledger)
        report = reconciler.diagnose_link_integrity(ledger)
    """

    def _revalidate(
        self,
        record: Transaction,
        update: dict[str, Any],
        errors: list[str],
    ) -> Optional[Transaction]:
        """Rebuild a record with an update, collecting validation failures."""
        try:
            return Transaction.model_validate({**record.model_dump(), **update})
        except ValidationError as e:
            errors.append(f"{record.id}: {e}")
            return None

    # =========================================================================
    # CATEGORY <-> TYPE
    # =========================================================================

    def sync_category_types(
        self,
        ledger: list[Transaction],
        categories: Optional[set[str]] = None,
        now: Optional[datetime] = None,
    ) -> tuple[list[Transaction], ReconciliationResult]:
        """
        Force the type of every record in a reserved category.

        Args:
            ledger: The ledger to correct
            categories: Restrict to these reserved categories (default: all)

        Returns:
            (new ledger, result with the number of corrected records)
        """
        categories = set(RESERVED_CATEGORY_TYPES) if categories is None else categories
        now = now or utcnow()
        errors: list[str] = []
        fixed = 0
        result = []

        for record in ledger:
            forced = reserved_type_for(record.category)
            if record.category not in categories or forced is None or record.type == forced:
                result.append(record)
                continue

            corrected = self._revalidate(
                record,
                {"type": forced, "last_modified_date": now},
                errors,
            )
            if corrected is None:
                result.append(record)
            else:
                result.append(corrected)
                fixed += 1

        return result, ReconciliationResult(fixed=fixed, errors=errors)

    @staticmethod
    def apply_category_change(
        record: Transaction,
        new_category: str,
        amount: Optional[Decimal] = None,
    ) -> TransactionType:
        """
        Type a record should have after its category changes.

        Toward a reserved category the type is forced. Away from one, the
        type is re-derived from the amount sign (negative is an expense).
        Between ordinary categories the current type is kept.
        """
        forced = reserved_type_for(new_category)
        if forced is not None:
            return forced
        if reserved_type_for(record.category) is not None:
            return type_from_amount(record.amount if amount is None else amount)
        return record.type

    def resolve_update(
        self,
        record: Transaction,
        updates: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Apply the category/type rules to an update before it is merged.

        Returns:
            A copy of updates with `type` set where the rules require it
        """
        resolved = dict(updates)
        new_category = resolved.get("category", record.category)
        new_amount = resolved.get("amount", record.amount)

        if new_category == record.category:
            forced = reserved_type_for(new_category)
            if forced is not None:
                resolved["type"] = forced
            return resolved

        ordinary_move = (
            reserved_type_for(new_category) is None
            and reserved_type_for(record.category) is None
        )
        if ordinary_move and "type" in resolved:
            return resolved

        resolved["type"] = self.apply_category_change(record, new_category, new_amount)
        return resolved

    # =========================================================================
    # LINKS
    # =========================================================================

    def cleanup_orphaned_links(
        self,
        ledger: list[Transaction],
        now: Optional[datetime] = None,
    ) -> tuple[list[Transaction], ReconciliationResult]:
        """
        Clear link fields that point at missing records or at the record
        itself, stripping match annotations with them.
        """
        existing_ids = {t.id for t in ledger}
        now = now or utcnow()
        errors: list[str] = []
        fixed = 0
        result = []

        for record in ledger:
            broken = {
                linked_id
                for linked_id in record.linked_ids()
                if linked_id == record.id or linked_id not in existing_ids
            }
            if not broken:
                result.append(record)
                continue

            cleared = clear_link(record, ids=broken, now=now)
            corrected = self._revalidate(cleared, {}, errors)
            if corrected is None:
                result.append(record)
            else:
                result.append(corrected)
                fixed += 1

        return result, ReconciliationResult(fixed=fixed, errors=errors)

    def diagnose_link_integrity(self, ledger: list[Transaction]) -> LinkIntegrityReport:
        """Report orphaned, one-directional and self links. Read-only."""
        index = LinkIndex(ledger)
        orphaned: list[LinkIssue] = []
        one_directional: list[LinkIssue] = []
        self_links: list[LinkIssue] = []

        for record in ledger:
            for field in LINK_FIELDS:
                linked_id = getattr(record, field)
                if not linked_id:
                    continue
                if linked_id == record.id:
                    self_links.append(LinkIssue(
                        transaction_id=record.id,
                        field=field,
                        linked_id=linked_id,
                        message="Record links to itself",
                    ))
                    continue
                partner = index.get(linked_id)
                if partner is None:
                    orphaned.append(LinkIssue(
                        transaction_id=record.id,
                        field=field,
                        linked_id=linked_id,
                        message="Linked record does not exist",
                    ))
                elif record.id not in partner.linked_ids():
                    one_directional.append(LinkIssue(
                        transaction_id=record.id,
                        field=field,
                        linked_id=linked_id,
                        message="Linked record does not link back",
                    ))

        return LinkIntegrityReport(
            total_transactions=len(ledger),
            total_links=len(index.links()),
            orphaned_links=orphaned,
            one_directional_links=one_directional,
            self_links=self_links,
        )
