"""
Link Index

Two records are linked when each one's `reimbursement_id` (and, for
transfer pairings, `transfer_id`) names the other. The link fields live on
the records themselves because that is what gets persisted; this module
is the only place that writes them, and it always writes both legs
together.

DESIGN DECISION: LinkIndex is rebuilt from the ledger on every use and is
never persisted. The record fields remain the single source of truth.
"""

import re
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from ledger_core.models.transaction import Transaction, utcnow


# =============================================================================
# MATCH ANNOTATIONS
# =============================================================================

AUTO_TRANSFER_NOTE = "[Matched Transfer: {confidence:.2f} confidence]"
MANUAL_TRANSFER_NOTE = "[Manual Transfer Match]"
REVERSAL_NOTE = "[Matched Transaction: {confidence:.2f} confidence]"

MATCH_NOTE_PATTERNS = [
    re.compile(r"\n?\[Matched Transfer: .+?\]"),
    re.compile(r"\n?\[Manual Transfer Match\]"),
    re.compile(r"\n?\[Matched Transaction: .+?\]"),
]


def append_note(notes: Optional[str], annotation: str) -> str:
    """Append an annotation on its own line."""
    if notes:
        return f"{notes}\n{annotation}"
    return annotation


def strip_match_notes(notes: Optional[str]) -> Optional[str]:
    """Remove every match annotation; returns None if nothing is left."""
    if not notes:
        return notes
    for pattern in MATCH_NOTE_PATTERNS:
        notes = pattern.sub("", notes)
    notes = notes.strip()
    return notes or None


# =============================================================================
# LINK MODELS
# =============================================================================

class TransferLink(BaseModel):
    """An unordered pair of linked transaction ids."""
    model_config = ConfigDict(frozen=True)

    leg_a: str
    leg_b: str

    @model_validator(mode="after")
    def validate_distinct_legs(self) -> "TransferLink":
        if self.leg_a == self.leg_b:
            raise ValueError("A transaction cannot be linked to itself")
        return self

    def other(self, transaction_id: str) -> str:
        if transaction_id == self.leg_a:
            return self.leg_b
        if transaction_id == self.leg_b:
            return self.leg_a
        raise KeyError(transaction_id)

    def __contains__(self, transaction_id: object) -> bool:
        return transaction_id in (self.leg_a, self.leg_b)


class LinkIndex:
    """
    Read-only view of the links in a ledger.

    Usage:
        index = LinkIndex(ledger)
        index.referrers_of(deleted_id)   # who points at this record
        index.links()                     # each bidirectional pair once
    """

    def __init__(self, ledger: Iterable[Transaction]):
        self._by_id: dict[str, Transaction] = {}
        self._referrers: dict[str, set[str]] = defaultdict(set)
        for transaction in ledger:
            self._by_id[transaction.id] = transaction
            for linked_id in transaction.linked_ids():
                self._referrers[linked_id].add(transaction.id)

    def __contains__(self, transaction_id: object) -> bool:
        return transaction_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, transaction_id: str) -> Optional[Transaction]:
        return self._by_id.get(transaction_id)

    def referrers_of(self, transaction_id: str) -> set[str]:
        """IDs of records whose link fields name this id."""
        return set(self._referrers.get(transaction_id, set()))

    def partner_of(self, transaction_id: str) -> Optional[str]:
        transaction = self._by_id.get(transaction_id)
        if transaction is None:
            return None
        return transaction.transfer_id or transaction.reimbursement_id

    def is_bidirectional(self, transaction_id: str) -> bool:
        """True if this record's partner exists and points back."""
        partner_id = self.partner_of(transaction_id)
        if partner_id is None or partner_id == transaction_id:
            return False
        partner = self._by_id.get(partner_id)
        return partner is not None and transaction_id in partner.linked_ids()

    def links(self) -> list[TransferLink]:
        """Each bidirectional pair once, in ledger order of its first leg."""
        seen: set[str] = set()
        result = []
        for transaction_id in self._by_id:
            if transaction_id in seen or not self.is_bidirectional(transaction_id):
                continue
            partner_id = self.partner_of(transaction_id)
            seen.update((transaction_id, partner_id))
            result.append(TransferLink(leg_a=transaction_id, leg_b=partner_id))
        return result


# =============================================================================
# LINK MUTATIONS
# =============================================================================

def link_pair(
    a: Transaction,
    b: Transaction,
    annotation: str,
    transfer: bool = True,
    now: Optional[datetime] = None,
) -> tuple[Transaction, Transaction]:
    """
    Link two records to each other. Returns updated copies of both legs.

    Transfer pairings set `reimbursement_id`, `transfer_id` and
    `is_transfer_primary` (True on the outflow leg). Other pairings set
    only `reimbursement_id`.
    """
    link = TransferLink(leg_a=a.id, leg_b=b.id)
    now = now or utcnow()

    def _linked(record: Transaction) -> Transaction:
        partner_id = link.other(record.id)
        update = {
            "reimbursement_id": partner_id,
            "notes": append_note(record.notes, annotation),
            "last_modified_date": now,
        }
        if transfer:
            update["transfer_id"] = partner_id
            update["is_transfer_primary"] = record.amount < 0
        return record.model_copy(update=update)

    return _linked(a), _linked(b)


def clear_link(
    record: Transaction,
    ids: Optional[set[str]] = None,
    now: Optional[datetime] = None,
) -> Transaction:
    """
    Clear link fields on a record. Returns an updated copy.

    Args:
        record: The record to unlink
        ids: Only clear fields that point at one of these ids.
             None clears every link field.
        now: Modification timestamp

    Returns:
        The record unchanged if nothing was cleared, otherwise a copy with
        the link fields cleared and match annotations stripped
    """
    update: dict = {}
    if record.reimbursement_id and (ids is None or record.reimbursement_id in ids):
        update["reimbursement_id"] = None
    if record.transfer_id and (ids is None or record.transfer_id in ids):
        update["transfer_id"] = None
        update["is_transfer_primary"] = None

    if not update:
        return record

    if ids is None:
        update["is_transfer_primary"] = None
    update["notes"] = strip_match_notes(record.notes)
    update["last_modified_date"] = now or utcnow()
    return record.model_copy(update=update)
