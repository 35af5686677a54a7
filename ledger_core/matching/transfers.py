"""
Transfer Matching

An internal transfer shows up on a ledger as two records: an outflow from
one account and an inflow to another. The matcher pairs those legs so that
reports can count the movement once (or not at all).

Auto-match rules for a pair:
1. Both records are transfers and neither is linked yet
2. Different accounts
3. Opposite signs
4. Magnitudes within the duplicate-detection amount tolerance
   (relative OR absolute)
5. Dates within the window (default 7 days)

For each unlinked source in stored order the first qualifying partner wins.
Both legs are linked in the same pass and linked records are never
reconsidered, so re-running on a fully linked ledger changes nothing.

The same module also pairs same-account reversals (a charge and its
cancellation) among non-transfer records.

DESIGN DECISION: Every function here takes the ledger and returns a new
list. The matcher never persists; the ledger service decides when to.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from ledger_core.exceptions import TransferMatchError
from ledger_core.matching.links import (
    AUTO_TRANSFER_NOTE,
    LinkIndex,
    MANUAL_TRANSFER_NOTE,
    REVERSAL_NOTE,
    clear_link,
    link_pair,
)
from ledger_core.matching.scorer import amounts_within_tolerance, days_between
from ledger_core.models.reports import TransferMatch, TransferMatchType
from ledger_core.models.transaction import (
    DuplicateDetectionConfig,
    Transaction,
    utcnow,
)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_TRANSFER_WINDOW_DAYS = 7
MAX_CONFIDENCE = 0.99

# Relaxed search offered to the user for manual confirmation
SUGGESTION_WINDOW_DAYS = 8
SUGGESTION_AMOUNT_TOLERANCE = 0.12
MAX_SUGGESTION_CONFIDENCE = 0.85

# Same-account reversals
REVERSAL_WINDOW_DAYS = 1
REVERSAL_AMOUNT_TOLERANCE = 0.01
REVERSAL_MIN_CONFIDENCE = 0.7
CANCELLATION_KEYWORDS = (
    "cancel",
    "reverse",
    "reversal",
    "refund",
    "correction",
    "adjustment",
)


# =============================================================================
# HELPERS
# =============================================================================

def magnitude_difference(a: Transaction, b: Transaction) -> Decimal:
    return abs(abs(a.amount) - abs(b.amount))


def opposite_signs(a: Transaction, b: Transaction) -> bool:
    return (a.amount < 0 < b.amount) or (b.amount < 0 < a.amount)


def within_average_tolerance(a: Transaction, b: Transaction, tolerance: float) -> bool:
    """Magnitude difference relative to the average magnitude."""
    average = (abs(a.amount) + abs(b.amount)) / 2
    if average == 0:
        return False
    return float(magnitude_difference(a, b) / average) <= tolerance


def primary_first(a: Transaction, b: Transaction) -> tuple[Transaction, Transaction]:
    """Order two legs so the outflow comes first."""
    if b.amount < 0 <= a.amount:
        return b, a
    return a, b


def descriptions_indicate_cancellation(desc_a: str, desc_b: str) -> bool:
    """
    True if either description carries a cancellation keyword, or the two
    share at least 60% of their words (words of 3+ characters).
    """
    lower_a = desc_a.lower()
    lower_b = desc_b.lower()
    if any(word in lower_a or word in lower_b for word in CANCELLATION_KEYWORDS):
        return True

    words_a = [w for w in lower_a.split() if len(w) > 2]
    words_b = [w for w in lower_b.split() if len(w) > 2]
    if not words_a or not words_b:
        return False

    common = [w for w in words_a if w in words_b]
    return (len(common) * 2) / (len(words_a) + len(words_b)) >= 0.6


class TransferMatcher:
    """
    Pairs the two legs of internal transfers and same-account reversals.

    Usage:
        matcher = TransferMatcher()
        ledger = matcher.auto_match(ledger)
    """

    def __init__(
        self,
        config: Optional[DuplicateDetectionConfig] = None,
        window_days: int = DEFAULT_TRANSFER_WINDOW_DAYS,
    ):
        self._config = config or DuplicateDetectionConfig()
        self._window_days = window_days

    # =========================================================================
    # AUTO MATCHING
    # =========================================================================

    @staticmethod
    def is_candidate(transaction: Transaction) -> bool:
        return transaction.is_transfer and not transaction.is_linked

    def is_pair(
        self,
        a: Transaction,
        b: Transaction,
        window_days: Optional[int] = None,
        config: Optional[DuplicateDetectionConfig] = None,
    ) -> bool:
        """Whether two unlinked transfer records qualify as legs of one transfer."""
        config = config or self._config
        window_days = self._window_days if window_days is None else window_days

        if a.id == b.id or a.account == b.account:
            return False
        if not opposite_signs(a, b):
            return False
        if not amounts_within_tolerance(
            abs(a.amount),
            abs(b.amount),
            config.amount_tolerance,
            config.fixed_amount_tolerance,
        ):
            return False
        return days_between(a, b) <= window_days

    @staticmethod
    def match_confidence(a: Transaction, b: Transaction) -> float:
        """
        Confidence for an auto-matched pair.

        0.5 base, plus up to 0.3 for date proximity and up to 0.3 for
        amount precision, capped at 0.99.
        """
        confidence = 0.5

        days = days_between(a, b)
        if days == 0:
            confidence += 0.3
        elif days <= 1:
            confidence += 0.2
        elif days <= 3:
            confidence += 0.1

        difference = magnitude_difference(a, b)
        if difference == 0:
            confidence += 0.3
        elif difference <= Decimal("0.01"):
            confidence += 0.2
        elif difference <= 1:
            confidence += 0.1

        return min(round(confidence, 2), MAX_CONFIDENCE)

    def _build_match(
        self,
        a: Transaction,
        b: Transaction,
        confidence: float,
        match_type: Optional[TransferMatchType] = None,
        reasoning: Optional[str] = None,
        is_verified: bool = False,
    ) -> TransferMatch:
        source, target = primary_first(a, b)
        days = days_between(source, target)
        difference = magnitude_difference(source, target)
        if match_type is None:
            match_type = (
                TransferMatchType.EXACT
                if days == 0 and difference == 0
                else TransferMatchType.APPROXIMATE
            )
        return TransferMatch(
            source_transaction_id=source.id,
            target_transaction_id=target.id,
            confidence=confidence,
            match_type=match_type,
            date_difference=days,
            amount_difference=difference,
            reasoning=reasoning or (
                f"{source.account} -> {target.account}, {days} day(s) apart"
            ),
            is_verified=is_verified,
        )

    def find_matches(
        self,
        ledger: list[Transaction],
        window_days: Optional[int] = None,
        config: Optional[DuplicateDetectionConfig] = None,
    ) -> list[TransferMatch]:
        """
        Greedy pairing of unlinked transfer records. Read-only.
        """
        candidates = [t for t in ledger if self.is_candidate(t)]
        matched: set[str] = set()
        matches: list[TransferMatch] = []

        for source in candidates:
            if source.id in matched:
                continue
            for target in candidates:
                if target.id in matched or target.id == source.id:
                    continue
                if self.is_pair(source, target, window_days, config):
                    matches.append(
                        self._build_match(source, target, self.match_confidence(source, target))
                    )
                    matched.update((source.id, target.id))
                    break

        return matches

    def apply_matches(
        self,
        ledger: list[Transaction],
        matches: list[TransferMatch],
        now: Optional[datetime] = None,
    ) -> list[Transaction]:
        """Link both legs of every match. Returns a new ledger list."""
        now = now or utcnow()
        by_id = {t.id: t for t in ledger}

        for match in matches:
            source = by_id.get(match.source_transaction_id)
            target = by_id.get(match.target_transaction_id)
            if source is None or target is None:
                continue
            note = AUTO_TRANSFER_NOTE.format(confidence=match.confidence)
            by_id[source.id], by_id[target.id] = link_pair(source, target, note, now=now)

        return [by_id[t.id] for t in ledger]

    def auto_match(
        self,
        ledger: list[Transaction],
        window_days: Optional[int] = None,
        config: Optional[DuplicateDetectionConfig] = None,
    ) -> list[Transaction]:
        """
        Find and link every qualifying transfer pair.

        Returns:
            A new ledger list; only link fields and notes of matched
            records differ from the input
        """
        matches = self.find_matches(ledger, window_days, config)
        if not matches:
            return list(ledger)
        return self.apply_matches(ledger, matches)

    # =========================================================================
    # MANUAL MATCHING
    # =========================================================================

    def manual_match(
        self,
        ledger: list[Transaction],
        source_id: str,
        target_id: str,
    ) -> list[Transaction]:
        """
        Link two transfer records chosen by the user.

        Raises:
            TransferMatchError: If either record is missing, is not a
                transfer, is already linked, or both are the same record
                or on the same account
        """
        if source_id == target_id:
            raise TransferMatchError("A transaction cannot be matched with itself")

        index = LinkIndex(ledger)
        source = index.get(source_id)
        target = index.get(target_id)
        if source is None or target is None:
            missing = source_id if source is None else target_id
            raise TransferMatchError(f"Transaction not found: {missing}")
        for record in (source, target):
            if not record.is_transfer:
                raise TransferMatchError(f"Transaction {record.id} is not a transfer")
            if record.is_linked:
                raise TransferMatchError(f"Transaction {record.id} is already matched")
        if source.account == target.account:
            raise TransferMatchError("Both transactions belong to the same account")

        linked_source, linked_target = link_pair(source, target, MANUAL_TRANSFER_NOTE)
        updated = {linked_source.id: linked_source, linked_target.id: linked_target}
        return [updated.get(t.id, t) for t in ledger]

    def unmatch(
        self,
        ledger: list[Transaction],
        transaction_id: str,
    ) -> tuple[list[Transaction], list[str]]:
        """
        Remove the link on a record and on every record pointing at it.

        Returns:
            (new ledger, ids of records that changed)
        """
        index = LinkIndex(ledger)
        record = index.get(transaction_id)
        if record is None:
            return list(ledger), []

        now = utcnow()
        changed: dict[str, Transaction] = {}

        cleared = clear_link(record, now=now)
        if cleared is not record:
            changed[record.id] = cleared

        # Partners this record names, and anything else that names it
        related = (record.linked_ids() | index.referrers_of(transaction_id)) - {transaction_id}
        for partner_id in related:
            partner = index.get(partner_id)
            if partner is None:
                continue
            cleared_partner = clear_link(partner, ids={transaction_id}, now=now)
            if cleared_partner is not partner:
                changed[partner_id] = cleared_partner

        return [changed.get(t.id, t) for t in ledger], list(changed)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def matched_transfers(self, ledger: list[Transaction]) -> list[TransferMatch]:
        """One summary per linked transfer pair, outflow leg first."""
        index = LinkIndex(ledger)
        matches = []
        for link in index.links():
            a = index.get(link.leg_a)
            b = index.get(link.leg_b)
            if not (a.is_transfer and b.is_transfer and a.transfer_id and b.transfer_id):
                continue
            notes = f"{a.notes or ''}\n{b.notes or ''}"
            match_type = (
                TransferMatchType.MANUAL
                if MANUAL_TRANSFER_NOTE in notes
                else None
            )
            matches.append(
                self._build_match(
                    a,
                    b,
                    self.match_confidence(a, b),
                    match_type=match_type,
                    reasoning=f"Existing match: {a.account} <-> {b.account}",
                    is_verified=True,
                )
            )
        return matches

    def unmatched_transfers(self, ledger: list[Transaction]) -> list[Transaction]:
        return [t for t in ledger if self.is_candidate(t)]

    @staticmethod
    def suggestion_confidence(a: Transaction, b: Transaction) -> float:
        """Confidence for a relaxed suggestion; capped at 0.85."""
        confidence = 0.4

        days = days_between(a, b)
        if days == 0:
            confidence += 0.2
        elif days <= 1:
            confidence += 0.15
        elif days <= 3:
            confidence += 0.1
        elif days <= SUGGESTION_WINDOW_DAYS:
            confidence += 0.05

        difference = magnitude_difference(a, b)
        if difference == 0:
            confidence += 0.3
        elif difference <= Decimal("0.01"):
            confidence += 0.25
        elif difference <= 1:
            confidence += 0.15

        # Single-currency ledger
        confidence += 0.1

        return min(round(confidence, 2), MAX_SUGGESTION_CONFIDENCE)

    def suggest_matches(
        self,
        ledger: list[Transaction],
        window_days: int = SUGGESTION_WINDOW_DAYS,
        tolerance: float = SUGGESTION_AMOUNT_TOLERANCE,
    ) -> list[TransferMatch]:
        """
        Relaxed search among unlinked transfers for the user to confirm.

        Every qualifying pair is returned (a record may appear in several
        suggestions), highest confidence first. Read-only.
        """
        candidates = self.unmatched_transfers(ledger)
        suggestions: list[TransferMatch] = []

        for i, a in enumerate(candidates):
            for b in candidates[i + 1:]:
                if a.account == b.account or not opposite_signs(a, b):
                    continue
                if not within_average_tolerance(a, b, tolerance):
                    continue
                days = days_between(a, b)
                if days > window_days:
                    continue
                suggestions.append(
                    self._build_match(
                        a,
                        b,
                        self.suggestion_confidence(a, b),
                        match_type=TransferMatchType.APPROXIMATE,
                        reasoning=(
                            f"Possible match: {a.account} <-> {b.account}, "
                            f"{days} day(s) apart"
                        ),
                    )
                )

        suggestions.sort(key=lambda m: m.confidence, reverse=True)
        return suggestions

    # =========================================================================
    # SAME-ACCOUNT REVERSALS
    # =========================================================================

    @staticmethod
    def reversal_confidence(a: Transaction, b: Transaction) -> float:
        confidence = 0.5

        days = days_between(a, b)
        if days == 0:
            confidence += 0.3
        elif days <= 1:
            confidence += 0.1

        difference = magnitude_difference(a, b)
        if difference == 0:
            confidence += 0.15
        elif difference <= Decimal("0.01"):
            confidence += 0.1
        else:
            confidence -= 0.1

        if descriptions_indicate_cancellation(a.description, b.description):
            confidence += 0.2
        else:
            confidence -= 0.05

        return min(max(round(confidence, 2), 0.0), MAX_CONFIDENCE)

    def find_reversal_matches(self, ledger: list[Transaction]) -> list[TransferMatch]:
        """
        Pair same-account opposite amounts among unlinked non-transfer
        records (a charge and its cancellation or refund). Read-only.
        """
        candidates = [t for t in ledger if not t.is_transfer and not t.is_linked]
        matched: set[str] = set()
        matches: list[TransferMatch] = []

        for source in candidates:
            if source.id in matched:
                continue
            for target in candidates:
                if target.id in matched or target.id == source.id:
                    continue
                if source.account != target.account or not opposite_signs(source, target):
                    continue
                if not within_average_tolerance(source, target, REVERSAL_AMOUNT_TOLERANCE):
                    continue
                if days_between(source, target) > REVERSAL_WINDOW_DAYS:
                    continue
                matches.append(
                    self._build_match(
                        source,
                        target,
                        self.reversal_confidence(source, target),
                        reasoning=f"Same-account reversal on {source.account}",
                    )
                )
                matched.update((source.id, target.id))
                break

        return matches

    def auto_match_reversals(
        self,
        ledger: list[Transaction],
        min_confidence: float = REVERSAL_MIN_CONFIDENCE,
    ) -> tuple[list[Transaction], list[TransferMatch]]:
        """
        Link reversal pairs at or above min_confidence.

        Only `reimbursement_id` is set; reversals are not transfers.

        Returns:
            (new ledger, applied matches)
        """
        matches = [
            m for m in self.find_reversal_matches(ledger)
            if m.confidence >= min_confidence
        ]
        if not matches:
            return list(ledger), []

        now = utcnow()
        by_id = {t.id: t for t in ledger}
        for match in matches:
            source = by_id[match.source_transaction_id]
            target = by_id[match.target_transaction_id]
            note = REVERSAL_NOTE.format(confidence=match.confidence)
            by_id[source.id], by_id[target.id] = link_pair(
                source, target, note, transfer=False, now=now
            )

        return [by_id[t.id] for t in ledger], matches
