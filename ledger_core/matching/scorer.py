"""
Similarity Scorer

Computes a weighted similarity between two transaction records. Used by
duplicate detection to decide whether a newly observed record is already
on the ledger.

Scoring (points):
- Date (25): same day 25; within date_tolerance max(10, 25 - 3 * days)
- Amount (30): identical 30; within tolerance max(15, 30 - 100 * relative)
- Description (30): identical 30; otherwise ratio * 30 when the
  character-overlap ratio exceeds 0.7
- Account (15): identical 15; mismatch 5 unless require_same_account

The total is divided by the maximum achievable, so similarity is in [0, 1].

NOTE: The description ratio is a bag-of-characters overlap, not an edit
distance. "abc" and "cba" score 1.0.
"""

from collections import Counter
from decimal import Decimal
from typing import Optional

from ledger_core.models.reports import MatchType, SimilarityResult
from ledger_core.models.transaction import DuplicateDetectionConfig, TransactionBase


# =============================================================================
# WEIGHTS AND THRESHOLDS
# =============================================================================

DATE_WEIGHT = 25
AMOUNT_WEIGHT = 30
DESCRIPTION_WEIGHT = 30
ACCOUNT_WEIGHT = 15

# Flat credit for an account mismatch when accounts need not agree
ACCOUNT_MISMATCH_SCORE = 5

MIN_DATE_SCORE = 10
DATE_PENALTY_PER_DAY = 3
MIN_AMOUNT_SCORE = 15

# Description ratio must be strictly above this
DESCRIPTION_RATIO_THRESHOLD = 0.7

# Similarity at or above this makes a pair a duplicate
DUPLICATE_THRESHOLD = 0.8


# =============================================================================
# HELPERS
# =============================================================================

def character_overlap_ratio(a: str, b: str) -> float:
    """
    Fraction of the longer string covered by characters of the shorter.

    Each character of the shorter string may be matched to at most one
    occurrence in the longer string.
    """
    shorter, longer = (a, b) if len(a) <= len(b) else (b, a)
    if not longer:
        return 1.0
    common = Counter(shorter) & Counter(longer)
    return sum(common.values()) / len(longer)


def relative_difference(a: Decimal, b: Decimal) -> float:
    """|a - b| relative to the larger magnitude (0 when both are zero)."""
    largest = max(abs(a), abs(b))
    if largest == 0:
        return 0.0
    return float(abs(a - b) / largest)


def amounts_within_tolerance(
    a: Decimal,
    b: Decimal,
    relative_tolerance: float,
    fixed_tolerance: Decimal,
) -> bool:
    """
    True if a and b agree within the relative OR the absolute tolerance.
    """
    if a == b:
        return True
    if abs(a - b) <= fixed_tolerance:
        return True
    return relative_difference(a, b) <= relative_tolerance


def days_between(a: TransactionBase, b: TransactionBase) -> int:
    return abs((a.transaction_date - b.transaction_date).days)


# =============================================================================
# SCORER
# =============================================================================

class SimilarityScorer:
    """
    Weighted similarity between two records.

    Pure: never mutates its arguments.
    """

    def __init__(self, config: Optional[DuplicateDetectionConfig] = None):
        self._config = config or DuplicateDetectionConfig()

    @property
    def config(self) -> DuplicateDetectionConfig:
        return self._config

    def score(
        self,
        a: TransactionBase,
        b: TransactionBase,
        config: Optional[DuplicateDetectionConfig] = None,
    ) -> SimilarityResult:
        """
        Score two records against each other.

        Args:
            a: First record (existing or candidate)
            b: Second record
            config: Tolerances; falls back to the scorer's default config

        Returns:
            SimilarityResult with the normalized similarity and the fields
            that contributed to it
        """
        config = config or self._config

        total = 0.0
        max_score = 0
        match_fields: set[str] = set()
        match_type = MatchType.EXACT
        amount_difference: Optional[Decimal] = None
        days_difference: Optional[int] = None

        # Date
        max_score += DATE_WEIGHT
        days = days_between(a, b)
        if days == 0:
            total += DATE_WEIGHT
            match_fields.add("date")
        elif days <= config.date_tolerance:
            total += max(MIN_DATE_SCORE, DATE_WEIGHT - DATE_PENALTY_PER_DAY * days)
            match_fields.add("date")
            days_difference = days
            match_type = MatchType.TOLERANCE

        # Amount
        max_score += AMOUNT_WEIGHT
        difference = abs(a.amount - b.amount)
        if difference == 0:
            total += AMOUNT_WEIGHT
            match_fields.add("amount")
        elif amounts_within_tolerance(
            a.amount,
            b.amount,
            config.amount_tolerance,
            config.fixed_amount_tolerance,
        ):
            relative = relative_difference(a.amount, b.amount)
            total += max(MIN_AMOUNT_SCORE, AMOUNT_WEIGHT - 100 * relative)
            match_fields.add("amount")
            amount_difference = difference
            match_type = MatchType.TOLERANCE

        # Description
        max_score += DESCRIPTION_WEIGHT
        # Raw strings: comparison is case sensitive
        if a.description == b.description:
            total += DESCRIPTION_WEIGHT
            match_fields.add("description")
        elif not config.require_exact_description:
            ratio = character_overlap_ratio(a.description, b.description)
            if ratio > DESCRIPTION_RATIO_THRESHOLD:
                total += ratio * DESCRIPTION_WEIGHT
                match_fields.add("description")
                if ratio < 1.0:
                    match_type = MatchType.TOLERANCE

        # Account
        max_score += ACCOUNT_WEIGHT
        if a.account == b.account:
            total += ACCOUNT_WEIGHT
            match_fields.add("account")
        elif not config.require_same_account:
            total += ACCOUNT_MISMATCH_SCORE

        similarity = min(1.0, total / max_score) if max_score else 0.0

        return SimilarityResult(
            similarity=similarity,
            match_fields=match_fields,
            amount_difference=amount_difference,
            days_difference=days_difference,
            match_type=match_type,
        )

    def is_duplicate(
        self,
        a: TransactionBase,
        b: TransactionBase,
        config: Optional[DuplicateDetectionConfig] = None,
        threshold: float = DUPLICATE_THRESHOLD,
    ) -> bool:
        return self.score(a, b, config).similarity >= threshold
