"""
Duplicate Detection

Checks candidate records against the stored ledger before they are
admitted. A candidate is a duplicate of the FIRST stored record (in stored
order) whose similarity reaches the threshold; later, possibly better,
matches are not considered.

DESIGN DECISION: Detection never mutates the ledger. The caller decides
what to do with the duplicates (usually: show them to the user and admit
only the unique records).
"""

from typing import Optional

from ledger_core.matching.scorer import DUPLICATE_THRESHOLD, SimilarityScorer
from ledger_core.models.reports import (
    DuplicateDetectionResult,
    DuplicateTransaction,
    SimilarityResult,
)
from ledger_core.models.transaction import (
    DuplicateDetectionConfig,
    Transaction,
    TransactionBase,
    TransactionInput,
)


class DuplicateDetector:
    """
    Finds candidates that duplicate records already on the ledger.
    """

    def __init__(
        self,
        scorer: Optional[SimilarityScorer] = None,
        threshold: float = DUPLICATE_THRESHOLD,
    ):
        self._scorer = scorer or SimilarityScorer()
        self._threshold = threshold

    @property
    def threshold(self) -> float:
        return self._threshold

    def _to_duplicate(
        self,
        existing: Transaction,
        candidate: TransactionBase,
        result: SimilarityResult,
    ) -> DuplicateTransaction:
        return DuplicateTransaction(
            existing_transaction=existing,
            new_transaction=candidate,
            match_fields=sorted(result.match_fields),
            similarity=result.similarity,
            amount_difference=result.amount_difference,
            days_difference=result.days_difference,
            match_type=result.match_type,
        )

    def _first_match(
        self,
        candidate: TransactionBase,
        existing: list[Transaction],
        config: DuplicateDetectionConfig,
    ) -> Optional[DuplicateTransaction]:
        for stored in existing:
            result = self._scorer.score(stored, candidate, config)
            if result.similarity >= self._threshold:
                return self._to_duplicate(stored, candidate, result)
        return None

    def detect(
        self,
        candidates: list[TransactionInput],
        existing: list[Transaction],
        config: Optional[DuplicateDetectionConfig] = None,
    ) -> DuplicateDetectionResult:
        """
        Split candidates into duplicates and unique records.

        Args:
            candidates: Records about to be imported
            existing: The stored ledger, in stored order
            config: Tolerances (defaults to the scorer's config)

        Returns:
            DuplicateDetectionResult; every candidate appears exactly once,
            either as a duplicate or as a unique transaction
        """
        config = config or self._scorer.config
        duplicates: list[DuplicateTransaction] = []
        unique: list[TransactionInput] = []

        for candidate in candidates:
            match = self._first_match(candidate, existing, config)
            if match is None:
                unique.append(candidate)
            else:
                duplicates.append(match)

        return DuplicateDetectionResult(
            duplicates=duplicates,
            unique_transactions=unique,
            config=config,
        )

    def find_existing_duplicates(
        self,
        ledger: list[Transaction],
        config: Optional[DuplicateDetectionConfig] = None,
    ) -> list[DuplicateTransaction]:
        """
        Pairwise scan of the stored ledger for records that duplicate an
        earlier record.

        Each record is reported at most once, as the later element of its
        first matching pair. O(n^2); intended for an on-demand cleanup view.
        """
        config = config or self._scorer.config
        found: list[DuplicateTransaction] = []

        for idx in range(1, len(ledger)):
            later = ledger[idx]
            match = self._first_match(later, ledger[:idx], config)
            if match is not None:
                found.append(match)

        return found
