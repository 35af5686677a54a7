"""
Result Models for Matching and Reconciliation

Everything the consistency engine reports back to callers: similarity
scores, duplicate detection results, transfer match summaries, link
integrity diagnostics and reconciliation outcomes.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ledger_core.models.transaction import (
    DuplicateDetectionConfig,
    Transaction,
    TransactionBase,
    TransactionInput,
    utcnow,
)


class MatchType(str, Enum):
    """How a duplicate pair matched."""
    EXACT = "exact"
    TOLERANCE = "tolerance"


class TransferMatchType(str, Enum):
    """How a transfer pair was established."""
    EXACT = "exact"
    APPROXIMATE = "approximate"
    MANUAL = "manual"


# =============================================================================
# DUPLICATE DETECTION
# =============================================================================

class SimilarityResult(BaseModel):
    """Weighted similarity between two records."""

    similarity: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Normalized score (0-1)"
    )
    match_fields: set[str] = Field(default_factory=set)
    amount_difference: Optional[Decimal] = None
    days_difference: Optional[int] = None
    match_type: MatchType = MatchType.EXACT


class DuplicateTransaction(BaseModel):
    """
    A candidate paired with the existing record it duplicates.

    Carries the audit details shown to the user before import.
    """

    existing_transaction: Transaction
    new_transaction: TransactionBase
    match_fields: list[str] = Field(default_factory=list)
    similarity: float = Field(ge=0.0, le=1.0)
    amount_difference: Optional[Decimal] = None
    days_difference: Optional[int] = None
    match_type: MatchType = MatchType.EXACT


class DuplicateDetectionResult(BaseModel):
    """Outcome of checking a batch of candidates against the ledger."""

    duplicates: list[DuplicateTransaction] = Field(default_factory=list)
    unique_transactions: list[TransactionInput] = Field(default_factory=list)
    config: DuplicateDetectionConfig


# =============================================================================
# TRANSFER MATCHING
# =============================================================================

class TransferMatch(BaseModel):
    """A pairing of two legs of one internal transfer."""

    source_transaction_id: str
    target_transaction_id: str
    confidence: float = Field(ge=0.0, le=1.0)
    match_type: TransferMatchType
    date_difference: int = Field(ge=0, description="Days between the legs")
    amount_difference: Decimal = Field(ge=0, description="Difference in magnitudes")
    reasoning: Optional[str] = None
    is_verified: bool = False


# =============================================================================
# INTEGRITY DIAGNOSTICS
# =============================================================================

class LinkIssue(BaseModel):
    """A single broken link found by the integrity diagnostic."""

    transaction_id: str
    field: str = Field(
        ...,
        pattern="^(reimbursement_id|transfer_id)$",
    )
    linked_id: str
    message: str


class LinkIntegrityReport(BaseModel):
    """
    Read-only report on link integrity.

    One-directional links are reported only; the diagnostic never
    repairs them.
    """

    checked_at: datetime = Field(default_factory=utcnow)
    total_transactions: int = Field(ge=0)
    total_links: int = Field(ge=0)
    orphaned_links: list[LinkIssue] = Field(default_factory=list)
    one_directional_links: list[LinkIssue] = Field(default_factory=list)
    self_links: list[LinkIssue] = Field(default_factory=list)

    @property
    def is_healthy(self) -> bool:
        return not (self.orphaned_links or self.one_directional_links or self.self_links)

    @property
    def issue_count(self) -> int:
        return len(self.orphaned_links) + len(self.one_directional_links) + len(self.self_links)

    def summary(self) -> str:
        """Human-readable summary for the diagnostic sink."""
        if self.is_healthy:
            return (
                f"Link integrity OK: {self.total_links} links across "
                f"{self.total_transactions} transactions"
            )
        return (
            f"Link integrity issues: {len(self.orphaned_links)} orphaned, "
            f"{len(self.one_directional_links)} one-directional, "
            f"{len(self.self_links)} self-referencing "
            f"({self.total_links} links across {self.total_transactions} transactions)"
        )


class ReconciliationResult(BaseModel):
    """Outcome of a reconciliation pass or migration."""

    fixed: int = Field(default=0, ge=0)
    errors: list[str] = Field(default_factory=list)

    def merge(self, other: "ReconciliationResult") -> "ReconciliationResult":
        return ReconciliationResult(
            fixed=self.fixed + other.fixed,
            errors=self.errors + other.errors,
        )
