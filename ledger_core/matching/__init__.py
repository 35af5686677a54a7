"""Matching package: duplicate detection, transfer pairing and the link index."""

from ledger_core.matching.scorer import (
    DUPLICATE_THRESHOLD,
    SimilarityScorer,
    character_overlap_ratio,
)
from ledger_core.matching.duplicates import DuplicateDetector
from ledger_core.matching.links import (
    LinkIndex,
    TransferLink,
    clear_link,
    link_pair,
    strip_match_notes,
)
from ledger_core.matching.transfers import TransferMatcher

__all__ = [
    "DUPLICATE_THRESHOLD",
    "DuplicateDetector",
    "LinkIndex",
    "SimilarityScorer",
    "TransferLink",
    "TransferMatcher",
    "character_overlap_ratio",
    "clear_link",
    "link_pair",
    "strip_match_notes",
]
