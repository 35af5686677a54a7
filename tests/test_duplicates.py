"""
Tests for duplicate detection against the stored ledger.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_core.matching import DuplicateDetector
from ledger_core.models import DuplicateDetectionConfig, MatchType


@pytest.fixture
def detector():
    return DuplicateDetector()


class TestDetect:
    """Tests for DuplicateDetector.detect."""

    def test_exact_duplicate(self, detector, make_input, make_transaction):
        existing = [make_transaction(id="t1")]
        result = detector.detect([make_input()], existing)

        assert len(result.duplicates) == 1
        assert result.unique_transactions == []
        duplicate = result.duplicates[0]
        assert duplicate.existing_transaction.id == "t1"
        assert duplicate.similarity == 1.0
        assert duplicate.match_type == MatchType.EXACT
        assert duplicate.match_fields == ["account", "amount", "date", "description"]

    def test_near_duplicate_reports_differences(self, detector, make_input, make_transaction):
        existing = [make_transaction(id="t1")]
        candidate = make_input(transaction_date=date(2025, 1, 16), amount=Decimal("-4.55"))
        result = detector.detect([candidate], existing)

        assert len(result.duplicates) == 1
        duplicate = result.duplicates[0]
        assert duplicate.similarity == pytest.approx(0.959, abs=1e-3)
        assert duplicate.days_difference == 1
        assert duplicate.amount_difference == Decimal("0.05")
        assert duplicate.match_type == MatchType.TOLERANCE

    def test_same_payment_months_apart_is_unique(self, detector, make_input, make_transaction):
        """
        A recurring small credit half a year apart only reaches
        0 + 30 + 30 + 15 = 0.75, below the threshold.
        """
        existing = [make_transaction(
            id="t1",
            transaction_date=date(2025, 1, 1),
            amount=Decimal("0.05"),
            description="Credit Dividend",
            category="Interest",
        )]
        candidate = make_input(
            transaction_date=date(2025, 6, 30),
            amount=Decimal("0.05"),
            description="Credit Dividend",
            category="Interest",
        )
        result = detector.detect([candidate], existing)

        assert result.duplicates == []
        assert result.unique_transactions == [candidate]

    def test_threshold_is_inclusive(self, make_input, make_transaction):
        """0.75 is a duplicate once the threshold is lowered to 0.75."""
        detector = DuplicateDetector(threshold=0.75)
        existing = [make_transaction(transaction_date=date(2025, 1, 1))]
        candidate = make_input(transaction_date=date(2025, 6, 30))

        assert len(detector.detect([candidate], existing).duplicates) == 1

    def test_first_stored_match_wins(self, detector, make_input, make_transaction):
        """A later, identical record does not replace an earlier qualifying one."""
        existing = [
            make_transaction(id="near", transaction_date=date(2025, 1, 16)),
            make_transaction(id="exact"),
        ]
        result = detector.detect([make_input()], existing)

        assert result.duplicates[0].existing_transaction.id == "near"

    def test_every_candidate_appears_once(self, detector, make_input, make_transaction):
        existing = [make_transaction()]
        candidates = [
            make_input(),
            make_input(description="Grocery Store", amount=Decimal("-82.10")),
            make_input(account="B"),
        ]
        result = detector.detect(candidates, existing)

        assert len(result.duplicates) + len(result.unique_transactions) == len(candidates)
        assert len(result.duplicates) == 2
        assert result.unique_transactions == [candidates[1]]

    def test_empty_ledger_keeps_everything(self, detector, make_input):
        candidates = [make_input(), make_input(amount=Decimal("-10.00"))]
        result = detector.detect(candidates, [])

        assert result.duplicates == []
        assert result.unique_transactions == candidates

    def test_result_carries_config(self, detector, make_input):
        config = DuplicateDetectionConfig(date_tolerance=5)
        result = detector.detect([make_input()], [], config)
        assert result.config == config


class TestFindExistingDuplicates:
    """Tests for scanning the stored ledger for duplicates."""

    def test_reports_later_record_once(self, detector, make_transaction):
        ledger = [
            make_transaction(id="a"),
            make_transaction(id="b"),
            make_transaction(id="c"),
        ]
        found = detector.find_existing_duplicates(ledger)

        assert [d.new_transaction.id for d in found] == ["b", "c"]
        assert all(d.existing_transaction.id == "a" for d in found)

    def test_distinct_records(self, detector, make_transaction):
        ledger = [
            make_transaction(id="a"),
            make_transaction(id="b", description="Rent", amount=Decimal("-1500.00")),
        ]
        assert detector.find_existing_duplicates(ledger) == []
