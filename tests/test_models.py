"""
Tests for Ledger Core

Test strategy:
1. Unit tests for individual components (models, scorer, matcher, reconciler)
2. Integration tests for the ledger service (with in-memory storage)
3. No real API calls in tests (use fakes)
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from ledger_core.models import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    DuplicateDetectionConfig,
    LinkIntegrityReport,
    LinkIssue,
    ReconciliationResult,
    Transaction,
    TransactionInput,
    TransactionType,
    reserved_type_for,
    type_from_amount,
)


class TestTransactionModels:
    """Tests for transaction Pydantic models."""

    def test_transaction_input_creation(self, make_input):
        """Test TransactionInput model creation."""
        record = make_input(description="  Coffee Shop Purchase  ")

        assert record.amount == Decimal("-4.50")
        assert record.description == "Coffee Shop Purchase"
        assert record.type == TransactionType.EXPENSE
        assert not record.is_linked

    def test_transaction_input_is_strict(self):
        """Strings are not coerced into dates or amounts."""
        with pytest.raises(ValidationError):
            TransactionInput(
                transaction_date="2025-01-15",
                amount="-4.50",
                description="Coffee",
                account="A",
                category="Dining",
                type=TransactionType.EXPENSE,
            )

    def test_transaction_input_forbids_unknown_keys(self, make_input):
        with pytest.raises(ValidationError):
            make_input(merchant_code="5812")

    @pytest.mark.parametrize("field", ["description", "account", "category"])
    def test_required_text_not_blank(self, field, make_input):
        with pytest.raises(ValidationError):
            make_input(**{field: "   "})

    def test_from_input_assigns_identity(self, make_input):
        """Test Transaction.from_input assigns id and timestamps."""
        now = datetime(2025, 3, 1, tzinfo=timezone.utc)
        first = Transaction.from_input(make_input(), now)
        second = Transaction.from_input(make_input(), now)

        assert first.id != second.id
        assert first.added_date == now
        assert first.last_modified_date == now
        assert first.description == "Coffee Shop Purchase"

    def test_stored_transaction_is_lax(self):
        """Stored rows come back as strings and are coerced."""
        record = Transaction.model_validate({
            "id": "t1",
            "transaction_date": "2025-01-15",
            "amount": "-4.50",
            "description": "Coffee",
            "account": "A",
            "category": "Dining",
            "type": "expense",
        })

        assert record.transaction_date == date(2025, 1, 15)
        assert record.amount == Decimal("-4.50")

    def test_linked_ids(self, make_transaction):
        record = make_transaction(reimbursement_id="b", transfer_id="b")

        assert record.is_linked
        assert record.linked_ids() == {"b"}

    def test_reserved_categories(self):
        assert reserved_type_for("Internal Transfer") == TransactionType.TRANSFER
        assert reserved_type_for("Asset Allocation") == TransactionType.ASSET_ALLOCATION
        assert reserved_type_for("Dining") is None
        assert reserved_type_for(None) is None

    def test_type_from_amount(self):
        assert type_from_amount(Decimal("-0.01")) == TransactionType.EXPENSE
        assert type_from_amount(Decimal("0")) == TransactionType.INCOME
        assert type_from_amount(Decimal("12.00")) == TransactionType.INCOME


class TestDuplicateDetectionConfig:
    """Tests for the detection tolerance model."""

    def test_defaults(self):
        config = DuplicateDetectionConfig()

        assert config.amount_tolerance == 0.02
        assert config.fixed_amount_tolerance == Decimal("1.00")
        assert config.date_tolerance == 3
        assert config.require_exact_description is False
        assert config.require_same_account is True

    def test_frozen(self):
        config = DuplicateDetectionConfig()
        with pytest.raises(ValidationError):
            config.date_tolerance = 10

    def test_tolerance_bounds(self):
        with pytest.raises(ValidationError):
            DuplicateDetectionConfig(amount_tolerance=1.5)
        with pytest.raises(ValidationError):
            DuplicateDetectionConfig(date_tolerance=-1)


class TestReportModels:
    """Tests for diagnostic result models."""

    def test_healthy_report(self):
        report = LinkIntegrityReport(total_transactions=4, total_links=2)

        assert report.is_healthy
        assert report.issue_count == 0
        assert report.summary() == "Link integrity OK: 2 links across 4 transactions"

    def test_unhealthy_report(self):
        issue = LinkIssue(
            transaction_id="a",
            field="transfer_id",
            linked_id="gone",
            message="Linked record does not exist",
        )
        report = LinkIntegrityReport(
            total_transactions=1,
            total_links=0,
            orphaned_links=[issue],
        )

        assert not report.is_healthy
        assert report.issue_count == 1
        assert report.summary().startswith("Link integrity issues: 1 orphaned")

    def test_link_issue_field_restricted(self):
        with pytest.raises(ValidationError):
            LinkIssue(transaction_id="a", field="notes", linked_id="b", message="x")

    def test_reconciliation_merge(self):
        merged = ReconciliationResult(fixed=1, errors=["a"]).merge(
            ReconciliationResult(fixed=2, errors=["b"])
        )
        assert merged.fixed == 3
        assert merged.errors == ["a", "b"]


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_ADDED,
            entity_type="transaction",
            entity_id="t1",
            description="Added 1 transaction(s)",
        )

        assert event.event_id is not None
        assert event.timestamp is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test AuditEvent conversion to log dict."""
        correlation_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description="Persisting failed",
            error_message="disk full",
        )
        log_dict = event.to_log_dict()

        assert log_dict["event_type"] == "persistence_failed"
        assert log_dict["severity"] == "error"
        assert log_dict["correlation_id"] == str(correlation_id)
        assert log_dict["error_message"] == "disk full"

    def test_audit_event_to_sheets_row(self):
        event = AuditEventBuilder.transactions_deleted(["a", "b"], ["c"])
        row = event.to_sheets_row()

        assert len(row) == 10
        assert row[2] == "transactions_deleted"
        assert row[5] == ""
        assert '"unlinked_partner_ids": ["c"]' in row[8]

    def test_audit_event_builder(self):
        """Test AuditEventBuilder helper methods."""
        event = AuditEventBuilder.transactions_added(["t1"])
        assert event.event_type == AuditEventType.TRANSACTIONS_ADDED
        assert event.entity_id == "t1"

        event = AuditEventBuilder.migration_completed("internal-transfer-type-sync", 3, [])
        assert event.severity == AuditSeverity.INFO
        assert event.entity_id == "internal-transfer-type-sync"

        event = AuditEventBuilder.migration_completed("internal-transfer-type-sync", 0, ["t1: bad"])
        assert event.severity == AuditSeverity.WARNING

        event = AuditEventBuilder.transfers_matched([("a", "b")], manual=True)
        assert event.details == {"pairs": [["a", "b"]], "manual": True}

        event = AuditEventBuilder.link_integrity_report("x" * 600, healthy=False, details={})
        assert len(event.description) == 500
        assert event.severity == AuditSeverity.WARNING
