"""
Shared fixtures for the ledger test suite.

No real storage or API calls: every service runs against the in-memory
backends.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_core.audit import AuditLogger
from ledger_core.config import LedgerSettings
from ledger_core.ledger import LedgerService
from ledger_core.models import Transaction, TransactionInput, TransactionType
from ledger_core.services.storage import InMemoryAuditStore, InMemoryLedgerStore


def build_input(**overrides) -> TransactionInput:
    """A valid candidate record; override any field."""
    data = {
        "transaction_date": date(2025, 1, 15),
        "amount": Decimal("-4.50"),
        "description": "Coffee Shop Purchase",
        "account": "A",
        "category": "Dining",
        "type": TransactionType.EXPENSE,
    }
    data.update(overrides)
    return TransactionInput(**data)


def build_transaction(**overrides) -> Transaction:
    """A stored record; override any field, including id."""
    data = {
        "transaction_date": date(2025, 1, 15),
        "amount": Decimal("-4.50"),
        "description": "Coffee Shop Purchase",
        "account": "A",
        "category": "Dining",
        "type": TransactionType.EXPENSE,
    }
    data.update(overrides)
    return Transaction(**data)


def build_transfer_leg(id: str, amount: str, account: str, day: int = 10, **overrides) -> Transaction:
    """One leg of an internal transfer in January 2025."""
    data = {
        "id": id,
        "transaction_date": date(2025, 1, day),
        "amount": Decimal(amount),
        "description": "Transfer",
        "account": account,
        "category": "Internal Transfer",
        "type": TransactionType.TRANSFER,
    }
    data.update(overrides)
    return Transaction(**data)


@pytest.fixture
def make_input():
    return build_input


@pytest.fixture
def make_transaction():
    return build_transaction


@pytest.fixture
def make_leg():
    return build_transfer_leg


@pytest.fixture
def ledger_settings():
    return LedgerSettings(
        storage_backend="memory",
        init_wait_timeout_seconds=0.2,
    )


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def audit_store():
    return InMemoryAuditStore()


@pytest.fixture
def service(store, audit_store, ledger_settings):
    return LedgerService(
        store,
        audit_logger=AuditLogger(audit_store),
        settings=ledger_settings,
    )
