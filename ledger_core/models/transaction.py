"""
Core Data Models for the Ledger

These models define the strict schemas for every transaction record the
ledger holds. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Records arriving from the ingestion pipeline are validated
against TransactionInput, which runs Pydantic v2 in strict mode and forbids
unknown keys. Stored records (Transaction) are validated in lax mode so that
JSON and spreadsheet rows can be read back.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# RESERVED CATEGORIES
# =============================================================================

INTERNAL_TRANSFER_CATEGORY = "Internal Transfer"
ASSET_ALLOCATION_CATEGORY = "Asset Allocation"


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp used for record bookkeeping."""
    return datetime.now(timezone.utc)


def new_transaction_id() -> str:
    """Generate an opaque transaction identifier."""
    return str(uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """
    Transaction type.

    CRITICAL: `transfer` and `asset-allocation` are derived from the
    reserved categories and must never disagree with them.
    """
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    ASSET_ALLOCATION = "asset-allocation"


RESERVED_CATEGORY_TYPES: dict[str, TransactionType] = {
    INTERNAL_TRANSFER_CATEGORY: TransactionType.TRANSFER,
    ASSET_ALLOCATION_CATEGORY: TransactionType.ASSET_ALLOCATION,
}


def reserved_type_for(category: Optional[str]) -> Optional[TransactionType]:
    """Return the forced type for a reserved category, or None."""
    if category is None:
        return None
    return RESERVED_CATEGORY_TYPES.get(category)


def type_from_amount(amount: Decimal) -> TransactionType:
    """Negative amounts are expenses, everything else is income."""
    return TransactionType.EXPENSE if amount < 0 else TransactionType.INCOME


# =============================================================================
# TRANSACTION RECORDS
# =============================================================================

class TransactionBase(BaseModel):
    """
    Fields shared by candidate and stored transaction records.

    Amount sign convention: negative is an outflow from the owning
    account, positive is an inflow.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    transaction_date: date = Field(
        ...,
        description="Calendar date of the transaction"
    )
    amount: Decimal = Field(
        ...,
        description="Signed amount (negative = outflow)"
    )
    description: str = Field(
        ...,
        min_length=1,
        description="Merchant or memo text from the statement"
    )
    account: str = Field(
        ...,
        min_length=1,
        description="Identifier of the owning account"
    )
    category: str = Field(
        ...,
        min_length=1,
        description="Classification label"
    )
    subcategory: Optional[str] = None
    type: TransactionType = Field(
        ...,
        description="Transaction type"
    )
    notes: Optional[str] = Field(
        default=None,
        description="User notes, including match annotations"
    )
    vendor: Optional[str] = None

    # Link fields
    reimbursement_id: Optional[str] = Field(
        default=None,
        description="ID of the partner transaction (transfer pairing or manual match)"
    )
    transfer_id: Optional[str] = Field(
        default=None,
        description="ID of the partner leg, set only for transfer pairings"
    )
    is_transfer_primary: Optional[bool] = Field(
        default=None,
        description="True on the negative-amount leg of a transfer pairing"
    )

    @property
    def is_transfer(self) -> bool:
        return self.type == TransactionType.TRANSFER

    @property
    def is_linked(self) -> bool:
        """True if either link field is set."""
        return bool(self.reimbursement_id or self.transfer_id)

    def linked_ids(self) -> set[str]:
        """IDs this record references through its link fields."""
        return {
            linked_id
            for linked_id in (self.reimbursement_id, self.transfer_id)
            if linked_id
        }


class TransactionInput(TransactionBase):
    """
    A candidate record produced by the ingestion pipeline.

    CRITICAL: This is the only shape the ledger accepts from outside.
    Strict mode rejects strings for dates/amounts and unknown keys.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        strict=True,
        extra="forbid",
    )


class Transaction(TransactionBase):
    """
    A record admitted to the ledger.

    The id is assigned on creation and never changes.
    """

    id: str = Field(
        default_factory=new_transaction_id,
        min_length=1,
        description="Opaque unique identifier"
    )
    added_date: datetime = Field(
        default_factory=utcnow,
        description="When the record was admitted"
    )
    last_modified_date: datetime = Field(
        default_factory=utcnow,
        description="Last mutation timestamp"
    )

    @classmethod
    def from_input(
        cls,
        record: TransactionInput,
        now: Optional[datetime] = None,
    ) -> "Transaction":
        """Admit a candidate, assigning identity and bookkeeping timestamps."""
        now = now or utcnow()
        return cls(
            **record.model_dump(),
            id=new_transaction_id(),
            added_date=now,
            last_modified_date=now,
        )


# Fields a caller may never change through an update.
IMMUTABLE_FIELDS = frozenset({"id", "added_date"})

# Link fields change only through the transfer matching operations.
LINK_FIELDS = frozenset({"reimbursement_id", "transfer_id", "is_transfer_primary"})


# =============================================================================
# DUPLICATE DETECTION CONFIGURATION
# =============================================================================

class DuplicateDetectionConfig(BaseModel):
    """
    Tolerances used by the similarity scorer.

    Not persisted per-transaction; passed in per detection run.
    """
    model_config = ConfigDict(frozen=True)

    amount_tolerance: float = Field(
        default=0.02,
        ge=0.0,
        le=1.0,
        description="Relative amount tolerance (0.02 = 2%)"
    )
    fixed_amount_tolerance: Decimal = Field(
        default=Decimal("1.00"),
        ge=0,
        description="Absolute amount tolerance in currency units"
    )
    date_tolerance: int = Field(
        default=3,
        ge=0,
        description="Date tolerance in days"
    )
    require_exact_description: bool = False
    require_same_account: bool = True
