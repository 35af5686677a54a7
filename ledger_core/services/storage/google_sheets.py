"""
Google Sheets Storage Implementation

DESIGN DECISION: The ledger can live in a spreadsheet so the owner can read
their transactions directly in Sheets, with no database to run.

Three worksheets are used:
- Transactions: one row per record, header in row 1
- MigrationFlags: key / completed pairs
- AuditLog: append-only audit events

TRADEOFFS:
- No transactions: a snapshot replace is one overwriting write, retried as a whole
- Every read fetches the full sheet (fine for a personal ledger)
"""

import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from ledger_core.config import GoogleSheetsSettings, get_settings
from ledger_core.models.audit import AuditEvent, AuditEventType, AuditSeverity
from ledger_core.models.transaction import Transaction
from ledger_core.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

# Retry policy for Sheets API calls (quota errors are common)
sheets_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


# =============================================================================
# COLUMN LAYOUTS
# =============================================================================

TRANSACTION_COLUMNS = [
    "id",
    "transaction_date",
    "amount",
    "description",
    "account",
    "category",
    "subcategory",
    "type",
    "notes",
    "vendor",
    "reimbursement_id",
    "transfer_id",
    "is_transfer_primary",
    "added_date",
    "last_modified_date",
]

FLAG_COLUMNS = ["key", "completed"]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]


# =============================================================================
# ROW CONVERSION
# =============================================================================

def _row_values(columns: list[str], row: list) -> dict[str, Optional[str]]:
    """Map a row onto column names; blank and missing cells become None."""
    values = dict(zip(columns, row))
    return {column: (values.get(column) or None) for column in columns}


def transaction_to_row(transaction: Transaction) -> list:
    """Convert a Transaction to a spreadsheet row."""
    primary = ""
    if transaction.is_transfer_primary is not None:
        primary = "true" if transaction.is_transfer_primary else "false"
    return [
        transaction.id,
        transaction.transaction_date.isoformat(),
        str(transaction.amount),
        transaction.description,
        transaction.account,
        transaction.category,
        transaction.subcategory or "",
        transaction.type.value,
        transaction.notes or "",
        transaction.vendor or "",
        transaction.reimbursement_id or "",
        transaction.transfer_id or "",
        primary,
        transaction.added_date.isoformat(),
        transaction.last_modified_date.isoformat(),
    ]


def row_to_transaction(row: list) -> Transaction:
    """Convert a spreadsheet row to a Transaction."""
    data = _row_values(TRANSACTION_COLUMNS, row)
    primary = data.pop("is_transfer_primary")
    data["is_transfer_primary"] = None if primary is None else primary.lower() == "true"
    return Transaction.model_validate(data)


def row_to_event(row: list) -> AuditEvent:
    """Convert an AuditLog row back to an AuditEvent."""
    data = _row_values(AUDIT_COLUMNS, row)
    correlation_id = data["correlation_id"]
    details_json = data["details_json"]
    return AuditEvent(
        event_id=UUID(data["event_id"]),
        timestamp=datetime.fromisoformat(data["timestamp"]),
        event_type=AuditEventType(data["event_type"]),
        severity=AuditSeverity(data["severity"]),
        entity_type=data["entity_type"],
        entity_id=data["entity_id"],
        correlation_id=UUID(correlation_id) if correlation_id else None,
        description=data["description"] or "",
        details=json.loads(details_json) if details_json else {},
        error_message=data["error_message"],
    )


def _data_rows(sheet: gspread.Worksheet) -> list[list]:
    """All non-empty rows below the header."""
    return [row for row in sheet.get_all_values()[1:] if row and row[0]]


# =============================================================================
# CLIENT
# =============================================================================

class GoogleSheetsClient:
    """
    Authenticated handle on the configured spreadsheet.

    Worksheets are created with their header row on first access.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._settings = settings or get_settings().google_sheets
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None

    @sheets_retry
    def connect(self) -> gspread.Client:
        """Authorize with the service account credentials (once)."""
        if self._client is not None:
            return self._client

        path = self._settings.credentials_path
        try:
            credentials = Credentials.from_service_account_file(path, scopes=SCOPES)
            self._client = gspread.authorize(credentials)
        except FileNotFoundError:
            raise ConnectionError(f"Google credentials file not found: {path}")
        except Exception as e:
            raise ConnectionError(f"Failed to connect to Google Sheets: {e}")
        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        if self._spreadsheet is not None:
            return self._spreadsheet

        spreadsheet_id = self._settings.spreadsheet_id
        try:
            self._spreadsheet = self.connect().open_by_key(spreadsheet_id)
        except gspread.SpreadsheetNotFound:
            raise ConnectionError(f"Spreadsheet not found: {spreadsheet_id}")
        return self._spreadsheet

    def _worksheet(self, title: str, header: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            return spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            logger.info("worksheet_created", title=title)
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(header))
            sheet.append_row(header)
            return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self._worksheet(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, rows=2000
        )

    def get_flags_sheet(self) -> gspread.Worksheet:
        return self._worksheet(
            self._settings.migration_flags_sheet_name, FLAG_COLUMNS, rows=50
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self._worksheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


# =============================================================================
# LEDGER STORE
# =============================================================================

class GoogleSheetsLedgerStore(LedgerStorageInterface):
    """
    Ledger storage in the Transactions and MigrationFlags worksheets.

    The flags live in their own worksheet, so replacing the transaction
    snapshot never touches them.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def load_transactions(self) -> list[Transaction]:
        try:
            rows = _data_rows(self._client.get_transactions_sheet())
        except Exception as e:
            raise StorageError(f"Failed to load transactions: {e}")

        transactions = []
        for row in rows:
            try:
                transactions.append(row_to_transaction(row))
            except ValueError as e:
                raise StorageError(f"Malformed transaction row {row[0]}: {e}")
        return transactions

    @sheets_retry
    async def replace_transactions(self, transactions: list[Transaction]) -> None:
        """
        Overwrite the sheet with a new snapshot in a single write.

        Rows left over from a longer previous snapshot are blanked by the
        same write, so the sheet is never cleared first. A failed write
        leaves the previous snapshot readable.
        """
        values = [TRANSACTION_COLUMNS] + [transaction_to_row(t) for t in transactions]
        try:
            sheet = self._client.get_transactions_sheet()
            previous_rows = len(sheet.get_all_values())
            blank = [""] * len(TRANSACTION_COLUMNS)
            padding = [list(blank) for _ in range(previous_rows - len(values))]
            sheet.update(values=values + padding, range_name="A1", value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to replace transactions: {e}")
        logger.info("transactions_sheet_replaced", row_count=len(transactions))

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        try:
            for row in _data_rows(self._client.get_transactions_sheet()):
                if row[0] == transaction_id:
                    return row_to_transaction(row)
        except Exception as e:
            raise StorageError(f"Failed to get transaction {transaction_id}: {e}")
        return None

    async def put_transaction(self, transaction: Transaction) -> None:
        new_row = transaction_to_row(transaction)
        try:
            sheet = self._client.get_transactions_sheet()
            # Row 1 is the header
            for row_number, row in enumerate(sheet.get_all_values()[1:], start=2):
                if row and row[0] == transaction.id:
                    for col_number, value in enumerate(new_row, start=1):
                        sheet.update_cell(row_number, col_number, value)
                    return
            sheet.append_row(new_row, value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to put transaction {transaction.id}: {e}")

    async def get_migration_flag(self, key: str) -> bool:
        try:
            rows = _data_rows(self._client.get_flags_sheet())
        except Exception as e:
            raise StorageError(f"Failed to read migration flag {key}: {e}")
        for row in rows:
            if row[0] == key:
                return len(row) > 1 and row[1].lower() == "true"
        return False

    async def set_migration_flag(self, key: str, value: bool = True) -> None:
        cell_value = "true" if value else "false"
        try:
            sheet = self._client.get_flags_sheet()
            for row_number, row in enumerate(sheet.get_all_values()[1:], start=2):
                if row and row[0] == key:
                    sheet.update_cell(row_number, 2, cell_value)
                    return
            sheet.append_row([key, cell_value], value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to write migration flag {key}: {e}")


# =============================================================================
# AUDIT STORE
# =============================================================================

class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Append-only audit log in the AuditLog worksheet.

    Appends never raise; unreadable rows are skipped with a warning.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            self._client.get_audit_sheet().append_row(
                event.to_sheets_row(), value_input_option="RAW"
            )
        except Exception as e:
            logger.warning(
                "audit_sheet_write_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False
        return True

    def _read_events(self) -> list[AuditEvent]:
        try:
            rows = _data_rows(self._client.get_audit_sheet())
        except Exception as e:
            raise StorageError(f"Failed to read audit log: {e}")

        events = []
        for row in rows:
            try:
                events.append(row_to_event(row))
            except (ValueError, TypeError) as e:
                logger.warning("audit_row_skipped", row_id=row[0], error=str(e))
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._read_events(), key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
