"""
JSON File Storage Implementation

DESIGN DECISION: A single JSON document holds both the transaction
collection and the migration flags:

    {
        "transactions": [...],
        "migration_flags": {"internal-transfer-type-sync": true, ...}
    }

Writes go to a temporary file in the same directory which is then moved
over the original with os.replace, so a crash mid-write never leaves a
truncated ledger behind.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ledger_core.models.transaction import Transaction
from ledger_core.services.storage.interface import (
    LedgerStorageInterface,
    StorageError,
)


class JsonFileLedgerStore(LedgerStorageInterface):
    """Ledger storage backed by one JSON document on disk."""

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_document(self) -> dict:
        if not self._path.exists():
            return {"transactions": [], "migration_flags": {}}
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                document = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read ledger file {self._path}: {e}")

        if not isinstance(document, dict):
            raise StorageError(f"Ledger file {self._path} is not a JSON object")
        document.setdefault("transactions", [])
        document.setdefault("migration_flags", {})
        return document

    def _write_document(self, document: dict) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2)
            os.replace(tmp_name, self._path)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write ledger file {self._path}: {e}")

    def _parse_transactions(self, document: dict) -> list[Transaction]:
        try:
            return [Transaction.model_validate(row) for row in document["transactions"]]
        except ValidationError as e:
            raise StorageError(f"Ledger file {self._path} holds an invalid record: {e}")

    async def load_transactions(self) -> list[Transaction]:
        return self._parse_transactions(self._read_document())

    async def replace_transactions(self, transactions: list[Transaction]) -> None:
        document = self._read_document()
        document["transactions"] = [t.model_dump(mode="json") for t in transactions]
        self._write_document(document)

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        for transaction in self._parse_transactions(self._read_document()):
            if transaction.id == transaction_id:
                return transaction
        return None

    async def put_transaction(self, transaction: Transaction) -> None:
        document = self._read_document()
        row = transaction.model_dump(mode="json")
        rows = document["transactions"]
        for idx, existing in enumerate(rows):
            if existing.get("id") == transaction.id:
                rows[idx] = row
                break
        else:
            rows.append(row)
        self._write_document(document)

    async def get_migration_flag(self, key: str) -> bool:
        return bool(self._read_document()["migration_flags"].get(key, False))

    async def set_migration_flag(self, key: str, value: bool = True) -> None:
        document = self._read_document()
        document["migration_flags"][key] = value
        self._write_document(document)
