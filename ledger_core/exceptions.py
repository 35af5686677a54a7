"""
Ledger Exceptions

Storage backends raise StorageError (see services/storage/interface.py).
The ledger service wraps write failures in PersistenceError after rolling
its in-memory state back to the last durable snapshot.
"""


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class PersistenceError(LedgerError):
    """
    Writing the ledger to storage failed.

    By the time this is raised the in-memory ledger has been reloaded from
    storage, so it reflects what is durable.
    """
    pass


class TransferMatchError(LedgerError):
    """A requested manual transfer match is not allowed."""
    pass


class LedgerNotReadyError(LedgerError):
    """
    A mutation was attempted before the ledger was loaded from storage.

    Raised instead of writing, since the write would replace a stored
    ledger that was never read.
    """
    pass
