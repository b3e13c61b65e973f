"""
Storage Services Package

Provides the abstract document store interface and its implementations.
Google Sheets is the remote backend; the in-memory store serves tests and
offline runs. Both are swappable behind DocumentStoreInterface.
"""

from fintrack.services.storage.interface import (
    ACCOUNTS,
    STOCKS,
    TRANSACTIONS,
    AlreadyExistsError,
    BatchOperation,
    BatchOperationKind,
    ConflictError,
    ConnectionError,
    Document,
    DocumentStoreInterface,
    NotFoundError,
    SnapshotHandler,
    StorageError,
    user_collection_path,
)
from fintrack.services.storage.memory import InMemoryDocumentStore
from fintrack.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
)

__all__ = [
    # Interface
    "ACCOUNTS",
    "STOCKS",
    "TRANSACTIONS",
    "BatchOperation",
    "BatchOperationKind",
    "Document",
    "DocumentStoreInterface",
    "SnapshotHandler",
    "user_collection_path",
    # Exceptions
    "AlreadyExistsError",
    "ConflictError",
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryDocumentStore",
]
