"""
Abstract Document Store Interface

DESIGN DECISION: The sync engine talks to the remote store only through
this interface. This allows us to:
1. Swap Google Sheets for another document database later
2. Use in-memory storage for testing and offline runs
3. Keep balance-consistency logic decoupled from the backend

The interface is intentionally small - it is a collection store, not an
ORM: full-collection snapshots, single-document writes and one atomic
multi-document batch.

Paths follow the per-user namespace pattern `users/{uid}/{collection}`.
"""

import copy
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from fintrack.services.subscription import Subscription


# Collection names inside a user namespace
ACCOUNTS = "accounts"
TRANSACTIONS = "transactions"
STOCKS = "stocks"


def user_collection_path(uid: str, collection: str) -> str:
    """Path of one collection inside a user's namespace."""
    return f"users/{uid}/{collection}"


class Document(BaseModel):
    """One stored document as delivered in a snapshot."""
    model_config = ConfigDict(frozen=True)

    id: str
    data: dict[str, Any] = Field(default_factory=dict)


SnapshotHandler = Callable[[list[Document]], None]


class BatchOperationKind(str, Enum):
    """Write kinds allowed inside an atomic batch."""
    CREATE = "create"  # insert, AlreadyExistsError when present
    UPSERT = "upsert"  # create or fully replace
    UPDATE = "update"  # merge fields into an existing document
    DELETE = "delete"  # remove, no-op when absent


class BatchOperation(BaseModel):
    """
    One write inside an atomic batch.

    `expected` lists field values the document must currently hold for the
    batch to apply; any mismatch rejects the whole batch with ConflictError.
    """

    kind: BatchOperationKind
    path: str = Field(..., min_length=1)
    doc_id: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    merge: bool = Field(
        default=False,
        description="Upsert only: keep fields not present in data"
    )
    expected: Optional[dict[str, Any]] = None

    @classmethod
    def create(cls, path: str, doc_id: str, data: dict[str, Any]) -> "BatchOperation":
        return cls(kind=BatchOperationKind.CREATE, path=path, doc_id=doc_id, data=data)

    @classmethod
    def upsert(
        cls,
        path: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> "BatchOperation":
        return cls(
            kind=BatchOperationKind.UPSERT,
            path=path,
            doc_id=doc_id,
            data=data,
            merge=merge,
        )

    @classmethod
    def update(
        cls,
        path: str,
        doc_id: str,
        data: dict[str, Any],
        expected: Optional[dict[str, Any]] = None,
    ) -> "BatchOperation":
        return cls(
            kind=BatchOperationKind.UPDATE,
            path=path,
            doc_id=doc_id,
            data=data,
            expected=expected,
        )

    @classmethod
    def delete(
        cls,
        path: str,
        doc_id: str,
        expected: Optional[dict[str, Any]] = None,
    ) -> "BatchOperation":
        return cls(
            kind=BatchOperationKind.DELETE,
            path=path,
            doc_id=doc_id,
            expected=expected,
        )


def values_match(current: Any, expected: Any) -> bool:
    """
    Compare a stored field with an expected value.

    Numbers travel as strings in JSON-mode documents, so "150000" and
    "150000.00" must be treated as the same balance.
    """
    if current == expected:
        return True
    try:
        return Decimal(str(current)) == Decimal(str(expected))
    except (InvalidOperation, ValueError):
        return False


def apply_operations(
    working: dict[str, dict[str, dict[str, Any]]],
    operations: list["BatchOperation"],
) -> None:
    """
    Apply a batch, in order, to working copies of the affected collections.

    `working` maps each affected path to {doc_id: data} and is mutated in
    place. Raises before the caller swaps anything in, which is what makes
    batches all-or-nothing in every backend.

    Raises:
        NotFoundError: Update or precondition on a missing document
        AlreadyExistsError: Create on a document that is already there
        ConflictError: A precondition field holds a different value
    """
    for op in operations:
        collection = working.setdefault(op.path, {})
        current = collection.get(op.doc_id)

        if op.expected:
            if current is None:
                raise NotFoundError(
                    f"{op.path}/{op.doc_id} does not exist", op.path, op.doc_id
                )
            for field, expected_value in op.expected.items():
                if not values_match(current.get(field), expected_value):
                    raise ConflictError(
                        f"{op.path}/{op.doc_id}.{field} is "
                        f"{current.get(field)!r}, expected {expected_value!r}",
                        op.path,
                        op.doc_id,
                    )

        if op.kind == BatchOperationKind.CREATE:
            if current is not None:
                raise AlreadyExistsError(
                    f"{op.path}/{op.doc_id} already exists", op.path, op.doc_id
                )
            collection[op.doc_id] = copy.deepcopy(op.data)
        elif op.kind == BatchOperationKind.UPSERT:
            base = current if (op.merge and current is not None) else {}
            collection[op.doc_id] = {**base, **copy.deepcopy(op.data)}
        elif op.kind == BatchOperationKind.UPDATE:
            if current is None:
                raise NotFoundError(
                    f"{op.path}/{op.doc_id} does not exist", op.path, op.doc_id
                )
            collection[op.doc_id] = {**current, **copy.deepcopy(op.data)}
        elif op.kind == BatchOperationKind.DELETE:
            collection.pop(op.doc_id, None)


def sort_documents(
    documents: list[Document],
    order_by: Optional[str] = None,
    descending: bool = False,
) -> list[Document]:
    """Order documents by one field, ties broken by document id."""
    if not order_by:
        return sorted(documents, key=lambda d: d.id)
    return sorted(
        documents,
        key=lambda d: (str(d.data.get(order_by, "")), d.id),
        reverse=descending,
    )


class DocumentStoreInterface(ABC):
    """
    Abstract interface for the remote document store.

    Any storage implementation (Google Sheets, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    def subscribe_collection(
        self,
        path: str,
        handler: SnapshotHandler,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Subscription:
        """
        Register for full-collection snapshots.

        The handler receives the complete, ordered collection whenever any
        document in it changes, and once right after registration with the
        current contents. Each snapshot replaces the previous one.

        Returns:
            Subscription handle; cancel() stops delivery
        """
        pass

    @abstractmethod
    async def get_collection(
        self,
        path: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Document]:
        """
        One-shot read of a whole collection.

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def upsert_document(
        self,
        path: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """
        Write a single document.

        Args:
            path: Collection path
            doc_id: Document id
            data: Document body (or the fields to change when merging)
            merge: Only update the given fields, keep the rest

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_document(self, path: str, doc_id: str) -> None:
        """
        Remove a document. A no-op if it does not exist.

        Raises:
            StorageError: If the delete fails
        """
        pass

    @abstractmethod
    async def commit_batch(self, operations: list[BatchOperation]) -> None:
        """
        Apply several writes as one all-or-nothing unit.

        No subscriber observes a partially applied batch.

        Raises:
            NotFoundError: An update or precondition targets a missing document
            AlreadyExistsError: A create targets an existing document
            ConflictError: An `expected` precondition does not hold
            StorageError: If the batch fails for any other reason
        """
        pass

    async def close(self) -> None:
        """Release background resources (pollers, connections)."""
        return None


class StorageError(Exception):
    """
    Base exception for storage operations.

    `path` and `doc_id` name the document that caused the failure, when
    there is one.
    """

    def __init__(
        self,
        message: str = "",
        path: Optional[str] = None,
        doc_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.path = path
        self.doc_id = doc_id


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConflictError(StorageError):
    """A batch precondition no longer holds; another writer got there first."""
    pass


class AlreadyExistsError(StorageError):
    """A create targets a document that is already stored."""
    pass


class ConnectionError(StorageError):
    """Could not reach the storage backend. Safe to retry."""
    pass
