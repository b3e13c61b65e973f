"""Services package."""

from fintrack.services.identity import (
    FirebaseIdentityProvider,
    IdentityError,
    IdentityErrorCode,
    IdentityGate,
    IdentityProviderInterface,
    Session,
)
from fintrack.services.storage import (
    ConflictError,
    ConnectionError,
    DocumentStoreInterface,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
    NotFoundError,
    StorageError,
)
from fintrack.services.subscription import Subscription

__all__ = [
    # Identity services
    "FirebaseIdentityProvider",
    "IdentityError",
    "IdentityErrorCode",
    "IdentityGate",
    "IdentityProviderInterface",
    "Session",
    # Storage services
    "ConflictError",
    "ConnectionError",
    "DocumentStoreInterface",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryDocumentStore",
    "NotFoundError",
    "StorageError",
    # Listener handles
    "Subscription",
]
