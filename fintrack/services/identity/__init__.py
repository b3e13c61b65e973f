"""Identity services package."""

from fintrack.services.identity.interface import (
    USER_MESSAGES,
    IdentityError,
    IdentityErrorCode,
    IdentityProviderInterface,
    Session,
    SessionListener,
)
from fintrack.services.identity.firebase import FirebaseIdentityProvider, classify_error
from fintrack.services.identity.gate import IdentityGate

__all__ = [
    "USER_MESSAGES",
    "IdentityError",
    "IdentityErrorCode",
    "IdentityProviderInterface",
    "Session",
    "SessionListener",
    "FirebaseIdentityProvider",
    "classify_error",
    "IdentityGate",
]
