"""
Abstract Identity Provider Interface

DESIGN DECISION: The rest of fintrack only ever sees an opaque `Session`
(who is signed in, or nobody). How credentials are checked is the
provider's business. This allows us to:
1. Use Firebase Authentication in production
2. Use a scripted provider in tests
3. Classify provider-specific error codes in one place
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from fintrack.services.subscription import Subscription


class Session(BaseModel):
    """An authenticated session as reported by the identity provider."""
    model_config = ConfigDict(frozen=True)

    uid: str = Field(..., min_length=1, description="Provider user id")
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None

    # Tokens are opaque to everything but the provider
    id_token: Optional[str] = Field(default=None, repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    expires_at: Optional[datetime] = None


SessionListener = Callable[[Optional[Session]], None]


class IdentityProviderInterface(ABC):
    """
    Abstract interface for an authentication provider.

    Implementations keep the current session and notify listeners
    whenever it changes (sign-in, sign-out, expiry).
    """

    @property
    @abstractmethod
    def current_session(self) -> Optional[Session]:
        """The active session, or None when signed out."""
        pass

    @abstractmethod
    def add_listener(self, listener: SessionListener) -> Subscription:
        """Register for session changes (not called for the current value)."""
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Session:
        """
        Sign in with email and password.

        Raises:
            IdentityError: Classified provider failure
        """
        pass

    @abstractmethod
    async def register(self, email: str, password: str, display_name: str) -> Session:
        """
        Create an account and sign it in.

        Raises:
            IdentityError: Classified provider failure
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        """Terminate the session. Listeners receive None."""
        pass

    @abstractmethod
    async def refresh_session(self) -> Optional[Session]:
        """
        Renew the session's tokens.

        Raises:
            IdentityError: The session could not be renewed
        """
        pass


class IdentityErrorCode(str, Enum):
    """Provider failures the UI knows how to explain."""
    INVALID_CREDENTIAL = "invalid_credential"
    EMAIL_IN_USE = "email_in_use"
    WEAK_PASSWORD = "weak_password"
    UNKNOWN = "unknown"


USER_MESSAGES = {
    IdentityErrorCode.INVALID_CREDENTIAL: "Incorrect email or password.",
    IdentityErrorCode.EMAIL_IN_USE: "This email is already registered.",
    IdentityErrorCode.WEAK_PASSWORD: "Password must be at least 6 characters.",
    IdentityErrorCode.UNKNOWN: "Sign-in failed, please try again later.",
}


class IdentityError(Exception):
    """Classified identity provider failure with a user-displayable message."""

    def __init__(self, code: IdentityErrorCode, detail: str = ""):
        self.code = code
        self.detail = detail
        super().__init__(detail or USER_MESSAGES[code])

    @property
    def user_message(self) -> str:
        return USER_MESSAGES[self.code]
