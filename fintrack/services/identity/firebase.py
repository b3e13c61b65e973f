"""
Firebase Authentication provider.

Talks to the Identity Toolkit REST API with the project's Web API key,
the same endpoints the Firebase client SDKs use:

- accounts:signInWithPassword
- accounts:signUp (+ accounts:update to set the display name)
- securetoken token endpoint to refresh an expiring session

Provider error codes (EMAIL_EXISTS, INVALID_PASSWORD, WEAK_PASSWORD : ...)
are classified into IdentityErrorCode here, so nothing else needs to know
Firebase's vocabulary.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import requests
import structlog

from fintrack.config import FirebaseSettings, get_settings
from fintrack.services.identity.interface import (
    IdentityError,
    IdentityErrorCode,
    IdentityProviderInterface,
    Session,
    SessionListener,
)
from fintrack.services.subscription import Subscription


logger = structlog.get_logger(__name__)

ERROR_CODE_MAP = {
    "INVALID_LOGIN_CREDENTIALS": IdentityErrorCode.INVALID_CREDENTIAL,
    "INVALID_PASSWORD": IdentityErrorCode.INVALID_CREDENTIAL,
    "EMAIL_NOT_FOUND": IdentityErrorCode.INVALID_CREDENTIAL,
    "INVALID_EMAIL": IdentityErrorCode.INVALID_CREDENTIAL,
    "EMAIL_EXISTS": IdentityErrorCode.EMAIL_IN_USE,
    "WEAK_PASSWORD": IdentityErrorCode.WEAK_PASSWORD,
}


def classify_error(message: str) -> IdentityErrorCode:
    """
    Map a Firebase error message onto an IdentityErrorCode.

    Firebase appends detail after " : " (e.g.
    "WEAK_PASSWORD : Password should be at least 6 characters").
    """
    code = message.split(":")[0].strip().upper()
    return ERROR_CODE_MAP.get(code, IdentityErrorCode.UNKNOWN)


class FirebaseIdentityProvider(IdentityProviderInterface):
    """Email/password sessions against Firebase Authentication."""

    def __init__(
        self,
        settings: Optional[FirebaseSettings] = None,
        http: Optional[requests.Session] = None,
    ):
        self._settings = settings or get_settings().firebase
        self._http = http or requests.Session()
        self._session: Optional[Session] = None
        self._listeners: list[SessionListener] = []

    @property
    def current_session(self) -> Optional[Session]:
        return self._session

    def add_listener(self, listener: SessionListener) -> Subscription:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(_remove)

    def _set_session(self, session: Optional[Session]) -> None:
        previous = self._session
        self._session = session
        if previous == session:
            return
        for listener in list(self._listeners):
            listener(session)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _post(self, url: str, **kwargs) -> dict:
        try:
            resp = self._http.post(
                url,
                params={"key": self._settings.api_key},
                timeout=self._settings.request_timeout_seconds,
                **kwargs,
            )
        except requests.RequestException as e:
            raise IdentityError(IdentityErrorCode.UNKNOWN, f"Identity request failed: {e}")

        if resp.status_code >= 400:
            try:
                message = resp.json().get("error", {}).get("message", "")
            except ValueError:
                message = resp.text
            logger.info("identity_request_rejected", status=resp.status_code, reason=message)
            raise IdentityError(classify_error(message), message)

        return resp.json()

    def _endpoint(self, method: str) -> str:
        return f"{self._settings.auth_base_url}/accounts:{method}"

    @staticmethod
    def _expiry(expires_in: Optional[str]) -> Optional[datetime]:
        if not expires_in:
            return None
        return datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))

    def _session_from_auth(self, payload: dict) -> Session:
        return Session(
            uid=payload["localId"],
            email=payload.get("email"),
            display_name=payload.get("displayName") or None,
            photo_url=payload.get("photoUrl") or None,
            id_token=payload.get("idToken"),
            refresh_token=payload.get("refreshToken"),
            expires_at=self._expiry(payload.get("expiresIn")),
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> Session:
        payload = await asyncio.to_thread(
            self._post,
            self._endpoint("signInWithPassword"),
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        session = self._session_from_auth(payload)
        self._set_session(session)
        return session

    async def register(self, email: str, password: str, display_name: str) -> Session:
        payload = await asyncio.to_thread(
            self._post,
            self._endpoint("signUp"),
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        if display_name:
            profile = await asyncio.to_thread(
                self._post,
                self._endpoint("update"),
                json={
                    "idToken": payload["idToken"],
                    "displayName": display_name,
                    "returnSecureToken": True,
                },
            )
            payload = {**payload, **profile}
        session = self._session_from_auth(payload)
        self._set_session(session)
        return session

    async def sign_out(self) -> None:
        # Firebase sessions are bearer tokens; signing out is dropping them
        self._set_session(None)

    async def refresh_session(self) -> Optional[Session]:
        session = self._session
        if session is None or not session.refresh_token:
            return session

        try:
            payload = await asyncio.to_thread(
                self._post,
                self._settings.token_url,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": session.refresh_token,
                },
            )
        except IdentityError:
            self._set_session(None)
            raise

        renewed = session.model_copy(update={
            "id_token": payload.get("id_token"),
            "refresh_token": payload.get("refresh_token", session.refresh_token),
            "expires_at": self._expiry(payload.get("expires_in")),
        })
        # Same user, new tokens: not a session change for listeners
        self._session = renewed
        return renewed
