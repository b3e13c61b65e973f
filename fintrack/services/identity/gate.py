"""
Identity Gate

The single place the sync engine learns who is signed in. Wraps an
IdentityProviderInterface and republishes its session as an observable:
subscribers get the current session right away, then every change.

Provider failures on sign-out or refresh are not retried; they are
reported to subscribers as "no session".
"""

from typing import Optional

import structlog

from fintrack.services.identity.interface import (
    IdentityError,
    IdentityProviderInterface,
    Session,
    SessionListener,
)
from fintrack.services.subscription import Subscription


logger = structlog.get_logger(__name__)


class IdentityGate:
    """Observable session wrapper around an identity provider."""

    def __init__(self, provider: IdentityProviderInterface):
        self._provider = provider
        self._session: Optional[Session] = provider.current_session
        self._listeners: list[SessionListener] = []
        self._provider_subscription = provider.add_listener(self._publish)

    @property
    def current_session(self) -> Optional[Session]:
        return self._session

    def on_session_change(self, callback: SessionListener) -> Subscription:
        """Deliver the current session now and on every change."""
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        subscription = Subscription(_remove)
        callback(self._session)
        return subscription

    def _publish(self, session: Optional[Session]) -> None:
        if session == self._session:
            return
        self._session = session
        for listener in list(self._listeners):
            listener(session)

    async def sign_in(self, email: str, password: str) -> Session:
        """
        Raises:
            IdentityError: Classified failure; the UI shows `user_message`
        """
        session = await self._provider.sign_in(email, password)
        self._publish(session)
        return session

    async def register(self, email: str, password: str, display_name: str) -> Session:
        """
        Raises:
            IdentityError: Classified failure; the UI shows `user_message`
        """
        session = await self._provider.register(email, password, display_name)
        self._publish(session)
        return session

    async def sign_out(self) -> None:
        try:
            await self._provider.sign_out()
        except IdentityError as e:
            logger.warning("sign_out_failed", code=e.code.value, detail=e.detail)
        self._publish(None)

    async def refresh(self) -> Optional[Session]:
        """Renew tokens; a failed renewal ends the session."""
        try:
            session = await self._provider.refresh_session()
        except IdentityError as e:
            logger.warning("session_refresh_failed", code=e.code.value, detail=e.detail)
            self._publish(None)
            return None
        self._publish(session)
        return session

    def close(self) -> None:
        """Stop following the provider and drop every subscriber."""
        self._provider_subscription.cancel()
        self._listeners.clear()
