"""
Shared fixtures.

No real API calls in tests: the store is in-memory and identity comes
from a scripted provider.
"""

import asyncio
from typing import Optional

import pytest

from fintrack.audit import AuditLogger
from fintrack.services.identity import (
    IdentityError,
    IdentityErrorCode,
    IdentityGate,
    IdentityProviderInterface,
    Session,
)
from fintrack.services.storage import ConnectionError, InMemoryDocumentStore
from fintrack.services.subscription import Subscription
from fintrack.sync import SyncEngine


class FakeIdentityProvider(IdentityProviderInterface):
    """Scripted provider: known users live in a dict, failures are switches."""

    def __init__(self):
        self._session: Optional[Session] = None
        self._listeners = []
        self.users: dict[str, tuple[str, str, str]] = {}
        self.fail_sign_out = False
        self.fail_refresh = False

    @property
    def current_session(self) -> Optional[Session]:
        return self._session

    def add_listener(self, listener) -> Subscription:
        self._listeners.append(listener)
        return Subscription(lambda: self._listeners.remove(listener))

    def set_session(self, session: Optional[Session]) -> None:
        self._session = session
        for listener in list(self._listeners):
            listener(session)

    async def sign_in(self, email: str, password: str) -> Session:
        user = self.users.get(email)
        if user is None or user[0] != password:
            raise IdentityError(IdentityErrorCode.INVALID_CREDENTIAL, "INVALID_LOGIN_CREDENTIALS")
        session = Session(uid=user[1], email=email, display_name=user[2])
        self.set_session(session)
        return session

    async def register(self, email: str, password: str, display_name: str) -> Session:
        if email in self.users:
            raise IdentityError(IdentityErrorCode.EMAIL_IN_USE, "EMAIL_EXISTS")
        if len(password) < 6:
            raise IdentityError(IdentityErrorCode.WEAK_PASSWORD, "WEAK_PASSWORD")
        uid = f"uid-{len(self.users) + 1}"
        self.users[email] = (password, uid, display_name)
        session = Session(uid=uid, email=email, display_name=display_name)
        self.set_session(session)
        return session

    async def sign_out(self) -> None:
        if self.fail_sign_out:
            raise IdentityError(IdentityErrorCode.UNKNOWN, "network down")
        self.set_session(None)

    async def refresh_session(self) -> Optional[Session]:
        if self.fail_refresh:
            raise IdentityError(IdentityErrorCode.UNKNOWN, "TOKEN_EXPIRED")
        return self._session


class LaggyDocumentStore(InMemoryDocumentStore):
    """
    In-memory store whose snapshots can be held back.

    Lets a test play "another client" writing behind the engine's back.
    """

    def __init__(self):
        super().__init__()
        self.paused = False
        self._held: set[str] = set()

    def _notify(self, paths: set[str]) -> None:
        if self.paused:
            self._held |= paths
            return
        super()._notify(paths)

    def flush(self) -> None:
        self.paused = False
        held, self._held = self._held, set()
        super()._notify(held)


class DeferredDocumentStore(InMemoryDocumentStore):
    """In-memory store that delivers first snapshots only when told to."""

    def __init__(self):
        super().__init__()
        self.pending: dict[str, object] = {}

    def subscribe_collection(self, path, handler, order_by=None, descending=False):
        self.pending[path] = handler
        return Subscription(lambda: self.pending.pop(path, None))

    def deliver(self, path: str) -> None:
        self.pending[path](self._snapshot(path))


class GatedDocumentStore(LaggyDocumentStore):
    """In-memory store whose next commit waits on `release()` and then fails."""

    def __init__(self):
        super().__init__()
        self.holding = False
        self.gate = asyncio.Event()

    def hold_next_commit(self) -> None:
        self.holding = True
        self.gate.clear()

    def release(self) -> None:
        self.gate.set()

    async def commit_batch(self, operations):
        if self.holding:
            self.holding = False
            await self.gate.wait()
            raise ConnectionError("connection dropped")
        await super().commit_batch(operations)


ALICE = Session(uid="user-1", email="alice@example.com", display_name="Alice")
BOB = Session(uid="user-2", email="bob@example.com", display_name=None)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def identity_gate(identity_provider):
    return IdentityGate(identity_provider)


@pytest.fixture
def audit_logger():
    return AuditLogger(history_size=100)


@pytest.fixture
def engine(store, identity_gate, audit_logger):
    engine = SyncEngine(store, identity_gate, audit_logger=audit_logger)
    yield engine
    engine.close()


@pytest.fixture
def signed_in(engine, identity_provider):
    """Engine with Alice signed in and every collection delivered."""
    identity_provider.set_session(ALICE)
    return engine
