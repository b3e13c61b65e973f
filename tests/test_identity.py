"""
Tests for the identity layer.

FirebaseIdentityProvider runs against a mocked requests.Session; the gate
is tested with the scripted provider from conftest.
"""

from unittest.mock import MagicMock

import pytest
import requests

from fintrack.config import FirebaseSettings
from fintrack.services.identity import (
    FirebaseIdentityProvider,
    IdentityError,
    IdentityErrorCode,
    IdentityGate,
    Session,
    classify_error,
)

from tests.conftest import ALICE, BOB


def http_response(status: int, payload: dict) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    response.text = str(payload)
    return response


def firebase_error(message: str) -> MagicMock:
    return http_response(400, {"error": {"code": 400, "message": message}})


AUTH_PAYLOAD = {
    "localId": "uid-42",
    "email": "alice@example.com",
    "displayName": "Alice",
    "idToken": "id-token",
    "refreshToken": "refresh-token",
    "expiresIn": "3600",
}


@pytest.fixture
def http():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def provider(http):
    settings = FirebaseSettings(api_key="test-key")
    return FirebaseIdentityProvider(settings=settings, http=http)


class TestErrorClassification:
    """Tests for Firebase error code mapping."""

    @pytest.mark.parametrize("message,code", [
        ("INVALID_LOGIN_CREDENTIALS", IdentityErrorCode.INVALID_CREDENTIAL),
        ("INVALID_PASSWORD", IdentityErrorCode.INVALID_CREDENTIAL),
        ("EMAIL_NOT_FOUND", IdentityErrorCode.INVALID_CREDENTIAL),
        ("EMAIL_EXISTS", IdentityErrorCode.EMAIL_IN_USE),
        ("WEAK_PASSWORD : Password should be at least 6 characters", IdentityErrorCode.WEAK_PASSWORD),
        ("TOO_MANY_ATTEMPTS_TRY_LATER", IdentityErrorCode.UNKNOWN),
        ("", IdentityErrorCode.UNKNOWN),
    ])
    def test_classify_error(self, message, code):
        assert classify_error(message) == code

    def test_user_messages(self):
        """Each class carries a fixed, user-displayable message."""
        assert IdentityError(IdentityErrorCode.INVALID_CREDENTIAL).user_message == "Incorrect email or password."
        assert IdentityError(IdentityErrorCode.EMAIL_IN_USE).user_message == "This email is already registered."
        assert IdentityError(IdentityErrorCode.WEAK_PASSWORD).user_message == "Password must be at least 6 characters."
        assert IdentityError(IdentityErrorCode.UNKNOWN).user_message == "Sign-in failed, please try again later."


class TestFirebaseProvider:
    """Tests for FirebaseIdentityProvider over the REST API."""

    @pytest.mark.asyncio
    async def test_sign_in_builds_session(self, provider, http):
        http.post.return_value = http_response(200, AUTH_PAYLOAD)
        seen = []
        provider.add_listener(seen.append)

        session = await provider.sign_in("alice@example.com", "secret1")

        assert session.uid == "uid-42"
        assert session.display_name == "Alice"
        assert session.expires_at is not None
        assert provider.current_session == session
        assert seen == [session]

        url = http.post.call_args[0][0]
        assert url.endswith("/accounts:signInWithPassword")
        assert http.post.call_args.kwargs["params"] == {"key": "test-key"}

    @pytest.mark.asyncio
    async def test_sign_in_rejected(self, provider, http):
        http.post.return_value = firebase_error("INVALID_LOGIN_CREDENTIALS")

        with pytest.raises(IdentityError) as exc_info:
            await provider.sign_in("alice@example.com", "wrong")

        assert exc_info.value.code == IdentityErrorCode.INVALID_CREDENTIAL
        assert provider.current_session is None

    @pytest.mark.asyncio
    async def test_network_failure_is_unknown(self, provider, http):
        http.post.side_effect = requests.ConnectionError("offline")

        with pytest.raises(IdentityError) as exc_info:
            await provider.sign_in("alice@example.com", "secret1")

        assert exc_info.value.code == IdentityErrorCode.UNKNOWN

    @pytest.mark.asyncio
    async def test_register_sets_display_name(self, provider, http):
        signup = {**AUTH_PAYLOAD, "displayName": ""}
        profile = {"localId": "uid-42", "displayName": "Alice B"}
        http.post.side_effect = [http_response(200, signup), http_response(200, profile)]

        session = await provider.register("alice@example.com", "secret1", "Alice B")

        assert session.display_name == "Alice B"
        assert session.id_token == "id-token"
        urls = [c[0][0] for c in http.post.call_args_list]
        assert urls[0].endswith("/accounts:signUp")
        assert urls[1].endswith("/accounts:update")

    @pytest.mark.asyncio
    async def test_register_weak_password(self, provider, http):
        http.post.return_value = firebase_error("WEAK_PASSWORD : Password should be at least 6 characters")

        with pytest.raises(IdentityError) as exc_info:
            await provider.register("alice@example.com", "123", "Alice")

        assert exc_info.value.code == IdentityErrorCode.WEAK_PASSWORD

    @pytest.mark.asyncio
    async def test_refresh_renews_tokens_quietly(self, provider, http):
        http.post.return_value = http_response(200, AUTH_PAYLOAD)
        await provider.sign_in("alice@example.com", "secret1")
        seen = []
        provider.add_listener(seen.append)

        http.post.return_value = http_response(200, {
            "id_token": "new-id", "refresh_token": "new-refresh", "expires_in": "3600",
        })
        session = await provider.refresh_session()

        assert session.id_token == "new-id"
        assert session.uid == "uid-42"
        assert seen == []

    @pytest.mark.asyncio
    async def test_failed_refresh_ends_session(self, provider, http):
        http.post.return_value = http_response(200, AUTH_PAYLOAD)
        await provider.sign_in("alice@example.com", "secret1")
        seen = []
        provider.add_listener(seen.append)

        http.post.return_value = firebase_error("TOKEN_EXPIRED")
        with pytest.raises(IdentityError):
            await provider.refresh_session()

        assert provider.current_session is None
        assert seen == [None]

    @pytest.mark.asyncio
    async def test_sign_out_notifies(self, provider, http):
        http.post.return_value = http_response(200, AUTH_PAYLOAD)
        await provider.sign_in("alice@example.com", "secret1")
        seen = []
        subscription = provider.add_listener(seen.append)

        await provider.sign_out()
        subscription.cancel()

        assert seen == [None]
        assert provider.current_session is None


class TestIdentityGate:
    """Tests for the session observable."""

    def test_delivers_current_session_immediately(self, identity_provider):
        identity_provider.set_session(ALICE)
        gate = IdentityGate(identity_provider)
        seen = []

        gate.on_session_change(seen.append)

        assert seen == [ALICE]

    def test_follows_provider_changes(self, identity_gate, identity_provider):
        seen = []
        identity_gate.on_session_change(seen.append)

        identity_provider.set_session(ALICE)
        identity_provider.set_session(BOB)
        identity_provider.set_session(None)

        assert seen == [None, ALICE, BOB, None]

    def test_cancelled_subscriber_stops_receiving(self, identity_gate, identity_provider):
        seen = []
        subscription = identity_gate.on_session_change(seen.append)
        subscription.cancel()

        identity_provider.set_session(ALICE)

        assert seen == [None]

    @pytest.mark.asyncio
    async def test_sign_in_errors_propagate(self, identity_gate):
        with pytest.raises(IdentityError) as exc_info:
            await identity_gate.sign_in("nobody@example.com", "secret1")
        assert exc_info.value.code == IdentityErrorCode.INVALID_CREDENTIAL

    @pytest.mark.asyncio
    async def test_register_and_sign_in(self, identity_gate, identity_provider):
        session = await identity_gate.register("carol@example.com", "secret1", "Carol")
        assert identity_gate.current_session == session

        await identity_gate.sign_out()
        again = await identity_gate.sign_in("carol@example.com", "secret1")
        assert again.uid == session.uid

    @pytest.mark.asyncio
    async def test_failed_sign_out_still_ends_session(self, identity_gate, identity_provider):
        """Provider failures surface as "no session", not as errors."""
        identity_provider.set_session(ALICE)
        identity_provider.fail_sign_out = True
        seen = []
        identity_gate.on_session_change(seen.append)

        await identity_gate.sign_out()

        assert seen == [ALICE, None]
        assert identity_gate.current_session is None

    @pytest.mark.asyncio
    async def test_failed_refresh_ends_session(self, identity_gate, identity_provider):
        identity_provider.set_session(ALICE)
        identity_provider.fail_refresh = True

        assert await identity_gate.refresh() is None
        assert identity_gate.current_session is None

    @pytest.mark.asyncio
    async def test_refresh_keeps_session(self, identity_gate, identity_provider):
        identity_provider.set_session(ALICE)
        assert await identity_gate.refresh() == ALICE

    def test_session_repr_hides_tokens(self):
        session = Session(uid="u1", id_token="secret-token")
        assert "secret-token" not in repr(session)
