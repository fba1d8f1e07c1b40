import asyncio

import pytest

from aquavolt_client.auth.google import decode_without_signature
from aquavolt_client.auth.persistence import SessionPersistence
from aquavolt_client.auth.session import SessionStream
from aquavolt_client.core.errors import AccountDisabledError, AuthError, AuthErrorKind
from aquavolt_client.providers.base import FederatedSignIn
from aquavolt_client.providers.memory import InMemoryIdentityProvider
from aquavolt_client.services.accounts import AccountLifecycleController


def test_first_federated_sign_in_creates_verified_google_record(controller, make_id_token, records, stream):
    session = asyncio.run(controller.login_with_federated_token(make_id_token()))

    rec = records.records[session.uid]
    assert session.provider == "google"
    assert rec["provider"] == "google"
    assert rec["emailVerified"] is True
    assert rec["fullName"] == "Gina Lopez"
    assert rec["emailLower"] == "gina@example.com"
    assert "createdAt" in rec and "lastLoginAt" in rec
    assert records.email_index["gina@example,com"] == session.uid
    assert stream.current == session


def test_repeat_sign_in_fills_blanks_only(controller, make_id_token, records):
    async def scenario():
        first = await controller.login_with_federated_token(make_id_token())
        rec = records.records[first.uid]
        rec["fullName"] = "Gina Custom"
        rec.pop("emailLower")
        stamped = rec["lastLoginAt"] = 1
        await controller.logout()
        again = await controller.login_with_federated_token(make_id_token(name="Someone Else"))
        return first, again, stamped

    first, again, stamped = asyncio.run(scenario())
    rec = records.records[first.uid]
    assert again.uid == first.uid
    assert rec["fullName"] == "Gina Custom"
    assert rec["emailLower"] == "gina@example.com"
    assert rec["lastLoginAt"] > stamped


def test_existing_password_account_is_not_merged(controller, make_active_user, make_id_token, records, stream):
    async def scenario():
        await make_active_user("gina@example.com")
        await controller.login_with_federated_token(make_id_token())

    with pytest.raises(AuthError) as ei:
        asyncio.run(scenario())

    assert ei.value.kind is AuthErrorKind.account_exists_with_different_credential
    assert stream.current is None
    assert all(r["provider"] == "password" for r in records.records.values())


def test_disabled_google_account_gets_the_same_gate(controller, make_id_token, records, stream):
    async def scenario():
        first = await controller.login_with_federated_token(make_id_token())
        records.records[first.uid]["disabled"] = True
        await controller.logout()
        await controller.login_with_federated_token(make_id_token())

    with pytest.raises(AccountDisabledError):
        asyncio.run(scenario())
    assert stream.current is None


def test_garbage_token_is_invalid_credential(controller):
    with pytest.raises(AuthError) as ei:
        asyncio.run(controller.login_with_federated_token("not-a-jwt"))
    assert ei.value.kind is AuthErrorKind.invalid_credential


def test_empty_token_is_field_error(controller):
    with pytest.raises(AuthError) as ei:
        asyncio.run(controller.login_with_federated_token(""))
    assert ei.value.kind is AuthErrorKind.invalid_input


class LinkingIdentityProvider(InMemoryIdentityProvider):
    """Attaches the Google credential to whichever account owns the email."""

    async def sign_in_with_federated_token(self, id_token: str) -> FederatedSignIn:
        email = decode_without_signature(id_token)["email"]
        user = self._by_email(email)
        if user is None:
            return await super().sign_in_with_federated_token(id_token)
        return FederatedSignIn(session=self._issue(user), is_new_user=False)


def test_credential_linked_onto_password_account_is_refused(records, local_storage, make_id_token):
    identity = LinkingIdentityProvider()
    stream = SessionStream()
    controller = AccountLifecycleController(
        identity,
        records,
        stream=stream,
        persistence=SessionPersistence(local_storage, "test-secret"),
        verify_retry_delay_sec=0,
    )

    async def scenario():
        pending = await controller.sign_up("Gina Lopez Ruiz", "gina@example.com", "Secret123")
        identity.confirm_email("gina@example.com")
        await controller.verify_email_poll(pending)
        await controller.login_with_federated_token(make_id_token())

    with pytest.raises(AuthError) as ei:
        asyncio.run(scenario())

    assert ei.value.kind is AuthErrorKind.account_exists_with_different_credential
    assert stream.current is None
    assert local_storage.items == {}
    (rec,) = records.records.values()
    assert rec["provider"] == "password"
    assert "lastLoginAt" not in rec
