import asyncio

import pytest

from aquavolt_client.auth.persistence import SESSION_KEY, SessionPersistence
from aquavolt_client.auth.session import Session, SessionStream
from aquavolt_client.core.errors import AuthError, AuthErrorKind
from aquavolt_client.services.accounts import AccountLifecycleController


def test_persistence_round_trip(persistence):
    session = Session(uid="u1", email="a@x.com", email_verified=True, id_token="t", refresh_token="r")
    asyncio.run(persistence.save(session))
    assert asyncio.run(persistence.load()) == session


def test_tampered_session_is_discarded(persistence, local_storage):
    asyncio.run(persistence.save(Session(uid="u1", id_token="t")))
    local_storage.items[SESSION_KEY] = local_storage.items[SESSION_KEY][:-2] + "xx"

    assert asyncio.run(persistence.load()) is None
    assert SESSION_KEY not in local_storage.items


def test_other_secret_cannot_read_it(persistence, local_storage):
    asyncio.run(persistence.save(Session(uid="u1", id_token="t")))
    other = SessionPersistence(local_storage, "another-secret")
    assert asyncio.run(other.load()) is None


def _restart(identity, records, persistence) -> AccountLifecycleController:
    return AccountLifecycleController(identity, records, stream=SessionStream(), persistence=persistence)


def test_restore_session_after_restart(controller, logged_in, identity, records, persistence):
    session = asyncio.run(logged_in())

    restarted = _restart(identity, records, persistence)
    restored = asyncio.run(restarted.restore_session())

    assert restored is not None
    assert restored.uid == session.uid
    assert restarted.stream.current == restored


def test_restore_without_saved_session(controller):
    assert asyncio.run(controller.restore_session()) is None


def test_restore_after_logout_elsewhere_drops_session(controller, logged_in, identity, records, persistence):
    async def scenario():
        session = await logged_in()
        # tokens revoked at the provider, persisted copy left behind
        await identity.sign_out(session)
        restarted = _restart(identity, records, persistence)
        return restarted, await restarted.restore_session()

    restarted, restored = asyncio.run(scenario())
    assert restored is None
    assert restarted.stream.current is None
    assert asyncio.run(persistence.load()) is None


def test_restore_network_error_keeps_saved_session(controller, logged_in, identity, records, persistence):
    asyncio.run(logged_in())
    identity.fail_next("reload_session", "auth/network-request-failed")
    restarted = _restart(identity, records, persistence)

    with pytest.raises(AuthError) as ei:
        asyncio.run(restarted.restore_session())
    assert ei.value.kind is AuthErrorKind.network_error
    assert asyncio.run(persistence.load()) is not None
