"""Realtime Database record store: mocked REST endpoints."""

import asyncio
import json
import re

import httpx
import pytest

from aquavolt_client.core.config import Settings
from aquavolt_client.core.errors import ProviderError
from aquavolt_client.providers.records import RealtimeDatabaseStore

DB = "https://demo.firebaseio.test"


def _call(coro_fn):
    async def runner():
        async with httpx.AsyncClient() as client:
            store = RealtimeDatabaseStore(Settings(firebase_database_url=DB + "/"), client)
            return await coro_fn(store)

    return asyncio.run(runner())


def test_get_sends_auth_token(httpx_mock):
    httpx_mock.add_response(
        method="GET",
        url=f"{DB}/users/u1.json?auth=id-1",
        json={"fullName": "Jane Doe", "emailLower": "jane@example.com"},
    )

    rec = _call(lambda s: s.get("u1", id_token="id-1"))

    assert rec["fullName"] == "Jane Doe"


def test_get_missing_record_is_none(httpx_mock):
    httpx_mock.add_response(method="GET", url=re.compile(r".*/users/u1\.json.*"), json=None)

    assert _call(lambda s: s.get("u1")) is None


def test_update_is_a_patch_with_nulls(httpx_mock):
    httpx_mock.add_response(method="PATCH", url=re.compile(r".*/users/u1\.json.*"), json={})

    _call(lambda s: s.update("u1", {"pendingEmail": None, "emailVerified": True}, id_token="id-1"))

    req = httpx_mock.get_requests()[0]
    assert json.loads(req.content) == {"pendingEmail": None, "emailVerified": True}


def test_find_by_email_uses_index_first(httpx_mock):
    httpx_mock.add_response(method="GET", url=re.compile(r".*/emailIndex/jane.*example.*com\.json.*"), json="u1")

    assert _call(lambda s: s.find_by_email("jane@example.com")) == "u1"
    assert len(httpx_mock.get_requests()) == 1


def test_find_by_email_falls_back_to_query(httpx_mock):
    httpx_mock.add_response(method="GET", url=re.compile(r".*/emailIndex/.*"), json=None)
    httpx_mock.add_response(
        method="GET",
        url=re.compile(r".*/users\.json\?.*orderBy=.*"),
        json={"u-old": {"emailLower": "old@example.com"}},
    )

    assert _call(lambda s: s.find_by_email("old@example.com")) == "u-old"
    query = httpx_mock.get_requests()[1].url.params
    assert query["orderBy"] == '"emailLower"'
    assert query["equalTo"] == '"old@example.com"'


def test_find_by_email_nobody(httpx_mock):
    httpx_mock.add_response(method="GET", url=re.compile(r".*/emailIndex/.*"), json=None)
    httpx_mock.add_response(method="GET", url=re.compile(r".*/users\.json\?.*"), json={})

    assert _call(lambda s: s.find_by_email("nobody@example.com")) is None


def test_rules_rejection_is_permission_denied(httpx_mock):
    httpx_mock.add_response(
        method="PUT",
        url=re.compile(r".*/users/u1\.json.*"),
        status_code=401,
        json={"error": "Permission denied"},
    )

    with pytest.raises(ProviderError) as ei:
        _call(lambda s: s.set("u1", {"fullName": "Jane"}))
    assert ei.value.code == "store/permission-denied"


def test_transport_failure_is_network_error(httpx_mock):
    httpx_mock.add_exception(httpx.ReadTimeout("slow"), url=re.compile(r".*/emailIndex/.*"))

    with pytest.raises(ProviderError) as ei:
        _call(lambda s: s.remove_email_index("jane@example.com"))
    assert ei.value.code == "store/network-request-failed"
