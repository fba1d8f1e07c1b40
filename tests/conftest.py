# tests/conftest.py
from __future__ import annotations

import os
import json
import base64
from pathlib import Path
from typing import Any, Dict, List

import pytest
from dotenv import load_dotenv

# ---------- Paths & .env ----------
ROOT = Path(__file__).resolve().parents[1]  # repo root
# load .env from repo root for local runs (CI may inject env separately)
env_path = ROOT / ".env"
if env_path.exists():
    load_dotenv(dotenv_path=env_path, override=False)

from aquavolt_client.auth.persistence import SessionPersistence  # noqa: E402
from aquavolt_client.auth.session import Session, SessionStream  # noqa: E402
from aquavolt_client.providers.memory import InMemoryIdentityProvider, InMemoryRecordStore  # noqa: E402
from aquavolt_client.services.accounts import AccountLifecycleController  # noqa: E402
from aquavolt_client.storage.local import InMemoryLocalStorage  # noqa: E402

# Google env (live tests only)
GOOGLE_AUDIENCE   = (os.getenv("GOOGLE_AUDIENCE") or os.getenv("GOOGLE_CLIENT_ID") or "").strip()
GOOGLE_TEST_IDTOK = os.getenv("GOOGLE_TEST_ID_TOKEN")

# Opt-in switch for live Google tests
ENABLE_GOOGLE_TESTS = (os.getenv("ENABLE_GOOGLE_TESTS", "")).lower() in ("1", "true", "yes", "on")

PASSWORD = "Secret123"
FULL_NAME = "  jane   marie  DOE "


def _b64(o: Dict[str, Any]) -> str:
    raw = json.dumps(o, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _jwt(claims: Dict[str, Any]) -> str:
    """Minimal mock JWT (header.payload.signature). The signature is never verified in tests."""
    return f"{_b64({'alg': 'RS256', 'kid': 'mock'})}.{_b64(claims)}.c2lnbmF0dXJl"


# ---------- Pytest controls ----------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--enable-google-tests",
        action="store_true",
        default=False,
        help="Run tests marked with @pytest.mark.google (otherwise auto-skip).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "google: tests that require live Google ID tokens")


def pytest_collection_modifyitems(config: pytest.Config, items: List[pytest.Item]) -> None:
    """Gate @google tests unless explicitly enabled."""
    enable_flag = config.getoption("--enable-google-tests")
    if enable_flag or ENABLE_GOOGLE_TESTS:
        return

    skip_google = pytest.mark.skip(
        reason=("Skipping @google tests. Enable with --enable-google-tests or set "
                "ENABLE_GOOGLE_TESTS=true. Requires GOOGLE_AUDIENCE/GOOGLE_CLIENT_ID, GOOGLE_TEST_ID_TOKEN.")
    )
    for item in items:
        if "google" in item.keywords:
            item.add_marker(skip_google)


# ---------- Fixtures ----------
@pytest.fixture(autouse=True)
def _quiet_env(monkeypatch):
    monkeypatch.delenv("AUTH_TRACE", raising=False)


@pytest.fixture
def identity() -> InMemoryIdentityProvider:
    return InMemoryIdentityProvider()


@pytest.fixture
def records() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def local_storage() -> InMemoryLocalStorage:
    return InMemoryLocalStorage()


@pytest.fixture
def stream() -> SessionStream:
    return SessionStream()


@pytest.fixture
def persistence(local_storage) -> SessionPersistence:
    return SessionPersistence(local_storage, "test-secret")


@pytest.fixture
def controller(identity, records, stream, persistence) -> AccountLifecycleController:
    return AccountLifecycleController(
        identity,
        records,
        stream=stream,
        persistence=persistence,
        verify_retry_delay_sec=0,
    )


@pytest.fixture
def make_active_user(controller, identity):
    """
    Returns a coroutine factory: sign up, follow the mail link, finish the
    verification poll. The account ends verified and signed out.
    """
    async def _make(email: str = "jane@example.com", password: str = PASSWORD) -> Session:
        pending = await controller.sign_up(FULL_NAME, email, password, password)
        identity.confirm_email(email)
        await controller.verify_email_poll(pending)
        return pending

    return _make


@pytest.fixture
def logged_in(controller, make_active_user):
    """Coroutine factory returning an Active session for a fresh account."""
    async def _login(email: str = "jane@example.com", password: str = PASSWORD) -> Session:
        await make_active_user(email, password)
        return await controller.login(email, password)

    return _login


@pytest.fixture
def make_id_token():
    """Google-shaped ID token factory; defaults can be overridden per claim."""
    def _make(**claims: Any) -> str:
        base = {
            "iss": "https://accounts.google.com",
            "aud": "dummy-client.apps.googleusercontent.com",
            "sub": "g-123",
            "email": "gina@example.com",
            "email_verified": True,
            "name": "gina LOPEZ",
        }
        base.update(claims)
        return _jwt(base)

    return _make
