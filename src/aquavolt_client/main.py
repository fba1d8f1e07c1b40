# src/aquavolt_client/main.py
from __future__ import annotations

import logging
from typing import Optional

import httpx

from aquavolt_client.core.logging import setup_logging
setup_logging()

from aquavolt_client.auth import google
from aquavolt_client.auth.persistence import SessionPersistence
from aquavolt_client.auth.session import SessionStream
from aquavolt_client.core.config import Settings, load_settings
from aquavolt_client.providers.base import AccountRecordStore, IdentityProvider, LocalStorage
from aquavolt_client.providers.identity import FirebaseIdentityProvider
from aquavolt_client.providers.memory import InMemoryIdentityProvider, InMemoryRecordStore
from aquavolt_client.providers.records import RealtimeDatabaseStore
from aquavolt_client.services.accounts import AccountLifecycleController
from aquavolt_client.services.email_check import EmailAvailabilityChecker
from aquavolt_client.services.onboarding import OnboardingFlag
from aquavolt_client.storage.local import SqliteLocalStorage
from aquavolt_device.store import DeviceBindingStore

log = logging.getLogger(__name__)


class AquaVoltClient:
    """Everything a UI shell needs, wired once at startup."""

    def __init__(
        self,
        settings: Settings,
        identity: IdentityProvider,
        records: AccountRecordStore,
        storage: LocalStorage,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings
        self.identity = identity
        self.records = records
        self.storage = storage
        self.sessions = SessionStream()
        self.persistence = SessionPersistence(storage, settings.session_secret)
        self.accounts = AccountLifecycleController(
            identity,
            records,
            stream=self.sessions,
            persistence=self.persistence,
            verify_retry_delay_sec=settings.verify_retry_delay_sec,
        )
        self.devices = DeviceBindingStore(storage)
        self.onboarding = OnboardingFlag(storage)
        self._http_client = http_client

    def email_checker(self, on_change=None) -> EmailAvailabilityChecker:
        """One checker per signup screen; close() it on unmount."""
        return EmailAvailabilityChecker(
            self.records,
            debounce_sec=self.settings.email_check_debounce_sec,
            on_change=on_change,
        )

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()


def build_client(
    settings: Optional[Settings] = None,
    *,
    storage: Optional[LocalStorage] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> AquaVoltClient:
    """
    Offline (AQUAVOLT_OFFLINE=true, or no Firebase project configured):
    in-memory identity provider and record store.
    Otherwise: Firebase Identity Toolkit + Realtime Database over one shared httpx client.
    """
    settings = settings or load_settings()
    storage = storage or SqliteLocalStorage(settings.local_store_path)

    if settings.offline or not (settings.firebase_api_key and settings.firebase_database_url):
        if not settings.offline:
            log.warning("FIREBASE_API_KEY / FIREBASE_DATABASE_URL missing; running offline")
        identity = InMemoryIdentityProvider(verify_tokens=bool(google.GOOGLE_AUDIENCE), audience=google.GOOGLE_AUDIENCE)
        return AquaVoltClient(settings, identity, InMemoryRecordStore(), storage)

    client = http_client or httpx.AsyncClient(timeout=settings.http_timeout_sec)
    return AquaVoltClient(
        settings,
        FirebaseIdentityProvider(settings, client),
        RealtimeDatabaseStore(settings, client),
        storage,
        http_client=client if http_client is None else None,
    )
