# src/aquavolt_client/auth/persistence.py
from __future__ import annotations

import logging
from typing import Optional

from itsdangerous import URLSafeSerializer, BadSignature
from pydantic import ValidationError

from aquavolt_client.auth.session import Session
from aquavolt_client.providers.base import LocalStorage

log = logging.getLogger(__name__)

SESSION_KEY = "aquavolt_session_v1"


class SessionPersistence:
    """
    Keeps the signed-in session across app restarts.
    The payload is signed, so an edited value in local storage is discarded
    instead of being trusted.
    """

    def __init__(self, storage: LocalStorage, secret: str, *, key: str = SESSION_KEY) -> None:
        self.storage = storage
        self.key = key
        self._serializer = URLSafeSerializer(secret, salt="aquavolt.session")

    async def save(self, session: Session) -> None:
        await self.storage.set(self.key, self._serializer.dumps(session.model_dump()))

    async def load(self) -> Optional[Session]:
        raw = await self.storage.get(self.key)
        if not raw:
            return None
        try:
            return Session.model_validate(self._serializer.loads(raw))
        except (BadSignature, ValidationError):
            log.warning("discarding unreadable persisted session")
            await self.storage.remove(self.key)
            return None

    async def clear(self) -> None:
        await self.storage.remove(self.key)
