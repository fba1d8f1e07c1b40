# src/aquavolt_client/auth/session.py
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from aquavolt_client.core.clock import now_ms

log = logging.getLogger(__name__)

SessionListener = Callable[[Optional["Session"]], None]


class Session(BaseModel):
    """
    An authenticated identity-provider session.
    Treated as a value: operations that refresh tokens return a new Session.
    """

    uid: str
    email: str = ""
    email_verified: bool = False
    display_name: Optional[str] = None
    provider: str = "password"  # "password" | "google"
    id_token: str = ""
    refresh_token: str = ""
    signed_in_at: int = Field(default_factory=now_ms)

    @property
    def email_lower(self) -> str:
        return (self.email or "").strip().lower()


class SessionStream:
    """
    Single source of truth for "who is signed in".
    UI layers subscribe instead of reading a global; the controller publishes
    on every sign-in / sign-out.
    """

    def __init__(self) -> None:
        self._current: Optional[Session] = None
        self._listeners: List[SessionListener] = []

    @property
    def current(self) -> Optional[Session]:
        return self._current

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; it is called at once with the current value. Returns an unsubscribe."""
        self._listeners.append(listener)
        listener(self._current)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, session: Optional[Session]) -> None:
        self._current = session
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                log.exception("session listener failed")

    def clear(self) -> None:
        self.publish(None)

    def replace_if_current(self, session: Session) -> None:
        """Swap in refreshed tokens when `session` is the signed-in account."""
        if self._current is not None and self._current.uid == session.uid:
            self.publish(session)
