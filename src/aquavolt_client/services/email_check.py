# src/aquavolt_client/services/email_check.py
"""
Debounced "is this email already registered?" check for the signup form.

Every keystroke bumps a monotonic request token. A check that comes back
carrying an older token is dropped, so a slow response for "a@x.com" can
never overwrite the answer for "b@x.com" typed after it. Superseded network
calls are left to finish; only their results are discarded.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional, Set

from pydantic import BaseModel

from aquavolt_client.auth.validation import MSG_EMAIL_INVALID, is_valid_email, normalize_email
from aquavolt_client.core.errors import DEFAULT_MESSAGES, AuthErrorKind, ProviderError, map_provider_error
from aquavolt_client.core.trace import auth_trace
from aquavolt_client.providers.base import AccountRecordStore

log = logging.getLogger(__name__)


class EmailCheckStatus(str, Enum):
    idle = "idle"
    invalid = "invalid"
    checking = "checking"
    available = "available"
    taken = "taken"
    error = "error"


class EmailCheckState(BaseModel):
    email: str = ""
    status: EmailCheckStatus = EmailCheckStatus.idle
    message: Optional[str] = None
    token: int = 0


class EmailAvailabilityChecker:
    def __init__(
        self,
        store: AccountRecordStore,
        *,
        debounce_sec: float = 0.5,
        on_change: Optional[Callable[[EmailCheckState], None]] = None,
    ) -> None:
        self.store = store
        self.debounce_sec = debounce_sec
        self.on_change = on_change
        self.state = EmailCheckState()
        self._token = 0
        self._closed = False
        self._debounce: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

    @property
    def latest_token(self) -> int:
        return self._token

    # ---------------- input ----------------

    def on_email_changed(self, email: str) -> int:
        """Call on every edit of the email field (inside the running loop). Returns the issued token."""
        token = self._issue()
        email_lower = normalize_email(email)
        if self._precheck(token, email_lower) is not None:
            return token
        self._apply(EmailCheckState(email=email_lower, status=EmailCheckStatus.checking, token=token))
        self._debounce = asyncio.ensure_future(self._debounced(token, email_lower))
        return token

    async def check_now(self, email: str) -> EmailCheckState:
        """Submit-time check: skips the debounce and issues a fresh token."""
        token = self._issue()
        email_lower = normalize_email(email)
        early = self._precheck(token, email_lower)
        if early is not None:
            return early
        return await self._run(token, email_lower)

    async def settle(self) -> None:
        """Wait until the pending debounce and every in-flight check have finished."""
        if self._debounce is not None and not self._debounce.done():
            try:
                await self._debounce
            except asyncio.CancelledError:
                pass
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def close(self) -> None:
        """Screen unmounted: nothing still in flight may touch the state again."""
        self._closed = True
        self._token += 1
        self._cancel_debounce()

    # ---------------- internals ----------------

    def _issue(self) -> int:
        self._token += 1
        self._cancel_debounce()
        return self._token

    def _cancel_debounce(self) -> None:
        if self._debounce is not None and not self._debounce.done():
            self._debounce.cancel()
        self._debounce = None

    def _precheck(self, token: int, email_lower: str) -> Optional[EmailCheckState]:
        if not email_lower:
            state = EmailCheckState(token=token)
        elif not is_valid_email(email_lower):
            state = EmailCheckState(
                email=email_lower, status=EmailCheckStatus.invalid, message=MSG_EMAIL_INVALID, token=token
            )
        else:
            return None
        self._apply(state)
        return state

    async def _debounced(self, token: int, email_lower: str) -> None:
        await asyncio.sleep(self.debounce_sec)
        if token != self._token or self._closed:
            return
        task = asyncio.ensure_future(self._run(token, email_lower))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _run(self, token: int, email_lower: str) -> EmailCheckState:
        auth_trace("email_check.begin", token=token, email=email_lower)
        try:
            owner = await self.store.find_by_email(email_lower)
        except ProviderError as ex:
            err = map_provider_error(ex)
            state = EmailCheckState(email=email_lower, status=EmailCheckStatus.error, message=err.message, token=token)
        else:
            if owner:
                state = EmailCheckState(
                    email=email_lower,
                    status=EmailCheckStatus.taken,
                    message=DEFAULT_MESSAGES[AuthErrorKind.email_already_registered],
                    token=token,
                )
            else:
                state = EmailCheckState(email=email_lower, status=EmailCheckStatus.available, token=token)
        self._apply(state)
        return state

    def _apply(self, state: EmailCheckState) -> bool:
        if self._closed or state.token != self._token:
            auth_trace("email_check.stale", token=state.token, latest=self._token)
            return False
        self.state = state
        if self.on_change is not None:
            self.on_change(state)
        return True
