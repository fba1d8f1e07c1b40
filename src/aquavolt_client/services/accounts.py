# src/aquavolt_client/services/accounts.py
"""
Account lifecycle controller.

  Unregistered -> PendingVerification -> Active -> Disabled -> ReactivationPending -> Active
                                           +-> EmailChangePending -> (fresh login)

Every operation takes the Session it acts on explicitly. Only a transition
into Active publishes to the SessionStream; every "force logout" clears it.
Collaborator failures leave this module as AuthError, never as ProviderError.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from pydantic import ValidationError

from aquavolt_client.auth.persistence import SessionPersistence
from aquavolt_client.auth.session import Session, SessionStream
from aquavolt_client.auth.validation import (
    MSG_PASSWORD_REQUIRED,
    require_email,
    require_new_password,
    validate_display_name,
    validate_login,
    validate_signup,
)
from aquavolt_client.core.clock import now_ms
from aquavolt_client.core.errors import (
    AccountDisabledError,
    AuthError,
    AuthErrorKind,
    ProviderError,
    provider_errors,
)
from aquavolt_client.core.trace import auth_trace
from aquavolt_client.providers.base import AccountRecordStore, IdentityProvider
from aquavolt_client.schemas.account import (
    AccountRecord,
    AccountState,
    VerificationMode,
    account_state,
    verification_mode,
)
from aquavolt_client.services.identity import upsert_federated_account
from aquavolt_client.storage.local import LocalStorageError

log = logging.getLogger(__name__)

T = TypeVar("T")

# login never tells "no such account" apart from "wrong password"
_LOGIN_CODES = {"auth/user-not-found": AuthErrorKind.wrong_password}
_FEDERATED_CODES = {"auth/invalid-credential": AuthErrorKind.invalid_credential}
_REAUTH_CODES = {"auth/user-not-found": AuthErrorKind.session_mismatch}

MSG_SAME_EMAIL = "New email must be different from current email."
MSG_MISSING_ID_TOKEN = "Missing Google ID token."
MSG_EMAIL_CHANGED_RELOGIN = "Your email was updated. Please log in with your new email."


class AccountLifecycleController:
    def __init__(
        self,
        identity: IdentityProvider,
        store: AccountRecordStore,
        *,
        stream: Optional[SessionStream] = None,
        persistence: Optional[SessionPersistence] = None,
        verify_retry_delay_sec: float = 1.0,
    ) -> None:
        self.identity = identity
        self.store = store
        self.stream = stream or SessionStream()
        self.persistence = persistence
        self.verify_retry_delay_sec = verify_retry_delay_sec

    # ------------------------------------------------------------------
    # signup + verification
    # ------------------------------------------------------------------

    async def sign_up(
        self,
        full_name: str,
        email: str,
        password: str,
        confirm_password: Optional[str] = None,
    ) -> Session:
        """
        Create the provider account and its record in PendingVerification.
        The returned session is for the verification screen; it is not published.
        """
        name, email_lower = validate_signup(full_name, email, password, confirm_password)
        display_email = email.strip()

        with provider_errors():
            owner = await self.store.find_by_email(email_lower)
        if owner:
            auth_trace("signup.taken", email=email_lower)
            raise AuthError(AuthErrorKind.email_already_registered, field="email")

        with provider_errors():
            session = await self.identity.create_account(display_email, password)
            record = AccountRecord(
                uid=session.uid,
                full_name=name,
                email=display_email,
                email_lower=email_lower,
                email_verified=False,
                provider="password",
                created_at=now_ms(),
            )
            await self.store.set(session.uid, record.to_store(), id_token=session.id_token)
            await self.store.set_email_index(email_lower, session.uid, id_token=session.id_token)

        # the record is complete from here on; a missed mail is re-sent from the
        # verification screen (resend_verification) instead of failing the signup
        try:
            session = await self.identity.update_profile(session, display_name=name)
            await self.identity.send_verification_email(session)
        except ProviderError as ex:
            log.warning("signup for %s finished without verification mail: %s", session.uid, ex.code)
            auth_trace("signup.mail_failed", uid=session.uid, code=ex.code)

        auth_trace("signup.ok", uid=session.uid, email=email_lower)
        return session

    async def verify_email_poll(self, session: Session) -> VerificationMode:
        """
        Check whether the pending verification link was followed.
        Completes the signup / email-change / reactivation flow and forces a
        fresh login, or raises NotVerifiedYet with the record untouched.
        """
        with provider_errors():
            record = await self._record(session)
        mode = verification_mode(record)
        try:
            with provider_errors():
                fresh = await self._reload_with_retry(session)
        except AuthError as err:
            if mode is VerificationMode.email_change and err.requires_reauthentication:
                # a confirmed change revokes the old tokens; login finishes it
                auth_trace("verify.email_change.relogin", uid=session.uid, code=err.code)
                await self.logout(session)
                raise AuthError(AuthErrorKind.no_session, MSG_EMAIL_CHANGED_RELOGIN, code=err.code) from err
            raise
        now = now_ms()

        if mode is VerificationMode.email_change:
            if not (fresh.email_verified and fresh.email_lower == record.pending_email_lower):
                auth_trace("verify.email_change.pending", uid=fresh.uid, email=fresh.email)
                raise AuthError(AuthErrorKind.not_verified_yet)
            with provider_errors():
                await self._finalize_email_change(fresh, record, now)
        elif not fresh.email_verified:
            auth_trace("verify.pending", uid=fresh.uid, mode=mode.value)
            raise AuthError(AuthErrorKind.not_verified_yet)
        elif mode is VerificationMode.reactivation:
            with provider_errors():
                await self.store.update(
                    fresh.uid,
                    {
                        "disabled": False,
                        "disabledAt": None,
                        "reactivationPending": False,
                        "emailVerified": True,
                        "verifiedAt": now,
                        "reactivatedAt": now,
                    },
                    id_token=fresh.id_token,
                )
        else:
            with provider_errors():
                await self.store.update(
                    fresh.uid, {"emailVerified": True, "verifiedAt": now}, id_token=fresh.id_token
                )

        auth_trace("verify.ok", uid=fresh.uid, mode=mode.value)
        await self.logout(fresh)
        return mode

    async def resend_verification(self, session: Session) -> VerificationMode:
        """Resend whichever verification mail the account is waiting on."""
        try:
            with provider_errors():
                record = await self._record(session)
                mode = verification_mode(record)
                if mode is VerificationMode.email_change:
                    await self.identity.send_verification_email_for_new_address(session, record.pending_email)
                elif mode is VerificationMode.reactivation:
                    await self.identity.send_verification_email(session)
                    await self.store.update(
                        session.uid, {"reactivationEmailSentAt": now_ms()}, id_token=session.id_token
                    )
                else:
                    await self.identity.send_verification_email(session)
        except AuthError as err:
            if err.requires_reauthentication:
                await self.logout(session)
            raise
        auth_trace("verify.resent", uid=session.uid, mode=mode.value)
        return mode

    # ------------------------------------------------------------------
    # login
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> Session:
        email_lower = validate_login(email, password)

        with provider_errors(_LOGIN_CODES):
            session = await self.identity.sign_in(email_lower, password)

        try:
            with provider_errors():
                session = await self.identity.reload_session(session)
        except AuthError:
            await self.logout(session)
            raise

        if not session.email_verified:
            auth_trace("login.unverified", uid=session.uid, email=email_lower)
            await self.logout(session)
            raise AuthError(AuthErrorKind.email_not_verified)

        return await self._admit(session)

    async def login_with_federated_token(self, id_token: str) -> Session:
        """Exchange a Google ID token for a session in one awaited call."""
        if not id_token:
            raise AuthError(AuthErrorKind.invalid_input, MSG_MISSING_ID_TOKEN, field="id_token")

        with provider_errors(_FEDERATED_CODES):
            result = await self.identity.sign_in_with_federated_token(id_token)
        session = result.session
        auth_trace("federated.signin", uid=session.uid, new=result.is_new_user)

        try:
            with provider_errors():
                record = await upsert_federated_account(self.store, session)
        except AuthError:
            await self.logout(session)
            raise

        return await self._admit(session, record, stamp_login=False)

    async def cancel_disabled(self, session: Session) -> None:
        await self.logout(session)

    async def reactivate(self, session: Session) -> Session:
        """
        Send the reactivation mail and mark the record ReactivationPending.
        The app-wide session is cleared; the returned session drives the
        verification screen (verify_email_poll finishes the flow).
        """
        try:
            with provider_errors():
                await self.identity.send_verification_email(session)
                await self.store.update(
                    session.uid,
                    {"reactivationPending": True, "reactivationEmailSentAt": now_ms()},
                    id_token=session.id_token,
                )
        except AuthError as err:
            if err.requires_reauthentication:
                await self.logout(session)
            raise
        auth_trace("reactivate.sent", uid=session.uid, email=session.email)
        self.stream.clear()
        await self._forget_persisted()
        return session

    # ------------------------------------------------------------------
    # profile edits
    # ------------------------------------------------------------------

    async def change_email(self, session: Session, new_email: str) -> None:
        """
        Start an email change: "verify before update" mail to the new address,
        record flagged pendingEmail / emailVerified=false until it is confirmed.
        """
        new_lower = require_email(new_email, field="new_email")
        if new_lower == session.email_lower:
            raise AuthError(AuthErrorKind.invalid_input, MSG_SAME_EMAIL, field="new_email")
        if not session.email_verified:
            raise AuthError(AuthErrorKind.email_not_verified)

        with provider_errors():
            owner = await self.store.find_by_email(new_lower, id_token=session.id_token)
        if owner and owner != session.uid:
            raise AuthError(AuthErrorKind.email_already_registered, field="new_email")

        with provider_errors():
            await self.identity.send_verification_email_for_new_address(session, new_email.strip())
            await self.store.update(
                session.uid,
                {
                    "pendingEmail": new_email.strip(),
                    "pendingEmailLower": new_lower,
                    "emailVerified": False,
                    "verifiedAt": None,
                },
                id_token=session.id_token,
            )
        auth_trace("email_change.requested", uid=session.uid, new_email=new_lower)

    async def change_password(self, session: Session, new_password: str, confirm_password: str) -> Session:
        require_new_password(new_password, confirm_password, field="new_password")
        with provider_errors():
            fresh = await self.identity.update_password(session, new_password)
        auth_trace("password.changed", uid=session.uid)
        await self._refreshed(fresh)
        return fresh

    async def change_name(self, session: Session, full_name: str) -> str:
        name = validate_display_name(full_name)
        with provider_errors():
            fresh = await self.identity.update_profile(session, display_name=name)
            await self.store.update(session.uid, {"fullName": name}, id_token=session.id_token)
        await self._refreshed(fresh)
        return name

    async def reauthenticate(self, session: Session, password: str) -> Session:
        if not password:
            raise AuthError(AuthErrorKind.invalid_input, MSG_PASSWORD_REQUIRED, field="password")
        with provider_errors(_REAUTH_CODES):
            fresh = await self.identity.reauthenticate(session, password)
        auth_trace("reauth.ok", uid=session.uid)
        await self._refreshed(fresh)
        return fresh

    async def retry_after_reauthentication(
        self,
        session: Session,
        password: str,
        operation: Callable[[Session], Awaitable[T]],
    ) -> T:
        """
        The RequiresRecentLogin detour:
          try: await ctl.change_password(s, pw, pw)
          except AuthError as e:
              if e.requires_reauthentication:
                  await ctl.retry_after_reauthentication(s, current, lambda f: ctl.change_password(f, pw, pw))
        """
        fresh = await self.reauthenticate(session, password)
        return await operation(fresh)

    async def disable_account(self, session: Session) -> None:
        with provider_errors():
            record = await self._record(session)
            if record is None or not record.disabled:
                await self.store.update(
                    session.uid, {"disabled": True, "disabledAt": now_ms()}, id_token=session.id_token
                )
        auth_trace("account.disabled", uid=session.uid)
        await self.logout(session)

    async def request_password_reset(self, email: str) -> None:
        email_lower = require_email(email)
        with provider_errors():
            await self.identity.send_password_reset_email(email_lower)
        auth_trace("password.reset_sent", email=email_lower)

    # ------------------------------------------------------------------
    # session
    # ------------------------------------------------------------------

    async def logout(self, session: Optional[Session] = None) -> None:
        """Sign out at the provider (best effort) and clear the app-wide session."""
        target = session or self.stream.current
        if target is not None:
            try:
                await self.identity.sign_out(target)
            except ProviderError as ex:
                log.warning("provider sign-out failed for %s: %s", target.uid, ex.code)
            auth_trace("logout", uid=target.uid)
        self.stream.clear()
        await self._forget_persisted()

    async def restore_session(self) -> Optional[Session]:
        """Resume the persisted session on app start, re-applying the login gates."""
        if self.persistence is None:
            return None
        try:
            saved = await self.persistence.load()
        except LocalStorageError as ex:
            log.warning("could not read persisted session: %s", ex)
            return None
        if saved is None:
            return None

        try:
            with provider_errors():
                fresh = await self.identity.reload_session(saved)
        except AuthError as err:
            if err.kind is AuthErrorKind.network_error:
                raise
            auth_trace("restore.rejected", uid=saved.uid, kind=err.kind.value)
            await self.logout(saved)
            return None

        if not fresh.email_verified:
            await self.logout(fresh)
            return None
        return await self._admit(fresh, stamp_login=False)

    async def state_of(self, session: Session) -> AccountState:
        with provider_errors():
            record = await self._record(session)
        return account_state(record)

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    async def _record(self, session: Session) -> Optional[AccountRecord]:
        raw = await self.store.get(session.uid, id_token=session.id_token)
        if raw is None:
            return None
        try:
            return AccountRecord.model_validate({"uid": session.uid, **raw})
        except ValidationError as ex:
            log.warning("unreadable account record for %s: %s", session.uid, ex)
            raise AuthError(AuthErrorKind.unknown, "Account record is unreadable.") from ex

    async def _reload_with_retry(self, session: Session) -> Session:
        try:
            return await self.identity.reload_session(session)
        except ProviderError as ex:
            log.warning("reload failed (%s); retrying once in %.1fs", ex.code, self.verify_retry_delay_sec)
            await asyncio.sleep(self.verify_retry_delay_sec)
            return await self.identity.reload_session(session)

    async def _finalize_email_change(self, session: Session, record: AccountRecord, now: int) -> None:
        old_lower = record.email_lower
        await self.store.update(
            session.uid,
            {
                "email": record.pending_email,
                "emailLower": record.pending_email_lower,
                "pendingEmail": None,
                "pendingEmailLower": None,
                "emailVerified": True,
                "verifiedAt": now,
                "emailChangedAt": now,
            },
            id_token=session.id_token,
        )
        if old_lower and old_lower != record.pending_email_lower:
            await self.store.remove_email_index(old_lower, id_token=session.id_token)
        await self.store.set_email_index(record.pending_email_lower, session.uid, id_token=session.id_token)
        auth_trace("email_change.done", uid=session.uid, email=record.pending_email_lower)

    async def _sync_email_state(self, session: Session, record: Optional[AccountRecord]) -> Optional[AccountRecord]:
        """Bring the record in line with what the provider already confirmed."""
        if record is None or not session.email_verified:
            return record
        now = now_ms()
        patch: Dict[str, Any]
        if record.has_pending_email and session.email_lower == record.pending_email_lower:
            await self._finalize_email_change(session, record, now)
            patch = {
                "email": record.pending_email,
                "email_lower": record.pending_email_lower,
                "pending_email": None,
                "pending_email_lower": None,
                "email_verified": True,
                "verified_at": now,
                "email_changed_at": now,
            }
        elif not record.email_verified and not record.has_pending_email:
            await self.store.update(session.uid, {"emailVerified": True, "verifiedAt": now}, id_token=session.id_token)
            patch = {"email_verified": True, "verified_at": now}
        else:
            return record
        return record.model_copy(update=patch)

    async def _admit(
        self,
        session: Session,
        record: Optional[AccountRecord] = None,
        *,
        stamp_login: bool = True,
    ) -> Session:
        """Disabled gate, then Active: publish the session."""
        try:
            with provider_errors():
                if record is None:
                    record = await self._record(session)
                record = await self._sync_email_state(session, record)
        except AuthError:
            await self.logout(session)
            raise

        if record is not None and record.disabled:
            auth_trace("login.disabled", uid=session.uid, email=session.email)
            raise AccountDisabledError(session)

        if stamp_login:
            try:
                await self.store.update(session.uid, {"lastLoginAt": now_ms()}, id_token=session.id_token)
            except ProviderError as ex:
                log.warning("could not stamp lastLoginAt for %s: %s", session.uid, ex.code)

        auth_trace("login.ok", uid=session.uid, email=session.email, provider=session.provider)
        self.stream.publish(session)
        await self._persist(session)
        return session

    async def _refreshed(self, fresh: Session) -> None:
        current = self.stream.current
        if current is not None and current.uid == fresh.uid:
            self.stream.replace_if_current(fresh)
            await self._persist(fresh)

    async def _persist(self, session: Session) -> None:
        if self.persistence is None:
            return
        try:
            await self.persistence.save(session)
        except LocalStorageError as ex:
            log.warning("could not persist session for %s: %s", session.uid, ex)

    async def _forget_persisted(self) -> None:
        if self.persistence is None:
            return
        try:
            await self.persistence.clear()
        except LocalStorageError as ex:
            log.warning("could not clear persisted session: %s", ex)
