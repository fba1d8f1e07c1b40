# src/aquavolt_client/providers/memory.py
"""
In-memory collaborators for offline/dev builds and tests.

They behave like the Firebase adapters at the contract level (same canonical
error codes, same token invalidation on sign-out) and expose a few hooks:

  identity.fail_next("sign_in", "auth/too-many-requests")
  identity.require_recent_login(uid)
  identity.confirm_email("new@example.com")     # user clicked the mail link
  identity.outbox                                # [(kind, address), ...]
"""
from __future__ import annotations

import copy
import itertools
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel

from aquavolt_client.auth.google import decode_without_signature, identity_from_claims, verify_google_id_token
from aquavolt_client.auth.session import Session
from aquavolt_client.auth.validation import email_to_key, normalize_email
from aquavolt_client.core.errors import ProviderError
from aquavolt_client.providers.base import FederatedSignIn

log = logging.getLogger(__name__)


class _FailureQueue:
    def __init__(self) -> None:
        self._pending: Dict[str, List[str]] = {}

    def push(self, op: str, code: str) -> None:
        self._pending.setdefault(op, []).append(code)

    def check(self, op: str) -> None:
        queue = self._pending.get(op)
        if queue:
            raise ProviderError(queue.pop(0))


class MemoryUser(BaseModel):
    uid: str
    email: str
    password: Optional[str] = None
    email_verified: bool = False
    display_name: Optional[str] = None
    provider: str = "password"
    pending_email: Optional[str] = None


class InMemoryIdentityProvider:
    def __init__(self, *, verify_tokens: bool = False, audience: Optional[str] = None) -> None:
        self.users: Dict[str, MemoryUser] = {}
        self.outbox: List[Tuple[str, str]] = []
        self.verify_tokens = verify_tokens
        self.audience = audience
        self._ids = itertools.count(1)
        self._tokens = itertools.count(1)
        self._live: Set[str] = set()
        self._stale_login: Set[str] = set()
        self._failures = _FailureQueue()

    # ---------------- test hooks ----------------

    def fail_next(self, op: str, code: str) -> None:
        self._failures.push(op, code)

    def require_recent_login(self, uid: str) -> None:
        self._stale_login.add(uid)

    def confirm_email(self, email: str) -> None:
        """Follow the verification link sent to `email`."""
        email_lower = normalize_email(email)
        for user in self.users.values():
            if user.pending_email and normalize_email(user.pending_email) == email_lower:
                user.email = user.pending_email
                user.pending_email = None
                user.email_verified = True
                return
            if normalize_email(user.email) == email_lower:
                user.email_verified = True
                return
        raise KeyError(email)

    def add_user(self, email: str, password: Optional[str] = None, **fields: Any) -> MemoryUser:
        uid = fields.pop("uid", None) or f"uid-{next(self._ids)}"
        user = MemoryUser(uid=uid, email=email, password=password, **fields)
        self.users[uid] = user
        return user

    # ---------------- helpers ----------------

    def _by_email(self, email: str) -> Optional[MemoryUser]:
        email_lower = normalize_email(email)
        for user in self.users.values():
            if normalize_email(user.email) == email_lower:
                return user
        return None

    def _issue(self, user: MemoryUser, *, base: Optional[Session] = None) -> Session:
        n = next(self._tokens)
        id_token, refresh_token = f"id-{user.uid}-{n}", f"rt-{user.uid}-{n}"
        self._live.add(id_token)
        if base is not None:
            self._live.discard(base.id_token)
        fields: Dict[str, Any] = dict(
            uid=user.uid,
            email=user.email,
            email_verified=user.email_verified,
            display_name=user.display_name,
            provider=user.provider,
            id_token=id_token,
            refresh_token=refresh_token,
        )
        if base is not None:
            fields["signed_in_at"] = base.signed_in_at
        return Session(**fields)

    def _user_for(self, session: Session) -> MemoryUser:
        if session.id_token not in self._live:
            raise ProviderError("auth/user-token-expired")
        user = self.users.get(session.uid)
        if user is None:
            raise ProviderError("auth/user-not-found")
        return user

    def _sensitive(self, user: MemoryUser) -> None:
        if user.uid in self._stale_login:
            raise ProviderError("auth/requires-recent-login")

    # ---------------- IdentityProvider ----------------

    async def create_account(self, email: str, password: str) -> Session:
        self._failures.check("create_account")
        if self._by_email(email) is not None:
            raise ProviderError("auth/email-already-in-use")
        return self._issue(self.add_user(email, password))

    async def sign_in(self, email: str, password: str) -> Session:
        self._failures.check("sign_in")
        user = self._by_email(email)
        if user is None:
            raise ProviderError("auth/user-not-found")
        if user.password is None or user.password != password:
            raise ProviderError("auth/wrong-password")
        return self._issue(user)

    async def sign_in_with_federated_token(self, id_token: str) -> FederatedSignIn:
        self._failures.check("sign_in_with_federated_token")
        if self.verify_tokens:
            claims = await verify_google_id_token(id_token, audience=self.audience)
        else:
            claims = decode_without_signature(id_token)
        ident = identity_from_claims(claims)
        if not ident["subject"] or not ident["email"]:
            raise ProviderError("auth/invalid-credential", "google token without sub/email")
        uid = f"google-{ident['subject']}"
        user = self.users.get(uid)
        is_new = user is None
        if user is None:
            user = self.add_user(
                ident["email"],
                uid=uid,
                email_verified=ident["email_verified"],
                display_name=ident["name"],
                provider="google",
            )
        return FederatedSignIn(session=self._issue(user), is_new_user=is_new)

    async def update_profile(self, session: Session, *, display_name: str) -> Session:
        self._failures.check("update_profile")
        user = self._user_for(session)
        user.display_name = display_name
        return session.model_copy(update={"display_name": display_name})

    async def send_verification_email(self, session: Session) -> None:
        self._failures.check("send_verification_email")
        user = self._user_for(session)
        self.outbox.append(("verify", user.email))

    async def send_verification_email_for_new_address(self, session: Session, new_email: str) -> None:
        self._failures.check("send_verification_email_for_new_address")
        user = self._user_for(session)
        self._sensitive(user)
        user.pending_email = new_email
        self.outbox.append(("verify_new", new_email))

    async def reload_session(self, session: Session) -> Session:
        self._failures.check("reload_session")
        user = self._user_for(session)
        return self._issue(user, base=session)

    async def reauthenticate(self, session: Session, password: str) -> Session:
        self._failures.check("reauthenticate")
        user = self._user_for(session)
        other = self._by_email(session.email)
        if other is not None and other.uid != user.uid:
            raise ProviderError("auth/user-mismatch")
        if user.password is None or user.password != password:
            raise ProviderError("auth/wrong-password")
        self._stale_login.discard(user.uid)
        return self._issue(user, base=session)

    async def update_password(self, session: Session, new_password: str) -> Session:
        self._failures.check("update_password")
        user = self._user_for(session)
        self._sensitive(user)
        user.password = new_password
        return self._issue(user, base=session)

    async def sign_out(self, session: Session) -> None:
        self._failures.check("sign_out")
        self._live.discard(session.id_token)

    async def send_password_reset_email(self, email: str) -> None:
        self._failures.check("send_password_reset_email")
        if self._by_email(email) is None:
            raise ProviderError("auth/user-not-found")
        self.outbox.append(("reset", normalize_email(email)))


class InMemoryRecordStore:
    def __init__(self) -> None:
        self.records: Dict[str, Dict[str, Any]] = {}
        self.email_index: Dict[str, str] = {}
        self._failures = _FailureQueue()

    def fail_next(self, op: str, code: str = "store/network-request-failed") -> None:
        self._failures.push(op, code)

    async def get(self, uid: str, *, id_token: Optional[str] = None) -> Optional[Dict[str, Any]]:
        self._failures.check("get")
        record = self.records.get(uid)
        return copy.deepcopy(record) if record is not None else None

    async def set(self, uid: str, record: Dict[str, Any], *, id_token: Optional[str] = None) -> None:
        self._failures.check("set")
        self.records[uid] = {k: v for k, v in copy.deepcopy(record).items() if v is not None}

    async def update(self, uid: str, patch: Dict[str, Any], *, id_token: Optional[str] = None) -> None:
        self._failures.check("update")
        record = self.records.setdefault(uid, {})
        for key, value in patch.items():
            if value is None:
                record.pop(key, None)
            else:
                record[key] = copy.deepcopy(value)

    async def find_by_email(self, email_lower: str, *, id_token: Optional[str] = None) -> Optional[str]:
        self._failures.check("find_by_email")
        uid = self.email_index.get(email_to_key(email_lower))
        if uid:
            return uid
        for uid, record in self.records.items():
            if record.get("emailLower") == email_lower:
                return uid
        return None

    async def set_email_index(self, email_lower: str, uid: str, *, id_token: Optional[str] = None) -> None:
        self._failures.check("set_email_index")
        self.email_index[email_to_key(email_lower)] = uid

    async def remove_email_index(self, email_lower: str, *, id_token: Optional[str] = None) -> None:
        self._failures.check("remove_email_index")
        self.email_index.pop(email_to_key(email_lower), None)
