# src/aquavolt_client/services/identity.py

import logging
from typing import Any, Dict

from aquavolt_client.auth.session import Session
from aquavolt_client.auth.validation import format_name
from aquavolt_client.core.clock import now_ms
from aquavolt_client.core.errors import AuthError, AuthErrorKind
from aquavolt_client.core.trace import auth_trace
from aquavolt_client.providers.base import AccountRecordStore
from aquavolt_client.schemas.account import AccountRecord

log = logging.getLogger(__name__)


def _fallback_name(session: Session) -> str:
    return format_name(session.display_name or session.email.split("@", 1)[0])


async def upsert_federated_account(store: AccountRecordStore, session: Session) -> AccountRecord:
    """
    Core helper: given a federated (Google) session, return its account record,
    creating it on first sign-in.

    Rules:
      1. Record exists -> a "password" record is refused (the provider linked
         the credential onto it); otherwise fill blank profile fields only
         and stamp lastLoginAt.
      2. No record, but the email already belongs to another uid
         -> AccountExistsWithDifferentCredential (accounts are never merged).
      3. Else create a verified "google" record plus its email index entry.
    """
    token = session.id_token
    raw = await store.get(session.uid, id_token=token)
    now = now_ms()

    # 1) Repeat sign-in
    if raw is not None:
        record = AccountRecord.model_validate({"uid": session.uid, **raw})
        if record.provider == "password":
            # provider linked the federated credential onto a password account
            auth_trace("federated.conflict", uid=session.uid, email=session.email, linked=True)
            raise AuthError(AuthErrorKind.account_exists_with_different_credential)
        patch: Dict[str, Any] = {"lastLoginAt": now}
        if not record.full_name:
            patch["fullName"] = _fallback_name(session)
        if not record.email and session.email:
            patch["email"] = session.email
        if not record.email_lower and session.email:
            patch["emailLower"] = session.email_lower
        await store.update(session.uid, patch, id_token=token)
        auth_trace("federated.repeat", uid=session.uid, filled=",".join(k for k in patch if k != "lastLoginAt"))
        return AccountRecord.model_validate({**record.to_store(), **patch})

    # 2) Email already owned by a password account
    owner = await store.find_by_email(session.email_lower, id_token=token)
    if owner and owner != session.uid:
        auth_trace("federated.conflict", uid=session.uid, email=session.email)
        raise AuthError(AuthErrorKind.account_exists_with_different_credential)

    # 3) First sign-in
    record = AccountRecord(
        uid=session.uid,
        full_name=_fallback_name(session),
        email=session.email,
        email_lower=session.email_lower,
        email_verified=True,
        provider="google",
        created_at=now,
        last_login_at=now,
        verified_at=now,
    )
    await store.set(session.uid, record.to_store(), id_token=token)
    await store.set_email_index(session.email_lower, session.uid, id_token=token)
    auth_trace("federated.created", uid=session.uid, email=session.email)
    return record
