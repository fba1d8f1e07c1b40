# src/aquavolt_client/providers/identity.py
"""
Identity provider over the Firebase Identity Toolkit REST API.

  POST {base}/accounts:signUp?key=...            create_account
  POST {base}/accounts:signInWithPassword        sign_in / reauthenticate
  POST {base}/accounts:signInWithIdp             sign_in_with_federated_token
  POST {base}/accounts:update                    update_profile / update_password
  POST {base}/accounts:sendOobCode               verification + reset mails
  POST {base}/accounts:lookup                    reload_session
  POST {secure_token_url}?key=...                refresh before lookup
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from aquavolt_client.auth.session import Session
from aquavolt_client.core.config import Settings
from aquavolt_client.core.errors import ProviderError
from aquavolt_client.core.trace import auth_trace
from aquavolt_client.providers.base import FederatedSignIn

log = logging.getLogger(__name__)

# Identity Toolkit error strings -> canonical codes
REST_ERROR_CODES: Dict[str, str] = {
    "EMAIL_EXISTS": "auth/email-already-in-use",
    "INVALID_EMAIL": "auth/invalid-email",
    "MISSING_EMAIL": "auth/invalid-email",
    "WEAK_PASSWORD": "auth/weak-password",
    "MISSING_PASSWORD": "auth/wrong-password",
    "EMAIL_NOT_FOUND": "auth/user-not-found",
    "USER_NOT_FOUND": "auth/user-not-found",
    "INVALID_PASSWORD": "auth/wrong-password",
    "INVALID_LOGIN_CREDENTIALS": "auth/invalid-credential",
    "INVALID_IDP_RESPONSE": "auth/invalid-credential",
    "USER_DISABLED": "auth/user-disabled",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "auth/too-many-requests",
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN": "auth/requires-recent-login",
    "TOKEN_EXPIRED": "auth/user-token-expired",
    "INVALID_ID_TOKEN": "auth/invalid-user-token",
    "INVALID_REFRESH_TOKEN": "auth/invalid-user-token",
    "USER_MISMATCH": "auth/user-mismatch",
    "FEDERATED_USER_ID_ALREADY_LINKED": "auth/credential-already-in-use",
}


def rest_error_code(message: str) -> str:
    """
    "WEAK_PASSWORD : Password should be at least 6 characters" -> "auth/weak-password".
    Unmapped strings become "auth/<lowercased-dashed>".
    """
    head = (message or "").split(":", 1)[0].strip()
    if not head:
        return "auth/internal-error"
    return REST_ERROR_CODES.get(head, "auth/" + head.lower().replace("_", "-"))


def _error_from_response(r: httpx.Response) -> ProviderError:
    try:
        data = r.json()
    except ValueError:
        return ProviderError("auth/internal-error", f"HTTP {r.status_code}: {r.text[:200]}")
    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict):
        message = str(err.get("message") or "")
    else:
        # secure token endpoint answers {"error": "invalid_grant", ...} on some paths
        message = str(err or "").upper()
    return ProviderError(rest_error_code(message), message or f"HTTP {r.status_code}")


class FirebaseIdentityProvider:
    """IdentityProvider backed by Firebase Authentication."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> None:
        self.settings = settings
        self._own_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.http_timeout_sec)

    async def aclose(self) -> None:
        if self._own_client:
            await self.client.aclose()

    # ---------------- transport ----------------

    async def _post(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.settings.identity_base_url}/accounts:{method}"
        try:
            r = await self.client.post(url, params={"key": self.settings.firebase_api_key}, json=payload)
        except httpx.TransportError as ex:
            raise ProviderError("auth/network-request-failed", str(ex)) from ex
        if r.status_code >= 400:
            err = _error_from_response(r)
            auth_trace("identity.error", method=method, status=r.status_code, code=err.code)
            raise err
        return r.json()

    async def _refresh(self, refresh_token: str) -> Dict[str, Any]:
        try:
            r = await self.client.post(
                self.settings.secure_token_url,
                params={"key": self.settings.firebase_api_key},
                data={"grant_type": "refresh_token", "refresh_token": refresh_token},
            )
        except httpx.TransportError as ex:
            raise ProviderError("auth/network-request-failed", str(ex)) from ex
        if r.status_code >= 400:
            raise _error_from_response(r)
        return r.json()

    @staticmethod
    def _session(data: Dict[str, Any], *, provider: str = "password", base: Optional[Session] = None) -> Session:
        fields: Dict[str, Any] = base.model_dump(exclude={"signed_in_at"}) if base else {}
        fields.update(
            uid=data.get("localId") or (base.uid if base else ""),
            email=data.get("email") or (base.email if base else ""),
            provider=provider,
        )
        if "emailVerified" in data:
            fields["email_verified"] = bool(data["emailVerified"])
        if data.get("displayName"):
            fields["display_name"] = data["displayName"]
        if data.get("idToken"):
            fields["id_token"] = data["idToken"]
        if data.get("refreshToken"):
            fields["refresh_token"] = data["refreshToken"]
        if base is not None:
            fields["signed_in_at"] = base.signed_in_at
        return Session(**fields)

    # ---------------- IdentityProvider ----------------

    async def create_account(self, email: str, password: str) -> Session:
        data = await self._post("signUp", {"email": email, "password": password, "returnSecureToken": True})
        auth_trace("identity.signup.ok", uid=data.get("localId"), email=email)
        return self._session({**data, "emailVerified": False})

    async def sign_in(self, email: str, password: str) -> Session:
        data = await self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._session(data)

    async def sign_in_with_federated_token(self, id_token: str) -> FederatedSignIn:
        data = await self._post(
            "signInWithIdp",
            {
                "postBody": urlencode({"id_token": id_token, "providerId": "google.com"}),
                "requestUri": self.settings.federated_request_uri,
                "returnSecureToken": True,
                "returnIdpCredential": True,
            },
        )
        if data.get("needConfirmation"):
            raise ProviderError(
                "auth/account-exists-with-different-credential",
                "account exists with a different sign-in method",
            )
        session = self._session({**data, "emailVerified": data.get("emailVerified", True)}, provider="google")
        return FederatedSignIn(session=session, is_new_user=bool(data.get("isNewUser")))

    async def update_profile(self, session: Session, *, display_name: str) -> Session:
        data = await self._post(
            "update",
            {"idToken": session.id_token, "displayName": display_name, "returnSecureToken": True},
        )
        return self._session({**data, "displayName": display_name}, provider=session.provider, base=session)

    async def send_verification_email(self, session: Session) -> None:
        await self._post("sendOobCode", {"requestType": "VERIFY_EMAIL", "idToken": session.id_token})

    async def send_verification_email_for_new_address(self, session: Session, new_email: str) -> None:
        await self._post(
            "sendOobCode",
            {"requestType": "VERIFY_AND_CHANGE_EMAIL", "idToken": session.id_token, "newEmail": new_email},
        )

    async def reload_session(self, session: Session) -> Session:
        """
        Refresh tokens, then look the user up again (emailVerified / email may have changed).
        A completed verify-before-update email change revokes the refresh token, so the
        refresh fails with auth/user-token-expired and the user has to sign in again.
        """
        tokens = await self._refresh(session.refresh_token)
        id_token = tokens.get("id_token") or session.id_token
        data = await self._post("lookup", {"idToken": id_token})
        users = data.get("users") or []
        if not users:
            raise ProviderError("auth/user-not-found", "lookup returned no users")
        user = dict(users[0])
        user["idToken"] = id_token
        user["refreshToken"] = tokens.get("refresh_token") or session.refresh_token
        return self._session(user, provider=session.provider, base=session)

    async def reauthenticate(self, session: Session, password: str) -> Session:
        data = await self._post(
            "signInWithPassword",
            {"email": session.email, "password": password, "returnSecureToken": True},
        )
        if data.get("localId") != session.uid:
            raise ProviderError("auth/user-mismatch", "credential belongs to a different user")
        return self._session(data, provider=session.provider, base=session)

    async def update_password(self, session: Session, new_password: str) -> Session:
        data = await self._post(
            "update",
            {"idToken": session.id_token, "password": new_password, "returnSecureToken": True},
        )
        return self._session(data, provider=session.provider, base=session)

    async def sign_out(self, session: Session) -> None:
        # REST sessions are bearer tokens; dropping them locally is the sign-out
        auth_trace("identity.signout", uid=session.uid)

    async def send_password_reset_email(self, email: str) -> None:
        await self._post("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})
