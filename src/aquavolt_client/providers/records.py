# src/aquavolt_client/providers/records.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import httpx

from aquavolt_client.auth.validation import email_to_key
from aquavolt_client.core.config import Settings
from aquavolt_client.core.errors import ProviderError

log = logging.getLogger(__name__)

USERS_PATH = "users"
EMAIL_INDEX_PATH = "emailIndex"


def _store_error(r: httpx.Response) -> ProviderError:
    try:
        detail = r.json().get("error") or r.text
    except (ValueError, AttributeError):
        detail = r.text
    if r.status_code in (401, 403):
        return ProviderError("store/permission-denied", str(detail))
    return ProviderError(f"store/http-{r.status_code}", str(detail)[:200])


class RealtimeDatabaseStore:
    """
    AccountRecordStore over the Firebase Realtime Database REST API.

      users/{uid}              account record (camelCase keys)
      emailIndex/{emailKey}    uid, for the uniqueness pre-check
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> None:
        self.base_url = settings.firebase_database_url.rstrip("/")
        self._own_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.http_timeout_sec)

    async def aclose(self) -> None:
        if self._own_client:
            await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        id_token: Optional[str] = None,
        body: Any = None,
        query: Optional[Dict[str, str]] = None,
    ) -> Any:
        params: Dict[str, str] = dict(query or {})
        if id_token:
            params["auth"] = id_token
        kwargs: Dict[str, Any] = {"params": params}
        if method in ("PUT", "PATCH"):
            kwargs["json"] = body
        try:
            r = await self.client.request(method, f"{self.base_url}/{path}.json", **kwargs)
        except httpx.TransportError as ex:
            raise ProviderError("store/network-request-failed", str(ex)) from ex
        if r.status_code >= 400:
            raise _store_error(r)
        return r.json() if r.content else None

    # ---------------- AccountRecordStore ----------------

    async def get(self, uid: str, *, id_token: Optional[str] = None) -> Optional[Dict[str, Any]]:
        data = await self._request("GET", f"{USERS_PATH}/{uid}", id_token=id_token)
        return data if isinstance(data, dict) else None

    async def set(self, uid: str, record: Dict[str, Any], *, id_token: Optional[str] = None) -> None:
        await self._request("PUT", f"{USERS_PATH}/{uid}", id_token=id_token, body=record)

    async def update(self, uid: str, patch: Dict[str, Any], *, id_token: Optional[str] = None) -> None:
        # RTDB PATCH: a null value removes the child
        await self._request("PATCH", f"{USERS_PATH}/{uid}", id_token=id_token, body=patch)

    async def find_by_email(self, email_lower: str, *, id_token: Optional[str] = None) -> Optional[str]:
        uid = await self._request("GET", f"{EMAIL_INDEX_PATH}/{email_to_key(email_lower)}", id_token=id_token)
        if isinstance(uid, str) and uid:
            return uid
        # older records were written before the index existed
        hits = await self._request(
            "GET",
            USERS_PATH,
            id_token=id_token,
            query={"orderBy": json.dumps("emailLower"), "equalTo": json.dumps(email_lower)},
        )
        if isinstance(hits, dict) and hits:
            return next(iter(hits))
        return None

    async def set_email_index(self, email_lower: str, uid: str, *, id_token: Optional[str] = None) -> None:
        await self._request("PUT", f"{EMAIL_INDEX_PATH}/{email_to_key(email_lower)}", id_token=id_token, body=uid)

    async def remove_email_index(self, email_lower: str, *, id_token: Optional[str] = None) -> None:
        await self._request("DELETE", f"{EMAIL_INDEX_PATH}/{email_to_key(email_lower)}", id_token=id_token)
