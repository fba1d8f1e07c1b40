# src/aquavolt_client/core/trace.py
from __future__ import annotations
import logging
import os
import time
from typing import Any, Mapping

_log = logging.getLogger("aquavolt.auth")

_SECRET_KEYS = {"id_token", "refresh_token", "token", "password"}
_EMAIL_KEYS = {"email", "new_email", "pending_email"}

def trace_enabled() -> bool:
    # read per call so tests can flip AUTH_TRACE with monkeypatch
    return (os.getenv("AUTH_TRACE", "")).lower() in ("1", "true", "yes", "on")

def mask_token(tok: str | None, keep: int = 8) -> str:
    if not tok:
        return "<none>"
    return tok[:keep] + "...(masked)"

def mask_email(email: str | None) -> str:
    if not email or "@" not in email:
        return "<none>"
    local, _, domain = email.partition("@")
    return f"{local[:2]}***@{domain}"

def _redact(key: str, value: Any) -> Any:
    if key in _SECRET_KEYS:
        return mask_token(str(value) if value else None)
    if key in _EMAIL_KEYS:
        return mask_email(str(value) if value else None)
    return value

def _fmt_kv(d: Mapping[str, Any]) -> str:
    return " ".join(f"{k}={_redact(k, d[k])}" for k in d)

def auth_trace(event: str, **kv: Any) -> None:
    """
    Emit a single-line structured log ONLY when AUTH_TRACE=true.
    Emails and tokens are masked before they reach the log.
    Example:
      [auth] login.disabled ts=... uid=uid-3 email=jo***@example.com
    """
    if not trace_enabled():
        return
    kv2 = {"ts": int(time.time()), **kv}
    _log.info("[auth] %s %s", event, _fmt_kv(kv2))
