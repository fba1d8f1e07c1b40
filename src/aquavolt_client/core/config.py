# src/aquavolt_client/core/config.py
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

# This file lives at: src/aquavolt_client/core/config.py
# .env is at project root (three levels above the package dir)
ROOT_DIR = Path(__file__).resolve().parents[3]
load_dotenv(ROOT_DIR / ".env")

IDENTITY_BASE_URL     = "https://identitytoolkit.googleapis.com/v1"
SECURE_TOKEN_URL      = "https://securetoken.googleapis.com/v1/token"
FEDERATED_REQUEST_URI = "http://localhost"


def _flag(var: str, default: str = "") -> bool:
    return (os.getenv(var, default) or "").strip().lower() in ("1", "true", "yes", "on")


def _float(var: str, default: float) -> float:
    raw = (os.getenv(var) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{var} must be a number, got {raw!r}")


class Settings(BaseModel):
    """Runtime settings for the client core. Built from env by load_settings()."""

    # Firebase project (identity toolkit + realtime database)
    firebase_api_key: str = ""
    firebase_database_url: str = ""
    identity_base_url: str = IDENTITY_BASE_URL
    secure_token_url: str = SECURE_TOKEN_URL
    federated_request_uri: str = FEDERATED_REQUEST_URI
    http_timeout_sec: float = 15.0

    # lifecycle timing
    email_check_debounce_sec: float = 0.5
    verify_retry_delay_sec: float = 1.0

    # local persistence
    session_secret: str = "dev-session-secret"  # use a strong secret in real builds
    local_store_path: Path = ROOT_DIR / "aquavolt_local.db"

    # no network collaborators; in-memory identity + record store
    offline: bool = False


def load_settings() -> Settings:
    store_path = (os.getenv("LOCAL_STORE_PATH") or "").strip()
    return Settings(
        firebase_api_key=(os.getenv("FIREBASE_API_KEY") or "").strip(),
        firebase_database_url=(os.getenv("FIREBASE_DATABASE_URL") or "").strip().rstrip("/"),
        identity_base_url=(os.getenv("IDENTITY_BASE_URL") or IDENTITY_BASE_URL).rstrip("/"),
        secure_token_url=os.getenv("SECURE_TOKEN_URL") or SECURE_TOKEN_URL,
        federated_request_uri=os.getenv("FEDERATED_REQUEST_URI") or FEDERATED_REQUEST_URI,
        http_timeout_sec=_float("HTTP_TIMEOUT_SEC", 15.0),
        email_check_debounce_sec=_float("EMAIL_CHECK_DEBOUNCE_SEC", 0.5),
        verify_retry_delay_sec=_float("VERIFY_RETRY_DELAY_SEC", 1.0),
        session_secret=os.getenv("SESSION_SECRET", "dev-session-secret"),
        local_store_path=Path(store_path) if store_path else ROOT_DIR / "aquavolt_local.db",
        offline=_flag("AQUAVOLT_OFFLINE"),
    )
