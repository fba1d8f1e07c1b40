# src/aquavolt_client/auth/google.py
"""
Google ID token checks for federated sign-in.

LIVE: RS256 signature against Google's JWKS, plus aud / iss / exp.
TEST_MODE: claims are decoded without a signature so tests can mint tokens;
iss is still checked, exp only with TEST_MODE_ENFORCE_EXP.
"""
from __future__ import annotations

import base64
import json
import os
import time
from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
from jwt import PyJWKClient

from aquavolt_client.core.errors import ProviderError
from aquavolt_client.core.trace import auth_trace


def _env_flag(var: str) -> bool:
    return os.getenv(var, "").lower() in ("1", "true", "yes", "on")


GOOGLE_ISS            = os.getenv("GOOGLE_ISS", "https://accounts.google.com")
GOOGLE_JWKS_URI       = os.getenv("GOOGLE_JWKS_URI", "https://www.googleapis.com/oauth2/v3/certs")
GOOGLE_CLIENT_ID      = os.getenv("GOOGLE_CLIENT_ID", "").strip()
GOOGLE_AUDIENCE       = (os.getenv("GOOGLE_AUDIENCE") or GOOGLE_CLIENT_ID or "").strip()
TEST_MODE             = _env_flag("TEST_MODE")
TEST_MODE_ENFORCE_EXP = _env_flag("TEST_MODE_ENFORCE_EXP")

ACCEPTED_ISSUERS = ("https://accounts.google.com", "accounts.google.com")
CLOCK_SKEW_SEC = 120


@lru_cache(maxsize=1)
def _jwks_client() -> PyJWKClient:
    return PyJWKClient(GOOGLE_JWKS_URI)


def _reject(event: str, detail: str, **kv: Any) -> ProviderError:
    auth_trace(f"google.verify.{event}", **kv)
    return ProviderError("auth/invalid-credential", f"invalid google id_token: {detail}")


def decode_without_signature(jwt_str: str) -> Dict[str, Any]:
    """Claims of a JWT whose signature is not checked. {} when it cannot be parsed."""
    try:
        return jwt.decode(jwt_str, options={"verify_signature": False, "verify_aud": False})
    except jwt.PyJWTError:
        pass
    segments = jwt_str.split(".")
    if len(segments) < 2:
        return {}
    body = segments[1] + "=" * (-len(segments[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(body.encode("ascii")))
    except (ValueError, UnicodeError):
        return {}
    return claims if isinstance(claims, dict) else {}


def _live_claims(id_token: str, aud: str) -> Dict[str, Any]:
    try:
        alg = jwt.get_unverified_header(id_token).get("alg")
        if alg != "RS256":
            raise _reject("bad_alg", f"unexpected alg: {alg}", alg=alg)
        signing_key = _jwks_client().get_signing_key_from_jwt(id_token).key
        return jwt.decode(
            id_token,
            key=signing_key,
            algorithms=["RS256"],
            audience=aud,
            issuer=GOOGLE_ISS,
            options={"require": ["exp", "aud", "iss"]},
            leeway=CLOCK_SKEW_SEC,
        )
    except jwt.ExpiredSignatureError:
        raise _reject("expired", "exp (expired)")
    except jwt.InvalidAudienceError:
        raise _reject("aud_mismatch", f"audience mismatch (want={aud})")
    except jwt.InvalidIssuerError:
        raise _reject("iss_mismatch", f"issuer mismatch (want={GOOGLE_ISS})")
    except jwt.PyJWTError as ex:
        raise _reject("jwt_error", str(ex), err=str(ex))


def _test_claims(id_token: str, aud: str) -> Dict[str, Any]:
    claims = decode_without_signature(id_token)
    if not claims:
        raise _reject("test_decode_failed", "test decode failed")
    if claims.get("aud") and claims["aud"] != aud:
        # minted tokens often carry a dummy client id
        auth_trace("google.verify.test_aud_ignored", token_aud=claims["aud"], want_aud=aud)
    if TEST_MODE_ENFORCE_EXP:
        exp, now = claims.get("exp"), int(time.time())
        if not isinstance(exp, int) or exp < now:
            raise _reject("test_exp_enforced", "expired (TEST_MODE_ENFORCE_EXP)", exp=exp, now=now)
    return claims


async def verify_google_id_token(id_token: str, *, audience: Optional[str] = None) -> Dict[str, Any]:
    """
    Verified claims of a raw Google ID token.
    Every failure is ProviderError("auth/invalid-credential").
    """
    aud = (audience or GOOGLE_AUDIENCE or "").strip()
    if not aud:
        raise ProviderError("auth/invalid-credential", "GOOGLE_AUDIENCE/GOOGLE_CLIENT_ID missing")

    mode = "TEST" if TEST_MODE else "LIVE"
    auth_trace("google.verify.begin", mode=mode, want_aud=aud)
    claims = _test_claims(id_token, aud) if TEST_MODE else _live_claims(id_token, aud)

    iss = claims.get("iss")
    if iss not in ACCEPTED_ISSUERS:
        raise _reject("bad_iss_value", "iss not Google", mode=mode, iss=iss)

    auth_trace("google.verify.ok", mode=mode, aud=claims.get("aud"), iss=iss, exp=claims.get("exp"))
    return claims


def identity_from_claims(claims: Dict[str, Any]) -> Dict[str, Any]:
    """Pick the profile fields an account record cares about out of ID token claims."""
    email = (claims.get("email") or "").strip()
    return {
        "subject": str(claims.get("sub") or ""),
        "email": email,
        "email_verified": bool(claims.get("email_verified", bool(email))),
        "name": (claims.get("name") or "").strip() or None,
    }
