# src/aquavolt_client/auth/validation.py
"""
Client-side input rules shared by signup, login and the profile editors.
Nothing here touches the network; failures raise AuthError(invalid_input).
"""
from __future__ import annotations

import re
from typing import Optional, Tuple

from aquavolt_client.core.errors import AuthError, AuthErrorKind

SIGNUP_MIN_NAME_LEN = 8
EDIT_MIN_NAME_LEN = 2
MIN_PASSWORD_LEN = 8

# local@domain.tld, no whitespace, exactly one "@"
_EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")

# characters the record store refuses in keys
_KEY_UNSAFE = re.compile(r"[#$\[\]/]")

MSG_NAME_SHORT = "Full name must be at least 8 characters."
MSG_NAME_REQUIRED = "Please enter your full name."
MSG_EMAIL_REQUIRED = "Email is required."
MSG_EMAIL_INVALID = "Enter a valid email address."
MSG_PASSWORD_REQUIRED = "Password is required."
MSG_PASSWORD_WEAK = "Password must be 8+ chars and include uppercase, lowercase, and a number."
MSG_PASSWORD_MISMATCH = "Passwords do not match."


_MAX_CASE_PASSES = 4


def _cap(word: str) -> str:
    return word[:1].title() + word[1:].lower()


def format_name(value: Optional[str]) -> str:
    """
    Collapse whitespace and capitalise each word.
      "  john   mark  DE guzman" -> "John Mark De Guzman"

    Some characters title-case into two ("ŉ" -> "ʼN"), so the word pass is
    repeated until the name stops changing.
    """
    name = " ".join(str(value or "").split())
    for _ in range(_MAX_CASE_PASSES):
        nxt = " ".join(_cap(w) for w in name.split())
        if nxt == name:
            break
        name = nxt
    return name


def normalize_email(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and _EMAIL_RE.fullmatch(value) is not None


def is_strong_password(value: Optional[str]) -> bool:
    if not value or len(value) < MIN_PASSWORD_LEN:
        return False
    return (
        re.search(r"[a-z]", value) is not None
        and re.search(r"[A-Z]", value) is not None
        and re.search(r"[0-9]", value) is not None
    )


def email_to_key(email_lower: str) -> str:
    """Sanitize an email into a record-store key ("a.b@x.com" -> "a,b@x,com")."""
    return _KEY_UNSAFE.sub("_", normalize_email(email_lower).replace(".", ","))


def require_email(value: Optional[str], *, field: str = "email") -> str:
    email_lower = normalize_email(value)
    if not email_lower:
        raise AuthError(AuthErrorKind.invalid_input, MSG_EMAIL_REQUIRED, field=field)
    if not is_valid_email(email_lower):
        raise AuthError(AuthErrorKind.invalid_input, MSG_EMAIL_INVALID, field=field)
    return email_lower


def require_new_password(
    password: Optional[str],
    confirm: Optional[str] = None,
    *,
    field: str = "password",
    check_confirm: bool = True,
) -> str:
    if not is_strong_password(password):
        raise AuthError(AuthErrorKind.invalid_input, MSG_PASSWORD_WEAK, field=field)
    if check_confirm and password != confirm:
        raise AuthError(AuthErrorKind.invalid_input, MSG_PASSWORD_MISMATCH, field="confirm_password")
    return password


def validate_signup(
    full_name: Optional[str],
    email: Optional[str],
    password: Optional[str],
    confirm_password: Optional[str] = None,
) -> Tuple[str, str]:
    """Return (formatted_name, email_lower) or raise on the first bad field."""
    name = format_name(full_name)
    if len(name) < SIGNUP_MIN_NAME_LEN:
        raise AuthError(AuthErrorKind.invalid_input, MSG_NAME_SHORT, field="full_name")
    email_lower = require_email(email)
    require_new_password(password, confirm_password, check_confirm=confirm_password is not None)
    return name, email_lower


def validate_login(email: Optional[str], password: Optional[str]) -> str:
    email_lower = require_email(email)
    if not password:
        raise AuthError(AuthErrorKind.invalid_input, MSG_PASSWORD_REQUIRED, field="password")
    return email_lower


def validate_display_name(full_name: Optional[str]) -> str:
    name = format_name(full_name)
    if len(name) < EDIT_MIN_NAME_LEN:
        raise AuthError(AuthErrorKind.invalid_input, MSG_NAME_REQUIRED, field="full_name")
    return name
