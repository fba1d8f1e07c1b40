# src/aquavolt_client/core/errors.py
from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple


class AuthErrorKind(str, Enum):
    invalid_input = "invalid_input"
    email_already_registered = "email_already_registered"
    email_not_verified = "email_not_verified"
    account_disabled = "account_disabled"
    requires_recent_login = "requires_recent_login"
    wrong_password = "wrong_password"
    too_many_requests = "too_many_requests"
    network_error = "network_error"
    account_exists_with_different_credential = "account_exists_with_different_credential"
    not_verified_yet = "not_verified_yet"
    no_session = "no_session"
    session_mismatch = "session_mismatch"
    account_not_found = "account_not_found"
    invalid_credential = "invalid_credential"
    unknown = "unknown"


DEFAULT_MESSAGES: Dict[AuthErrorKind, str] = {
    AuthErrorKind.invalid_input: "Please check the highlighted fields.",
    AuthErrorKind.email_already_registered: "That email is already registered.",
    AuthErrorKind.email_not_verified: "Please verify your email first.",
    AuthErrorKind.account_disabled: "Your account is currently disabled. Would you like to reactivate it?",
    AuthErrorKind.requires_recent_login: "For security, please confirm your password again.",
    AuthErrorKind.wrong_password: "Invalid email or password.",
    AuthErrorKind.too_many_requests: "Too many requests. Please wait and try again.",
    AuthErrorKind.network_error: "Network error. Check your connection and try again.",
    AuthErrorKind.account_exists_with_different_credential:
        "An account already exists for this email. Sign in with your password instead.",
    AuthErrorKind.not_verified_yet: "Not verified yet. Check inbox/spam then try again.",
    AuthErrorKind.no_session: "No active session. Please log in again.",
    AuthErrorKind.session_mismatch: "That password belongs to a different account.",
    AuthErrorKind.account_not_found: "No account found for that email.",
    AuthErrorKind.invalid_credential: "Google login failed. Please try again.",
    AuthErrorKind.unknown: "Something went wrong. Please try again.",
}

RETRYABLE = frozenset({
    AuthErrorKind.not_verified_yet,
    AuthErrorKind.too_many_requests,
    AuthErrorKind.network_error,
})


class ProviderError(Exception):
    """
    Raised by the identity provider / record store collaborators.
    `code` is a canonical condition code, e.g. "auth/wrong-password".
    """

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code
        self.message = message or code


class AuthError(Exception):
    """Typed failure surfaced by the account lifecycle controller."""

    def __init__(
        self,
        kind: AuthErrorKind,
        message: Optional[str] = None,
        *,
        field: Optional[str] = None,
        code: Optional[str] = None,
    ) -> None:
        self.kind = kind
        self.message = message or DEFAULT_MESSAGES[kind]
        self.field = field
        self.code = code
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE

    @property
    def requires_reauthentication(self) -> bool:
        # the only condition that detours the UI instead of showing a message
        return self.kind is AuthErrorKind.requires_recent_login

    def __repr__(self) -> str:
        return f"AuthError(kind={self.kind.value!r}, field={self.field!r}, code={self.code!r})"


class AccountDisabledError(AuthError):
    """
    Login succeeded but the account record is disabled.
    The caller must pick one of `choices`: cancel (log out) or reactivate.
    """

    choices: Tuple[str, str] = ("cancel", "reactivate")

    def __init__(self, session: Any, message: Optional[str] = None) -> None:
        super().__init__(AuthErrorKind.account_disabled, message)
        self.session = session


# canonical provider code -> taxonomy
PROVIDER_CODE_KINDS: Dict[str, AuthErrorKind] = {
    "auth/email-already-in-use": AuthErrorKind.email_already_registered,
    "auth/invalid-email": AuthErrorKind.invalid_input,
    "auth/weak-password": AuthErrorKind.invalid_input,
    "auth/wrong-password": AuthErrorKind.wrong_password,
    "auth/invalid-credential": AuthErrorKind.wrong_password,
    "auth/user-not-found": AuthErrorKind.account_not_found,
    "auth/user-disabled": AuthErrorKind.account_disabled,
    "auth/too-many-requests": AuthErrorKind.too_many_requests,
    "auth/network-request-failed": AuthErrorKind.network_error,
    "auth/requires-recent-login": AuthErrorKind.requires_recent_login,
    "auth/user-token-expired": AuthErrorKind.requires_recent_login,
    "auth/invalid-user-token": AuthErrorKind.requires_recent_login,
    "auth/user-mismatch": AuthErrorKind.session_mismatch,
    "auth/account-exists-with-different-credential": AuthErrorKind.account_exists_with_different_credential,
    "auth/credential-already-in-use": AuthErrorKind.account_exists_with_different_credential,
    "store/network-request-failed": AuthErrorKind.network_error,
}

# kinds whose provider wording is more useful than our default text
_PASS_THROUGH = frozenset({AuthErrorKind.unknown, AuthErrorKind.invalid_input})


def map_provider_error(
    ex: ProviderError,
    overrides: Optional[Mapping[str, AuthErrorKind]] = None,
) -> AuthError:
    kind = (overrides or {}).get(ex.code) or PROVIDER_CODE_KINDS.get(ex.code, AuthErrorKind.unknown)
    message = ex.message if kind in _PASS_THROUGH and ex.message != ex.code else None
    if kind is AuthErrorKind.unknown and message is None:
        message = f"{DEFAULT_MESSAGES[kind]} ({ex.code})"
    return AuthError(kind, message, code=ex.code)


@contextmanager
def provider_errors(overrides: Optional[Mapping[str, AuthErrorKind]] = None) -> Iterator[None]:
    """
    Controller boundary: convert collaborator ProviderErrors into AuthErrors.

      with provider_errors({"auth/user-not-found": AuthErrorKind.wrong_password}):
          session = await identity.sign_in(email, password)
    """
    try:
        yield
    except ProviderError as ex:
        raise map_provider_error(ex, overrides) from ex
