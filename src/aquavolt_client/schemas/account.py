# src/aquavolt_client/schemas/account.py

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AccountRecord(BaseModel):
    """
    The per-account document in the record store (users/{uid}).

    Stored with camelCase keys; attribute access is snake_case:
      record.pending_email_lower  <->  "pendingEmailLower"

    Unknown keys written by other clients are kept and written back.
    Timestamps are epoch milliseconds.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    uid: str
    full_name: Optional[str] = Field(default=None, alias="fullName")
    email: str = ""
    email_lower: str = Field(default="", alias="emailLower")
    email_verified: bool = Field(default=False, alias="emailVerified")

    # set together while an email change waits for the new address to be verified
    pending_email: Optional[str] = Field(default=None, alias="pendingEmail")
    pending_email_lower: Optional[str] = Field(default=None, alias="pendingEmailLower")

    disabled: bool = False
    reactivation_pending: bool = Field(default=False, alias="reactivationPending")
    provider: str = "password"  # "password" | "google"

    created_at: Optional[int] = Field(default=None, alias="createdAt")
    last_login_at: Optional[int] = Field(default=None, alias="lastLoginAt")
    verified_at: Optional[int] = Field(default=None, alias="verifiedAt")
    email_changed_at: Optional[int] = Field(default=None, alias="emailChangedAt")
    reactivated_at: Optional[int] = Field(default=None, alias="reactivatedAt")
    reactivation_email_sent_at: Optional[int] = Field(default=None, alias="reactivationEmailSentAt")
    disabled_at: Optional[int] = Field(default=None, alias="disabledAt")

    @model_validator(mode="after")
    def _pending_email_pair(self) -> "AccountRecord":
        if self.pending_email and not self.pending_email_lower:
            self.pending_email_lower = self.pending_email.strip().lower()
        elif self.pending_email_lower and not self.pending_email:
            self.pending_email = self.pending_email_lower
        elif self.pending_email and self.pending_email.strip().lower() != self.pending_email_lower:
            raise ValueError("pendingEmailLower does not match pendingEmail")
        if not self.pending_email:
            self.pending_email = None
            self.pending_email_lower = None
        return self

    @property
    def has_pending_email(self) -> bool:
        return bool(self.pending_email_lower)

    def to_store(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class AccountState(str, Enum):
    unregistered = "unregistered"
    pending_verification = "pending_verification"
    active = "active"
    disabled = "disabled"
    reactivation_pending = "reactivation_pending"
    email_change_pending = "email_change_pending"


class VerificationMode(str, Enum):
    """Which flow a verification screen is completing."""

    signup = "signup"
    email_change = "email_change"
    reactivation = "reactivation"


def account_state(record: Optional[AccountRecord]) -> AccountState:
    if record is None:
        return AccountState.unregistered
    if record.disabled:
        return AccountState.reactivation_pending if record.reactivation_pending else AccountState.disabled
    if record.has_pending_email:
        return AccountState.email_change_pending
    if not record.email_verified:
        return AccountState.pending_verification
    return AccountState.active


def verification_mode(record: Optional[AccountRecord]) -> VerificationMode:
    if record is not None and record.has_pending_email:
        return VerificationMode.email_change
    if record is not None and record.reactivation_pending:
        return VerificationMode.reactivation
    return VerificationMode.signup
