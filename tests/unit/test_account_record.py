import pytest
from pydantic import ValidationError

from aquavolt_client.schemas.account import (
    AccountRecord,
    AccountState,
    VerificationMode,
    account_state,
    verification_mode,
)


def _record(**fields):
    return AccountRecord.model_validate({"uid": "u1", "email": "a@x.com", "emailLower": "a@x.com", **fields})


def test_reads_camel_case_and_writes_it_back():
    rec = _record(fullName="Jane Doe", emailVerified=True, createdAt=1, color="teal")
    assert rec.full_name == "Jane Doe"
    assert rec.email_verified is True
    out = rec.to_store()
    assert out["fullName"] == "Jane Doe"
    assert out["createdAt"] == 1
    assert out["color"] == "teal"  # unknown keys survive
    assert "pendingEmail" not in out


def test_pending_email_lower_is_derived():
    rec = _record(pendingEmail="New@X.com")
    assert rec.pending_email_lower == "new@x.com"


def test_pending_email_is_backfilled_from_lower():
    rec = _record(pendingEmailLower="new@x.com")
    assert rec.pending_email == "new@x.com"


def test_mismatched_pending_pair_rejected():
    with pytest.raises(ValidationError):
        _record(pendingEmail="new@x.com", pendingEmailLower="other@x.com")


@pytest.mark.parametrize(
    "fields, state",
    [
        ({}, AccountState.pending_verification),
        ({"emailVerified": True}, AccountState.active),
        ({"emailVerified": True, "disabled": True}, AccountState.disabled),
        ({"disabled": True, "reactivationPending": True}, AccountState.reactivation_pending),
        ({"pendingEmail": "n@x.com"}, AccountState.email_change_pending),
    ],
)
def test_account_state(fields, state):
    assert account_state(_record(**fields)) is state


def test_no_record_is_unregistered():
    assert account_state(None) is AccountState.unregistered


def test_verification_mode():
    assert verification_mode(None) is VerificationMode.signup
    assert verification_mode(_record(pendingEmail="n@x.com")) is VerificationMode.email_change
    assert verification_mode(_record(disabled=True, reactivationPending=True)) is VerificationMode.reactivation
