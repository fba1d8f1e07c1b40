# src/aquavolt_client/providers/base.py
"""
Contracts for the collaborators the lifecycle controller talks to.

Every failure surfaces as ProviderError with a canonical code
("auth/..." for the identity provider, "store/..." for the record store).
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

from pydantic import BaseModel

from aquavolt_client.auth.session import Session


class FederatedSignIn(BaseModel):
    session: Session
    is_new_user: bool = False


class IdentityProvider(Protocol):
    async def create_account(self, email: str, password: str) -> Session: ...

    async def sign_in(self, email: str, password: str) -> Session: ...

    async def sign_in_with_federated_token(self, id_token: str) -> FederatedSignIn: ...

    async def update_profile(self, session: Session, *, display_name: str) -> Session: ...

    async def send_verification_email(self, session: Session) -> None: ...

    async def send_verification_email_for_new_address(self, session: Session, new_email: str) -> None: ...

    async def reload_session(self, session: Session) -> Session: ...

    async def reauthenticate(self, session: Session, password: str) -> Session: ...

    async def update_password(self, session: Session, new_password: str) -> Session: ...

    async def sign_out(self, session: Session) -> None: ...

    async def send_password_reset_email(self, email: str) -> None: ...


class AccountRecordStore(Protocol):
    """Account records keyed by uid, stored with camelCase field names."""

    async def get(self, uid: str, *, id_token: Optional[str] = None) -> Optional[Dict[str, Any]]: ...

    async def set(self, uid: str, record: Dict[str, Any], *, id_token: Optional[str] = None) -> None: ...

    async def update(self, uid: str, patch: Dict[str, Any], *, id_token: Optional[str] = None) -> None:
        """Shallow merge; a None value deletes the field."""
        ...

    async def find_by_email(self, email_lower: str, *, id_token: Optional[str] = None) -> Optional[str]:
        """uid of the record owning `email_lower`, or None."""
        ...

    async def set_email_index(self, email_lower: str, uid: str, *, id_token: Optional[str] = None) -> None: ...

    async def remove_email_index(self, email_lower: str, *, id_token: Optional[str] = None) -> None: ...


class LocalStorage(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...
