# src/aquavolt_client/services/onboarding.py
from __future__ import annotations

from aquavolt_client.providers.base import LocalStorage

ONBOARDING_KEY = "aquavolt_has_seen_onboarding"


class OnboardingFlag:
    """Whether this device already showed the onboarding carousel."""

    def __init__(self, storage: LocalStorage) -> None:
        self.storage = storage

    async def has_seen(self) -> bool:
        return (await self.storage.get(ONBOARDING_KEY)) == "true"

    async def mark_seen(self) -> None:
        await self.storage.set(ONBOARDING_KEY, "true")

    async def reset(self) -> None:
        await self.storage.remove(ONBOARDING_KEY)
