"""
In-memory credential cache, one credential per token strategy.

The store is owned by the application instance rather than the module so tests
can build one with a fake clock. There is no lock: two requests racing past an
expired credential may both call `refresh`, which is harmless because grant
endpoints are idempotent.
"""

from __future__ import annotations

import time
from typing import Awaitable, Callable

from capture_bridge.auth.schemas import Credential, TokenStrategy
from capture_bridge.shared.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]
Refresher = Callable[[Credential | None], Awaitable[Credential]]


class CredentialStore:
    def __init__(self, margin_seconds: float = 90, clock: Clock = time.time) -> None:
        self._margin = margin_seconds
        self._clock = clock
        self._credentials: dict[TokenStrategy, Credential] = {}

    def now(self) -> float:
        return self._clock()

    def get(self, strategy: TokenStrategy) -> Credential | None:
        return self._credentials.get(strategy)

    def put(self, strategy: TokenStrategy, credential: Credential) -> None:
        self._credentials[strategy] = credential

    def clear(self, strategy: TokenStrategy | None = None) -> None:
        if strategy is None:
            self._credentials.clear()
        else:
            self._credentials.pop(strategy, None)

    def is_fresh(self, credential: Credential) -> bool:
        return self._clock() < credential.expires_at - self._margin

    async def get_or_refresh(self, strategy: TokenStrategy, refresh: Refresher) -> Credential:
        """Return the cached credential while fresh, otherwise store and return ``refresh(current)``."""
        current = self._credentials.get(strategy)
        if current is not None and self.is_fresh(current):
            return current

        logger.info(
            "Credential missing or expired; requesting a new one",
            extra={"strategy": strategy.value, "had_credential": current is not None},
        )
        credential = await refresh(current)
        self._credentials[strategy] = credential
        return credential
