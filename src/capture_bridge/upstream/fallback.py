"""
Status-driven fallback for upstream queries.

A chain starts in PRIMARY. An `UpstreamError` whose status has a registered
handler moves it to FALLBACK (once); success from either step ends in DONE,
anything else ends in FAILED and re-raises.
"""

from __future__ import annotations

from enum import Enum
from typing import Awaitable, Callable, Generic, TypeVar

from capture_bridge.shared.exceptions import UpstreamError
from capture_bridge.shared.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class FallbackState(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"
    DONE = "done"
    FAILED = "failed"


class FallbackChain(Generic[T]):
    def __init__(self, name: str, primary: Callable[[], Awaitable[T]]) -> None:
        self.name = name
        self._primary = primary
        self._handlers: dict[int, Callable[[UpstreamError], Awaitable[T]]] = {}
        self.state = FallbackState.PRIMARY
        self.trigger: int | None = None

    def on_status(
        self,
        status_code: int,
        handler: Callable[[UpstreamError], Awaitable[T]],
    ) -> "FallbackChain[T]":
        self._handlers[status_code] = handler
        return self

    async def run(self) -> T:
        self.state = FallbackState.PRIMARY
        self.trigger = None
        try:
            result = await self._primary()
        except UpstreamError as exc:
            handler = self._handlers.get(exc.status_code)
            if handler is None:
                self.state = FallbackState.FAILED
                raise
            result = await self._run_fallback(handler, exc)
        except Exception:
            self.state = FallbackState.FAILED
            raise
        self.state = FallbackState.DONE
        return result

    async def _run_fallback(
        self,
        handler: Callable[[UpstreamError], Awaitable[T]],
        exc: UpstreamError,
    ) -> T:
        self.state = FallbackState.FALLBACK
        self.trigger = exc.status_code
        logger.info(
            "Primary upstream call rejected; using fallback",
            extra={"chain": self.name, "status_code": exc.status_code, "url": exc.url},
        )
        try:
            return await handler(exc)
        except Exception:
            self.state = FallbackState.FAILED
            raise
