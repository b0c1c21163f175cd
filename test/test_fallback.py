"""Tests for the status-driven fallback chain."""

import pytest

from capture_bridge.shared.exceptions import UpstreamError
from capture_bridge.upstream.fallback import FallbackChain, FallbackState

pytestmark = pytest.mark.asyncio


def _failing(status: int):
    async def call(*_args):
        raise UpstreamError(status, f"https://api.test/{status}", {"status": status})

    return call


async def _ok(*_args):
    return "ok"


async def test_primary_success() -> None:
    chain = FallbackChain("test", _ok).on_status(404, _failing(500))

    assert await chain.run() == "ok"
    assert chain.state is FallbackState.DONE
    assert chain.trigger is None


async def test_registered_status_uses_fallback() -> None:
    chain = FallbackChain("test", _failing(404)).on_status(404, _ok)

    assert await chain.run() == "ok"
    assert chain.state is FallbackState.DONE
    assert chain.trigger == 404


async def test_unregistered_status_fails() -> None:
    chain = FallbackChain("test", _failing(503)).on_status(404, _ok)

    with pytest.raises(UpstreamError) as exc_info:
        await chain.run()

    assert exc_info.value.status_code == 503
    assert chain.state is FallbackState.FAILED


async def test_fallback_error_fails_without_further_fallback() -> None:
    chain = (
        FallbackChain("test", _failing(404))
        .on_status(404, _failing(404))
    )

    with pytest.raises(UpstreamError):
        await chain.run()

    assert chain.state is FallbackState.FAILED
    assert chain.trigger == 404
