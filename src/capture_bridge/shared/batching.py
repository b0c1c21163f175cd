"""
Lazy batch / page combinators shared by search pagination and capture lookups.

Both produce an async sequence of result lists. Requests are issued one at a
time and only when the consumer asks for the next element, so `collect`
stopping early means no further upstream calls are made.
"""

from __future__ import annotations

from contextlib import aclosing
from typing import AsyncIterator, Awaitable, Callable, Iterator, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

PageFetcher = Callable[[str | None], Awaitable[tuple[list[R], str | None]]]


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    if size < 1:
        raise ValueError("size must be >= 1")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


async def iter_batches(
    items: Sequence[T],
    size: int,
    fetch: Callable[[list[T]], Awaitable[list[R]]],
) -> AsyncIterator[list[R]]:
    for chunk in chunked(items, size):
        yield await fetch(chunk)


async def iter_pages(fetch_page: PageFetcher[R], *, max_pages: int) -> AsyncIterator[list[R]]:
    """Follow cursors until the upstream reports no next page or max_pages is hit."""
    cursor: str | None = None
    for _ in range(max_pages):
        items, cursor = await fetch_page(cursor)
        yield items
        if not cursor:
            return


async def collect(
    results: AsyncIterator[list[R]],
    *,
    stop_when: Callable[[list[R]], bool] | None = None,
) -> list[R]:
    accumulated: list[R] = []
    async with aclosing(results) as stream:
        async for batch in stream:
            accumulated.extend(batch)
            if stop_when is not None and stop_when(accumulated):
                break
    return accumulated
