"""Concurrency primitives used by the aggregation engine."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Iterable, Optional, TypeVar

T = TypeVar("T")


class FanOut:
    """Concurrent item-level calls, optionally capped by a shared semaphore.

    Only leaf network calls go through :meth:`slot`; wrapping a coroutine that
    itself waits on other slots could exhaust the semaphore. A limit of ``0``
    or ``None`` keeps fan-out unbounded.
    """

    def __init__(self, limit: Optional[int] = None) -> None:
        self._limit = limit or None
        self._semaphore = asyncio.Semaphore(limit) if limit else None

    @property
    def limit(self) -> Optional[int]:
        return self._limit

    async def slot(self, coro: Awaitable[T]) -> T:
        """Run the coroutine under the fan-out semaphore when one is configured."""

        if self._semaphore is None:
            return await coro
        async with self._semaphore:
            return await coro

    @staticmethod
    async def gather(coros: Iterable[Awaitable[T]]) -> list[T]:
        """Wait for all coroutines; results come back in submission order."""

        return list(await asyncio.gather(*coros))


__all__ = ["FanOut"]
