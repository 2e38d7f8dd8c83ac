from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable, Iterable
from typing import Generic, TypeVar

AUTHZ_TRAVERSAL_CONCURRENCY = int(os.getenv("AUTHZ_TRAVERSAL_CONCURRENCY", "16"))

T = TypeVar("T")
K = TypeVar("K")


async def gather_or_cancel(awaitables: Iterable[Awaitable[T]]) -> list[T]:
    """Like ``asyncio.gather`` but the first failure cancels and reaps the rest.

    The first exception is re-raised unchanged once every sibling has finished.
    """
    tasks = [asyncio.ensure_future(item) for item in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class FanOut:
    """Bounds the number of store reads in flight for one traversal."""

    def __init__(self, limit: int = AUTHZ_TRAVERSAL_CONCURRENCY) -> None:
        self._semaphore = asyncio.Semaphore(max(limit, 1))

    async def call(self, fn: Callable[[K], Awaitable[T]], arg: K) -> T:
        async with self._semaphore:
            return await fn(arg)

    async def map(self, fn: Callable[[K], Awaitable[T]], args: Iterable[K]) -> list[T]:
        return await gather_or_cancel(self.call(fn, arg) for arg in args)


class TaskMemo(Generic[K, T]):
    """Shares one in-flight or finished lookup per key among concurrent callers."""

    def __init__(self, fetch: Callable[[K], Awaitable[T]], fanout: FanOut) -> None:
        self._fetch = fetch
        self._fanout = fanout
        self._tasks: dict[K, asyncio.Future[T]] = {}

    async def get(self, key: K) -> T:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fanout.call(self._fetch, key))
            self._tasks[key] = task
        return await task

    async def get_many(self, keys: Iterable[K]) -> list[T]:
        return await gather_or_cancel(self.get(key) for key in keys)

    def __len__(self) -> int:
        return len(self._tasks)
