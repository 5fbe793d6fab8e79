"""Coalesce concurrent calls into one shared in-flight operation."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """At most one pending operation at a time, shared by every caller.

    The first caller of :meth:`run` starts ``factory()`` in its own task;
    callers arriving while it is pending await the same task. The marker is
    cleared before the result is delivered, so a call made after settling
    starts a fresh operation.
    """

    def __init__(self) -> None:
        self._pending: Optional[asyncio.Task[T]] = None

    @property
    def in_flight(self) -> bool:
        return self._pending is not None

    async def run(self, factory: Callable[[], Awaitable[T]]) -> T:
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._settle(factory))
        # A cancelled waiter must not cancel the operation other callers share.
        return await asyncio.shield(self._pending)

    async def _settle(self, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        finally:
            self._pending = None
