"""In-flight request deduplication.

Collapses concurrent identical operations into one execution: while a call for
a key is outstanding, later callers await the same task and observe the same
result or the same error. The key is removed from the ledger inside the task,
before any waiter is resumed, so the next call after settlement starts fresh.

FastAPI runs on a single event loop, so the ledger needs no lock. If it is ever
shared across threads or loops, it needs explicit synchronization.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestDeduplicator:
    """Keyed ledger of in-flight operations."""

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Task[Any]] = {}

    @property
    def in_flight(self) -> int:
        """Number of operations currently running."""
        return len(self._in_flight)

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def dedupe(self, key: str, producer: Callable[[], Awaitable[T]]) -> T:
        """Run producer once per key at a time, sharing its outcome.

        Args:
            key: Dedup key (normally the cache key of the resource)
            producer: Zero-argument coroutine factory

        Returns:
            The producer's result, shared by every concurrent caller

        Raises:
            Whatever the producer raised, re-raised in every caller
        """
        existing = self._in_flight.get(key)
        if existing is not None:
            logger.debug(f"Joining in-flight request for {key}")
            # shield: one caller being cancelled must not cancel the shared task
            return await asyncio.shield(existing)

        task = asyncio.create_task(self._run(key, producer))
        task.add_done_callback(lambda t: self._retrieve_error(key, t))
        self._in_flight[key] = task
        return await asyncio.shield(task)

    @staticmethod
    def _retrieve_error(key: str, task: asyncio.Task[Any]) -> None:
        # Marks the error retrieved even when every caller was cancelled
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"In-flight request for {key} failed: {task.exception()!r}")

    async def _run(self, key: str, producer: Callable[[], Awaitable[T]]) -> T:
        try:
            return await producer()
        finally:
            self._in_flight.pop(key, None)
