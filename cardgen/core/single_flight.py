"""Single-flight execution: at most one in-flight run per key.

Callers that arrive while a run for their key is pending attach to the same
task and observe the same outcome (value or exception). The key is released
in the task's own ``finally`` block, so it is removed exactly once whether
the run succeeds or fails.
"""

import asyncio
import threading
from collections.abc import Awaitable, Callable, Hashable
from typing import TypeVar

from cardgen.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RequestCoalescer:
    def __init__(self) -> None:
        self._in_flight: dict[Hashable, asyncio.Task] = {}
        self._lock = threading.Lock()

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``factory`` for key, or join the run already in flight.

        Args:
            key: Coalescing key
            factory: Zero-arg coroutine function producing the result

        Returns:
            The shared result of the single underlying run
        """
        with self._lock:
            task = self._in_flight.get(key)
            joined = task is not None
            if task is None:
                task = asyncio.ensure_future(self._run_and_release(key, factory))
                self._in_flight[key] = task

        if joined:
            logger.info(f"Request already in progress for {key}; attaching to pending result")

        # A cancelled waiter must not cancel the shared run
        return await asyncio.shield(task)

    async def _run_and_release(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        finally:
            with self._lock:
                self._in_flight.pop(key, None)

    def is_in_flight(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._in_flight

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)
