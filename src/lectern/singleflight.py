"""Per-key in-flight request coalescing.

The first caller for a key starts the work; callers that arrive while it
is running await the same result instead of starting their own. The key
is forgotten as soon as the work finishes, so a later call starts fresh.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Hashable

logger = logging.getLogger(__name__)


class SingleFlight:
    """Collapses concurrent calls with the same key into one."""

    def __init__(self):
        self._inflight: dict[Hashable, asyncio.Future] = {}

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[Any]]) -> Any:
        """Run fn for key, or join the run already in flight.

        Exceptions raised by fn reach every caller sharing the run.
        Cancelling one waiter does not cancel the shared run.
        """
        existing = self._inflight.get(key)
        if existing is not None:
            logger.debug(f"Joining in-flight request for {key}")
            return await asyncio.shield(existing)

        task = asyncio.ensure_future(fn())
        self._inflight[key] = task

        def _forget(done: asyncio.Future) -> None:
            if self._inflight.get(key) is task:
                del self._inflight[key]
            # Mark the exception retrieved even when every waiter was cancelled
            if not done.cancelled():
                done.exception()

        task.add_done_callback(_forget)
        return await asyncio.shield(task)
