"""
In-flight request de-duplication.

`InFlightRegistry.run(key, factory)` starts `factory()` once per key; any
caller arriving with the same key while it is still running awaits the same
task and receives the same result or exception. The key is forgotten as soon
as the task settles, so later calls start fresh.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict

from core.logging_config import get_logger

logger = get_logger(__name__)


class InFlightRegistry:
    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda _t, k=key: self._tasks.pop(k, None))
        else:
            logger.debug(f"Joining in-flight request for {key}")

        # shield: one cancelled waiter must not cancel the shared call
        return await asyncio.shield(task)
