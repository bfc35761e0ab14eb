"""Fire-and-forget task runner for side effects that must not block a request.

Confirmation emails and analytics writes are scheduled here. Each task is
bounded by a timeout; failures are logged with the task name and never
propagate back to the request that scheduled them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from backstage_gate.core.settings import settings

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    """Own a set of detached asyncio tasks and reap them as they finish."""

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout if timeout is not None else settings.background_task_timeout_seconds
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[None]:
        """Schedule ``coro`` on the running loop under ``name``."""
        task = asyncio.get_running_loop().create_task(self._run(name, coro), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, name: str, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Background task %s timed out after %.1fs", name, self.timeout)
        except asyncio.CancelledError:
            logger.debug("Background task %s cancelled", name)
            raise
        except Exception:
            logger.error("Background task %s failed", name, exc_info=True)
        else:
            logger.debug("Background task %s completed", name)

    async def drain(self) -> None:
        """Wait for every outstanding task, including ones spawned while draining."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.drain()


__all__ = ["BackgroundDispatcher"]
