from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable


class Scheduler:
    """Keyed one-shot delayed actions; at most one pending task per key."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._lock = asyncio.Lock()

    async def schedule(
        self,
        *,
        key: str,
        delay_seconds: float,
        action: Callable[[], Awaitable[None]],
    ) -> None:
        async with self._lock:
            old = self._tasks.get(key)
            # An action re-arming its own key must not cancel itself.
            if old is not None and old is not asyncio.current_task():
                old.cancel()
            task = asyncio.create_task(self._run(key, max(0.0, delay_seconds), action))
            self._tasks[key] = task

    async def _run(
        self,
        key: str,
        delay_seconds: float,
        action: Callable[[], Awaitable[None]],
    ) -> None:
        try:
            await asyncio.sleep(delay_seconds)
            await action()
        except asyncio.CancelledError:
            return
        except Exception:
            self._logger.exception("scheduled_action_failed key=%s", key)
        finally:
            async with self._lock:
                if self._tasks.get(key) is asyncio.current_task():
                    self._tasks.pop(key, None)

    def is_pending(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def cancel(self, key: str) -> bool:
        async with self._lock:
            task = self._tasks.pop(key, None)
        if task is None:
            return False
        if task is not asyncio.current_task():
            task.cancel()
        return True

    async def cancel_all(self) -> None:
        async with self._lock:
            tasks = list(self._tasks.values())
            self._tasks.clear()
        current = asyncio.current_task()
        tasks = [t for t in tasks if t is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
