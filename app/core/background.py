"""Fire-and-forget work whose failures still reach the user.

Each actor session owns its own ``BackgroundRunner``; nothing here is shared
process-wide.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from app.core.errors import InternalError, MarketplaceError

logger = logging.getLogger("background")

ErrorCallback = Callable[[MarketplaceError], Awaitable[None]]


class BackgroundRunner:
    def __init__(self, name: str, on_error: Optional[ErrorCallback] = None):
        self.name = name
        self._on_error = on_error
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, work: Awaitable, on_error: Optional[ErrorCallback] = None) -> asyncio.Task:
        task = asyncio.ensure_future(self._run(work, on_error or self._on_error))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, work: Awaitable, on_error: Optional[ErrorCallback]):
        try:
            return await work
        except asyncio.CancelledError:
            raise
        except MarketplaceError as exc:
            logger.info("%s: background work failed with %s", self.name, exc.code)
            await self._report(on_error, exc)
        except Exception:
            logger.exception("%s: unexpected failure in background work", self.name)
            await self._report(on_error, InternalError())

    async def _report(self, on_error: Optional[ErrorCallback], exc: MarketplaceError) -> None:
        if on_error is None:
            return
        try:
            await on_error(exc)
        except Exception:
            logger.exception("%s: error callback failed", self.name)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
