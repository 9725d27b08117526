"""Live query subscriptions.

A ``Subscription`` has one producer task that re-runs its query every time
the store reports a change and broadcasts the full result to every consumer.
Consumers get the current state of the query, never a delta, and must
tolerate the same snapshot arriving more than once.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Set

from app.core.errors import TransientStoreError
from app.core.store import Document, Query, Snapshot

logger = logging.getLogger("subscription")

_CLOSED = object()


class _Consumer:
    def __init__(self):
        # one slot: a slow consumer only ever sees the latest snapshot
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=1)

    def push(self, item) -> None:
        if self.queue.full():
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
        self.queue.put_nowait(item)


class Subscription:
    def __init__(
        self,
        query: Query,
        fetch: Callable[[Query], Awaitable[List[Document]]],
        name: Optional[str] = None,
    ):
        self.query = query
        self.name = name or query.collection
        self._fetch = fetch
        self._changed = asyncio.Event()
        self._consumers: Set[_Consumer] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._listeners: Set[asyncio.Task] = set()
        self._latest: Optional[Snapshot] = None
        self._error: Optional[BaseException] = None
        self._closed = False
        self._producer: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> "Subscription":
        if self._producer is None:
            self._changed.set()
            self._producer = asyncio.ensure_future(self._produce())
        return self

    def attach(self, task: asyncio.Task) -> None:
        """Tie a watcher task's lifetime to this subscription."""
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def notify(self) -> None:
        if not self._closed:
            self._changed.set()

    def fail(self, exc: BaseException) -> None:
        if self._closed:
            return
        logger.warning("Subscription %s failed: %s", self.name, exc)
        self._error = exc if isinstance(exc, TransientStoreError) else TransientStoreError(
            message=f"subscription {self.name} failed"
        )
        for consumer in list(self._consumers):
            consumer.push(self._error)
        self._shutdown()

    async def _produce(self) -> None:
        try:
            while not self._closed:
                await self._changed.wait()
                self._changed.clear()
                documents = await self._fetch(self.query)
                snapshot = Snapshot(documents=documents, read_at=datetime.now(timezone.utc))
                self._latest = snapshot
                for consumer in list(self._consumers):
                    consumer.push(snapshot)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.fail(exc)

    async def listen(self) -> AsyncIterator[Snapshot]:
        if self._error is not None:
            raise self._error
        if self._closed:
            return
        consumer = _Consumer()
        self._consumers.add(consumer)
        if self._latest is not None:
            consumer.push(self._latest)
        try:
            while True:
                item = await consumer.queue.get()
                if item is _CLOSED:
                    return
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            self._consumers.discard(consumer)

    def on_snapshot(
        self,
        on_update: Callable[[Snapshot], None],
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> asyncio.Task:
        """Callback style listener; cancelled together with the subscription."""

        async def _pump():
            try:
                async for snapshot in self.listen():
                    on_update(snapshot)
            except TransientStoreError as exc:
                if on_error is not None:
                    on_error(exc)
                else:
                    logger.error("Unhandled subscription error on %s: %s", self.name, exc)

        task = asyncio.ensure_future(_pump())
        self._listeners.add(task)
        task.add_done_callback(self._listeners.discard)
        return task

    def cancel(self) -> None:
        if self._closed:
            return
        for consumer in list(self._consumers):
            consumer.push(_CLOSED)
        self._shutdown()
        for task in list(self._listeners):
            task.cancel()

    def _shutdown(self) -> None:
        self._closed = True
        current = asyncio.current_task() if _loop_running() else None
        if self._producer is not None and self._producer is not current:
            self._producer.cancel()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        self._tasks.clear()

    async def __aenter__(self) -> "Subscription":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True
