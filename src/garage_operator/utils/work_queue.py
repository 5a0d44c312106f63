"""
Deduplicating, rate-aware work queue for reconciliation keys.

Watch handlers only enqueue ``(namespace, name)`` keys; a fixed pool of
workers drains the queue and calls the reconcile function. The queue
guarantees that:

- A key is queued at most once, however many events arrive for it
- A key is never processed by two workers at the same time; a key added
  while it is being processed is processed again once the current pass ends
- A delayed add keeps only the earliest pending deadline for a key
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable

logger = logging.getLogger(__name__)

Handler = Callable[[Hashable], Awaitable[float | None]]

# Marks the end of the queue for a worker
_STOP = object()


class WorkQueue:
    """Queue of keys awaiting reconciliation, drained by a worker pool."""

    def __init__(self, name: str = "reconcile"):
        self.name = name
        self._queue: asyncio.Queue = asyncio.Queue()
        self._queued: set[Hashable] = set()
        self._processing: set[Hashable] = set()
        self._dirty: set[Hashable] = set()
        self._timers: dict[Hashable, asyncio.TimerHandle] = {}
        self._workers: list[asyncio.Task] = []
        self._closed = False

    def __len__(self) -> int:
        return len(self._queued)

    @property
    def closed(self) -> bool:
        return self._closed

    def add(self, key: Hashable) -> None:
        """Schedule ``key`` for reconciliation as soon as a worker is free."""
        if self._closed:
            return

        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

        if key in self._processing:
            self._dirty.add(key)
            return
        if key in self._queued:
            return

        self._queued.add(key)
        self._queue.put_nowait(key)

    def add_after(self, key: Hashable, delay: float) -> None:
        """Schedule ``key`` after ``delay`` seconds unless it is due earlier."""
        if self._closed:
            return
        if delay <= 0:
            self.add(key)
            return

        loop = asyncio.get_running_loop()
        deadline = loop.time() + delay
        timer = self._timers.get(key)
        if timer is not None:
            if timer.when() <= deadline:
                return
            timer.cancel()
        self._timers[key] = loop.call_at(deadline, self._fire, key)

    def _fire(self, key: Hashable) -> None:
        self._timers.pop(key, None)
        self.add(key)

    def start(self, handler: Handler, workers: int = 1) -> None:
        """Start ``workers`` tasks feeding queued keys to ``handler``."""
        for index in range(workers):
            task = asyncio.create_task(
                self._worker(handler), name=f"{self.name}-worker-{index}"
            )
            self._workers.append(task)
        logger.info(f"Started {workers} {self.name} workers")

    async def _worker(self, handler: Handler) -> None:
        while True:
            key = await self._queue.get()
            if key is _STOP:
                self._queue.task_done()
                return
            self._queued.discard(key)

            if self._closed:
                self._queue.task_done()
                continue

            self._processing.add(key)
            try:
                requeue_after = await handler(key)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Unhandled error while processing {key}")
                requeue_after = None
            finally:
                self._processing.discard(key)

            if requeue_after is not None:
                self.add_after(key, requeue_after)
            if key in self._dirty:
                self._dirty.discard(key)
                self.add(key)
            self._queue.task_done()

    async def wait_idle(self) -> None:
        """Wait until every queued key has been processed."""
        await self._queue.join()

    async def shutdown(self, timeout: float = 30.0) -> None:
        """
        Stop accepting keys and wait for in-flight passes to finish.

        Keys still queued are dropped. Workers that do not finish within
        ``timeout`` seconds are cancelled.
        """
        if self._closed:
            return
        self._closed = True

        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._dirty.clear()

        for _ in self._workers:
            self._queue.put_nowait(_STOP)

        if self._workers:
            _, pending = await asyncio.wait(self._workers, timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning(
                    f"Cancelled {len(pending)} {self.name} workers after {timeout}s"
                )
                await asyncio.gather(*pending, return_exceptions=True)
        self._workers.clear()
        logger.info(f"{self.name} queue shut down")
