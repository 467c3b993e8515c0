"""Fixed-size asyncio worker pool over a bounded queue.

Admission is non-blocking: ``try_submit`` either places the item in the queue
or returns False straight away. Capacity is always twice the worker count.
Every item is handled inside an error boundary so a failing item never takes
its worker down.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, List, Optional, TypeVar

from monitoring import capture_exception, set_metric_gauge

logger = logging.getLogger(__name__)

T = TypeVar("T")

Handler = Callable[[T], Awaitable[None]]
ErrorHook = Callable[[T, BaseException], Awaitable[None]]


class BoundedWorkerPool(Generic[T]):
    def __init__(
        self,
        name: str,
        handler: Handler[T],
        workers: int,
        *,
        on_error: Optional[ErrorHook[T]] = None,
    ) -> None:
        if workers <= 0:
            raise ValueError(f"{name}: workers must be positive, got {workers}")
        self._name = name
        self._handler = handler
        self._on_error = on_error
        self._workers = workers
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=workers * 2)
        self._tasks: List[asyncio.Task[None]] = []
        self._stopping = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def workers(self) -> int:
        return self._workers

    @property
    def capacity(self) -> int:
        return self._queue.maxsize

    def qsize(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def try_submit(self, item: T) -> bool:
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            return False
        set_metric_gauge(f"{self._name}.queue_depth", self._queue.qsize())
        return True

    def start(self) -> None:
        if self.running:
            return
        self._stopping = False
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._worker(worker_id), name=f"{self._name}-worker-{worker_id}")
            for worker_id in range(1, self._workers + 1)
        ]
        logger.info("%s: запущено воркеров %d, ёмкость очереди %d", self._name, self._workers, self.capacity)

    async def join(self) -> None:
        """Wait until every queued item has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        self._stopping = True
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("%s: воркеры остановлены", self._name)

    async def _worker(self, worker_id: int) -> None:
        logger.debug("%s: воркер %d стартовал", self._name, worker_id)
        while True:
            item = await self._queue.get()
            set_metric_gauge(f"{self._name}.queue_depth", self._queue.qsize())
            try:
                await self._handler(item)
            except asyncio.CancelledError as exc:
                if self._stopping:
                    raise
                # отмена пришла не от stop(): это сбой обработчика, а не остановка пула
                await self._handle_failure(worker_id, item, exc)
            except Exception as exc:
                await self._handle_failure(worker_id, item, exc)
            finally:
                self._queue.task_done()

    async def _handle_failure(self, worker_id: int, item: T, exc: BaseException) -> None:
        logger.error(
            "%s: необработанная ошибка в воркере %d",
            self._name,
            worker_id,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        capture_exception(exc)
        if self._on_error is None:
            return
        try:
            await self._on_error(item, exc)
        except Exception:
            logger.exception("%s: обработчик ошибок сам упал", self._name)
