"""Download orchestration: admission, bounded workers and request lifecycle.

A request is accepted only if the bounded queue has room; otherwise it is
rejected on the spot. Each accepted request is processed by one worker under
an absolute deadline. Every awaited step (download, stat, send) runs as its
own task and gets the remaining budget. When the budget runs out the step is
cancelled, given ``cancel_grace`` seconds to unwind, and then abandoned so the
worker can move on.
"""

from __future__ import annotations

import asyncio
import html
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Dict, Optional, TypeVar
from uuid import uuid4

from bot_app.transport import TelegramTransport, TransportError
from bot_app.ui.i18n import DEFAULT_LOCALE, translate
from bot_app.worker_pool import BoundedWorkerPool
from monitoring import increment_metric
from services.download_service import DownloadService
from utils.downloader import VideoDownloader

logger = logging.getLogger(__name__)

# Лимит Bot API на загрузку файлов ботом
TELEGRAM_MAX_FILE_BYTES = 50 * 1024 * 1024
DEFAULT_REQUEST_TIMEOUT = 5 * 60
DEFAULT_CANCEL_GRACE = 5.0

_MB = 1024 * 1024

R = TypeVar("R")


class RequestState(str, Enum):
    ENQUEUED = "enqueued"
    DEQUEUED = "dequeued"
    DOWNLOADING = "downloading"
    SIZE_CHECKING = "size_checking"
    DELIVERING = "delivering"
    DONE = "done"
    FAILED = "failed"
    REJECTED = "rejected"


TERMINAL_STATES = frozenset({RequestState.DONE, RequestState.FAILED, RequestState.REJECTED})


class FailureKind(str, Enum):
    ADMISSION = "admission"
    ROUTING = "routing"
    BACKEND = "backend"
    TIMEOUT = "timeout"
    STAT = "stat"
    SIZE = "size"
    TRANSPORT = "transport"
    INTERNAL = "internal"


class StepTimeout(Exception):
    """The request deadline expired while a step was in flight."""


@dataclass
class DownloadRequest:
    url: str
    chat_id: int
    user_id: int
    deadline: float
    message_id: Optional[int] = None
    status_message_id: Optional[int] = None
    inline_mode: bool = False
    platform: Optional[str] = None
    downloader: Optional[VideoDownloader] = field(default=None, repr=False)
    locale: Optional[str] = None
    request_id: str = field(default_factory=lambda: uuid4().hex[:12])
    state: RequestState = RequestState.ENQUEUED
    failure: Optional[FailureKind] = None
    error: Optional[str] = None
    _finished: asyncio.Event = field(default_factory=asyncio.Event, repr=False, compare=False)

    @property
    def origin(self) -> str:
        return "inline_mode" if self.inline_mode else "direct_message"

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def finish(self, state: RequestState, failure: Optional[FailureKind] = None, error: Optional[str] = None) -> None:
        if self.is_terminal:
            return
        self.state = state
        self.failure = failure
        self.error = error
        self._finished.set()

    async def wait_finished(self, timeout: Optional[float] = None) -> RequestState:
        await asyncio.wait_for(self._finished.wait(), timeout)
        return self.state


def _consume_result(task: "asyncio.Future[Any]") -> None:
    # забираем исключение брошенной задачи, чтобы asyncio не ругался в лог
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Брошенный шаг завершился с ошибкой: %r", exc)


class DownloadOrchestrator:
    def __init__(
        self,
        service: DownloadService,
        transport: TelegramTransport,
        *,
        workers: int,
        max_video_size_mb: int = 50,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        cancel_grace: float = DEFAULT_CANCEL_GRACE,
        locale: str = DEFAULT_LOCALE,
    ) -> None:
        self._service = service
        self._transport = transport
        self._max_video_size_mb = max_video_size_mb
        self._request_timeout = request_timeout
        self._cancel_grace = max(0.0, cancel_grace)
        self._locale = locale
        self._pool: BoundedWorkerPool[DownloadRequest] = BoundedWorkerPool(
            "downloads",
            self._process,
            workers,
            on_error=self._on_worker_error,
        )
        self._processed = 0
        self._succeeded = 0
        self._failed = 0
        self._rejected = 0
        self._abandoned_steps = 0

    @property
    def service(self) -> DownloadService:
        return self._service

    @property
    def request_timeout(self) -> float:
        return self._request_timeout

    def start(self) -> None:
        self._pool.start()

    async def stop(self) -> None:
        await self._pool.stop()

    async def join(self) -> None:
        await self._pool.join()

    def effective_max_size(self) -> int:
        """Configured ceiling in bytes, never above the Bot API upload limit."""
        configured = self._max_video_size_mb * _MB
        if configured <= 0 or configured > TELEGRAM_MAX_FILE_BYTES:
            return TELEGRAM_MAX_FILE_BYTES
        return configured

    def new_request(
        self,
        url: str,
        chat_id: int,
        user_id: int,
        *,
        message_id: Optional[int] = None,
        status_message_id: Optional[int] = None,
        inline_mode: bool = False,
        locale: Optional[str] = None,
    ) -> DownloadRequest:
        route = self._service.route(url)
        return DownloadRequest(
            url=url,
            chat_id=chat_id,
            user_id=user_id,
            deadline=asyncio.get_running_loop().time() + self._request_timeout,
            message_id=message_id,
            status_message_id=status_message_id,
            inline_mode=inline_mode,
            platform=route.platform if route else None,
            downloader=route.downloader if route else None,
            locale=locale,
        )

    def enqueue(self, request: DownloadRequest) -> bool:
        """Admit the request or reject it immediately when the queue is full."""
        request.state = RequestState.ENQUEUED
        if not self._pool.try_submit(request):
            self._rejected += 1
            request.finish(RequestState.REJECTED, FailureKind.ADMISSION, "очередь заполнена")
            increment_metric("downloads.rejected")
            logger.warning(
                "Очередь загрузок заполнена (%d/%d), запрос %s отклонён",
                self._pool.qsize(),
                self._pool.capacity,
                request.request_id,
            )
            return False
        increment_metric("downloads.enqueued")
        logger.info(
            "Запрос %s поставлен в очередь: user=%s chat=%s platform=%s origin=%s",
            request.request_id,
            request.user_id,
            request.chat_id,
            request.platform,
            request.origin,
        )
        return True

    def cleanup(self, path: Optional[Path]) -> bool:
        return self._service.cleanup(path)

    def stats(self) -> Dict[str, Any]:
        return {
            "queue_size": self._pool.qsize(),
            "queue_capacity": self._pool.capacity,
            "workers": self._pool.workers,
            "running": self._pool.running,
            "processed": self._processed,
            "succeeded": self._succeeded,
            "failed": self._failed,
            "rejected": self._rejected,
            "abandoned_steps": self._abandoned_steps,
            "max_file_bytes": self.effective_max_size(),
        }

    async def _run_step(self, request: DownloadRequest, step: Awaitable[R], name: str) -> R:
        loop = asyncio.get_running_loop()
        remaining = request.deadline - loop.time()
        if remaining <= 0:
            if asyncio.iscoroutine(step):
                step.close()
            raise StepTimeout(name)

        task = asyncio.ensure_future(step)
        try:
            done, _ = await asyncio.wait({task}, timeout=remaining)
        except asyncio.CancelledError:
            # воркер останавливают: шаг тоже не нужен
            task.cancel()
            raise

        if task in done:
            try:
                return task.result()
            except asyncio.CancelledError as exc:
                raise RuntimeError(f"шаг {name} отменён извне") from exc

        logger.warning("Запрос %s: истёк дедлайн на шаге %s, отменяем", request.request_id, name)
        task.cancel()
        await asyncio.wait({task}, timeout=self._cancel_grace)
        if task.done():
            _consume_result(task)
        else:
            self._abandoned_steps += 1
            task.add_done_callback(_consume_result)
            logger.error(
                "Запрос %s: шаг %s не завершился за %.1f с после отмены, бросаем его",
                request.request_id,
                name,
                self._cancel_grace,
            )
        raise StepTimeout(name)

    async def _process(self, request: DownloadRequest) -> None:
        request.state = RequestState.DEQUEUED
        self._processed += 1
        workdir: Optional[Path] = None
        artifact: Optional[Path] = None
        try:
            downloader = request.downloader
            if downloader is None:
                route = self._service.route(request.url)
                if route is None:
                    await self._fail(request, FailureKind.ROUTING, translate("link.unsupported", self._locale_for(request)))
                    return
                request.platform, downloader = route.platform, route.downloader

            workdir = await asyncio.to_thread(self._service.make_workdir)
            request.state = RequestState.DOWNLOADING
            logger.info("Запрос %s: загрузка %s (%s)", request.request_id, request.url, request.platform)
            try:
                artifact = await self._run_step(request, downloader.download(request.url, workdir), "download")
            except StepTimeout:
                await self._fail(request, FailureKind.TIMEOUT, translate("download.timeout", self._locale_for(request)))
                return
            except Exception as exc:
                logger.warning("Запрос %s: ошибка загрузки: %s", request.request_id, exc)
                text = translate("download.failed", self._locale_for(request), reason=html.escape(str(exc)))
                await self._fail(request, FailureKind.BACKEND, text, str(exc))
                return

            request.state = RequestState.SIZE_CHECKING
            try:
                size = await self._run_step(request, self._service.get_file_size(artifact), "stat")
            except StepTimeout:
                await self._fail(request, FailureKind.TIMEOUT, translate("download.timeout", self._locale_for(request)))
                return
            except OSError as exc:
                logger.error("Запрос %s: не удалось получить размер %s: %s", request.request_id, artifact, exc)
                await self._fail(request, FailureKind.STAT, translate("download.stat_failed", self._locale_for(request)), str(exc))
                return

            limit = self.effective_max_size()
            if size > limit:
                logger.info("Запрос %s: файл %d байт превышает лимит %d", request.request_id, size, limit)
                text = translate(
                    "download.too_large",
                    self._locale_for(request),
                    size_mb=size / _MB,
                    limit_mb=limit / _MB,
                )
                await self._fail(request, FailureKind.SIZE, text)
                return

            request.state = RequestState.DELIVERING
            try:
                await self._run_step(request, self._transport.send_video(request.chat_id, artifact), "send")
            except StepTimeout:
                await self._fail(request, FailureKind.TIMEOUT, translate("download.timeout", self._locale_for(request)))
                return
            except TransportError as exc:
                logger.error("Запрос %s: ошибка отправки видео: %s", request.request_id, exc)
                text = translate("download.send_failed", self._locale_for(request), reason=html.escape(str(exc)))
                await self._fail(request, FailureKind.TRANSPORT, text, str(exc))
                return

            await self._transport.delete_message(request.chat_id, request.status_message_id)
            if request.message_id and not request.inline_mode:
                await self._transport.delete_message(request.chat_id, request.message_id)
            self._succeeded += 1
            increment_metric("downloads.success")
            request.finish(RequestState.DONE)
            logger.info("Запрос %s: видео доставлено (%d байт)", request.request_id, size)
        finally:
            if artifact is not None:
                await asyncio.to_thread(self._service.cleanup, artifact)
            if workdir is not None:
                await asyncio.to_thread(self._service.cleanup, workdir)

    def _locale_for(self, request: DownloadRequest) -> str:
        return request.locale or self._locale

    async def _fail(
        self,
        request: DownloadRequest,
        kind: FailureKind,
        text: str,
        error: Optional[str] = None,
    ) -> None:
        self._failed += 1
        increment_metric(f"downloads.failure.{kind.value}")
        await self._transport.delete_message(request.chat_id, request.status_message_id)
        await self._transport.send_message(request.chat_id, text)
        request.finish(RequestState.FAILED, kind, error or kind.value)

    async def _on_worker_error(self, request: DownloadRequest, exc: BaseException) -> None:
        if request.is_terminal:
            return
        await self._fail(
            request,
            FailureKind.INTERNAL,
            translate("download.internal_error", self._locale_for(request)),
            repr(exc),
        )
