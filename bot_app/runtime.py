"""Wiring of the bot: aiogram primitives, pools, gate and health server."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from aiogram import Bot, Dispatcher
from aiogram.exceptions import TelegramAPIError
from aiogram.types import Update

import config
from bot_app.dispatcher import UpdateDispatcher, poll_updates
from bot_app.handlers import downloads as download_handlers
from bot_app.handlers import inline as inline_handlers
from bot_app.orchestrator import DownloadOrchestrator
from bot_app.transport import TelegramTransport
from monitoring import HealthCheckServer
from services.download_service import DownloadService, default_backends
from utils.access_control import AuthorizationGate

logger = logging.getLogger(__name__)


class BotRuntime:
    def __init__(
        self,
        bot: Bot,
        transport: TelegramTransport,
        orchestrator: DownloadOrchestrator,
        gate: AuthorizationGate,
    ) -> None:
        self.bot = bot
        self.orchestrator = orchestrator
        self.gate = gate
        self.transport = transport
        self.dp = Dispatcher(
            gate=gate,
            orchestrator=orchestrator,
            transport=self.transport,
            locale=config.BOT_LOCALE,
        )
        self.dp.include_router(download_handlers.router)
        self.dp.include_router(inline_handlers.router)
        self.updates = UpdateDispatcher(self._feed_update, workers=config.UPDATE_WORKERS)
        self.health_server: Optional[HealthCheckServer] = None
        self._stop_event = asyncio.Event()
        self._poll_task: Optional["asyncio.Task[None]"] = None

    async def _feed_update(self, update: Update) -> None:
        await self.dp.feed_update(self.bot, update)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "downloads": self.orchestrator.stats(),
            "updates": self.updates.stats(),
            "auth": {"enabled": self.gate.is_enabled(), "approved": self.gate.approved_count()},
        }

    def request_stop(self) -> None:
        self._stop_event.set()
        # long-poll висит до 60 с, не ждём его
        if self._poll_task is not None:
            self._poll_task.cancel()

    async def run(self) -> None:
        # без get_me работать нельзя: это единственная фатальная ошибка
        me = await self.bot.get_me()
        if not me.username:
            raise RuntimeError("Telegram не вернул username бота")
        self.dp["bot_username"] = me.username
        logger.info("Авторизован как @%s", me.username)

        # Удаляем старые апдейты из очереди перед стартом polling'а
        try:
            await self.bot.delete_webhook(drop_pending_updates=True)
            logger.info("Старые апдейты удалены из очереди")
        except TelegramAPIError as e:
            logger.warning("Не удалось удалить webhook: %s", e)

        if config.HEALTHCHECK_ENABLED:
            self.health_server = HealthCheckServer(
                host=config.HEALTHCHECK_HOST,
                port=config.HEALTHCHECK_PORT,
                snapshot_provider=self.snapshot,
            )
            try:
                await self.health_server.start()
            except OSError as e:
                logger.error("Healthcheck сервер не запустился: %s", e)
                self.health_server = None

        self.orchestrator.start()
        self.updates.start()
        self._poll_task = asyncio.create_task(poll_updates(self.bot, self.updates, self._stop_event))
        try:
            await self._poll_task
        except asyncio.CancelledError:
            if not self._stop_event.is_set():
                raise
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        logger.info("Останавливаем бота...")
        await self.updates.stop()
        await self.orchestrator.stop()
        if self.health_server:
            await self.health_server.stop()
            self.health_server = None
        await self.bot.session.close()


def build_runtime() -> BotRuntime:
    bot = Bot(token=config.TOKEN)
    transport = TelegramTransport(bot)
    service = DownloadService(
        config.TEMP_DIR,
        default_backends(
            config.VIDEO_QUALITY,
            cookies_file=config.YTDLP_COOKIES_FILE,
            user_agent=config.YTDLP_USER_AGENT,
        ),
    )
    orchestrator = DownloadOrchestrator(
        service,
        transport,
        workers=config.WORKER_POOL_SIZE,
        max_video_size_mb=config.MAX_VIDEO_SIZE_MB,
        request_timeout=config.DOWNLOAD_TIMEOUT_SECONDS,
        cancel_grace=config.CANCEL_GRACE_SECONDS,
        locale=config.BOT_LOCALE,
    )
    gate = AuthorizationGate(
        config.AUTH_ENABLED,
        config.AUTH_TOKENS,
        config.AUTH_ALLOWED_USERS_FILE,
    )
    return BotRuntime(bot, transport, orchestrator, gate)


__all__ = ["BotRuntime", "build_runtime"]
