"""Bounded fan-out of incoming Telegram updates.

The poll loop never waits for handlers: updates go to ``UpdateDispatcher``
which either queues them for its workers or drops them when the queue is full.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Awaitable, Callable, Dict, Optional

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramUnauthorizedError
from aiogram.types import Update

from bot_app.worker_pool import BoundedWorkerPool
from monitoring import increment_metric

logger = logging.getLogger(__name__)

ALLOWED_UPDATES = ["message", "inline_query", "chosen_inline_result"]
POLL_TIMEOUT = 60
RETRY_DELAY = 3.0

UpdateHandler = Callable[[Update], Awaitable[Any]]


def default_update_workers() -> int:
    return min(max(os.cpu_count() or 1, 2), 10)


class UpdateDispatcher:
    def __init__(self, handler: UpdateHandler, *, workers: Optional[int] = None) -> None:
        self._handler = handler
        self._pool: BoundedWorkerPool[Update] = BoundedWorkerPool(
            "updates",
            self._handle,
            workers or default_update_workers(),
        )
        self._dropped = 0

    def start(self) -> None:
        self._pool.start()

    async def stop(self) -> None:
        await self._pool.stop()

    async def join(self) -> None:
        await self._pool.join()

    def submit(self, update: Update) -> bool:
        increment_metric("updates.received")
        if self._pool.try_submit(update):
            return True
        self._dropped += 1
        increment_metric("updates.dropped")
        logger.warning(
            "Очередь апдейтов заполнена (%d), апдейт %s отброшен",
            self._pool.capacity,
            getattr(update, "update_id", "?"),
        )
        return False

    def stats(self) -> Dict[str, Any]:
        return {
            "queue_size": self._pool.qsize(),
            "queue_capacity": self._pool.capacity,
            "workers": self._pool.workers,
            "dropped": self._dropped,
        }

    async def _handle(self, update: Update) -> None:
        await self._handler(update)


async def _pause(stop_event: asyncio.Event) -> None:
    try:
        await asyncio.wait_for(stop_event.wait(), RETRY_DELAY)
    except asyncio.TimeoutError:
        pass


async def poll_updates(bot: Bot, dispatcher: UpdateDispatcher, stop_event: asyncio.Event) -> None:
    """Long-poll Telegram and hand every update to the dispatcher."""
    offset: Optional[int] = None
    # HTTP-таймаут клиента обязан превышать таймаут long-poll
    request_timeout = int(bot.session.timeout + POLL_TIMEOUT)
    logger.info("Long-polling запущен")
    while not stop_event.is_set():
        try:
            updates = await bot.get_updates(
                offset=offset,
                timeout=POLL_TIMEOUT,
                allowed_updates=ALLOWED_UPDATES,
                request_timeout=request_timeout,
            )
        except TelegramUnauthorizedError:
            raise
        except (TelegramAPIError, OSError, asyncio.TimeoutError) as e:
            logger.warning("Ошибка получения апдейтов: %s. Повтор через %.0f с", e, RETRY_DELAY)
            await _pause(stop_event)
            continue
        except Exception:
            logger.exception("Неожиданная ошибка при получении апдейтов. Повтор через %.0f с", RETRY_DELAY)
            await _pause(stop_event)
            continue

        for update in updates:
            offset = update.update_id + 1
            dispatcher.submit(update)
    logger.info("Long-polling остановлен")
