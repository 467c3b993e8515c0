"""Thin wrapper around the aiogram Bot used by handlers and download workers.

Only ``send_video`` raises: every other call logs the Telegram error and
reports failure through its return value.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from aiogram import Bot
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError
from aiogram.types import FSInputFile, InlineQueryResult

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Telegram refused or failed to deliver a message."""


class TelegramTransport:
    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, chat_id: int, text: str) -> Optional[int]:
        try:
            sent = await self._bot.send_message(chat_id=chat_id, text=text, parse_mode=ParseMode.HTML)
        except TelegramAPIError as e:
            logger.error("Ошибка отправки сообщения в чат %s: %s", chat_id, e)
            return None
        return sent.message_id

    async def send_video(self, chat_id: int, path: Path) -> None:
        try:
            await self._bot.send_video(
                chat_id=chat_id,
                video=FSInputFile(path=str(path)),
                supports_streaming=True,
            )
        except TelegramAPIError as e:
            raise TransportError(str(e)) from e
        except OSError as e:
            raise TransportError(f"не удалось прочитать файл: {e}") from e

    async def delete_message(self, chat_id: int, message_id: Optional[int]) -> bool:
        if not message_id:
            return False
        try:
            await self._bot.delete_message(chat_id=chat_id, message_id=message_id)
        except TelegramAPIError as e:
            if "forbidden" in str(e).lower() or getattr(e, "status_code", None) == 403:
                logger.warning("Нет прав удалить сообщение %s в чате %s", message_id, chat_id)
            else:
                logger.warning("Не удалось удалить сообщение %s в чате %s: %s", message_id, chat_id, e)
            return False
        return True

    async def answer_inline_query(
        self,
        inline_query_id: str,
        results: Sequence[InlineQueryResult],
        *,
        cache_time: int = 0,
        is_personal: bool = True,
    ) -> bool:
        try:
            await self._bot.answer_inline_query(
                inline_query_id=inline_query_id,
                results=list(results),
                cache_time=cache_time,
                is_personal=is_personal,
            )
        except TelegramAPIError as e:
            logger.error("Ошибка ответа на inline-запрос %s: %s", inline_query_id, e)
            return False
        return True
