"""Handlers for private and group messages carrying download requests."""

from __future__ import annotations

import asyncio
import logging

from aiogram import Router, types

from bot_app.helpers import (
    command_name,
    contains_url,
    extract_url,
    is_bot_mentioned,
    is_command,
    is_group_chat,
    remove_bot_mention,
)
from bot_app.orchestrator import DownloadOrchestrator
from bot_app.transport import TelegramTransport
from bot_app.ui.i18n import DEFAULT_LOCALE, translate
from utils.access_control import AuthorizationGate

logger = logging.getLogger(__name__)

router = Router(name="downloads")


def _choose_text_source(message: types.Message) -> str:
    """Return preferred textual payload for URL parsing."""

    return (message.text or message.caption or "").strip()


async def _handle_auth_flow(
    message: types.Message,
    text: str,
    gate: AuthorizationGate,
    transport: TelegramTransport,
    locale: str,
) -> None:
    chat_id = message.chat.id
    if not text or is_command(text):
        await transport.send_message(chat_id, translate("auth.prompt", locale))
        return

    # append в файл блокирующий, уводим его из event loop
    approved = await asyncio.to_thread(gate.try_authorize, message.from_user.id, text)
    key = "auth.success" if approved else "auth.invalid"
    await transport.send_message(chat_id, translate(key, locale))


async def _handle_command(
    message: types.Message,
    text: str,
    orchestrator: DownloadOrchestrator,
    transport: TelegramTransport,
    bot_username: str,
    locale: str,
) -> None:
    chat_id = message.chat.id
    command = command_name(text)
    if command == "start":
        await transport.send_message(chat_id, translate("start", locale, bot_username=bot_username))
    elif command == "help":
        limit_mb = orchestrator.effective_max_size() / (1024 * 1024)
        await transport.send_message(chat_id, translate("help", locale, limit_mb=limit_mb))
    else:
        await transport.send_message(chat_id, translate("unknown_command", locale))


async def _handle_link(
    message: types.Message,
    text: str,
    orchestrator: DownloadOrchestrator,
    transport: TelegramTransport,
    locale: str,
) -> None:
    chat_id = message.chat.id
    if not contains_url(text):
        await transport.send_message(chat_id, translate("link.invalid", locale))
        return

    url = extract_url(text)
    if not url:
        await transport.send_message(chat_id, translate("link.extract_failed", locale))
        return

    if orchestrator.service.route(url) is None:
        logger.info("Неподдерживаемая платформа: %s (user=%s)", url, message.from_user.id)
        await transport.send_message(chat_id, translate("link.unsupported", locale))
        return

    status_id = await transport.send_message(chat_id, translate("request.accepted", locale))
    request = orchestrator.new_request(
        url,
        chat_id,
        message.from_user.id,
        message_id=message.message_id,
        status_message_id=status_id,
        locale=locale,
    )
    if not orchestrator.enqueue(request):
        await transport.delete_message(chat_id, status_id)
        await transport.send_message(chat_id, translate("request.overloaded", locale))


@router.message()
async def handle_message(
    message: types.Message,
    gate: AuthorizationGate,
    orchestrator: DownloadOrchestrator,
    transport: TelegramTransport,
    bot_username: str,
    locale: str = DEFAULT_LOCALE,
) -> None:
    """Entry point for every incoming message."""

    if message.from_user is None or message.chat is None:
        logger.warning("Сообщение без отправителя или чата пропущено")
        return

    text = _choose_text_source(message)
    if is_group_chat(message.chat):
        if not is_bot_mentioned(message, bot_username):
            return
        text = remove_bot_mention(text, bot_username)

    logger.info(
        "Сообщение: chat=%s user=%s type=%s text=%r",
        message.chat.id,
        message.from_user.id,
        message.chat.type,
        text[:200],
    )

    if gate.is_enabled() and not gate.is_authorized(message.from_user.id):
        await _handle_auth_flow(message, text, gate, transport, locale)
        return

    if is_command(text):
        await _handle_command(message, text, orchestrator, transport, bot_username, locale)
        return

    if not text:
        return

    await _handle_link(message, text, orchestrator, transport, locale)


__all__ = ["handle_message", "router"]
