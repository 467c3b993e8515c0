"""Inline mode: ``@bot <link>`` in any chat, delivered to the user's DM."""

from __future__ import annotations

import logging
from typing import List

from aiogram import Router, types
from aiogram.types import InlineQueryResultArticle, InputTextMessageContent

from bot_app.helpers import contains_url, extract_url
from bot_app.orchestrator import DownloadOrchestrator
from bot_app.transport import TelegramTransport
from bot_app.ui.i18n import DEFAULT_LOCALE, INLINE_EXAMPLE_URL, translate
from utils.access_control import AuthorizationGate

logger = logging.getLogger(__name__)

router = Router(name="inline")


def build_inline_results(
    query_text: str,
    *,
    authorized: bool,
    bot_username: str,
    locale: str = DEFAULT_LOCALE,
) -> List[InlineQueryResultArticle]:
    if not authorized:
        return [
            InlineQueryResultArticle(
                id="auth_required",
                title=translate("inline.auth_title", locale),
                description=translate("inline.auth_description", locale),
                input_message_content=InputTextMessageContent(
                    message_text=translate("auth.inline_required", locale),
                ),
            )
        ]

    url = extract_url(query_text) if contains_url(query_text) else None
    if url:
        return [
            InlineQueryResultArticle(
                id="download",
                title=translate("inline.download_title", locale),
                description=translate("inline.download_description", locale, url=url),
                input_message_content=InputTextMessageContent(message_text=url),
            )
        ]

    return [
        InlineQueryResultArticle(
            id="help",
            title=translate("inline.help_title", locale),
            description=translate("inline.help_description", locale),
            input_message_content=InputTextMessageContent(
                message_text=translate(
                    "inline.help_message",
                    locale,
                    bot_username=bot_username,
                    example=INLINE_EXAMPLE_URL,
                ),
            ),
        )
    ]


@router.inline_query()
async def handle_inline_query(
    inline_query: types.InlineQuery,
    gate: AuthorizationGate,
    transport: TelegramTransport,
    bot_username: str,
    locale: str = DEFAULT_LOCALE,
) -> None:
    if inline_query.from_user is None:
        logger.warning("Inline-запрос %s без отправителя", inline_query.id)
        return

    query_text = (inline_query.query or "").strip()
    user_id = inline_query.from_user.id
    authorized = not gate.is_enabled() or gate.is_authorized(user_id)
    logger.info("Inline-запрос: user=%s authorized=%s query=%r", user_id, authorized, query_text[:200])

    results = build_inline_results(
        query_text,
        authorized=authorized,
        bot_username=bot_username,
        locale=locale,
    )
    await transport.answer_inline_query(inline_query.id, results, cache_time=0, is_personal=True)


@router.chosen_inline_result()
async def handle_chosen_inline_result(
    chosen: types.ChosenInlineResult,
    gate: AuthorizationGate,
    orchestrator: DownloadOrchestrator,
    transport: TelegramTransport,
    locale: str = DEFAULT_LOCALE,
) -> None:
    if chosen.from_user is None:
        logger.warning("Выбранный inline-результат %s без отправителя", chosen.result_id)
        return

    user_id = chosen.from_user.id
    url = extract_url(chosen.query or "")
    if not url:
        logger.warning("В выбранном inline-результате нет ссылки: user=%s query=%r", user_id, chosen.query)
        return

    # результат доставляем в личку пользователя: её id совпадает с id пользователя
    chat_id = user_id
    if gate.is_enabled() and not gate.is_authorized(user_id):
        await transport.send_message(chat_id, translate("auth.inline_required", locale))
        return

    if orchestrator.service.route(url) is None:
        await transport.send_message(chat_id, translate("link.unsupported", locale))
        return

    status_id = await transport.send_message(chat_id, translate("request.inline_accepted", locale))
    request = orchestrator.new_request(
        url,
        chat_id,
        user_id,
        status_message_id=status_id,
        inline_mode=True,
        locale=locale,
    )
    if not orchestrator.enqueue(request):
        await transport.delete_message(chat_id, status_id)
        await transport.send_message(chat_id, translate("request.overloaded", locale))


__all__ = ["build_inline_results", "handle_chosen_inline_result", "handle_inline_query", "router"]
