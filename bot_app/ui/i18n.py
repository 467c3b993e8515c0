"""Lightweight translation helpers for user-facing strings."""

from __future__ import annotations

from typing import Dict, Optional

DEFAULT_LOCALE = "ru"
SUPPORTED_LOCALES = {"ru", "en"}

INLINE_EXAMPLE_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"

_TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "ru": {
        "start": (
            "👋 Привет! Я помогу скачать видео.\n\n"
            "Просто отправь мне ссылку на видео с одной из платформ:\n"
            "• YouTube\n"
            "• TikTok\n"
            "• Instagram\n\n"
            "В группах упомяни меня: @{bot_username} ссылка\n"
            "В любом чате можно написать: @{bot_username} ссылка"
        ),
        "help": (
            "ℹ️ Как пользоваться ботом:\n\n"
            "1. Отправь ссылку на видео с YouTube, TikTok или Instagram.\n"
            "2. Дождись загрузки, я пришлю файл прямо в чат.\n\n"
            "Ограничение Telegram на размер файла: {limit_mb:.0f} MB.\n"
            "Команды:\n"
            "/start - приветствие\n"
            "/help - эта справка"
        ),
        "unknown_command": "❓ Неизвестная команда. Используй /help для справки.",
        "auth.prompt": (
            "🔒 Этот бот доступен только по токену доступа.\n"
            "Отправь мне токен, который выдал администратор."
        ),
        "auth.success": "✅ Авторизация успешна! Теперь ты можешь отправлять ссылки на видео.",
        "auth.invalid": (
            "❌ Неверный токен доступа.\n"
            "Проверь токен или обратись к администратору."
        ),
        "auth.inline_required": (
            "🔒 Этот бот защищён. Отправь токен доступа в личные сообщения бота, "
            "чтобы пользоваться inline-режимом."
        ),
        "link.invalid": "❌ Пожалуйста, отправь валидную ссылку на видео.",
        "link.extract_failed": "❌ Не удалось извлечь ссылку из сообщения.",
        "link.unsupported": "❌ Платформа не поддерживается. Поддерживаются YouTube, TikTok и Instagram.",
        "request.accepted": "⏳ Запрос принят, начинаю загрузку видео...",
        "request.inline_accepted": "⏳ Обработка inline-запроса, загружаю видео...",
        "request.overloaded": "⚠️ Слишком много одновременных запросов. Попробуй повторить через пару минут.",
        "download.failed": "❌ Ошибка при загрузке видео: {reason}",
        "download.timeout": "⌛️ Загрузка заняла слишком много времени и была прервана. Попробуй позже.",
        "download.stat_failed": "❌ Ошибка при проверке размера файла.",
        "download.too_large": "❌ Видео слишком большое ({size_mb:.2f} MB). Ограничение Telegram {limit_mb:.0f} MB.",
        "download.send_failed": "❌ Ошибка при отправке видео: {reason}",
        "download.internal_error": "❌ Внутренняя ошибка при обработке запроса. Попробуй ещё раз.",
        "inline.auth_title": "Требуется авторизация",
        "inline.auth_description": "Отправь токен доступа боту в личные сообщения",
        "inline.download_title": "Скачать видео",
        "inline.download_description": "{url}",
        "inline.help_title": "Укажи ссылку на видео",
        "inline.help_description": "Поддерживаются YouTube, TikTok и Instagram",
        "inline.help_message": "Пример: @{bot_username} {example}",
    },
    "en": {
        "start": (
            "👋 Hi! I can download videos for you.\n\n"
            "Just send me a link from one of these platforms:\n"
            "• YouTube\n"
            "• TikTok\n"
            "• Instagram\n\n"
            "In groups mention me: @{bot_username} link\n"
            "In any chat you can type: @{bot_username} link"
        ),
        "help": (
            "ℹ️ How to use the bot:\n\n"
            "1. Send a YouTube, TikTok or Instagram link.\n"
            "2. Wait for the download, the file arrives right in the chat.\n\n"
            "Telegram file size limit: {limit_mb:.0f} MB.\n"
            "Commands:\n"
            "/start - greeting\n"
            "/help - this help"
        ),
        "unknown_command": "❓ Unknown command. Use /help for help.",
        "auth.prompt": (
            "🔒 This bot is available by access token only.\n"
            "Send me the token you got from the administrator."
        ),
        "auth.success": "✅ Authorized! You can now send video links.",
        "auth.invalid": (
            "❌ Invalid access token.\n"
            "Check the token or contact the administrator."
        ),
        "auth.inline_required": (
            "🔒 This bot is protected. Send your access token to the bot in a private chat "
            "to use inline mode."
        ),
        "link.invalid": "❌ Please send a valid video link.",
        "link.extract_failed": "❌ Could not extract a link from the message.",
        "link.unsupported": "❌ Platform is not supported. Supported: YouTube, TikTok and Instagram.",
        "request.accepted": "⏳ Request accepted, starting the download...",
        "request.inline_accepted": "⏳ Processing inline request, downloading the video...",
        "request.overloaded": "⚠️ Too many concurrent requests. Please try again in a couple of minutes.",
        "download.failed": "❌ Video download failed: {reason}",
        "download.timeout": "⌛️ The download took too long and was aborted. Try again later.",
        "download.stat_failed": "❌ Failed to check the file size.",
        "download.too_large": "❌ Video is too large ({size_mb:.2f} MB). Telegram limit is {limit_mb:.0f} MB.",
        "download.send_failed": "❌ Failed to send the video: {reason}",
        "download.internal_error": "❌ Internal error while processing the request. Please try again.",
        "inline.auth_title": "Authorization required",
        "inline.auth_description": "Send your access token to the bot in a private chat",
        "inline.download_title": "Download video",
        "inline.download_description": "{url}",
        "inline.help_title": "Provide a video link",
        "inline.help_description": "YouTube, TikTok and Instagram are supported",
        "inline.help_message": "Example: @{bot_username} {example}",
    },
}


def translate(key: str, locale: Optional[str] = None, **kwargs) -> str:
    """Return translated text for the given key with graceful fallback."""

    lang = locale or DEFAULT_LOCALE
    if lang not in SUPPORTED_LOCALES:
        lang = DEFAULT_LOCALE
    template = _TRANSLATIONS[lang].get(key)
    if template is None:
        template = _TRANSLATIONS[DEFAULT_LOCALE].get(key, key)
    try:
        return template.format(**kwargs)
    except (KeyError, IndexError, ValueError):
        # не хватает аргументов: отдаём шаблон как есть, хендлер не должен падать
        return template


__all__ = ["DEFAULT_LOCALE", "INLINE_EXAMPLE_URL", "SUPPORTED_LOCALES", "translate"]
