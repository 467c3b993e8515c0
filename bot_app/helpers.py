"""Helper utilities shared across handlers."""

from __future__ import annotations

from typing import Iterable, Optional

from aiogram import types

from services.router import PLATFORM_MARKERS

URL_SCHEMES = ("http://", "https://")
_TRAILING_PUNCTUATION = ".,;:!?"


def contains_url(text: str) -> bool:
    """True when text has a URL scheme or a known platform domain."""
    lowered = (text or "").lower()
    if any(scheme in lowered for scheme in URL_SCHEMES):
        return True
    return any(marker in lowered for _, markers in PLATFORM_MARKERS for marker in markers)


def extract_url(text: str) -> Optional[str]:
    """Return the first http(s) word of text with trailing punctuation removed."""
    for word in (text or "").split():
        if word.lower().startswith(URL_SCHEMES):
            url = word.rstrip(_TRAILING_PUNCTUATION)
            if url:
                return url
    return None


def _entities(message: types.Message) -> Iterable[types.MessageEntity]:
    return list(getattr(message, "entities", None) or []) + list(getattr(message, "caption_entities", None) or [])


def is_bot_mentioned(message: types.Message, bot_username: str) -> bool:
    """Check mention entities first, then fall back to a plain text search."""
    if not bot_username:
        return False
    mention = f"@{bot_username}".lower()
    text = message.text or message.caption or ""

    for ent in _entities(message):
        if ent.type != "mention":
            continue
        if text[ent.offset : ent.offset + ent.length].lower() == mention:
            return True
    return mention in text.lower()


def remove_bot_mention(text: str, bot_username: str) -> str:
    """Drop every word equal to @bot_username (case-insensitive)."""
    if not text or not bot_username:
        return (text or "").strip()
    mention = f"@{bot_username}".lower()
    return " ".join(word for word in text.split() if word.lower() != mention)


def is_command(text: str) -> bool:
    return (text or "").startswith("/")


def command_name(text: str) -> str:
    """'/start@my_bot arg' -> 'start'"""
    head = (text or "").split(maxsplit=1)[0] if text and text.strip() else ""
    return head.lstrip("/").split("@", 1)[0].lower()


def is_group_chat(chat: Optional[types.Chat]) -> bool:
    return (getattr(chat, "type", "") or "").lower() in {"group", "supergroup"}


__all__ = [
    "command_name",
    "contains_url",
    "extract_url",
    "is_bot_mentioned",
    "is_command",
    "is_group_chat",
    "remove_bot_mention",
]
