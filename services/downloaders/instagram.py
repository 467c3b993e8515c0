"""Instagram backend.

Reels, posts and stories are fetched with yt-dlp. A ``-J`` probe runs first to
tell videos, photos and audio apart so the right format selector is used; if
the probe fails we assume a video.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from utils.downloader import (
    DownloadError,
    build_yt_dlp_cmd,
    format_for_quality,
    last_error_line,
    newest_file,
    run_cmd,
)

logger = logging.getLogger(__name__)

OUTPUT_TEMPLATE = "ig_%(id)s.%(ext)s"
REFERER_HEADER = ("--add-header", "Referer: https://www.instagram.com/")

_PHOTO_EXTS = {"jpg", "jpeg", "png", "webp"}
_AUDIO_EXTS = {"mp3", "m4a", "ogg", "opus"}


class MediaType(str, Enum):
    VIDEO = "video"
    PHOTO = "photo"
    AUDIO = "audio"


def _has_codec(value: Optional[str]) -> bool:
    return bool(value) and value != "none"


def classify_media(info: Dict[str, Any]) -> MediaType:
    """Guess media type from yt-dlp JSON info (first entry for carousels)."""
    entries = info.get("entries") or []
    entry = entries[0] if entries and isinstance(entries[0], dict) else info

    vcodec = entry.get("vcodec")
    acodec = entry.get("acodec")
    if _has_codec(vcodec):
        return MediaType.VIDEO
    if _has_codec(acodec):
        return MediaType.AUDIO
    if (entry.get("width") or 0) > 0 and (entry.get("height") or 0) > 0:
        return MediaType.PHOTO

    ext = (entry.get("ext") or "").lower()
    if ext in _PHOTO_EXTS:
        return MediaType.PHOTO
    if ext in _AUDIO_EXTS:
        return MediaType.AUDIO
    return MediaType.VIDEO


class InstagramDownloader:
    def __init__(
        self,
        video_quality: str = "best",
        *,
        cookies_file: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        self._video_format = format_for_quality(video_quality)
        self._cookies_file = cookies_file
        self._user_agent = user_agent

    async def detect_media_type(self, url: str) -> MediaType:
        cmd = build_yt_dlp_cmd(
            url,
            OUTPUT_TEMPLATE,
            cookies_file=self._cookies_file,
            user_agent=self._user_agent,
            extra=("-J", *REFERER_HEADER),
        )
        stdout, stderr, rc = await run_cmd(cmd)
        if rc != 0:
            raise DownloadError(f"Не удалось получить информацию о медиа: {last_error_line(stderr)}")
        try:
            info = json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise DownloadError("yt-dlp вернул некорректный JSON") from exc
        if not isinstance(info, dict):
            raise DownloadError("yt-dlp вернул неожиданный ответ")
        return classify_media(info)

    def _format_args(self, media_type: MediaType) -> tuple[Optional[str], tuple[str, ...]]:
        if media_type is MediaType.PHOTO:
            return "best", ()
        if media_type is MediaType.AUDIO:
            return "bestaudio/best", ("-x", "--audio-format", "mp3")
        return self._video_format, ()

    async def download(self, url: str, output_dir: Path) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Начинаем загрузку Instagram: %s", url)

        try:
            media_type = await self.detect_media_type(url)
        except DownloadError as exc:
            logger.warning("Не удалось определить тип медиа для %s, считаем видео: %s", url, exc)
            media_type = MediaType.VIDEO
        logger.info("Тип медиа Instagram: %s (%s)", media_type.value, url)

        format_spec, extra = self._format_args(media_type)
        cmd = build_yt_dlp_cmd(
            url,
            OUTPUT_TEMPLATE,
            format_spec=format_spec,
            cookies_file=self._cookies_file,
            user_agent=self._user_agent,
            extra=(*REFERER_HEADER, *extra),
        )
        _, stderr, rc = await run_cmd(cmd, cwd=str(output_dir))
        if rc != 0:
            logger.error("yt-dlp (Instagram) завершился с кодом %s: %s", rc, stderr[:2000])
            raise DownloadError(f"Ошибка yt-dlp: {last_error_line(stderr)}")

        result = newest_file(output_dir, "ig_*")
        logger.info("Instagram медиа скачано: %s (%s)", result, media_type.value)
        return result
