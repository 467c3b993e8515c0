"""YouTube backend: shells out to yt-dlp."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from utils.downloader import (
    DownloadError,
    build_yt_dlp_cmd,
    format_for_quality,
    last_error_line,
    newest_file,
    run_cmd,
)

logger = logging.getLogger(__name__)

OUTPUT_TEMPLATE = "yt_%(id)s.%(ext)s"


class YouTubeDownloader:
    def __init__(
        self,
        video_quality: str = "best",
        *,
        cookies_file: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        self._format = format_for_quality(video_quality)
        self._cookies_file = cookies_file
        self._user_agent = user_agent

    async def download(self, url: str, output_dir: Path) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        cmd = build_yt_dlp_cmd(
            url,
            OUTPUT_TEMPLATE,
            format_spec=self._format,
            cookies_file=self._cookies_file,
            user_agent=self._user_agent,
            extra=("--merge-output-format", "mp4"),
        )
        logger.info("Запускаем yt-dlp (YouTube): %s", url)
        _, stderr, rc = await run_cmd(cmd, cwd=str(output_dir))
        if rc != 0:
            logger.error("yt-dlp завершился с кодом %s: %s", rc, stderr[:2000])
            raise DownloadError(f"Ошибка yt-dlp: {last_error_line(stderr)}")

        result = newest_file(output_dir, "yt_*")
        logger.info("YouTube видео скачано: %s (%.2f MB)", result, result.stat().st_size / 1024 / 1024)
        return result
