"""Download service: owns the temp directory, routing and backends."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Mapping, Optional
from uuid import uuid4

from services.downloaders.instagram import InstagramDownloader
from services.downloaders.tiktok import TikTokDownloader
from services.downloaders.youtube import YouTubeDownloader
from services.router import INSTAGRAM, TIKTOK, YOUTUBE, Route, URLRouter
from utils.downloader import VideoDownloader

logger = logging.getLogger(__name__)


def default_backends(
    video_quality: str = "best",
    *,
    cookies_file: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> dict[str, VideoDownloader]:
    return {
        YOUTUBE: YouTubeDownloader(video_quality, cookies_file=cookies_file, user_agent=user_agent),
        TIKTOK: TikTokDownloader(user_agent=user_agent),
        INSTAGRAM: InstagramDownloader(video_quality, cookies_file=cookies_file, user_agent=user_agent),
    }


class DownloadService:
    """Routing plus temp-dir bookkeeping shared by all download workers."""

    def __init__(self, temp_dir: Path, backends: Mapping[str, VideoDownloader]) -> None:
        temp_dir.mkdir(parents=True, exist_ok=True)
        self._temp_dir = temp_dir.resolve()
        self._router = URLRouter(backends)

    @property
    def temp_dir(self) -> Path:
        return self._temp_dir

    @property
    def router(self) -> URLRouter:
        return self._router

    def route(self, text: str) -> Optional[Route]:
        return self._router.route(text)

    def make_workdir(self, prefix: str = "req") -> Path:
        """Create a uniquely named directory for one request's artifacts."""
        workdir = self._temp_dir / f"{prefix}_{uuid4().hex[:12]}"
        workdir.mkdir(parents=True, exist_ok=False)
        return workdir

    async def get_file_size(self, path: Path) -> int:
        stat = await asyncio.to_thread(path.stat)
        return stat.st_size

    def is_inside_temp_dir(self, path: Path) -> bool:
        try:
            resolved = Path(path).resolve()
        except (OSError, RuntimeError):
            return False
        return resolved != self._temp_dir and resolved.is_relative_to(self._temp_dir)

    def cleanup(self, path: Optional[Path]) -> bool:
        """Remove a file or directory that lives inside the temp dir.

        Returns False when the path escapes the temp dir or removal failed.
        """
        if not path:
            return True
        if not self.is_inside_temp_dir(path):
            logger.warning("Отказ в удалении %s: путь вне временной директории %s", path, self._temp_dir)
            return False

        target = Path(path).resolve()
        try:
            if target.is_dir():
                shutil.rmtree(target)
            else:
                target.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Не удалось удалить временный файл %s: %s", target, exc)
            return False
        logger.debug("Временный файл удалён: %s", target)
        return True
