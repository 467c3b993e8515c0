"""TikTok backend via the public TikWM API.

TikWM resolves a TikTok page URL into a direct, watermark-free ``play`` link
which we then stream to disk ourselves.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Optional
from uuid import uuid4

import aiohttp

from utils.downloader import DEFAULT_USER_AGENT, DownloadError

logger = logging.getLogger(__name__)

TIKWM_API_URL = "https://tikwm.com/api"
_PLAY_RE = re.compile(r'"play"\s*:\s*"([^"]+)"')


def extract_play_url(body: str) -> Optional[str]:
    """Return the ``data.play`` link from a TikWM response body."""
    try:
        payload: Any = json.loads(body)
    except json.JSONDecodeError:
        payload = None

    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, dict) and data.get("play"):
            return str(data["play"])
        if payload.get("code") not in (None, 0):
            logger.warning("TikWM вернул ошибку: code=%s msg=%s", payload.get("code"), payload.get("msg"))
        return None

    # Ответ не парсится как JSON, пробуем вытащить ссылку регуляркой
    match = _PLAY_RE.search(body or "")
    if not match:
        return None
    return match.group(1).replace("\\/", "/").replace("\\u0026", "&")


class TikTokDownloader:
    def __init__(
        self,
        *,
        api_url: str = TIKWM_API_URL,
        request_timeout: float = 30,
        user_agent: Optional[str] = None,
    ) -> None:
        self._api_url = api_url
        self._timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._user_agent = user_agent or DEFAULT_USER_AGENT

    async def _resolve_play_url(self, session: aiohttp.ClientSession, url: str) -> str:
        async with session.get(self._api_url, params={"url": url}) as resp:
            body = await resp.text()
            if resp.status != 200:
                raise DownloadError(f"TikWM API вернул статус {resp.status}")
        play_url = extract_play_url(body)
        if not play_url:
            raise DownloadError("Ссылка на видео не найдена в ответе TikWM")
        return play_url

    async def _download_binary(self, session: aiohttp.ClientSession, play_url: str, destination: Path) -> None:
        async with session.get(play_url, headers={"Referer": "https://www.tiktok.com/"}) as resp:
            if resp.status != 200:
                raise DownloadError(f"Загрузка видео TikTok вернула статус {resp.status}")
            with destination.open("wb") as fh:
                async for chunk in resp.content.iter_chunked(65536):
                    fh.write(chunk)

    async def download(self, url: str, output_dir: Path) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        destination = output_dir / f"tiktok_{uuid4().hex[:12]}.mp4"
        logger.info("Начинаем загрузку TikTok: %s", url)

        try:
            async with aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"User-Agent": self._user_agent},
            ) as session:
                play_url = await self._resolve_play_url(session, url)
                await self._download_binary(session, play_url, destination)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            destination.unlink(missing_ok=True)
            raise DownloadError(f"Сетевая ошибка TikTok: {exc}") from exc
        except BaseException:
            # включая отмену по дедлайну: недокачанный файл не нужен
            destination.unlink(missing_ok=True)
            raise

        logger.info("TikTok видео скачано: %s", destination)
        return destination
