# utils/downloader.py
"""
Общие примитивы для загрузчиков.
- DownloadError: единая ошибка бэкенда, которую видит оркестратор.
- run_cmd: запуск внешней команды, убивает процесс при отмене задачи.
- build_yt_dlp_cmd / newest_file: общая часть YouTube и Instagram загрузчиков.
"""

import asyncio
import logging
import shlex
from pathlib import Path
from typing import Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120 Safari/537.36"
)


class DownloadError(Exception):
    pass


class VideoDownloader(Protocol):
    """Capability every platform backend implements."""

    async def download(self, url: str, output_dir: Path) -> Path:
        """Fetch ``url`` into ``output_dir`` and return the artifact path."""
        ...


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()


async def run_cmd(
    cmd: Sequence[str],
    *,
    cwd: Optional[str] = None,
) -> Tuple[str, str, int]:
    """Run subprocess, return (stdout, stderr, returncode).

    Deadline handling is the caller's job: when the awaiting task is cancelled
    the child process is killed before CancelledError propagates.
    """
    logger.debug("Run command: %s", " ".join(shlex.quote(x) for x in cmd))
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
    except FileNotFoundError as e:
        raise DownloadError(f"{cmd[0]} не найден. Убедитесь, что он установлен и доступен в PATH.") from e

    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        await asyncio.shield(_terminate(proc))
        raise
    return stdout.decode(errors="ignore"), stderr.decode(errors="ignore"), proc.returncode


def format_for_quality(quality: str) -> str:
    """Map the configured quality hint onto a yt-dlp format selector."""
    q = (quality or "").strip().lower()
    if q == "worst":
        return "worst[ext=mp4]/worst"
    return "best[ext=mp4]/best"


def build_yt_dlp_cmd(
    url: str,
    output_template: str,
    *,
    format_spec: Optional[str] = None,
    cookies_file: Optional[str] = None,
    user_agent: Optional[str] = None,
    extra: Sequence[str] = (),
) -> list[str]:
    cmd = [
        "yt-dlp",
        "--no-playlist",
        "--no-warnings",
        "--quiet",
        "--restrict-filenames",
        "--output",
        output_template,
        "--retries",
        "3",
        "--fragment-retries",
        "3",
        "--user-agent",
        user_agent or DEFAULT_USER_AGENT,
    ]
    if format_spec:
        cmd += ["-f", format_spec]
    if cookies_file:
        cmd += ["--cookies", cookies_file]
    cmd += list(extra)
    cmd.append(url)
    return cmd


def last_error_line(stderr: str) -> str:
    lines = [line.strip() for line in (stderr or "").splitlines() if line.strip()]
    return lines[-1] if lines else "unknown error"


def newest_file(directory: Path, pattern: str = "*") -> Path:
    """Return the most recently modified regular file in ``directory``."""
    candidates = [p for p in directory.glob(pattern) if p.is_file() and not p.name.endswith(".part")]
    if not candidates:
        raise DownloadError("Файл не найден после завершения загрузки.")
    return max(candidates, key=lambda p: p.stat().st_mtime)
