"""Platform routing by domain sniffing.

Matching is a case-insensitive substring search over each platform's domain
markers, tried in a fixed order. It does not validate URLs.
"""

from __future__ import annotations

from typing import Mapping, NamedTuple, Optional, Tuple

from utils.downloader import VideoDownloader

YOUTUBE = "youtube"
TIKTOK = "tiktok"
INSTAGRAM = "instagram"

# Порядок важен: первое совпадение выигрывает
PLATFORM_MARKERS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (YOUTUBE, ("youtube.com", "youtu.be")),
    (TIKTOK, ("tiktok.com",)),
    (INSTAGRAM, ("instagram.com", "instagr.am")),
)


class Route(NamedTuple):
    platform: str
    downloader: VideoDownloader


def detect_platform(text: str) -> Optional[str]:
    """Return platform keyword inferred from text, or None."""
    lowered = (text or "").lower()
    for platform, markers in PLATFORM_MARKERS:
        if any(marker in lowered for marker in markers):
            return platform
    return None


class URLRouter:
    """Maps text onto the backend registered for its platform."""

    def __init__(self, backends: Mapping[str, VideoDownloader]) -> None:
        self._backends = dict(backends)

    @property
    def platforms(self) -> Tuple[str, ...]:
        return tuple(p for p, _ in PLATFORM_MARKERS if p in self._backends)

    def route(self, text: str) -> Optional[Route]:
        platform = detect_platform(text)
        if platform is None:
            return None
        downloader = self._backends.get(platform)
        if downloader is None:
            return None
        return Route(platform, downloader)
