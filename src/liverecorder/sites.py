"""
Anchor info providers.
Resolves an anchor to its live status, title and stream URL.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Type
from urllib.parse import urlparse

import aiohttp
import yt_dlp

from .anchor import Anchor, AnchorInfo
from .errors import UnsupportedPlatformError
from .logger import get_logger


class AnchorSite(ABC):
    """Anchor info provider for one platform."""

    def __init__(self, anchor: Anchor):
        self.anchor = anchor

    @abstractmethod
    async def get_anchor_info(self) -> AnchorInfo:
        """Fetch the current info of the anchor. Raises on failure."""

    @abstractmethod
    def get_platform_name(self) -> str:
        """Human-readable platform name."""

    def get_stream_headers(self) -> Dict[str, str]:
        """HTTP headers required to pull the stream."""
        return {}


def strip_title_clock(title: str) -> str:
    """Strip trailing timestamps like 2026-01-14 05:28 that yt-dlp appends to live titles."""
    pattern = r'\s*\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}:?\d{0,2}$'
    return re.sub(pattern, '', title).strip()


_SITES: Dict[str, Type[AnchorSite]] = {}


def register_site(*platforms: str) -> Callable[[Type[AnchorSite]], Type[AnchorSite]]:
    """Class decorator registering a site for the given platform tags."""
    def decorator(cls: Type[AnchorSite]) -> Type[AnchorSite]:
        for platform in platforms:
            _SITES[platform] = cls
        return cls
    return decorator


def gen_anchor_site(anchor: Anchor) -> AnchorSite:
    """
    Create the info provider for an anchor.

    Raises:
        UnsupportedPlatformError: If no site handles the anchor's platform.
    """
    site_cls = _SITES.get(anchor.platform)
    if site_cls is None:
        raise UnsupportedPlatformError(f"不支持的平台：{anchor.platform}")
    return site_cls(anchor)


@register_site('twitch', 'youtube', 'bili', 'douyin', 'huya', 'douyu')
class YtDlpSite(AnchorSite):
    """
    Resolves live rooms with yt-dlp.

    The room page URL is built from the platform tag and the anchor ID,
    then yt-dlp extracts the stream URL and headers without downloading.
    """

    ROOM_URLS = {
        'twitch': "https://www.twitch.tv/{id}",
        'youtube': "https://www.youtube.com/channel/{id}/live",
        'bili': "https://live.bilibili.com/{id}",
        'douyin': "https://live.douyin.com/{id}",
        'huya': "https://www.huya.com/{id}",
        'douyu': "https://www.douyu.com/{id}",
    }

    PLATFORM_NAMES = {
        'twitch': "Twitch",
        'youtube': "YouTube",
        'bili': "哔哩哔哩",
        'douyin': "抖音",
        'huya': "虎牙",
        'douyu': "斗鱼",
    }

    # yt-dlp reports an offline room as an extraction error
    OFFLINE_PHRASES = (
        'is offline',
        'not currently live',
        'is not live',
        'not live',
        'live has ended',
        'no live stream',
    )

    class _SilentLogger:
        """Silent logger to suppress yt-dlp stderr output."""
        def debug(self, msg): pass
        def info(self, msg): pass
        def warning(self, msg): pass
        def error(self, msg): pass

    def __init__(self, anchor: Anchor, format_spec: str = "best"):
        super().__init__(anchor)
        self._logger = get_logger('sites')
        self._headers: Dict[str, str] = {}
        self._ydl_opts = {
            'quiet': True,
            'no_warnings': True,
            'skip_download': True,
            'format': format_spec,
            'logger': self._SilentLogger(),
        }

    @property
    def room_url(self) -> str:
        if self.anchor.id.startswith(('http://', 'https://')):
            return self.anchor.id
        return self.ROOM_URLS[self.anchor.platform].format(id=self.anchor.id)

    def get_platform_name(self) -> str:
        return self.PLATFORM_NAMES.get(self.anchor.platform, self.anchor.platform)

    def get_stream_headers(self) -> Dict[str, str]:
        return dict(self._headers)

    async def get_anchor_info(self) -> AnchorInfo:
        loop = asyncio.get_running_loop()
        info = await loop.run_in_executor(None, self._extract_info, self.room_url)

        if info is None or not info.get('is_live'):
            name = (info or {}).get('uploader') or self.anchor.id
            return AnchorInfo.offline(name=name, title=(info or {}).get('title', ''))

        self._headers = dict(info.get('http_headers') or {})
        return AnchorInfo(
            is_live=True,
            name=info.get('uploader') or info.get('channel') or self.anchor.id,
            title=strip_title_clock(info.get('title', '')),
            stream_url=info.get('url', '')
        )

    def _extract_info(self, url: str) -> Optional[dict]:
        """Extract info using yt-dlp (blocking). None when the room is offline."""
        try:
            with yt_dlp.YoutubeDL(self._ydl_opts) as ydl:
                return ydl.extract_info(url, download=False)
        except yt_dlp.utils.DownloadError as e:
            message = str(e).lower()
            if any(phrase in message for phrase in self.OFFLINE_PHRASES):
                self._logger.debug(f"{self.anchor} offline: {e}")
                return None
            raise


@register_site('direct')
class DirectSite(AnchorSite):
    """
    Anchor whose ID is the stream URL itself.

    The anchor is live while the URL answers with HTTP 200.
    """

    def __init__(self, anchor: Anchor, timeout: float = 15.0):
        super().__init__(anchor)
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def get_platform_name(self) -> str:
        return urlparse(self.anchor.id).hostname or "direct"

    async def get_anchor_info(self) -> AnchorInfo:
        name = self.get_platform_name()
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            async with session.get(self.anchor.id, headers=self.get_stream_headers()) as resp:
                if resp.status != 200:
                    return AnchorInfo.offline(name=name)

        return AnchorInfo(
            is_live=True,
            name=name,
            title=urlparse(self.anchor.id).path.rsplit('/', 1)[-1],
            stream_url=self.anchor.id
        )
