"""
Playlist decoding for segmented (HLS) live streams.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import aiohttp
import m3u8

from .errors import DecodeError
from .logger import get_logger


@dataclass(frozen=True)
class Segment:
    """A media segment listed in a playlist."""
    url: str
    duration: float = 0.0


@dataclass
class Playlist:
    """Decoded media playlist window."""
    segments: List[Segment] = field(default_factory=list)
    is_endlist: bool = False  # Server marked the broadcast as finished


class PlaylistDecoder(ABC):
    """Fetches and decodes a playlist into its segments."""

    @abstractmethod
    async def decode(self, url: str, headers: Dict[str, str]) -> Playlist:
        """
        Decode the playlist at ``url``.

        Raises:
            DecodeError: If the playlist cannot be fetched or parsed.
        """


class M3u8Decoder(PlaylistDecoder):
    """
    Decodes M3U8 playlists with the m3u8 library.

    A master playlist is resolved to its highest-bandwidth variant.
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None, timeout: float = 15.0):
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._logger = get_logger('playlist')

    async def _fetch_text(self, session: aiohttp.ClientSession, url: str, headers: Dict[str, str]) -> str:
        async with session.get(url, headers=headers, timeout=self._timeout) as resp:
            if resp.status != 200:
                raise DecodeError(f"HTTP {resp.status}: {url}")
            return await resp.text()

    async def decode(self, url: str, headers: Dict[str, str]) -> Playlist:
        if self._session is not None:
            return await self._decode(self._session, url, headers)
        async with aiohttp.ClientSession() as session:
            return await self._decode(session, url, headers)

    async def _decode(self, session: aiohttp.ClientSession, url: str, headers: Dict[str, str]) -> Playlist:
        try:
            content = await self._fetch_text(session, url, headers)
            playlist = m3u8.loads(content, uri=url)

            if playlist.is_variant:
                variant = max(
                    playlist.playlists,
                    key=lambda p: p.stream_info.bandwidth or 0
                )
                self._logger.debug(f"Variant playlist: {variant.absolute_uri}")
                content = await self._fetch_text(session, variant.absolute_uri, headers)
                playlist = m3u8.loads(content, uri=variant.absolute_uri)
        except DecodeError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise DecodeError(f"{url}: {e}") from e

        return Playlist(
            segments=[
                Segment(url=seg.absolute_uri, duration=seg.duration or 0.0)
                for seg in playlist.segments
            ],
            is_endlist=bool(playlist.is_endlist)
        )
