"""
Byte transfer for capture sessions.
Pulls stream and segment bytes over HTTP and writes them to size-bounded files.
"""

import asyncio
import re
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Dict, Optional

import aiofiles
import aiohttp

from .errors import DownloadError
from .logger import get_logger


def format_size(size: float) -> str:
    """Get human-readable file size."""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024:
            return f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} TB"


def sanitize_filename(title: str, max_length: int = 80) -> str:
    """Make a title safe to use as a file name."""
    safe = re.sub(r'[<>:"/\\|?*#\n\r\t]', ' ', title)
    safe = re.sub(r'\s+', '_', safe.strip())
    return safe[:max_length].strip('_') or "live"


class ByteStream:
    """An open continuous stream; iterate ``chunks()`` until the source closes."""

    def __init__(self, response: aiohttp.ClientResponse, chunk_size: int):
        self._response = response
        self._chunk_size = chunk_size

    async def chunks(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.content.iter_chunked(self._chunk_size):
                yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DownloadError(f"读取直播流出错：{e}") from e

    def close(self) -> None:
        self._response.release()


class Downloader:
    """
    HTTP transfer for one capture session.

    Owns a single aiohttp session, created on first use.
    """

    def __init__(self, chunk_size: int = 64 * 1024, read_timeout: float = 60.0):
        self.chunk_size = chunk_size
        self._timeout = aiohttp.ClientTimeout(total=None, sock_read=read_timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def open_stream(self, url: str, headers: Dict[str, str]) -> ByteStream:
        """
        Connect to a continuous stream.

        Raises:
            DownloadError: If the connection fails or the status is not 200.
        """
        try:
            resp = await self._get_session().get(url, headers=headers)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DownloadError(f"连接直播流出错：{e}") from e

        if resp.status != 200:
            resp.release()
            raise DownloadError(f"连接直播流出错：HTTP {resp.status}")
        return ByteStream(resp, self.chunk_size)

    async def fetch(self, url: str, headers: Dict[str, str]) -> bytes:
        """
        Download a whole segment.

        Raises:
            DownloadError: If the request fails or the status is not 200.
        """
        try:
            async with self._get_session().get(url, headers=headers) as resp:
                if resp.status != 200:
                    raise DownloadError(f"下载切片出错：HTTP {resp.status} {url}")
                return await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DownloadError(f"下载切片出错：{e}") from e

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None


class RotatingFileWriter:
    """
    Writes a capture into files of bounded size.

    ``write`` reports when the current file reached the threshold; the
    caller then ``finish``es it and opens the next one.
    """

    def __init__(self, directory: str, name: str, ext: str, threshold: int):
        self.directory = Path(directory)
        self.name = sanitize_filename(name)
        self.ext = ext
        self.threshold = threshold

        self.path: Optional[Path] = None
        self.bytes_written = 0
        self._file = None
        self._logger = get_logger('writer')

    def _next_path(self) -> Path:
        stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        path = self.directory / f"{self.name}_{stamp}.{self.ext}"
        n = 1
        while path.exists():
            path = self.directory / f"{self.name}_{stamp}_{n}.{self.ext}"
            n += 1
        return path

    async def open(self) -> Path:
        """Open a new output file."""
        self.directory.mkdir(parents=True, exist_ok=True)
        self.path = self._next_path()
        self.bytes_written = 0
        self._file = await aiofiles.open(self.path, 'wb')
        self._logger.debug(f"Writing to {self.path}")
        return self.path

    async def write(self, data: bytes) -> bool:
        """
        Append data to the current file.

        Returns:
            True once the file has reached the size threshold.
        """
        await self._file.write(data)
        self.bytes_written += len(data)
        return 0 < self.threshold <= self.bytes_written

    async def finish(self) -> Optional[Path]:
        """
        Close the current file.

        Returns:
            Path of the finished file, or None if nothing was written.
        """
        if self._file is None:
            return None

        await self._file.close()
        self._file = None
        path = self.path

        if self.bytes_written == 0:
            path.unlink(missing_ok=True)
            return None
        return path

    @property
    def is_open(self) -> bool:
        return self._file is not None
