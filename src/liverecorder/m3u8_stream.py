"""
Segmented (M3U8) stream session.
Polls the live playlist and downloads each newly listed segment.
"""

import asyncio
from collections import OrderedDict
from typing import Optional

from .downloader import Downloader
from .errors import CaptureSetupError, DecodeError, DownloadError
from .playlist import M3u8Decoder, PlaylistDecoder
from .session import StreamSession


# Marks the end of the segment sequence on ch_seg
END_OF_SEQUENCE = None


class M3u8Stream(StreamSession):
    """
    M3U8 live stream.

    A poller task re-fetches the playlist and puts new segment URLs on
    ``ch_seg``; a downloader task takes them off and appends each segment
    to the output file. ``ch_seg`` is bounded, so a slow download makes the
    poller wait instead of dropping segments. Segments are deduplicated by
    URL because every poll lists a rolling window of recent ones.
    """

    URL_MARKER = ".m3u8"
    EXT = "ts"

    def __init__(
        self,
        decoder: Optional[PlaylistDecoder] = None,
        downloader: Optional[Downloader] = None,
        playlist_interval: float = 1.0,
        queue_size: int = 64,
        seen_limit: int = 2048,
        max_segment_failures: int = 3,
        chunk_size: int = 64 * 1024
    ):
        super().__init__(downloader=downloader, chunk_size=chunk_size)
        self.decoder = decoder or M3u8Decoder()
        self.playlist_interval = playlist_interval
        self.queue_size = queue_size
        self.seen_limit = seen_limit
        self.max_segment_failures = max_segment_failures

        self.ch_seg: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.segments_closed = False
        # Kept across restarts so a rotated file does not repeat segments
        self._seen: 'OrderedDict[str, None]' = OrderedDict()

    def reset(self, title, stream_url, headers, path, file_size_threshold, handler, key=""):
        previous = self.ch_seg
        super().reset(title, stream_url, headers, path, file_size_threshold, handler, key=key)
        self.ch_seg = asyncio.Queue(maxsize=self.queue_size)
        self.segments_closed = False

        # Segments queued but not yet downloaded go into the next file
        while not previous.empty():
            url = previous.get_nowait()
            if url is not END_OF_SEQUENCE:
                self.ch_seg.put_nowait(url)

    async def start(self) -> None:
        try:
            await self._prepare_capture()
        except Exception as e:
            raise CaptureSetupError(f"准备录制m3u8流时出错：{e}") from e

        self._spawn(self._send_seq())
        self._spawn(self._download_seq())

    async def close_segments(self) -> None:
        """Mark the end of the segment sequence."""
        self.segments_closed = True
        await self.ch_seg.put(END_OF_SEQUENCE)

    def _remember(self, url: str) -> None:
        self._seen[url] = None
        while len(self._seen) > self.seen_limit:
            self._seen.popitem(last=False)

    async def _send_seq(self) -> None:
        while True:
            try:
                playlist = await self.decoder.decode(self.stream_url, self.headers)
            except Exception as e:
                error = DecodeError(f"解码 m3u8 文件出错：{e}")
                error.__cause__ = e
                self.signal_error(error)
                return

            # No segments listed, the broadcast is over
            if not playlist.segments:
                await self.close_segments()
                return

            new = 0
            for seg in playlist.segments:
                if seg.url in self._seen:
                    continue
                await self.ch_seg.put(seg.url)
                self._remember(seg.url)
                new += 1

            if new:
                self._logger.debug(f"New segments: {new}")

            if playlist.is_endlist:
                await self.close_segments()
                return

            await asyncio.sleep(self.playlist_interval)

    async def _download_seq(self) -> None:
        try:
            await self._download_segments()
        except Exception as e:
            # Local write failures must still end the run
            self._logger.error(f"Segment download stopped: {e}")
            self.signal_error(e)

    async def _download_segments(self) -> None:
        failures = 0
        while True:
            url = await self.ch_seg.get()
            if url is END_OF_SEQUENCE:
                await self._finish_file(restart=False)
                return

            try:
                data = await self._downloader.fetch(url, self.headers)
            except DownloadError as e:
                failures += 1
                if failures >= self.max_segment_failures:
                    self.signal_error(e)
                    return
                self._logger.warning(f"Skipping segment ({failures}/{self.max_segment_failures}): {e}")
                continue

            failures = 0
            if await self._writer.write(data):
                await self._finish_file(restart=True)
                return
