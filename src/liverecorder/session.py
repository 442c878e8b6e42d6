"""
Stream session base.
One active capture of a live stream, polymorphic over delivery protocol.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Set, Type

from .downloader import Downloader, RotatingFileWriter
from .errors import UnsupportedStreamError
from .handlers import Handler
from .logger import get_anchor_logger


class SessionSignal(Enum):
    """How a capture run terminated."""
    ERROR = "error"        # Capture failed
    RESTART = "restart"    # Output file reached the threshold, capture again
    ENDED = "ended"        # Source has no more data


@dataclass
class Termination:
    """Termination signal received from a session."""
    signal: SessionSignal
    error: Optional[BaseException] = None


class StreamSession(ABC):
    """
    A capture session.

    Background tasks report how the run ends through two endpoints:
    ``ch_err`` receives an exception when capture fails, ``ch_restart``
    receives True when the output file must be rotated and False when the
    broadcast ended. ``wait`` blocks until one of them fires.
    """

    # Case-insensitive substring identifying this variant's stream URLs
    URL_MARKER = ""
    # Extension of the output files
    EXT = "bin"

    _variants: List[Type['StreamSession']] = []

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.URL_MARKER:
            StreamSession._variants.append(cls)

    def __init__(self, downloader: Optional[Downloader] = None, chunk_size: int = 64 * 1024):
        self.title = ""
        self.stream_url = ""
        self.headers: Dict[str, str] = {}
        self.path = ""
        self.file_size_threshold = 0
        self.handler: Optional[Handler] = None
        self.key = ""
        self.chunk_size = chunk_size

        self.ch_err: asyncio.Queue = asyncio.Queue()
        self.ch_restart: asyncio.Queue = asyncio.Queue()

        self._downloader = downloader
        self._writer: Optional[RotatingFileWriter] = None
        self._tasks: Set[asyncio.Task] = set()
        self._handler_tasks: Set[asyncio.Task] = set()
        self._logger = get_anchor_logger("-")

    def reset(
        self,
        title: str,
        stream_url: str,
        headers: Dict[str, str],
        path: str,
        file_size_threshold: int,
        handler: Optional[Handler],
        key: str = ""
    ) -> None:
        """
        Reinitialize the session in place for a new capture run.

        Tasks of the previous run are cancelled and fresh signal endpoints
        are created.
        """
        self._cancel_tasks()

        self.ch_err = asyncio.Queue()
        self.ch_restart = asyncio.Queue()
        self._writer = None

        self.title = title
        self.stream_url = stream_url
        self.headers = dict(headers or {})
        self.path = path
        self.file_size_threshold = file_size_threshold
        self.handler = handler
        if key:
            self.key = key
            self._logger = get_anchor_logger(key)

    @abstractmethod
    async def start(self) -> None:
        """
        Begin capturing in the background.

        Returns once setup succeeded.

        Raises:
            CaptureSetupError: If setup fails.
        """

    def get_bytes(self) -> int:
        """Bytes written to the current output file."""
        return self._writer.bytes_written if self._writer else 0

    async def wait(self) -> Termination:
        """Block until the session signals an error, a restart or the end."""
        err_task = asyncio.ensure_future(self.ch_err.get())
        restart_task = asyncio.ensure_future(self.ch_restart.get())
        try:
            done, _ = await asyncio.wait(
                {err_task, restart_task},
                return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            err_task.cancel()
            restart_task.cancel()

        if err_task in done:
            return Termination(SessionSignal.ERROR, err_task.result())
        if restart_task.result():
            return Termination(SessionSignal.RESTART)
        return Termination(SessionSignal.ENDED)

    async def stop(self) -> None:
        """Cancel capture tasks, hand over the partial file and release the connection."""
        tasks = self._cancel_tasks()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self._writer is not None and self._writer.is_open:
            path = await self._writer.finish()
            if path:
                self._dispatch(path)

        if self._downloader is not None:
            await self._downloader.close()

    async def drain(self) -> None:
        """Wait for pending handler tasks."""
        if self._handler_tasks:
            await asyncio.gather(*list(self._handler_tasks), return_exceptions=True)

    def signal_error(self, error: BaseException) -> None:
        self.ch_err.put_nowait(error)

    def signal_restart(self, restart: bool) -> None:
        self.ch_restart.put_nowait(restart)

    async def _prepare_capture(self) -> None:
        """Open the first output file."""
        if self._downloader is None:
            self._downloader = Downloader(chunk_size=self.chunk_size)
        self._writer = RotatingFileWriter(self.path, self.title, self.EXT, self.file_size_threshold)
        await self._writer.open()

    async def _finish_file(self, restart: bool) -> None:
        """Close the output file, hand it to the handler, then signal."""
        path = await self._writer.finish()
        if path:
            self._dispatch(path)
        self.signal_restart(restart)

    def _dispatch(self, path: Path) -> None:
        if self.handler is None:
            self._logger.info(f"Recording kept at {path}")
            return
        task = asyncio.create_task(self._handle_file(self.handler, str(path), self.title))
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_tasks.discard)

    async def _handle_file(self, handler: Handler, path: str, title: str) -> None:
        try:
            await handler.handle(path, title)
        except Exception as e:
            self._logger.error(f"Handler failed for {Path(path).name}: {e}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_tasks(self) -> List[asyncio.Task]:
        tasks = [t for t in self._tasks if not t.done()]
        for task in tasks:
            task.cancel()
        self._tasks.clear()
        return tasks


def classify_stream(stream_url: str) -> Type[StreamSession]:
    """
    Pick the session variant for a stream URL.

    Raises:
        UnsupportedStreamError: If the URL matches no known delivery format.
    """
    url = stream_url.lower()
    for variant in StreamSession._variants:
        if variant.URL_MARKER in url:
            return variant
    raise UnsupportedStreamError(f"没有匹配到直播流的类型：{stream_url}")
