"""
Handlers for finished recording files.
A handler receives each file once its session rotates or ends.
"""

import asyncio
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from telethon import TelegramClient
from telethon.tl.types import DocumentAttributeVideo

from .logger import get_logger


def gen_caption(name: str, platform: str, date: str, title: str) -> str:
    """
    Build the caption of a recording.

    Args:
        name: Display name of the anchor.
        platform: Platform name.
        date: Date the capture started, e.g. "20261019".
        title: Broadcast title.

    Returns:
        Caption such as "#name #platform 20261019" followed by the title.
    """
    return f"#{name} #{platform} {date}\n{title}"


class Handler(ABC):
    """Post-processes a finished recording file."""

    @abstractmethod
    async def handle(self, path: str, title: str) -> None:
        """Process the file at ``path``, captioned with ``title``."""

    async def close(self) -> None:
        """Release handler resources."""


class LocalHandler(Handler):
    """Moves finished files into the output directory."""

    def __init__(self, output_dir: str = "./recordings"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._logger = get_logger('handler')

    async def handle(self, path: str, title: str) -> None:
        src = Path(path)
        dst = self.output_dir / src.name
        await asyncio.get_running_loop().run_in_executor(None, shutil.move, str(src), str(dst))
        self._logger.info(f"Saved recording: {dst} ({title.splitlines()[0] if title else ''})")


class TelegramHandler(Handler):
    """
    Uploads finished files to a Telegram channel using Telethon.

    The local file is deleted after a successful upload.
    """

    def __init__(
        self,
        api_id: int,
        api_hash: str,
        channel_id: int,
        session_name: str = "live_recorder",
        max_retries: int = 3
    ):
        """
        Initialize Telegram handler.

        Args:
            api_id: Telegram API ID.
            api_hash: Telegram API hash.
            channel_id: Target channel ID for uploads.
            session_name: Session file name.
            max_retries: Upload attempts per file.
        """
        self.api_id = api_id
        self.api_hash = api_hash
        self.channel_id = channel_id
        self.session_name = session_name
        self.max_retries = max_retries

        self._client: Optional[TelegramClient] = None
        self._connect_lock = asyncio.Lock()
        self._logger = get_logger('handler')

    async def _ensure_client(self) -> TelegramClient:
        async with self._connect_lock:
            if self._client is None:
                client = TelegramClient(self.session_name, self.api_id, self.api_hash)
                await client.start()
                me = await client.get_me()
                self._logger.info(f"Connected to Telegram as {me.first_name}")
                self._client = client
        return self._client

    async def handle(self, path: str, title: str) -> None:
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        client = await self._ensure_client()
        size_mb = file_path.stat().st_size / (1024 * 1024)
        self._logger.info(f"Uploading {file_path.name} ({size_mb:.1f} MB)...")

        for attempt in range(self.max_retries):
            try:
                await client.send_file(
                    self.channel_id,
                    str(file_path),
                    caption=title,
                    supports_streaming=True,
                    attributes=[DocumentAttributeVideo(duration=0, w=0, h=0, supports_streaming=True)]
                )
                break
            except Exception as e:
                self._logger.warning(f"Upload attempt {attempt + 1} failed: {e}")
                if attempt == self.max_retries - 1:
                    raise
                wait_time = (attempt + 1) * 30
                self._logger.info(f"Retrying in {wait_time}s...")
                await asyncio.sleep(wait_time)

        self._logger.info(f"Uploaded: {file_path.name}")
        file_path.unlink(missing_ok=True)

    async def close(self) -> None:
        if self._client:
            await self._client.disconnect()
            self._client = None
