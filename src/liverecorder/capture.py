"""
Capture orchestration.

Checks whether an anchor is live, starts a stream session for it unless
one is already running, and drives the session until the broadcast ends:
rotating files restart the session in place, capture errors are
re-checked against the anchor's live status.
"""

import asyncio
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Type

from .anchor import Anchor, AnchorInfo, gen_capturing_key
from .downloader import format_size
from .errors import AnchorInfoError
from .flv_stream import FlvStream
from .handlers import Handler, gen_caption
from .logger import get_anchor_logger
from .m3u8_stream import M3u8Stream
from .registry import CapturingRegistry
from .retry import try_get_anchor_info
from .session import SessionSignal, StreamSession, classify_stream
from .sites import AnchorSite, gen_anchor_site


class CaptureOutcome(Enum):
    """How a successful ``start_anchor`` call ended."""
    NOT_LIVE = "not_live"
    ALREADY_CAPTURING = "already_capturing"
    ENDED = "ended"


SessionFactory = Callable[[Type[StreamSession]], StreamSession]


class AnchorCapturer:
    """
    Records anchors into local files.

    One capturer is shared by every anchor of the process; its registry
    keeps concurrent calls for the same anchor from capturing twice.
    """

    def __init__(
        self,
        registry: Optional[CapturingRegistry] = None,
        site_factory: Callable[[Anchor], AnchorSite] = gen_anchor_site,
        session_factory: Optional[SessionFactory] = None,
        max_retries: int = 3,
        retry_interval: float = 1.0
    ):
        """
        Initialize the capturer.

        Args:
            registry: Registry of sessions being captured.
            site_factory: Creates the info provider of an anchor.
            session_factory: Creates a session of the given variant.
            max_retries: Extra attempts when getting anchor info fails.
            retry_interval: Seconds between those attempts.
        """
        self.registry = registry if registry is not None else CapturingRegistry()
        self.site_factory = site_factory
        self.session_factory = session_factory or (lambda variant: variant())
        self.max_retries = max_retries
        self.retry_interval = retry_interval

    async def _get_info(self, site: AnchorSite) -> AnchorInfo:
        return await try_get_anchor_info(site, self.max_retries, self.retry_interval)

    async def _end(self, key: str, session: StreamSession) -> None:
        """Stop an owned session and drop its registry entry."""
        try:
            await session.stop()
        finally:
            self.registry.remove(key, session)

    async def start_anchor(
        self,
        anchor: Anchor,
        path: str,
        file_size_threshold: int,
        handler: Optional[Handler],
        stream: Optional[StreamSession] = None
    ) -> CaptureOutcome:
        """
        Record an anchor's live stream until the broadcast ends.

        Args:
            anchor: The anchor to record.
            path: Directory for the files being recorded.
            file_size_threshold: Bytes per file before rotating to a new one.
            handler: Receives every finished file.
            stream: Session to use; chosen from the stream URL when None.

        Returns:
            CaptureOutcome describing the successful end.

        Raises:
            AnchorInfoError: If anchor info could not be retrieved.
            UnsupportedStreamError: If the stream URL has no known format.
            CaptureSetupError: If the session failed to start.
            LiveRecorderError: If capture failed while the anchor is still live.
        """
        key = gen_capturing_key(anchor)
        logger = get_anchor_logger(key)
        start = datetime.now().strftime('%Y%m%d')
        site = self.site_factory(anchor)

        session = stream
        # True once this call registered ``session``; later passes are file rotations
        owned = False

        try:
            while True:
                try:
                    info = await self._get_info(site)
                except Exception as e:
                    if owned:
                        await self._end(key, session)
                    raise AnchorInfoError(f"获取主播信息出错：{e}") from e

                if not info.is_live:
                    logger.info(f"😴 {info.name} is not live ({anchor})")
                    if owned:
                        await session.stop()
                    self.registry.remove(key)
                    return CaptureOutcome.NOT_LIVE

                if not owned:
                    existing = self.registry.get(key)
                    if existing is not None:
                        self._log_progress(logger, info, anchor, existing, file_size_threshold)
                        return CaptureOutcome.ALREADY_CAPTURING

                title = gen_caption(info.name, site.get_platform_name(), start, info.title)
                headers = site.get_stream_headers()

                if session is None:
                    session = self.session_factory(classify_stream(info.stream_url))

                if not owned:
                    current, inserted = self.registry.insert_if_absent(key, session)
                    if not inserted:
                        self._log_progress(logger, info, anchor, current, file_size_threshold)
                        return CaptureOutcome.ALREADY_CAPTURING
                    owned = True

                session.reset(title, info.stream_url, headers, path, file_size_threshold, handler, key=key)

                logger.info(f"😙 Start recording {info.name} ({anchor})")
                try:
                    await session.start()
                except Exception:
                    await self._end(key, session)
                    raise

                termination = await session.wait()

                if termination.signal is SessionSignal.RESTART:
                    logger.info(f"💾 File reached {format_size(file_size_threshold)}, continuing in a new file")
                    continue

                if termination.signal is SessionSignal.ENDED:
                    logger.info(f"😶 {info.name} stopped broadcasting ({anchor}), recording finished")
                    await self._end(key, session)
                    return CaptureOutcome.ENDED

                return await self._on_capture_error(key, anchor, site, session, termination.error)

        except asyncio.CancelledError:
            if owned:
                await self._end(key, session)
            raise

    async def _on_capture_error(
        self,
        key: str,
        anchor: Anchor,
        site: AnchorSite,
        session: StreamSession,
        error: BaseException
    ) -> CaptureOutcome:
        """
        Decide whether a capture error is real.

        The stream often breaks a moment before the platform reports the
        anchor offline; an error seen after the anchor went offline is a
        normal end of the broadcast.
        """
        logger = get_anchor_logger(key)
        await self._end(key, session)

        try:
            info = await self._get_info(site)
        except Exception as e:
            logger.warning(f"Could not re-check live status after capture error: {e}")
            raise error

        if info.is_live:
            logger.error(f"Capture failed while still live ({anchor}): {error}")
            raise error

        logger.info(f"😶 {info.name} went offline ({anchor}), recording finished")
        return CaptureOutcome.ENDED

    def _log_progress(
        self,
        logger,
        info: AnchorInfo,
        anchor: Anchor,
        session: StreamSession,
        file_size_threshold: int
    ) -> None:
        logger.info(
            f"😊 {info.name} is being recorded ({anchor}), "
            f"current file {format_size(session.get_bytes())}/{format_size(file_size_threshold)}"
        )

    async def start_flv_anchor(
        self,
        anchor: Anchor,
        path: str,
        file_size_threshold: int,
        handler: Optional[Handler]
    ) -> CaptureOutcome:
        """Record an anchor whose stream is FLV."""
        return await self.start_anchor(
            anchor, path, file_size_threshold, handler, self.session_factory(FlvStream)
        )

    async def start_m3u8_anchor(
        self,
        anchor: Anchor,
        path: str,
        file_size_threshold: int,
        handler: Optional[Handler]
    ) -> CaptureOutcome:
        """
        Record an anchor whose stream is M3U8.

        A non-live M3U8 video can only be saved into a single file: every
        restart re-reads the playlist from its beginning.
        """
        return await self.start_anchor(
            anchor, path, file_size_threshold, handler, self.session_factory(M3u8Stream)
        )
