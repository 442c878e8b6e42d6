"""
Live Recorder - Main entry point.

Periodically checks every configured anchor and records the live ones:
1. Resolve live status and stream URL
2. Capture the stream into size-bounded files
3. Hand finished files to the handler (local folder or Telegram)
"""

import argparse
import asyncio
import signal
import weakref
from typing import Optional, Set, Type

from .anchor import gen_capturing_key
from .capture import AnchorCapturer
from .config import AnchorConfig, Config, load_config
from .handlers import Handler, LocalHandler, TelegramHandler
from .logger import get_anchor_logger, get_logger, setup_logging
from .m3u8_stream import M3u8Stream
from .registry import CapturingRegistry
from .session import StreamSession


class LiveRecorderApp:
    """
    Main application scheduling anchor checks.

    Every check interval a capture call is started for each anchor; calls
    for anchors already being recorded return at once through the
    capturing registry.
    """

    def __init__(self, config: Config, handler: Optional[Handler] = None):
        """Initialize application with configuration."""
        self.config = config
        self._logger = get_logger('app')

        self.registry = CapturingRegistry()
        self.handler = handler or self._build_handler()
        self.capturer = AnchorCapturer(
            registry=self.registry,
            session_factory=self._new_session,
            max_retries=config.recording.max_retries,
            retry_interval=config.recording.retry_interval
        )

        self._shutdown_event = asyncio.Event()
        self._tasks: Set[asyncio.Task] = set()
        self._sessions: 'weakref.WeakSet[StreamSession]' = weakref.WeakSet()

    def _build_handler(self) -> Handler:
        if self.config.handler.type == 'telegram':
            tg = self.config.telegram
            return TelegramHandler(
                api_id=tg.api_id,
                api_hash=tg.api_hash,
                channel_id=tg.channel_id,
                session_name=tg.session_name
            )
        return LocalHandler(self.config.handler.output_dir)

    def _new_session(self, variant: Type[StreamSession]) -> StreamSession:
        rec = self.config.recording
        chunk_size = rec.chunk_size_kb * 1024
        if issubclass(variant, M3u8Stream):
            session = variant(
                playlist_interval=rec.playlist_interval,
                queue_size=rec.segment_queue_size,
                chunk_size=chunk_size
            )
        else:
            session = variant(chunk_size=chunk_size)
        self._sessions.add(session)
        return session

    async def _capture(self, anchor_config: AnchorConfig) -> None:
        anchor = anchor_config.to_anchor()
        rec = self.config.recording
        logger = get_anchor_logger(gen_capturing_key(anchor))

        if anchor_config.stream_type == 'flv':
            call = self.capturer.start_flv_anchor
        elif anchor_config.stream_type == 'm3u8':
            call = self.capturer.start_m3u8_anchor
        else:
            call = self.capturer.start_anchor

        try:
            outcome = await call(anchor, rec.temp_dir, rec.file_size_threshold, self.handler)
            logger.debug(f"Check finished: {outcome.value}")
        except Exception as e:
            logger.error(f"Recording failed: {e}")

    def _check_anchors(self) -> None:
        for anchor_config in self.config.anchors:
            task = asyncio.create_task(self._capture(anchor_config))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def _handle_signal(self) -> None:
        self._logger.info("Shutdown requested...")
        self._shutdown_event.set()

    async def start(self) -> None:
        """Run until a shutdown signal is received."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._handle_signal)
            except NotImplementedError:
                # Windows
                pass

        self._logger.info(f"Watching {len(self.config.anchors)} anchors")

        try:
            while not self._shutdown_event.is_set():
                self._check_anchors()
                try:
                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=self.config.recording.check_interval
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            await self._cleanup()

    async def _cleanup(self) -> None:
        """Stop recordings, then wait for finished files to be handled."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        for session in list(self._sessions):
            await session.drain()

        await self.handler.close()
        self._logger.info("Live Recorder stopped")


async def main(config_path: str = "config.yaml") -> None:
    """Main entry point."""
    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        return
    except Exception as e:
        print(f"Configuration error: {e}")
        return

    setup_logging(
        level=config.logging.level,
        log_file=config.logging.file,
        max_size_mb=config.logging.max_size_mb,
        backup_count=config.logging.backup_count
    )

    if not config.anchors:
        print("Error: No anchors configured")
        return

    app = LiveRecorderApp(config)
    try:
        await app.start()
    except Exception as e:
        get_logger('app').error(f"Fatal error: {e}")
        raise


def cli() -> None:
    """Console script entry point."""
    parser = argparse.ArgumentParser(prog='live-recorder', description="Record live streams of anchors.")
    parser.add_argument('-c', '--config', default="config.yaml", help="Path to the YAML config file")
    args = parser.parse_args()
    asyncio.run(main(args.config))


if __name__ == '__main__':
    cli()
