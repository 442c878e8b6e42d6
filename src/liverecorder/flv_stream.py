"""
Continuous (FLV) stream session.
"""

from .downloader import ByteStream
from .errors import CaptureSetupError, DownloadError
from .session import StreamSession


class FlvStream(StreamSession):
    """
    FLV live stream.

    The stream URL is read as one long byte stream until the server closes
    the connection or the output file reaches the size threshold.
    """

    URL_MARKER = ".flv"
    EXT = "flv"

    async def start(self) -> None:
        try:
            await self._prepare_capture()
            stream = await self._downloader.open_stream(self.stream_url, self.headers)
        except Exception as e:
            raise CaptureSetupError(f"准备录制flv流时出错：{e}") from e

        self._spawn(self._capture(stream))

    async def _capture(self, stream: ByteStream) -> None:
        try:
            async for chunk in stream.chunks():
                if await self._writer.write(chunk):
                    await self._finish_file(restart=True)
                    return
            # Server closed the stream
            await self._finish_file(restart=False)
        except DownloadError as e:
            self.signal_error(e)
        except Exception as e:
            # Local write failures must still end the run
            self._logger.error(f"Capture stopped: {e}")
            self.signal_error(e)
        finally:
            stream.close()
