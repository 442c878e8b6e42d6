import asyncio
import tempfile
import unittest
from unittest import mock
from pathlib import Path

from liverecorder.downloader import RotatingFileWriter
from liverecorder.errors import CaptureSetupError, DecodeError, DownloadError, UnsupportedStreamError
from liverecorder.flv_stream import FlvStream
from liverecorder.m3u8_stream import M3u8Stream
from liverecorder.playlist import Playlist, Segment
from liverecorder.session import SessionSignal, classify_stream

from fakes import FakeDecoder, FakeDownloader, RecordingHandler


TIMEOUT = 5


class _SessionTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = self._tmp.name

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def files(self):
        return sorted(p.name for p in Path(self.path).iterdir())


class M3u8StreamTests(_SessionTestCase):
    def make(self, windows, threshold=1024, handler=None, queue_size=64, downloader=None):
        session = M3u8Stream(
            decoder=FakeDecoder(windows),
            downloader=downloader or FakeDownloader(),
            playlist_interval=0,
            queue_size=queue_size,
        )
        session.reset("#主播 #Fake 20261019\n标题", "https://cdn.example.com/live.m3u8", {'Referer': 'x'},
                      self.path, threshold, handler, key="bili_1")
        return session

    async def test_empty_first_poll_closes_segments_without_error(self) -> None:
        session = self.make([[]])
        await session.start()
        termination = await asyncio.wait_for(session.wait(), TIMEOUT)

        self.assertIs(termination.signal, SessionSignal.ENDED)
        self.assertTrue(session.segments_closed)
        self.assertTrue(session.ch_err.empty())
        # Nothing was written, so no file is left behind
        self.assertEqual(self.files(), [])
        await session.stop()

    async def test_decode_failure_signals_one_error(self) -> None:
        cause = ValueError("bad playlist")
        session = self.make([cause])
        await session.start()
        termination = await asyncio.wait_for(session.wait(), TIMEOUT)

        self.assertIs(termination.signal, SessionSignal.ERROR)
        self.assertIsInstance(termination.error, DecodeError)
        self.assertIn("解码 m3u8 文件出错", str(termination.error))
        self.assertIs(termination.error.__cause__, cause)

        await asyncio.sleep(0.05)
        self.assertTrue(session.ch_err.empty())
        self.assertTrue(session.ch_restart.empty())
        self.assertFalse(session.segments_closed)
        await session.stop()

    async def test_segments_deduplicated_across_polls(self) -> None:
        handler = RecordingHandler()
        session = self.make([["a"], ["a", "b"], ["b", "c"], []], handler=handler)
        await session.start()
        termination = await asyncio.wait_for(session.wait(), TIMEOUT)
        await session.drain()

        self.assertIs(termination.signal, SessionSignal.ENDED)
        self.assertEqual(len(handler.files), 1)
        name, data, title = handler.files[0]
        self.assertEqual(data, b"abc")
        self.assertTrue(name.endswith(".ts"))
        self.assertTrue(title.startswith("#主播"))
        await session.stop()

    async def test_slow_consumer_does_not_lose_segments(self) -> None:
        handler = RecordingHandler()
        names = [str(i) for i in range(10)]
        session = self.make([names, []], handler=handler, queue_size=1)
        await session.start()
        await asyncio.wait_for(session.wait(), TIMEOUT)
        await session.drain()

        self.assertEqual(handler.files[0][1], "".join(names).encode())
        await session.stop()

    async def test_endlist_closes_segments(self) -> None:
        handler = RecordingHandler()
        final = Playlist(segments=[Segment(url="https://cdn.example.com/seg/z")], is_endlist=True)
        session = self.make([final], handler=handler)
        await session.start()
        termination = await asyncio.wait_for(session.wait(), TIMEOUT)
        await session.drain()

        self.assertIs(termination.signal, SessionSignal.ENDED)
        self.assertEqual(handler.files[0][1], b"z")
        await session.stop()

    async def test_threshold_requests_restart(self) -> None:
        handler = RecordingHandler()
        session = self.make([["aa", "bb", "cc"]], threshold=4, handler=handler)
        await session.start()
        termination = await asyncio.wait_for(session.wait(), TIMEOUT)
        await session.drain()

        self.assertIs(termination.signal, SessionSignal.RESTART)
        self.assertEqual(handler.files[0][1], b"aabb")
        await session.stop()

    async def test_restart_resumes_after_last_segment(self) -> None:
        handler = RecordingHandler()
        session = self.make([["aa", "bb", "cc"], ["cc"], []], threshold=4, handler=handler)
        await session.start()
        first = await asyncio.wait_for(session.wait(), TIMEOUT)
        self.assertIs(first.signal, SessionSignal.RESTART)

        session.reset("t", "https://cdn.example.com/new.m3u8", {}, self.path, 4, handler, key="bili_1")
        await session.start()
        second = await asyncio.wait_for(session.wait(), TIMEOUT)
        await session.drain()

        self.assertIs(second.signal, SessionSignal.ENDED)
        written = b"".join(data for _, data, _ in handler.files)
        self.assertEqual(written, b"aabbcc")
        await session.stop()

    async def test_repeated_segment_failures_signal_error(self) -> None:
        downloader = FakeDownloader(failing_urls=[
            f"https://cdn.example.com/seg/{n}" for n in ("x", "y", "z")
        ])
        session = self.make([["x", "y", "z"]], downloader=downloader)
        await session.start()
        termination = await asyncio.wait_for(session.wait(), TIMEOUT)

        self.assertIs(termination.signal, SessionSignal.ERROR)
        self.assertIsInstance(termination.error, DownloadError)
        await session.stop()
        self.assertTrue(downloader.closed)

    async def test_stop_hands_over_partial_file(self) -> None:
        handler = RecordingHandler()
        # The playlist keeps listing the same segment, so the capture never ends on its own
        session = self.make([["a"]], handler=handler)
        await session.start()
        while session.get_bytes() == 0:
            await asyncio.sleep(0.01)

        await session.stop()
        await session.drain()
        self.assertEqual(handler.files[0][1], b"a")

    async def test_write_failure_signals_error(self) -> None:
        session = self.make([["a"]])
        disk_full = OSError("No space left on device")
        with mock.patch.object(RotatingFileWriter, 'write', side_effect=disk_full):
            await session.start()
            termination = await asyncio.wait_for(session.wait(), TIMEOUT)

        self.assertIs(termination.signal, SessionSignal.ERROR)
        self.assertIs(termination.error, disk_full)
        await session.stop()


class FlvStreamTests(_SessionTestCase):
    def make(self, downloader, threshold=1024, handler=None):
        session = FlvStream(downloader=downloader)
        session.reset("#主播 #Fake 20261019\n标题", "https://cdn.example.com/live.flv", {},
                      self.path, threshold, handler, key="bili_1")
        return session

    async def test_source_close_ends_capture(self) -> None:
        handler = RecordingHandler()
        session = self.make(FakeDownloader(chunks=[b"ab", b"cd"]), handler=handler)
        await session.start()
        termination = await asyncio.wait_for(session.wait(), TIMEOUT)
        await session.drain()

        self.assertIs(termination.signal, SessionSignal.ENDED)
        name, data, _ = handler.files[0]
        self.assertEqual(data, b"abcd")
        self.assertTrue(name.endswith(".flv"))

    async def test_threshold_requests_restart(self) -> None:
        session = self.make(FakeDownloader(chunks=[b"ab", b"cd", b"ef"]), threshold=3)
        await session.start()
        termination = await asyncio.wait_for(session.wait(), TIMEOUT)

        self.assertIs(termination.signal, SessionSignal.RESTART)
        self.assertEqual(session.get_bytes(), 4)

    async def test_connection_failure_fails_setup(self) -> None:
        session = self.make(FakeDownloader(open_error=DownloadError("HTTP 403")))
        with self.assertRaises(CaptureSetupError) as ctx:
            await session.start()
        self.assertIn("准备录制flv流时出错", str(ctx.exception))
        await session.stop()

    async def test_read_failure_signals_error(self) -> None:
        error = DownloadError("reset by peer")
        session = self.make(FakeDownloader(chunks=[b"ab"], stream_error=error))
        await session.start()
        termination = await asyncio.wait_for(session.wait(), TIMEOUT)

        self.assertIs(termination.signal, SessionSignal.ERROR)
        self.assertIs(termination.error, error)
        await session.stop()

    async def test_write_failure_signals_error(self) -> None:
        downloader = FakeDownloader(chunks=[b"ab", b"cd"])
        session = self.make(downloader)
        disk_full = OSError("No space left on device")
        with mock.patch.object(RotatingFileWriter, 'write', side_effect=disk_full):
            await session.start()
            termination = await asyncio.wait_for(session.wait(), TIMEOUT)

        self.assertIs(termination.signal, SessionSignal.ERROR)
        self.assertIs(termination.error, disk_full)
        await session.stop()
        self.assertTrue(downloader.closed)

    async def test_reset_clears_counters(self) -> None:
        session = self.make(FakeDownloader(chunks=[b"abcd"]), threshold=2)
        await session.start()
        await asyncio.wait_for(session.wait(), TIMEOUT)
        self.assertEqual(session.get_bytes(), 4)

        session.reset("t", "https://cdn.example.com/other.flv", {}, self.path, 2, None)
        self.assertEqual(session.get_bytes(), 0)
        self.assertTrue(session.ch_restart.empty())
        self.assertEqual(session.stream_url, "https://cdn.example.com/other.flv")


class ClassifyStreamTests(unittest.TestCase):
    def test_flv(self) -> None:
        self.assertIs(classify_stream("https://cdn.example.com/live/ROOM.FLV?token=1"), FlvStream)

    def test_m3u8(self) -> None:
        self.assertIs(classify_stream("https://cdn.example.com/live/index.m3u8"), M3u8Stream)

    def test_unknown(self) -> None:
        with self.assertRaises(UnsupportedStreamError) as ctx:
            classify_stream("rtmp://cdn.example.com/live/room")
        self.assertIn("没有匹配到直播流的类型", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
