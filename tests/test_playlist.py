import unittest

from liverecorder.errors import DecodeError
from liverecorder.playlist import M3u8Decoder


MASTER = """#EXTM3U
#EXT-X-STREAM-INF:BANDWIDTH=800000
low/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=2400000
high/index.m3u8
"""

MEDIA = """#EXTM3U
#EXT-X-TARGETDURATION:2
#EXT-X-MEDIA-SEQUENCE:10
#EXTINF:2.0,
seg10.ts
#EXTINF:2.0,
seg11.ts
"""


class FakeResponse:
    def __init__(self, status, text):
        self.status = status
        self._text = text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def text(self):
        return self._text


class FakeHttpSession:
    """Serves fixed bodies by URL; unknown URLs get a 404."""

    def __init__(self, pages):
        self.pages = pages
        self.requested = []

    def get(self, url, headers=None, timeout=None):
        self.requested.append((url, headers))
        if url in self.pages:
            return FakeResponse(200, self.pages[url])
        return FakeResponse(404, "")


class M3u8DecoderTests(unittest.IsolatedAsyncioTestCase):
    async def test_media_playlist(self) -> None:
        url = "https://cdn.example.com/live/index.m3u8"
        http = FakeHttpSession({url: MEDIA})
        playlist = await M3u8Decoder(session=http).decode(url, {'Referer': 'r'})

        self.assertEqual(
            [s.url for s in playlist.segments],
            ["https://cdn.example.com/live/seg10.ts", "https://cdn.example.com/live/seg11.ts"],
        )
        self.assertEqual(playlist.segments[0].duration, 2.0)
        self.assertFalse(playlist.is_endlist)
        self.assertEqual(http.requested[0][1], {'Referer': 'r'})

    async def test_master_playlist_picks_highest_bandwidth(self) -> None:
        url = "https://cdn.example.com/live/master.m3u8"
        http = FakeHttpSession({
            url: MASTER,
            "https://cdn.example.com/live/high/index.m3u8": MEDIA,
        })
        playlist = await M3u8Decoder(session=http).decode(url, {})

        self.assertEqual(playlist.segments[0].url, "https://cdn.example.com/live/high/seg10.ts")

    async def test_endlist(self) -> None:
        url = "https://cdn.example.com/vod/index.m3u8"
        http = FakeHttpSession({url: MEDIA + "#EXT-X-ENDLIST\n"})
        playlist = await M3u8Decoder(session=http).decode(url, {})
        self.assertTrue(playlist.is_endlist)

    async def test_http_error(self) -> None:
        with self.assertRaises(DecodeError):
            await M3u8Decoder(session=FakeHttpSession({})).decode("https://cdn.example.com/x.m3u8", {})


if __name__ == "__main__":
    unittest.main()
