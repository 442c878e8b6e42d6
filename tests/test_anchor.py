import unittest

from liverecorder.anchor import Anchor, AnchorInfo, gen_capturing_key


class CapturingKeyTests(unittest.TestCase):
    def test_key_format(self) -> None:
        self.assertEqual(gen_capturing_key(Anchor("bili", "12345")), "bili_12345")

    def test_key_is_deterministic(self) -> None:
        self.assertEqual(
            gen_capturing_key(Anchor("douyin", "abc")),
            gen_capturing_key(Anchor("douyin", "abc")),
        )

    def test_distinct_anchors_get_distinct_keys(self) -> None:
        anchors = [
            Anchor("bili", "1"),
            Anchor("bili", "12"),
            Anchor("douyin", "1"),
            Anchor("twitch", "1_2"),
            Anchor("twitch", "1"),
        ]
        keys = {gen_capturing_key(a) for a in anchors}
        self.assertEqual(len(keys), len(anchors))

    def test_platform_with_separator_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Anchor("bad_platform", "1")
        with self.assertRaises(ValueError):
            Anchor("", "1")

    def test_anchor_is_hashable_and_immutable(self) -> None:
        anchor = Anchor("bili", "1")
        self.assertEqual({anchor: 1}[Anchor("bili", "1")], 1)
        with self.assertRaises(AttributeError):
            anchor.id = "2"

    def test_offline_info(self) -> None:
        info = AnchorInfo.offline(name="主播")
        self.assertFalse(info.is_live)
        self.assertEqual(info.stream_url, "")


if __name__ == "__main__":
    unittest.main()
