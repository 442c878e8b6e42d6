import logging
import unittest

from liverecorder.logger import FileFormatter, get_anchor_logger, get_logger


class _Collect(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class AnchorLoggerTests(unittest.TestCase):
    def test_adapter_tags_records(self) -> None:
        collect = _Collect()
        logger = get_logger()
        logger.addHandler(collect)
        logger.setLevel(logging.INFO)
        try:
            get_anchor_logger("bili_1").info("hello")
        finally:
            logger.removeHandler(collect)

        record = collect.records[-1]
        self.assertEqual(record.anchor, "bili_1")
        self.assertIn("bili_1", FileFormatter().format(record))

    def test_child_logger_name(self) -> None:
        self.assertEqual(get_logger('writer').name, "live_recorder.writer")


if __name__ == "__main__":
    unittest.main()
