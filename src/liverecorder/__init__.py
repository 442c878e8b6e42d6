"""
Live Recorder.
Records live streams of anchors into size-bounded files.
"""

from .anchor import Anchor, AnchorInfo, gen_capturing_key
from .capture import AnchorCapturer, CaptureOutcome
from .flv_stream import FlvStream
from .m3u8_stream import M3u8Stream
from .registry import CapturingRegistry
from .session import StreamSession, classify_stream

__version__ = "1.0.0"

__all__ = [
    'Anchor',
    'AnchorInfo',
    'AnchorCapturer',
    'CaptureOutcome',
    'CapturingRegistry',
    'FlvStream',
    'M3u8Stream',
    'StreamSession',
    'classify_stream',
    'gen_capturing_key',
]
