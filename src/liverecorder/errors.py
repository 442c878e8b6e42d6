"""Error types raised along the capture path."""


class LiveRecorderError(Exception):
    """Base error for Live Recorder."""


class ConfigError(LiveRecorderError):
    """Raised when configuration loading or validation fails."""


class AnchorInfoError(LiveRecorderError):
    """Raised when anchor info could not be retrieved."""


class UnsupportedPlatformError(LiveRecorderError):
    """Raised when no site is registered for an anchor's platform."""


class UnsupportedStreamError(LiveRecorderError):
    """Raised when a stream URL matches no known delivery format."""


class CaptureSetupError(LiveRecorderError):
    """Raised when a stream session fails to start."""


class DecodeError(LiveRecorderError):
    """Raised when a playlist cannot be fetched or parsed."""


class DownloadError(LiveRecorderError):
    """Raised when stream or segment bytes cannot be transferred."""
