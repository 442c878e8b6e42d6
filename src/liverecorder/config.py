"""
Configuration for Live Recorder.
Reads the YAML config file into typed dataclasses.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .anchor import Anchor
from .errors import ConfigError


STREAM_TYPES = ('auto', 'flv', 'm3u8')
HANDLER_TYPES = ('local', 'telegram')


@dataclass
class AnchorConfig:
    """An anchor to record."""
    platform: str
    id: str
    stream_type: str = "auto"  # auto, flv or m3u8

    def to_anchor(self) -> Anchor:
        return Anchor(platform=self.platform, id=self.id)


@dataclass
class RecordingConfig:
    """Capture settings shared by all anchors."""
    temp_dir: str = "./temp"
    file_size_threshold_mb: int = 2048
    check_interval: int = 60        # seconds between live checks of all anchors
    max_retries: int = 3            # extra attempts when anchor info fails
    retry_interval: float = 1.0     # seconds between those attempts
    playlist_interval: float = 1.0  # seconds between M3U8 playlist polls
    segment_queue_size: int = 64    # M3U8 segments waiting for download
    chunk_size_kb: int = 64         # FLV read size

    @property
    def file_size_threshold(self) -> int:
        return self.file_size_threshold_mb * 1024 * 1024


@dataclass
class HandlerConfig:
    """What to do with finished files."""
    type: str = "local"  # local or telegram
    output_dir: str = "./recordings"


@dataclass
class TelegramConfig:
    """Credentials and target of the Telegram handler."""
    api_id: int
    api_hash: str
    channel_id: int
    session_name: str = "live_recorder"


@dataclass
class LoggingConfig:
    """Log level and rotated log file."""
    level: str = "INFO"
    file: str = "./logs/recorder.log"
    max_size_mb: int = 10
    backup_count: int = 5


@dataclass
class Config:
    """Whole configuration."""
    anchors: List[AnchorConfig] = field(default_factory=list)
    recording: RecordingConfig = field(default_factory=RecordingConfig)
    handler: HandlerConfig = field(default_factory=HandlerConfig)
    telegram: Optional[TelegramConfig] = None
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        for directory in (Path(self.recording.temp_dir), Path(self.logging.file).parent):
            directory.mkdir(parents=True, exist_ok=True)


def as_float(value: Any, default: float) -> float:
    """Read a YAML scalar as float; unusable values give ``default``."""
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            # Accept a decimal comma
            return float(value.strip().replace(",", "."))
        except ValueError:
            pass
    return default


def as_int(value: Any, default: int) -> int:
    """Read a YAML scalar as int, truncating fractions."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    number = as_float(value, None)
    return default if number is None else int(number)


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return section


def _load_anchors(items: Any) -> List[AnchorConfig]:
    if items is None:
        return []
    if not isinstance(items, list):
        raise ConfigError("'anchors' must be a list")

    anchors = []
    for i, item in enumerate(items):
        if not isinstance(item, dict) or 'platform' not in item or 'id' not in item:
            raise ConfigError(f"anchors[{i}] needs 'platform' and 'id'")

        stream_type = str(item.get('stream_type', 'auto')).lower()
        if stream_type not in STREAM_TYPES:
            raise ConfigError(f"anchors[{i}].stream_type must be one of {', '.join(STREAM_TYPES)}")

        # "_" separates platform and ID in the capture key
        platform = str(item['platform'])
        if not platform or '_' in platform:
            raise ConfigError(f"anchors[{i}].platform is invalid: {platform!r}")

        anchors.append(AnchorConfig(platform=platform, id=str(item['id']), stream_type=stream_type))
    return anchors


def _load_recording(section: Dict[str, Any]) -> RecordingConfig:
    defaults = RecordingConfig()
    return RecordingConfig(
        temp_dir=str(section.get('temp_dir', defaults.temp_dir)),
        file_size_threshold_mb=max(1, as_int(section.get('file_size_threshold_mb'), defaults.file_size_threshold_mb)),
        check_interval=max(1, as_int(section.get('check_interval'), defaults.check_interval)),
        max_retries=max(0, as_int(section.get('max_retries'), defaults.max_retries)),
        retry_interval=max(0.0, as_float(section.get('retry_interval'), defaults.retry_interval)),
        playlist_interval=max(0.0, as_float(section.get('playlist_interval'), defaults.playlist_interval)),
        segment_queue_size=max(1, as_int(section.get('segment_queue_size'), defaults.segment_queue_size)),
        chunk_size_kb=max(1, as_int(section.get('chunk_size_kb'), defaults.chunk_size_kb)),
    )


def _load_telegram(section: Dict[str, Any]) -> TelegramConfig:
    if not section:
        raise ConfigError("Missing 'telegram' section in config")
    missing = [name for name in ('api_id', 'api_hash', 'channel_id') if name not in section]
    if missing:
        raise ConfigError(f"Missing required field: telegram.{missing[0]}")

    try:
        return TelegramConfig(
            api_id=int(section['api_id']),
            api_hash=str(section['api_hash']),
            channel_id=int(section['channel_id']),
            session_name=str(section.get('session_name', 'live_recorder')),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid telegram section: {e}") from e


def load_config(config_path: str = "config.yaml") -> Config:
    """
    Load the YAML configuration.

    Args:
        config_path: Path of the config file.

    Returns:
        Parsed Config; directories it names are created.

    Raises:
        FileNotFoundError: If the file is missing.
        ConfigError: If the file is empty, not valid YAML, or a section is invalid.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {path}\n"
            f"Create one from config.example.yaml (python -m liverecorder.config writes it)."
        )

    try:
        data = yaml.safe_load(path.read_text(encoding='utf-8'))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not data:
        raise ConfigError("Configuration file is empty")
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping")

    handler_section = _section(data, 'handler')
    handler_type = str(handler_section.get('type', 'local')).lower()
    if handler_type not in HANDLER_TYPES:
        raise ConfigError(f"handler.type must be one of {', '.join(HANDLER_TYPES)}")

    # Only read when uploading, so placeholder credentials do not break local recording
    telegram = _load_telegram(_section(data, 'telegram')) if handler_type == 'telegram' else None

    logging_section = _section(data, 'logging')
    defaults = LoggingConfig()

    return Config(
        anchors=_load_anchors(data.get('anchors')),
        recording=_load_recording(_section(data, 'recording')),
        handler=HandlerConfig(
            type=handler_type,
            output_dir=str(handler_section.get('output_dir', HandlerConfig.output_dir))
        ),
        telegram=telegram,
        logging=LoggingConfig(
            level=str(logging_section.get('level', defaults.level)),
            file=str(logging_section.get('file', defaults.file)),
            max_size_mb=as_int(logging_section.get('max_size_mb'), defaults.max_size_mb),
            backup_count=as_int(logging_section.get('backup_count'), defaults.backup_count),
        )
    )


EXAMPLE_CONFIG = """\
# Live Recorder configuration

anchors:
  - platform: bili      # twitch, youtube, bili, douyin, huya, douyu or direct
    id: "12345"
  - platform: twitch
    id: shroud
    stream_type: m3u8   # auto (pick from the stream URL), flv or m3u8
  - platform: direct    # the ID is the stream URL itself
    id: https://example.com/live/room.flv

recording:
  temp_dir: ./temp
  file_size_threshold_mb: 2048  # rotate to a new file past this size
  check_interval: 60            # seconds between live checks
  max_retries: 3
  retry_interval: 1
  playlist_interval: 1          # seconds between M3U8 playlist polls
  segment_queue_size: 64
  chunk_size_kb: 64

handler:
  type: local                   # local or telegram
  output_dir: ./recordings

# Only read when handler.type is telegram; get the API keys at https://my.telegram.org
telegram:
  api_id: YOUR_API_ID
  api_hash: YOUR_API_HASH
  channel_id: -1001234567890
  session_name: live_recorder

logging:
  level: INFO                   # DEBUG, INFO, WARNING or ERROR
  file: ./logs/recorder.log
  max_size_mb: 10
  backup_count: 5
"""


def create_example_config(path: str = "config.example.yaml") -> None:
    """Write an example config file."""
    Path(path).write_text(EXAMPLE_CONFIG, encoding='utf-8')


if __name__ == '__main__':
    create_example_config()
    print("Created config.example.yaml")
