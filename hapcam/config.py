"""Module for `CameraConfig` class."""
import logging

from hapcam import util
from hapcam.const import DEFAULT_FFMPEG_PATH, DEFAULT_MAX_STREAMS, DEFAULT_SNAPSHOT_TIMEOUT
from hapcam.resolution import to_catalog

logger = logging.getLogger(__name__)

DEFAULT_RESOLUTIONS = [
    # Width, Height, framerate
    [320, 240, 15],  # Required for Apple Watch
    [1920, 1080, 30],
    [1280, 960, 30],
    [1280, 720, 30],
    [1024, 768, 30],
    [640, 480, 30],
    [640, 360, 30],
    [480, 360, 30],
    [480, 270, 30],
    [320, 240, 30],
    [320, 180, 30],
]

DEFAULT_AUDIO_CODECS = [
    {"type": "OPUS", "samplerate": 24},
    {"type": "AAC-eld", "samplerate": 16},
]

# Profile and level indexes: baseline, main, high and 3.1, 3.2, 4.0.
DEFAULT_VIDEO_CODEC = {"profiles": [0, 1, 2], "levels": [0, 1, 2]}

# Keys accepted in addition to the snake_case ones, as used by camera
# configurations written for homebridge-style JSON files.
_OPTION_ALIASES = {
    "videoResolutions": "video_resolutions",
    "snapshotURL": "snapshot_url",
    "maxStreams": "max_streams",
    "ffmpegPath": "ffmpeg_path",
    "snapshotTimeout": "snapshot_timeout",
    "videoCodec": "video_codec",
    "audioCodecs": "audio_codecs",
}


class ConfigurationError(ValueError):
    """Raised when a camera cannot be set up with the given configuration."""


class CameraConfig:
    """Static configuration of one camera.

    Must be created with keyword arguments. ``source`` is required; it holds the
    ffmpeg input options and locator, e.g. ``-re -i rtsp://10.0.0.2/stream``.
    """

    def __init__(self, *, source=None, video_resolutions=None, snapshot_url=None,
                 max_streams=None, address=None, ffmpeg_path=None,
                 snapshot_timeout=None, video_codec=None, audio_codecs=None,
                 name=None):
        if not source:
            raise ConfigurationError("Missing source for camera.")

        self.name = name or "Camera"
        self.source = source
        self.video_resolutions = to_catalog(
            DEFAULT_RESOLUTIONS if video_resolutions is None else video_resolutions
        )
        self.snapshot_url = snapshot_url
        self.max_streams = DEFAULT_MAX_STREAMS if max_streams is None else int(max_streams)
        if self.max_streams < 1:
            raise ConfigurationError(
                "max_streams must be at least 1, got {}".format(self.max_streams)
            )
        self.ffmpeg_path = ffmpeg_path or DEFAULT_FFMPEG_PATH
        self.snapshot_timeout = (
            DEFAULT_SNAPSHOT_TIMEOUT if snapshot_timeout is None else snapshot_timeout
        )
        self.video_codec = video_codec or DEFAULT_VIDEO_CODEC
        self.audio_codecs = audio_codecs or DEFAULT_AUDIO_CODECS
        self._address = address

    @classmethod
    def from_options(cls, options):
        """Create a config from an options ``dict``.

        Unknown keys are logged and ignored.
        """
        kwargs = {}
        for key, value in options.items():
            key = _OPTION_ALIASES.get(key, key)
            if key not in _CONFIG_KEYS:
                logger.warning("Ignoring unknown camera option %s", key)
                continue
            kwargs[key] = value
        return cls(**kwargs)

    @property
    def address(self):
        """Return `address` or get local one."""
        if self._address is None:
            return util.get_local_address()
        return self._address

    @property
    def static_address(self):
        """The configured address, ``None`` when it is discovered."""
        return self._address

    def __repr__(self):
        return "<CameraConfig name={} source={!r} max_streams={}>".format(
            self.name, self.source, self.max_streams
        )


_CONFIG_KEYS = frozenset(
    (
        "source",
        "video_resolutions",
        "snapshot_url",
        "max_streams",
        "address",
        "ffmpeg_path",
        "snapshot_timeout",
        "video_codec",
        "audio_codecs",
        "name",
    )
)
