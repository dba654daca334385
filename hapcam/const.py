"""This module contains constants used by other modules."""
MAJOR_VERSION = 0
MINOR_VERSION = 3
PATCH_VERSION = 0
__short_version__ = "{}.{}".format(MAJOR_VERSION, MINOR_VERSION)
__version__ = "{}.{}".format(__short_version__, PATCH_VERSION)
REQUIRED_PYTHON_VER = (3, 7)


# ### Misc ###
DEFAULT_MAX_STREAMS = 2
DEFAULT_FFMPEG_PATH = "ffmpeg"
DEFAULT_SNAPSHOT_TIMEOUT = 10


# ### RTP ###
STREAM_SSRC = 1  # Advertised for every leg of every session
VIDEO_PAYLOAD_TYPE = 99
MAX_PACKET_SIZE = 1378
SRTP_SUITE = "AES_CM_128_HMAC_SHA1_80"


# ### Address types ###
ADDRESS_TYPE_V4 = "v4"
ADDRESS_TYPE_V6 = "v6"


# ### Stream request types ###
REQUEST_START = "start"
REQUEST_STOP = "stop"
REQUEST_RECONFIGURE = "reconfigure"
