"""The ffmpeg process that produces the SRTP stream for one session.

The camera only ever starts a worker with a fully resolved
:class:`WorkerParameters` and kills it again. It never waits for the process;
a watcher task collects the exit status and logs it.
"""
import asyncio
import logging
import re
from collections import deque, namedtuple

from hapcam.const import (
    DEFAULT_FFMPEG_PATH,
    MAX_PACKET_SIZE,
    SRTP_SUITE,
    STREAM_SSRC,
    VIDEO_PAYLOAD_TYPE,
)

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 10
STDERR_CHUNK_SIZE = 1024
_LINE_END = re.compile(rb"[\r\n]+")


class WorkerError(Exception):
    """Raised when the streaming process could not be started."""


_WorkerParameters = namedtuple(
    "_WorkerParameters",
    ["source", "width", "height", "fps", "bitrate", "srtp_key", "address", "port"],
)


class WorkerParameters(_WorkerParameters):
    """Everything ffmpeg needs to stream the video leg of one session.

    - source - Input options and locator, e.g. ``-re -i rtsp://cam/stream``
    - width, height, fps - The negotiated resolution
    - bitrate - Maximum bit rate in kbps, as requested by the controller
    - srtp_key - Base64-encoded SRTP master key followed by the master salt
    - address, port - Where to send the stream to
    """

    __slots__ = ()

    @property
    def destination(self):
        return "srtp://{address}:{port}?rtcpport={port}&localrtcpport={port}&pkt_size={size}".format(
            address=self.address, port=self.port, size=MAX_PACKET_SIZE
        )

    def to_args(self):
        """Return the ffmpeg arguments, without the executable."""
        return self.source.split() + [
            "-threads", "0",
            "-vcodec", "libx264",
            "-an",
            "-pix_fmt", "yuv420p",
            "-r", str(self.fps),
            "-f", "rawvideo",
            "-tune", "zerolatency",
            "-vf", "scale={}:{}".format(self.width, self.height),
            "-b:v", "{}k".format(self.bitrate),
            "-bufsize", "{}k".format(self.bitrate),
            "-payload_type", str(VIDEO_PAYLOAD_TYPE),
            "-ssrc", str(STREAM_SSRC),
            "-f", "rtp",
            "-srtp_out_suite", SRTP_SUITE,
            "-srtp_out_params", self.srtp_key,
            self.destination,
        ]


class WorkerHandle:
    """A started worker process, bound to one session."""

    def __init__(self, session_id, process):
        self.session_id = session_id
        self.process = process
        self.killed = False
        self.watcher = None

    @property
    def pid(self):
        return self.process.pid

    @property
    def returncode(self):
        return self.process.returncode

    def __repr__(self):
        return "<WorkerHandle session={} pid={}>".format(self.session_id, self.pid)


class FFmpegWorker:
    """Starts and kills ffmpeg processes.

    :param ffmpeg_path: The ffmpeg executable.
    :type ffmpeg_path: ``str``
    """

    def __init__(self, ffmpeg_path=DEFAULT_FFMPEG_PATH):
        self.ffmpeg_path = ffmpeg_path

    def command(self, params):
        return [self.ffmpeg_path] + params.to_args()

    async def start(self, params, session_id=None):
        """Spawn ffmpeg for ``params``.

        :raises WorkerError: If the process could not be spawned.

        :rtype: ``WorkerHandle``
        """
        cmd = self.command(params)
        logger.debug("[%s] Executing start stream command: %s", session_id, " ".join(cmd))
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as err:
            logger.exception("[%s] Failed to start streaming process", session_id)
            raise WorkerError("Could not start {}: {}".format(self.ffmpeg_path, err)) from err

        handle = WorkerHandle(session_id, process)
        handle.watcher = asyncio.ensure_future(self._watch(handle))
        logger.info("[%s] Started stream process - PID %d", session_id, process.pid)
        return handle

    def terminate(self, handle):
        """Kill the worker. Does not wait for it to exit."""
        if handle.returncode is not None:
            logger.debug("[%s] Stream process already exited", handle.session_id)
            return
        handle.killed = True
        try:
            handle.process.kill()
        except ProcessLookupError:
            logger.debug("[%s] Stream process is gone", handle.session_id)
            return
        logger.info("[%s] Killed stream process - PID %d", handle.session_id, handle.pid)

    @staticmethod
    async def _watch(handle):
        """Wait for the worker to exit and log how it went."""
        tail = await _read_tail(handle.process.stderr)
        returncode = await handle.process.wait()
        if handle.killed or returncode == 0:
            logger.debug(
                "[%s] Stream process exited with code %s", handle.session_id, returncode
            )
            return

        logger.warning(
            "[%s] Stream process exited unexpectedly with code %s: %s",
            handle.session_id,
            returncode,
            b"\n".join(tail).decode("utf-8", "replace"),
        )


async def _read_tail(stream):
    """Read ``stream`` to the end and return its last lines.

    ffmpeg ends its progress lines with a carriage return, so both line
    endings split. Over long lines only the end is kept.
    """
    tail = deque(maxlen=STDERR_TAIL_LINES)
    if stream is None:
        return tail
    partial = b""
    while True:
        chunk = await stream.read(STDERR_CHUNK_SIZE)
        if not chunk:
            break
        lines = _LINE_END.split(partial + chunk)
        partial = lines.pop()[-STDERR_CHUNK_SIZE:]
        tail.extend(line for line in lines if line)
    if partial:
        tail.append(partial)
    return tail
