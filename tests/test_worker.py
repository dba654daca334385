"""Tests for hapcam.worker."""
import asyncio
import logging
from unittest.mock import patch

import pytest

from hapcam.worker import (
    STDERR_CHUNK_SIZE,
    FFmpegWorker,
    WorkerError,
    WorkerParameters,
    _read_tail,
)

from . import AsyncMock

PARAMS = WorkerParameters(
    source="-re -i rtsp://10.0.0.2/stream",
    width=1920,
    height=1080,
    fps=30,
    bitrate=300,
    srtp_key="2JZgpMkwWUH8ahUtzp8VThtBmbk26hCPJqeWpYDR",
    address="10.0.0.5",
    port=5000,
)


class MockProcess:
    """Stands in for asyncio.subprocess.Process."""

    def __init__(self, stderr=b""):
        self.pid = 42
        self.returncode = None
        self.killed = False
        self.stderr = asyncio.StreamReader()
        self.stderr.feed_data(stderr)
        self._exited = asyncio.Event()

    def kill(self):
        self.killed = True
        self.exit(-9)

    def exit(self, returncode):
        self.returncode = returncode
        self.stderr.feed_eof()
        self._exited.set()

    async def wait(self):
        await self._exited.wait()
        return self.returncode


def test_destination():
    assert PARAMS.destination == (
        "srtp://10.0.0.5:5000?rtcpport=5000&localrtcpport=5000&pkt_size=1378"
    )


def test_to_args():
    """Test the ffmpeg arguments for a stream."""
    assert PARAMS.to_args() == [
        "-re", "-i", "rtsp://10.0.0.2/stream",
        "-threads", "0",
        "-vcodec", "libx264",
        "-an",
        "-pix_fmt", "yuv420p",
        "-r", "30",
        "-f", "rawvideo",
        "-tune", "zerolatency",
        "-vf", "scale=1920:1080",
        "-b:v", "300k",
        "-bufsize", "300k",
        "-payload_type", "99",
        "-ssrc", "1",
        "-f", "rtp",
        "-srtp_out_suite", "AES_CM_128_HMAC_SHA1_80",
        "-srtp_out_params", "2JZgpMkwWUH8ahUtzp8VThtBmbk26hCPJqeWpYDR",
        "srtp://10.0.0.5:5000?rtcpport=5000&localrtcpport=5000&pkt_size=1378",
    ]


def test_degenerate_resolution_is_passed_verbatim():
    assert "scale=0:0" in PARAMS._replace(width=0, height=0).to_args()


def test_command_uses_ffmpeg_path():
    worker = FFmpegWorker("/usr/local/bin/ffmpeg")
    assert worker.command(PARAMS)[0] == "/usr/local/bin/ffmpeg"
    assert worker.command(PARAMS)[1:] == PARAMS.to_args()


@pytest.mark.asyncio
async def test_start_and_terminate():
    """Test a started process is killed and not waited for."""
    process = MockProcess()
    exec_mock = AsyncMock(return_value=process)
    worker = FFmpegWorker()

    with patch("asyncio.create_subprocess_exec", new=exec_mock):
        handle = await worker.start(PARAMS, session_id="session")

    assert exec_mock.call_args[0] == tuple(["ffmpeg"] + PARAMS.to_args())
    assert handle.pid == 42
    assert handle.session_id == "session"
    assert handle.returncode is None

    worker.terminate(handle)
    assert process.killed
    assert handle.killed

    await handle.watcher
    assert handle.returncode == -9


@pytest.mark.asyncio
async def test_terminate_exited_process():
    """Test an exited process is not killed again."""
    process = MockProcess()
    worker = FFmpegWorker()
    with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)):
        handle = await worker.start(PARAMS)

    process.exit(0)
    await handle.watcher
    worker.terminate(handle)
    assert not process.killed


@pytest.mark.asyncio
async def test_start_failure():
    """Test a spawn failure is raised as WorkerError."""
    worker = FFmpegWorker("/does/not/exist")
    exec_mock = AsyncMock(side_effect=FileNotFoundError("/does/not/exist"))
    with patch("asyncio.create_subprocess_exec", new=exec_mock), pytest.raises(
        WorkerError
    ):
        await worker.start(PARAMS)


@pytest.mark.asyncio
async def test_unexpected_exit_is_logged(caplog):
    """Test an abnormal exit is logged with the end of stderr."""
    process = MockProcess(stderr=b"Input #0\nConnection refused")
    worker = FFmpegWorker()
    with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)):
        handle = await worker.start(PARAMS, session_id="session")

    with caplog.at_level(logging.WARNING, logger="hapcam.worker"):
        process.exit(1)
        await handle.watcher

    assert "exited unexpectedly with code 1" in caplog.text
    assert "Connection refused" in caplog.text


@pytest.mark.asyncio
async def test_killed_exit_is_not_a_warning(caplog):
    process = MockProcess(stderr=b"Exiting normally, received signal 9.")
    worker = FFmpegWorker()
    with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)):
        handle = await worker.start(PARAMS)

    with caplog.at_level(logging.WARNING, logger="hapcam.worker"):
        worker.terminate(handle)
        await handle.watcher

    assert "unexpectedly" not in caplog.text


@pytest.mark.asyncio
async def test_only_stderr_tail_is_kept(caplog):
    """Test a long running stream logs only the last lines of its output."""
    process = MockProcess()
    worker = FFmpegWorker()
    with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)):
        handle = await worker.start(PARAMS, session_id="session")

    for idx in range(500):
        process.stderr.feed_data("frame={} fps=30\r".format(idx).encode())
    process.stderr.feed_data(b"Connection reset by peer\n")

    with caplog.at_level(logging.WARNING, logger="hapcam.worker"):
        process.exit(1)
        await handle.watcher

    assert "Connection reset by peer" in caplog.text
    assert "frame=499 " in caplog.text
    assert "frame=491 " in caplog.text
    assert "frame=490 " not in caplog.text
    assert "frame=0 " not in caplog.text


@pytest.mark.asyncio
async def test_read_tail_keeps_end_of_long_line():
    stream = asyncio.StreamReader()
    stream.feed_data(b"x" * (STDERR_CHUNK_SIZE * 3) + b"end")
    stream.feed_eof()

    tail = await _read_tail(stream)

    assert len(tail) == 1
    assert tail[0].endswith(b"end")
    assert len(tail[0]) <= STDERR_CHUNK_SIZE + 3
