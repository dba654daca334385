"""Test fixtures and mocks."""

import asyncio
from unittest.mock import patch

import pytest


@pytest.fixture(autouse=True)
def mock_local_address():
    with patch("hapcam.util.get_local_address", return_value="127.0.0.1"):
        yield


@pytest.fixture
def worker():
    yield FakeWorker()


class FakeHandle:
    def __init__(self, session_id, params):
        self.session_id = session_id
        self.params = params
        self.pid = 42
        self.returncode = None
        self.watcher = None


class FakeWorker:
    """Records started and terminated streams instead of running ffmpeg."""

    def __init__(self):
        self.started = []
        self.terminated = []

    def command(self, params):
        return ["ffmpeg"] + params.to_args()

    async def start(self, params, session_id=None):
        await asyncio.sleep(0)
        handle = FakeHandle(session_id, params)
        handle.watcher = asyncio.get_event_loop().create_future()
        self.started.append(handle)
        return handle

    def terminate(self, handle):
        self.terminated.append(handle)
