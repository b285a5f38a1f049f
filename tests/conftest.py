import json
import os
import tempfile
import time

import pytest
from fastapi.websockets import WebSocketState

# Keep the module-level app from creating ./uploads in the checkout.
os.environ.setdefault("UPLOAD_DIR", os.path.join(tempfile.mkdtemp(prefix="roomrelay-"), "uploads"))

from connection import Connection  # noqa: E402
from room_directory import RoomDirectory  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeWebSocket:
    """Just enough of starlette's WebSocket for Connection."""

    def __init__(self, fail_send: bool = False, close_gate=None):
        self.sent = []
        self.close_code = None
        self.fail_send = fail_send
        # an asyncio.Event that close() waits on, like a peer slow to answer the close frame
        self.close_gate = close_gate
        self.application_state = WebSocketState.CONNECTED
        self.client_state = WebSocketState.CONNECTED

    async def send_text(self, text: str):
        if self.fail_send:
            raise RuntimeError("socket buffer full")
        self.sent.append(text)

    async def close(self, code: int = 1000, reason=None):
        self.close_code = code
        if self.close_gate is not None:
            await self.close_gate.wait()
        self.application_state = WebSocketState.DISCONNECTED

    @property
    def messages(self):
        return [json.loads(text) for text in self.sent]


def wait_until(predicate, timeout: float = 2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(0.01)
    raise AssertionError("condition not met in time")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def directory():
    return RoomDirectory()


@pytest.fixture
def make_connection(directory, clock):
    def factory(**kwargs):
        connection = Connection(FakeWebSocket(**kwargs), clock=clock)
        directory.register(connection)
        return connection

    return factory
