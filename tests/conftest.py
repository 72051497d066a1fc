import asyncio
import json
import time

import pytest
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState

from pikarelay.application import app
from pikarelay.runtime import RelayRuntime, runtime
from pikarelay.runtime_broadcast import flush
from pikarelay.runtime_types import RelayConnection
from pikarelay.runtime_utils import random_id


class FakeWebSocket:
    """Records outbound frames; enough of a WebSocket for the runtime's send paths."""

    def __init__(self, fail_sends=False):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.fail_sends = fail_sends
        self.sent = []

    async def send_text(self, payload):
        if self.fail_sends:
            raise RuntimeError("socket gone")
        self.sent.append(json.loads(payload))

    def drop(self):
        self.client_state = WebSocketState.DISCONNECTED

    def of_type(self, message_type):
        return [message for message in self.sent if message.get("type") == message_type]


class RelayHarness:
    def __init__(self, relay_runtime):
        self.runtime = relay_runtime
        self.connections = []

    async def connect(self, room_id, websocket=None):
        room = await self.runtime.get_or_create_room(room_id)
        connection = RelayConnection(
            peer_id=random_id(),
            room_id=room_id,
            websocket=websocket or FakeWebSocket(),
            room=room,
        )
        self.connections.append(connection)
        return connection

    async def settle(self):
        for connection in self.connections:
            await flush(connection)

    async def send(self, connection, data):
        raw = data if isinstance(data, str) else json.dumps(data)
        message = self.runtime._decode_message(connection.room_id, raw)
        if message is not None:
            await self.runtime._dispatch(connection, message)
        await self.settle()

    async def player(self, room_id, **identify):
        connection = await self.connect(room_id)
        await self.send(connection, {"type": "identify_player", **identify})
        return connection

    async def spectator(self, room_id):
        connection = await self.connect(room_id)
        await self.send(connection, {"type": "watch"})
        return connection

    async def close(self, connection):
        await self.runtime._cleanup_connection(connection, reason="test")


@pytest.fixture()
def make_harness():
    def factory(**kwargs):
        kwargs.setdefault("room_grace_ms", 50)
        kwargs.setdefault("accept_unidentified_end_signal", False)
        return RelayHarness(RelayRuntime(**kwargs))

    return factory


@pytest.fixture()
def harness(make_harness):
    return make_harness()


@pytest.fixture()
def client():
    saved_grace = runtime.room_grace_ms
    runtime.rooms.clear()
    runtime.rooms_lock = asyncio.Lock()
    runtime.room_grace_ms = 50
    with TestClient(app) as test_client:
        yield test_client
    runtime.rooms.clear()
    runtime.room_grace_ms = saved_grace


def wait_until(predicate, timeout=3.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture()
def until():
    return wait_until
