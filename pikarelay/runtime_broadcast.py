from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

from fastapi.websockets import WebSocketState

if TYPE_CHECKING:
    from fastapi import WebSocket

    from .runtime import RelayRuntime
    from .runtime_types import RelayConnection, RelayRoom


def is_open(websocket: "WebSocket") -> bool:
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


def subscribe(room: "RelayRoom", connection: "RelayConnection") -> bool:
    if connection.peer_id in room.spectators:
        return False
    room.spectators[connection.peer_id] = connection
    return True


def unsubscribe(room: "RelayRoom", connection: "RelayConnection") -> bool:
    return room.spectators.pop(connection.peer_id, None) is not None


def encode_event(event: dict[str, Any]) -> str:
    return json.dumps(event, ensure_ascii=False, separators=(",", ":"))


async def _drain_outbox(runtime: "RelayRuntime", connection: "RelayConnection", outbox: asyncio.Queue[str]) -> None:
    while True:
        payload = await outbox.get()
        try:
            await runtime._send_text_safe(connection, payload)
        finally:
            outbox.task_done()


def enqueue(runtime: "RelayRuntime", connection: "RelayConnection", payload: str) -> None:
    """Queue an encoded frame for ``connection`` without waiting for the socket.

    Each connection has one writer task, so frames leave in enqueue order.
    """
    if connection.outbox is None:
        connection.outbox = asyncio.Queue()
        connection.writer = asyncio.create_task(
            _drain_outbox(runtime, connection, connection.outbox),
            name=f"{connection.room_id}:{connection.peer_id}:outbox",
        )
    connection.outbox.put_nowait(payload)


def release_outbox(connection: "RelayConnection") -> None:
    writer = connection.writer
    if writer is not None and not writer.done():
        writer.cancel()
    connection.writer = None
    connection.outbox = None


async def flush(connection: "RelayConnection") -> None:
    if connection.outbox is not None and connection.writer is not None and not connection.writer.done():
        await connection.outbox.join()


def publish(runtime: "RelayRuntime", room: "RelayRoom", event: dict[str, Any]) -> int:
    """Queue ``event`` once for every open spectator; returns how many were queued."""
    payload = encode_event(event)
    queued = 0
    for spectator in list(room.spectators.values()):
        if not is_open(spectator.websocket):
            runtime._increment_stat("sendSkippedClosed")
            continue
        enqueue(runtime, spectator, payload)
        queued += 1
    return queued
