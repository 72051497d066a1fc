from __future__ import annotations

from fastapi import APIRouter, WebSocket

from pikarelay.runtime import runtime

router = APIRouter(tags=["websocket"])


@router.websocket("/{room_path:path}")
async def websocket_relay(ws: WebSocket, room_path: str) -> None:
    await runtime.handle_websocket(ws)
