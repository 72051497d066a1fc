from __future__ import annotations

from typing import Any

from .runtime_constants import REPLAY_PACK_VERSION
from .runtime_types import RelayRoom


def build_replay_pack(room: RelayRoom) -> dict[str, Any]:
    return {
        "version": REPLAY_PACK_VERSION,
        "roomID": room.room_id,
        "nicknames": list(room.nicknames),
        "partialPublicIPs": list(room.partial_public_ips),
        "chats": [list(entry) for entry in room.chats],
        "options": [list(entry) for entry in room.options],
        "inputs": list(room.inputs),
    }


def serialize_snapshot(room: RelayRoom) -> dict[str, Any]:
    return {"type": "replay_pack", "pack": build_replay_pack(room)}


def build_room_summary(room: RelayRoom) -> dict[str, Any]:
    return {
        "roomId": room.room_id,
        "hasPlayer": room.player is not None,
        "spectators": len(room.spectators),
        "frames": room.frame_counter,
        "gameEnded": room.game_ended,
        "endFrame": room.end_frame,
        "createdAt": room.created_at_ms,
    }


def build_discovery_entry(room: RelayRoom) -> dict[str, Any]:
    return {
        "id": room.room_id,
        "nicknames": list(room.nicknames),
        "ips": list(room.partial_public_ips),
    }
