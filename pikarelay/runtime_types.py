from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from fastapi import WebSocket

from .runtime_constants import DEFAULT_NICKNAMES, DEFAULT_PARTIAL_PUBLIC_IPS


@dataclass(eq=False)
class RelayConnection:
    peer_id: str
    room_id: str
    websocket: WebSocket
    room: RelayRoom
    is_player: bool = False
    is_spectator: bool = False
    outbox: asyncio.Queue[str] | None = None
    writer: asyncio.Task[None] | None = None


@dataclass(eq=False)
class RelayRoom:
    room_id: str
    created_at_ms: int = 0
    player: RelayConnection | None = None
    spectators: dict[str, RelayConnection] = field(default_factory=dict)
    nicknames: list[str] = field(default_factory=lambda: list(DEFAULT_NICKNAMES))
    partial_public_ips: list[str] = field(default_factory=lambda: list(DEFAULT_PARTIAL_PUBLIC_IPS))
    inputs: list[int] = field(default_factory=list)
    # [frame_index, options]
    options: list[list[Any]] = field(default_factory=list)
    # [frame_index, side, message]
    chats: list[list[Any]] = field(default_factory=list)
    frame_counter: int = 0
    game_ended: bool = False
    end_frame: int | None = None
    generation: int = 0
    timers: dict[str, asyncio.Task[None] | None] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def is_abandoned(self) -> bool:
        return self.player is None and not self.spectators
