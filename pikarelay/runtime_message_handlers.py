from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .runtime_broadcast import encode_event, enqueue, publish, subscribe
from .runtime_constants import REAPER_TIMER_KEY
from .runtime_event_log import append_chat, append_input, append_options, latch_game_end
from .runtime_snapshot import serialize_snapshot
from .runtime_utils import normalize_pair
from .schemas.messages import (
    ChatMessage,
    IdentifyPlayerMessage,
    InputsMessage,
    OptionsMessage,
    WatchMessage,
)

if TYPE_CHECKING:
    from .runtime import RelayRuntime
    from .runtime_types import RelayConnection, RelayRoom
    from .schemas.messages import RelayMessage

logger = logging.getLogger(__name__)


def is_identified_player(connection: "RelayConnection") -> bool:
    return connection.is_player


async def handle_message(
    runtime: "RelayRuntime",
    room: "RelayRoom",
    connection: "RelayConnection",
    message: "RelayMessage",
) -> None:
    if isinstance(message, IdentifyPlayerMessage):
        previous = room.player
        room.player = connection
        connection.is_player = True
        room.generation += 1
        runtime._cancel_timer(room, REAPER_TIMER_KEY)
        if message.nicknames is not None:
            room.nicknames = normalize_pair(message.nicknames)
        if message.partialPublicIPs is not None:
            room.partial_public_ips = normalize_pair(message.partialPublicIPs)
        runtime._log_ws_event(
            "player_identified",
            roomId=room.room_id,
            peerId=connection.peer_id,
            replaced=previous is not None and previous is not connection,
            frames=room.frame_counter,
        )
        return

    if isinstance(message, WatchMessage):
        if subscribe(room, connection):
            room.generation += 1
        connection.is_spectator = True
        runtime._log_ws_event(
            "spectator_joined",
            roomId=room.room_id,
            peerId=connection.peer_id,
            spectators=len(room.spectators),
            frames=room.frame_counter,
        )
        # Queued inside the same locked step that subscribed the connection,
        # ahead of any live event for this spectator.
        enqueue(runtime, connection, encode_event(serialize_snapshot(room)))
        return

    if isinstance(message, InputsMessage):
        authorized = is_identified_player(connection)
        if authorized or runtime.accept_unidentified_end_signal:
            if latch_game_end(room, message.value):
                runtime._log_ws_event(
                    "game_end_latched",
                    roomId=room.room_id,
                    peerId=connection.peer_id,
                    endFrame=room.end_frame,
                    fromPlayer=authorized,
                )
        if not authorized:
            _drop_unauthorized(runtime, room, connection, message.type)
            return
        value = append_input(room, message.value)
        publish(runtime, room, {"type": "live_input", "value": value})
        return

    if isinstance(message, OptionsMessage):
        if not is_identified_player(connection):
            _drop_unauthorized(runtime, room, connection, message.type)
            return
        entry = append_options(room, message.options)
        logger.info("[%s] options at frame %s", room.room_id, entry[0])
        publish(runtime, room, {"type": "live_options", "value": entry})
        return

    if isinstance(message, ChatMessage):
        if not is_identified_player(connection):
            _drop_unauthorized(runtime, room, connection, message.type)
            return
        entry = append_chat(room, message.whichPlayerSide, message.chatMessage)
        logger.info("[%s] chat at frame %s from side %s", room.room_id, entry[0], entry[1])
        publish(runtime, room, {"type": "live_chat", "value": entry})
        return


def _drop_unauthorized(
    runtime: "RelayRuntime",
    room: "RelayRoom",
    connection: "RelayConnection",
    message_type: str,
) -> None:
    runtime._increment_stat("unauthorizedDropped")
    logger.debug(
        "[%s] dropped %s from non-player peer %s",
        room.room_id,
        message_type,
        connection.peer_id,
    )
