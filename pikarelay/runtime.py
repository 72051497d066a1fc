from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from .config import settings
from .runtime_broadcast import encode_event, release_outbox, unsubscribe
from .runtime_constants import (
    KNOWN_MESSAGE_TYPES,
    MISSING_ROOM_CLOSE_CODE,
    MISSING_ROOM_CLOSE_REASON,
    REAPER_TIMER_KEY,
    ROLE_CLAIM_MESSAGE_TYPES,
    ROOM_GRACE_MS,
)
from .runtime_message_handlers import handle_message as handle_room_message
from .runtime_snapshot import build_discovery_entry, build_room_summary
from .runtime_types import RelayConnection, RelayRoom
from .runtime_utils import now_ms, random_id, room_id_from_path
from .schemas.messages import RelayMessage, parse_relay_message

logger = logging.getLogger(__name__)

RoomCallback = Callable[[RelayRoom], Awaitable[None]]


class RelayRuntime:
    def __init__(
        self,
        room_grace_ms: int | None = None,
        accept_unidentified_end_signal: bool | None = None,
    ) -> None:
        self.rooms: dict[str, RelayRoom] = {}
        self.rooms_lock = asyncio.Lock()
        self.room_grace_ms = max(0, int(ROOM_GRACE_MS if room_grace_ms is None else room_grace_ms))
        self.accept_unidentified_end_signal = (
            settings.accept_unidentified_end_signal
            if accept_unidentified_end_signal is None
            else bool(accept_unidentified_end_signal)
        )
        self._ws_stats: dict[str, int] = {
            "connectAttempts": 0,
            "connectSuccess": 0,
            "connectRejected": 0,
            "rejectMissingRoomId": 0,
            "disconnects": 0,
            "messageReceived": 0,
            "decodeErrors": 0,
            "unknownTypeIgnored": 0,
            "unauthorizedDropped": 0,
            "handlerErrors": 0,
            "sendFailures": 0,
            "sendSkippedClosed": 0,
            "roomsCreated": 0,
            "roomsDeleted": 0,
            "activeConnections": 0,
            "peakConnections": 0,
        }

    @property
    def active_rooms_count(self) -> int:
        return len(self.rooms)

    def _increment_stat(self, key: str, amount: int = 1) -> None:
        self._ws_stats[key] = int(self._ws_stats.get(key, 0)) + amount

    def _track_connection(self, delta: int) -> None:
        self._increment_stat("connectSuccess" if delta > 0 else "disconnects")
        active = max(0, self._ws_stats["activeConnections"] + delta)
        self._ws_stats["activeConnections"] = active
        self._ws_stats["peakConnections"] = max(self._ws_stats["peakConnections"], active)

    def _log_ws_event(self, event: str, level: int = logging.INFO, **fields: object) -> None:
        if not logger.isEnabledFor(level):
            return
        room_id = fields.pop("roomId", "-")
        logger.log(level, "[%s] ws.%s %s", room_id, event, encode_event(fields))

    async def get_ws_stats(self) -> dict[str, Any]:
        async with self.rooms_lock:
            room_summaries = [build_room_summary(room) for room in self.rooms.values()]
            active_rooms = len(room_summaries)

        room_summaries.sort(key=lambda item: int(item.get("spectators", 0)), reverse=True)

        return {
            "generatedAt": now_ms(),
            "activeRooms": active_rooms,
            "stats": dict(self._ws_stats),
            "rooms": room_summaries[:50],
        }

    async def list_active_rooms(self) -> list[dict[str, Any]]:
        async with self.rooms_lock:
            return [
                build_discovery_entry(room)
                for room in self.rooms.values()
                if room.player is not None
            ]

    async def get_or_create_room(self, room_id: str) -> RelayRoom:
        async with self.rooms_lock:
            existing = self.rooms.get(room_id)
            if existing is not None:
                return existing

            room = RelayRoom(room_id=room_id, created_at_ms=now_ms())
            self.rooms[room_id] = room
            self._increment_stat("roomsCreated")
        self._log_ws_event("room_created", roomId=room_id)
        return room

    def is_registered(self, room: RelayRoom) -> bool:
        return self.rooms.get(room.room_id) is room

    async def delete_room_if_abandoned(
        self,
        room_id: str,
        expected: RelayRoom | None = None,
        reason: str = "empty",
    ) -> bool:
        """Remove a room only if, right now, it has neither a player nor spectators."""
        async with self.rooms_lock:
            room = self.rooms.get(room_id)
            if room is None:
                return False
            if expected is not None and room is not expected:
                return False
            if not room.is_abandoned:
                return False
            self.rooms.pop(room_id, None)
            self._increment_stat("roomsDeleted")

        self._clear_timers(room)
        self._log_ws_event(
            "room_deleted",
            roomId=room_id,
            reason=reason,
            frames=room.frame_counter,
            gameEnded=room.game_ended,
        )
        return True

    async def shutdown(self) -> None:
        async with self.rooms_lock:
            rooms = list(self.rooms.values())
            self.rooms.clear()

        for room in rooms:
            self._clear_timers(room)
            for spectator in room.spectators.values():
                release_outbox(spectator)

        self._ws_stats["activeConnections"] = 0

    async def handle_websocket(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._increment_stat("connectAttempts")

        room_id = room_id_from_path(websocket.url.path)
        if not room_id:
            self._increment_stat("connectRejected")
            self._increment_stat("rejectMissingRoomId")
            await websocket.close(code=MISSING_ROOM_CLOSE_CODE, reason=MISSING_ROOM_CLOSE_REASON)
            self._log_ws_event(
                "connect_rejected",
                level=logging.WARNING,
                path=websocket.url.path,
                code="ROOM_ID_REQUIRED",
            )
            return

        room = await self.get_or_create_room(room_id)
        connection = RelayConnection(
            peer_id=random_id(),
            room_id=room_id,
            websocket=websocket,
            room=room,
        )
        self._track_connection(1)
        self._log_ws_event("connect_success", roomId=room_id, peerId=connection.peer_id)

        disconnect_code: int | None = None
        disconnect_reason = "unknown"

        try:
            while True:
                raw = await self._receive_raw(websocket)
                self._increment_stat("messageReceived")
                message = self._decode_message(room_id, raw)
                if message is None:
                    continue
                try:
                    await self._dispatch(connection, message)
                except Exception:
                    self._increment_stat("handlerErrors")
                    logger.exception(
                        "[%s] Failed to process %s message from peer %s",
                        room_id,
                        message.type,
                        connection.peer_id,
                    )
        except WebSocketDisconnect as exc:
            disconnect_code = exc.code
            disconnect_reason = "websocket_disconnect"
        except Exception:
            disconnect_reason = "server_error"
            logger.exception("Unexpected websocket error for room %s peer %s", room_id, connection.peer_id)
        finally:
            await self._cleanup_connection(
                connection,
                reason=disconnect_reason,
                close_code=disconnect_code,
            )

    async def _receive_raw(self, websocket: WebSocket) -> str | bytes:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(
                code=int(message.get("code") or 1000),
                reason=message.get("reason"),
            )
        text = message.get("text")
        if text is not None:
            return text
        return message.get("bytes") or b""

    def _decode_message(self, room_id: str, raw: str | bytes) -> RelayMessage | None:
        try:
            data = json.loads(raw)
        except (ValueError, RecursionError):
            self._increment_stat("decodeErrors")
            logger.warning("[%s] Failed to parse JSON message: %r", room_id, raw[:200])
            return None

        if not isinstance(data, dict):
            self._increment_stat("decodeErrors")
            logger.warning("[%s] Ignoring non-object message: %r", room_id, raw[:200])
            return None

        message_type = data.get("type")
        if not isinstance(message_type, str) or message_type not in KNOWN_MESSAGE_TYPES:
            self._increment_stat("unknownTypeIgnored")
            return None

        try:
            return parse_relay_message(data)
        except ValidationError as exc:
            self._increment_stat("decodeErrors")
            logger.warning(
                "[%s] Malformed %s message: %s",
                room_id,
                message_type,
                exc.errors(include_url=False),
            )
            return None

    async def _dispatch(self, connection: RelayConnection, message: RelayMessage) -> None:
        while True:
            room = connection.room
            async with room.lock:
                if message.type in ROLE_CLAIM_MESSAGE_TYPES and not self.is_registered(room):
                    # The bound room was reaped while this connection stayed unclassified.
                    connection.room = await self.get_or_create_room(connection.room_id)
                    continue
                await self._handle_message(room, connection, message)
                return

    async def _handle_message(
        self,
        room: RelayRoom,
        connection: RelayConnection,
        message: RelayMessage,
    ) -> None:
        await handle_room_message(self, room, connection, message)

    async def _cleanup_connection(
        self,
        connection: RelayConnection,
        reason: str = "unknown",
        close_code: int | None = None,
    ) -> None:
        self._track_connection(-1)
        room = connection.room

        async with room.lock:
            release_outbox(connection)
            was_spectator = unsubscribe(room, connection)
            held_player_slot = room.player is connection
            if held_player_slot:
                room.player = None
            if was_spectator or held_player_slot:
                room.generation += 1

            self._log_ws_event(
                "disconnect",
                roomId=room.room_id,
                peerId=connection.peer_id,
                wasPlayer=connection.is_player,
                heldPlayerSlot=held_player_slot,
                wasSpectator=was_spectator,
                reason=reason,
                closeCode=close_code,
            )

            if held_player_slot:
                self._schedule_room_reaper(room)
                return

            # Spectators, unclassified and displaced players leave without a grace period.
            await self.delete_room_if_abandoned(room.room_id, expected=room, reason="last_member_left")

    def _schedule_room_reaper(self, room: RelayRoom) -> None:
        generation = room.generation

        async def reap(target: RelayRoom) -> None:
            await self._reap_room(target, generation)

        self._schedule_timer(room, REAPER_TIMER_KEY, self.room_grace_ms, reap)
        self._log_ws_event(
            "reaper_scheduled",
            roomId=room.room_id,
            graceMs=self.room_grace_ms,
            generation=generation,
        )

    async def _reap_room(self, room: RelayRoom, generation: int) -> None:
        if room.generation != generation:
            self._log_ws_event(
                "reaper_skipped",
                level=logging.DEBUG,
                roomId=room.room_id,
                scheduledGeneration=generation,
                generation=room.generation,
            )
            return
        await self.delete_room_if_abandoned(room.room_id, expected=room, reason="grace_expired")

    def _cancel_timer(self, room: RelayRoom, key: str) -> None:
        task = room.timers.get(key)
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
        room.timers[key] = None

    def _clear_timers(self, room: RelayRoom) -> None:
        for key in list(room.timers):
            self._cancel_timer(room, key)

    def _schedule_timer(
        self,
        room: RelayRoom,
        key: str,
        delay_ms: int,
        callback: RoomCallback,
    ) -> None:
        self._cancel_timer(room, key)
        delay_s = max(0, delay_ms or 0) / 1000

        async def runner() -> None:
            try:
                await asyncio.sleep(delay_s)
            except asyncio.CancelledError:
                return
            async with room.lock:
                await callback(room)

        room.timers[key] = asyncio.create_task(runner(), name=f"{room.room_id}:{key}")

    async def _send_text_safe(self, connection: RelayConnection, payload: str) -> bool:
        try:
            await connection.websocket.send_text(payload)
        except Exception as exc:
            self._increment_stat("sendFailures")
            logger.debug(
                "[%s] send to peer %s failed: %r (client=%s app=%s)",
                connection.room_id,
                connection.peer_id,
                exc,
                getattr(connection.websocket, "client_state", None),
                getattr(connection.websocket, "application_state", None),
            )
            return False
        return True


runtime = RelayRuntime()
