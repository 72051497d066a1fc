from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .runtime_constants import END_OF_STREAM_INPUT

if TYPE_CHECKING:
    from .runtime_types import RelayRoom


def latch_game_end(room: "RelayRoom", value: int) -> bool:
    """Flip the end-of-game latch on the first end-of-stream input.

    Returns True only for the call that flipped it. ``end_frame`` takes the
    frame counter before the sentinel input itself is counted.
    """
    if value != END_OF_STREAM_INPUT or room.game_ended:
        return False
    room.game_ended = True
    room.end_frame = room.frame_counter
    return True


def append_input(room: "RelayRoom", value: int) -> int:
    room.inputs.append(value)
    room.frame_counter += 1
    return value


def append_options(room: "RelayRoom", options: Any) -> list[Any]:
    entry = [room.frame_counter, options]
    room.options.append(entry)
    return entry


def append_chat(room: "RelayRoom", side: int, message: str) -> list[Any]:
    entry = [room.frame_counter, side, message]
    room.chats.append(entry)
    return entry
