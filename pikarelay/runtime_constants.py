from __future__ import annotations

from .config import settings

ROOM_GRACE_MS = settings.room_grace_ms
REPLAY_PACK_VERSION = "p2p-online-spectator"
END_OF_STREAM_INPUT = -1
MISSING_ROOM_CLOSE_CODE = 1008
MISSING_ROOM_CLOSE_REASON = "Room ID required"
DEFAULT_NICKNAMES: tuple[str, str] = ("", "")
DEFAULT_PARTIAL_PUBLIC_IPS: tuple[str, str] = ("*.*.*.*", "*.*.*.*")
REAPER_TIMER_KEY = "reaper"
SERVER_BANNER = "Pikachu Volleyball Replay Server (Input-based) is running.\n"

ROLE_CLAIM_MESSAGE_TYPES = frozenset({"identify_player", "watch"})
EVENT_MESSAGE_TYPES = frozenset({"inputs", "options", "chat"})
KNOWN_MESSAGE_TYPES = ROLE_CLAIM_MESSAGE_TYPES | EVENT_MESSAGE_TYPES
