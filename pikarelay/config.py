from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


class Settings:
    def __init__(self) -> None:
        self.host = os.getenv("HOST", "0.0.0.0").strip() or "0.0.0.0"
        self.port = int(os.getenv("PORT", "8080"))
        self.log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
        self.room_grace_ms = max(0, int(os.getenv("RELAY_ROOM_GRACE_MS", "60000")))
        # Legacy ordering: an unidentified "-1" input may still latch the end of the game.
        self.accept_unidentified_end_signal = _env_flag("RELAY_ACCEPT_UNIDENTIFIED_END_SIGNAL")
        raw_origins = os.getenv("RELAY_CORS_ORIGINS", "*")
        self.cors_origins = [part.strip() for part in raw_origins.split(",") if part.strip()] or ["*"]


settings = Settings()
