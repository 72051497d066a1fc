from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from pikarelay.runtime import runtime
from pikarelay.runtime_constants import SERVER_BANNER

router = APIRouter(tags=["rooms"])


@router.get("/rooms")
async def list_rooms() -> dict[str, object]:
    """Rooms that currently have an identified player, for discovery UIs."""
    return {"rooms": await runtime.list_active_rooms()}


@router.get("/", response_class=PlainTextResponse)
async def banner() -> str:
    return SERVER_BANNER
