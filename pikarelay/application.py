from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pikarelay.api.router import api_router
from pikarelay.config import settings
from pikarelay.runtime import runtime

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="Pikachu Volleyball Relay", version="1.0.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info(
            "Relay server ready (grace=%sms, legacy end signal=%s)",
            runtime.room_grace_ms,
            runtime.accept_unidentified_end_signal,
        )

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await runtime.shutdown()

    return app


app = create_app()
