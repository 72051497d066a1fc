from __future__ import annotations

import logging

import uvicorn

from pikarelay.config import settings


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
    )
