from __future__ import annotations

import logging

from pikarelay.application import app
from pikarelay.config import settings

logging.basicConfig(level=settings.log_level)

__all__ = ["app"]
