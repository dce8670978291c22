# mls_sync/logging_config.py
from __future__ import annotations

import logging

from .config import settings


def configure_logging(level: str | None = None) -> None:
    # Root defaults
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(levelname)s:%(name)s:%(message)s",
    )

    # Quiet the usual offenders
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
