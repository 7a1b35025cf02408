"""JSON structured logging for the API, the rescan worker and the admin CLI."""
from __future__ import annotations

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from pagestore.config import settings

# Per-request chatter from the HTTP, database and queue clients.
QUIET_LOGGERS: dict[str, int] = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "celery.worker.strategy": logging.WARNING,
    "kombu": logging.WARNING,
    "redis": logging.WARNING,
}


def setup_logging(level: str | None = None) -> None:
    """Send JSON lines to stdout, tagged with the service and environment."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "timestamp",
                "levelname": "level",
                "name": "logger",
            },
            static_fields={"service": "page-store", "env": settings.APP_ENV},
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level or settings.APP_LOG_LEVEL)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
