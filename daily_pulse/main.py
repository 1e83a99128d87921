"""Entrypoint for running Daily Pulse via `python -m daily_pulse.main`."""

from __future__ import annotations

import logging
import os
import sqlite3

import uvicorn

from .api import create_app
from .config import load_settings
from .exceptions import ConfigError

logger = logging.getLogger("daily_pulse")


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler()],
    )


def run() -> None:
    configure_logging()
    settings = load_settings(os.getenv("DAILY_PULSE_ENV"))
    try:
        app = create_app(settings)
    except (ConfigError, sqlite3.Error):
        # Without storage or a team config there is nothing to schedule.
        logger.exception("Daily Pulse failed to start")
        raise SystemExit(1)

    logger.info("Daily Pulse starting on port %s", os.getenv("PORT", "8000"))
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":  # pragma: no cover
    run()
