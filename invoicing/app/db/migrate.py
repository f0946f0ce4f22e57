"""Programmatic Alembic upgrades for the invoicing schema."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy.ext.asyncio import AsyncEngine

from config import get_settings

logger = logging.getLogger(__name__)

SCRIPT_LOCATION = Path(__file__).resolve().parents[2] / "alembic"


def build_config(dsn: str, engine: AsyncEngine | None = None) -> Config:
    """Return an Alembic :class:`Config` for ``dsn``.

    When ``engine`` is given the environment runs on it; otherwise the
    environment builds and disposes its own engine.
    """

    cfg = Config()
    cfg.set_main_option("script_location", str(SCRIPT_LOCATION))
    cfg.set_main_option("sqlalchemy.url", dsn)
    if engine is not None:
        cfg.attributes["engine"] = engine
    return cfg


async def run_migrations(dsn: str | None = None, revision: str = "head") -> None:
    """Upgrade the database at ``dsn`` (default: configured DSN) to ``revision``."""

    dsn = dsn or get_settings().database_url
    cfg = build_config(dsn)
    try:
        # env.py drives its own event loop, so it runs in a worker thread.
        await asyncio.to_thread(command.upgrade, cfg, revision)
    except Exception as exc:
        logger.error("Failed to run migrations: %s", exc)
        raise
    logger.info("database upgraded to %s", revision)


__all__ = ["build_config", "run_migrations"]
