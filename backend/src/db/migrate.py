"""Apply Alembic migrations programmatically"""

import asyncio
from pathlib import Path

from alembic import command
from alembic.config import Config

from src.config import PROJECT_ROOT
from src.core.logging import log
from src.db.base import sqlite_url


def alembic_config(database_path: str | Path) -> Config:
    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    config.set_main_option("sqlalchemy.url", sqlite_url(database_path, driver=""))
    config.attributes["configure_logger"] = False
    return config


def upgrade_to_head(database_path: str | Path) -> None:
    Path(database_path).parent.mkdir(parents=True, exist_ok=True)
    command.upgrade(alembic_config(database_path), "head")


async def run_migrations(database_path: str | Path) -> None:
    """`alembic upgrade head` against the given database, off the event loop."""
    log.info("Running database migrations...")
    await asyncio.to_thread(upgrade_to_head, database_path)
    log.info("Database schema up to date")
