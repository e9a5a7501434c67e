"""Alembic environment"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, event, pool

from src.config import settings, resolve_path
from src.db.base import Base, sqlite_url, set_sqlite_pragmas
import src.db.models  # noqa: F401

config = context.config

# Skipped when run from the app, which routes logging through loguru
if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def get_url() -> str:
    """Explicit sqlalchemy.url wins, otherwise DATABASE_PATH from settings."""
    url = config.get_main_option("sqlalchemy.url")
    if url:
        return url
    path = resolve_path(settings.DATABASE_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite_url(path, driver="")


def run_migrations_offline() -> None:
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(get_url(), poolclass=pool.NullPool)
    event.listen(connectable, "connect", set_sqlite_pragmas)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
        )

        with context.begin_transaction():
            context.run_migrations()

    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
