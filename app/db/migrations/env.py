# app/db/migrations/env.py
from __future__ import annotations

from logging.config import fileConfig
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import Connection
from alembic import context

config = context.config

# Логування alembic.ini (якщо є)
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Метадані: імпорт моделей реєструє всі таблиці в Base.metadata
from app.db import models  # noqa: E402,F401
from app.db.base import Base  # noqa: E402
target_metadata = Base.metadata

from app.core.config import settings  # noqa: E402

# Застосунок працює через async-драйвери, alembic через sync
SYNC_DRIVERS = {
    "postgresql+asyncpg://": "postgresql+psycopg2://",
    "sqlite+aiosqlite://": "sqlite://",
}


def to_sync_url(async_url: str) -> str:
    for prefix, sync_prefix in SYNC_DRIVERS.items():
        if async_url.startswith(prefix):
            return sync_prefix + async_url[len(prefix):]
    return async_url


SYNC_URL = to_sync_url(config.get_main_option("sqlalchemy.url") or settings.database_url)


def run_migrations_offline() -> None:
    """Offline режим: генеруємо SQL без реального конекту."""
    context.configure(
        url=SYNC_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        # sqlite не вміє ALTER COLUMN
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Online режим: реальний конект синхронним рушієм."""
    connectable = create_engine(SYNC_URL, poolclass=pool.NullPool)
    with connectable.connect() as connection:
        do_run_migrations(connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
