from __future__ import annotations

import logging
import os
import sys
from logging.config import fileConfig
from pathlib import Path
from typing import Any

from alembic import context
from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))
load_dotenv(ROOT_DIR / ".env")

from golfdraw.db.engine import DEFAULT_SQLITE_URL, make_engine  # noqa: E402
from golfdraw.db.utils import resolve_sqlite_url  # noqa: E402
from golfdraw.models import Base  # noqa: E402 - import registers every draw table

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")
target_metadata = Base.metadata


def _database_url() -> str:
    """Resolve the target database.

    ``alembic -x db_url=...`` wins over ``DB_URL`` which wins over the
    project's default SQLite file.
    """
    override = context.get_x_argument(as_dictionary=True).get("db_url")
    url = override or os.getenv("DB_URL")
    if url:
        return resolve_sqlite_url(url, ROOT_DIR)
    return DEFAULT_SQLITE_URL


DATABASE_URL = _database_url()
# ConfigParser interpolation treats % specially
config.set_main_option("sqlalchemy.url", DATABASE_URL.replace("%", "%%"))


def _configure_kwargs(dialect_name: str) -> dict[str, Any]:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "compare_server_default": True,
        # SQLite cannot ALTER constraints in place (ledger CHECKs, tier ranges)
        "render_as_batch": dialect_name == "sqlite",
    }


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting."""
    dialect_name = DATABASE_URL.split(":", 1)[0].split("+", 1)[0]
    context.configure(
        url=DATABASE_URL,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(dialect_name),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = make_engine(database_url=DATABASE_URL)
    logger.info(f"Migrating draw schema on {engine.url.render_as_string(hide_password=True)}")
    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection, **_configure_kwargs(connection.dialect.name)
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
