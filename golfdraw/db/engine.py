import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .utils import resolve_sqlite_url

logger = logging.getLogger(__name__)

load_dotenv()
ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_SQLITE_URL = resolve_sqlite_url(
    os.getenv("DB_URL", "sqlite:///./dev.db"), ROOT_DIR
)


def _install_sqlite_hooks(engine: Engine) -> None:
    """Enforce foreign keys and let SQLAlchemy own transaction boundaries.

    pysqlite's implicit transaction handling breaks SAVEPOINT, which the draw
    run uses for per-entry inserts, so BEGIN is emitted explicitly.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def make_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    url = database_url or DEFAULT_SQLITE_URL
    engine = create_engine(url, echo=echo, future=True)
    if engine.dialect.name == "sqlite":
        _install_sqlite_hooks(engine)
    logger.debug(f"Engine created for {engine.url.render_as_string(hide_password=True)}")
    return engine


def get_sessionmaker(engine: Engine) -> sessionmaker:
    # Reports read attributes after the settling transaction commits.
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)
