from __future__ import annotations

import argparse
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect, select
from sqlalchemy.orm import Session

from golfdraw.db.engine import make_engine
from golfdraw.models import DrawSettings, JackpotTracker

logger = logging.getLogger("golfdraw.init_db")


def upgrade_db(target_revision: str = "head") -> None:
    """Apply Alembic migrations up to the requested revision."""
    project_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def ensure_singletons() -> None:
    """Create the default prize settings and an empty jackpot when missing."""
    engine = make_engine()
    with Session(engine) as session, session.begin():
        if session.scalar(select(DrawSettings).limit(1)) is None:
            session.add(DrawSettings())
            logger.info("Default draw settings created")
        JackpotTracker.get(session)


def print_tables() -> None:
    """Inspect the configured database and print all table names."""
    engine = make_engine()
    insp = inspect(engine)
    print("Current tables:", ", ".join(sorted(insp.get_table_names())))


def main() -> None:
    """Apply migrations, create the singleton rows and report the schema."""
    parser = argparse.ArgumentParser(description="Initialise the prize draw database.")
    parser.add_argument("--revision", default="head", help="Alembic revision to upgrade to")
    parser.add_argument(
        "--skip-singletons",
        action="store_true",
        help="Do not create default settings and jackpot rows",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s")
    upgrade_db(args.revision)
    if not args.skip_singletons:
        ensure_singletons()
    print_tables()


if __name__ == "__main__":
    main()
