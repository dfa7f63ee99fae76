from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from alembic.autogenerate import api as ag_api
from alembic.runtime.migration import MigrationContext
from sqlalchemy.exc import SQLAlchemyError

from golfdraw.db.engine import make_engine
from golfdraw.models import Base

logger = logging.getLogger("golfdraw.check_schema_drift")


def _print_ops(ops, indent: int = 0) -> None:
    prefix = "  " * indent
    for op in ops:
        print(f"{prefix}- {op}")
        sub_ops = getattr(op, "ops", None)
        if sub_ops:
            _print_ops(sub_ops, indent + 1)


def check(database_url: Optional[str] = None) -> int:
    """Compare the live schema with the ORM models.

    Returns 0 when they match, 1 when they differ and 2 when the check
    itself could not run.
    """
    engine = make_engine(database_url)
    url_display = engine.url.render_as_string(hide_password=True)
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(
                connection=connection,
                opts={
                    "compare_type": True,
                    "render_as_batch": connection.dialect.name == "sqlite",
                },
            )
            upgrade_ops = ag_api.produce_migrations(context, Base.metadata).upgrade_ops
    except SQLAlchemyError as exc:
        logger.error(f"Schema drift check could not connect to {url_display}: {exc}")
        return 2

    if upgrade_ops is None:
        logger.error(f"Schema drift check: missing upgrade ops for {url_display}")
        return 2
    if upgrade_ops.is_empty():
        print(f"Schema drift check: OK (no differences) for {url_display}.")
        return 0
    print(f"Schema drift check: FAILED for {url_display}. Differences detected:")
    _print_ops(upgrade_ops.ops or [])
    return 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Detect drift between models and database.")
    parser.add_argument("--database-url", default=None, help="Defaults to DB_URL")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.WARNING, stream=sys.stderr)
    return check(args.database_url)


if __name__ == "__main__":
    raise SystemExit(main())
