#!/usr/bin/env python3
"""
Apply pending Alembic migrations before the app starts.

Usage:
    python migrate.py            # upgrade to head
    python migrate.py <revision> # upgrade to a specific revision
"""

import logging
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config as AlembicConfig
from sqlalchemy.exc import SQLAlchemyError

from second_brain.config import Config
from second_brain.database import get_database_url

logger = logging.getLogger("second_brain.migrate")

ALEMBIC_INI = Path(__file__).resolve().parent / "alembic.ini"


def run_migrations(revision: str = "head") -> int:
    """Upgrade the configured database to ``revision``; returns a process exit code."""
    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        database_url = get_database_url()
    except ValueError as e:
        logger.error("Migration aborted: %s", e)
        return 1

    logger.info("Migrating %s to %s", database_url.split("@")[-1], revision)

    alembic_cfg = AlembicConfig(str(ALEMBIC_INI))
    alembic_cfg.set_main_option("script_location", str(ALEMBIC_INI.parent / "alembic"))

    try:
        command.upgrade(alembic_cfg, revision)
    except SQLAlchemyError:
        logger.exception("Migration failed")
        return 1

    logger.info("Migrations completed")
    return 0


if __name__ == "__main__":
    sys.exit(run_migrations(*sys.argv[1:2]))
