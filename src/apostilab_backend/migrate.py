"""Apply pending schema migrations: ``apostilab-migrate [--database PATH]``."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from .configuration import get_settings
from .database import MIGRATIONS, Database

logger = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Apply pending apostilab database migrations.")
    parser.add_argument("--database", help="SQLite file to migrate (default: database.path from settings)")
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(level=settings.logging.level.upper(), format="%(levelname)s %(message)s")

    db_path = Path(args.database or settings.database.path)
    database = Database(db_path, migrate=False)
    already = set(database.applied_migrations())
    for version, _ in MIGRATIONS:
        if version in already:
            logger.info("Migration %s already applied", version)

    applied = database.migrate()
    logger.info("%d migration(s) applied to %s", len(applied), db_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
