"""
SQLite persistence for users, apostilas and revoked tokens.

This module owns the connection handling and the versioned schema
migrations. Table-specific queries live in the store modules (users,
apostilas, tokens), which all borrow connections from Database.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .utils import ensure_directory

logger = logging.getLogger(__name__)

# Default database path
DEFAULT_DB_PATH = Path("data/apostilab.db")

# (version, statements) applied in order, each at most once
MIGRATIONS: List[Tuple[str, List[str]]] = [
    (
        "001_create_users",
        [
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE,
                password TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """,
        ],
    ),
    (
        "002_create_apostilas",
        [
            """
            CREATE TABLE IF NOT EXISTS apostilas (
                id TEXT PRIMARY KEY,
                user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                edited_html TEXT,
                pdf_raw BLOB,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_apostilas_user_id
            ON apostilas(user_id)
            """,
        ],
    ),
    (
        "003_create_revoked_tokens",
        [
            """
            CREATE TABLE IF NOT EXISTS revoked_tokens (
                jti TEXT PRIMARY KEY,
                user_id INTEGER NOT NULL,
                expires_at TEXT NOT NULL,
                revoked_at TEXT NOT NULL
            )
            """,
        ],
    ),
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Serialize datetime to ISO format string."""
    return dt.isoformat() if dt else None


def deserialize_datetime(s: Optional[str]) -> Optional[datetime]:
    """Deserialize ISO format string to datetime."""
    if not s:
        return None
    return datetime.fromisoformat(s)


class Database:
    """
    Connection factory and migration runner.

    Every unit of work gets its own connection, so the object can be shared
    between request threads; SQLite serializes writers itself (WAL mode).
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH, migrate: bool = True):
        self.db_path = Path(db_path)
        ensure_directory(self.db_path.parent)
        if migrate:
            self.migrate()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with proper settings."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def applied_migrations(self) -> List[str]:
        with self.connect() as conn:
            self._ensure_migrations_table(conn)
            rows = conn.execute("SELECT version FROM schema_migrations ORDER BY version").fetchall()
            return [row["version"] for row in rows]

    def migrate(self) -> List[str]:
        """
        Apply pending migrations.

        Returns:
            The versions applied by this call (empty when the schema is current)
        """
        applied: List[str] = []
        with self.connect() as conn:
            self._ensure_migrations_table(conn)
            for version, statements in MIGRATIONS:
                exists = conn.execute(
                    "SELECT EXISTS(SELECT 1 FROM schema_migrations WHERE version = ?)", (version,)
                ).fetchone()[0]
                if exists:
                    logger.debug("Migration %s already applied", version)
                    continue

                logger.info("Applying migration %s", version)
                for statement in statements:
                    conn.execute(statement)
                conn.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                    (version, serialize_datetime(utcnow())),
                )
                applied.append(version)
                logger.info("Migration %s applied", version)
        return applied

    @staticmethod
    def _ensure_migrations_table(conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version TEXT PRIMARY KEY,
                applied_at TEXT NOT NULL
            )
        """)
