from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime

from .database import Database, deserialize_datetime, serialize_datetime, utcnow
from .errors import EmailAlreadyRegisteredError, UserNotFoundError
from .models import User

logger = logging.getLogger(__name__)


@dataclass
class UserRecord:
    id: int
    name: str
    email: str
    password: str
    created_at: datetime
    updated_at: datetime

    def to_public(self) -> User:
        """Public representation; the password hash never leaves the store."""
        return User(
            id=self.id,
            name=self.name,
            email=self.email,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class UserStore:
    """Queries against the users table."""

    def __init__(self, db: Database):
        self.db = db

    def insert(self, name: str, email: str, hashed_password: str) -> UserRecord:
        now = serialize_datetime(utcnow())
        with self.db.connect() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (name, email, password, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (name, email, hashed_password, now, now),
                )
            except sqlite3.IntegrityError as exc:
                raise EmailAlreadyRegisteredError("email already registered") from exc
            row = conn.execute("SELECT * FROM users WHERE id = ?", (cursor.lastrowid,)).fetchone()
        logger.info("Created user %s", row["id"])
        return self._row_to_record(row)

    def find_by_email(self, email: str) -> UserRecord:
        with self.db.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        if not row:
            raise UserNotFoundError("user not found")
        return self._row_to_record(row)

    def find_by_id(self, user_id: int) -> UserRecord:
        with self.db.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            raise UserNotFoundError("user not found")
        return self._row_to_record(row)

    def update_password(self, user_id: int, hashed_password: str) -> None:
        with self.db.connect() as conn:
            cursor = conn.execute(
                "UPDATE users SET password = ?, updated_at = ? WHERE id = ?",
                (hashed_password, serialize_datetime(utcnow()), user_id),
            )
            if cursor.rowcount == 0:
                raise UserNotFoundError("user not found")
        logger.info("Updated password for user %s", user_id)

    def delete(self, user_id: int) -> None:
        """Delete a user; their apostilas go with them (ON DELETE CASCADE)."""
        with self.db.connect() as conn:
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            if cursor.rowcount == 0:
                raise UserNotFoundError("user not found")
        logger.info("Deleted user %s", user_id)

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> UserRecord:
        return UserRecord(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            password=row["password"],
            created_at=deserialize_datetime(row["created_at"]),
            updated_at=deserialize_datetime(row["updated_at"]),
        )
