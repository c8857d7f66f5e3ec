"""
Storage for apostilas, the user-owned HTML documents.

Every mutating query is scoped by (id, user_id) so that a user can only
touch their own documents; a miss on either column is reported as
ApostilaNotFoundError rather than leaking whether the id exists.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from .database import Database, deserialize_datetime, serialize_datetime, utcnow
from .errors import ApostilaAlreadyExistsError, ApostilaNotFoundError, UserNotFoundError
from .models import Apostila

logger = logging.getLogger(__name__)

_COLUMNS = "id, user_id, edited_html, created_at, updated_at"


@dataclass
class ApostilaRecord:
    id: UUID
    user_id: int
    edited_html: Optional[str]
    created_at: datetime
    updated_at: datetime

    def to_model(self) -> Apostila:
        return Apostila(
            id=self.id,
            user_id=self.user_id,
            edited_raw_html=self.edited_html or "",
            created_at=self.created_at,
            edited_at=self.updated_at,
        )


class ApostilaStore:
    def __init__(self, db: Database):
        self.db = db

    def insert(self, apostila_id: UUID, user_id: int) -> ApostilaRecord:
        now = serialize_datetime(utcnow())
        with self.db.connect() as conn:
            try:
                conn.execute(
                    "INSERT INTO apostilas (id, user_id, created_at, updated_at) VALUES (?, ?, ?, ?)",
                    (str(apostila_id), user_id, now, now),
                )
            except sqlite3.IntegrityError as exc:
                if "FOREIGN KEY" in str(exc):
                    raise UserNotFoundError("user not found") from exc
                raise ApostilaAlreadyExistsError(f"apostila {apostila_id} already exists") from exc
            row = conn.execute(f"SELECT {_COLUMNS} FROM apostilas WHERE id = ?", (str(apostila_id),)).fetchone()
        logger.info("Inserted apostila %s for user %s", apostila_id, user_id)
        return self._row_to_record(row)

    def update_edited_html(self, apostila_id: UUID, edited_html: str, user_id: int) -> None:
        with self.db.connect() as conn:
            cursor = conn.execute(
                "UPDATE apostilas SET edited_html = ?, updated_at = ? WHERE id = ? AND user_id = ?",
                (edited_html, serialize_datetime(utcnow()), str(apostila_id), user_id),
            )
            if cursor.rowcount == 0:
                logger.warning("No apostila updated for id %s and user %s", apostila_id, user_id)
                raise ApostilaNotFoundError("apostila not found")
        logger.info("Updated edited HTML of apostila %s", apostila_id)

    def get_edited_html(self, apostila_id: UUID, user_id: int) -> str:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT edited_html FROM apostilas WHERE id = ? AND user_id = ?",
                (str(apostila_id), user_id),
            ).fetchone()
        if not row:
            raise ApostilaNotFoundError("apostila not found")
        return row["edited_html"] or ""

    def list_by_user(self, user_id: int) -> List[ApostilaRecord]:
        with self.db.connect() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM apostilas WHERE user_id = ? ORDER BY updated_at DESC, created_at DESC",
                (user_id,),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def get(self, apostila_id: UUID) -> ApostilaRecord:
        with self.db.connect() as conn:
            row = conn.execute(f"SELECT {_COLUMNS} FROM apostilas WHERE id = ?", (str(apostila_id),)).fetchone()
        if not row:
            raise ApostilaNotFoundError("apostila not found")
        return self._row_to_record(row)

    def delete(self, apostila_id: UUID, user_id: int) -> None:
        with self.db.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM apostilas WHERE id = ? AND user_id = ?",
                (str(apostila_id), user_id),
            )
            if cursor.rowcount == 0:
                raise ApostilaNotFoundError("apostila not found")
        logger.info("Deleted apostila %s", apostila_id)

    def save_pdf(self, apostila_id: UUID, user_id: int, pdf: bytes) -> None:
        with self.db.connect() as conn:
            cursor = conn.execute(
                "UPDATE apostilas SET pdf_raw = ? WHERE id = ? AND user_id = ?",
                (sqlite3.Binary(pdf), str(apostila_id), user_id),
            )
            if cursor.rowcount == 0:
                raise ApostilaNotFoundError("apostila not found")
        logger.info("Stored %d byte PDF for apostila %s", len(pdf), apostila_id)

    def get_pdf(self, apostila_id: UUID, user_id: int) -> Optional[bytes]:
        """Stored PDF export, or None when the apostila was never exported."""
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT pdf_raw FROM apostilas WHERE id = ? AND user_id = ?",
                (str(apostila_id), user_id),
            ).fetchone()
        if not row:
            raise ApostilaNotFoundError("apostila not found")
        return bytes(row["pdf_raw"]) if row["pdf_raw"] is not None else None

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ApostilaRecord:
        return ApostilaRecord(
            id=UUID(row["id"]),
            user_id=row["user_id"],
            edited_html=row["edited_html"],
            created_at=deserialize_datetime(row["created_at"]),
            updated_at=deserialize_datetime(row["updated_at"]),
        )
