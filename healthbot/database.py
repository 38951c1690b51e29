from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from .constants import PROFILE_FIELDS, RECORD_KINDS
from .models import Record, User

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database:
    """SQLite-backed record store.

    Users and records are append-only: a user row is only ever updated through
    ``update_profile`` and records are never updated or deleted. Every method
    opens its own connection, so calls for different users can run side by side.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    telegram_user_id INTEGER PRIMARY KEY,
                    display_name TEXT NOT NULL,
                    age INTEGER,
                    gender TEXT,
                    height_cm REAL,
                    weight_kg REAL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    telegram_user_id INTEGER NOT NULL,
                    kind TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_records_user_id
                    ON records (telegram_user_id, id);

                CREATE TABLE IF NOT EXISTS questionnaire_answers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    telegram_user_id INTEGER NOT NULL,
                    completed_at TEXT NOT NULL,
                    question_index INTEGER NOT NULL,
                    question TEXT NOT NULL,
                    answer INTEGER NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_questionnaire_answers_user
                    ON questionnaire_answers (telegram_user_id, completed_at);
                """
            )

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            telegram_user_id=row["telegram_user_id"],
            display_name=row["display_name"],
            age=row["age"],
            gender=row["gender"],
            height_cm=row["height_cm"],
            weight_kg=row["weight_kg"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_record(self, row: sqlite3.Row) -> Record:
        return Record(
            id=row["id"],
            telegram_user_id=row["telegram_user_id"],
            kind=row["kind"],
            content=row["content"],
            created_at=row["created_at"],
        )

    def get_user(self, telegram_user_id: int) -> User | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE telegram_user_id = ?",
                (telegram_user_id,),
            ).fetchone()
            return self._row_to_user(row) if row else None

    def create_user(self, telegram_user_id: int, display_name: str) -> User:
        now = utc_now_iso()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users (telegram_user_id, display_name, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (telegram_user_id) DO NOTHING
                """,
                (telegram_user_id, display_name, now, now),
            )
            row = conn.execute(
                "SELECT * FROM users WHERE telegram_user_id = ?",
                (telegram_user_id,),
            ).fetchone()
            if row is None:
                raise RuntimeError("Failed to create user")
            return self._row_to_user(row)

    def update_profile(self, telegram_user_id: int, fields: dict[str, Any]) -> User:
        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown profile fields: {sorted(unknown)}")

        with self._connect() as conn:
            if fields:
                # Column names come from the PROFILE_FIELDS whitelist above.
                assignments = ", ".join(f"{name} = ?" for name in fields)
                conn.execute(
                    f"UPDATE users SET {assignments}, updated_at = ? WHERE telegram_user_id = ?",
                    (*fields.values(), utc_now_iso(), telegram_user_id),
                )
            row = conn.execute(
                "SELECT * FROM users WHERE telegram_user_id = ?",
                (telegram_user_id,),
            ).fetchone()
            if row is None:
                raise RuntimeError("User not found")
            return self._row_to_user(row)

    def append_record(self, telegram_user_id: int, kind: str, content: str) -> Record:
        if kind not in RECORD_KINDS:
            raise ValueError(f"Unknown record kind: {kind}")

        created_at = utc_now_iso()
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO records (telegram_user_id, kind, content, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (telegram_user_id, kind, content, created_at),
            )
            record_id = int(cur.lastrowid)
            row = conn.execute("SELECT * FROM records WHERE id = ?", (record_id,)).fetchone()
            if row is None:
                raise RuntimeError("Failed to create record")

        logger.info("Stored %s record %s for user %s", kind, record_id, telegram_user_id)
        return self._row_to_record(row)

    def latest_record(self, telegram_user_id: int) -> Record | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM records
                WHERE telegram_user_id = ?
                ORDER BY id DESC LIMIT 1
                """,
                (telegram_user_id,),
            ).fetchone()
            return self._row_to_record(row) if row else None

    def list_records(self, telegram_user_id: int, limit: int = 10) -> list[Record]:
        """Newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM records
                WHERE telegram_user_id = ?
                ORDER BY id DESC LIMIT ?
                """,
                (telegram_user_id, limit),
            ).fetchall()
            return [self._row_to_record(r) for r in rows]

    def count_records(self, telegram_user_id: int) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS cnt FROM records WHERE telegram_user_id = ?",
                (telegram_user_id,),
            ).fetchone()
            return int(row["cnt"])

    def append_questionnaire_audit(
        self,
        telegram_user_id: int,
        answers: list[tuple[int, str, int]],
    ) -> str:
        """Store one row per (question_index, question, answer); returns the batch timestamp."""
        completed_at = utc_now_iso()
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO questionnaire_answers (
                    telegram_user_id, completed_at, question_index, question, answer
                ) VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (telegram_user_id, completed_at, index, question, answer)
                    for index, question, answer in answers
                ],
            )
        return completed_at

    def list_questionnaire_audit(self, telegram_user_id: int) -> list[tuple[str, int, str, int]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT completed_at, question_index, question, answer
                FROM questionnaire_answers
                WHERE telegram_user_id = ?
                ORDER BY id ASC
                """,
                (telegram_user_id,),
            ).fetchall()
            return [
                (row["completed_at"], int(row["question_index"]), row["question"], int(row["answer"]))
                for row in rows
            ]
