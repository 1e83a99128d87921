"""Response store: one check-in answer per (user, date)."""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from .db import Database, Row
from .models import ResponseEntry


def _to_entry(row: Row) -> ResponseEntry:
    return ResponseEntry(
        user_id=row["user_id"],
        name=row["name"],
        role=row["role"],
        question=row["question"],
        date=date.fromisoformat(row["date"]),
        value=row["value"],
        responded_at=row["responded_at"],
        blocker=row["blocker"],
    )


class ResponseStore:
    def __init__(self, database: Database) -> None:
        self.database = database

    def add(self, entry: ResponseEntry) -> bool:
        """Insert ``entry``; return ``False`` when the key already has an answer.

        The ``UNIQUE(user_id, date)`` constraint makes this the atomic half of
        the duplicate-answer guard: of two racing inserts only one wins.
        """

        with self.database.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO responses (user_id, name, role, question, date, value, responded_at, blocker)
                VALUES (:user_id, :name, :role, :question, :date, :value, :responded_at, :blocker)
                ON CONFLICT(user_id, date) DO NOTHING
                """,
                {
                    "user_id": entry.user_id,
                    "name": entry.name,
                    "role": entry.role,
                    "question": entry.question,
                    "date": entry.date.isoformat(),
                    "value": entry.value,
                    "responded_at": entry.responded_at,
                    "blocker": entry.blocker,
                },
            )
            return cursor.rowcount > 0

    def revise(self, user_id: str, day: date, value: int) -> bool:
        """Overwrite the value of an existing answer; ``responded_at`` is kept."""

        with self.database.transaction() as conn:
            cursor = conn.execute(
                "UPDATE responses SET value = ? WHERE user_id = ? AND date = ?",
                (value, user_id, day.isoformat()),
            )
            return cursor.rowcount > 0

    def update_blocker(self, user_id: str, day: date, blocker: str) -> bool:
        with self.database.transaction() as conn:
            cursor = conn.execute(
                "UPDATE responses SET blocker = ? WHERE user_id = ? AND date = ?",
                (blocker, user_id, day.isoformat()),
            )
            return cursor.rowcount > 0

    def get(self, user_id: str, day: date) -> Optional[ResponseEntry]:
        with self.database.connect() as conn:
            row = conn.execute(
                "SELECT * FROM responses WHERE user_id = ? AND date = ?",
                (user_id, day.isoformat()),
            ).fetchone()
        return _to_entry(row) if row else None

    def for_member(self, user_id: str, start: date, end: date) -> List[ResponseEntry]:
        """Answers for ``user_id`` with ``start <= date <= end``, oldest first."""

        with self.database.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM responses
                WHERE user_id = ? AND date >= ? AND date <= ?
                ORDER BY date
                """,
                (user_id, start.isoformat(), end.isoformat()),
            ).fetchall()
        return [_to_entry(row) for row in rows]

    def for_day(self, day: date) -> List[ResponseEntry]:
        with self.database.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM responses WHERE date = ? ORDER BY responded_at", (day.isoformat(),)
            ).fetchall()
        return [_to_entry(row) for row in rows]


__all__ = ["ResponseStore"]
