"""Absence registry: date-ranged out-of-office entries per user."""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from .db import Database, Row
from .models import AbsenceEntry


def _to_entry(row: Row) -> AbsenceEntry:
    return AbsenceEntry(
        id=row["id"],
        user_id=row["user_id"],
        start_date=date.fromisoformat(row["start_date"]),
        end_date=date.fromisoformat(row["end_date"]),
        reason=row["reason"],
        set_by=row["set_by"],
        created_at=row["created_at"],
    )


class AbsenceRegistry:
    def __init__(self, database: Database) -> None:
        self.database = database

    def is_absent(self, user_id: str, day: date) -> bool:
        with self.database.connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM absences WHERE user_id = ? AND start_date <= ? AND end_date >= ?",
                (user_id, day.isoformat(), day.isoformat()),
            ).fetchone()
        return row is not None

    def upcoming(self, user_id: str, as_of: date) -> List[AbsenceEntry]:
        """Entries for ``user_id`` that have not ended before ``as_of``."""

        with self.database.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM absences WHERE user_id = ? AND end_date >= ? ORDER BY start_date, id",
                (user_id, as_of.isoformat()),
            ).fetchall()
        return [_to_entry(row) for row in rows]

    def get(self, entry_id: int) -> Optional[AbsenceEntry]:
        with self.database.connect() as conn:
            row = conn.execute("SELECT * FROM absences WHERE id = ?", (entry_id,)).fetchone()
        return _to_entry(row) if row else None

    def add(self, user_id: str, start: date, end: date, reason: Optional[str], set_by: str) -> int:
        with self.database.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO absences (user_id, start_date, end_date, reason, set_by) VALUES (?, ?, ?, ?, ?)",
                (user_id, start.isoformat(), end.isoformat(), reason, set_by),
            )
            return int(cursor.lastrowid)

    def remove(self, entry_id: int) -> bool:
        with self.database.transaction() as conn:
            cursor = conn.execute("DELETE FROM absences WHERE id = ?", (entry_id,))
            return cursor.rowcount > 0

    def clear(self, user_id: str, as_of: date) -> int:
        with self.database.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM absences WHERE user_id = ? AND end_date >= ?",
                (user_id, as_of.isoformat()),
            )
            return cursor.rowcount


__all__ = ["AbsenceRegistry"]
