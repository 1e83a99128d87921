"""Check-in lifecycle tracker.

One row per (user, date) in ``pending_checkins``: created when the prompt is
sent, counts unanswered follow-ups, and flips ``responded`` on the first
accepted answer. Operations on a missing row are no-ops so batch callers can
keep going.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List

from .db import Database, Row
from .models import CheckinRecord

logger = logging.getLogger(__name__)


def _to_record(row: Row) -> CheckinRecord:
    return CheckinRecord(
        user_id=row["user_id"],
        name=row["name"],
        date=date.fromisoformat(row["date"]),
        followup_count=row["followup_count"],
        responded=bool(row["responded"]),
    )


class CheckinTracker:
    def __init__(self, database: Database) -> None:
        self.database = database

    def mark_sent(self, user_id: str, day: date, name: str = "") -> None:
        with self.database.transaction() as conn:
            conn.execute(
                """
                INSERT INTO pending_checkins (user_id, name, date, followup_count, responded)
                VALUES (?, ?, ?, 0, 0)
                ON CONFLICT(user_id, date) DO NOTHING
                """,
                (user_id, name or user_id, day.isoformat()),
            )

    def mark_responded(self, user_id: str, day: date) -> None:
        with self.database.transaction() as conn:
            cursor = conn.execute(
                "UPDATE pending_checkins SET responded = 1 WHERE user_id = ? AND date = ?",
                (user_id, day.isoformat()),
            )
            if cursor.rowcount == 0:
                logger.debug("No check-in record for %s on %s; nothing to mark", user_id, day)

    def has_responded(self, user_id: str, day: date) -> bool:
        with self.database.connect() as conn:
            row = conn.execute(
                "SELECT responded FROM pending_checkins WHERE user_id = ? AND date = ?",
                (user_id, day.isoformat()),
            ).fetchone()
        return bool(row and row["responded"])

    def get(self, user_id: str, day: date) -> CheckinRecord | None:
        with self.database.connect() as conn:
            row = conn.execute(
                "SELECT * FROM pending_checkins WHERE user_id = ? AND date = ?",
                (user_id, day.isoformat()),
            ).fetchone()
        return _to_record(row) if row else None

    def pending_followups(self, day: date, max_followups: int) -> List[CheckinRecord]:
        with self.database.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM pending_checkins
                WHERE date = ? AND responded = 0 AND followup_count < ?
                ORDER BY id
                """,
                (day.isoformat(), max_followups),
            ).fetchall()
        return [_to_record(row) for row in rows]

    def increment_followup(self, user_id: str, day: date) -> None:
        with self.database.transaction() as conn:
            conn.execute(
                "UPDATE pending_checkins SET followup_count = followup_count + 1 WHERE user_id = ? AND date = ?",
                (user_id, day.isoformat()),
            )

    def purge_before(self, day: date) -> int:
        """Delete records dated strictly before ``day``."""

        with self.database.transaction() as conn:
            cursor = conn.execute("DELETE FROM pending_checkins WHERE date < ?", (day.isoformat(),))
            return cursor.rowcount


__all__ = ["CheckinTracker"]
