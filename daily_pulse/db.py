"""SQLite persistence layer for Daily Pulse."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List

Connection = sqlite3.Connection
Row = sqlite3.Row

logger = logging.getLogger(__name__)


class Database:
    """Lightweight wrapper around SQLite operations.

    Every call opens its own connection so handlers running concurrently on
    the event loop never share a cursor. Row-level atomicity comes from the
    unique constraints declared in the schema.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize()

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        conn = sqlite3.connect(self._path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Yield a connection whose statements commit or roll back together."""

        with self.connect() as conn:
            with conn:
                yield conn

    def _initialize(self) -> None:
        with self.connect() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            cursor = conn.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS responses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    role TEXT NOT NULL,
                    question TEXT NOT NULL,
                    date TEXT NOT NULL,
                    value INTEGER NOT NULL CHECK(value BETWEEN 0 AND 100),
                    responded_at TEXT NOT NULL,
                    UNIQUE(user_id, date)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS pending_checkins (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    date TEXT NOT NULL,
                    followup_count INTEGER NOT NULL DEFAULT 0,
                    responded INTEGER NOT NULL DEFAULT 0,
                    UNIQUE(user_id, date)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS config (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 1,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS roles (
                    user_id TEXT NOT NULL,
                    role TEXT NOT NULL CHECK(role IN ('admin', 'manager')),
                    added_by TEXT NOT NULL,
                    added_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (user_id, role)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS absences (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    start_date TEXT NOT NULL,
                    end_date TEXT NOT NULL,
                    reason TEXT,
                    set_by TEXT NOT NULL,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.commit()
        self._migrate_schema()

    def _migrate_schema(self) -> None:
        with self.connect() as conn:
            columns = {row["name"] for row in conn.execute("PRAGMA table_info(responses)")}
            if "blocker" not in columns:
                conn.execute("ALTER TABLE responses ADD COLUMN blocker TEXT")
                conn.commit()
                logger.info("Migrated: added blocker column to responses table")

    # region Legacy import
    def import_legacy_history(self, path: Path) -> int:
        """Import a legacy ``history.json`` file into ``responses``.

        Runs once: skipped when the file is absent or when any response row
        already exists. All rows are inserted inside a single transaction and
        the file is renamed to ``.bak`` afterwards.
        """

        path = Path(path)
        if not path.exists():
            return 0

        with self.connect() as conn:
            count = conn.execute("SELECT COUNT(*) AS cnt FROM responses").fetchone()["cnt"]
        if count > 0:
            logger.info("Responses table already populated; skipping import of %s", path)
            return 0

        history = json.loads(path.read_text(encoding="utf-8"))
        rows: List[Dict[str, Any]] = [
            {
                "user_id": entry.get("user_id") or entry["slack_id"],
                "name": entry["name"],
                "role": entry.get("role", ""),
                "question": entry.get("question", ""),
                "date": entry["date"],
                "value": int(entry["value"]),
                "responded_at": entry["responded_at"],
                "blocker": entry.get("blocker"),
            }
            for entry in history.get("responses", [])
        ]

        with self.transaction() as conn:
            before = conn.total_changes
            conn.executemany(
                """
                INSERT OR IGNORE INTO responses
                    (user_id, name, role, question, date, value, responded_at, blocker)
                VALUES (:user_id, :name, :role, :question, :date, :value, :responded_at, :blocker)
                """,
                rows,
            )
            inserted = conn.total_changes - before

        backup = path.with_name(path.name + ".bak")
        path.rename(backup)
        logger.info("Imported %s legacy response(s); renamed %s -> %s", inserted, path, backup)
        return inserted

    # endregion


__all__ = ["Database"]
