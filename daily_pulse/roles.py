"""Role store: admin and manager grants keyed by Slack user id."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from .db import Database
from .models import Role, RoleGrant

logger = logging.getLogger(__name__)


class RoleStore:
    """Reads always hit the database; nothing is cached between calls."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def has_role(self, user_id: str, role: Role) -> bool:
        with self.database.connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM roles WHERE user_id = ? AND role = ?", (user_id, role)
            ).fetchone()
        return row is not None

    def is_admin(self, user_id: str) -> bool:
        return self.has_role(user_id, "admin")

    def is_manager(self, user_id: str) -> bool:
        return self.has_role(user_id, "manager")

    def has_any_role(self, user_id: str) -> bool:
        with self.database.connect() as conn:
            row = conn.execute("SELECT 1 FROM roles WHERE user_id = ?", (user_id,)).fetchone()
        return row is not None

    def get_role(self, user_id: str) -> Optional[Role]:
        """Return the highest role held, or ``None``."""

        if self.is_admin(user_id):
            return "admin"
        if self.is_manager(user_id):
            return "manager"
        return None

    def grant(self, user_id: str, role: Role, added_by: str) -> bool:
        with self.database.transaction() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO roles (user_id, role, added_by) VALUES (?, ?, ?)",
                (user_id, role, added_by),
            )
            return cursor.rowcount > 0

    def revoke(self, user_id: str, role: Role) -> bool:
        """Delete a grant. An admin grant is kept when it is the last one."""

        with self.database.transaction() as conn:
            cursor = conn.execute(
                """
                DELETE FROM roles
                WHERE user_id = ? AND role = ?
                  AND (role != 'admin' OR (SELECT COUNT(*) FROM roles WHERE role = 'admin') > 1)
                """,
                (user_id, role),
            )
            return cursor.rowcount > 0

    def list_by_role(self, role: Role) -> List[RoleGrant]:
        with self.database.connect() as conn:
            rows = conn.execute(
                "SELECT user_id, role, added_by, added_at FROM roles WHERE role = ? ORDER BY added_at, user_id",
                (role,),
            ).fetchall()
        return [
            RoleGrant(user_id=row["user_id"], role=row["role"], added_by=row["added_by"], added_at=row["added_at"])
            for row in rows
        ]

    def admin_count(self) -> int:
        with self.database.connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS cnt FROM roles WHERE role = 'admin'").fetchone()
        return row["cnt"]

    def seed_admins(self, user_ids: Iterable[str]) -> int:
        """Grant admin to ``user_ids`` when the roles table is empty."""

        user_ids = [user_id for user_id in user_ids if user_id]
        with self.database.transaction() as conn:
            count = conn.execute("SELECT COUNT(*) AS cnt FROM roles").fetchone()["cnt"]
            if count > 0 or not user_ids:
                return 0
            conn.executemany(
                "INSERT OR IGNORE INTO roles (user_id, role, added_by) VALUES (?, 'admin', 'SYSTEM')",
                [(user_id,) for user_id in user_ids],
            )
        logger.info("Seeded %s admin role(s)", len(user_ids))
        return len(user_ids)


__all__ = ["RoleStore"]
