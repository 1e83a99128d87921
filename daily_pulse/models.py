"""Dataclasses representing Daily Pulse domain records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Literal, Optional

Role = Literal["admin", "manager"]
ROLES: tuple[Role, ...] = ("admin", "manager")


@dataclass(slots=True)
class CheckinRecord:
    user_id: str
    name: str
    date: date
    followup_count: int = 0
    responded: bool = False


@dataclass(slots=True)
class ResponseEntry:
    user_id: str
    name: str
    role: str
    question: str
    date: date
    value: int
    responded_at: str
    blocker: Optional[str] = None


@dataclass(slots=True)
class RoleGrant:
    user_id: str
    role: Role
    added_by: str
    added_at: str


@dataclass(slots=True)
class AbsenceEntry:
    id: int
    user_id: str
    start_date: date
    end_date: date
    reason: Optional[str]
    set_by: str
    created_at: str

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(slots=True)
class Answer:
    """A decoded check-in answer from an interactive event."""

    user_id: str
    date: date
    value: int


@dataclass(slots=True)
class BlockerNote:
    user_id: str
    date: date
    text: str


__all__ = [
    "Role",
    "ROLES",
    "CheckinRecord",
    "ResponseEntry",
    "RoleGrant",
    "AbsenceEntry",
    "Answer",
    "BlockerNote",
]
