"""Rolling averages and scorecard rendering."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Union
from zoneinfo import ZoneInfo

from .absences import AbsenceRegistry
from .config import AppConfig, TeamMember
from .models import ResponseEntry
from .responses import ResponseStore

NO_DATA = "—"
ABSENT = "OOO"
WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def average(responses: Iterable[Union[ResponseEntry, int]]) -> Optional[int]:
    """Mean of the answer values rounded half-up, or ``None`` when empty."""

    values = [item.value if isinstance(item, ResponseEntry) else int(item) for item in responses]
    if not values:
        return None
    return round_half_up(sum(values) / len(values))


def _local_date(value: Union[date, datetime], tz: Optional[str]) -> date:
    if isinstance(value, datetime):
        if tz and value.tzinfo is not None:
            value = value.astimezone(ZoneInfo(tz))
        return value.date()
    return value


def week_start(value: Union[date, datetime], tz: Optional[str] = None) -> date:
    """Monday of the ISO week containing ``value`` (in ``tz`` for datetimes)."""

    day = _local_date(value, tz)
    return day - timedelta(days=day.weekday())


def month_start(value: Union[date, datetime], tz: Optional[str] = None) -> date:
    return _local_date(value, tz).replace(day=1)


def previous_week(today: date) -> tuple[date, date]:
    """Monday and Sunday of the last fully completed week before ``today``."""

    last_sunday = week_start(today) - timedelta(days=1)
    return last_sunday - timedelta(days=6), last_sunday


def target_verdict(value: Optional[int], target: Optional[int]) -> Optional[bool]:
    if value is None or target is None:
        return None
    return value >= target


@dataclass(slots=True)
class MemberUpdate:
    """Scorecard entry posted after each accepted answer."""

    name: str
    role: str
    date: date
    value: int
    week_average: Optional[int]
    month_average: Optional[int]
    on_target: Optional[bool]
    target_label: Optional[str] = None

    def render(self) -> str:
        lines = [
            f"*{self.name}* ({self.role}) — {self.date.isoformat()}",
            f"> Today: *{self.value}%*",
            f"> Weekly avg: *{self.week_average}%*" if self.week_average is not None else "> Weekly avg: _N/A_",
            f"> Monthly avg: *{self.month_average}%*" if self.month_average is not None else "> Monthly avg: _N/A_",
        ]
        if self.on_target is not None:
            indicator = ":white_check_mark: On target" if self.on_target else ":x: Off target"
            lines.append(f"> {indicator} ({self.target_label})")
        return "\n".join(lines)


@dataclass(slots=True)
class WeeklyRow:
    name: str
    role: str
    days: List[Union[int, str]]
    week_average: Optional[int]
    on_target: Optional[bool]
    target_label: Optional[str] = None

    def render(self) -> str:
        cells = " | ".join(
            f"{label}: {value}%" if isinstance(value, int) else f"{label}: {value}"
            for label, value in zip(WEEKDAY_LABELS, self.days)
        )
        avg = f"*{self.week_average}%*" if self.week_average is not None else "*N/A*"
        status = ""
        if self.on_target is not None:
            status = f" :white_check_mark: ({self.target_label})" if self.on_target else f" :x: ({self.target_label})"
        return "\n".join([f"*{self.name}* ({self.role})", f"> {cells}", f"> Weekly avg: {avg}{status}"])


@dataclass(slots=True)
class WeeklyReport:
    start: date
    end: date
    rows: List[WeeklyRow] = field(default_factory=list)

    def render(self) -> str:
        header = f"*:bar_chart: Weekly Scorecard — {self.start.isoformat()} to {self.end.isoformat()}*"
        return "\n\n".join([header, *(row.render() for row in self.rows)])


class Aggregator:
    """Computes member stats from the response store on every call."""

    def __init__(self, responses: ResponseStore, absences: Optional[AbsenceRegistry] = None) -> None:
        self.responses = responses
        self.absences = absences

    def member_update(self, member: TeamMember, entry: ResponseEntry, tz: Optional[str] = None) -> MemberUpdate:
        day = entry.date
        week = self.responses.for_member(member.user_id, week_start(day, tz), day)
        month = self.responses.for_member(member.user_id, month_start(day, tz), day)
        return MemberUpdate(
            name=member.name,
            role=member.role,
            date=day,
            value=entry.value,
            week_average=average(week),
            month_average=average(month),
            on_target=target_verdict(entry.value, member.target),
            target_label=member.target_label,
        )

    def weekly_row(self, member: TeamMember, start: date, end: date) -> WeeklyRow:
        responses = self.responses.for_member(member.user_id, start, end)
        by_day = {entry.date: entry.value for entry in responses}
        days: List[Union[int, str]] = []
        for offset in range(len(WEEKDAY_LABELS)):
            day = start + timedelta(days=offset)
            if day in by_day:
                days.append(by_day[day])
            elif self.absences is not None and self.absences.is_absent(member.user_id, day):
                days.append(ABSENT)
            else:
                days.append(NO_DATA)
        avg = average(responses)
        return WeeklyRow(
            name=member.name,
            role=member.role,
            days=days,
            week_average=avg,
            on_target=target_verdict(avg, member.target),
            target_label=member.target_label,
        )

    def weekly_report(self, config: AppConfig, today: date) -> WeeklyReport:
        start, end = previous_week(today)
        return self.week_report(config.active_members(), start, end)

    def week_report(self, members: Sequence[TeamMember], start: date, end: date) -> WeeklyReport:
        return WeeklyReport(start=start, end=end, rows=[self.weekly_row(member, start, end) for member in members])

    def member_stats(self, member: TeamMember, today: date) -> dict[str, object]:
        week = self.responses.for_member(member.user_id, week_start(today), today)
        month = self.responses.for_member(member.user_id, month_start(today), today)
        latest = month[-1] if month else None
        week_avg = average(week)
        return {
            "user_id": member.user_id,
            "name": member.name,
            "date": today.isoformat(),
            "latest_value": latest.value if latest else None,
            "latest_date": latest.date.isoformat() if latest else None,
            "week_average": week_avg,
            "month_average": average(month),
            "target": member.target,
            "on_target": target_verdict(week_avg, member.target),
        }


__all__ = [
    "NO_DATA",
    "ABSENT",
    "round_half_up",
    "average",
    "week_start",
    "month_start",
    "previous_week",
    "target_verdict",
    "MemberUpdate",
    "WeeklyRow",
    "WeeklyReport",
    "Aggregator",
]
