"""Shared fixtures for the Daily Pulse test-suite."""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from daily_pulse.absences import AbsenceRegistry
from daily_pulse.aggregation import Aggregator
from daily_pulse.config import ConfigStore, TeamMember
from daily_pulse.db import Database
from daily_pulse.exceptions import DeliveryError
from daily_pulse.lifecycle import CheckinTracker
from daily_pulse.responses import ResponseStore
from daily_pulse.roles import RoleStore
from daily_pulse.scheduler import PulseScheduler
from daily_pulse.service import PulseService

TZ = "America/New_York"

# 2026-10-19 is a Monday.
MONDAY = date(2026, 10, 19)
PREVIOUS_FRIDAY = date(2026, 10, 16)

SEED_CONFIG = {
    "timezone": TZ,
    "schedule": {
        "daily_checkin_time": "17:00",
        "first_followup_time": "09:00",
        "followup_interval_hours": 2,
        "max_followups_per_day": 3,
    },
    "scorecard_channel_name": "pulse-scorecard",
    "weekly_summary_day": "monday",
    "weekly_summary_time": "08:00",
    "team": [
        {
            "name": "Alice",
            "slack_id": "U_A",
            "manager_slack_id": "U_M",
            "role": "Engineer",
            "question": "What percentage of your day went to roadmap work?",
            "input_type": "percentage",
            "target": 60,
            "target_label": "≥60%",
        },
        {
            "name": "Mona",
            "slack_id": "U_M",
            "manager_slack_id": "U_ADMIN",
            "role": "Engineering Manager",
            "question": "How much of your day was spent unblocking the team?",
            "input_type": "percentage",
            "target": None,
            "target_label": None,
        },
        {
            "name": "Bob",
            "slack_id": "U_B",
            "manager_slack_id": "U_OTHER",
            "role": "Designer",
            "question": "How much of your day was design work?",
            "input_type": "percentage",
            "target": 50,
            "target_label": "≥50%",
        },
        {
            "name": "New Hire",
            "slack_id": "REPLACE_WITH_SLACK_ID",
            "manager_slack_id": "U_M",
            "role": "TBD",
            "question": "TBD",
            "input_type": "percentage",
            "target": None,
            "target_label": None,
        },
    ],
}


class RecordingMessenger:
    """Messenger double that records deliveries and can fail per user."""

    def __init__(self) -> None:
        self.prompts: List[Tuple[str, date]] = []
        self.followups: List[Tuple[str, date, int]] = []
        self.updates: List[str] = []
        self.reports: List[str] = []
        self.confirmations: List[Tuple[str, str, str, int]] = []
        self.views: List[Tuple[str, str, str]] = []
        self.fail_for: set[str] = set()
        self.fail_channel = False
        self.on_deliver: Optional[Callable[[], None]] = None

    def _maybe_fail(self, user_id: str) -> None:
        if user_id in self.fail_for:
            raise DeliveryError(f"cannot reach {user_id}")

    def _delivered(self) -> None:
        if self.on_deliver is not None:
            self.on_deliver()

    async def deliver_prompt(self, member: TeamMember, day: date) -> None:
        self._maybe_fail(member.user_id)
        self.prompts.append((member.user_id, day))
        self._delivered()

    async def deliver_followup(self, member: TeamMember, day: date, attempt: int) -> None:
        self._maybe_fail(member.user_id)
        self.followups.append((member.user_id, day, attempt))
        self._delivered()

    async def deliver_aggregate_update(self, text: str) -> None:
        if self.fail_channel:
            raise DeliveryError("channel unavailable")
        self.updates.append(text)

    async def deliver_weekly_report(self, text: str) -> None:
        if self.fail_channel:
            raise DeliveryError("channel unavailable")
        self.reports.append(text)

    async def confirm_answer(self, channel: str, ts: str, member: TeamMember, day: date, value: int) -> None:
        self.confirmations.append((channel, ts, member.user_id, value))

    async def open_custom_entry(self, trigger_id: str, member: TeamMember, day: date) -> None:
        self.views.append(("custom", trigger_id, member.user_id))

    async def open_blocker_form(self, trigger_id: str, user_id: str, day: date) -> None:
        self.views.append(("blocker", trigger_id, user_id))


@pytest.fixture
def seed_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(SEED_CONFIG), encoding="utf-8")
    return path


@pytest.fixture
def database(tmp_path: Path) -> Database:
    return Database(tmp_path / "pulse.db")


@pytest.fixture
def config_store(database: Database, seed_file: Path) -> ConfigStore:
    store = ConfigStore(database)
    assert store.seed_from_file(seed_file)
    return store


@pytest.fixture
def roles(database: Database) -> RoleStore:
    store = RoleStore(database)
    store.grant("U_ADMIN", "admin", "SYSTEM")
    store.grant("U_M", "manager", "U_ADMIN")
    store.grant("U_OTHER", "manager", "U_ADMIN")
    return store


@pytest.fixture
def absences(database: Database) -> AbsenceRegistry:
    return AbsenceRegistry(database)


@pytest.fixture
def responses(database: Database) -> ResponseStore:
    return ResponseStore(database)


@pytest.fixture
def tracker(database: Database) -> CheckinTracker:
    return CheckinTracker(database)


@pytest.fixture
def aggregator(responses: ResponseStore, absences: AbsenceRegistry) -> Aggregator:
    return Aggregator(responses, absences)


@pytest.fixture
def messenger() -> RecordingMessenger:
    return RecordingMessenger()


@pytest.fixture
def apscheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler()


@pytest.fixture
def pulse_scheduler(config_store, tracker, messenger, aggregator, apscheduler) -> PulseScheduler:
    return PulseScheduler(config_store, tracker, messenger, aggregator, scheduler=apscheduler)


@pytest.fixture
def service(config_store, roles, absences, responses, tracker, messenger, aggregator, pulse_scheduler) -> PulseService:
    return PulseService(
        config_store=config_store,
        roles=roles,
        absences=absences,
        responses=responses,
        tracker=tracker,
        messenger=messenger,
        aggregator=aggregator,
        scheduler=pulse_scheduler,
    )
