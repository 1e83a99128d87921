"""Configuration helpers for Daily Pulse.

Two layers live here: process ``Settings`` read from the environment, and
the team/schedule ``AppConfig`` stored as a versioned JSON blob in SQLite.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import pydantic
from dotenv import load_dotenv

from .db import Database
from .exceptions import ConfigError, ValidationError
from .schemas import ScheduleIn, field_errors
from .validation import is_valid_timezone

logger = logging.getLogger(__name__)

APP_CONFIG_KEY = "app_config"
PAUSED_KEY = "paused"
PLACEHOLDER_PREFIX = "REPLACE"


@dataclass(slots=True)
class Settings:
    """Runtime configuration values loaded from environment variables."""

    slack_bot_token: str
    slack_signing_secret: str
    api_key: str
    database_path: Path
    config_seed_path: Path
    legacy_history_path: Path
    admin_user_ids: List[str] = field(default_factory=list)


def load_settings(env_file: str | None = None) -> Settings:
    """Load settings from the environment, optionally from a specific file."""

    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    db_path = Path(os.getenv("DATABASE_PATH", "daily_pulse.db")).expanduser()
    seed_path = Path(os.getenv("CONFIG_SEED_PATH", "config.json")).expanduser()
    history_path = Path(os.getenv("LEGACY_HISTORY_PATH", "data/history.json")).expanduser()

    slack_token = os.getenv("SLACK_BOT_TOKEN")
    signing_secret = os.getenv("SLACK_SIGNING_SECRET")
    api_key = os.getenv("API_KEY")

    if not slack_token:
        raise RuntimeError("SLACK_BOT_TOKEN must be configured")
    if not signing_secret:
        raise RuntimeError("SLACK_SIGNING_SECRET must be configured")
    if not api_key:
        raise RuntimeError("API_KEY must be configured")

    admins = [item.strip() for item in os.getenv("ADMIN_USER_IDS", "").split(",") if item.strip()]

    return Settings(
        slack_bot_token=slack_token,
        slack_signing_secret=signing_secret,
        api_key=api_key,
        database_path=db_path,
        config_seed_path=seed_path,
        legacy_history_path=history_path,
        admin_user_ids=admins,
    )


@dataclass(slots=True)
class TeamMember:
    name: str
    user_id: str
    manager_id: str
    role: str
    question: str
    target: Optional[int] = None
    input_type: str = "percentage"

    @property
    def target_label(self) -> Optional[str]:
        return f"≥{self.target}%" if self.target is not None else None

    @property
    def is_placeholder(self) -> bool:
        return not self.user_id or self.user_id.startswith(PLACEHOLDER_PREFIX)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TeamMember":
        user_id = data.get("user_id", data.get("slack_id", ""))
        return cls(
            name=data["name"],
            user_id=user_id,
            manager_id=data.get("manager_id", data.get("manager_slack_id", user_id)),
            role=data.get("role", ""),
            question=data.get("question", ""),
            target=data.get("target"),
            input_type=data.get("input_type", "percentage"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "slack_id": self.user_id,
            "manager_slack_id": self.manager_id,
            "role": self.role,
            "question": self.question,
            "input_type": self.input_type,
            "target": self.target,
            "target_label": self.target_label,
        }


@dataclass(slots=True)
class ScheduleConfig:
    daily_checkin_time: str
    first_followup_time: str
    followup_interval_hours: int
    max_followups_per_day: int
    weekly_summary_day: str
    weekly_summary_time: str
    timezone: str

    def errors(self) -> Dict[str, str]:
        try:
            ScheduleIn.model_validate(asdict(self))
        except pydantic.ValidationError as exc:
            return field_errors(exc.errors())
        return {}

    @classmethod
    def from_model(cls, model: ScheduleIn) -> "ScheduleConfig":
        return cls(**model.model_dump())

    def validate(self) -> None:
        errors = self.errors()
        if errors:
            raise ValidationError(errors)


@dataclass(slots=True)
class AppConfig:
    schedule: ScheduleConfig
    team: List[TeamMember]
    scorecard_channel_name: str = "daily-pulse-scorecard"
    version: int = 0

    @property
    def timezone(self) -> str:
        return self.schedule.timezone

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.schedule.timezone)

    def now(self) -> datetime:
        return datetime.now(self.zone)

    def today(self) -> date:
        return self.now().date()

    def active_members(self) -> List[TeamMember]:
        return [member for member in self.team if not member.is_placeholder]

    def find_member(self, user_id: str) -> Optional[TeamMember]:
        for member in self.team:
            if member.user_id == user_id:
                return member
        return None

    def reports_of(self, manager_id: str) -> List[TeamMember]:
        return [member for member in self.team if member.manager_id == manager_id]

    @classmethod
    def from_dict(cls, data: Dict[str, Any], version: int = 0) -> "AppConfig":
        schedule = data.get("schedule", {})
        try:
            return cls(
                schedule=ScheduleConfig(
                    daily_checkin_time=schedule["daily_checkin_time"],
                    first_followup_time=schedule["first_followup_time"],
                    followup_interval_hours=int(schedule["followup_interval_hours"]),
                    max_followups_per_day=int(schedule["max_followups_per_day"]),
                    weekly_summary_day=data.get("weekly_summary_day", "monday"),
                    weekly_summary_time=data.get("weekly_summary_time", "08:00"),
                    timezone=data.get("timezone", ""),
                ),
                team=[TeamMember.from_dict(item) for item in data.get("team", [])],
                scorecard_channel_name=data.get("scorecard_channel_name", "daily-pulse-scorecard"),
                version=version,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigError(f"config: malformed configuration ({exc})") from exc

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timezone": self.schedule.timezone,
            "schedule": {
                "daily_checkin_time": self.schedule.daily_checkin_time,
                "first_followup_time": self.schedule.first_followup_time,
                "followup_interval_hours": self.schedule.followup_interval_hours,
                "max_followups_per_day": self.schedule.max_followups_per_day,
            },
            "scorecard_channel_name": self.scorecard_channel_name,
            "weekly_summary_day": self.schedule.weekly_summary_day,
            "weekly_summary_time": self.schedule.weekly_summary_time,
            "team": [member.to_dict() for member in self.team],
        }


def validate_config(config: AppConfig) -> None:
    if not config.schedule.timezone:
        raise ConfigError("config: timezone is required")
    if not is_valid_timezone(config.schedule.timezone):
        raise ConfigError(f"config: unknown timezone {config.schedule.timezone!r}")
    if not config.team:
        raise ConfigError("config: team array is empty")

    seen: set[str] = set()
    for member in config.team:
        if member.is_placeholder:
            logger.warning("%s has placeholder slack_id; will be skipped", member.name)
            continue
        if member.user_id in seen:
            raise ConfigError(f"config: {member.user_id} appears more than once in team")
        seen.add(member.user_id)


class ConfigStore:
    """Versioned configuration snapshots backed by the ``config`` table."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def load(self) -> AppConfig:
        with self.database.connect() as conn:
            row = conn.execute(
                "SELECT value, version FROM config WHERE key = ?", (APP_CONFIG_KEY,)
            ).fetchone()
        if not row:
            raise ConfigError("No config found in database; provide a seed config file")
        try:
            data = json.loads(row["value"])
        except json.JSONDecodeError as exc:
            raise ConfigError("Stored config is not valid JSON") from exc
        config = AppConfig.from_dict(data, version=row["version"])
        validate_config(config)
        return config

    def save(self, config: AppConfig) -> int:
        """Validate and replace the stored snapshot; return the new version."""

        config.schedule.validate()
        validate_config(config)
        payload = json.dumps(config.to_dict(), indent=2)
        with self.database.transaction() as conn:
            conn.execute(
                """
                INSERT INTO config (key, value, version, updated_at)
                VALUES (?, ?, 1, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    version=config.version + 1,
                    updated_at=excluded.updated_at
                """,
                (APP_CONFIG_KEY, payload),
            )
            version = conn.execute(
                "SELECT version FROM config WHERE key = ?", (APP_CONFIG_KEY,)
            ).fetchone()["version"]
        config.version = version
        return version

    def seed_from_file(self, path: Path) -> bool:
        """Seed the config blob from a legacy JSON file unless already present."""

        path = Path(path)
        if not path.exists():
            return False
        with self.database.connect() as conn:
            existing = conn.execute("SELECT 1 FROM config WHERE key = ?", (APP_CONFIG_KEY,)).fetchone()
        if existing:
            return False

        raw = path.read_text(encoding="utf-8")
        json.loads(raw)
        with self.database.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO config (key, value) VALUES (?, ?)", (APP_CONFIG_KEY, raw)
            )
        logger.info("Seeded config from %s", path)
        return True

    def is_paused(self) -> bool:
        with self.database.connect() as conn:
            row = conn.execute("SELECT value FROM config WHERE key = ?", (PAUSED_KEY,)).fetchone()
        return bool(row) and row["value"] == "true"

    def set_paused(self, paused: bool) -> None:
        with self.database.transaction() as conn:
            conn.execute(
                """
                INSERT INTO config (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=CURRENT_TIMESTAMP
                """,
                (PAUSED_KEY, "true" if paused else "false"),
            )


__all__ = [
    "Settings",
    "load_settings",
    "TeamMember",
    "ScheduleConfig",
    "AppConfig",
    "ConfigStore",
    "validate_config",
]
