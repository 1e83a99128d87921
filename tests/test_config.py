"""Tests for settings loading and the versioned config store."""

from __future__ import annotations

import json

import pytest

from daily_pulse.config import ConfigStore, TeamMember, load_settings
from daily_pulse.exceptions import ConfigError, ValidationError


def test_load_settings_requires_tokens(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("SLACK_BOT_TOKEN", "SLACK_SIGNING_SECRET", "API_KEY"):
        monkeypatch.delenv(name, raising=False)
    with pytest.raises(RuntimeError):
        load_settings()


def test_load_settings_reads_environment(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-test")
    monkeypatch.setenv("SLACK_SIGNING_SECRET", "secret")
    monkeypatch.setenv("API_KEY", "key")
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "db.sqlite"))
    monkeypatch.setenv("ADMIN_USER_IDS", "U1, U2,,")
    settings = load_settings()
    assert settings.database_path == tmp_path / "db.sqlite"
    assert settings.admin_user_ids == ["U1", "U2"]


def test_missing_config_is_fatal(database):
    with pytest.raises(ConfigError):
        ConfigStore(database).load()


def test_seed_is_idempotent(config_store, seed_file):
    assert config_store.seed_from_file(seed_file) is False
    assert config_store.load().version == 1


def test_load_parses_legacy_layout(config_store):
    config = config_store.load()
    assert config.timezone == "America/New_York"
    assert config.schedule.weekly_summary_day == "monday"
    alice = config.find_member("U_A")
    assert alice.manager_id == "U_M"
    assert alice.target_label == "≥60%"
    assert [m.user_id for m in config.active_members()] == ["U_A", "U_M", "U_B"]


def test_save_bumps_version(config_store):
    config = config_store.load()
    config.schedule.daily_checkin_time = "16:00"
    assert config_store.save(config) == 2
    reloaded = config_store.load()
    assert reloaded.version == 2
    assert reloaded.schedule.daily_checkin_time == "16:00"


def test_save_rejects_invalid_schedule_without_changes(config_store):
    config = config_store.load()
    config.schedule.daily_checkin_time = "25:00"
    with pytest.raises(ValidationError):
        config_store.save(config)
    assert config_store.load().schedule.daily_checkin_time == "17:00"


def test_duplicate_members_are_rejected(config_store):
    config = config_store.load()
    config.team.append(TeamMember(name="Alice again", user_id="U_A", manager_id="U_M", role="x", question="q"))
    with pytest.raises(ConfigError):
        config_store.save(config)


def test_empty_team_is_invalid(database, tmp_path):
    path = tmp_path / "empty.json"
    path.write_text(
        json.dumps(
            {
                "timezone": "UTC",
                "schedule": {
                    "daily_checkin_time": "17:00",
                    "first_followup_time": "09:00",
                    "followup_interval_hours": 2,
                    "max_followups_per_day": 3,
                },
                "team": [],
            }
        )
    )
    store = ConfigStore(database)
    store.seed_from_file(path)
    with pytest.raises(ConfigError):
        store.load()


def test_pause_flag_round_trip(config_store):
    assert config_store.is_paused() is False
    config_store.set_paused(True)
    assert config_store.is_paused() is True
    config_store.set_paused(False)
    assert config_store.is_paused() is False
