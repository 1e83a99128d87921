"""Tests for the request body models and their error flattening."""

from __future__ import annotations

from datetime import date

import pydantic
import pytest

from daily_pulse.schemas import AbsenceIn, MemberIn, MemberPatch, RevisionIn, ScheduleIn, field_errors


def _schedule(**overrides):
    values = dict(
        daily_checkin_time="17:00",
        first_followup_time="09:00",
        followup_interval_hours=2,
        max_followups_per_day=3,
        weekly_summary_day="monday",
        weekly_summary_time="08:00",
        timezone="America/New_York",
    )
    values.update(overrides)
    return values


def _errors(model, data) -> dict:
    with pytest.raises(pydantic.ValidationError) as excinfo:
        model.model_validate(data)
    return field_errors(excinfo.value.errors())


def test_valid_schedule():
    schedule = ScheduleIn.model_validate(_schedule(weekly_summary_day="Friday"))
    assert schedule.weekly_summary_day == "friday"


def test_schedule_errors_are_reported_per_field():
    errors = _errors(ScheduleIn, _schedule(daily_checkin_time="5pm", weekly_summary_day="someday", timezone="Mars/Base"))

    assert set(errors) == {"daily_checkin_time", "weekly_summary_day", "timezone"}
    assert errors["daily_checkin_time"] == "Use HH:MM format (e.g. 17:00)"


def test_followups_must_fit_in_the_day():
    # 20:00 + 1 * 4h lands on midnight.
    errors = _errors(
        ScheduleIn, _schedule(first_followup_time="20:00", followup_interval_hours=4, max_followups_per_day=2)
    )
    assert errors == {"max_followups_per_day": "Follow-ups must all fall before midnight."}


def test_last_followup_at_eleven_pm_is_allowed():
    schedule = ScheduleIn.model_validate(
        _schedule(first_followup_time="20:00", followup_interval_hours=3, max_followups_per_day=2)
    )
    assert schedule.max_followups_per_day == 2


def test_interval_must_be_positive():
    assert "followup_interval_hours" in _errors(ScheduleIn, _schedule(followup_interval_hours=0))


def test_member_fields_are_stripped_and_required():
    member = MemberIn.model_validate({"name": " Carol ", "user_id": "U_C", "role": "QA", "question": "?", "target": ""})
    assert member.name == "Carol"
    assert member.target is None

    errors = _errors(MemberIn, {"name": " ", "user_id": "U_C", "role": "", "question": "?"})
    assert errors == {"name": "This field is required.", "role": "This field is required."}


@pytest.mark.parametrize("target", [-1, 101, "abc"])
def test_member_target_must_be_a_percentage(target):
    errors = _errors(MemberIn, {"name": "Carol", "user_id": "U_C", "role": "QA", "question": "?", "target": target})
    assert list(errors) == ["target"]


def test_member_patch_tracks_only_sent_fields():
    patch = MemberPatch.model_validate({"target": ""})
    assert patch.model_dump(exclude_unset=True) == {"target": None}


def test_absence_dates():
    absence = AbsenceIn.model_validate({"start_date": "2026-10-20", "end_date": "2026-10-20", "reason": "  "})
    assert absence.start_date == date(2026, 10, 20)
    assert absence.reason is None

    errors = _errors(AbsenceIn, {"start_date": "2026-10-22", "end_date": "2026-10-20"})
    assert errors == {"end_date": "End date must be on or after start date."}
    assert "start_date" in _errors(AbsenceIn, {"start_date": "next week", "end_date": "2026-10-20"})


@pytest.mark.parametrize("value", [101, -5, "50", 12.5, True])
def test_revision_value_is_a_strict_percentage(value):
    assert "value" in _errors(RevisionIn, {"value": value})


def test_field_errors_drops_request_locations():
    errors = field_errors(
        [
            {"loc": ("body", "target"), "msg": "Input should be a valid integer"},
            {"loc": ("body", "target"), "msg": "second message"},
            {"loc": ("body",), "msg": "Field required"},
        ]
    )
    assert errors == {"target": "Input should be a valid integer", "body": "Field required"}
