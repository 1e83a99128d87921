"""Tests for averages, window boundaries and scorecard rendering."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from daily_pulse.aggregation import (
    average,
    month_start,
    previous_week,
    target_verdict,
    week_start,
)
from daily_pulse.models import ResponseEntry


def _entry(user_id: str, day: date, value: int) -> ResponseEntry:
    return ResponseEntry(
        user_id=user_id,
        name="Alice",
        role="Engineer",
        question="Roadmap?",
        date=day,
        value=value,
        responded_at="2026-10-12T21:00:00+00:00",
    )


def test_average_of_nothing_is_none():
    assert average([]) is None


@pytest.mark.parametrize(
    "values, expected",
    [([80, 60], 70), ([81, 80], 81), ([80, 81], 81), ([80, 80, 81], 80), ([100], 100)],
)
def test_average_rounds_half_up(values, expected):
    assert average(values) == expected


def test_average_accepts_response_entries():
    assert average([_entry("U_A", date(2026, 10, 12), 80), _entry("U_A", date(2026, 10, 13), 40)]) == 60


def test_week_and_month_start():
    assert week_start(date(2026, 10, 21)) == date(2026, 10, 19)
    assert week_start(date(2026, 10, 19)) == date(2026, 10, 19)
    assert week_start(date(2026, 10, 25)) == date(2026, 10, 19)
    assert month_start(date(2026, 10, 21)) == date(2026, 10, 1)


def test_boundaries_use_the_configured_timezone():
    # 02:00 UTC on Monday is still Sunday evening in New York.
    moment = datetime(2026, 10, 19, 2, 0, tzinfo=timezone.utc)
    assert week_start(moment, "America/New_York") == date(2026, 10, 12)
    assert week_start(moment, "UTC") == date(2026, 10, 19)
    assert month_start(datetime(2026, 11, 1, 3, 0, tzinfo=timezone.utc), "America/New_York") == date(2026, 10, 1)


def test_previous_week():
    assert previous_week(date(2026, 10, 19)) == (date(2026, 10, 12), date(2026, 10, 18))
    assert previous_week(date(2026, 10, 23)) == (date(2026, 10, 12), date(2026, 10, 18))


def test_target_verdict():
    assert target_verdict(60, 60) is True
    assert target_verdict(59, 60) is False
    assert target_verdict(None, 60) is None
    assert target_verdict(70, None) is None


def test_member_update_after_monday_and_tuesday(config_store, responses, aggregator):
    alice = config_store.load().find_member("U_A")
    monday, tuesday = date(2026, 10, 12), date(2026, 10, 13)
    responses.add(_entry("U_A", date(2026, 10, 1), 100))
    responses.add(_entry("U_A", monday, 80))
    tuesday_entry = _entry("U_A", tuesday, 40)
    responses.add(tuesday_entry)

    update = aggregator.member_update(alice, tuesday_entry, "America/New_York")
    assert update.week_average == 60
    assert update.month_average == 73
    assert update.on_target is False
    text = update.render()
    assert "> Today: *40%*" in text
    assert "> Weekly avg: *60%*" in text
    assert ":x: Off target (≥60%)" in text


def test_member_update_without_target(config_store, responses, aggregator):
    mona = config_store.load().find_member("U_M")
    entry = _entry("U_M", date(2026, 10, 12), 50)
    responses.add(entry)
    update = aggregator.member_update(mona, entry)
    assert update.on_target is None
    assert "target" not in update.render()


def test_weekly_report_scenario(config_store, responses, absences, aggregator):
    config = config_store.load()
    responses.add(_entry("U_A", date(2026, 10, 12), 80))
    responses.add(_entry("U_A", date(2026, 10, 13), 40))
    absences.add("U_B", date(2026, 10, 15), date(2026, 10, 16), None, "U_B")

    report = aggregator.weekly_report(config, date(2026, 10, 19))
    assert (report.start, report.end) == (date(2026, 10, 12), date(2026, 10, 18))

    rows = {row.name: row for row in report.rows}
    assert set(rows) == {"Alice", "Mona", "Bob"}
    alice = rows["Alice"]
    assert alice.days == [80, 40, "—", "—", "—"]
    assert alice.week_average == 60
    assert alice.on_target is True
    assert rows["Bob"].days == ["—", "—", "—", "OOO", "OOO"]
    assert rows["Bob"].week_average is None

    text = report.render()
    assert "Weekly Scorecard — 2026-10-12 to 2026-10-18" in text
    assert "> Mon: 80% | Tue: 40% | Wed: — | Thu: — | Fri: —" in text
    assert "> Weekly avg: *60%* :white_check_mark: (≥60%)" in text
    assert "> Weekly avg: *N/A*" in text


def test_member_stats(config_store, responses, aggregator):
    alice = config_store.load().find_member("U_A")
    responses.add(_entry("U_A", date(2026, 10, 19), 90))
    responses.add(_entry("U_A", date(2026, 10, 2), 30))
    stats = aggregator.member_stats(alice, date(2026, 10, 20))
    assert stats["week_average"] == 90
    assert stats["month_average"] == 60
    assert stats["latest_value"] == 90
    assert stats["on_target"] is True
