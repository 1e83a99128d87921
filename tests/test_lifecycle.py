"""Tests for the check-in lifecycle tracker."""

from __future__ import annotations

from datetime import date

from tests.conftest import MONDAY, PREVIOUS_FRIDAY


def test_mark_sent_is_idempotent(tracker):
    tracker.mark_sent("U_A", MONDAY, "Alice")
    tracker.increment_followup("U_A", MONDAY)
    tracker.mark_sent("U_A", MONDAY, "Alice")

    record = tracker.get("U_A", MONDAY)
    assert record.followup_count == 1
    assert record.responded is False


def test_mark_responded_flips_flag(tracker):
    tracker.mark_sent("U_A", MONDAY)
    assert tracker.has_responded("U_A", MONDAY) is False
    tracker.mark_responded("U_A", MONDAY)
    assert tracker.has_responded("U_A", MONDAY) is True


def test_operations_on_missing_records_are_noops(tracker):
    tracker.mark_responded("U_NOBODY", MONDAY)
    tracker.increment_followup("U_NOBODY", MONDAY)
    assert tracker.get("U_NOBODY", MONDAY) is None
    assert tracker.has_responded("U_NOBODY", MONDAY) is False


def test_pending_followups_filters_by_date_state_and_count(tracker):
    tracker.mark_sent("U_A", PREVIOUS_FRIDAY)
    tracker.mark_sent("U_B", PREVIOUS_FRIDAY)
    tracker.mark_sent("U_M", PREVIOUS_FRIDAY)
    tracker.mark_sent("U_A", MONDAY)

    tracker.mark_responded("U_M", PREVIOUS_FRIDAY)
    for _ in range(3):
        tracker.increment_followup("U_B", PREVIOUS_FRIDAY)

    pending = tracker.pending_followups(PREVIOUS_FRIDAY, 3)
    assert [(r.user_id, r.date) for r in pending] == [("U_A", PREVIOUS_FRIDAY)]

    assert [r.user_id for r in tracker.pending_followups(PREVIOUS_FRIDAY, 4)] == ["U_A", "U_B"]


def test_purge_before_is_strict(tracker):
    tracker.mark_sent("U_A", date(2026, 10, 1))
    tracker.mark_sent("U_A", date(2026, 10, 12))
    tracker.mark_sent("U_A", date(2026, 10, 13))

    assert tracker.purge_before(date(2026, 10, 12)) == 1
    assert tracker.get("U_A", date(2026, 10, 1)) is None
    assert tracker.get("U_A", date(2026, 10, 12)) is not None
