"""Tests for Slack request verification and interaction decoding."""

from __future__ import annotations

import hashlib
import hmac
import json
from datetime import date
from urllib.parse import urlencode

import pytest

from daily_pulse import events
from daily_pulse.exceptions import ValidationError

SECRET = "8f742231b10e8888abcd99yyyzzz85a5"


def _sign(body: bytes, timestamp: str, secret: str = SECRET) -> str:
    base = f"v0:{timestamp}:".encode() + body
    return "v0=" + hmac.new(secret.encode(), base, hashlib.sha256).hexdigest()


def _blocker_payload(user_id: str, text: str | None) -> dict:
    return {
        "type": "view_submission",
        "user": {"id": user_id},
        "view": {
            "callback_id": "checkin_blocker_modal",
            "private_metadata": json.dumps({"date": "2026-10-19", "slack_id": user_id}),
            "state": {"values": {"blocker_block": {"blocker_input": {"value": text}}}},
        },
    }


def test_valid_signature_is_accepted():
    body = b"payload=%7B%7D"
    assert events.verify_signature(SECRET, "1700000000", body, _sign(body, "1700000000"), now=1700000010)


@pytest.mark.parametrize(
    "timestamp, signature_secret, now",
    [
        ("1700000000", "wrong-secret", 1700000010),
        ("1700000000", SECRET, 1700000000 + 301),
        ("not-a-number", SECRET, 1700000000),
    ],
)
def test_invalid_signatures_are_rejected(timestamp, signature_secret, now):
    body = b"payload=%7B%7D"
    signature = _sign(body, timestamp, signature_secret)
    assert not events.verify_signature(SECRET, timestamp, body, signature, now=now)


def test_missing_headers_are_rejected():
    assert not events.verify_signature(SECRET, None, b"", "v0=abc")
    assert not events.verify_signature(SECRET, "1700000000", b"", None)


def test_parse_payload():
    payload = {"type": "block_actions", "user": {"id": "U_A"}}
    body = urlencode({"payload": json.dumps(payload)}).encode()
    assert events.parse_payload(body) == payload
    with pytest.raises(ValueError):
        events.parse_payload(b"token=abc")


def test_classify():
    assert events.classify({"type": "block_actions", "actions": [{"action_id": "checkin_response_60"}]}) == events.ANSWER
    assert events.classify({"type": "block_actions", "actions": [{"action_id": "checkin_custom"}]}) == events.CUSTOM_REQUEST
    assert events.classify({"type": "block_actions", "actions": [{"action_id": "checkin_add_blocker"}]}) == events.BLOCKER_REQUEST
    assert events.classify({"type": "view_submission", "view": {"callback_id": "checkin_custom_modal"}}) == events.CUSTOM_SUBMIT
    assert events.classify({"type": "block_actions", "actions": []}) == events.UNKNOWN
    assert events.classify({"type": "shortcut"}) == events.UNKNOWN


def test_collect_quick_answer():
    payload = {
        "type": "block_actions",
        "user": {"id": "U_A"},
        "actions": [
            {
                "action_id": "checkin_response_40",
                "value": json.dumps({"date": "2026-10-16", "slack_id": "U_A", "value": 40}),
            }
        ],
    }
    answer = events.collect_answer(payload)
    assert (answer.user_id, answer.date, answer.value) == ("U_A", date(2026, 10, 16), 40)


def test_quick_answer_from_another_user_is_rejected():
    payload = {
        "type": "block_actions",
        "user": {"id": "U_B"},
        "actions": [
            {
                "action_id": "checkin_response_40",
                "value": json.dumps({"date": "2026-10-16", "slack_id": "U_A", "value": 40}),
            }
        ],
    }
    with pytest.raises(ValidationError):
        events.collect_answer(payload)


@pytest.mark.parametrize("raw", ["abc", "12.5", "-1", "101", "", None])
def test_custom_entry_rejects_invalid_values(raw):
    payload = {
        "type": "view_submission",
        "user": {"id": "U_A"},
        "view": {
            "callback_id": "checkin_custom_modal",
            "private_metadata": json.dumps({"date": "2026-10-19", "slack_id": "U_A"}),
            "state": {"values": {"value_block": {"value_input": {"value": raw}}}},
        },
    }
    with pytest.raises(ValidationError) as excinfo:
        events.collect_answer(payload)
    assert excinfo.value.errors == {"value_block": "Enter a whole number between 0 and 100."}


def test_malformed_reference_is_a_validation_error():
    payload = {"type": "block_actions", "actions": [{"action_id": "checkin_custom", "value": "{not json"}]}
    with pytest.raises(ValidationError):
        events.action_context(payload)


def test_blocker_note():
    note = events.collect_blocker_note(_blocker_payload("U_A", "  Waiting on design  "))
    assert note.text == "Waiting on design"
    assert note.date == date(2026, 10, 19)


def test_blank_blocker_note_is_discarded():
    assert events.collect_blocker_note(_blocker_payload("U_A", "   ")) is None
    assert events.collect_blocker_note(_blocker_payload("U_A", None)) is None


def test_message_location():
    assert events.message_location({"channel": {"id": "D1"}, "message": {"ts": "1.2"}}) == ("D1", "1.2")
    assert events.message_location({"type": "view_submission"}) is None
