"""Decoding of inbound Slack interaction payloads."""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from datetime import date
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qs

from .exceptions import ValidationError
from .messenger import (
    ANSWER_ACTION_PREFIX,
    BLOCKER_ACTION_ID,
    BLOCKER_CALLBACK_ID,
    CUSTOM_ACTION_ID,
    CUSTOM_CALLBACK_ID,
)
from .models import Answer, BlockerNote
from .validation import parse_iso_date, parse_percentage

SIGNATURE_VERSION = "v0"
MAX_CLOCK_SKEW_SECONDS = 60 * 5

ANSWER = "answer"
CUSTOM_REQUEST = "custom_request"
BLOCKER_REQUEST = "blocker_request"
CUSTOM_SUBMIT = "custom_submit"
BLOCKER_SUBMIT = "blocker_submit"
UNKNOWN = "unknown"


def verify_signature(
    signing_secret: str,
    timestamp: Optional[str],
    body: bytes,
    signature: Optional[str],
    now: Optional[float] = None,
) -> bool:
    """Check Slack's ``X-Slack-Signature`` header for a request body."""

    if not timestamp or not signature:
        return False
    try:
        sent_at = int(timestamp)
    except ValueError:
        return False
    current = time.time() if now is None else now
    if abs(current - sent_at) > MAX_CLOCK_SKEW_SECONDS:
        return False
    base = f"{SIGNATURE_VERSION}:{timestamp}:".encode() + body
    expected = SIGNATURE_VERSION + "=" + hmac.new(signing_secret.encode(), base, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def parse_payload(body: bytes) -> Dict[str, Any]:
    form = parse_qs(body.decode("utf-8"))
    raw = form.get("payload")
    if not raw:
        raise ValueError("interaction body has no payload field")
    return json.loads(raw[0])


def _first_action(payload: Dict[str, Any]) -> Dict[str, Any]:
    actions = payload.get("actions") or []
    return actions[0] if actions else {}


def classify(payload: Dict[str, Any]) -> str:
    kind = payload.get("type")
    if kind == "block_actions":
        action_id = _first_action(payload).get("action_id", "")
        if action_id.startswith(ANSWER_ACTION_PREFIX):
            return ANSWER
        if action_id == CUSTOM_ACTION_ID:
            return CUSTOM_REQUEST
        if action_id == BLOCKER_ACTION_ID:
            return BLOCKER_REQUEST
    elif kind == "view_submission":
        callback_id = payload.get("view", {}).get("callback_id")
        if callback_id == CUSTOM_CALLBACK_ID:
            return CUSTOM_SUBMIT
        if callback_id == BLOCKER_CALLBACK_ID:
            return BLOCKER_SUBMIT
    return UNKNOWN


def actor_id(payload: Dict[str, Any]) -> str:
    return payload.get("user", {}).get("id", "")


def _context(raw: str) -> Tuple[str, date]:
    try:
        data = json.loads(raw)
        return data["slack_id"], parse_iso_date(data["date"], "date")
    except (TypeError, ValueError, KeyError) as exc:
        raise ValidationError({"payload": "Malformed check-in reference."}) from exc


def _check_actor(payload: Dict[str, Any], user_id: str) -> None:
    actor = actor_id(payload)
    if actor and actor != user_id:
        raise ValidationError({"user_id": "This check-in belongs to someone else."})


def action_context(payload: Dict[str, Any]) -> Tuple[str, date]:
    """Return the (user, date) a button click refers to."""

    user_id, day = _context(_first_action(payload).get("value", ""))
    _check_actor(payload, user_id)
    return user_id, day


def view_context(payload: Dict[str, Any]) -> Tuple[str, date]:
    user_id, day = _context(payload.get("view", {}).get("private_metadata", ""))
    _check_actor(payload, user_id)
    return user_id, day


def _input_value(payload: Dict[str, Any], block_id: str, action_id: str) -> Optional[str]:
    values = payload.get("view", {}).get("state", {}).get("values", {})
    return values.get(block_id, {}).get(action_id, {}).get("value")


def collect_answer(payload: Dict[str, Any]) -> Answer:
    """Decode an answer from a quick-answer click or a custom-entry submission.

    Values are validated as integers 0..100; a rejected custom entry raises
    ``ValidationError`` keyed by the modal block id so Slack can show it inline.
    """

    kind = classify(payload)
    if kind == ANSWER:
        try:
            data = json.loads(_first_action(payload).get("value", ""))
            user_id, day = data["slack_id"], parse_iso_date(data["date"], "date")
        except (TypeError, ValueError, KeyError) as exc:
            raise ValidationError({"payload": "Malformed check-in answer."}) from exc
        _check_actor(payload, user_id)
        return Answer(user_id=user_id, date=day, value=parse_percentage(data.get("value"), "value"))
    if kind == CUSTOM_SUBMIT:
        user_id, day = view_context(payload)
        value = parse_percentage(_input_value(payload, "value_block", "value_input"), "value_block")
        return Answer(user_id=user_id, date=day, value=value)
    raise ValueError(f"payload of kind {kind!r} carries no answer")


def collect_blocker_note(payload: Dict[str, Any]) -> Optional[BlockerNote]:
    """Return the blocker note, or ``None`` when the text is blank."""

    user_id, day = view_context(payload)
    text = (_input_value(payload, "blocker_block", "blocker_input") or "").strip()
    if not text:
        return None
    return BlockerNote(user_id=user_id, date=day, text=text)


def message_location(payload: Dict[str, Any]) -> Optional[Tuple[str, str]]:
    channel = payload.get("channel", {}).get("id")
    ts = payload.get("message", {}).get("ts")
    if channel and ts:
        return channel, ts
    return None


__all__ = [
    "verify_signature",
    "parse_payload",
    "classify",
    "actor_id",
    "action_context",
    "view_context",
    "collect_answer",
    "collect_blocker_note",
    "message_location",
    "ANSWER",
    "CUSTOM_REQUEST",
    "BLOCKER_REQUEST",
    "CUSTOM_SUBMIT",
    "BLOCKER_SUBMIT",
    "UNKNOWN",
]
