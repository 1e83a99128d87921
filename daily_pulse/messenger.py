"""Messaging collaborator: the contract the engine needs and its Slack implementation."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Protocol

import httpx

from .config import AppConfig, ConfigStore, TeamMember
from .exceptions import DeliveryError
from .slack_client import SlackApiError, SlackClient

logger = logging.getLogger(__name__)

QUICK_ANSWERS = (20, 40, 60, 80, 100)
ANSWER_ACTION_PREFIX = "checkin_response_"
CUSTOM_ACTION_ID = "checkin_custom"
BLOCKER_ACTION_ID = "checkin_add_blocker"
CUSTOM_CALLBACK_ID = "checkin_custom_modal"
BLOCKER_CALLBACK_ID = "checkin_blocker_modal"


class Messenger(Protocol):
    async def deliver_prompt(self, member: TeamMember, day: date) -> None: ...

    async def deliver_followup(self, member: TeamMember, day: date, attempt: int) -> None: ...

    async def deliver_aggregate_update(self, text: str) -> None: ...

    async def deliver_weekly_report(self, text: str) -> None: ...

    async def confirm_answer(self, channel: str, ts: str, member: TeamMember, day: date, value: int) -> None: ...

    async def open_custom_entry(self, trigger_id: str, member: TeamMember, day: date) -> None: ...

    async def open_blocker_form(self, trigger_id: str, user_id: str, day: date) -> None: ...


def followup_text(attempt: int, day: date) -> str:
    if attempt <= 1:
        return f":wave: Friendly reminder — I still need your check-in for {day.isoformat()}."
    return f":bell: Reminder #{attempt} — please submit your check-in for {day.isoformat()}."


def answer_blocks(member: TeamMember, day: date, intro: str) -> List[Dict[str, Any]]:
    buttons: List[Dict[str, Any]] = [
        {
            "type": "button",
            "text": {"type": "plain_text", "text": f"{pct}%"},
            "action_id": f"{ANSWER_ACTION_PREFIX}{pct}",
            "value": json.dumps({"date": day.isoformat(), "slack_id": member.user_id, "value": pct}),
        }
        for pct in QUICK_ANSWERS
    ]
    buttons.append(
        {
            "type": "button",
            "text": {"type": "plain_text", "text": "Custom"},
            "action_id": CUSTOM_ACTION_ID,
            "value": json.dumps({"date": day.isoformat(), "slack_id": member.user_id}),
        }
    )
    return [
        {"type": "section", "text": {"type": "mrkdwn", "text": f"{intro}\n{member.question}"}},
        {"type": "actions", "elements": buttons},
    ]


def confirmation_blocks(member: TeamMember, day: date, value: int) -> List[Dict[str, Any]]:
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"*Daily Check-in — {day.isoformat()}*\n{member.question}\n\n"
                f"You answered: *{value}%* :white_check_mark:",
            },
        },
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Add blocker"},
                    "action_id": BLOCKER_ACTION_ID,
                    "value": json.dumps({"date": day.isoformat(), "slack_id": member.user_id}),
                }
            ],
        },
    ]


def custom_entry_view(member: TeamMember, day: date) -> Dict[str, Any]:
    return {
        "type": "modal",
        "callback_id": CUSTOM_CALLBACK_ID,
        "private_metadata": json.dumps({"date": day.isoformat(), "slack_id": member.user_id}),
        "title": {"type": "plain_text", "text": "Daily Check-in"},
        "submit": {"type": "plain_text", "text": "Submit"},
        "blocks": [
            {
                "type": "input",
                "block_id": "value_block",
                "label": {"type": "plain_text", "text": member.question[:150]},
                "element": {"type": "plain_text_input", "action_id": "value_input"},
            }
        ],
    }


def blocker_view(user_id: str, day: date) -> Dict[str, Any]:
    return {
        "type": "modal",
        "callback_id": BLOCKER_CALLBACK_ID,
        "private_metadata": json.dumps({"date": day.isoformat(), "slack_id": user_id}),
        "title": {"type": "plain_text", "text": "Add a blocker"},
        "submit": {"type": "plain_text", "text": "Save"},
        "blocks": [
            {
                "type": "input",
                "block_id": "blocker_block",
                "optional": True,
                "label": {"type": "plain_text", "text": "What is blocking you?"},
                "element": {"type": "plain_text_input", "action_id": "blocker_input", "multiline": True},
            }
        ],
    }


class SlackMessenger:
    """Delivers prompts and scorecards through the Slack Web API."""

    def __init__(self, client: SlackClient, config_store: ConfigStore) -> None:
        self.client = client
        self.config_store = config_store
        self._channel_id: Optional[str] = None
        self._channel_lock = asyncio.Lock()

    async def _send(self, channel: str, text: str, blocks: Optional[List[Dict[str, Any]]] = None) -> None:
        try:
            await self.client.post_message(channel, text, blocks)
        except (SlackApiError, httpx.HTTPError) as exc:
            raise DeliveryError(f"could not post to {channel}: {exc}") from exc

    async def deliver_prompt(self, member: TeamMember, day: date) -> None:
        await self._send(member.user_id, member.question, answer_blocks(member, day, "*Daily Check-in*"))

    async def deliver_followup(self, member: TeamMember, day: date, attempt: int) -> None:
        text = followup_text(attempt, day)
        await self._send(member.user_id, text, answer_blocks(member, day, f"{text}\n"))

    async def deliver_aggregate_update(self, text: str) -> None:
        channel = await self.ensure_channel()
        await self._send(channel, text, [{"type": "section", "text": {"type": "mrkdwn", "text": text}}])

    async def deliver_weekly_report(self, text: str) -> None:
        await self.deliver_aggregate_update(text)

    async def confirm_answer(self, channel: str, ts: str, member: TeamMember, day: date, value: int) -> None:
        text = f"You answered *{value}%* for {day.isoformat()}. :white_check_mark:"
        await self.client.update_message(channel, ts, text, confirmation_blocks(member, day, value))

    async def open_custom_entry(self, trigger_id: str, member: TeamMember, day: date) -> None:
        await self.client.open_view(trigger_id, custom_entry_view(member, day))

    async def open_blocker_form(self, trigger_id: str, user_id: str, day: date) -> None:
        await self.client.open_view(trigger_id, blocker_view(user_id, day))

    async def ensure_channel(self, config: Optional[AppConfig] = None) -> str:
        """Find or create the scorecard channel and invite the team, once."""

        if self._channel_id:
            return self._channel_id
        async with self._channel_lock:
            if self._channel_id:
                return self._channel_id
            return await self._provision_channel(config or self.config_store.load())

    async def _provision_channel(self, config: AppConfig) -> str:
        name = config.scorecard_channel_name
        try:
            channel_id: Optional[str] = None
            async for channel in self.client.iter_channels():
                if channel.get("name") == name:
                    channel_id = channel["id"]
                    break
            if channel_id is None:
                channel_id = (await self.client.create_channel(name))["id"]
                logger.info("Created scorecard channel #%s", name)
        except (SlackApiError, httpx.HTTPError) as exc:
            raise DeliveryError(f"could not provision #{name}: {exc}") from exc

        for member in config.active_members():
            try:
                await self.client.invite(channel_id, member.user_id)
            except SlackApiError as exc:
                if exc.error != "already_in_channel":
                    logger.warning("Could not invite %s to #%s: %s", member.name, name, exc.error)
            except httpx.HTTPError as exc:
                logger.warning("Could not invite %s to #%s: %s", member.name, name, exc)

        self._channel_id = channel_id
        return channel_id


__all__ = [
    "Messenger",
    "SlackMessenger",
    "QUICK_ANSWERS",
    "ANSWER_ACTION_PREFIX",
    "CUSTOM_ACTION_ID",
    "BLOCKER_ACTION_ID",
    "CUSTOM_CALLBACK_ID",
    "BLOCKER_CALLBACK_ID",
    "followup_text",
]
