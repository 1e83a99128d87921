"""HTTP client for interacting with Slack Web API."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any, Dict, List, Optional

import httpx

SLACK_API_BASE = "https://slack.com/api"


class SlackApiError(RuntimeError):
    """Raised when Slack returns an error response."""

    def __init__(self, method: str, error: str) -> None:
        super().__init__(f"Slack API error for {method}: {error}")
        self.method = method
        self.error = error


class SlackClient:
    """Simple async wrapper around the Slack Web API endpoints Daily Pulse uses."""

    def __init__(self, token: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._client = httpx.AsyncClient(
            base_url=SLACK_API_BASE,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = await self._client.get(method, params=params)
        return self._check(method, response)

    async def _post(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._client.post(method, json=payload)
        return self._check(method, response)

    @staticmethod
    def _check(method: str, response: httpx.Response) -> Dict[str, Any]:
        response.raise_for_status()
        data = response.json()
        if not data.get("ok"):
            raise SlackApiError(method, data.get("error", "unknown_error"))
        return data

    async def post_message(self, channel: str, text: str, blocks: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"channel": channel, "text": text}
        if blocks is not None:
            payload["blocks"] = blocks
        return await self._post("chat.postMessage", payload)

    async def update_message(
        self, channel: str, ts: str, text: str, blocks: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"channel": channel, "ts": ts, "text": text}
        if blocks is not None:
            payload["blocks"] = blocks
        return await self._post("chat.update", payload)

    async def open_view(self, trigger_id: str, view: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post("views.open", {"trigger_id": trigger_id, "view": view})

    async def iter_channels(self, types: str = "public_channel", limit: int = 200) -> AsyncIterator[dict[str, Any]]:
        """Yield channels from `conversations.list` with pagination."""

        cursor: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"types": types, "limit": limit, "exclude_archived": True}
            if cursor:
                params["cursor"] = cursor
            data = await self._get("conversations.list", params)
            for channel in data.get("channels", []):
                yield channel
            cursor = data.get("response_metadata", {}).get("next_cursor")
            if not cursor:
                break
            await asyncio.sleep(0.2)

    async def create_channel(self, name: str) -> Dict[str, Any]:
        data = await self._post("conversations.create", {"name": name})
        return data["channel"]

    async def invite(self, channel: str, user_id: str) -> None:
        await self._post("conversations.invite", {"channel": channel, "users": user_id})


__all__ = ["SlackClient", "SlackApiError", "SLACK_API_BASE"]
