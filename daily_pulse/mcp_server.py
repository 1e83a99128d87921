"""MCP server exposing read-only Daily Pulse tools."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import load_settings
from .service import build_service

mcp = FastMCP("daily-pulse")

_settings = load_settings()
_service = build_service(_settings)


def _ensure_date(day_str: Optional[str] = None):
    if not day_str:
        return None
    return datetime.strptime(day_str, "%Y-%m-%d").date()


@mcp.tool()
async def get_checkin_status(actor_id: str, date: Optional[str] = None) -> dict:
    """Return who has responded, who is pending and who is out for a day."""

    return _service.status(actor_id, _ensure_date(date)).to_dict()


@mcp.tool()
async def get_weekly_report(date: Optional[str] = None) -> dict:
    """Return the scorecard for the last completed week before the date."""

    report = _service.weekly_report(_ensure_date(date))
    return {"start": report.start.isoformat(), "end": report.end.isoformat(), "text": report.render()}


@mcp.tool()
async def get_member_stats(user_id: str, date: Optional[str] = None) -> dict:
    """Return week-to-date and month-to-date averages for one member."""

    stats = _service.member_stats(user_id, _ensure_date(date))
    if stats is None:
        raise ValueError("member not found")
    return stats


@mcp.tool()
async def get_team(actor_id: str) -> dict:
    """List the team members visible to the actor."""

    return {"team": [member.to_dict() for member in _service.list_team(actor_id)]}


@mcp.tool()
async def get_config(actor_id: str) -> dict:
    summary = _service.config_summary(actor_id)
    return {**summary.to_dict(), "text": summary.render()}


if __name__ == "__main__":  # pragma: no cover
    mcp.run()


__all__ = ["mcp", "get_checkin_status", "get_weekly_report", "get_member_stats", "get_team", "get_config"]
