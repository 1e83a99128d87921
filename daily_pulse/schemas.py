"""Typed request bodies for the admin REST API and schedule validation."""

from __future__ import annotations

from datetime import date
from typing import Annotated, Any, Dict, Iterable, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .validation import WEEKDAYS, is_valid_time, is_valid_timezone

VALUE_ERROR_PREFIX = "Value error, "
REQUEST_LOCATIONS = ("body", "query", "path", "header")


def _clock_time(value: str) -> str:
    if not is_valid_time(value):
        raise ValueError("Use HH:MM format (e.g. 17:00)")
    return value


def _weekday(value: str) -> str:
    if value.lower() not in WEEKDAYS:
        raise ValueError("Pick a day of the week.")
    return value.lower()


def _required(value: str) -> str:
    if not value:
        raise ValueError("This field is required.")
    return value


def _timezone(value: str) -> str:
    if not is_valid_timezone(value):
        raise ValueError("Unknown timezone (use an IANA name such as America/New_York).")
    return value


ClockTime = Annotated[str, AfterValidator(_clock_time)]
Weekday = Annotated[str, AfterValidator(_weekday)]
Timezone = Annotated[str, AfterValidator(_timezone)]
RequiredText = Annotated[str, AfterValidator(_required)]


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class MemberIn(BaseModel):
    """A new team member."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: RequiredText
    user_id: RequiredText
    role: RequiredText
    question: RequiredText
    manager_id: Optional[str] = Field(None, description="Defaults to the caller")
    target: Optional[int] = Field(None, ge=0, le=100, description="On-target threshold in percent")

    @field_validator("target", mode="before")
    @classmethod
    def _blank_target(cls, value: Any) -> Any:
        return _blank_to_none(value)


class MemberPatch(BaseModel):
    """Partial member edit; only fields present in the body change."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[RequiredText] = None
    user_id: Optional[RequiredText] = None
    role: Optional[RequiredText] = None
    question: Optional[RequiredText] = None
    manager_id: Optional[str] = None
    target: Optional[int] = Field(None, ge=0, le=100, description="Blank clears the target")

    @field_validator("target", mode="before")
    @classmethod
    def _blank_target(cls, value: Any) -> Any:
        return _blank_to_none(value)


class ScheduleIn(BaseModel):
    """A complete schedule. Follow-ups must all fire before midnight."""

    daily_checkin_time: ClockTime
    first_followup_time: ClockTime
    followup_interval_hours: int = Field(..., ge=1)
    max_followups_per_day: int = Field(..., ge=0)
    weekly_summary_day: Weekday
    weekly_summary_time: ClockTime
    timezone: Timezone

    @field_validator("max_followups_per_day")
    @classmethod
    def _fits_in_the_day(cls, value: int, info: ValidationInfo) -> int:
        first = info.data.get("first_followup_time")
        interval = info.data.get("followup_interval_hours")
        if first is None or interval is None:
            return value
        if int(first[:2]) + max(value - 1, 0) * interval >= 24:
            raise ValueError("Follow-ups must all fall before midnight.")
        return value


class ScheduleUpdate(BaseModel):
    """Schedule fields to change; the merged result is checked as a ``ScheduleIn``."""

    daily_checkin_time: Optional[ClockTime] = None
    first_followup_time: Optional[ClockTime] = None
    followup_interval_hours: Optional[int] = Field(None, ge=1)
    max_followups_per_day: Optional[int] = Field(None, ge=0)
    weekly_summary_day: Optional[Weekday] = None
    weekly_summary_time: Optional[ClockTime] = None
    timezone: Optional[Timezone] = None


class AbsenceIn(BaseModel):
    user_id: Optional[str] = Field(None, description="Defaults to the caller")
    start_date: date
    end_date: date
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("end_date")
    @classmethod
    def _ends_after_start(cls, value: date, info: ValidationInfo) -> date:
        start = info.data.get("start_date")
        if start is not None and value < start:
            raise ValueError("End date must be on or after start date.")
        return value

    @field_validator("reason", mode="before")
    @classmethod
    def _blank_reason(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        return value.strip() if isinstance(value, str) else value


class RevisionIn(BaseModel):
    value: int = Field(..., strict=True, ge=0, le=100)


def field_errors(errors: Iterable[Dict[str, Any]]) -> Dict[str, str]:
    """Flatten pydantic error records into ``{field: message}``, first message wins."""

    result: Dict[str, str] = {}
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in REQUEST_LOCATIONS]
        field = loc[0] if loc else "body"
        message = str(error.get("msg", "Invalid value"))
        if message.startswith(VALUE_ERROR_PREFIX):
            message = message[len(VALUE_ERROR_PREFIX):]
        result.setdefault(field, message)
    return result


__all__ = [
    "MemberIn",
    "MemberPatch",
    "ScheduleIn",
    "ScheduleUpdate",
    "AbsenceIn",
    "RevisionIn",
    "field_errors",
]
