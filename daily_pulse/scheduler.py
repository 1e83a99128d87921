"""Timezone-aware job scheduling for prompts, follow-ups and the weekly report.

All armed jobs live in a registry owned by one ``PulseScheduler``. A rebuild
cancels every registered job before arming the new set, and each job carries
the generation it was armed under so a fire from a superseded generation is
dropped.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .aggregation import Aggregator
from .config import AppConfig, ConfigStore
from .lifecycle import CheckinTracker
from .messenger import Messenger
from .validation import WEEKDAYS, parse_time

logger = logging.getLogger(__name__)

DAILY_JOB = "daily-checkin"
WEEKLY_JOB = "weekly-summary"
WEEKDAYS_ONLY = "mon-fri"
RETENTION_DAYS = 7


def followup_job_name(attempt: int) -> str:
    return f"followup-{attempt}"


class JobState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    FIRING = "firing"


def previous_business_day(now: datetime | date) -> date:
    """Friday for Monday and Sunday, otherwise the day before."""

    day = now.date() if isinstance(now, datetime) else now
    weekday = day.weekday()
    if weekday == 0:
        return day - timedelta(days=3)
    if weekday == 6:
        return day - timedelta(days=2)
    return day - timedelta(days=1)


class PulseScheduler:
    def __init__(
        self,
        config_store: ConfigStore,
        tracker: CheckinTracker,
        messenger: Messenger,
        aggregator: Aggregator,
        scheduler: Optional[AsyncIOScheduler] = None,
    ) -> None:
        self.config_store = config_store
        self.tracker = tracker
        self.messenger = messenger
        self.aggregator = aggregator
        self._scheduler = scheduler or AsyncIOScheduler()
        self._jobs: Dict[str, Job] = {}
        self._states: Dict[str, JobState] = {}
        self._generation = 0

    # region Lifecycle
    @property
    def generation(self) -> int:
        return self._generation

    @property
    def jobs(self) -> Dict[str, Job]:
        return dict(self._jobs)

    def state(self, name: str) -> JobState:
        return self._states.get(name, JobState.IDLE)

    def start(self, config: Optional[AppConfig] = None, paused: bool = False) -> None:
        self.reschedule_all(config or self.config_store.load())
        self._scheduler.start(paused=paused)

    def shutdown(self) -> None:
        self.cancel_all()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def cancel_all(self) -> None:
        for name, job in list(self._jobs.items()):
            try:
                self._scheduler.remove_job(job.id)
            except JobLookupError:
                logger.debug("Job %s already gone", name)
            self._states[name] = JobState.IDLE
        self._jobs.clear()

    def reschedule_all(self, config: AppConfig) -> None:
        """Cancel every armed job, then arm a fresh set from ``config``.

        There is no await between the two steps, so no fire can interleave.
        """

        logger.info("Cancelling %s scheduled job(s)", len(self._jobs))
        self.cancel_all()
        self._generation += 1
        self._arm(config)
        logger.info("Scheduled jobs registered (config v%s):", config.version)
        for line in self.describe():
            logger.info("  %s", line)

    def _add(self, name: str, func, trigger: CronTrigger, **kwargs) -> None:
        job = self._scheduler.add_job(
            func,
            trigger,
            id=name,
            name=name,
            kwargs={"generation": self._generation, **kwargs},
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=300,
        )
        self._jobs[name] = job
        self._states[name] = JobState.ARMED

    def _arm(self, config: AppConfig) -> None:
        schedule = config.schedule
        tz = schedule.timezone

        hour, minute = parse_time(schedule.daily_checkin_time)
        self._add(DAILY_JOB, self.run_daily_checkin, CronTrigger(day_of_week=WEEKDAYS_ONLY, hour=hour, minute=minute, timezone=tz))

        first_hour, first_minute = parse_time(schedule.first_followup_time)
        for attempt in range(schedule.max_followups_per_day):
            self._add(
                followup_job_name(attempt),
                self.run_followups,
                CronTrigger(
                    day_of_week=WEEKDAYS_ONLY,
                    hour=first_hour + attempt * schedule.followup_interval_hours,
                    minute=first_minute,
                    timezone=tz,
                ),
                attempt=attempt,
            )

        summary_hour, summary_minute = parse_time(schedule.weekly_summary_time)
        self._add(
            WEEKLY_JOB,
            self.run_weekly_summary,
            CronTrigger(
                day_of_week=WEEKDAYS[schedule.weekly_summary_day.lower()],
                hour=summary_hour,
                minute=summary_minute,
                timezone=tz,
            ),
        )

    def next_fire_times(self, now: datetime) -> Dict[str, Optional[datetime]]:
        return {name: job.trigger.get_next_fire_time(None, now) for name, job in self._jobs.items()}

    def describe(self) -> List[str]:
        lines = []
        for name, job in self._jobs.items():
            trigger: CronTrigger = job.trigger
            fields = {f.name: str(f) for f in trigger.fields}
            lines.append(
                f"{name}: {int(fields['hour']):02d}:{int(fields['minute']):02d} "
                f"{trigger.timezone} ({fields['day_of_week']})"
            )
        return lines

    # endregion

    # region Job bodies
    def _is_stale(self, name: str, generation: Optional[int]) -> bool:
        if generation is not None and generation != self._generation:
            logger.info("Dropping %s fire from superseded generation %s", name, generation)
            return True
        return False

    def _settle(self, name: str, generation: Optional[int]) -> None:
        """Return a finished job to ARMED, or IDLE when it is no longer registered.

        A rebuild during the fire has already set the state of every name it
        touched, so a superseded fire leaves the state alone.
        """

        if generation is not None and generation != self._generation:
            return
        self._states[name] = JobState.ARMED if name in self._jobs else JobState.IDLE

    @staticmethod
    def _local_now(config: AppConfig, now: Optional[datetime]) -> datetime:
        return now.astimezone(config.zone) if now else config.now()

    async def run_daily_checkin(self, generation: Optional[int] = None, now: Optional[datetime] = None) -> int:
        """Prompt every active member for today; return how many were sent."""

        if self._is_stale(DAILY_JOB, generation):
            return 0
        config = self.config_store.load()
        if self.config_store.is_paused():
            logger.info("Bot is paused; skipping daily check-in")
            return 0

        self._states[DAILY_JOB] = JobState.FIRING
        sent = 0
        try:
            local_now = self._local_now(config, now)
            today = local_now.date()
            logger.info("[%s] Running daily check-in for %s", local_now.isoformat(), today)
            for member in config.active_members():
                if self._is_stale(DAILY_JOB, generation):
                    break
                try:
                    await self.messenger.deliver_prompt(member, today)
                    self.tracker.mark_sent(member.user_id, today, member.name)
                    sent += 1
                    logger.info("  Sent check-in DM to %s", member.name)
                except Exception:  # noqa: BLE001
                    logger.exception("  Failed to send check-in to %s", member.name)
        finally:
            self._settle(DAILY_JOB, generation)
        return sent

    async def run_followups(self, attempt: int = 0, generation: Optional[int] = None, now: Optional[datetime] = None) -> int:
        name = followup_job_name(attempt)
        if self._is_stale(name, generation):
            return 0
        config = self.config_store.load()
        if self.config_store.is_paused():
            logger.info("Bot is paused; skipping follow-up #%s", attempt + 1)
            return 0

        self._states[name] = JobState.FIRING
        sent = 0
        try:
            local_now = self._local_now(config, now)
            target = previous_business_day(local_now)
            logger.info("[%s] Running follow-up #%s for %s", local_now.isoformat(), attempt + 1, target)
            for record in self.tracker.pending_followups(target, config.schedule.max_followups_per_day):
                if self._is_stale(name, generation):
                    break
                member = config.find_member(record.user_id)
                if member is None:
                    logger.warning("  No team member %s for pending check-in; skipping", record.user_id)
                    continue
                try:
                    await self.messenger.deliver_followup(member, target, record.followup_count + 1)
                    self.tracker.increment_followup(record.user_id, target)
                    sent += 1
                    logger.info("  Follow-up #%s sent to %s", record.followup_count + 1, member.name)
                except Exception:  # noqa: BLE001
                    logger.exception("  Failed follow-up to %s", member.name)
        finally:
            self._settle(name, generation)
        return sent

    async def run_weekly_summary(self, generation: Optional[int] = None, now: Optional[datetime] = None) -> Optional[str]:
        if self._is_stale(WEEKLY_JOB, generation):
            return None
        config = self.config_store.load()
        self._states[WEEKLY_JOB] = JobState.FIRING
        text: Optional[str] = None
        try:
            local_now = self._local_now(config, now)
            logger.info("[%s] Running weekly summary", local_now.isoformat())
            today = local_now.date()
            try:
                text = self.aggregator.weekly_report(config, today).render()
                await self.messenger.deliver_weekly_report(text)
            except Exception:  # noqa: BLE001
                logger.exception("Failed to post weekly summary")

            purged = self.tracker.purge_before(today - timedelta(days=RETENTION_DAYS))
            logger.info("Purged %s check-in record(s) older than %s days", purged, RETENTION_DAYS)
        finally:
            self._settle(WEEKLY_JOB, generation)
        return text

    # endregion


__all__ = [
    "PulseScheduler",
    "JobState",
    "previous_business_day",
    "followup_job_name",
    "DAILY_JOB",
    "WEEKLY_JOB",
]
