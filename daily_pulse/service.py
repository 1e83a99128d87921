"""Core orchestration logic for Daily Pulse.

``PulseService`` is the single entry point for inbound interactions and every
configuration mutation. Each method loads a fresh config snapshot, asks the
access policy, validates input, and only then touches storage.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pydantic

from . import events
from .absences import AbsenceRegistry
from .access import Action, authorize, effective_manager
from .aggregation import Aggregator, MemberUpdate, WeeklyReport
from .config import AppConfig, ConfigStore, ScheduleConfig, Settings, TeamMember
from .db import Database
from .exceptions import AuthorizationError, ValidationError
from .lifecycle import CheckinTracker
from .messenger import Messenger, SlackMessenger
from .models import ROLES, AbsenceEntry, Answer, BlockerNote, ResponseEntry, Role, RoleGrant
from .responses import ResponseStore
from .roles import RoleStore
from .scheduler import PulseScheduler
from .schemas import AbsenceIn, MemberIn, MemberPatch, ScheduleIn, ScheduleUpdate, field_errors
from .slack_client import SlackClient
from .validation import parse_percentage

logger = logging.getLogger(__name__)

# Modal submissions must key their errors by an input block of the open view.
MODAL_ERROR_BLOCKS = {events.CUSTOM_SUBMIT: "value_block", events.BLOCKER_SUBMIT: "blocker_block"}


@dataclass(slots=True)
class StatusReport:
    """Who has answered today, who is pending, who is out."""

    date: date
    paused: bool
    responded: List[Tuple[TeamMember, int, Optional[str]]] = field(default_factory=list)
    pending: List[TeamMember] = field(default_factory=list)
    absent: List[TeamMember] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "paused": self.paused,
            "responded": [
                {"user_id": m.user_id, "name": m.name, "value": value, "blocker": blocker}
                for m, value, blocker in self.responded
            ],
            "pending": [{"user_id": m.user_id, "name": m.name} for m in self.pending],
            "absent": [{"user_id": m.user_id, "name": m.name} for m in self.absent],
        }

    def render(self) -> str:
        lines = []
        if self.paused:
            lines.append(":double_vertical_bar: *Bot is currently paused* — no check-ins or follow-ups are being sent.")
        lines.append(f"*Check-in Status — {self.date.isoformat()}*")
        responded = [
            f"• <@{m.user_id}> — {value}%{' :warning:' if blocker else ''}" for m, value, blocker in self.responded
        ]
        lines.append(f":white_check_mark: *Responded ({len(self.responded)})*\n" + ("\n".join(responded) or "_None yet_"))
        pending = [f"• <@{m.user_id}>" for m in self.pending]
        lines.append(f":hourglass_flowing_sand: *Pending ({len(self.pending)})*\n" + ("\n".join(pending) or "_None_"))
        absent = [f"• <@{m.user_id}>" for m in self.absent]
        lines.append(f":palm_tree: *Out of Office ({len(self.absent)})*\n" + ("\n".join(absent) or "_None_"))
        return "\n\n".join(lines)


@dataclass(slots=True)
class ConfigSummary:
    """Read-only view of the live configuration for privileged users."""

    config: AppConfig
    paused: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.config.version,
            "paused": self.paused,
            "schedule": asdict(self.config.schedule),
            "team_size": len(self.config.team),
            "scorecard_channel": self.config.scorecard_channel_name,
        }

    def render(self) -> str:
        schedule = self.config.schedule
        lines = [
            "*Daily Pulse Configuration*",
            f"• Status: {'Paused' if self.paused else 'Active'}",
            f"• Daily check-in: {schedule.daily_checkin_time} ({schedule.timezone})",
            f"• Follow-ups: up to {schedule.max_followups_per_day}, every {schedule.followup_interval_hours}h"
            f" from {schedule.first_followup_time}",
            f"• Weekly summary: {schedule.weekly_summary_day.capitalize()} at {schedule.weekly_summary_time}",
            f"• Team size: {len(self.config.team)}",
        ]
        return "\n".join(lines)


@dataclass(slots=True)
class RoleSummary:
    """Admin panel: who holds which role and whether the bot is paused."""

    admins: List[RoleGrant]
    managers: List[RoleGrant]
    paused: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "paused": self.paused,
            "admins": [asdict(grant) for grant in self.admins],
            "managers": [asdict(grant) for grant in self.managers],
        }

    def render(self) -> str:
        admins = ", ".join(f"<@{grant.user_id}>" for grant in self.admins) or "_None_"
        managers = ", ".join(f"<@{grant.user_id}>" for grant in self.managers) or "_None_"
        status = ":double_vertical_bar: Paused" if self.paused else ":white_check_mark: Active"
        return f"*Daily Pulse Admin*\n\n*Bot Status:* {status}\n*Admins:* {admins}\n*Managers:* {managers}"


def modal_error(exc: ValidationError, block: str) -> str:
    """Pick the message to show under ``block`` of a rejected modal."""

    return exc.errors.get(block) or next(iter(exc.errors.values()), "Invalid submission.")


class PulseService:
    def __init__(
        self,
        config_store: ConfigStore,
        roles: RoleStore,
        absences: AbsenceRegistry,
        responses: ResponseStore,
        tracker: CheckinTracker,
        messenger: Messenger,
        aggregator: Optional[Aggregator] = None,
        scheduler: Optional[PulseScheduler] = None,
    ) -> None:
        self.config_store = config_store
        self.roles = roles
        self.absences = absences
        self.responses = responses
        self.tracker = tracker
        self.messenger = messenger
        self.aggregator = aggregator or Aggregator(responses, absences)
        self.scheduler = scheduler

    # region Lifecycle
    async def start(self) -> None:
        config = self.config_store.load()
        if isinstance(self.messenger, SlackMessenger):
            try:
                await self.messenger.ensure_channel(config)
            except Exception:  # noqa: BLE001
                logger.exception("Could not provision scorecard channel; will retry on first post")
        if self.scheduler is not None:
            self.scheduler.start(config)

    def shutdown(self) -> None:
        if self.scheduler is not None:
            self.scheduler.shutdown()

    # endregion

    # region Check-in answers
    async def submit_answer(self, answer: Answer) -> Optional[MemberUpdate]:
        """Record a first answer for (user, date) and post the scorecard update.

        Duplicate deliveries are discarded silently: either the lifecycle
        record is already marked responded, or the unique key on ``responses``
        rejects the second insert. Only the winning insert posts an update.
        """

        if self.tracker.has_responded(answer.user_id, answer.date):
            logger.info("Duplicate response from %s for %s; ignoring", answer.user_id, answer.date)
            return None

        config = self.config_store.load()
        member = config.find_member(answer.user_id)
        if member is None:
            logger.warning("Unknown slack_id in response: %s", answer.user_id)
            return None

        value = parse_percentage(answer.value)
        entry = ResponseEntry(
            user_id=member.user_id,
            name=member.name,
            role=member.role,
            question=member.question,
            date=answer.date,
            value=value,
            responded_at=datetime.now(timezone.utc).isoformat(),
        )
        if not self.responses.add(entry):
            logger.info("Response from %s for %s already stored; ignoring", answer.user_id, answer.date)
            self.tracker.mark_responded(answer.user_id, answer.date)
            return None
        self.tracker.mark_responded(answer.user_id, answer.date)
        logger.info("%s responded %s%% for %s", member.name, value, answer.date)

        update = self.aggregator.member_update(member, entry, config.timezone)
        await self._post_update(update)
        return update

    async def revise_answer(self, actor: str, user_id: str, day: date, raw_value: Any) -> MemberUpdate:
        """Explicit "edit my answer": overwrite an existing value for ``day``."""

        if actor != user_id:
            raise AuthorizationError("You can only edit your own answers.")
        value = parse_percentage(raw_value)
        config = self.config_store.load()
        member = config.find_member(user_id)
        if member is None:
            raise ValidationError({"user_id": "You are not on the team."})
        if not self.responses.revise(user_id, day, value):
            raise ValidationError({"date": f"There is no answer for {day.isoformat()} to edit."})
        entry = self.responses.get(user_id, day)
        logger.info("%s revised answer for %s to %s%%", member.name, day, value)
        update = self.aggregator.member_update(member, entry, config.timezone)
        await self._post_update(update)
        return update

    def add_blocker_note(self, note: Optional[BlockerNote]) -> bool:
        if note is None:
            return False
        if not self.responses.update_blocker(note.user_id, note.date, note.text):
            logger.warning("No response for %s on %s to attach blocker to", note.user_id, note.date)
            return False
        logger.info("Blocker recorded for %s on %s", note.user_id, note.date)
        return True

    async def _post_update(self, update: MemberUpdate) -> None:
        try:
            await self.messenger.deliver_aggregate_update(update.render())
        except Exception:  # noqa: BLE001
            logger.exception("Failed to post scorecard update for %s", update.name)

    async def handle_interaction(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Dispatch one Slack interaction; return a response body when Slack needs one."""

        kind = events.classify(payload)
        try:
            if kind == events.ANSWER:
                answer = events.collect_answer(payload)
                update = await self.submit_answer(answer)
                location = events.message_location(payload)
                if update is not None and location is not None:
                    await self._confirm(location, answer)
            elif kind == events.CUSTOM_SUBMIT:
                await self.submit_answer(events.collect_answer(payload))
            elif kind == events.BLOCKER_SUBMIT:
                self.add_blocker_note(events.collect_blocker_note(payload))
            elif kind == events.CUSTOM_REQUEST:
                user_id, day = events.action_context(payload)
                member = self.config_store.load().find_member(user_id)
                if member is None:
                    logger.warning("Unknown slack_id in custom entry request: %s", user_id)
                elif self.tracker.has_responded(user_id, day):
                    logger.info("Custom entry requested after %s answered for %s; ignoring", user_id, day)
                else:
                    await self.messenger.open_custom_entry(payload.get("trigger_id", ""), member, day)
            elif kind == events.BLOCKER_REQUEST:
                user_id, day = events.action_context(payload)
                await self.messenger.open_blocker_form(payload.get("trigger_id", ""), user_id, day)
            else:
                logger.debug("Ignoring interaction of type %s", payload.get("type"))
        except ValidationError as exc:
            block = MODAL_ERROR_BLOCKS.get(kind)
            if block is not None:
                logger.info("Rejected %s submission: %s", kind, exc)
                return {"response_action": "errors", "errors": {block: modal_error(exc, block)}}
            logger.warning("Rejected %s interaction: %s", kind, exc)
        return None

    async def _confirm(self, location: Tuple[str, str], answer: Answer) -> None:
        member = self.config_store.load().find_member(answer.user_id)
        if member is None:
            return
        try:
            await self.messenger.confirm_answer(location[0], location[1], member, answer.date, answer.value)
        except Exception:  # noqa: BLE001
            logger.warning("Could not update original message for %s", answer.user_id, exc_info=True)

    # endregion

    # region Team management
    @staticmethod
    def _check_duplicate(config: AppConfig, user_id: str, ignore: Optional[str] = None) -> None:
        for existing in config.team:
            if existing.user_id == user_id and existing.user_id != ignore:
                raise ValidationError({"user_id": f'This user is already on the team as "{existing.name}".'})

    def add_member(self, actor: str, data: MemberIn) -> TeamMember:
        config = self.config_store.load()
        authorize(self.roles, actor, Action.ADD_MEMBER).enforce()
        member = TeamMember(
            name=data.name,
            user_id=data.user_id,
            manager_id=effective_manager(self.roles, actor, data.manager_id or actor),
            role=data.role,
            question=data.question,
            target=data.target,
        )
        self._check_duplicate(config, member.user_id)
        config.team.append(member)
        self.config_store.save(config)
        logger.info("Added team member: %s (%s) by %s", member.name, member.user_id, actor)
        return member

    def edit_member(self, actor: str, user_id: str, data: MemberPatch) -> TeamMember:
        config = self.config_store.load()
        current = config.find_member(user_id)
        authorize(self.roles, actor, Action.EDIT_MEMBER, member=current).enforce()
        # An explicit null only clears the target; other fields keep their value.
        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key == "target"
        }
        updated = replace(
            current,
            **{key: value for key, value in changes.items() if key != "manager_id"},
            manager_id=effective_manager(self.roles, actor, changes.get("manager_id") or current.manager_id),
        )
        self._check_duplicate(config, updated.user_id, ignore=current.user_id)
        config.team[config.team.index(current)] = updated
        self.config_store.save(config)
        logger.info("Updated team member %s by %s", updated.name, actor)
        return updated

    def remove_member(self, actor: str, user_id: str) -> TeamMember:
        config = self.config_store.load()
        member = config.find_member(user_id)
        authorize(self.roles, actor, Action.REMOVE_MEMBER, member=member).enforce()
        if len(config.team) == 1:
            raise ValidationError({"user_id": "The team cannot be empty."})
        config.team.remove(member)
        self.config_store.save(config)
        logger.info("Removed team member: %s by %s", member.name, actor)
        return member

    def list_team(self, actor: str) -> List[TeamMember]:
        """Admins see the whole team, managers their direct reports."""

        config = self.config_store.load()
        authorize(self.roles, actor, Action.VIEW_TEAM).enforce()
        if self.roles.get_role(actor) == "admin":
            return list(config.team)
        return config.reports_of(actor)

    def update_schedule(self, actor: str, data: ScheduleUpdate) -> AppConfig:
        """Merge ``data`` into the current schedule and rebuild every scheduled job."""

        config = self.config_store.load()
        authorize(self.roles, actor, Action.EDIT_SCHEDULE).enforce()
        merged = {**asdict(config.schedule), **data.model_dump(exclude_unset=True, exclude_none=True)}
        try:
            schedule = ScheduleIn.model_validate(merged)
        except pydantic.ValidationError as exc:
            raise ValidationError(field_errors(exc.errors())) from exc
        config.schedule = ScheduleConfig.from_model(schedule)
        self.config_store.save(config)
        logger.info("Schedule updated by %s, rescheduling jobs...", actor)
        if self.scheduler is not None:
            self.scheduler.reschedule_all(config)
        return config

    def config_summary(self, actor: str) -> ConfigSummary:
        config = self.config_store.load()
        authorize(self.roles, actor, Action.VIEW_CONFIG).enforce()
        return ConfigSummary(config=config, paused=self.config_store.is_paused())

    def set_paused(self, actor: str, paused: bool) -> None:
        authorize(self.roles, actor, Action.PAUSE).enforce()
        self.config_store.set_paused(paused)
        logger.info("Bot %s by %s", "paused" if paused else "resumed", actor)

    # endregion

    # region Roles
    @staticmethod
    def _role(value: Any) -> Role:
        if value not in ROLES:
            raise ValidationError({"role": "Role must be admin or manager."})
        return value

    def grant_role(self, actor: str, user_id: str, role: Any) -> None:
        role = self._role(role)
        authorize(self.roles, actor, Action.GRANT_ROLE, target_user=user_id, role=role).enforce()
        if not self.roles.grant(user_id, role, actor):
            raise AuthorizationError(f"This user is already a {role}.")
        logger.info("%s granted %s to %s", actor, role, user_id)

    def revoke_role(self, actor: str, user_id: str, role: Any) -> None:
        role = self._role(role)
        authorize(self.roles, actor, Action.REVOKE_ROLE, target_user=user_id, role=role).enforce()
        if not self.roles.revoke(user_id, role):
            raise AuthorizationError("Cannot remove the last admin." if role == "admin" else f"This user is not a {role}.")
        logger.info("%s revoked %s from %s", actor, role, user_id)

    def list_roles(self, actor: str) -> RoleSummary:
        authorize(self.roles, actor, Action.VIEW_ROLES).enforce()
        return RoleSummary(
            admins=self.roles.list_by_role("admin"),
            managers=self.roles.list_by_role("manager"),
            paused=self.config_store.is_paused(),
        )

    # endregion

    # region Absences
    def set_absence(self, actor: str, data: AbsenceIn) -> int:
        user_id = data.user_id or actor
        config = self.config_store.load()
        authorize(self.roles, actor, Action.SET_ABSENCE, target_user=user_id, team=config.team).enforce()
        entry_id = self.absences.add(user_id, data.start_date, data.end_date, data.reason, actor)
        logger.info("OOO set by %s for %s: %s to %s", actor, user_id, data.start_date, data.end_date)
        return entry_id

    def list_absences(self, user_id: str) -> List[AbsenceEntry]:
        return self.absences.upcoming(user_id, self.config_store.load().today())

    def clear_absences(self, actor: str) -> int:
        count = self.absences.clear(actor, self.config_store.load().today())
        logger.info("Cleared %s OOO entries for %s", count, actor)
        return count

    def remove_absence(self, actor: str, entry_id: int) -> bool:
        entry = self.absences.get(entry_id)
        if entry is None:
            logger.info("OOO entry %s not found", entry_id)
            return False
        config = self.config_store.load()
        authorize(self.roles, actor, Action.SET_ABSENCE, target_user=entry.user_id, team=config.team).enforce()
        return self.absences.remove(entry_id)

    # endregion

    # region Reporting
    def status(self, actor: str, today: Optional[date] = None) -> StatusReport:
        config = self.config_store.load()
        authorize(self.roles, actor, Action.VIEW_STATUS).enforce()
        today = today or config.today()
        visible = config.team if self.roles.is_admin(actor) else config.reports_of(actor)
        report = StatusReport(date=today, paused=self.config_store.is_paused())
        answers = {entry.user_id: entry for entry in self.responses.for_day(today)}
        for member in visible:
            if member.is_placeholder:
                continue
            if self.absences.is_absent(member.user_id, today):
                report.absent.append(member)
                continue
            entry = answers.get(member.user_id)
            if entry is not None:
                report.responded.append((member, entry.value, entry.blocker))
            else:
                report.pending.append(member)
        return report

    def weekly_report(self, today: Optional[date] = None) -> WeeklyReport:
        config = self.config_store.load()
        return self.aggregator.weekly_report(config, today or config.today())

    def member_stats(self, user_id: str, today: Optional[date] = None) -> Optional[Dict[str, object]]:
        config = self.config_store.load()
        member = config.find_member(user_id)
        if member is None:
            return None
        return self.aggregator.member_stats(member, today or config.today())

    # endregion


def build_service(settings: Settings, client: Optional[SlackClient] = None) -> PulseService:
    """Open storage, run one-time migrations and wire the collaborators.

    Raises when the database cannot be opened or no configuration can be
    loaded; callers treat both as fatal.
    """

    database = Database(settings.database_path)
    config_store = ConfigStore(database)
    config_store.seed_from_file(settings.config_seed_path)
    database.import_legacy_history(settings.legacy_history_path)
    roles = RoleStore(database)
    roles.seed_admins(settings.admin_user_ids)
    config_store.load()

    absences = AbsenceRegistry(database)
    responses = ResponseStore(database)
    tracker = CheckinTracker(database)
    aggregator = Aggregator(responses, absences)
    messenger = SlackMessenger(client or SlackClient(settings.slack_bot_token), config_store)
    scheduler = PulseScheduler(config_store, tracker, messenger, aggregator)
    return PulseService(
        config_store=config_store,
        roles=roles,
        absences=absences,
        responses=responses,
        tracker=tracker,
        messenger=messenger,
        aggregator=aggregator,
        scheduler=scheduler,
    )


__all__ = ["PulseService", "StatusReport", "ConfigSummary", "RoleSummary", "build_service"]
