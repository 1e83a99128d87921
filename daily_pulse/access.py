"""Access control policy for every mutating Daily Pulse operation.

The policy is stateless: each check reads the current role grants from the
``RoleStore`` and the caller's fresh team snapshot, so decisions are never
made against cached data.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from .config import TeamMember
from .exceptions import AuthorizationError
from .models import Role
from .roles import RoleStore


class Action(str, Enum):
    ADD_MEMBER = "add_member"
    EDIT_MEMBER = "edit_member"
    REMOVE_MEMBER = "remove_member"
    EDIT_SCHEDULE = "edit_schedule"
    GRANT_ROLE = "grant_role"
    REVOKE_ROLE = "revoke_role"
    SET_ABSENCE = "set_absence"
    PAUSE = "pause"
    VIEW_STATUS = "view_status"
    VIEW_TEAM = "view_team"
    VIEW_CONFIG = "view_config"
    VIEW_ROLES = "view_roles"


@dataclass(frozen=True, slots=True)
class Decision:
    allowed: bool
    reason: str = ""
    field: Optional[str] = None

    def enforce(self) -> None:
        if not self.allowed:
            raise AuthorizationError(self.reason)


ALLOW = Decision(True)


def deny(reason: str, field: Optional[str] = None) -> Decision:
    return Decision(False, reason, field)


def is_admin(roles: RoleStore, user_id: str) -> bool:
    return roles.is_admin(user_id)


def is_manager(roles: RoleStore, user_id: str) -> bool:
    return roles.is_manager(user_id)


def has_any_privileged_role(roles: RoleStore, user_id: str) -> bool:
    return roles.has_any_role(user_id)


def can_manage_member(roles: RoleStore, actor: str, member: Optional[TeamMember]) -> Decision:
    """Admins manage anyone; managers only members reporting to them."""

    if member is None:
        return deny("That team member no longer exists.", "user_id")
    if is_admin(roles, actor):
        return ALLOW
    if not has_any_privileged_role(roles, actor):
        return deny("You need the admin or manager role to manage the team.")
    if member.manager_id != actor:
        return deny("You can only edit your own direct reports.", "name")
    return ALLOW


def check_grant(roles: RoleStore, actor: str, target_user: str, role: Role) -> Decision:
    if not is_admin(roles, actor):
        return deny("Only admins can change roles.")
    if roles.has_role(target_user, role):
        return deny(f"This user is already {_article(role)} {role}.", "user_id")
    return ALLOW


def check_revoke(roles: RoleStore, actor: str, target_user: str, role: Role) -> Decision:
    if not is_admin(roles, actor):
        return deny("Only admins can change roles.")
    if not roles.has_role(target_user, role):
        return deny(f"This user is not {_article(role)} {role}.", "user_id")
    if role == "admin" and roles.admin_count() <= 1:
        return deny("Cannot remove the last admin.", "user_id")
    return ALLOW


def check_set_absence(
    roles: RoleStore, actor: str, target_user: str, team: Sequence[TeamMember]
) -> Decision:
    if actor == target_user or is_admin(roles, actor):
        return ALLOW
    member = next((m for m in team if m.user_id == target_user), None)
    if member is None or member.manager_id != actor or not has_any_privileged_role(roles, actor):
        return deny("You can only set OOO for your direct reports.", "user_id")
    return ALLOW


def authorize(
    roles: RoleStore,
    actor: str,
    action: Action,
    *,
    member: Optional[TeamMember] = None,
    team: Sequence[TeamMember] = (),
    target_user: Optional[str] = None,
    role: Optional[Role] = None,
) -> Decision:
    """Single entry point consumed by every mutating service method and admin view."""

    if action in (Action.ADD_MEMBER, Action.VIEW_STATUS, Action.VIEW_TEAM, Action.VIEW_CONFIG):
        if has_any_privileged_role(roles, actor):
            return ALLOW
        return deny("You need the admin or manager role to do that.")
    if action in (Action.EDIT_MEMBER, Action.REMOVE_MEMBER):
        return can_manage_member(roles, actor, member)
    if action in (Action.EDIT_SCHEDULE, Action.PAUSE, Action.VIEW_ROLES):
        return ALLOW if is_admin(roles, actor) else deny("Only admins can do that.")
    if action is Action.GRANT_ROLE:
        return check_grant(roles, actor, _require(target_user), _require(role))
    if action is Action.REVOKE_ROLE:
        return check_revoke(roles, actor, _require(target_user), _require(role))
    if action is Action.SET_ABSENCE:
        return check_set_absence(roles, actor, _require(target_user), team)
    raise ValueError(f"unknown action {action!r}")


def effective_manager(roles: RoleStore, actor: str, requested: str) -> str:
    """Managers may only place members under themselves."""

    return requested if is_admin(roles, actor) else actor


def _require(value):
    if value is None:
        raise ValueError("missing argument for access check")
    return value


def _article(role: str) -> str:
    return "an" if role[0] in "aeiou" else "a"


__all__ = [
    "Action",
    "Decision",
    "ALLOW",
    "is_admin",
    "is_manager",
    "has_any_privileged_role",
    "can_manage_member",
    "check_grant",
    "check_revoke",
    "check_set_absence",
    "authorize",
    "effective_manager",
]
