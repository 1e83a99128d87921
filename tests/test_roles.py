"""Tests for the role store."""

from __future__ import annotations

from daily_pulse.roles import RoleStore


def test_grant_is_rejected_when_already_held(roles):
    assert roles.grant("U_NEW", "manager", "U_ADMIN") is True
    assert roles.grant("U_NEW", "manager", "U_ADMIN") is False
    assert roles.get_role("U_NEW") == "manager"


def test_admin_outranks_manager(roles):
    roles.grant("U_M", "admin", "U_ADMIN")
    assert roles.get_role("U_M") == "admin"
    assert roles.get_role("U_STRANGER") is None


def test_last_admin_cannot_be_revoked(roles):
    assert roles.admin_count() == 1
    assert roles.revoke("U_ADMIN", "admin") is False
    assert roles.is_admin("U_ADMIN")


def test_one_of_two_admins_can_be_revoked(roles):
    roles.grant("U_SECOND", "admin", "U_ADMIN")
    assert roles.revoke("U_ADMIN", "admin") is True
    assert roles.admin_count() == 1
    assert roles.revoke("U_SECOND", "admin") is False


def test_list_by_role(roles):
    assert [grant.user_id for grant in roles.list_by_role("manager")] == ["U_M", "U_OTHER"]
    assert roles.list_by_role("admin")[0].added_by == "SYSTEM"


def test_seed_admins_only_on_empty_table(database, roles):
    assert roles.seed_admins(["U_X"]) == 0

    with database.transaction() as conn:
        conn.execute("DELETE FROM roles")
    fresh = RoleStore(database)
    assert fresh.seed_admins(["U_X", "U_Y"]) == 2
    assert fresh.is_admin("U_Y")
    assert fresh.seed_admins(["U_Z"]) == 0
