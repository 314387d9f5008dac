"""
Access Scope Resolver: pure role/department visibility rules.

No database: requests are stand-in objects with the attributes the
resolver reads.
"""

from types import SimpleNamespace

import pytest

from emrs.services.access_scope import (
    CallerContext,
    Scope,
    TargetUser,
    can_act_on_request,
    can_view_request,
    resolve_scope,
)
from emrs.validation import CrossDepartmentForbidden, UnauthorizedError


ADMIN = CallerContext(user_id=1, role="admin")
MANAGER = CallerContext(user_id=2, role="manager", department_id=10)
ENGINEER = CallerContext(user_id=3, role="engineer", department_id=10)
STAFF = CallerContext(user_id=4, role="staff", department_id=20)


def _request(**overrides):
    fields = {
        "requested_by": 99,
        "department_id": 30,
        "transferred_to_department": None,
        "approved_by": None,
        "transferred_by": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestResolveScope:

    def test_admin_unrestricted(self):
        scope = resolve_scope(ADMIN)
        assert scope.is_unrestricted

    def test_admin_may_target_any_user(self):
        scope = resolve_scope(ADMIN, target_user=TargetUser(user_id=7, department_id=55))
        assert scope == Scope(user_id=7)

    def test_admin_may_target_any_department(self):
        assert resolve_scope(ADMIN, target_department_id=55) == Scope(department_id=55)

    def test_manager_defaults_to_own_department(self):
        assert resolve_scope(MANAGER) == Scope(department_id=10)

    def test_manager_may_target_team_member(self):
        scope = resolve_scope(MANAGER, target_user=TargetUser(user_id=3, department_id=10))
        assert scope == Scope(user_id=3)

    def test_manager_cannot_target_other_department_user(self):
        with pytest.raises(CrossDepartmentForbidden):
            resolve_scope(MANAGER, target_user=TargetUser(user_id=4, department_id=20))

    def test_manager_cannot_target_other_department(self):
        with pytest.raises(CrossDepartmentForbidden):
            resolve_scope(MANAGER, target_department_id=20)

    def test_manager_without_department_denied(self):
        with pytest.raises(UnauthorizedError):
            resolve_scope(CallerContext(user_id=5, role="manager"))

    @pytest.mark.parametrize("caller", [ENGINEER, STAFF])
    def test_engineer_and_staff_see_own_records(self, caller):
        assert resolve_scope(caller) == Scope(user_id=caller.user_id)

    @pytest.mark.parametrize("caller", [ENGINEER, STAFF])
    def test_department_records_for_engineer_and_staff(self, caller):
        scope = resolve_scope(caller, personal_records=False)
        assert scope == Scope(department_id=caller.department_id)

    def test_engineer_target_user_is_ignored(self):
        scope = resolve_scope(ENGINEER, target_user=TargetUser(user_id=4, department_id=20))
        assert scope == Scope(user_id=ENGINEER.user_id)

    def test_unknown_role_denied(self):
        with pytest.raises(UnauthorizedError):
            resolve_scope(CallerContext(user_id=9, role="auditor"))


class TestRequestAccess:

    def test_admin_can_view_anything(self):
        assert can_view_request(ADMIN, _request())

    def test_requester_can_view_own(self):
        assert can_view_request(ENGINEER, _request(requested_by=ENGINEER.user_id))

    def test_engineer_cannot_view_others(self):
        assert not can_view_request(ENGINEER, _request(department_id=10))

    def test_manager_views_department_requests(self):
        assert can_view_request(MANAGER, _request(department_id=10))

    def test_manager_views_requests_transferred_in(self):
        assert can_view_request(MANAGER, _request(department_id=30, transferred_to_department=10))

    def test_manager_views_requests_they_acted_on(self):
        assert can_view_request(MANAGER, _request(transferred_by=MANAGER.user_id))

    def test_manager_cannot_view_other_department(self):
        assert not can_view_request(MANAGER, _request(department_id=30))

    def test_only_owning_manager_or_admin_can_act(self):
        owned = _request(department_id=10)
        assert can_act_on_request(ADMIN, owned)
        assert can_act_on_request(MANAGER, owned)
        assert not can_act_on_request(MANAGER, _request(department_id=30))
        assert not can_act_on_request(ENGINEER, _request(requested_by=ENGINEER.user_id, department_id=10))
