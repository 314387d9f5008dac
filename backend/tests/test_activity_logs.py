"""
Activity trail: written after each business mutation, read back through
the Access Scope Resolver.
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from emrs.extensions import db
from emrs.models import ActivityLog, Request
from emrs.services import activity_service, request_service
from emrs.services.access_scope import CallerContext


def _create_ppe(caller):
    return request_service.create_request(caller, request_type="ppe", lines=[{"name": "Helmet"}])["id"]


class TestLogActivity:

    def test_request_creation_is_logged(self, callers, users):
        request_id = _create_ppe(callers["engineer"])

        row = db.session.query(ActivityLog).filter_by(action_type="request_created").one()
        assert row.entity_type == "request"
        assert row.entity_id == request_id
        assert row.user_id == users["engineer"].id
        assert row.user_role == "engineer"
        assert row.department_name == "Operations"
        assert row.metadata_json["priority"] == "Medium"

    def test_failure_is_swallowed(self, callers, monkeypatch):
        def broken_row(**kwargs):
            raise SQLAlchemyError("disk full")

        request_id = _create_ppe(callers["engineer"])
        monkeypatch.setattr(activity_service, "ActivityLog", broken_row)

        result = activity_service.log_activity(
            callers["engineer"],
            activity_service.ACTION_REQUEST_COMPLETED,
            entity_type="request",
            entity_id=request_id,
        )
        monkeypatch.undo()

        assert result is None
        assert db.session.get(Request, request_id) is not None
        assert db.session.query(ActivityLog).filter_by(action_type="request_completed").count() == 0


class TestListActivityLogs:

    @pytest.fixture
    def activity(self, callers):
        _create_ppe(callers["engineer"])
        _create_ppe(callers["staff"])
        _create_ppe(callers["other_engineer"])

    def _user_ids(self, result):
        return {log["user_id"] for log in result["logs"]}

    def test_engineer_sees_own_rows(self, callers, users, activity):
        result = activity_service.list_activity_logs(callers["engineer"])
        assert self._user_ids(result) == {users["engineer"].id}

    def test_manager_sees_department_rows(self, departments, make_user, callers, users, activity):
        ops_manager = make_user("manager", departments["Operations"])
        result = activity_service.list_activity_logs(CallerContext.from_user(ops_manager))
        assert self._user_ids(result) == {users["engineer"].id, users["staff"].id}

    def test_manager_may_view_team_member(self, departments, make_user, users, activity):
        ops_manager = make_user("manager", departments["Operations"])
        result = activity_service.list_activity_logs(
            CallerContext.from_user(ops_manager), view_user_id=users["staff"].id
        )
        assert self._user_ids(result) == {users["staff"].id}

    def test_admin_sees_everything(self, callers, activity):
        result = activity_service.list_activity_logs(callers["admin"])
        assert result["total"] == 3

    def test_pagination(self, callers, activity):
        result = activity_service.list_activity_logs(callers["admin"], limit=2, offset=0)
        assert (len(result["logs"]), result["total"], result["limit"]) == (2, 3, 2)
        rest = activity_service.list_activity_logs(callers["admin"], limit=2, offset=2)
        assert len(rest["logs"]) == 1


class TestActivityLogsApi:

    def test_manager_cannot_view_other_department_user(self, client, auth_headers, users):
        resp = client.get(
            f"/api/activity-logs/?view_user_id={users['engineer'].id}",
            headers=auth_headers["hse_manager"],
        )
        assert resp.status_code == 403

    def test_unknown_user_is_404(self, client, auth_headers):
        resp = client.get("/api/activity-logs/?view_user_id=999999", headers=auth_headers["admin"])
        assert resp.status_code == 404

    def test_filter_by_action_type(self, client, auth_headers, callers):
        _create_ppe(callers["engineer"])
        resp = client.get("/api/activity-logs/?action_type=request_created", headers=auth_headers["admin"])
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["total"] == 1
        assert body["logs"][0]["action_type"] == "request_created"
