"""
Equipment catalog: department-owned units managed by admins and the
owning department's manager, with assignment and maintenance history.
"""

import pytest

from emrs.extensions import db
from emrs.models import ActivityLog, Equipment
from emrs.services import equipment_service, maintenance_service
from emrs.services.access_scope import CallerContext
from emrs.validation import ConflictError, NotFoundError, UnauthorizedError, ValidationError


@pytest.fixture
def ops_manager(make_user, departments):
    return make_user("manager", departments["Operations"], name="Ops Manager")


@pytest.fixture
def ops_manager_caller(ops_manager):
    return CallerContext.from_user(ops_manager)


def _log_service(caller, equipment, date):
    return maintenance_service.create_log(caller, {
        "equipment_id": equipment.id,
        "maintenance_type": "Preventive",
        "description": "Service",
        "date": date,
    })


class TestCreateEquipment:

    def test_admin_creates_for_any_department(self, callers, departments):
        equipment = equipment_service.create_equipment(
            "Compressor C1",
            department_id=departments["Logistics"].id,
            location="Yard B",
            caller=callers["admin"],
        )

        assert equipment.status == "Operational"
        assert equipment.added_by == callers["admin"].user_id
        assert equipment.to_dict()["department_name"] == "Logistics"
        activity = db.session.query(ActivityLog).filter_by(action_type="equipment_created").one()
        assert activity.entity_name == "Compressor C1"
        assert activity.metadata_json == {"status": "Operational", "location": "Yard B"}

    def test_manager_defaults_to_own_department(self, ops_manager_caller, departments):
        equipment = equipment_service.create_equipment("Welder W1", caller=ops_manager_caller)
        assert equipment.department_id == departments["Operations"].id

    def test_manager_cannot_create_for_other_department(self, ops_manager_caller, departments):
        with pytest.raises(UnauthorizedError):
            equipment_service.create_equipment(
                "Welder W1", department_id=departments["HSE"].id, caller=ops_manager_caller
            )
        assert db.session.query(Equipment).count() == 0

    def test_without_caller_department_taken_as_given(self, departments):
        equipment = equipment_service.create_equipment("Pump P1", department_id=departments["Stores"].id)
        assert equipment.department_id == departments["Stores"].id
        assert equipment.added_by is None

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_name_required(self, callers, name):
        with pytest.raises(ValidationError, match="Equipment name is required"):
            equipment_service.create_equipment(name, caller=callers["admin"])

    def test_invalid_status(self, callers):
        with pytest.raises(ValidationError, match="Invalid status value"):
            equipment_service.create_equipment("Pump", status="available", caller=callers["admin"])

    def test_unknown_department(self, callers):
        with pytest.raises(NotFoundError, match="Department not found"):
            equipment_service.create_equipment("Pump", department_id=999999, caller=callers["admin"])


class TestUpdateEquipment:

    def test_manager_updates_own_department_unit(self, ops_manager_caller, equipment):
        unit = equipment["Operations"]
        updated = equipment_service.update_equipment(
            ops_manager_caller, unit.id, {"status": "Maintenance", "location": "Workshop"}
        )

        assert (updated.status, updated.location) == ("Maintenance", "Workshop")
        activity = db.session.query(ActivityLog).filter_by(action_type="equipment_modified").one()
        assert activity.metadata_json["changes"]["status"] == {"old": "Operational", "new": "Maintenance"}

    def test_unchanged_values_are_not_logged(self, callers, equipment):
        unit = equipment["Operations"]
        equipment_service.update_equipment(callers["admin"], unit.id, {"name": unit.name})
        assert db.session.query(ActivityLog).filter_by(action_type="equipment_modified").count() == 0

    def test_manager_cannot_touch_other_department(self, callers, equipment):
        with pytest.raises(UnauthorizedError):
            equipment_service.update_equipment(
                callers["hse_manager"], equipment["Operations"].id, {"status": "Retired"}
            )
        db.session.expire_all()
        assert db.session.get(Equipment, equipment["Operations"].id).status == "Operational"

    def test_only_admin_moves_between_departments(self, callers, ops_manager_caller, equipment, departments):
        unit = equipment["Operations"]
        with pytest.raises(UnauthorizedError):
            equipment_service.update_equipment(
                ops_manager_caller, unit.id, {"department_id": departments["HSE"].id}
            )

        moved = equipment_service.update_equipment(callers["admin"], unit.id, {"department_id": departments["HSE"].id})
        assert moved.department_id == departments["HSE"].id

    def test_assign_and_release(self, callers, users, equipment):
        unit = equipment["Operations"]
        assigned = equipment_service.update_equipment(callers["admin"], unit.id, {"assigned_to": users["engineer"].id})
        assert assigned.to_dict()["assigned_to_name"] == users["engineer"].name

        released = equipment_service.update_equipment(callers["admin"], unit.id, {"assigned_to": None})
        assert released.assigned_to is None

    def test_inactive_assignee_rejected(self, callers, make_user, departments, equipment):
        gone = make_user("engineer", departments["Operations"], is_active=False)
        with pytest.raises(NotFoundError, match="Assigned user not found"):
            equipment_service.update_equipment(callers["admin"], equipment["Operations"].id, {"assigned_to": gone.id})

    @pytest.mark.parametrize("payload, error", [
        ({"name": ""}, ValidationError),
        ({"status": "Broken"}, ValidationError),
        ({"last_maintained": "last week"}, ValidationError),
    ])
    def test_invalid_fields(self, callers, equipment, payload, error):
        with pytest.raises(error):
            equipment_service.update_equipment(callers["admin"], equipment["Operations"].id, payload)

    def test_missing_unit(self, callers, departments):
        with pytest.raises(NotFoundError):
            equipment_service.update_equipment(callers["admin"], 999999, {"status": "Retired"})


class TestAssignedEquipment:

    def test_lists_only_callers_active_units(self, callers, users, equipment, departments):
        mine = equipment["Operations"]
        retired = equipment_service.create_equipment(
            "Old Drill", department_id=departments["Operations"].id, status="Retired",
            assigned_to=users["engineer"].id,
        )
        equipment_service.update_equipment(callers["admin"], mine.id, {"assigned_to": users["engineer"].id})
        equipment_service.update_equipment(
            callers["admin"], equipment["Logistics"].id, {"assigned_to": users["other_engineer"].id}
        )

        assigned = equipment_service.list_assigned_equipment(callers["engineer"])

        assert [e.id for e in assigned] == [mine.id]
        assert retired.id not in [e.id for e in assigned]


class TestDeleteEquipment:

    def test_unused_unit_deleted(self, callers, equipment):
        unit_id = equipment["Operations"].id
        equipment_service.delete_equipment(callers["admin"], unit_id)

        assert db.session.get(Equipment, unit_id) is None
        assert db.session.query(ActivityLog).filter_by(action_type="equipment_deleted").count() == 1

    def test_unit_with_maintenance_history_kept(self, callers, equipment):
        unit = equipment["Operations"]
        _log_service(callers["admin"], unit, "2025-03-01")

        with pytest.raises(ConflictError, match="retire it instead"):
            equipment_service.delete_equipment(callers["admin"], unit.id)
        assert db.session.get(Equipment, unit.id) is not None

    def test_missing_unit(self, callers, departments):
        with pytest.raises(NotFoundError):
            equipment_service.delete_equipment(callers["admin"], 999999)


class TestMaintenanceHistory:

    def test_newest_first_and_last_maintained_tracked(self, callers, equipment):
        unit = equipment["Operations"]
        _log_service(callers["admin"], unit, "2025-01-10")
        _log_service(callers["admin"], unit, "2025-03-05")
        _log_service(callers["admin"], unit, "2025-02-01")

        history = maintenance_service.list_equipment_logs(callers["engineer"], unit.id)

        assert [h["date"] for h in history] == ["2025-03-05", "2025-02-01", "2025-01-10"]
        db.session.expire_all()
        assert db.session.get(Equipment, unit.id).last_maintained.isoformat() == "2025-03-05"

    def test_other_department_forbidden(self, callers, equipment):
        with pytest.raises(UnauthorizedError):
            maintenance_service.list_equipment_logs(callers["engineer"], equipment["Logistics"].id)

    def test_missing_unit(self, callers, departments):
        with pytest.raises(NotFoundError):
            maintenance_service.list_equipment_logs(callers["admin"], 999999)


class TestEquipmentApi:

    def test_list_and_filter(self, client, auth_headers, equipment, departments):
        resp = client.get("/api/equipment/", headers=auth_headers["staff"])
        assert resp.status_code == 200
        assert {e["name"] for e in resp.get_json()} == {"Generator G1", "Forklift F2"}

        resp = client.get(
            f"/api/equipment/?department_id={departments['Logistics'].id}", headers=auth_headers["staff"]
        )
        assert [e["name"] for e in resp.get_json()] == ["Forklift F2"]

    def test_get_one(self, client, auth_headers, equipment):
        unit = equipment["Operations"]
        resp = client.get(f"/api/equipment/{unit.id}", headers=auth_headers["engineer"])
        assert resp.status_code == 200
        assert resp.get_json()["name"] == "Generator G1"
        assert client.get("/api/equipment/999999", headers=auth_headers["engineer"]).status_code == 404

    def test_create_requires_manager_or_admin(self, client, auth_headers, departments):
        resp = client.post("/api/equipment/", json={"name": "Pump"}, headers=auth_headers["engineer"])
        assert resp.status_code == 403

        resp = client.post("/api/equipment/", json={"name": "Pump"}, headers=auth_headers["stores_manager"])
        assert resp.status_code == 201
        assert resp.get_json()["department_id"] == departments["Stores"].id

    def test_create_bad_status_is_400(self, client, auth_headers, departments):
        resp = client.post(
            "/api/equipment/", json={"name": "Pump", "status": "available"}, headers=auth_headers["admin"]
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Invalid status value"

    def test_update_and_delete(self, client, auth_headers, equipment):
        unit = equipment["Logistics"]
        resp = client.put(
            f"/api/equipment/{unit.id}", json={"status": "Maintenance"}, headers=auth_headers["logistics_manager"]
        )
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "Maintenance"

        resp = client.put(
            f"/api/equipment/{unit.id}", json={"status": "Retired"}, headers=auth_headers["hse_manager"]
        )
        assert resp.status_code == 403

        assert client.delete(f"/api/equipment/{unit.id}", headers=auth_headers["logistics_manager"]).status_code == 403
        assert client.delete(f"/api/equipment/{unit.id}", headers=auth_headers["admin"]).status_code == 200
        assert client.get(f"/api/equipment/{unit.id}", headers=auth_headers["admin"]).status_code == 404

    def test_my_assigned(self, client, auth_headers, callers, users, equipment):
        equipment_service.update_equipment(
            callers["admin"], equipment["Operations"].id, {"assigned_to": users["engineer"].id}
        )
        resp = client.get("/api/equipment/my-assigned", headers=auth_headers["engineer"])
        assert resp.status_code == 200
        assert [e["name"] for e in resp.get_json()] == ["Generator G1"]

        resp = client.get("/api/equipment/my-assigned", headers=auth_headers["staff"])
        assert resp.get_json() == []

    def test_maintenance_history_scoped(self, client, auth_headers, callers, equipment):
        _log_service(callers["admin"], equipment["Operations"], "2025-03-01")
        unit_id = equipment["Operations"].id

        resp = client.get(f"/api/equipment/{unit_id}/maintenance", headers=auth_headers["staff"])
        assert resp.status_code == 200
        assert len(resp.get_json()) == 1

        resp = client.get(f"/api/equipment/{unit_id}/maintenance", headers=auth_headers["other_engineer"])
        assert resp.status_code == 403
