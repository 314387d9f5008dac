# Overview: Service-layer operations for the department equipment catalog.

"""
Equipment Catalog Service

Equipment is owned by a department. Admins manage every unit; managers
create and edit only their own department's units. Deletion is refused
once a unit has maintenance or request history (retire it instead), so
no log or request line is ever orphaned.

STATUS: Operational | Maintenance | Retired
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..extensions import db
from ..models import Department, Equipment, MaintenanceLog, Request, User
from ..models.inventory import EQUIPMENT_STATUS_OPERATIONAL, EQUIPMENT_STATUS_RETIRED, EQUIPMENT_STATUSES
from ..validation import (
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    to_optional_int,
    to_text,
)
from . import activity_service
from .access_scope import CallerContext
from .concurrency import lock_for_update, run_in_transaction
from emrs.time_utils import parse_iso_date


logger = logging.getLogger(__name__)


# Fields a PUT may change, in the order changes are reported
EDITABLE_FIELDS = (
    "name",
    "description",
    "serial_number",
    "location",
    "status",
    "assigned_to",
    "last_maintained",
    "department_id",
)


def _validate_status(status: Any) -> str:
    status = to_text(status)
    if status not in EQUIPMENT_STATUSES:
        raise ValidationError("Invalid status value")
    return status


def _resolve_department(department_id: Optional[int]) -> Optional[int]:
    if department_id is not None and db.session.get(Department, department_id) is None:
        raise NotFoundError("Department not found")
    return department_id


def _resolve_assignee(user_id: Optional[int]) -> Optional[int]:
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise NotFoundError("Assigned user not found")
    return user.id


def _parse_date(value: Any):
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError("last_maintained must be an ISO date (YYYY-MM-DD)")


def _ensure_department_authority(caller: CallerContext, department_id: Optional[int]) -> None:
    if caller.is_admin:
        return
    if department_id is None or department_id != caller.department_id:
        raise UnauthorizedError("You can only manage equipment in your department.")


def list_equipment(*, department_id: int | None = None, status: str | None = None) -> list[Equipment]:
    query = db.session.query(Equipment)
    if department_id is not None:
        query = query.filter(Equipment.department_id == department_id)
    if status:
        query = query.filter(Equipment.status == status)
    return query.order_by(Equipment.created_at.desc(), Equipment.id.desc()).all()


def list_assigned_equipment(caller: CallerContext) -> list[Equipment]:
    """Equipment currently held by caller, retired units excluded."""
    return (
        db.session.query(Equipment)
        .filter(
            Equipment.assigned_to == caller.user_id,
            Equipment.status != EQUIPMENT_STATUS_RETIRED,
        )
        .order_by(Equipment.updated_at.desc(), Equipment.id.desc())
        .all()
    )


def get_equipment(equipment_id: int) -> Equipment:
    equipment = db.session.get(Equipment, equipment_id)
    if equipment is None:
        raise NotFoundError("Equipment not found")
    return equipment


def create_equipment(
    name: Any,
    *,
    department_id: int | None = None,
    serial_number: Any = None,
    description: Any = None,
    location: Any = None,
    status: Any = None,
    assigned_to: int | None = None,
    caller: Optional[CallerContext] = None,
) -> Equipment:
    """
    Add a unit to the catalog.

    With a caller (API), a manager's equipment always belongs to the
    manager's own department. Without one (CLI), department_id is taken
    as given.

    Raises:
        ValidationError: missing name or unknown status
        UnauthorizedError: manager naming another department
        NotFoundError: unknown department or assignee
    """
    name = to_text(name)
    if not name:
        raise ValidationError("Equipment name is required")
    status = _validate_status(status) if status not in (None, "") else EQUIPMENT_STATUS_OPERATIONAL

    if caller is not None and not caller.is_admin:
        if department_id is None:
            department_id = caller.department_id
        _ensure_department_authority(caller, department_id)

    def _op():
        equipment = Equipment(
            name=name,
            description=to_text(description),
            serial_number=to_text(serial_number),
            location=to_text(location),
            department_id=_resolve_department(department_id),
            status=status,
            assigned_to=_resolve_assignee(assigned_to),
            added_by=caller.user_id if caller else None,
        )
        db.session.add(equipment)
        db.session.flush()
        return equipment

    equipment = run_in_transaction(_op)
    logger.info("Created equipment %s (%s, department=%s)", equipment.id, name, equipment.department_id)
    activity_service.log_activity(
        caller,
        activity_service.ACTION_EQUIPMENT_CREATED,
        entity_type="equipment",
        entity_id=equipment.id,
        entity_name=equipment.name,
        description=f"Created equipment: {equipment.name}",
        metadata={"status": equipment.status, "location": equipment.location},
    )
    return equipment


def _jsonable(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def _coerce_field(field: str, value: Any) -> Any:
    if field == "name":
        name = to_text(value)
        if not name:
            raise ValidationError("Equipment name cannot be empty")
        return name
    if field == "status":
        return _validate_status(value)
    if field == "assigned_to":
        return _resolve_assignee(to_optional_int(value, "assigned_to"))
    if field == "department_id":
        return _resolve_department(to_optional_int(value, "department_id"))
    if field == "last_maintained":
        return _parse_date(value)
    return to_text(value)


def update_equipment(caller: CallerContext, equipment_id: int, payload: dict) -> Equipment:
    """
    Partial update: only keys present in payload change.

    assigned_to: null releases the unit. department_id may only be changed
    by an admin.

    Raises:
        NotFoundError: unknown equipment, department or assignee
        UnauthorizedError: manager editing another department's unit, or
            moving a unit between departments
        ValidationError: empty name, unknown status, bad date
    """
    def _op():
        equipment = lock_for_update(db.session.query(Equipment).filter(Equipment.id == equipment_id)).first()
        if equipment is None:
            raise NotFoundError("Equipment not found")
        _ensure_department_authority(caller, equipment.department_id)
        if "department_id" in payload and not caller.is_admin:
            raise UnauthorizedError("Only administrators can move equipment between departments.")

        changes = {}
        for field in EDITABLE_FIELDS:
            if field not in payload:
                continue
            new_value = _coerce_field(field, payload[field])
            old_value = getattr(equipment, field)
            if new_value != old_value:
                setattr(equipment, field, new_value)
                changes[field] = {"old": _jsonable(old_value), "new": _jsonable(new_value)}
        db.session.flush()
        return equipment, changes

    equipment, changes = run_in_transaction(_op)
    logger.info("Equipment %s updated by user %s: %s", equipment.id, caller.user_id, sorted(changes))
    if changes:
        activity_service.log_activity(
            caller,
            activity_service.ACTION_EQUIPMENT_MODIFIED,
            entity_type="equipment",
            entity_id=equipment.id,
            entity_name=equipment.name,
            description=f"Modified equipment: {equipment.name}",
            metadata={"changes": changes},
        )
    return equipment


def delete_equipment(caller: CallerContext, equipment_id: int) -> None:
    """
    Remove a unit that has never been serviced or requested.

    Raises:
        NotFoundError: unknown equipment
        ConflictError: maintenance logs or request lines reference it
    """
    def _op():
        equipment = lock_for_update(db.session.query(Equipment).filter(Equipment.id == equipment_id)).first()
        if equipment is None:
            raise NotFoundError("Equipment not found")

        has_logs = db.session.query(MaintenanceLog.id).filter(MaintenanceLog.equipment_id == equipment.id).first()
        has_requests = db.session.query(Request.id).filter(Request.equipment_id == equipment.id).first()
        if has_logs or has_requests:
            raise ConflictError("Equipment has maintenance or request history; retire it instead")

        name = equipment.name
        db.session.delete(equipment)
        db.session.flush()
        return name

    name = run_in_transaction(_op)
    logger.info("Equipment %s (%s) deleted by user %s", equipment_id, name, caller.user_id)
    activity_service.log_activity(
        caller,
        activity_service.ACTION_EQUIPMENT_DELETED,
        entity_type="equipment",
        entity_id=equipment_id,
        entity_name=name,
        description=f"Deleted equipment: {name}",
    )
