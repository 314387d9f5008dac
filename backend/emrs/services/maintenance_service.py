# Overview: Service-layer operations for equipment maintenance logs (department scoped).

"""
Maintenance Log Service

Maintenance logs belong to the department that owns the equipment, not to
the user who wrote them. Listing asks the Access Scope Resolver for a
department-level scope (personal_records=False): admins see everything,
everyone else sees their own department's equipment.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from ..extensions import db
from ..models import Equipment, MaintenanceLog
from ..validation import (
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    to_int,
    to_optional_int,
    to_text,
)
from . import activity_service
from .access_scope import CallerContext, resolve_scope
from .concurrency import run_in_transaction
from emrs.time_utils import parse_iso_date


logger = logging.getLogger(__name__)


DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def list_logs(
    caller: CallerContext,
    *,
    equipment_id: int | None = None,
    maintenance_type: str | None = None,
    department_id: int | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> dict:
    """Maintenance logs visible to caller, newest service date first."""
    scope = resolve_scope(caller, target_department_id=department_id, personal_records=False)

    query = db.session.query(MaintenanceLog).join(Equipment, MaintenanceLog.equipment_id == Equipment.id)
    query = scope.apply(query, MaintenanceLog.created_by, Equipment.department_id)
    if equipment_id is not None:
        query = query.filter(MaintenanceLog.equipment_id == equipment_id)
    if maintenance_type:
        query = query.filter(MaintenanceLog.maintenance_type == maintenance_type)

    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)
    total = query.count()
    rows = (
        query.order_by(MaintenanceLog.date.desc(), MaintenanceLog.created_at.desc(), MaintenanceLog.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return {
        "logs": [row.to_dict() for row in rows],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + len(rows) < total,
        },
    }


def get_log(caller: CallerContext, log_id: int) -> dict:
    log = db.session.get(MaintenanceLog, log_id)
    if log is None:
        raise NotFoundError("Maintenance log not found")
    if not caller.is_admin and log.equipment.department_id != caller.department_id:
        raise UnauthorizedError("Not authorized to view this maintenance log. It belongs to another department.")
    return log.to_dict()


def list_equipment_logs(caller: CallerContext, equipment_id: int) -> list[dict]:
    """Full service history of one unit, newest service date first."""
    equipment = db.session.get(Equipment, equipment_id)
    if equipment is None:
        raise NotFoundError("Equipment not found")
    if not caller.is_admin and equipment.department_id != caller.department_id:
        raise UnauthorizedError("Not authorized to view this equipment's maintenance history.")

    rows = (
        db.session.query(MaintenanceLog)
        .filter(MaintenanceLog.equipment_id == equipment.id)
        .order_by(MaintenanceLog.date.desc(), MaintenanceLog.created_at.desc(), MaintenanceLog.id.desc())
        .all()
    )
    return [row.to_dict() for row in rows]

def _parse_cost(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        cost = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError("cost must be a number")
    if cost < 0:
        raise ValidationError("cost cannot be negative")
    return cost


def create_log(caller: CallerContext, payload: dict) -> dict:
    """
    Record maintenance on a piece of equipment.

    Non-admins may only log against their own department's equipment.

    Raises:
        ValidationError: missing equipment_id/maintenance_type/description/date
        NotFoundError: equipment does not exist
        UnauthorizedError: equipment belongs to another department
    """
    maintenance_type = to_text(payload.get("maintenance_type"))
    description = to_text(payload.get("description"))
    if not payload.get("equipment_id") or not maintenance_type or not description or not payload.get("date"):
        raise ValidationError("Missing required fields: equipment_id, maintenance_type, description, date")

    equipment_id = to_int(payload.get("equipment_id"), "equipment_id")
    try:
        service_date = parse_iso_date(payload.get("date"))
    except ValueError:
        raise ValidationError("date must be an ISO date (YYYY-MM-DD)")

    def _op():
        equipment = db.session.get(Equipment, equipment_id)
        if equipment is None:
            raise NotFoundError("Equipment not found")
        if not caller.is_admin and equipment.department_id != caller.department_id:
            raise UnauthorizedError("You can only create maintenance logs for equipment in your department.")

        log = MaintenanceLog(
            equipment_id=equipment.id,
            maintenance_type=maintenance_type,
            description=description,
            date=service_date,
            hours_at_service=to_optional_int(payload.get("hours_at_service"), "hours_at_service"),
            performed_by=to_text(payload.get("performed_by")),
            cost=_parse_cost(payload.get("cost")),
            parts_used=to_text(payload.get("parts_used")),
            next_service_hours=to_optional_int(payload.get("next_service_hours"), "next_service_hours"),
            created_by=caller.user_id,
        )
        db.session.add(log)
        if equipment.last_maintained is None or service_date > equipment.last_maintained:
            equipment.last_maintained = service_date
        db.session.flush()
        return log

    log = run_in_transaction(_op)
    equipment = log.equipment
    logger.info("Maintenance log %s created for equipment %s by user %s", log.id, equipment.id, caller.user_id)
    activity_service.log_activity(
        caller,
        activity_service.ACTION_MAINTENANCE_LOGGED,
        entity_type="maintenance_log",
        entity_id=log.id,
        entity_name=f"{equipment.name} - {maintenance_type}",
        description=f"Logged {maintenance_type} maintenance for {equipment.name}",
        metadata={
            "equipment_id": equipment.id,
            "equipment_name": equipment.name,
            "maintenance_type": maintenance_type,
            "description": description[:100],
        },
    )
    return {"message": "Maintenance log created successfully", "log": log.to_dict()}
