# Overview: Service-layer operations for departments and the request-type routing table.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Department, RequestTypeDepartment
from ..validation import ConflictError, DepartmentNotFound, NotFoundError, ValidationError, to_text


logger = logging.getLogger(__name__)


def list_departments() -> list[Department]:
    return db.session.query(Department).order_by(Department.name).all()


def get_department(department_id: int) -> Department:
    department = db.session.get(Department, department_id)
    if department is None:
        raise NotFoundError("Department not found")
    return department


def create_department(name: str, description: str | None = None) -> Department:
    name = to_text(name)
    if not name:
        raise ValidationError("Department name is required")
    if db.session.query(Department).filter_by(name=name).first():
        raise ConflictError(f"Department {name!r} already exists")

    department = Department(name=name, description=to_text(description))
    db.session.add(department)
    db.session.commit()
    logger.info("Created department %s (%s)", department.id, name)
    return department


def map_request_type(request_type: str, department_id: int) -> RequestTypeDepartment:
    """
    Route request_type to department_id (insert or re-point).

    Request types are stored as given; lookups are exact matches.
    """
    request_type = to_text(request_type)
    if not request_type:
        raise ValidationError("request_type is required")
    if db.session.get(Department, department_id) is None:
        raise DepartmentNotFound(department_id)

    row = db.session.query(RequestTypeDepartment).filter_by(request_type=request_type).first()
    if row is None:
        row = RequestTypeDepartment(request_type=request_type, department_id=department_id)
        db.session.add(row)
    else:
        row.department_id = department_id
    db.session.commit()
    logger.info("Request type %r routed to department %s", request_type, department_id)
    return row


def list_request_type_mappings() -> list[RequestTypeDepartment]:
    return db.session.query(RequestTypeDepartment).order_by(RequestTypeDepartment.request_type).all()
