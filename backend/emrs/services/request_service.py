# Overview: Service-layer operations for requisitions; creation, routing and role-scoped reads.

"""
Request Service

One creation algorithm for every entry point:
- create_request: typed free-text lines (ppe, material, transport, ...)
  routed to a department through request_type_departments
- create_mixed_request: {itemId, qty} lines against the Item master
- create_bulk_requests: several equipment requests in one transaction

Each entry point is a single transaction. A bad line aborts the header and
every other line with it.

Reads (list, mine, department queue, detail, history) go through the
Access Scope Resolver so role visibility is decided in one place.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import case

from ..extensions import db
from ..models import (
    Department,
    Equipment,
    Item,
    Request,
    RequestApproval,
    RequestLine,
    RequestTypeDepartment,
)
from ..models.requests import (
    PRIORITIES,
    REQUEST_STATUS_PENDING,
    REQUEST_STATUS_TRANSFERRED,
)
from ..validation import (
    InvalidQty,
    ItemNotFound,
    NotFoundError,
    RequestNotFound,
    UnauthorizedError,
    UnmappedRequestType,
    ValidationError,
    require_list,
    to_int,
    to_optional_int,
    to_text,
)
from . import activity_service
from .access_scope import CallerContext, can_view_request, resolve_scope
from .concurrency import run_in_transaction
from .line_payloads import parse_line


logger = logging.getLogger(__name__)


DEFAULT_PRIORITY = "Medium"
EQUIPMENT_REQUEST_TYPE = "equipment"

_PRIORITY_BY_KEY = {p.lower(): p for p in PRIORITIES}

_PRIORITY_RANK = case(
    (Request.priority == "Urgent", 1),
    (Request.priority == "High", 2),
    (Request.priority == "Medium", 3),
    (Request.priority == "Low", 4),
    else_=5,
)


# =============================================================================
# HELPERS
# =============================================================================

def normalize_priority(value: Any) -> str:
    """
    Case-insensitive match on low/medium/high/urgent, capitalized.

    Anything else (missing, garbage, non-string) is "Medium".
    """
    if not isinstance(value, str):
        return DEFAULT_PRIORITY
    return _PRIORITY_BY_KEY.get(value.strip().lower(), DEFAULT_PRIORITY)


def find_department_for_type(request_type: str) -> Optional[int]:
    row = db.session.query(RequestTypeDepartment).filter_by(request_type=request_type).first()
    return row.department_id if row else None


def resolve_department_for_type(request_type: str) -> int:
    """Owning department for request_type, or UnmappedRequestType."""
    department_id = find_department_for_type(request_type)
    if department_id is None:
        logger.warning("No department mapped for request type %r", request_type)
        raise UnmappedRequestType(request_type)
    return department_id


def request_summary(req: Request, *, include_lines: bool = True) -> dict:
    """Request row plus the display joins the dashboards render."""
    data = req.to_dict()
    data.update({
        "requested_by_name": req.requester.name if req.requester else None,
        "requested_by_email": req.requester.email if req.requester else None,
        "approved_by_name": req.approver.name if req.approver else None,
        "department_name": req.department.name if req.department else None,
        "transferred_to_department_name": req.transferred_to.name if req.transferred_to else None,
        "transferred_by_name": req.transferrer.name if req.transferrer else None,
        "display_name": req.display_name,
    })
    if include_lines:
        data["lines"] = [line.to_dict() for line in req.lines]
    return data


def _log_created(caller: CallerContext, req: Request) -> None:
    activity_service.log_activity(
        caller,
        activity_service.ACTION_REQUEST_CREATED,
        entity_type="request",
        entity_id=req.id,
        entity_name=req.subject,
        description=f"Created {req.request_type or 'mixed'} request #{req.id}",
        metadata={"priority": req.priority, "department_id": req.department_id},
    )


def load_request(request_id: int) -> Request:
    req = db.session.get(Request, request_id)
    if req is None:
        raise RequestNotFound(request_id)
    return req


# =============================================================================
# CREATE
# =============================================================================

def _create_request_inner(
    caller: CallerContext,
    *,
    request_type: str,
    priority: Any,
    subject: str | None,
    description: str | None,
    raw_lines: list,
) -> Request:
    department_id = resolve_department_for_type(request_type)

    # Parse every line before the first write
    parsed = [parse_line(request_type, raw) for raw in raw_lines]

    req = Request(
        requested_by=caller.user_id,
        subject=subject or f"{request_type} Request",
        description=description,
        priority=normalize_priority(priority),
        request_type=request_type,
        department_id=department_id,
        status=REQUEST_STATUS_PENDING,
    )
    db.session.add(req)
    db.session.flush()

    for line in parsed:
        db.session.add(RequestLine(
            request_id=req.id,
            item_name=line.display_name,
            requested_qty=line.quantity,
            extra_data=line.raw,
        ))
    db.session.flush()
    return req


def create_request(
    caller: CallerContext,
    *,
    request_type: Any,
    priority: Any = None,
    subject: Any = None,
    description: Any = None,
    lines: Any = None,
) -> dict:
    """
    Create a typed request routed by request_type.

    Raises:
        ValidationError: request_type missing, no lines, malformed line
        UnmappedRequestType: request_type has no department mapping
        InvalidQty: a line quantity is not a positive integer
    """
    request_type = to_text(request_type)
    if not request_type:
        raise ValidationError("request_type is required")
    raw_lines = require_list(lines, "At least one line item is required")

    def _op():
        return _create_request_inner(
            caller,
            request_type=request_type,
            priority=priority,
            subject=to_text(subject),
            description=to_text(description),
            raw_lines=raw_lines,
        )

    req = run_in_transaction(_op)
    logger.info(
        "Request %s created by user %s (type=%s, department=%s, lines=%s)",
        req.id, caller.user_id, req.request_type, req.department_id, len(raw_lines),
    )
    _log_created(caller, req)
    return {
        "id": req.id,
        "subject": req.subject,
        "priority": req.priority,
        "request_type": req.request_type,
        "department_id": req.department_id,
        "status": req.status,
        "lines": [line.to_dict() for line in req.lines],
    }


def _mixed_subject(line_count: int) -> str:
    return f"Mixed Request ({line_count} item{'s' if line_count > 1 else ''})"


def _create_mixed_inner(
    caller: CallerContext,
    *,
    subject: str | None,
    notes: str | None,
    priority: Any,
    request_type: str | None,
    raw_lines: list,
) -> Request:
    department_id = None
    if request_type:
        department_id = find_department_for_type(request_type)
    if department_id is None:
        department_id = caller.department_id

    req = Request(
        requested_by=caller.user_id,
        subject=subject or _mixed_subject(len(raw_lines)),
        description=notes,
        priority=normalize_priority(priority),
        request_type=request_type,
        department_id=department_id,
        status=REQUEST_STATUS_PENDING,
    )
    db.session.add(req)
    db.session.flush()

    for raw in raw_lines:
        if not isinstance(raw, dict):
            raise ValidationError("Each line must be an object")
        raw_item_id = raw.get("itemId", raw.get("item_id"))
        try:
            item_id = to_int(raw_item_id, "itemId")
        except ValidationError:
            raise ItemNotFound(raw_item_id)
        item = db.session.get(Item, item_id)
        if item is None:
            raise ItemNotFound(item_id)

        raw_qty = raw.get("qty")
        if raw_qty is None or raw_qty == "":
            raw_qty = 1
        try:
            qty = to_int(raw_qty, "qty")
        except ValidationError:
            raise InvalidQty(f"Invalid qty for item {item_id}")
        if qty <= 0:
            raise InvalidQty(f"Invalid qty for item {item_id}")

        db.session.add(RequestLine(
            request_id=req.id,
            item_id=item.id,
            item_name=item.name,
            requested_qty=qty,
            is_consumable=item.is_consumable,
            uom=item.default_uom,
        ))
    db.session.flush()
    return req


def create_mixed_request(
    caller: CallerContext,
    *,
    subject: Any = None,
    notes: Any = None,
    priority: Any = None,
    request_type: Any = None,
    lines: Any = None,
) -> dict:
    """
    Create a request whose lines reference the Item master.

    is_consumable and uom are copied from Item at insert time.
    The department comes from request_type when one is given and mapped,
    otherwise from the caller.

    Raises:
        ValidationError: no lines
        ItemNotFound: a line names an unknown item
        InvalidQty: a line qty is not a positive integer
    """
    raw_lines = require_list(lines, "At least one line is required.")

    def _op():
        return _create_mixed_inner(
            caller,
            subject=to_text(subject),
            notes=to_text(notes),
            priority=priority,
            request_type=to_text(request_type),
            raw_lines=raw_lines,
        )

    req = run_in_transaction(_op)
    logger.info("Mixed request %s created by user %s (%s lines)", req.id, caller.user_id, len(raw_lines))
    _log_created(caller, req)
    return {
        "id": req.id,
        "subject": req.subject,
        "description": req.description,
        "priority": req.priority,
        "department_id": req.department_id,
        "status": req.status,
        "lines": [line.to_dict() for line in req.lines],
    }


def _create_bulk_inner(caller: CallerContext, payloads: list) -> list[Request]:
    department_id = find_department_for_type(EQUIPMENT_REQUEST_TYPE)
    if department_id is None:
        department_id = caller.department_id

    created = []
    for index, payload in enumerate(payloads, start=1):
        if not isinstance(payload, dict):
            raise ValidationError(f"Request {index} must be an object")

        equipment_id = to_optional_int(payload.get("item_id"), "item_id")
        custom_name = to_text(payload.get("custom_name"))
        if equipment_id is None and not custom_name:
            raise ValidationError(f"Request {index} needs item_id or custom_name")
        if equipment_id is not None and db.session.get(Equipment, equipment_id) is None:
            raise NotFoundError(f"Equipment {equipment_id} not found")

        description = to_text(payload.get("description"))
        req = Request(
            requested_by=caller.user_id,
            subject=to_text(payload.get("subject")) or "Equipment Request",
            description=description,
            priority=normalize_priority(payload.get("priority")),
            request_type=EQUIPMENT_REQUEST_TYPE,
            department_id=department_id,
            status=REQUEST_STATUS_PENDING,
            equipment_id=equipment_id,
            is_new_equipment=bool(custom_name),
            new_equipment_name=custom_name,
            new_equipment_description=description if custom_name else None,
        )
        db.session.add(req)
        created.append(req)

    db.session.flush()
    return created


def create_bulk_requests(caller: CallerContext, payloads: Any) -> list[dict]:
    """
    Insert one equipment Request per payload, all or nothing.

    Each payload is {item_id?, custom_name?, subject, description, priority};
    custom_name marks a not-yet-catalogued item.
    """
    payloads = require_list(payloads, "No requests provided")

    created = run_in_transaction(lambda: _create_bulk_inner(caller, payloads))
    logger.info("Bulk created %s equipment requests for user %s", len(created), caller.user_id)
    for req in created:
        _log_created(caller, req)
    return [request_summary(req, include_lines=False) for req in created]


# =============================================================================
# READ
# =============================================================================

def list_requests(caller: CallerContext, *, request_type: str | None = None) -> list[dict]:
    """Requests visible to caller, newest first, optionally filtered by type."""
    scope = resolve_scope(caller)
    query = scope.apply(db.session.query(Request), Request.requested_by, Request.department_id)
    if request_type:
        query = query.filter(Request.request_type == request_type)
    rows = query.order_by(Request.created_at.desc(), Request.id.desc()).all()
    return [request_summary(req, include_lines=False) for req in rows]


def list_my_requests(caller: CallerContext) -> list[dict]:
    rows = (
        db.session.query(Request)
        .filter(Request.requested_by == caller.user_id)
        .order_by(Request.created_at.desc(), Request.id.desc())
        .all()
    )
    return [request_summary(req, include_lines=False) for req in rows]


def department_queue(
    caller: CallerContext,
    *,
    department_id: int | None = None,
    include_closed: bool = False,
) -> list[dict]:
    """
    Requests owned by a department, most urgent first then newest.

    Managers always get their own department; admins pick one with
    department_id. Without include_closed only Pending/Transferred rows
    are returned.
    """
    if caller.is_admin and department_id is not None:
        target = department_id
    elif caller.is_admin or caller.is_manager:
        target = caller.department_id
    else:
        raise UnauthorizedError("Insufficient permissions")

    if target is None:
        raise ValidationError("Department not specified or assigned")

    query = db.session.query(Request).filter(Request.department_id == target)
    if include_closed:
        query = query.order_by(Request.created_at.desc(), Request.id.desc())
    else:
        query = query.filter(
            Request.status.in_((REQUEST_STATUS_PENDING, REQUEST_STATUS_TRANSFERRED))
        ).order_by(_PRIORITY_RANK, Request.created_at.desc(), Request.id.desc())
    return [request_summary(req, include_lines=False) for req in query.all()]


def get_request(caller: CallerContext, request_id: int) -> dict:
    """
    One request with display joins and lines.

    Raises RequestNotFound (404) before UnauthorizedError (403).
    """
    req = load_request(request_id)
    if not can_view_request(caller, req):
        logger.warning("User %s denied view of request %s", caller.user_id, request_id)
        raise UnauthorizedError("Not authorized to view this request")
    return request_summary(req)


def get_history(caller: CallerContext, request_id: int) -> list[dict]:
    """Approval/rejection/transfer trail, oldest first."""
    req = load_request(request_id)
    if not can_view_request(caller, req):
        raise UnauthorizedError("Not authorized to view this request")
    rows = (
        db.session.query(RequestApproval)
        .filter(RequestApproval.request_id == req.id)
        .order_by(RequestApproval.created_at.asc(), RequestApproval.id.asc())
        .all()
    )
    return [row.to_dict() for row in rows]


def transfer_options(caller: CallerContext, request_id: int) -> list[dict]:
    """Departments a request could be transferred to (all but its owner)."""
    req = load_request(request_id)
    if not can_view_request(caller, req):
        raise UnauthorizedError("Not authorized to view this request")
    query = db.session.query(Department)
    if req.department_id is not None:
        query = query.filter(Department.id != req.department_id)
    return [dept.to_dict() for dept in query.order_by(Department.name).all()]
