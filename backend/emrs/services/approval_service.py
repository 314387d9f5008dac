# Overview: Approval/transfer state machine for requests with an append-only history trail.

"""
Approval / Transfer Engine

STATE MACHINE (Request.status):
    Pending     -> Approved | Rejected | Transferred
    Transferred -> Approved | Rejected | Transferred   (pending in the new queue)
    Approved    -> Completed
    Rejected, Completed: terminal

Every action updates the header AND appends one RequestApproval row in the
same transaction. A transfer rewrites department_id so the request leaves
the old queue and appears in the target department's queue.

AUTHORIZATION: admin, or the manager of the department that currently owns
the request.
"""

from __future__ import annotations

import logging
from typing import Any

from ..extensions import db
from ..models import Department, Request, RequestApproval
from ..models.requests import (
    APPROVAL_APPROVED,
    APPROVAL_REJECTED,
    APPROVAL_TRANSFERRED,
    REQUEST_STATUS_APPROVED,
    REQUEST_STATUS_COMPLETED,
    REQUEST_STATUS_PENDING,
    REQUEST_STATUS_REJECTED,
    REQUEST_STATUS_TRANSFERRED,
)
from ..validation import (
    DepartmentNotFound,
    InvalidTransition,
    RequestNotFound,
    UnauthorizedError,
    ValidationError,
    to_int,
    to_text,
)
from . import activity_service
from .access_scope import CallerContext, can_act_on_request
from .concurrency import lock_for_update, run_in_transaction
from .request_service import request_summary
from emrs.time_utils import utcnow


logger = logging.getLogger(__name__)


DECIDABLE_STATUSES = (REQUEST_STATUS_PENDING, REQUEST_STATUS_TRANSFERRED)


def _load_for_action(caller: CallerContext, request_id: int, action: str, allowed: tuple) -> Request:
    req = lock_for_update(db.session.query(Request).filter(Request.id == request_id)).first()
    if req is None:
        raise RequestNotFound(request_id)
    if not can_act_on_request(caller, req):
        logger.warning("User %s may not %s request %s", caller.user_id, action, request_id)
        raise UnauthorizedError(f"Not authorized to {action} this request")
    if req.status not in allowed:
        raise InvalidTransition(request_id, req.status, action)
    return req


def _append_history(req: Request, caller: CallerContext, status: str, department_id, notes) -> RequestApproval:
    row = RequestApproval(
        request_id=req.id,
        department_id=department_id,
        approved_by=caller.user_id,
        status=status,
        notes=notes,
    )
    db.session.add(row)
    db.session.flush()
    return row


def _approve_inner(caller: CallerContext, request_id: int, notes: str | None) -> Request:
    req = _load_for_action(caller, request_id, "approve", DECIDABLE_STATUSES)
    now = utcnow()
    req.status = REQUEST_STATUS_APPROVED
    req.approved_by = caller.user_id
    req.approved_at = now
    req.updated_at = now
    _append_history(req, caller, APPROVAL_APPROVED, req.department_id, notes)
    return req


def approve_request(caller: CallerContext, request_id: int, notes: Any = None) -> dict:
    """Pending/Transferred -> Approved."""
    req = run_in_transaction(lambda: _approve_inner(caller, request_id, to_text(notes)))
    logger.info("Request %s approved by user %s", req.id, caller.user_id)
    activity_service.log_activity(
        caller,
        activity_service.ACTION_REQUEST_APPROVED,
        entity_type="request",
        entity_id=req.id,
        entity_name=req.subject,
        description=f"Approved request #{req.id}",
    )
    return {"message": "Request approved", "request": request_summary(req)}


def _reject_inner(caller: CallerContext, request_id: int, notes: str | None) -> Request:
    req = _load_for_action(caller, request_id, "reject", DECIDABLE_STATUSES)
    now = utcnow()
    req.status = REQUEST_STATUS_REJECTED
    req.approved_by = caller.user_id
    req.approved_at = now
    req.updated_at = now
    _append_history(req, caller, APPROVAL_REJECTED, req.department_id, notes)
    return req


def reject_request(caller: CallerContext, request_id: int, notes: Any = None) -> dict:
    """Pending/Transferred -> Rejected. notes are optional but kept in history."""
    req = run_in_transaction(lambda: _reject_inner(caller, request_id, to_text(notes)))
    logger.info("Request %s rejected by user %s", req.id, caller.user_id)
    activity_service.log_activity(
        caller,
        activity_service.ACTION_REQUEST_REJECTED,
        entity_type="request",
        entity_id=req.id,
        entity_name=req.subject,
        description=f"Rejected request #{req.id}",
        metadata={"notes": to_text(notes)} if to_text(notes) else None,
    )
    return {"message": "Request rejected", "request": request_summary(req)}


def _transfer_inner(
    caller: CallerContext,
    request_id: int,
    target_department_id: int,
    notes: str | None,
) -> tuple[Request, Department]:
    target = db.session.get(Department, target_department_id)
    if target is None:
        raise DepartmentNotFound(target_department_id)

    req = _load_for_action(caller, request_id, "transfer", DECIDABLE_STATUSES)
    if req.department_id == target.id:
        raise ValidationError("Request already belongs to this department")

    now = utcnow()
    req.department_id = target.id
    req.transferred_to_department = target.id
    req.transferred_by = caller.user_id
    req.transferred_at = now
    req.transfer_notes = notes
    req.status = REQUEST_STATUS_TRANSFERRED
    req.updated_at = now

    _append_history(req, caller, APPROVAL_TRANSFERRED, target.id, notes or f"Transferred to {target.name}")
    return req, target


def transfer_request(
    caller: CallerContext,
    request_id: int,
    target_department_id: Any,
    notes: Any = None,
) -> dict:
    """
    Re-home a request into another department's queue.

    department_id and transferred_to_department both become the target.
    May be repeated; each transfer appends its own history row.
    """
    if target_department_id is None or target_department_id == "":
        raise ValidationError("Target department is required")
    target_id = to_int(target_department_id, "targetDepartmentId")

    req, target = run_in_transaction(lambda: _transfer_inner(caller, request_id, target_id, to_text(notes)))
    logger.info("Request %s transferred to department %s by user %s", req.id, target.id, caller.user_id)
    activity_service.log_activity(
        caller,
        activity_service.ACTION_REQUEST_TRANSFERRED,
        entity_type="request",
        entity_id=req.id,
        entity_name=req.subject,
        description=f"Transferred request #{req.id} to {target.name}",
        metadata={"target_department_id": target.id},
    )
    return {
        "message": "Request transferred",
        "request": request_summary(req),
        "targetDepartment": target.to_dict(),
    }


def _complete_inner(caller: CallerContext, request_id: int) -> Request:
    req = _load_for_action(caller, request_id, "complete", (REQUEST_STATUS_APPROVED,))
    now = utcnow()
    req.status = REQUEST_STATUS_COMPLETED
    req.completed_at = now
    req.updated_at = now
    return req


def complete_request(caller: CallerContext, request_id: int) -> dict:
    """Approved -> Completed."""
    req = run_in_transaction(lambda: _complete_inner(caller, request_id))
    logger.info("Request %s completed by user %s", req.id, caller.user_id)
    activity_service.log_activity(
        caller,
        activity_service.ACTION_REQUEST_COMPLETED,
        entity_type="request",
        entity_id=req.id,
        entity_name=req.subject,
        description=f"Completed request #{req.id}",
    )
    return {"message": "Request completed", "request": request_summary(req)}
