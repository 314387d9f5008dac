# Overview: Fire-and-forget activity trail plus the scoped activity-log listing.

from __future__ import annotations

import logging
from typing import Any, Optional

from flask import has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import ActivityLog, Department, User
from ..validation import NotFoundError
from .access_scope import CallerContext, TargetUser, resolve_scope


logger = logging.getLogger(__name__)


ACTION_LOGIN = "login"
ACTION_LOGOUT = "logout"
ACTION_REQUEST_CREATED = "request_created"
ACTION_REQUEST_APPROVED = "request_approved"
ACTION_REQUEST_REJECTED = "request_rejected"
ACTION_REQUEST_TRANSFERRED = "request_transferred"
ACTION_REQUEST_COMPLETED = "request_completed"
ACTION_EQUIPMENT_ISSUED = "equipment_issued"
ACTION_EQUIPMENT_RETURNED = "equipment_returned"
ACTION_MAINTENANCE_LOGGED = "maintenance_logged"
ACTION_EQUIPMENT_CREATED = "equipment_created"
ACTION_EQUIPMENT_MODIFIED = "equipment_modified"
ACTION_EQUIPMENT_DELETED = "equipment_deleted"
ACTION_USER_CREATED = "user_created"
ACTION_USER_UPDATED = "user_updated"
ACTION_USER_DEACTIVATED = "user_deactivated"
ACTION_PASSWORD_CHANGED = "password_changed"
ACTION_DEPARTMENT_CREATED = "department_created"

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def log_activity(
    caller: Optional[CallerContext],
    action_type: str,
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    entity_name: str | None = None,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> Optional[ActivityLog]:
    """
    Record one activity row in its own commit.

    Called after the business transaction has committed. A failure here is
    logged and swallowed: the business operation already succeeded and
    must not be reported as failed because the trail could not be written.
    """
    if ip_address is None and has_request_context():
        ip_address = request.remote_addr

    try:
        department_name = None
        department_id = caller.department_id if caller else None
        if department_id is not None:
            department = db.session.get(Department, department_id)
            department_name = department.name if department else None

        entry = ActivityLog(
            user_id=caller.user_id if caller else None,
            user_name=caller.name if caller else None,
            user_role=caller.role if caller else None,
            department_id=department_id,
            department_name=department_name,
            action_type=action_type,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            description=description,
            metadata_json=metadata,
            ip_address=ip_address,
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to record activity %s for %s %s", action_type, entity_type, entity_id)
        return None


def list_activity_logs(
    caller: CallerContext,
    *,
    view_user_id: int | None = None,
    action_type: str | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> dict:
    """
    Activity rows visible to caller, newest first.

    view_user_id narrows to one user; managers may only name users of their
    own department.
    """
    target = None
    if view_user_id is not None:
        user = db.session.get(User, view_user_id)
        if user is None:
            raise NotFoundError("User not found")
        target = TargetUser(user_id=user.id, department_id=user.department_id)

    scope = resolve_scope(caller, target_user=target)

    query = scope.apply(db.session.query(ActivityLog), ActivityLog.user_id, ActivityLog.department_id)
    if action_type:
        query = query.filter(ActivityLog.action_type == action_type)

    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)
    total = query.count()
    rows = (
        query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return {
        "logs": [row.to_dict() for row in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }
