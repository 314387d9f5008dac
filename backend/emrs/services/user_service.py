# Overview: Service-layer operations for administering user accounts.

"""
User Administration Service

Accounts are never hard-deleted: requests, approvals and activity rows
keep pointing at the user who made them. Removing someone deactivates the
account and revokes every session, which require_auth honours on the very
next call.
"""

from __future__ import annotations

import logging
from typing import Any

from ..extensions import db
from ..models import Department, User
from ..models.org import ROLES
from ..validation import ConflictError, NotFoundError, ValidationError, to_optional_int, to_text
from . import session_service
from .access_scope import CallerContext


logger = logging.getLogger(__name__)


def list_users(*, include_inactive: bool = False, department_id: int | None = None) -> list[User]:
    query = db.session.query(User)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    if department_id is not None:
        query = query.filter(User.department_id == department_id)
    return query.order_by(User.id.asc()).all()


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def update_user(user_id: int, payload: dict) -> tuple[User, dict]:
    """
    Partial update of name/email/role/department_id.

    Role and department changes apply to the user's next API call; no
    re-login is needed because require_auth re-reads the row.

    Returns (user, changes) where changes maps field -> {old, new}.

    Raises:
        NotFoundError: unknown user or department
        ValidationError: empty name/email, unknown role
        ConflictError: email already in use
    """
    user = get_user(user_id)
    updates: dict[str, Any] = {}

    if "name" in payload:
        name = to_text(payload["name"])
        if not name:
            raise ValidationError("Name cannot be empty")
        updates["name"] = name

    if "email" in payload:
        email = (to_text(payload["email"]) or "").lower()
        if not email:
            raise ValidationError("Email cannot be empty")
        existing = db.session.query(User).filter(User.email == email, User.id != user.id).first()
        if existing:
            raise ConflictError("Email already in use")
        updates["email"] = email

    if "role" in payload:
        role = to_text(payload["role"])
        if role not in ROLES:
            raise ValidationError(f"Invalid role. Must be one of: {', '.join(ROLES)}")
        updates["role"] = role

    if "department_id" in payload:
        department_id = to_optional_int(payload["department_id"], "department_id")
        if department_id is not None and db.session.get(Department, department_id) is None:
            raise NotFoundError("Department not found")
        updates["department_id"] = department_id

    changes = {}
    for field, value in updates.items():
        old = getattr(user, field)
        if old != value:
            setattr(user, field, value)
            changes[field] = {"old": old, "new": value}

    db.session.commit()
    if changes:
        logger.info("User %s updated: %s", user.id, sorted(changes))
    return user, changes


def deactivate_user(caller: CallerContext, user_id: int) -> int:
    """
    Deactivate an account and revoke all its sessions.

    Returns the number of sessions revoked.

    Raises:
        NotFoundError: unknown user
        ValidationError: already inactive, or caller deactivating themself
    """
    user = get_user(user_id)

    if not user.is_active:
        raise ValidationError("User is already deactivated")

    if user.id == caller.user_id:
        raise ValidationError("Cannot deactivate your own account")

    user.is_active = False
    db.session.commit()

    revoked = session_service.revoke_all_user_sessions(user.id)
    logger.info("User %s deactivated by %s (%s sessions revoked)", user.id, caller.user_id, revoked)
    return revoked
