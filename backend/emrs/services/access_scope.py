# Overview: Role/department visibility rules shared by every listing and action endpoint.

"""
Access Scope Resolver

One authorization function, many call sites: request listing, activity
logs and maintenance logs all ask resolve_scope() which rows the caller may
see and apply the resulting Scope to their query.

RULES:
- engineer/staff: own records only (by requested_by / user_id)
- manager: own department; may narrow to a user or department that is
  verified to belong to that department (CrossDepartmentForbidden otherwise)
- admin: everything; may narrow to any user or department without checks

Pure functions: no database access, no Flask globals. Callers pass the
target user's department explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from ..models.org import ROLE_ADMIN, ROLE_ENGINEER, ROLE_MANAGER, ROLE_STAFF
from ..validation import CrossDepartmentForbidden, UnauthorizedError


@dataclass(frozen=True)
class CallerContext:
    """Identity of the authenticated caller, passed explicitly into services."""
    user_id: int
    role: str
    department_id: Optional[int] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role == ROLE_MANAGER

    @classmethod
    def from_user(cls, user: Any) -> "CallerContext":
        return cls(
            user_id=user.id,
            role=user.role,
            department_id=user.department_id,
            name=user.name,
        )


@dataclass(frozen=True)
class TargetUser:
    """A user the caller asked to view, with the department it belongs to."""
    user_id: int
    department_id: Optional[int]


@dataclass(frozen=True)
class Scope:
    """
    Row filter produced by resolve_scope.

    user_id and department_id are ANDed; both None means unrestricted.
    """
    user_id: Optional[int] = None
    department_id: Optional[int] = None

    @property
    def is_unrestricted(self) -> bool:
        return self.user_id is None and self.department_id is None

    def apply(self, query, user_column, department_column):
        if self.user_id is not None:
            query = query.filter(user_column == self.user_id)
        if self.department_id is not None:
            query = query.filter(department_column == self.department_id)
        return query


def resolve_scope(
    caller: CallerContext,
    *,
    target_user: Optional[TargetUser] = None,
    target_department_id: Optional[int] = None,
    personal_records: bool = True,
) -> Scope:
    """
    Return the Scope the caller may read.

    personal_records=False is for department-owned records that have no
    per-user owner (maintenance logs): engineer/staff then see their
    department rather than "own rows".

    Raises:
        CrossDepartmentForbidden: manager targeting outside their department
        UnauthorizedError: unknown role, or a scoped role with no department
    """
    role = caller.role

    if role == ROLE_ADMIN:
        if target_user is not None:
            return Scope(user_id=target_user.user_id)
        if target_department_id is not None:
            return Scope(department_id=target_department_id)
        return Scope()

    if role == ROLE_MANAGER:
        if caller.department_id is None:
            raise UnauthorizedError("Manager is not assigned to a department")
        if target_user is not None:
            if target_user.department_id != caller.department_id:
                raise CrossDepartmentForbidden("User is not in your department")
            return Scope(user_id=target_user.user_id)
        if target_department_id is not None and target_department_id != caller.department_id:
            raise CrossDepartmentForbidden("Cannot view another department")
        return Scope(department_id=caller.department_id)

    if role in (ROLE_ENGINEER, ROLE_STAFF):
        if personal_records:
            return Scope(user_id=caller.user_id)
        if caller.department_id is None:
            raise UnauthorizedError("User is not assigned to a department")
        return Scope(department_id=caller.department_id)

    raise UnauthorizedError(f"Unknown role: {role}")


def can_view_request(caller: CallerContext, request: Any) -> bool:
    """
    Read access to a single request.

    Admin and the requester always; a manager when the request is or was
    routed to their department, or when they acted on it.
    """
    if caller.is_admin:
        return True
    if request.requested_by == caller.user_id:
        return True
    if caller.is_manager:
        if caller.department_id is not None and caller.department_id in (
            request.department_id,
            request.transferred_to_department,
        ):
            return True
        return caller.user_id in (request.approved_by, request.transferred_by)
    return False


def can_act_on_request(caller: CallerContext, request: Any) -> bool:
    """Approve/reject/transfer/complete: admin, or manager of the owning department."""
    if caller.is_admin:
        return True
    return (
        caller.is_manager
        and caller.department_id is not None
        and request.department_id == caller.department_id
    )
