# Overview: Flask API routes for user administration; parses input and returns JSON responses.

"""
User management routes.

Admins create, list, update and deactivate accounts. Any authenticated
user may change their own password. Accounts are deactivated, never
deleted, so request and activity history keeps its attribution.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..models.org import ROLE_ADMIN
from ..services import activity_service, auth_service, user_service
from ..validation import EmrsError, require_json_object, to_optional_int


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("/")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    """
    Query params:
    - include_inactive: "true" to include deactivated accounts
    - department_id: int
    """
    try:
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        rows = user_service.list_users(
            include_inactive=include_inactive,
            department_id=request.args.get("department_id", type=int),
        )
        return jsonify({"users": [u.to_dict() for u in rows]}), 200
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_user_route(user_id: int):
    try:
        return jsonify({"user": user_service.get_user(user_id).to_dict()}), 200
    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to fetch user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    """
    Create a new user.

    Request body:
    - name: str (required)
    - email: str (required)
    - password: str (required)
    - role: admin | manager | engineer | staff (required)
    - department_id: int (optional)
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        name = data.get("name")
        email = data.get("email")
        password = data.get("password")
        role = data.get("role")

        if not all([name, email, password, role]):
            return jsonify({"error": "Missing required fields"}), 400

        user = auth_service.create_user(
            name,
            email,
            password,
            role=role,
            department_id=to_optional_int(data.get("department_id"), "department_id"),
        )

        activity_service.log_activity(
            g.caller,
            activity_service.ACTION_USER_CREATED,
            entity_type="user",
            entity_id=user.id,
            entity_name=user.name,
            description=f"Created user: {user.name}",
            metadata={"role": user.role, "department_id": user.department_id},
        )
        return jsonify({"user": user.to_dict(), "message": "User created successfully"}), 201

    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/change-password")
@require_auth
def change_password_route():
    """
    Change the caller's own password.

    Request body:
    {
        "currentPassword": "...",
        "newPassword": "..."
    }

    Every other session of the caller is revoked; the current one stays valid.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        revoked = auth_service.change_password(
            g.current_user,
            data.get("currentPassword"),
            data.get("newPassword"),
            keep_session_id=g.session_context.session.id,
        )

        activity_service.log_activity(
            g.caller,
            activity_service.ACTION_PASSWORD_CHANGED,
            entity_type="user",
            entity_id=g.caller.user_id,
            entity_name=g.caller.name,
            description=f"{g.caller.name} changed their password",
        )
        return jsonify({"message": "Password changed successfully", "sessions_revoked": revoked}), 200

    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.put("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    """
    Update user details.

    Request body (all optional): name, email, role, department_id
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        user, changes = user_service.update_user(user_id, data)

        if changes:
            activity_service.log_activity(
                g.caller,
                activity_service.ACTION_USER_UPDATED,
                entity_type="user",
                entity_id=user.id,
                entity_name=user.name,
                description=f"Updated user: {user.name}",
                metadata={"changes": changes},
            )
        return jsonify({"user": user.to_dict(), "message": "User updated successfully"}), 200

    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def deactivate_user_route(user_id: int):
    """
    Deactivate a user account.

    This will:
    1. Set is_active=False
    2. Revoke all active sessions for the user

    The user will be immediately logged out and unable to log back in.
    """
    try:
        revoked = user_service.deactivate_user(g.caller, user_id)
        user = user_service.get_user(user_id)

        activity_service.log_activity(
            g.caller,
            activity_service.ACTION_USER_DEACTIVATED,
            entity_type="user",
            entity_id=user.id,
            entity_name=user.name,
            description=f"Deactivated user: {user.name}",
            metadata={"sessions_revoked": revoked},
        )
        return jsonify({"message": f"User {user.name} deactivated", "sessions_revoked": revoked}), 200

    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate user")
        return jsonify({"error": "Internal server error"}), 500
