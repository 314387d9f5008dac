# Overview: Flask API routes for departments and request-type routing.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..models.org import ROLE_ADMIN
from ..services import activity_service, department_service
from ..validation import EmrsError


departments_bp = Blueprint("departments", __name__, url_prefix="/api/departments")


@departments_bp.get("/")
@require_auth
def list_departments_route():
    try:
        return jsonify([d.to_dict() for d in department_service.list_departments()]), 200
    except Exception:
        current_app.logger.exception("Failed to list departments")
        return jsonify({"error": "Internal server error"}), 500


@departments_bp.get("/request-types")
@require_auth
def list_request_types_route():
    try:
        return jsonify([m.to_dict() for m in department_service.list_request_type_mappings()]), 200
    except Exception:
        current_app.logger.exception("Failed to list request type routing")
        return jsonify({"error": "Internal server error"}), 500


@departments_bp.get("/<int:department_id>")
@require_auth
def get_department_route(department_id: int):
    try:
        return jsonify(department_service.get_department(department_id).to_dict()), 200
    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to fetch department")
        return jsonify({"error": "Internal server error"}), 500


@departments_bp.post("/")
@require_auth
@require_role(ROLE_ADMIN)
def create_department_route():
    """
    Create a department (admin only).

    Request body:
    {
        "name": "Drilling",
        "description": "Rig crews"   (optional)
    }

    Returns:
        201: department
        400: name missing
        409: name already taken
    """
    try:
        data = request.get_json(silent=True) or {}
        department = department_service.create_department(data.get("name"), data.get("description"))

        activity_service.log_activity(
            g.caller,
            activity_service.ACTION_DEPARTMENT_CREATED,
            entity_type="department",
            entity_id=department.id,
            entity_name=department.name,
            description=f"Created department: {department.name}",
            metadata={"description": department.description},
        )
        return jsonify(department.to_dict()), 201
    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create department")
        return jsonify({"error": "Internal server error"}), 500
