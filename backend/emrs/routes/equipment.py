# Overview: Flask API routes for the equipment catalog; parses input and returns JSON responses.

"""
Equipment API routes

- GET    /api/equipment                 catalog (filters: department_id, status)
- GET    /api/equipment/my-assigned     units held by the caller
- GET    /api/equipment/<id>            one unit
- GET    /api/equipment/<id>/maintenance  service history
- POST   /api/equipment                 admin, manager
- PUT    /api/equipment/<id>            admin, manager (own department)
- DELETE /api/equipment/<id>            admin
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..models.org import ROLE_ADMIN, ROLE_MANAGER
from ..services import equipment_service, maintenance_service
from ..validation import EmrsError, require_json_object, to_optional_int


equipment_bp = Blueprint("equipment", __name__, url_prefix="/api/equipment")


@equipment_bp.get("/")
@require_auth
def list_equipment_route():
    try:
        rows = equipment_service.list_equipment(
            department_id=request.args.get("department_id", type=int),
            status=request.args.get("status"),
        )
        return jsonify([e.to_dict() for e in rows]), 200
    except Exception:
        current_app.logger.exception("Failed to list equipment")
        return jsonify({"error": "Internal server error"}), 500


@equipment_bp.get("/my-assigned")
@require_auth
def my_assigned_route():
    try:
        rows = equipment_service.list_assigned_equipment(g.caller)
        return jsonify([e.to_dict() for e in rows]), 200
    except Exception:
        current_app.logger.exception("Failed to list assigned equipment")
        return jsonify({"error": "Internal server error"}), 500


@equipment_bp.get("/<int:equipment_id>")
@require_auth
def get_equipment_route(equipment_id: int):
    try:
        return jsonify(equipment_service.get_equipment(equipment_id).to_dict()), 200
    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to fetch equipment")
        return jsonify({"error": "Internal server error"}), 500


@equipment_bp.get("/<int:equipment_id>/maintenance")
@require_auth
def equipment_maintenance_route(equipment_id: int):
    try:
        return jsonify(maintenance_service.list_equipment_logs(g.caller, equipment_id)), 200
    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to fetch equipment maintenance history")
        return jsonify({"error": "Internal server error"}), 500


@equipment_bp.post("/")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_equipment_route():
    """
    Request body:
    {
        "name": "Generator G3",
        "description": "...",          (optional)
        "serial_number": "SN-1",       (optional)
        "location": "Yard B",          (optional)
        "status": "Operational",       (optional: Operational | Maintenance | Retired)
        "department_id": 2,            (optional; managers default to their own)
        "assigned_to": 14              (optional user id)
    }

    Returns:
        201: equipment
        400: name missing, invalid status
        403: manager naming another department
        404: department or assignee not found
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        equipment = equipment_service.create_equipment(
            data.get("name"),
            department_id=to_optional_int(data.get("department_id"), "department_id"),
            serial_number=data.get("serial_number"),
            description=data.get("description"),
            location=data.get("location"),
            status=data.get("status"),
            assigned_to=to_optional_int(data.get("assigned_to"), "assigned_to"),
            caller=g.caller,
        )
        return jsonify(equipment.to_dict()), 201
    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create equipment")
        return jsonify({"error": "Internal server error"}), 500


@equipment_bp.put("/<int:equipment_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_equipment_route(equipment_id: int):
    """Partial update; only the keys sent are changed."""
    try:
        data = require_json_object(request.get_json(silent=True))
        equipment = equipment_service.update_equipment(g.caller, equipment_id, data)
        return jsonify(equipment.to_dict()), 200
    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update equipment")
        return jsonify({"error": "Internal server error"}), 500


@equipment_bp.delete("/<int:equipment_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_equipment_route(equipment_id: int):
    try:
        equipment_service.delete_equipment(g.caller, equipment_id)
        return jsonify({"message": "Equipment deleted successfully"}), 200
    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete equipment")
        return jsonify({"error": "Internal server error"}), 500
