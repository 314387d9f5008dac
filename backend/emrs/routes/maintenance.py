# Overview: Flask API routes for equipment maintenance logs.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..services import maintenance_service
from ..validation import EmrsError


maintenance_bp = Blueprint("maintenance", __name__, url_prefix="/api/maintenance")


@maintenance_bp.get("/logs")
@require_auth
def list_logs_route():
    """
    Maintenance logs (department-scoped for non-admins).

    Query params: equipment_id, maintenance_type, department_id (admin),
    limit (default 50), offset
    """
    try:
        result = maintenance_service.list_logs(
            g.caller,
            equipment_id=request.args.get("equipment_id", type=int),
            maintenance_type=request.args.get("maintenance_type"),
            department_id=request.args.get("department_id", type=int),
            limit=request.args.get("limit", maintenance_service.DEFAULT_PAGE_SIZE, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify(result), 200
    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to fetch maintenance logs")
        return jsonify({"error": "Internal server error"}), 500


@maintenance_bp.get("/logs/<int:log_id>")
@require_auth
def get_log_route(log_id: int):
    try:
        return jsonify(maintenance_service.get_log(g.caller, log_id)), 200
    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to fetch maintenance log")
        return jsonify({"error": "Internal server error"}), 500


@maintenance_bp.post("/logs")
@require_auth
def create_log_route():
    """
    Request body:
    {
        "equipment_id": 4,
        "maintenance_type": "Preventive",
        "description": "Oil change",
        "date": "2025-03-01",
        "hours_at_service": 1200,     (optional)
        "performed_by": "J. Doe",     (optional)
        "cost": 150.5,                (optional)
        "parts_used": "Filter",       (optional)
        "next_service_hours": 1450    (optional)
    }

    Returns:
        201: {message, log}
        400: missing fields
        403: equipment belongs to another department
        404: equipment not found
    """
    try:
        data = request.get_json(silent=True) or {}
        return jsonify(maintenance_service.create_log(g.caller, data)), 201
    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create maintenance log")
        return jsonify({"error": "Internal server error"}), 500
