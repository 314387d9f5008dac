# Overview: Flask API routes for requisitions; parses input and returns JSON responses.

"""
Request API Routes

DESIGN:
- Thin adapters: parse JSON/query args, call request_service or
  approval_service with g.caller, serialize the result
- Domain failures are EmrsError subclasses carrying their HTTP status
- The mixed-item endpoint reports every domain failure as 400

SECURITY:
- Any authenticated role may create and read (reads are scoped by role)
- approve/reject/transfer/complete require manager or admin, and the
  service checks the request belongs to the manager's department
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..models.org import ROLE_ADMIN, ROLE_MANAGER
from ..services import approval_service, request_service
from ..validation import EmrsError


requests_bp = Blueprint("requests", __name__, url_prefix="/api/requests")


def _error(e: EmrsError, status_code: int | None = None):
    return jsonify(e.to_dict()), status_code or e.status_code


# =============================================================================
# CREATION
# =============================================================================

@requests_bp.post("/create")
@require_auth
def create_request_route():
    """
    Create a typed request routed by request_type.

    Request body:
    {
        "request_type": "ppe",
        "priority": "urgent",
        "subject": "Site PPE",        (optional)
        "description": "...",         (optional)
        "lines": [{"name": "Helmet", "quantity": 3}]
    }

    Returns:
        201: {id, subject, priority, request_type, status, lines}
        400: missing fields, unmapped type, bad quantity
    """
    try:
        data = request.get_json(silent=True) or {}
        result = request_service.create_request(
            g.caller,
            request_type=data.get("request_type"),
            priority=data.get("priority"),
            subject=data.get("subject"),
            description=data.get("description"),
            lines=data.get("lines"),
        )
        return jsonify(result), 201
    except EmrsError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("/create/v2")
@require_auth
def create_mixed_request_route():
    """
    Create a request from Item master lines.

    Request body:
    {
        "subject": "...",   (optional)
        "notes": "...",     (optional)
        "lines": [{"itemId": 1, "qty": 4}]
    }

    Returns:
        201: {id, subject, description, status, lines}
        400: empty lines, unknown item, qty <= 0
    """
    try:
        data = request.get_json(silent=True) or {}
        result = request_service.create_mixed_request(
            g.caller,
            subject=data.get("subject"),
            notes=data.get("notes"),
            priority=data.get("priority"),
            request_type=data.get("request_type"),
            lines=data.get("lines"),
        )
        return jsonify(result), 201
    except EmrsError as e:
        return _error(e, 400)
    except Exception:
        current_app.logger.exception("Failed to create mixed request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("/create/bulk")
@require_auth
def create_bulk_route():
    """
    Create several equipment requests in one transaction.

    Request body:
    {
        "requests": [
            {"item_id": 3, "subject": "...", "description": "...", "priority": "High"},
            {"custom_name": "Torque wrench", "subject": "...", "description": "..."}
        ]
    }

    Returns:
        201: {requests: [...]}
        400: empty array or invalid entry
    """
    try:
        data = request.get_json(silent=True) or {}
        created = request_service.create_bulk_requests(g.caller, data.get("requests"))
        return jsonify({"requests": created}), 201
    except EmrsError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create equipment requests")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# READS
# =============================================================================

@requests_bp.get("/list")
@require_auth
def list_requests_route():
    """Role-scoped request list; optional ?type= filter."""
    try:
        rows = request_service.list_requests(g.caller, request_type=request.args.get("type"))
        return jsonify(rows), 200
    except EmrsError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list requests")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.get("/mine")
@require_auth
def my_requests_route():
    try:
        return jsonify(request_service.list_my_requests(g.caller)), 200
    except Exception:
        current_app.logger.exception("Failed to list caller requests")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.get("/department")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def department_queue_route():
    """
    Department approval queue.

    Query params:
        deptId: department to show (admin only)
        all: 1 to include decided/completed requests
    """
    try:
        rows = request_service.department_queue(
            g.caller,
            department_id=request.args.get("deptId", type=int),
            include_closed=request.args.get("all") in ("1", "true", "yes"),
        )
        return jsonify(rows), 200
    except EmrsError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to fetch department requests")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.get("/<int:request_id>")
@require_auth
def get_request_route(request_id: int):
    """
    Returns:
        200: Request with display joins and lines
        403: caller may not view it
        404: no such request
    """
    try:
        return jsonify(request_service.get_request(g.caller, request_id)), 200
    except EmrsError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to fetch request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.get("/<int:request_id>/history")
@require_auth
def request_history_route(request_id: int):
    try:
        return jsonify(request_service.get_history(g.caller, request_id)), 200
    except EmrsError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to fetch request history")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.get("/<int:request_id>/transfer-options")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def transfer_options_route(request_id: int):
    try:
        return jsonify(request_service.transfer_options(g.caller, request_id)), 200
    except EmrsError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to fetch transfer options")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# APPROVAL WORKFLOW
# =============================================================================

@requests_bp.patch("/<int:request_id>/approve")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def approve_request_route(request_id: int):
    """
    Pending/Transferred -> Approved.

    Returns:
        200: {message: "Request approved", request}
        403: request belongs to another department
        404: no such request
        409: request already decided
    """
    try:
        data = request.get_json(silent=True) or {}
        result = approval_service.approve_request(g.caller, request_id, notes=data.get("notes"))
        return jsonify(result), 200
    except EmrsError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to approve request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.patch("/<int:request_id>/reject")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def reject_request_route(request_id: int):
    """
    Pending/Transferred -> Rejected.

    Request body:
    {
        "notes": "Out of budget"   (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        result = approval_service.reject_request(g.caller, request_id, notes=data.get("notes"))
        return jsonify(result), 200
    except EmrsError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to reject request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.patch("/<int:request_id>/transfer")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def transfer_request_route(request_id: int):
    """
    Move a request into another department's queue.

    Request body:
    {
        "targetDepartmentId": 7,
        "notes": "Handled by stores"   (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        result = approval_service.transfer_request(
            g.caller,
            request_id,
            data.get("targetDepartmentId", data.get("target_department_id")),
            notes=data.get("notes"),
        )
        return jsonify(result), 200
    except EmrsError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to transfer request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.patch("/<int:request_id>/complete")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def complete_request_route(request_id: int):
    try:
        return jsonify(approval_service.complete_request(g.caller, request_id)), 200
    except EmrsError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to complete request")
        return jsonify({"error": "Internal server error"}), 500
