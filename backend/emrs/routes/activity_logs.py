# Overview: Flask API routes for the scoped activity trail.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..services import activity_service
from ..validation import EmrsError


activity_logs_bp = Blueprint("activity_logs", __name__, url_prefix="/api/activity-logs")


@activity_logs_bp.get("/")
@require_auth
def list_activity_logs_route():
    """
    Activity rows visible to the caller.

    Query params:
        view_user_id: narrow to one user (managers: own department only)
        action_type: filter by action
        limit / offset: pagination (default 50 / 0)

    Returns:
        200: {logs, total, limit, offset}
        403: view_user_id outside the manager's department
        404: view_user_id does not exist
    """
    try:
        result = activity_service.list_activity_logs(
            g.caller,
            view_user_id=request.args.get("view_user_id", type=int),
            action_type=request.args.get("action_type"),
            limit=request.args.get("limit", activity_service.DEFAULT_PAGE_SIZE, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify(result), 200
    except EmrsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list activity logs")
        return jsonify({"error": "Internal server error"}), 500
