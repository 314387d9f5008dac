# Overview: Flask API routes for issuing stock and assets against approved requests.

"""
Issue API Routes

Every domain failure (line not found, item mismatch, insufficient stock,
asset unavailable, ...) is returned as 400 with the service message so the
storekeeper can act on it directly.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..services import issue_service
from ..validation import EmrsError


issues_bp = Blueprint("issues", __name__, url_prefix="/api/issues")


@issues_bp.post("/")
@require_auth
def create_issue_route():
    """
    Issue an Approved request.

    Request body:
    {
        "requestId": 25,
        "waybillNo": "WB-1001",   (optional)
        "lines": [
            {"requestLineId": 3, "itemId": 1, "qty": 4},
            {"requestLineId": 4, "itemId": 2, "assetId": 1}
        ]
    }

    Returns:
        201: {id}
        400: {error} for any validation, stock or asset failure
    """
    try:
        data = request.get_json(silent=True) or {}
        issue = issue_service.create_issue(
            g.caller,
            request_id=data.get("requestId", data.get("request_id")),
            waybill_no=data.get("waybillNo", data.get("waybill_no")),
            lines=data.get("lines"),
        )
        return jsonify({"id": issue.id}), 201
    except EmrsError as e:
        return jsonify(e.to_dict()), 400
    except Exception:
        current_app.logger.exception("Failed to create issue")
        return jsonify({"error": "Internal server error"}), 500


@issues_bp.get("/<int:issue_id>")
@require_auth
def get_issue_route(issue_id: int):
    try:
        issue = issue_service.get_issue(issue_id)
        if not issue:
            return jsonify({"error": "Issue not found"}), 404
        return jsonify(issue.to_dict()), 200
    except Exception:
        current_app.logger.exception("Failed to fetch issue")
        return jsonify({"error": "Internal server error"}), 500
