# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

"""
Return API Routes

WHY: Issued consumables and tools come back to the store against the
original Issue.

Every domain failure is returned as 400 with the service message.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..services import return_service
from ..validation import EmrsError


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("/")
@require_auth
def create_return_route():
    """
    Receive items back against an Issue.

    Request body:
    {
        "issueId": 1,
        "notes": "Back from Well-7",   (optional)
        "lines": [
            {"issueLineId": 2, "assetId": 1, "condition": "OK"},
            {"issueLineId": 1, "qty": 1}
        ]
    }

    Returns:
        201: {id}
        400: {error}
    """
    try:
        data = request.get_json(silent=True) or {}
        return_doc = return_service.create_return(
            g.caller,
            issue_id=data.get("issueId", data.get("issue_id")),
            notes=data.get("notes"),
            lines=data.get("lines"),
        )
        return jsonify({"id": return_doc.id}), 201
    except EmrsError as e:
        return jsonify(e.to_dict()), 400
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<int:return_id>")
@require_auth
def get_return_route(return_id: int):
    try:
        return_doc = return_service.get_return(return_id)
        if not return_doc:
            return jsonify({"error": "Return not found"}), 404
        return jsonify(return_doc.to_dict()), 200
    except Exception:
        current_app.logger.exception("Failed to fetch return")
        return jsonify({"error": "Internal server error"}), 500
