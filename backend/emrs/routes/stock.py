# Overview: Flask API routes for the stock ledger and reconciliation reports.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_role
from ..models.org import ROLE_ADMIN, ROLE_MANAGER
from ..services import inventory_service, ledger_service


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/ledger")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def ledger_route():
    """
    Ledger entries, newest first.

    Query params: item_id, location_id, ref_table, limit (default 200, max 1000)
    """
    try:
        limit = min(max(request.args.get("limit", 200, type=int), 1), 1000)
        entries = ledger_service.list_entries(
            item_id=request.args.get("item_id", type=int),
            location_id=request.args.get("location_id", type=int),
            ref_table=request.args.get("ref_table"),
            limit=limit,
        )
        return jsonify({"entries": [e.to_dict() for e in entries]}), 200
    except Exception:
        current_app.logger.exception("Failed to list stock ledger")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/reconcile")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def reconcile_route():
    """
    on_hand_qty vs opening_qty + ledger sum per (item, location).

    Returns:
        200: {rows: [...], reconciled: bool}
    """
    try:
        rows = ledger_service.reconcile(
            item_id=request.args.get("item_id", type=int),
            location_id=request.args.get("location_id", type=int),
        )
        return jsonify({"rows": rows, "reconciled": all(r["reconciled"] for r in rows)}), 200
    except Exception:
        current_app.logger.exception("Failed to reconcile stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/items/<int:item_id>")
@require_auth
def item_stock_route(item_id: int):
    try:
        rows = inventory_service.get_stock(item_id)
        return jsonify({"item_id": item_id, "locations": [r.to_dict() for r in rows]}), 200
    except Exception:
        current_app.logger.exception("Failed to fetch item stock")
        return jsonify({"error": "Internal server error"}), 500
