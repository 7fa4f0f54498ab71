# Overview: Flask API routes for the stock ledger; parses input and returns JSON responses.

# backend/agendo/routes/stock.py
"""Stock ledger API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..models import Product
from ..responses import error_response
from ..services import stock_service
from ..services.permission_service import require_permission
from ..services.tenant_service import get_scoped
from ..validation import json_object, parse_datetime_field


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _handle(e: Exception, message: str):
    mapped = error_response(e)
    if mapped:
        return mapped
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/movements")
@require_actor
def list_movements_route():
    """Query: product_id, limit. Requires: VIEW_STOCK"""
    try:
        require_permission(g.actor, "VIEW_STOCK")
        movements = stock_service.list_movements(
            tenant_id=g.actor.tenant_id,
            product_id=request.args.get("product_id", type=int),
            limit=request.args.get("limit", default=200, type=int),
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except Exception as e:
        return _handle(e, "Failed to list stock movements")


@stock_bp.post("/movements")
@require_actor
def record_movement_route():
    """
    Manual entry/exit (internal use, loss, correction).

    Body: product_id, direction (ENTRY|EXIT), quantity, reason, note, occurred_at
    Requires: MOVE_STOCK permission
    """
    try:
        data = json_object(request.get_json())
        movement = stock_service.record_manual_movement(g.actor, data)
        product = get_scoped(Product, movement.product_id, g.actor.tenant_id)
        return jsonify({"movement": movement.to_dict(), "product": product.to_dict()}), 201
    except Exception as e:
        return _handle(e, "Failed to record stock movement")


@stock_bp.post("/purchases")
@require_actor
def receive_purchase_route():
    """
    Stock purchase: ENTRY movement plus the cost as an expense.

    Body: product_id, quantity, reason, note, payment_method
    Requires: MOVE_STOCK permission
    """
    try:
        data = json_object(request.get_json())
        movement = stock_service.receive_purchase(
            g.actor,
            product_id=data.get("product_id"),
            quantity=data.get("quantity"),
            reason=data.get("reason") or stock_service.REASON_PURCHASE,
            note=data.get("note"),
            payment_method=data.get("payment_method") or "CASH",
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except Exception as e:
        return _handle(e, "Failed to receive purchase")


@stock_bp.get("/products/<int:product_id>")
@require_actor
def product_stock_route(product_id: int):
    """
    Counter and ledger replay side by side.

    Query: as_of (ISO-8601, inclusive) limits the replay.
    """
    try:
        require_permission(g.actor, "VIEW_STOCK")
        product = get_scoped(Product, product_id, g.actor.tenant_id, label="Product")
        as_of = request.args.get("as_of")
        replayed = stock_service.get_stock_by_replay(
            g.actor.tenant_id,
            product.id,
            parse_datetime_field(as_of, "as_of") if as_of else None,
        )
        return jsonify({"product": product.to_dict(), "counter": product.stock, "replayed": replayed}), 200
    except Exception as e:
        return _handle(e, "Failed to read product stock")


@stock_bp.get("/drift")
@require_actor
def drift_route():
    """Products whose counter disagrees with the ledger. Requires: VIEW_STOCK"""
    try:
        require_permission(g.actor, "VIEW_STOCK")
        return jsonify({"drift": stock_service.find_stock_drift(g.actor.tenant_id)}), 200
    except Exception as e:
        return _handle(e, "Failed to compute stock drift")
