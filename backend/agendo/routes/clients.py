# Overview: Flask API routes for client accounts; balance adjustments and subscriptions.

# backend/agendo/routes/clients.py
"""Client account API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..responses import error_response
from ..services import client_service
from ..validation import json_object, parse_money_cents


clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


def _handle(e: Exception, message: str):
    mapped = error_response(e)
    if mapped:
        return mapped
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


@clients_bp.post("/<int:client_id>/balance")
@require_actor
def adjust_balance_route(client_id: int):
    """
    Body: direction (credit|debit), amount (currency units), payment_method, description
    Requires: ADJUST_CLIENT_BALANCE permission
    """
    try:
        data = json_object(request.get_json())
        client = client_service.adjust_client_balance(
            g.actor,
            client_id,
            direction=data.get("direction"),
            amount=data.get("amount"),
            payment_method=data.get("payment_method") or "CASH",
            description=data.get("description"),
        )
        return jsonify({"client": client.to_dict()}), 200
    except Exception as e:
        return _handle(e, "Failed to adjust client balance")


@clients_bp.post("/<int:client_id>/subscription")
@require_actor
def activate_subscription_route(client_id: int):
    """
    Body: monthly_fee (currency units), payment_method
    Requires: MANAGE_SUBSCRIPTIONS permission
    """
    try:
        data = json_object(request.get_json())
        client = client_service.activate_subscription(
            g.actor,
            client_id,
            monthly_fee_cents=parse_money_cents(data.get("monthly_fee"), "monthly_fee", allow_zero=False),
            payment_method=data.get("payment_method") or "CASH",
        )
        return jsonify({"client": client.to_dict()}), 200
    except Exception as e:
        return _handle(e, "Failed to activate subscription")


@clients_bp.delete("/<int:client_id>/subscription")
@require_actor
def cancel_subscription_route(client_id: int):
    try:
        client = client_service.cancel_subscription(g.actor, client_id)
        return jsonify({"client": client.to_dict()}), 200
    except Exception as e:
        return _handle(e, "Failed to cancel subscription")
