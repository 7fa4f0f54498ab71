# Overview: Flask API routes for checkout; appointment settlement and direct counter sales.

# backend/agendo/routes/checkout.py
"""Checkout API routes"""

from flask import Blueprint, g, request

from ..decorators import require_actor
from ..responses import result_response
from ..services import checkout_service
from ..validation import json_object


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")


@checkout_bp.post("/appointments/<int:appointment_id>/checkout")
@require_actor
def checkout_route(appointment_id: int):
    """
    Settle (or re-settle) an appointment.

    Body: lines [{product_id, quantity}], payment_method
    422 when some steps failed: errors lists every failure and
    details.applied the steps that went through.

    Requires: SETTLE_APPOINTMENT (or SETTLE_OWN_APPOINTMENT when the tenant
    allows professional checkout)
    """
    data = json_object(request.get_json())
    result = checkout_service.settle_appointment(
        g.actor, appointment_id, data.get("lines") or [], data.get("payment_method"),
    )
    return result_response(result)


@checkout_bp.post("/sales/direct")
@require_actor
def direct_sale_route():
    """
    Counter sale without an appointment.

    Body: lines [{product_id, quantity}], payment_method
    Requires: RECORD_DIRECT_SALE permission
    """
    data = json_object(request.get_json())
    result = checkout_service.record_direct_sale(g.actor, data.get("lines"), data.get("payment_method"))
    return result_response(result, success_status=201)
