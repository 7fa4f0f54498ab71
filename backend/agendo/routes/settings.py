# Overview: Flask API routes for the tenant's booking policy (business hours, booking window).

# backend/agendo/routes/settings.py
"""Booking policy API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..responses import error_response
from ..services import availability_service
from ..services.tenant_service import get_tenant
from ..validation import json_object


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


def _handle(e: Exception, message: str):
    mapped = error_response(e)
    if mapped:
        return mapped
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


def _policy(tenant) -> dict:
    return {
        "business_hours": tenant.business_hours or availability_service.DEFAULT_BUSINESS_HOURS,
        "booking_window_days": tenant.booking_window_days or availability_service.DEFAULT_BOOKING_WINDOW_DAYS,
        "bookable_days": [d.isoformat() for d in availability_service.bookable_days(tenant)],
    }


@settings_bp.get("/booking")
@require_actor
def booking_policy_route():
    """Effective business hours, booking window and the open days it covers."""
    try:
        return jsonify(_policy(get_tenant(g.actor.tenant_id))), 200
    except Exception as e:
        return _handle(e, "Failed to load booking policy")


@settings_bp.put("/booking")
@require_actor
def update_booking_policy_route():
    """
    Body: business_hours {weekday: {open, close, is_closed}}, booking_window_days
    null resets a field to the default.

    Requires: MANAGE_BOOKING_POLICY permission
    Available to: admin
    """
    try:
        data = json_object(request.get_json())
        tenant = availability_service.update_booking_policy(g.actor, data)
        return jsonify(_policy(tenant)), 200
    except Exception as e:
        return _handle(e, "Failed to update booking policy")
