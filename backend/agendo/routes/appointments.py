# Overview: Flask API routes for the agenda; parses input and returns JSON responses.

# backend/agendo/routes/appointments.py
"""Appointment API routes. Every mutation returns the OperationResult shape."""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..responses import error_response, result_response
from ..services import appointment_service, availability_service
from ..time_utils import to_utc_z
from ..validation import json_object, parse_date_field, parse_datetime_field, parse_positive_int


appointments_bp = Blueprint("appointments", __name__, url_prefix="/api/appointments")


@appointments_bp.get("")
@require_actor
def list_appointments_route():
    """
    Agenda for a window.

    Query: start, end (ISO-8601, inclusive), professional_id
    Professionals only ever see their own agenda.
    """
    try:
        start = request.args.get("start")
        end = request.args.get("end")
        professional_id = request.args.get("professional_id", type=int)
        appointments = appointment_service.list_appointments(
            g.actor,
            start=parse_datetime_field(start, "start") if start else None,
            end=parse_datetime_field(end, "end") if end else None,
            professional_id=professional_id,
        )
        return jsonify({"appointments": [a.to_dict() for a in appointments]}), 200
    except Exception as e:
        mapped = error_response(e)
        if mapped:
            return mapped
        current_app.logger.exception("Failed to list appointments")
        return jsonify({"error": "Internal server error"}), 500


@appointments_bp.get("/availability")
@require_actor
def availability_route():
    """
    Bookable slots of one day.

    Query: professional_id, service_id, date (YYYY-MM-DD)
    Closed days and days outside the booking window return no slots.
    """
    try:
        professional_id = parse_positive_int(request.args.get("professional_id"), "professional_id")
        service_id = parse_positive_int(request.args.get("service_id"), "service_id")
        day = parse_date_field(request.args.get("date"), "date")
        slots = availability_service.available_slots(g.actor.tenant_id, professional_id, service_id, day)
        return jsonify({
            "date": day.isoformat(),
            "slots": [{"starts_at": to_utc_z(s["starts_at"]), "available": s["available"]} for s in slots],
        }), 200
    except Exception as e:
        mapped = error_response(e)
        if mapped:
            return mapped
        current_app.logger.exception("Failed to compute availability")
        return jsonify({"error": "Internal server error"}), 500


@appointments_bp.post("")
@require_actor
def book_appointment_route():
    """
    Book an appointment.

    Body: client_id, professional_id, service_id, starts_at, notes
    409 with conflict=true when the professional is busy in that interval.
    """
    data = json_object(request.get_json())
    result = appointment_service.book_appointment(g.actor, data)
    return result_response(result, success_status=201)


@appointments_bp.patch("/<int:appointment_id>")
@require_actor
def update_appointment_route(appointment_id: int):
    """Reschedule (professional_id, service_id, starts_at) or edit notes."""
    data = json_object(request.get_json())
    result = appointment_service.update_appointment(g.actor, appointment_id, data)
    return result_response(result)


@appointments_bp.post("/<int:appointment_id>/status")
@require_actor
def advance_status_route(appointment_id: int):
    """Body: status (CONFIRMED, IN_SERVICE or CANCELED), reason"""
    data = json_object(request.get_json())
    result = appointment_service.advance_status(
        g.actor, appointment_id, data.get("status"), reason=data.get("reason"),
    )
    return result_response(result)


@appointments_bp.post("/<int:appointment_id>/cancel")
@require_actor
def cancel_appointment_route(appointment_id: int):
    data = json_object(request.get_json(silent=True))
    result = appointment_service.cancel_appointment(g.actor, appointment_id, data.get("reason"))
    return result_response(result)


@appointments_bp.delete("/<int:appointment_id>")
@require_actor
def delete_appointment_route(appointment_id: int):
    """
    Hard delete.

    Requires: DELETE_APPOINTMENT permission
    Available to: admin
    """
    result = appointment_service.delete_appointment(g.actor, appointment_id)
    return result_response(result)
