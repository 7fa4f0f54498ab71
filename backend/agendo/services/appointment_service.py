# Overview: Service-layer operations for the agenda; booking, rescheduling, status and cancellation.

"""
Agendo Booking Invariants (authoritative)

- No two non-canceled appointments of one professional overlap
  (half-open intervals, see conflict_service).
- The store decides acceptance: inside one transaction the professional row
  is locked (SELECT ... FOR UPDATE; BEGIN IMMEDIATE on SQLite), the
  professional's appointments are re-read and checked, then the row is
  written. Two sessions racing the same slot cannot both pass the check.
- Professionals book and edit only their own agenda.
- Completion happens only through checkout_service.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from flask import current_app, has_app_context

from ..extensions import db
from ..models import Appointment, AppointmentStatus, Client, Professional, Service
from ..validation import ConflictError, ValidationError, parse_datetime_field, require_fields
from agendo.time_utils import normalize_datetime, utcnow
from .concurrency import begin_immediate_if_sqlite, store_round_trip
from .conflict_service import BookingSlot, find_conflict
from .lifecycle_service import LifecycleError, is_terminal, require_transition, validate_status
from .permission_service import (
    ActorContext, PermissionDeniedError, has_permission, require_appointment_permission, require_permission,
)
from .results import returns_result
from .tenant_service import get_scoped, get_tenant, scoped_query

logger = logging.getLogger(__name__)

RESCHEDULE_FIELDS = ("professional_id", "service_id", "starts_at")


def _require_book_permission(actor: ActorContext, professional_id: int) -> None:
    if has_permission(actor, "BOOK_APPOINTMENT"):
        return
    if has_permission(actor, "BOOK_OWN_APPOINTMENT") and actor.professional_id == professional_id:
        return
    logger.warning(
        "Booking denied: actor=%s professional=%s own_professional=%s",
        actor.actor_id, professional_id, actor.professional_id,
    )
    raise PermissionDeniedError("You can only book appointments for yourself")


def _parse_id(value, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")


def _check_slot_in_store(
    tenant_id: int,
    candidate: BookingSlot,
    *,
    exclude_id: int | None = None,
) -> None:
    """
    Authoritative conflict check; call inside the writing transaction.

    Locks the professional row first so concurrent bookings for the same
    professional serialize on it.
    """
    begin_immediate_if_sqlite()
    get_scoped(Professional, candidate.professional_id, tenant_id, lock=True, label="Professional")

    durations = {
        service_id: minutes
        for service_id, minutes in db.session.query(Service.id, Service.duration_minutes)
        .filter(Service.tenant_id == tenant_id)
        .all()
    }
    candidate_minutes = durations.get(candidate.service_id) or 0
    candidate_end = candidate.starts_at + timedelta(minutes=candidate_minutes)

    rows = (
        scoped_query(Appointment, tenant_id)
        .filter(
            Appointment.professional_id == candidate.professional_id,
            Appointment.status != AppointmentStatus.CANCELED.value,
            Appointment.starts_at < candidate_end,
        )
        .all()
    )
    check = find_conflict(candidate, [BookingSlot.from_record(r) for r in rows], durations, exclude_id=exclude_id)
    if check:
        db.session.rollback()
        logger.info(
            "Booking rejected for professional %s at %s: %s",
            candidate.professional_id, candidate.starts_at, check.reason,
        )
        raise ConflictError(
            "The professional already has an appointment at this time"
            if check.conflicting_id else f"Cannot verify availability: {check.reason}",
            conflicting_id=check.conflicting_id,
        )


@returns_result
def book_appointment(actor: ActorContext, payload: dict) -> Appointment:
    """
    Create a SCHEDULED appointment.

    Returns OperationResult; conflict=True when the slot is taken.
    """
    require_fields(payload, "client_id", "professional_id", "service_id", "starts_at")
    professional_id = _parse_id(payload["professional_id"], "professional_id")
    _require_book_permission(actor, professional_id)

    client = get_scoped(Client, _parse_id(payload["client_id"], "client_id"), actor.tenant_id, label="Client")
    professional = get_scoped(Professional, professional_id, actor.tenant_id, label="Professional")
    if not professional.is_active:
        raise ValidationError(f"Professional {professional.id} is not active")
    service = get_scoped(Service, _parse_id(payload["service_id"], "service_id"), actor.tenant_id, label="Service")
    starts_at = parse_datetime_field(payload["starts_at"], "starts_at")

    candidate = BookingSlot(professional_id=professional.id, service_id=service.id, starts_at=starts_at)

    def _book():
        _check_slot_in_store(actor.tenant_id, candidate)
        appointment = Appointment(
            tenant_id=actor.tenant_id,
            client_id=client.id,
            professional_id=candidate.professional_id,
            service_id=candidate.service_id,
            starts_at=candidate.starts_at,
            status=AppointmentStatus.SCHEDULED.value,
            notes=payload.get("notes"),
            created_by_actor_id=actor.actor_id,
        )
        db.session.add(appointment)
        db.session.commit()
        return appointment

    appointment = store_round_trip(_book, operation="book appointment")
    logger.info(
        "Appointment %s booked: professional=%s starts_at=%s",
        appointment.id, appointment.professional_id, appointment.starts_at,
    )
    return appointment


@returns_result
def update_appointment(actor: ActorContext, appointment_id: int, changes: dict) -> Appointment:
    """
    Reschedule (professional, service, start) and/or edit notes.

    The conflict check runs only when a scheduling field actually changed,
    and never counts the appointment against itself.
    """
    appointment = get_scoped(Appointment, appointment_id, actor.tenant_id, label="Appointment")
    require_appointment_permission(actor, appointment, any_code="EDIT_APPOINTMENT", own_code="EDIT_OWN_APPOINTMENT")

    professional_id = appointment.professional_id
    service_id = appointment.service_id
    starts_at = normalize_datetime(appointment.starts_at)

    if changes.get("professional_id") is not None:
        professional_id = _parse_id(changes["professional_id"], "professional_id")
        if not has_permission(actor, "EDIT_APPOINTMENT") and professional_id != actor.professional_id:
            raise PermissionDeniedError("You can only move appointments within your own agenda")
        professional = get_scoped(Professional, professional_id, actor.tenant_id, label="Professional")
        if not professional.is_active:
            raise ValidationError(f"Professional {professional.id} is not active")
    if changes.get("service_id") is not None:
        service_id = get_scoped(Service, _parse_id(changes["service_id"], "service_id"), actor.tenant_id, label="Service").id
    if changes.get("starts_at") is not None:
        starts_at = parse_datetime_field(changes["starts_at"], "starts_at")

    rescheduled = (
        professional_id != appointment.professional_id
        or service_id != appointment.service_id
        or starts_at != normalize_datetime(appointment.starts_at)
    )
    if rescheduled and is_terminal(appointment.status):
        raise LifecycleError(f"Cannot reschedule a {appointment.status} appointment")

    def _update():
        if rescheduled:
            _check_slot_in_store(
                actor.tenant_id,
                BookingSlot(professional_id=professional_id, service_id=service_id, starts_at=starts_at),
                exclude_id=appointment_id,
            )
        appt = get_scoped(Appointment, appointment_id, actor.tenant_id, label="Appointment")
        appt.professional_id = professional_id
        appt.service_id = service_id
        appt.starts_at = starts_at
        if "notes" in changes:
            appt.notes = changes["notes"]
        db.session.commit()
        return appt

    return store_round_trip(_update, operation=f"update appointment {appointment_id}")


def _cancellation_window_minutes(tenant) -> int:
    if tenant.cancellation_window_minutes is not None:
        return tenant.cancellation_window_minutes
    if has_app_context():
        return int(current_app.config.get("DEFAULT_CANCELLATION_WINDOW_MINUTES", 0))
    return 0


def _cancel(actor: ActorContext, appointment: Appointment, reason: str | None, now: datetime | None) -> Appointment:
    require_appointment_permission(actor, appointment, any_code="CANCEL_APPOINTMENT", own_code="CANCEL_OWN_APPOINTMENT")
    require_transition(appointment.status, AppointmentStatus.CANCELED)

    if not has_permission(actor, "BYPASS_CANCELLATION_WINDOW"):
        window = _cancellation_window_minutes(get_tenant(actor.tenant_id))
        now = normalize_datetime(now) or utcnow()
        if window > 0 and normalize_datetime(appointment.starts_at) - now < timedelta(minutes=window):
            raise ValidationError(
                f"Appointments can only be canceled at least {window} minutes before they start"
            )

    appointment_id = appointment.id

    def _op():
        appt = get_scoped(Appointment, appointment_id, actor.tenant_id, label="Appointment")
        appt.status = require_transition(appt.status, AppointmentStatus.CANCELED).value
        appt.canceled_at = utcnow()
        appt.canceled_by_actor_id = actor.actor_id
        appt.cancel_reason = (reason or "").strip()[:255] or None
        db.session.commit()
        return appt

    canceled = store_round_trip(_op, operation=f"cancel appointment {appointment_id}")
    logger.info("Appointment %s canceled by actor %s", canceled.id, actor.actor_id)
    return canceled


@returns_result
def cancel_appointment(
    actor: ActorContext,
    appointment_id: int,
    reason: str | None = None,
    *,
    now: datetime | None = None,
) -> Appointment:
    appointment = get_scoped(Appointment, appointment_id, actor.tenant_id, label="Appointment")
    return _cancel(actor, appointment, reason, now)


@returns_result
def advance_status(actor: ActorContext, appointment_id: int, target, *, reason: str | None = None) -> Appointment:
    """
    Move an appointment forward (SCHEDULED -> CONFIRMED -> IN_SERVICE).

    CANCELED is delegated to the cancel rules; COMPLETED is refused, that is
    checkout's job.
    """
    target_status = validate_status(target)
    appointment = get_scoped(Appointment, appointment_id, actor.tenant_id, label="Appointment")
    if target_status == AppointmentStatus.CANCELED:
        return _cancel(actor, appointment, reason, None)

    require_appointment_permission(actor, appointment, any_code="EDIT_APPOINTMENT", own_code="EDIT_OWN_APPOINTMENT")
    require_transition(appointment.status, target_status)

    def _op():
        appt = get_scoped(Appointment, appointment_id, actor.tenant_id, label="Appointment")
        appt.status = require_transition(appt.status, target_status).value
        db.session.commit()
        return appt

    return store_round_trip(_op, operation=f"advance appointment {appointment_id}")


@returns_result
def delete_appointment(actor: ActorContext, appointment_id: int) -> dict:
    """
    Admin hard delete. Ledger rows referencing the appointment are kept.
    """
    require_permission(actor, "DELETE_APPOINTMENT")

    def _op():
        appt = get_scoped(Appointment, appointment_id, actor.tenant_id, label="Appointment")
        db.session.delete(appt)
        db.session.commit()
        return {"id": appointment_id, "deleted": True}

    result = store_round_trip(_op, operation=f"delete appointment {appointment_id}")
    logger.warning("Appointment %s hard-deleted by actor %s", appointment_id, actor.actor_id)
    return result


def list_appointments(
    actor: ActorContext,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    professional_id: int | None = None,
) -> list[Appointment]:
    """Agenda read; actors without BOOK_APPOINTMENT see only their own agenda."""
    q = scoped_query(Appointment, actor.tenant_id)
    if not has_permission(actor, "BOOK_APPOINTMENT"):
        professional_id = actor.professional_id
        if professional_id is None:
            return []
    if professional_id is not None:
        q = q.filter(Appointment.professional_id == professional_id)
    if start is not None:
        q = q.filter(Appointment.starts_at >= start)
    if end is not None:
        q = q.filter(Appointment.starts_at <= end)
    return q.order_by(Appointment.starts_at.asc(), Appointment.id.asc()).all()
