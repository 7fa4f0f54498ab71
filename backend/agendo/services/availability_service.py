# Overview: Bookable time slots per day, derived from the tenant's business hours.

"""
Slot Availability

- A day offers slots only when the tenant has it open and it falls within
  the next booking_window_days open days (at most MAX_DAYS_SCANNED ahead).
- Slots start at opening time and step every SLOT_STEP_MINUTES; a slot is
  offered while the service still ends by closing time.
- Today's slots never start in the past: the first one is the next step
  boundary at or after now.
- Each slot is checked against the professional's agenda with find_conflict,
  so a free slot is one book_appointment would accept unless it is taken
  in the meantime.

Business hours are read on the same clock as appointment start times.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from ..extensions import db
from ..models import Appointment, AppointmentStatus, Professional, Service, Tenant
from ..validation import ValidationError, parse_positive_int
from agendo.time_utils import utcnow
from .concurrency import store_round_trip
from .conflict_service import BookingSlot, find_conflict
from .permission_service import ActorContext, require_permission
from .tenant_service import get_scoped, get_tenant, scoped_query

logger = logging.getLogger(__name__)

# Indexed by date.weekday()
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

DEFAULT_BUSINESS_HOURS = {
    "monday": {"open": "09:00", "close": "18:00", "is_closed": False},
    "tuesday": {"open": "09:00", "close": "18:00", "is_closed": False},
    "wednesday": {"open": "09:00", "close": "18:00", "is_closed": False},
    "thursday": {"open": "09:00", "close": "18:00", "is_closed": False},
    "friday": {"open": "09:00", "close": "18:00", "is_closed": False},
    "saturday": {"open": "09:00", "close": "14:00", "is_closed": False},
    "sunday": {"open": "00:00", "close": "00:00", "is_closed": True},
}
DEFAULT_BOOKING_WINDOW_DAYS = 30
MAX_DAYS_SCANNED = 60
SLOT_STEP_MINUTES = 30


def parse_clock(value, field: str) -> time:
    """'HH:MM' -> time"""
    try:
        hour, minute = (int(part) for part in str(value).split(":"))
        return time(hour, minute)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a time as HH:MM")


def validate_business_hours(hours) -> dict:
    """Normalize a full week; every weekday must be given and open days must close after opening."""
    if not isinstance(hours, dict):
        raise ValidationError("business_hours must be an object keyed by weekday")

    week = {}
    for day in WEEKDAYS:
        entry = hours.get(day)
        if not isinstance(entry, dict):
            raise ValidationError(f"business_hours.{day} is required")
        if entry.get("is_closed"):
            week[day] = {"open": "00:00", "close": "00:00", "is_closed": True}
            continue
        opens = parse_clock(entry.get("open"), f"business_hours.{day}.open")
        closes = parse_clock(entry.get("close"), f"business_hours.{day}.close")
        if closes <= opens:
            raise ValidationError(f"business_hours.{day} must close after it opens")
        week[day] = {"open": opens.strftime("%H:%M"), "close": closes.strftime("%H:%M"), "is_closed": False}
    return week


def hours_for(tenant: Tenant, day: date) -> dict | None:
    """Opening hours of one date, or None when the shop is closed."""
    week = tenant.business_hours or DEFAULT_BUSINESS_HOURS
    entry = week.get(WEEKDAYS[day.weekday()])
    if not entry or entry.get("is_closed"):
        return None
    return entry


def bookable_days(tenant: Tenant, today: date | None = None) -> list[date]:
    """The next booking_window_days open days, today included."""
    today = today or utcnow().date()
    wanted = tenant.booking_window_days or DEFAULT_BOOKING_WINDOW_DAYS
    days: list[date] = []
    for offset in range(MAX_DAYS_SCANNED):
        day = today + timedelta(days=offset)
        if hours_for(tenant, day) is None:
            continue
        days.append(day)
        if len(days) >= wanted:
            break
    return days


def _first_step_at_or_after(moment: datetime, opens: datetime) -> datetime:
    step = timedelta(minutes=SLOT_STEP_MINUTES)
    start = moment.replace(minute=0, second=0, microsecond=0)
    while start < moment:
        start += step
    return max(start, opens)


def available_slots(
    tenant_id: int,
    professional_id: int,
    service_id: int,
    day: date,
    *,
    now: datetime | None = None,
) -> list[dict]:
    """
    Slots of one day for a professional and a service.

    Returns:
        [{"starts_at": datetime, "available": bool}, ...] in time order;
        empty when the day is closed, outside the booking window or over.
    """
    tenant = get_tenant(tenant_id)
    professional = get_scoped(Professional, professional_id, tenant_id, label="Professional")
    service = get_scoped(Service, service_id, tenant_id, label="Service")
    now = now or utcnow()

    if not professional.is_active or day not in bookable_days(tenant, now.date()):
        return []

    hours = hours_for(tenant, day)
    opens = datetime.combine(day, parse_clock(hours["open"], "open"))
    closes = datetime.combine(day, parse_clock(hours["close"], "close"))
    start = _first_step_at_or_after(now, opens) if now > opens else opens

    durations = {
        sid: minutes
        for sid, minutes in db.session.query(Service.id, Service.duration_minutes)
        .filter(Service.tenant_id == tenant_id)
        .all()
    }
    rows = (
        scoped_query(Appointment, tenant_id)
        .filter(
            Appointment.professional_id == professional.id,
            Appointment.status != AppointmentStatus.CANCELED.value,
            Appointment.starts_at < closes,
            Appointment.starts_at >= opens - timedelta(days=1),
        )
        .all()
    )
    existing = [BookingSlot.from_record(r) for r in rows]

    length = timedelta(minutes=service.duration_minutes)
    step = timedelta(minutes=SLOT_STEP_MINUTES)
    slots = []
    while start + length <= closes:
        candidate = BookingSlot(professional_id=professional.id, service_id=service.id, starts_at=start)
        slots.append({"starts_at": start, "available": not find_conflict(candidate, existing, durations)})
        start += step
    return slots


def update_booking_policy(actor: ActorContext, payload: dict) -> Tenant:
    """
    Change business hours and/or the booking window of the actor's tenant.

    null resets a field to the default.
    Requires: MANAGE_BOOKING_POLICY permission
    """
    require_permission(actor, "MANAGE_BOOKING_POLICY")

    changes = {}
    if "business_hours" in payload:
        raw = payload["business_hours"]
        changes["business_hours"] = None if raw is None else validate_business_hours(raw)
    if "booking_window_days" in payload:
        raw = payload["booking_window_days"]
        changes["booking_window_days"] = None if raw is None else parse_positive_int(raw, "booking_window_days")
    if not changes:
        raise ValidationError("Nothing to update: send business_hours and/or booking_window_days")

    def _update():
        tenant = get_tenant(actor.tenant_id)
        for field, value in changes.items():
            setattr(tenant, field, value)
        db.session.commit()
        return tenant

    tenant = store_round_trip(_update, operation=f"update booking policy of tenant {actor.tenant_id}")
    logger.info("Booking policy of tenant %s updated: %s", actor.tenant_id, sorted(changes))
    return tenant
