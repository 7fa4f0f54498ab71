# Overview: Pytest coverage for slot availability and the tenant's booking policy.

"""
Availability Tests

2031-03-10 is a Monday; with the default week it opens 09:00-18:00 and
Sunday is closed. `now` is pinned so the booking window is deterministic.
"""

from datetime import date, datetime

import pytest

from agendo.extensions import db
from agendo.models import Appointment, Tenant
from agendo.services import availability_service
from agendo.services.availability_service import available_slots, bookable_days, validate_business_hours
from agendo.services.permission_service import PermissionDeniedError
from agendo.validation import NotFoundError, ValidationError

from conftest import DAY, at

MONDAY = DAY.date()
SUNDAY = date(2031, 3, 16)
EARLY = datetime(2031, 3, 10, 7, 0)


def week(**overrides):
    hours = {day: dict(entry) for day, entry in availability_service.DEFAULT_BUSINESS_HOURS.items()}
    hours.update(overrides)
    return hours


def book_at(tenant, professional, service, customer, starts_at, status="SCHEDULED"):
    appt = Appointment(
        tenant_id=tenant.id,
        client_id=customer.id,
        professional_id=professional.id,
        service_id=service.id,
        starts_at=starts_at,
        status=status,
        created_by_actor_id=20,
    )
    db.session.add(appt)
    db.session.commit()
    return appt


def times(slots):
    return [s["starts_at"].strftime("%H:%M") for s in slots]


class TestSlots:

    def test_open_day_covers_opening_hours(self, tenant_a, professional, haircut):
        slots = available_slots(tenant_a.id, professional.id, haircut.id, MONDAY, now=EARLY)

        assert len(slots) == 18
        assert times(slots)[0] == "09:00"
        assert times(slots)[-1] == "17:30"
        assert all(s["available"] for s in slots)

    def test_last_slot_must_end_by_closing(self, tenant_a, professional, beard):
        """A 60-minute service cannot start at 17:30 when the shop closes at 18:00."""
        slots = available_slots(tenant_a.id, professional.id, beard.id, MONDAY, now=EARLY)
        assert times(slots)[-1] == "17:00"

    def test_closed_day_has_no_slots(self, tenant_a, professional, haircut):
        assert available_slots(tenant_a.id, professional.id, haircut.id, SUNDAY, now=EARLY) == []

    def test_taken_slot_is_unavailable(self, tenant_a, professional, haircut, customer):
        book_at(tenant_a, professional, haircut, customer, at(10))

        slots = {s["starts_at"]: s["available"] for s in available_slots(
            tenant_a.id, professional.id, haircut.id, MONDAY, now=EARLY,
        )}
        assert slots[at(9, 30)] is True
        assert slots[at(10)] is False
        assert slots[at(10, 30)] is True

    def test_longer_service_blocked_by_later_booking(self, tenant_a, professional, haircut, beard, customer):
        book_at(tenant_a, professional, haircut, customer, at(10))

        slots = {s["starts_at"]: s["available"] for s in available_slots(
            tenant_a.id, professional.id, beard.id, MONDAY, now=EARLY,
        )}
        assert slots[at(9)] is True
        assert slots[at(9, 30)] is False

    def test_canceled_and_other_professional_do_not_block(
        self, tenant_a, professional, other_professional, haircut, customer,
    ):
        book_at(tenant_a, professional, haircut, customer, at(10), status="CANCELED")
        book_at(tenant_a, other_professional, haircut, customer, at(11))

        slots = available_slots(tenant_a.id, professional.id, haircut.id, MONDAY, now=EARLY)
        assert all(s["available"] for s in slots)

    def test_today_starts_at_next_step(self, tenant_a, professional, haircut):
        slots = available_slots(
            tenant_a.id, professional.id, haircut.id, MONDAY, now=datetime(2031, 3, 10, 12, 10),
        )
        assert times(slots)[0] == "12:30"

    def test_after_closing_today_has_no_slots(self, tenant_a, professional, haircut):
        late = datetime(2031, 3, 10, 18, 5)
        assert available_slots(tenant_a.id, professional.id, haircut.id, MONDAY, now=late) == []

    def test_past_day_has_no_slots(self, tenant_a, professional, haircut):
        assert available_slots(tenant_a.id, professional.id, haircut.id, date(2031, 3, 7), now=EARLY) == []

    def test_tenant_hours_override_default(self, tenant_a, professional, haircut):
        tenant_a.business_hours = week(monday={"open": "13:00", "close": "15:00", "is_closed": False})
        db.session.commit()

        slots = available_slots(tenant_a.id, professional.id, haircut.id, MONDAY, now=EARLY)
        assert times(slots) == ["13:00", "13:30", "14:00", "14:30"]

    def test_foreign_professional_not_found(self, tenant_a, tenant_b, professional, haircut):
        with pytest.raises(NotFoundError):
            available_slots(tenant_b.id, professional.id, haircut.id, MONDAY, now=EARLY)


class TestBookingWindow:

    def test_window_counts_open_days(self, tenant_a):
        tenant_a.booking_window_days = 7
        db.session.commit()

        days = bookable_days(tenant_a, MONDAY)
        assert len(days) == 7
        assert SUNDAY not in days
        assert days[-1] == date(2031, 3, 17)

    def test_day_beyond_window_has_no_slots(self, tenant_a, professional, haircut):
        tenant_a.booking_window_days = 3
        db.session.commit()

        assert available_slots(tenant_a.id, professional.id, haircut.id, date(2031, 3, 12), now=EARLY)
        assert available_slots(tenant_a.id, professional.id, haircut.id, date(2031, 3, 13), now=EARLY) == []

    def test_default_window_is_thirty_open_days(self, tenant_a):
        assert len(bookable_days(tenant_a, MONDAY)) == 30


class TestBusinessHoursValidation:

    def test_normalizes_clock_and_closed_days(self):
        hours = validate_business_hours(week(
            monday={"open": "9:5", "close": "18:00"},
            sunday={"is_closed": True},
        ))
        assert hours["monday"] == {"open": "09:05", "close": "18:00", "is_closed": False}
        assert hours["sunday"]["is_closed"] is True

    @pytest.mark.parametrize("hours", [
        None,
        {"monday": {"open": "09:00", "close": "18:00", "is_closed": False}},
        week(tuesday={"open": "18:00", "close": "09:00", "is_closed": False}),
        week(friday={"open": "nine", "close": "18:00", "is_closed": False}),
        week(friday={"open": "25:00", "close": "26:00", "is_closed": False}),
    ])
    def test_rejects_invalid_weeks(self, hours):
        with pytest.raises(ValidationError):
            validate_business_hours(hours)


class TestBookingPolicy:

    def test_admin_updates_and_resets(self, admin, tenant_a):
        tenant = availability_service.update_booking_policy(admin, {
            "business_hours": week(saturday={"is_closed": True}),
            "booking_window_days": "14",
        })
        assert tenant.booking_window_days == 14
        assert tenant.business_hours["saturday"]["is_closed"] is True

        tenant = availability_service.update_booking_policy(admin, {"business_hours": None})
        assert tenant.business_hours is None
        assert tenant.booking_window_days == 14

    def test_staff_cannot_change_policy(self, staff, tenant_a):
        with pytest.raises(PermissionDeniedError):
            availability_service.update_booking_policy(staff, {"booking_window_days": 5})
        assert db.session.get(Tenant, tenant_a.id).booking_window_days is None

    @pytest.mark.parametrize("payload", [{}, {"booking_window_days": 0}, {"business_hours": "always"}])
    def test_invalid_updates_rejected(self, admin, tenant_a, payload):
        with pytest.raises(ValidationError):
            availability_service.update_booking_policy(admin, payload)
