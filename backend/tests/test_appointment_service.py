# Overview: Pytest coverage for booking, rescheduling, status moves and cancellation.

from datetime import timedelta

import pytest

from agendo.extensions import db
from agendo.models import Appointment, AppointmentStatus
from agendo.services import appointment_service
from agendo.services.results import (
    ERROR_CONFLICT, ERROR_NOT_FOUND, ERROR_PERMISSION, ERROR_VALIDATION,
)
from agendo.time_utils import utcnow

from conftest import at


def book(actor, professional, service, customer, starts_at, **extra):
    payload = {
        "client_id": customer.id,
        "professional_id": professional.id,
        "service_id": service.id,
        "starts_at": starts_at.isoformat(),
    }
    payload.update(extra)
    return appointment_service.book_appointment(actor, payload)


class TestBooking:

    def test_book_creates_scheduled_appointment(self, staff, professional, haircut, customer):
        result = book(staff, professional, haircut, customer, at(10), notes="first visit")

        assert result.success
        appt = result.data
        assert appt.status == AppointmentStatus.SCHEDULED.value
        assert appt.created_by_actor_id == staff.actor_id
        assert appt.notes == "first visit"

    def test_overlap_rejected_boundary_accepted(self, staff, professional, haircut, customer):
        """10:00-10:30 booked; 10:15 rejected; 10:30 accepted."""
        first = book(staff, professional, haircut, customer, at(10))
        assert first.success

        clash = book(staff, professional, haircut, customer, at(10, 15))
        assert not clash.success
        assert clash.conflict
        assert clash.error_kind == ERROR_CONFLICT
        assert clash.details["conflicting_id"] == first.data.id

        after = book(staff, professional, haircut, customer, at(10, 30))
        assert after.success

        assert db.session.query(Appointment).count() == 2

    def test_other_professional_same_time_is_free(self, staff, professional, other_professional, haircut, customer):
        assert book(staff, professional, haircut, customer, at(10)).success
        assert book(staff, other_professional, haircut, customer, at(10)).success

    def test_canceled_slot_can_be_rebooked(self, admin, professional, haircut, customer):
        first = book(admin, professional, haircut, customer, at(10)).data
        assert appointment_service.cancel_appointment(admin, first.id, "client asked").success

        assert book(admin, professional, haircut, customer, at(10)).success

    def test_professional_books_only_for_self(self, pro_actor, professional, other_professional, haircut, customer):
        assert book(pro_actor, professional, haircut, customer, at(9)).success

        denied = book(pro_actor, other_professional, haircut, customer, at(9))
        assert not denied.success
        assert denied.error_kind == ERROR_PERMISSION

    def test_missing_fields_rejected(self, staff):
        result = appointment_service.book_appointment(staff, {"client_id": 1})
        assert not result.success
        assert result.error_kind == ERROR_VALIDATION
        assert "professional_id" in result.error

    def test_unknown_service_is_not_found(self, staff, professional, customer):
        result = appointment_service.book_appointment(staff, {
            "client_id": customer.id,
            "professional_id": professional.id,
            "service_id": 999,
            "starts_at": at(10).isoformat(),
        })
        assert result.error_kind == ERROR_NOT_FOUND

    def test_inactive_professional_rejected(self, staff, professional, haircut, customer):
        professional.is_active = False
        db.session.commit()

        result = book(staff, professional, haircut, customer, at(10))
        assert result.error_kind == ERROR_VALIDATION


class TestUpdate:

    def test_reschedule_checks_conflicts(self, staff, professional, haircut, customer):
        a = book(staff, professional, haircut, customer, at(10)).data
        b = book(staff, professional, haircut, customer, at(11)).data

        clash = appointment_service.update_appointment(staff, b.id, {"starts_at": at(10, 20).isoformat()})
        assert clash.conflict
        assert clash.details["conflicting_id"] == a.id

        moved = appointment_service.update_appointment(staff, b.id, {"starts_at": at(10, 30).isoformat()})
        assert moved.success
        assert moved.data.starts_at == at(10, 30)

    def test_small_shift_does_not_conflict_with_itself(self, staff, professional, haircut, customer):
        a = book(staff, professional, haircut, customer, at(10)).data
        result = appointment_service.update_appointment(staff, a.id, {"starts_at": at(10, 10).isoformat()})
        assert result.success

    def test_service_change_rechecks_duration(self, staff, professional, haircut, beard, customer):
        a = book(staff, professional, haircut, customer, at(10)).data
        book(staff, professional, haircut, customer, at(10, 30))

        result = appointment_service.update_appointment(staff, a.id, {"service_id": beard.id})
        assert result.conflict

    def test_notes_only_edit(self, staff, professional, haircut, customer):
        a = book(staff, professional, haircut, customer, at(10)).data
        result = appointment_service.update_appointment(staff, a.id, {"notes": "bring photo"})
        assert result.success
        assert result.data.notes == "bring photo"

    def test_professional_cannot_move_to_colleague(self, pro_actor, professional, other_professional, haircut, customer):
        a = book(pro_actor, professional, haircut, customer, at(10)).data
        result = appointment_service.update_appointment(pro_actor, a.id, {"professional_id": other_professional.id})
        assert result.error_kind == ERROR_PERMISSION

    def test_canceled_cannot_be_rescheduled(self, admin, professional, haircut, customer):
        a = book(admin, professional, haircut, customer, at(10)).data
        appointment_service.cancel_appointment(admin, a.id)

        result = appointment_service.update_appointment(admin, a.id, {"starts_at": at(12).isoformat()})
        assert result.error_kind == ERROR_VALIDATION


class TestStatus:

    def test_forward_moves(self, staff, professional, haircut, customer):
        a = book(staff, professional, haircut, customer, at(10)).data

        assert appointment_service.advance_status(staff, a.id, "CONFIRMED").data.status == "CONFIRMED"
        assert appointment_service.advance_status(staff, a.id, "IN_SERVICE").data.status == "IN_SERVICE"

        back = appointment_service.advance_status(staff, a.id, "SCHEDULED")
        assert not back.success

    def test_completion_refused_outside_checkout(self, staff, professional, haircut, customer):
        a = book(staff, professional, haircut, customer, at(10)).data
        result = appointment_service.advance_status(staff, a.id, "COMPLETED")
        assert not result.success
        assert "only through checkout" in result.error

    def test_canceled_status_uses_cancel_rules(self, admin, professional, haircut, customer):
        a = book(admin, professional, haircut, customer, at(10)).data
        result = appointment_service.advance_status(admin, a.id, "CANCELED", reason="no show")
        assert result.success
        assert result.data.cancel_reason == "no show"
        assert result.data.canceled_by_actor_id == admin.actor_id


class TestCancel:

    def test_staff_cancels_own_booking_only(self, admin, staff, professional, haircut, customer):
        own = book(staff, professional, haircut, customer, at(10)).data
        foreign = book(admin, professional, haircut, customer, at(11)).data

        assert appointment_service.cancel_appointment(staff, own.id).success
        denied = appointment_service.cancel_appointment(staff, foreign.id)
        assert denied.error_kind == ERROR_PERMISSION

    def test_cancellation_window_blocks_non_admin(self, tenant_a, pro_actor, admin, professional, haircut, customer):
        tenant_a.cancellation_window_minutes = 120
        db.session.commit()

        soon = (utcnow() + timedelta(minutes=60)).replace(microsecond=0)
        appt = book(admin, professional, haircut, customer, soon).data

        blocked = appointment_service.cancel_appointment(pro_actor, appt.id)
        assert blocked.error_kind == ERROR_VALIDATION
        assert "120 minutes" in blocked.error

        assert appointment_service.cancel_appointment(admin, appt.id).success

    def test_outside_window_allowed(self, tenant_a, pro_actor, professional, haircut, customer):
        tenant_a.cancellation_window_minutes = 120
        db.session.commit()

        appt = book(pro_actor, professional, haircut, customer, at(10)).data
        assert appointment_service.cancel_appointment(pro_actor, appt.id).success

    def test_cancel_twice_rejected(self, admin, professional, haircut, customer):
        appt = book(admin, professional, haircut, customer, at(10)).data
        assert appointment_service.cancel_appointment(admin, appt.id).success
        again = appointment_service.cancel_appointment(admin, appt.id)
        assert not again.success


class TestDelete:

    def test_admin_hard_delete(self, admin, professional, haircut, customer):
        appt = book(admin, professional, haircut, customer, at(10)).data
        appt_id = appt.id

        result = appointment_service.delete_appointment(admin, appt_id)
        assert result.success
        assert result.data == {"id": appt_id, "deleted": True}
        assert db.session.get(Appointment, appt_id) is None

    def test_staff_cannot_delete(self, staff, professional, haircut, customer):
        appt = book(staff, professional, haircut, customer, at(10)).data
        result = appointment_service.delete_appointment(staff, appt.id)
        assert result.error_kind == ERROR_PERMISSION


class TestListing:

    def test_professional_sees_only_own_agenda(self, staff, pro_actor, professional, other_professional, haircut, customer):
        book(staff, professional, haircut, customer, at(10))
        book(staff, other_professional, haircut, customer, at(10))

        assert len(appointment_service.list_appointments(staff)) == 2
        mine = appointment_service.list_appointments(pro_actor, professional_id=other_professional.id)
        assert [a.professional_id for a in mine] == [professional.id]

    def test_window_filter(self, staff, professional, haircut, customer):
        book(staff, professional, haircut, customer, at(9))
        book(staff, professional, haircut, customer, at(15))

        morning = appointment_service.list_appointments(staff, start=at(8), end=at(12))
        assert len(morning) == 1


@pytest.mark.parametrize("hour,minute,expected", [(9, 45, False), (10, 0, False), (10, 29, False), (10, 30, True)])
def test_store_arbitrates_slot(staff, professional, haircut, customer, hour, minute, expected):
    """The store re-reads the agenda; only slots starting at or after 10:30 pass."""
    assert book(staff, professional, haircut, customer, at(10)).success
    assert book(staff, professional, haircut, customer, at(hour, minute)).success is expected
