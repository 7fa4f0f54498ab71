# Overview: Appointment lifecycle state machine.

"""
Agendo Appointment Lifecycle

================================================================================
STATE MACHINE:
    SCHEDULED -> CONFIRMED -> IN_SERVICE -> COMPLETED
         \\            \\            \\
          +------------+------------+----> CANCELED

    SCHEDULED:  initial state of every booking
    CONFIRMED:  client confirmed attendance
    IN_SERVICE: professional started the service
    COMPLETED:  settled by checkout (terminal)
    CANCELED:   canceled by staff/professional (terminal)

RULES (NON-NEGOTIABLE):
1. Forward-only: no transition goes back to an earlier state.
2. Steps may be skipped forward (SCHEDULED -> IN_SERVICE is allowed).
3. CANCELED is reachable from every non-terminal state.
4. COMPLETED is reachable only through the checkout saga (via_settlement=True).
5. COMPLETED -> COMPLETED is the re-settlement path (editing a finalized
   sale), also checkout-only. It is not a normal transition.
6. Terminal states never leave.
================================================================================
"""

from __future__ import annotations

from ..models import AppointmentStatus
from ..validation import ValidationError, coerce_enum


_ORDER = {
    AppointmentStatus.SCHEDULED: 0,
    AppointmentStatus.CONFIRMED: 1,
    AppointmentStatus.IN_SERVICE: 2,
    AppointmentStatus.COMPLETED: 3,
}

TERMINAL_STATUSES = {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELED}


class LifecycleError(ValidationError):
    """
    Raised when an invalid lifecycle transition is attempted.

    This is a domain error, not a technical error. It indicates
    that the user attempted an operation that violates business rules.
    """
    pass


def validate_status(status) -> AppointmentStatus:
    try:
        return coerce_enum(AppointmentStatus, status, "status")
    except ValidationError as exc:
        raise LifecycleError(str(exc))


def is_terminal(status) -> bool:
    return validate_status(status) in TERMINAL_STATUSES


def can_settle(status) -> bool:
    """Checkout accepts any non-terminal state, and COMPLETED for re-settlement."""
    current = validate_status(status)
    return current != AppointmentStatus.CANCELED


def can_transition(from_status, to_status, *, via_settlement: bool = False) -> bool:
    current = validate_status(from_status)
    target = validate_status(to_status)

    if target == AppointmentStatus.COMPLETED:
        if not via_settlement:
            return False
        return current != AppointmentStatus.CANCELED

    if current in TERMINAL_STATUSES:
        return False

    if target == AppointmentStatus.CANCELED:
        return True

    return _ORDER[target] > _ORDER[current]


def require_transition(from_status, to_status, *, via_settlement: bool = False) -> AppointmentStatus:
    """Validate a transition and return the target status, or raise LifecycleError."""
    if not can_transition(from_status, to_status, via_settlement=via_settlement):
        target = validate_status(to_status)
        if target == AppointmentStatus.COMPLETED and not via_settlement:
            raise LifecycleError("Appointments are completed only through checkout")
        raise LifecycleError(
            f"Cannot move appointment from {validate_status(from_status).value} to {target.value}"
        )
    return validate_status(to_status)
