# Overview: Pure booking-overlap detection; no database access.

"""
Agenda Conflict Invariants (authoritative)

- An appointment occupies the half-open interval [starts_at, starts_at + duration).
- Two intervals conflict iff start < other_end and end > other_start.
  An appointment ending at T and one starting at T do NOT conflict.
- Only appointments of the same professional are compared.
- CANCELED appointments never block a slot.
- Fail safe: if the duration of either side cannot be resolved (unknown
  service), the candidate is treated as conflicting and must be rejected.

This module is used twice: as the advisory pre-check against a session's
cached agenda (realtime_service.TenantCache) and inside the booking
transaction against rows re-read from the store (appointment_service).
Only the latter is authoritative.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Mapping

from agendo.time_utils import normalize_datetime

CANCELED = "CANCELED"


@dataclass(frozen=True)
class BookingSlot:
    professional_id: int
    service_id: int
    starts_at: datetime
    appointment_id: int | None = None
    status: str = "SCHEDULED"

    def __post_init__(self):
        # Stored and cached rows are UTC-naive; aware input is converted to match
        object.__setattr__(self, "starts_at", normalize_datetime(self.starts_at))

    @classmethod
    def from_record(cls, record) -> "BookingSlot":
        """Build from an Appointment row or a feed/cache dict."""
        if isinstance(record, Mapping):
            return cls(
                professional_id=record["professional_id"],
                service_id=record["service_id"],
                starts_at=record["starts_at"],
                appointment_id=record.get("id"),
                status=record.get("status") or "SCHEDULED",
            )
        return cls(
            professional_id=record.professional_id,
            service_id=record.service_id,
            starts_at=record.starts_at,
            appointment_id=record.id,
            status=record.status,
        )


@dataclass(frozen=True)
class ConflictCheck:
    conflict: bool
    conflicting_id: int | None = None
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.conflict


def interval_for(starts_at: datetime, duration_minutes: int) -> tuple[datetime, datetime]:
    return starts_at, starts_at + timedelta(minutes=duration_minutes)


def intervals_overlap(a: tuple[datetime, datetime], b: tuple[datetime, datetime]) -> bool:
    return a[0] < b[1] and a[1] > b[0]


def find_conflict(
    candidate: BookingSlot,
    existing: Iterable[BookingSlot],
    durations: Mapping[int, int],
    *,
    exclude_id: int | None = None,
) -> ConflictCheck:
    """
    Check a candidate slot against a professional's existing bookings.

    Args:
        candidate: the slot being booked or moved
        existing: known bookings (any professional; others are skipped)
        durations: service_id -> duration_minutes
        exclude_id: appointment being edited, never conflicts with itself

    Returns:
        ConflictCheck; truthy when the candidate must be rejected
    """
    candidate_duration = durations.get(candidate.service_id)
    if not candidate_duration:
        return ConflictCheck(True, reason=f"service {candidate.service_id} could not be resolved")

    candidate_interval = interval_for(candidate.starts_at, candidate_duration)

    for slot in existing:
        if exclude_id is not None and slot.appointment_id == exclude_id:
            continue
        if slot.status == CANCELED:
            continue
        if slot.professional_id != candidate.professional_id:
            continue

        duration = durations.get(slot.service_id)
        if not duration:
            return ConflictCheck(
                True,
                conflicting_id=slot.appointment_id,
                reason=f"service {slot.service_id} of appointment {slot.appointment_id} could not be resolved",
            )

        if intervals_overlap(candidate_interval, interval_for(slot.starts_at, duration)):
            return ConflictCheck(
                True,
                conflicting_id=slot.appointment_id,
                reason="time slot overlaps an existing appointment",
            )

    return ConflictCheck(False)


def has_conflict(candidate, existing, durations, *, exclude_id=None) -> bool:
    return find_conflict(candidate, existing, durations, exclude_id=exclude_id).conflict
