"""
Clock helpers. Every datetime stored or compared by the services is UTC
without tzinfo; aware values are converted on the way in and a trailing Z
is added on the way out.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 text ('Z' or an offset allowed; no offset means UTC). Blank -> None."""
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    return _to_naive_utc(datetime.fromisoformat(text))


def normalize_datetime(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _to_naive_utc(value)
    if isinstance(value, str):
        return parse_iso_datetime(value)
    raise ValueError(f"not a datetime: {value!r}")


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Seconds-precision ISO-8601 with a trailing Z; naive input is taken as UTC."""
    if dt is None:
        return None
    return _to_naive_utc(dt).replace(microsecond=0).isoformat() + "Z"
