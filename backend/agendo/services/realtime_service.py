# Overview: Real-time change feed; captures committed row changes and fans them out per tenant.

"""
Real-time Sync Feed

Every committed INSERT/UPDATE/DELETE of a synced table is published to the
subscribers of the row's tenant as a ChangeEvent {table, event_type, old, new}.

- Changes are captured in the session's after_flush hook and held in
  session.info until the transaction commits; a rollback discards them.
- Fan-out is best-effort: every subscriber owns a bounded queue and a full
  queue drops its oldest event (logged). Consumers that lost events reload.
- TenantCache is the client-side repository: it holds cached collections for
  one tenant, merges events into them and runs the advisory booking
  pre-check. It is never authoritative; the store decides acceptance.

Merge rule, keyed by id:
    INSERT / UPDATE -> replace the record if present, else append
    DELETE          -> remove the record
"""

from __future__ import annotations

import itertools
import json
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from agendo.time_utils import to_utc_z, utcnow
from .conflict_service import BookingSlot, ConflictCheck, find_conflict

logger = logging.getLogger(__name__)

EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"

SYNCED_TABLES = frozenset({
    "appointments",
    "clients",
    "products",
    "services",
    "professionals",
    "cash_transactions",
    "commissions",
    "stock_movements",
})

_PENDING_KEY = "agendo_pending_changes"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str
    tenant_id: int
    new: dict | None = None
    old: dict | None = None
    occurred_at: str = field(default_factory=lambda: to_utc_z(utcnow()))

    @property
    def record_id(self):
        source = self.new if self.new is not None else self.old
        return (source or {}).get("id")

    def to_dict(self) -> dict:
        return {
            "table": self.table,
            "event_type": self.event_type,
            "tenant_id": self.tenant_id,
            "old": self.old,
            "new": self.new,
            "occurred_at": self.occurred_at,
        }


class Subscription:
    """One consumer of a tenant's feed."""

    _ids = itertools.count(1)

    def __init__(self, tenant_id: int, maxsize: int, tables: Iterable[str] | None = None):
        self.id = next(self._ids)
        self.tenant_id = tenant_id
        self.tables = frozenset(tables) if tables else None
        self.dropped = 0
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)

    def wants(self, change: ChangeEvent) -> bool:
        return change.tenant_id == self.tenant_id and (self.tables is None or change.table in self.tables)

    def offer(self, change: ChangeEvent) -> None:
        while True:
            try:
                self._queue.put_nowait(change)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                    logger.warning(
                        "Feed subscriber %s (tenant %s) overflowed; dropped oldest event",
                        self.id, self.tenant_id,
                    )
                except queue.Empty:
                    pass

    def get(self, timeout: float | None = None) -> ChangeEvent | None:
        """Next event, or None when nothing arrived within timeout."""
        try:
            if timeout is not None and timeout <= 0:
                return self._queue.get_nowait()
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[ChangeEvent]:
        events = []
        while True:
            change = self.get(timeout=0)
            if change is None:
                return events
            events.append(change)


class ChangeFeed:
    """Per-tenant fan-out hub."""

    def __init__(self, queue_size: int = 1000):
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._subscriptions: dict[int, Subscription] = {}

    def configure(self, *, queue_size: int) -> None:
        self.queue_size = queue_size

    def subscribe(self, tenant_id: int, tables: Iterable[str] | None = None) -> Subscription:
        sub = Subscription(tenant_id, self.queue_size, tables)
        with self._lock:
            self._subscriptions[sub.id] = sub
        logger.info("Feed subscriber %s connected (tenant %s)", sub.id, tenant_id)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subscriptions.pop(sub.id, None)
        logger.info("Feed subscriber %s disconnected (tenant %s)", sub.id, sub.tenant_id)

    def subscriber_count(self, tenant_id: int | None = None) -> int:
        with self._lock:
            subs = list(self._subscriptions.values())
        if tenant_id is None:
            return len(subs)
        return sum(1 for s in subs if s.tenant_id == tenant_id)

    def publish(self, change: ChangeEvent) -> int:
        """Deliver to every interested subscriber; returns how many got it."""
        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.wants(change)]
        for sub in targets:
            sub.offer(change)
        return len(targets)


feed = ChangeFeed()


# --- capture from the SQLAlchemy session ------------------------------------

def _identity_dict(obj) -> dict:
    identity = inspect(obj).identity
    return {"id": identity[0] if identity else getattr(obj, "id", None)}


def _capture(obj, event_type: str) -> ChangeEvent | None:
    table = getattr(obj, "__tablename__", None)
    if table not in SYNCED_TABLES:
        return None
    tenant_id = getattr(obj, "tenant_id", None)
    if event_type == EVENT_DELETE:
        return ChangeEvent(table=table, event_type=event_type, tenant_id=tenant_id, old=_identity_dict(obj))
    old = _identity_dict(obj) if event_type == EVENT_UPDATE else None
    return ChangeEvent(table=table, event_type=event_type, tenant_id=tenant_id, new=obj.to_dict(), old=old)


def _after_flush(session, flush_context):
    pending = session.info.setdefault(_PENDING_KEY, [])
    for obj in session.new:
        change = _capture(obj, EVENT_INSERT)
        if change:
            pending.append(change)
    for obj in session.dirty:
        if not session.is_modified(obj, include_collections=False):
            continue
        change = _capture(obj, EVENT_UPDATE)
        if change:
            pending.append(change)
    for obj in session.deleted:
        change = _capture(obj, EVENT_DELETE)
        if change:
            pending.append(change)


def _after_commit(session):
    pending = session.info.pop(_PENDING_KEY, [])
    for change in pending:
        feed.publish(change)


def _after_rollback(session):
    discarded = session.info.pop(_PENDING_KEY, [])
    if discarded:
        logger.debug("Discarded %s unpublished change(s) after rollback", len(discarded))


def install_session_listeners() -> None:
    """Hook the feed into every ORM session (idempotent)."""
    for name, fn in (
        ("after_flush", _after_flush),
        ("after_commit", _after_commit),
        ("after_rollback", _after_rollback),
    ):
        if not event.contains(Session, name, fn):
            event.listen(Session, name, fn)


# --- client-side repository --------------------------------------------------

def merge_change(records: list[dict], change: ChangeEvent) -> list[dict]:
    """Apply one event to a cached collection and return the new collection."""
    record_id = change.record_id
    if change.event_type == EVENT_DELETE:
        return [r for r in records if r.get("id") != record_id]

    merged = []
    replaced = False
    for r in records:
        if r.get("id") == record_id:
            merged.append(change.new)
            replaced = True
        else:
            merged.append(r)
    if not replaced:
        merged.append(change.new)
    return merged


class TenantCache:
    """
    One session's cached view of a tenant.

    load() seeds a collection from a full read; apply() keeps it current
    from the feed. Events for other tenants or unknown tables are ignored.
    """

    def __init__(self, tenant_id: int):
        self.tenant_id = tenant_id
        self._collections: dict[str, list[dict]] = {table: [] for table in SYNCED_TABLES}

    def load(self, table: str, records: Iterable[dict]) -> None:
        if table not in SYNCED_TABLES:
            raise KeyError(table)
        self._collections[table] = list(records)

    def get(self, table: str) -> list[dict]:
        return list(self._collections[table])

    def find(self, table: str, record_id) -> dict | None:
        for record in self._collections[table]:
            if record.get("id") == record_id:
                return record
        return None

    def apply(self, change: ChangeEvent) -> bool:
        if change.tenant_id != self.tenant_id or change.table not in self._collections:
            return False
        self._collections[change.table] = merge_change(self._collections[change.table], change)
        return True

    def apply_all(self, changes: Iterable[ChangeEvent]) -> int:
        return sum(1 for change in changes if self.apply(change))

    def check_booking(self, candidate: BookingSlot, *, exclude_id: int | None = None) -> ConflictCheck:
        """
        Advisory pre-check against the cached agenda.

        A clean result does not guarantee acceptance; the booking service
        re-checks against the store.
        """
        durations = {s["id"]: s.get("duration_minutes") for s in self._collections["services"]}
        existing = [BookingSlot.from_record(a) for a in self._collections["appointments"]]
        return find_conflict(candidate, existing, durations, exclude_id=exclude_id)


# --- Server-Sent Events framing ----------------------------------------------

def format_sse(change: ChangeEvent) -> str:
    return f"event: change\ndata: {json.dumps(change.to_dict())}\n\n"


def event_stream(
    subscription: Subscription,
    *,
    heartbeat_seconds: float = 15.0,
    max_events: int | None = None,
) -> Iterator[str]:
    """
    Yield SSE frames for a subscription until the client goes away
    (or max_events were sent). Always unsubscribes.
    """
    sent = 0
    try:
        yield f"event: ready\ndata: {json.dumps({'subscription_id': subscription.id})}\n\n"
        while max_events is None or sent < max_events:
            change = subscription.get(timeout=heartbeat_seconds)
            if change is None:
                yield ": heartbeat\n\n"
                continue
            yield format_sse(change)
            sent += 1
    finally:
        feed.unsubscribe(subscription)
