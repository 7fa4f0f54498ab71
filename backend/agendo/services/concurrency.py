# Overview: Service-layer helpers for store round trips, retries and in-flight guards.

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """A single store round trip failed (after retries)."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class OperationInFlightError(Exception):
    """The same logical operation is already running for this entity."""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def begin_immediate_if_sqlite() -> None:
    """Take SQLite's write lock up front so check-then-insert cannot interleave."""
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        db.session.execute(db.text("BEGIN IMMEDIATE"))


def _default_attempts() -> int:
    if has_app_context():
        return int(current_app.config.get("RETRY_ATTEMPTS", 3))
    return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    attempts = attempts or _default_attempts()
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def store_round_trip(func, *, operation: str, attempts: int | None = None):
    """
    Run one store round trip (query + commit) as an independent unit.

    Concurrency failures are retried; any remaining SQLAlchemy failure rolls
    the session back and surfaces as PersistenceError. Domain exceptions
    raised by func propagate untouched.
    """
    try:
        return run_with_retry(func, attempts=attempts)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Store round trip failed: %s (%s)", operation, exc)
        raise PersistenceError(f"Failed to {operation}", operation=operation) from exc


class InFlightGuard:
    """
    Busy flag keyed by entity id.

    Serializes one logical action per entity inside this process (a second
    submit while the first is running is rejected, not queued). Offers no
    protection against other processes; the store arbitrates those.
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._active: set = set()

    def is_busy(self, key) -> bool:
        with self._lock:
            return key in self._active

    @contextmanager
    def hold(self, key):
        with self._lock:
            if key in self._active:
                raise OperationInFlightError(f"{self.name} already in progress for {key}")
            self._active.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(key)
