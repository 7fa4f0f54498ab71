# Overview: Pytest coverage for the change feed, cache merging and SSE framing.

from datetime import datetime, timezone

import pytest

from agendo.extensions import db
from agendo.models import Client
from agendo.services import cash_service, stock_service
from agendo.services.conflict_service import BookingSlot
from agendo.services.realtime_service import (
    EVENT_DELETE, EVENT_INSERT, EVENT_UPDATE, ChangeEvent, Subscription, TenantCache,
    event_stream, feed, format_sse, merge_change,
)

from conftest import at


@pytest.fixture
def subscription(tenant_a):
    sub = feed.subscribe(tenant_a.id)
    yield sub
    feed.unsubscribe(sub)


def income(tenant_id, cents):
    return cash_service.record_transaction(
        tenant_id=tenant_id, type="INCOME", category="OTHER", amount_cents=cents, description="tip",
    )


class TestCapture:

    def test_commit_publishes_insert(self, tenant_a, subscription):
        tx = income(tenant_a.id, 500)

        events = subscription.drain()
        assert [(e.table, e.event_type) for e in events] == [("cash_transactions", EVENT_INSERT)]
        assert events[0].new["id"] == tx.id
        assert events[0].new["amount_cents"] == 500
        assert events[0].old is None

    def test_rollback_discards(self, tenant_a, subscription):
        db.session.add(Client(tenant_id=tenant_a.id, name="Ghost"))
        db.session.flush()
        db.session.rollback()

        assert subscription.drain() == []

    def test_update_and_delete(self, tenant_a, customer, subscription):
        customer.phone = "11888880000"
        db.session.commit()
        client_id = customer.id
        db.session.delete(customer)
        db.session.commit()

        events = subscription.drain()
        assert [e.event_type for e in events] == [EVENT_UPDATE, EVENT_DELETE]
        assert events[0].new["phone"] == "11888880000"
        assert events[0].old == {"id": client_id}
        assert events[1].new is None
        assert events[1].old == {"id": client_id}

    def test_other_tenant_never_sees_events(self, tenant_a, tenant_b):
        sub_b = feed.subscribe(tenant_b.id)
        try:
            income(tenant_a.id, 500)
            assert sub_b.drain() == []
            income(tenant_b.id, 700)
            assert [e.new["amount_cents"] for e in sub_b.drain()] == [700]
        finally:
            feed.unsubscribe(sub_b)

    def test_table_filter(self, tenant_a, pomada):
        sub = feed.subscribe(tenant_a.id, tables=["products"])
        try:
            stock_service.record_movement(
                tenant_id=tenant_a.id, product_id=pomada.id, direction="EXIT", quantity=1, reason="sale",
            )
            events = sub.drain()
            assert [e.table for e in events] == ["products"]
            assert events[0].new["stock"] == 9
        finally:
            feed.unsubscribe(sub)

    def test_unsynced_tables_not_published(self, tenant_a, subscription):
        tenant_a.name = "Barbearia Centro II"
        db.session.commit()
        assert subscription.drain() == []


class TestSubscription:

    def test_overflow_drops_oldest(self):
        sub = Subscription(tenant_id=1, maxsize=2)
        for n in range(3):
            sub.offer(ChangeEvent(table="clients", event_type=EVENT_INSERT, tenant_id=1, new={"id": n}))

        assert [e.record_id for e in sub.drain()] == [1, 2]
        assert sub.dropped == 1

    def test_get_times_out_with_none(self):
        sub = Subscription(tenant_id=1, maxsize=2)
        assert sub.get(timeout=0) is None
        assert sub.get(timeout=0.01) is None

    def test_subscriber_count(self, tenant_a, subscription):
        assert feed.subscriber_count(tenant_a.id) == 1
        assert feed.subscriber_count(tenant_a.id + 1000) == 0


class TestMerge:

    def change(self, event_type, record_id, **values):
        record = {"id": record_id, **values}
        if event_type == EVENT_DELETE:
            return ChangeEvent(table="clients", event_type=event_type, tenant_id=1, old={"id": record_id})
        return ChangeEvent(table="clients", event_type=event_type, tenant_id=1, new=record)

    def test_insert_appends(self):
        records = [{"id": 1, "name": "A"}]
        assert merge_change(records, self.change(EVENT_INSERT, 2, name="B")) == [
            {"id": 1, "name": "A"}, {"id": 2, "name": "B"},
        ]

    def test_insert_of_known_id_replaces(self):
        records = [{"id": 1, "name": "A"}]
        assert merge_change(records, self.change(EVENT_INSERT, 1, name="A2")) == [{"id": 1, "name": "A2"}]

    def test_update_replaces_in_place(self):
        records = [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}]
        merged = merge_change(records, self.change(EVENT_UPDATE, 1, name="Z"))
        assert merged == [{"id": 1, "name": "Z"}, {"id": 2, "name": "B"}]
        assert records[0]["name"] == "A"

    def test_update_of_unknown_id_appends(self):
        assert merge_change([], self.change(EVENT_UPDATE, 5, name="E")) == [{"id": 5, "name": "E"}]

    def test_delete_removes(self):
        records = [{"id": 1}, {"id": 2}]
        assert merge_change(records, self.change(EVENT_DELETE, 1)) == [{"id": 2}]

    def test_delete_of_unknown_id_is_noop(self):
        assert merge_change([{"id": 1}], self.change(EVENT_DELETE, 9)) == [{"id": 1}]


class TestTenantCache:

    def cache(self):
        cache = TenantCache(tenant_id=1)
        cache.load("services", [{"id": 1, "duration_minutes": 30}])
        cache.load("appointments", [{
            "id": 10, "professional_id": 7, "service_id": 1,
            "starts_at": "2031-03-10T10:00:00Z", "status": "SCHEDULED",
        }])
        return cache

    def test_foreign_tenant_events_ignored(self):
        cache = self.cache()
        foreign = ChangeEvent(table="appointments", event_type=EVENT_DELETE, tenant_id=2, old={"id": 10})
        assert not cache.apply(foreign)
        assert cache.find("appointments", 10) is not None

    def test_check_booking_against_cache(self):
        cache = self.cache()
        assert cache.check_booking(BookingSlot(professional_id=7, service_id=1, starts_at=at(10, 15)))
        assert not cache.check_booking(BookingSlot(professional_id=7, service_id=1, starts_at=at(10, 30)))

    def test_check_booking_with_aware_start(self):
        cache = self.cache()
        aware = datetime(2031, 3, 10, 10, 15, tzinfo=timezone.utc)
        check = cache.check_booking(BookingSlot(professional_id=7, service_id=1, starts_at=aware))
        assert check.conflicting_id == 10

    def test_cache_follows_cancellation(self):
        cache = self.cache()
        canceled = ChangeEvent(
            table="appointments", event_type=EVENT_UPDATE, tenant_id=1,
            new={"id": 10, "professional_id": 7, "service_id": 1,
                 "starts_at": "2031-03-10T10:00:00Z", "status": "CANCELED"},
            old={"id": 10},
        )
        assert cache.apply_all([canceled]) == 1
        assert not cache.check_booking(BookingSlot(professional_id=7, service_id=1, starts_at=at(10, 15)))

    def test_unknown_table_cannot_be_loaded(self):
        with pytest.raises(KeyError):
            TenantCache(tenant_id=1).load("tenants", [])


class TestEventStream:

    def test_frames_and_unsubscribe(self, tenant_a):
        sub = feed.subscribe(tenant_a.id)
        sub.offer(ChangeEvent(
            table="clients", event_type=EVENT_INSERT, tenant_id=tenant_a.id,
            new={"id": 1}, occurred_at="2031-03-10T10:00:00Z",
        ))

        frames = list(event_stream(sub, heartbeat_seconds=0.01, max_events=1))

        assert frames[0].startswith("event: ready\n")
        assert frames[-1].startswith("event: change\ndata: ")
        assert '"event_type": "INSERT"' in frames[-1]
        assert feed.subscriber_count(tenant_a.id) == 0

    def test_heartbeat_when_idle(self, tenant_a):
        sub = feed.subscribe(tenant_a.id)
        stream = event_stream(sub, heartbeat_seconds=0.01)
        assert next(stream).startswith("event: ready")
        assert next(stream) == ": heartbeat\n\n"
        stream.close()
        assert feed.subscriber_count(tenant_a.id) == 0

    def test_format_sse(self):
        change = ChangeEvent(
            table="products", event_type=EVENT_DELETE, tenant_id=1, old={"id": 3},
            occurred_at=datetime(2031, 3, 10).isoformat(),
        )
        assert format_sse(change).endswith("\n\n")
        assert '"old": {"id": 3}' in format_sse(change)
