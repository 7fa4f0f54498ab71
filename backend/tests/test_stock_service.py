# Overview: Pytest coverage for the stock ledger, counter replay and purchases.

from datetime import timedelta

import pytest

from agendo.extensions import db
from agendo.models import CashTransaction, Product, StockMovement
from agendo.services import stock_service
from agendo.services.concurrency import PersistenceError
from agendo.services.permission_service import PermissionDeniedError
from agendo.validation import NotFoundError, ValidationError
from agendo.time_utils import utcnow

from conftest import make_product


class TestRecordMovement:

    def test_entry_and_exit_update_counter(self, tenant_a, pomada):
        stock_service.record_movement(
            tenant_id=tenant_a.id, product_id=pomada.id, direction="EXIT", quantity=3, reason="sale",
        )
        db.session.refresh(pomada)
        assert pomada.stock == 7
        assert stock_service.get_stock_by_replay(tenant_a.id, pomada.id) == 7

    def test_quantity_must_be_positive(self, tenant_a, pomada):
        with pytest.raises(ValidationError):
            stock_service.record_movement(
                tenant_id=tenant_a.id, product_id=pomada.id, direction="EXIT", quantity=0, reason="sale",
            )
        assert db.session.query(StockMovement).filter_by(product_id=pomada.id).count() == 1

    def test_reason_required(self, tenant_a, pomada):
        with pytest.raises(stock_service.StockError):
            stock_service.record_movement(
                tenant_id=tenant_a.id, product_id=pomada.id, direction="ENTRY", quantity=1, reason="  ",
            )

    def test_unknown_direction(self, tenant_a, pomada):
        with pytest.raises(ValidationError, match="direction"):
            stock_service.record_movement(
                tenant_id=tenant_a.id, product_id=pomada.id, direction="SIDEWAYS", quantity=1, reason="x",
            )

    def test_other_tenant_product_not_found(self, tenant_b, pomada):
        with pytest.raises(NotFoundError):
            stock_service.record_movement(
                tenant_id=tenant_b.id, product_id=pomada.id, direction="ENTRY", quantity=1, reason="x",
            )

    def test_negative_stock_allowed(self, tenant_a, shampoo):
        stock_service.record_movement(
            tenant_id=tenant_a.id, product_id=shampoo.id, direction="EXIT", quantity=8, reason="sale",
        )
        db.session.refresh(shampoo)
        assert shampoo.stock == -3
        assert stock_service.find_stock_drift(tenant_a.id) == []

    def test_counter_failure_keeps_movement(self, tenant_a, pomada, monkeypatch):
        def failing_delta(**kwargs):
            raise PersistenceError("Failed to update stock counter")

        monkeypatch.setattr(stock_service, "apply_stock_delta", failing_delta)

        movement = stock_service.record_movement(
            tenant_id=tenant_a.id, product_id=pomada.id, direction="EXIT", quantity=2, reason="sale",
        )
        assert movement.id is not None
        assert stock_service.get_stock_by_replay(tenant_a.id, pomada.id) == 8

        drift = stock_service.find_stock_drift(tenant_a.id)
        assert drift == [{
            "product_id": pomada.id,
            "name": "Pomada",
            "counter": 10,
            "replayed": 8,
            "difference": 2,
        }]


class TestReplay:

    def test_as_of_is_inclusive(self, tenant_a):
        product = make_product(tenant_a.id, "Cera", selling=3000)
        base = utcnow().replace(microsecond=0) - timedelta(days=2)

        stock_service.record_movement(
            tenant_id=tenant_a.id, product_id=product.id, direction="ENTRY", quantity=5,
            reason="opening stock", occurred_at=base,
        )
        stock_service.record_movement(
            tenant_id=tenant_a.id, product_id=product.id, direction="EXIT", quantity=2,
            reason="sale", occurred_at=base + timedelta(hours=1),
        )

        assert stock_service.get_stock_by_replay(tenant_a.id, product.id, as_of=base) == 5
        assert stock_service.get_stock_by_replay(tenant_a.id, product.id, as_of=base + timedelta(hours=1)) == 3
        assert stock_service.get_stock_by_replay(tenant_a.id, product.id, as_of=base - timedelta(seconds=1)) == 0

    def test_replay_is_tenant_scoped(self, tenant_a, tenant_b, pomada):
        assert stock_service.get_stock_by_replay(tenant_b.id, pomada.id) == 0

    def test_drift_detects_manual_counter_edit(self, tenant_a, pomada, shampoo):
        pomada.stock = 42
        db.session.commit()

        drift = stock_service.find_stock_drift(tenant_a.id)
        assert [d["product_id"] for d in drift] == [pomada.id]
        assert drift[0]["difference"] == 32


class TestManualAndPurchase:

    def test_manual_movement_defaults_reason(self, staff, pomada):
        movement = stock_service.record_manual_movement(staff, {
            "product_id": pomada.id, "direction": "EXIT", "quantity": "1",
        })
        assert movement.reason == stock_service.REASON_INTERNAL_USE
        assert movement.actor_id == staff.actor_id

    def test_professional_cannot_move_stock(self, pro_actor, pomada):
        with pytest.raises(PermissionDeniedError):
            stock_service.record_manual_movement(pro_actor, {
                "product_id": pomada.id, "direction": "ENTRY", "quantity": 1,
            })

    def test_purchase_records_expense_and_entry(self, staff, pomada):
        stock_service.receive_purchase(staff, product_id=pomada.id, quantity=4, payment_method="PIX")

        db.session.refresh(pomada)
        assert pomada.stock == 14

        expense = db.session.query(CashTransaction).one()
        assert expense.type == "EXPENSE"
        assert expense.category == "PRODUCT"
        assert expense.amount_cents == 4800
        assert expense.payment_method == "PIX"

    def test_free_product_purchase_has_no_expense(self, staff, tenant_a):
        sample = make_product(tenant_a.id, "Amostra", selling=0, cost=0)
        stock_service.receive_purchase(staff, product_id=sample.id, quantity=3)

        assert db.session.query(CashTransaction).count() == 0
        assert db.session.get(Product, sample.id).stock == 3

    def test_list_movements_newest_first(self, tenant_a, pomada):
        stock_service.record_movement(
            tenant_id=tenant_a.id, product_id=pomada.id, direction="EXIT", quantity=1, reason="sale",
        )
        movements = stock_service.list_movements(tenant_id=tenant_a.id, product_id=pomada.id)
        assert [m.direction for m in movements] == ["EXIT", "ENTRY"]
