# Overview: Service-layer operations for the stock ledger; append-only movements plus the stock counter.

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import case, func

from ..extensions import db
from ..models import (
    MovementDirection, PaymentMethod, Product, RelatedEntityType, StockMovement,
    TransactionCategory, TransactionType,
)
from ..validation import ValidationError, coerce_enum, parse_datetime_field, parse_positive_int
from agendo.time_utils import utcnow
from .cash_service import record_transaction
from .concurrency import PersistenceError, store_round_trip
from .permission_service import ActorContext, require_permission
from .tenant_service import get_scoped

"""
Agendo Stock Ledger Invariants (authoritative)

- StockMovement rows are append-only: never updated, never deleted.
- quantity > 0 always; direction (ENTRY/EXIT) carries the sign.
- Product.stock is a denormalized running counter:
    * written by read-modify-write right AFTER the movement commits,
      as its own round trip (optimistic version check, retried on conflict);
    * a failed counter write is logged, never surfaced: the movement row
      is the source of truth and find_stock_drift() reports the gap.
- Opening stock must itself be an ENTRY movement for replay to match.
- Stock may go negative (a sale is never blocked by the counter); a
  warning is logged when it does.
"""

logger = logging.getLogger(__name__)

REASON_PURCHASE = "purchase"
REASON_INTERNAL_USE = "internal use"


class StockError(ValidationError):
    """Raised for invalid stock operations."""
    pass


def record_movement(
    *,
    tenant_id: int,
    product_id: int,
    direction,
    quantity: int,
    reason: str,
    note: str | None = None,
    occurred_at=None,
    actor_id: int | None = None,
    related_entity_type: RelatedEntityType | None = None,
    related_entity_id: int | None = None,
) -> StockMovement:
    """
    Append one movement, then bump the product's stock counter.

    Raises:
        StockError / ValidationError: before anything is written
        PersistenceError: the movement insert failed (nothing written)
    """
    direction = coerce_enum(MovementDirection, direction, "direction")
    quantity = parse_positive_int(quantity, "quantity")
    if not reason or not str(reason).strip():
        raise StockError("reason is required")
    occurred_dt = parse_datetime_field(occurred_at, "occurred_at") if occurred_at else utcnow()

    def _insert():
        product = get_scoped(Product, product_id, tenant_id, label="Product")
        movement = StockMovement(
            tenant_id=tenant_id,
            product_id=product.id,
            direction=direction.value,
            quantity=quantity,
            reason=str(reason).strip(),
            note=note,
            occurred_at=occurred_dt,
            actor_id=actor_id,
            related_entity_type=related_entity_type.value if related_entity_type else None,
            related_entity_id=related_entity_id,
        )
        db.session.add(movement)
        db.session.commit()
        return movement

    movement = store_round_trip(_insert, operation=f"record stock movement for product {product_id}")

    delta = movement.signed_quantity
    try:
        apply_stock_delta(tenant_id=tenant_id, product_id=product_id, delta=delta)
    except PersistenceError:
        logger.error(
            "Stock counter not updated after movement %s (product=%s delta=%s); ledger is authoritative",
            movement.id, product_id, delta,
        )

    return movement


def apply_stock_delta(*, tenant_id: int, product_id: int, delta: int) -> Product:
    """Read-modify-write of Product.stock as an independent round trip."""
    def _op():
        product = get_scoped(Product, product_id, tenant_id, label="Product")
        product.stock = (product.stock or 0) + delta
        if product.stock < 0:
            logger.warning("Product %s stock went negative (%s)", product.id, product.stock)
        db.session.commit()
        return product

    return store_round_trip(_op, operation=f"update stock counter for product {product_id}")


def get_stock_by_replay(tenant_id: int, product_id: int, as_of: datetime | None = None) -> int:
    """
    Derive stock from the ledger: SUM(ENTRY) - SUM(EXIT).

    As-of filtering is inclusive: occurred_at <= as_of.
    """
    signed = case(
        (StockMovement.direction == MovementDirection.ENTRY.value, StockMovement.quantity),
        else_=-StockMovement.quantity,
    )
    q = db.session.query(func.coalesce(func.sum(signed), 0)).filter(
        StockMovement.tenant_id == tenant_id,
        StockMovement.product_id == product_id,
    )
    if as_of is not None:
        q = q.filter(StockMovement.occurred_at <= as_of)
    return int(q.scalar() or 0)


def find_stock_drift(tenant_id: int) -> list[dict]:
    """Products whose stored counter disagrees with the ledger replay."""
    drift = []
    products = db.session.query(Product).filter_by(tenant_id=tenant_id).order_by(Product.id).all()
    for product in products:
        replayed = get_stock_by_replay(tenant_id, product.id)
        if replayed != product.stock:
            drift.append({
                "product_id": product.id,
                "name": product.name,
                "counter": product.stock,
                "replayed": replayed,
                "difference": product.stock - replayed,
            })
    return drift


def list_movements(*, tenant_id: int, product_id: int | None = None, limit: int = 200) -> list[StockMovement]:
    q = db.session.query(StockMovement).filter(StockMovement.tenant_id == tenant_id)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    return (
        q.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .limit(max(1, min(limit, 500)))
        .all()
    )


def record_manual_movement(actor: ActorContext, payload: dict) -> StockMovement:
    """Stock entry/exit from the inventory screen (e.g. internal use, loss)."""
    require_permission(actor, "MOVE_STOCK")
    return record_movement(
        tenant_id=actor.tenant_id,
        product_id=payload.get("product_id"),
        direction=payload.get("direction"),
        quantity=payload.get("quantity"),
        reason=payload.get("reason") or REASON_INTERNAL_USE,
        note=payload.get("note"),
        occurred_at=payload.get("occurred_at"),
        actor_id=actor.actor_id,
    )


def receive_purchase(
    actor: ActorContext,
    *,
    product_id: int,
    quantity,
    reason: str = REASON_PURCHASE,
    note: str | None = None,
    payment_method=PaymentMethod.CASH,
) -> StockMovement:
    """
    Stock purchase: an EXPENSE for cost_price x quantity (when > 0),
    then the ENTRY movement.
    """
    require_permission(actor, "MOVE_STOCK")
    quantity = parse_positive_int(quantity, "quantity")
    payment_method = coerce_enum(PaymentMethod, payment_method, "payment_method")
    product = get_scoped(Product, product_id, actor.tenant_id, label="Product")

    total_cost_cents = (product.cost_price_cents or 0) * quantity
    if total_cost_cents > 0:
        record_transaction(
            tenant_id=actor.tenant_id,
            type=TransactionType.EXPENSE,
            category=TransactionCategory.PRODUCT,
            amount_cents=total_cost_cents,
            description=f"Stock purchase: {product.name} ({quantity} units)",
            payment_method=payment_method,
            related_entity_type=RelatedEntityType.MANUAL,
            actor_id=actor.actor_id,
        )

    return record_movement(
        tenant_id=actor.tenant_id,
        product_id=product.id,
        direction=MovementDirection.ENTRY,
        quantity=quantity,
        reason=reason,
        note=note,
        actor_id=actor.actor_id,
    )
