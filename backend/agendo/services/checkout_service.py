# Overview: Checkout settlement engine; completes appointments and drives stock, cash and commission.

"""
Agendo Checkout (Settlement) Saga

================================================================================
STEPS (each one its own store round trip, in this order):
    1. Re-settlement only: restore every previously sold line with an ENTRY
       movement (the original EXIT rows are never touched).
    2. One EXIT movement per current line.
    3. Upsert THE income transaction of the appointment.
    4. Upsert THE commission of the appointment (when commission > 0).
    5. Any error collected in 1-4 -> PartialSettlementError; the
       appointment is NOT completed and steps already applied stay applied.
    6. Complete the appointment: status, total and the products_sold snapshot.

RULES:
- Validation and permission failures reject before step 1.
- There is no automatic compensation. The next settlement of the same
  appointment is the compensation: step 1 reverses the last snapshot and
  steps 3-4 overwrite the money rows instead of adding new ones.
- One settlement per appointment at a time inside a process (InFlightGuard);
  other processes are arbitrated by the unique indexes on the money rows
  and the appointment's version column.
================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..extensions import db
from ..models import (
    Appointment, AppointmentStatus, Client, MovementDirection, PaymentMethod, Product,
    Professional, RelatedEntityType, Service, TransactionCategory, TransactionType,
)
from ..validation import ValidationError, coerce_enum, format_cents, parse_positive_int
from agendo.time_utils import utcnow
from .cash_service import record_transaction, upsert_entity_transaction
from .client_service import is_subscription_active
from .commission_service import commission_amount_cents, upsert_appointment_commission
from .concurrency import InFlightGuard, PersistenceError, store_round_trip
from .lifecycle_service import LifecycleError, can_settle, require_transition
from .permission_service import (
    ActorContext, PermissionDeniedError, has_permission, owns_appointment, require_permission,
)
from .results import returns_result
from .stock_service import record_movement
from .tenant_service import get_scoped, get_tenant

logger = logging.getLogger(__name__)

REASON_APPOINTMENT_SALE = "appointment sale"
REASON_APPOINTMENT_CORRECTION = "appointment sale (correction)"
REASON_SETTLEMENT_REVERSAL = "settlement reversal"
REASON_DIRECT_SALE = "direct sale"

_settlement_guard = InFlightGuard("checkout")


class SettlementError(ValidationError):
    """Raised for invalid checkout input (bad lines, unsettleable appointment)."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class PartialSettlementError(Exception):
    """
    One or more saga steps failed.

    errors: every collected failure, in step order
    applied: the steps that did succeed and were NOT undone
    """

    def __init__(self, errors: list[str], applied: list[dict] | None = None):
        super().__init__("; ".join(errors))
        self.errors = list(errors)
        self.applied = list(applied or [])


@dataclass(frozen=True)
class SettlementLine:
    product_id: int
    quantity: int

    @classmethod
    def from_payload(cls, item) -> "SettlementLine":
        if isinstance(item, SettlementLine):
            return item
        if not isinstance(item, dict):
            raise SettlementError("Each line must be an object with product_id and quantity")
        product_id = parse_positive_int(item.get("product_id"), "product_id")
        quantity = parse_positive_int(item.get("quantity"), "quantity")
        return cls(product_id=product_id, quantity=quantity)


def normalize_lines(lines) -> list[SettlementLine]:
    """
    Validate lines and merge repeated products into one line.

    First-seen order is kept.
    """
    if lines is None:
        return []
    if not isinstance(lines, (list, tuple)):
        raise SettlementError("lines must be a list")
    merged: dict[int, int] = {}
    for item in lines:
        line = SettlementLine.from_payload(item)
        merged[line.product_id] = merged.get(line.product_id, 0) + line.quantity
    return [SettlementLine(product_id=pid, quantity=qty) for pid, qty in merged.items()]


def effective_service_price_cents(client: Client, service: Service, at=None) -> int:
    """Service component of the total; 0 for an active flat-rate subscriber."""
    if is_subscription_active(client, at):
        return 0
    return service.price_cents or 0


def build_snapshot(lines: list[SettlementLine], products: dict[int, Product]) -> list[dict]:
    """Immutable copy of what was sold, detached from later catalog edits."""
    return [
        {
            "product_id": line.product_id,
            "name": products[line.product_id].name,
            "quantity": line.quantity,
            "selling_price_cents": products[line.product_id].selling_price_cents,
        }
        for line in lines
    ]


def _require_settle_permission(actor: ActorContext, appointment: Appointment, allow_professional_checkout: bool) -> None:
    if has_permission(actor, "SETTLE_APPOINTMENT"):
        return
    if (
        allow_professional_checkout
        and has_permission(actor, "SETTLE_OWN_APPOINTMENT")
        and owns_appointment(actor, appointment)
    ):
        return
    logger.warning(
        "Checkout denied: actor=%s appointment=%s allow_professional_checkout=%s",
        actor.actor_id, appointment.id, allow_professional_checkout,
    )
    raise PermissionDeniedError("You are not allowed to check out this appointment")


def _load_products(tenant_id: int, lines: list[SettlementLine]) -> dict[int, Product]:
    return {
        line.product_id: get_scoped(Product, line.product_id, tenant_id, label="Product")
        for line in lines
    }


@returns_result
def settle_appointment(actor: ActorContext, appointment_id: int, lines, payment_method) -> Appointment:
    """
    Complete (or re-settle) an appointment.

    Returns OperationResult; data is the completed Appointment. A collected
    failure comes back with error_kind "partial_settlement", every message in
    `errors` and the applied steps in details["applied"].
    """
    with _settlement_guard.hold((actor.tenant_id, appointment_id)):
        return _settle(actor, appointment_id, lines, payment_method)


def _settle(actor: ActorContext, appointment_id: int, raw_lines, raw_payment_method) -> Appointment:
    tenant = get_tenant(actor.tenant_id)
    appointment = get_scoped(Appointment, appointment_id, actor.tenant_id, label="Appointment")
    _require_settle_permission(actor, appointment, bool(tenant.allow_professional_checkout))

    if not can_settle(appointment.status):
        raise LifecycleError(f"Cannot check out a {appointment.status} appointment")

    payment_method = coerce_enum(PaymentMethod, raw_payment_method, "payment_method")
    lines = normalize_lines(raw_lines)

    service = get_scoped(Service, appointment.service_id, actor.tenant_id, label="Service")
    professional = get_scoped(Professional, appointment.professional_id, actor.tenant_id, label="Professional")
    client = get_scoped(Client, appointment.client_id, actor.tenant_id, label="Client")
    products = _load_products(actor.tenant_id, lines)

    is_resettlement = appointment.status == AppointmentStatus.COMPLETED.value
    previous_snapshot = list(appointment.products_sold or []) if is_resettlement else []

    # Priced once, before any step commits and expires the loaded products
    snapshot = build_snapshot(lines, products)
    service_component = effective_service_price_cents(client, service)
    products_component = sum(sold["selling_price_cents"] * sold["quantity"] for sold in snapshot)
    total_cents = service_component + products_component

    errors: list[str] = []
    applied: list[dict] = []

    # 1. reverse the previous snapshot
    for sold in previous_snapshot:
        try:
            movement = record_movement(
                tenant_id=actor.tenant_id,
                product_id=sold["product_id"],
                direction=MovementDirection.ENTRY,
                quantity=sold["quantity"],
                reason=REASON_SETTLEMENT_REVERSAL,
                note=f"Reversal of appointment {appointment.id}",
                actor_id=actor.actor_id,
                related_entity_type=RelatedEntityType.APPOINTMENT,
                related_entity_id=appointment.id,
            )
            applied.append({"step": "stock_reversal", "product_id": sold["product_id"], "movement_id": movement.id})
        except (ValidationError, PersistenceError) as exc:
            errors.append(f"Failed to restore stock of {sold.get('name') or sold['product_id']}: {exc}")

    # 2. deduct current lines
    for line in lines:
        product = products[line.product_id]
        try:
            movement = record_movement(
                tenant_id=actor.tenant_id,
                product_id=line.product_id,
                direction=MovementDirection.EXIT,
                quantity=line.quantity,
                reason=REASON_APPOINTMENT_CORRECTION if is_resettlement else REASON_APPOINTMENT_SALE,
                note=f"Appointment {appointment.id}",
                actor_id=actor.actor_id,
                related_entity_type=RelatedEntityType.APPOINTMENT,
                related_entity_id=appointment.id,
            )
            applied.append({"step": "stock_exit", "product_id": line.product_id, "movement_id": movement.id})
        except (ValidationError, PersistenceError) as exc:
            errors.append(f"Failed to deduct stock of {product.name}: {exc}")

    # 3. income
    description = f"Appointment: {service.title} + {len(lines)} product(s)"
    if is_resettlement:
        description += " (updated)"
    try:
        tx = upsert_entity_transaction(
            tenant_id=actor.tenant_id,
            entity_type=RelatedEntityType.APPOINTMENT,
            entity_id=appointment.id,
            type=TransactionType.INCOME,
            category=TransactionCategory.SERVICE,
            amount_cents=total_cents,
            description=description,
            payment_method=payment_method,
            actor_id=actor.actor_id,
        )
        applied.append({"step": "transaction", "transaction_id": tx.id})
    except (ValidationError, PersistenceError) as exc:
        errors.append(f"Failed to record the cash transaction: {exc}")

    # 4. commission, on the catalog price even for subscribers
    commission_cents = commission_amount_cents(service.price_cents, professional.commission_bps)
    if commission_cents > 0:
        try:
            commission = upsert_appointment_commission(
                tenant_id=actor.tenant_id,
                appointment_id=appointment.id,
                professional_id=professional.id,
                amount_cents=commission_cents,
            )
            applied.append({"step": "commission", "commission_id": commission.id})
        except (ValidationError, PersistenceError) as exc:
            errors.append(f"Failed to record the commission: {exc}")

    # 5.
    if errors:
        logger.warning(
            "Checkout of appointment %s incomplete (%s error(s), %s step(s) applied): %s",
            appointment.id, len(errors), len(applied), "; ".join(errors),
        )
        raise PartialSettlementError(errors, applied)

    # 6.
    def _complete():
        appt = get_scoped(Appointment, appointment_id, actor.tenant_id, label="Appointment")
        appt.status = require_transition(appt.status, AppointmentStatus.COMPLETED, via_settlement=True).value
        appt.total_amount_cents = total_cents
        appt.products_sold = snapshot
        appt.payment_method = payment_method.value
        appt.completed_at = utcnow()
        db.session.commit()
        return appt

    try:
        completed = store_round_trip(_complete, operation=f"complete appointment {appointment_id}")
    except (LifecycleError, PersistenceError) as exc:
        logger.error("Appointment %s not completed after ledger steps were applied: %s", appointment_id, exc)
        raise PartialSettlementError([f"Failed to complete the appointment: {exc}"], applied)

    logger.info(
        "Appointment %s settled: total=%s products=%s resettlement=%s",
        completed.id, format_cents(total_cents), len(lines), is_resettlement,
    )
    return completed


@returns_result
def record_direct_sale(actor: ActorContext, lines, payment_method) -> dict:
    """
    Walk-in counter sale: one EXIT per line and one PRODUCT income.

    Stock failures are collected like in checkout; the income is recorded
    for the full amount charged either way.
    """
    require_permission(actor, "RECORD_DIRECT_SALE")
    payment_method = coerce_enum(PaymentMethod, payment_method, "payment_method")
    lines = normalize_lines(lines)
    if not lines:
        raise SettlementError("A sale needs at least one product")
    products = _load_products(actor.tenant_id, lines)

    total_cents = sum(products[l.product_id].selling_price_cents * l.quantity for l in lines)
    names = ", ".join(f"{l.quantity}x {products[l.product_id].name}" for l in lines)

    errors: list[str] = []
    applied: list[dict] = []
    movements = []

    for line in lines:
        try:
            movement = record_movement(
                tenant_id=actor.tenant_id,
                product_id=line.product_id,
                direction=MovementDirection.EXIT,
                quantity=line.quantity,
                reason=REASON_DIRECT_SALE,
                note="Counter sale",
                actor_id=actor.actor_id,
            )
            movements.append(movement)
            applied.append({"step": "stock_exit", "product_id": line.product_id, "movement_id": movement.id})
        except (ValidationError, PersistenceError) as exc:
            errors.append(f"Failed to deduct stock of {products[line.product_id].name}: {exc}")

    transaction = None
    try:
        transaction = record_transaction(
            tenant_id=actor.tenant_id,
            type=TransactionType.INCOME,
            category=TransactionCategory.PRODUCT,
            amount_cents=total_cents,
            description=f"Direct sale: {names}",
            payment_method=payment_method,
            related_entity_type=RelatedEntityType.MANUAL,
            actor_id=actor.actor_id,
        )
        applied.append({"step": "transaction", "transaction_id": transaction.id})
    except (ValidationError, PersistenceError) as exc:
        errors.append(f"Failed to record the cash transaction: {exc}")

    if errors:
        logger.warning("Direct sale incomplete: %s", "; ".join(errors))
        raise PartialSettlementError(errors, applied)

    return {
        "transaction": transaction.to_dict(),
        "movements": [m.to_dict() for m in movements],
        "total_amount_cents": total_cents,
    }
