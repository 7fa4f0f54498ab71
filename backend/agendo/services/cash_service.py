# Overview: Service-layer operations for the cash ledger; transactions, balance and reconciliation.

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    CashTransaction, PaymentMethod, RelatedEntityType, TransactionCategory, TransactionType,
)
from ..validation import (
    MAX_AMOUNT_CENTS, ValidationError, coerce_enum, format_cents, parse_datetime_field,
    parse_money_cents,
)
from agendo.time_utils import utcnow
from .concurrency import PersistenceError, store_round_trip
from .permission_service import ActorContext, require_permission
from .tenant_service import get_scoped

"""
Agendo Cash Ledger Invariants (authoritative)

- amount_cents >= 0 always; type (INCOME/EXPENSE) implies the sign.
- The balance is never stored: it is SUM(income) - SUM(expense) over a window.
- Window filtering is inclusive on both ends: start <= occurred_at <= end.
- A settled appointment owns at most one transaction
  (related_entity_type=APPOINTMENT, related_entity_id=appointment.id).
  Re-settlement updates that row in place instead of appending a second one.
- Reconciliation appends one ADJUSTMENT row for the difference between the
  counted and the computed balance; a zero difference appends nothing.
"""

logger = logging.getLogger(__name__)


class CashLedgerError(ValidationError):
    """Raised for invalid cash ledger operations."""
    pass


def _validate_amount(amount_cents) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise CashLedgerError("amount_cents must be an integer number of cents")
    if amount_cents < 0:
        raise CashLedgerError("amount_cents cannot be negative")
    if amount_cents > MAX_AMOUNT_CENTS:
        raise CashLedgerError("amount_cents exceeds maximum allowed amount")
    return amount_cents


def _validate_description(description) -> str:
    text = (description or "").strip()
    if not text:
        raise CashLedgerError("description is required")
    return text[:255]


def record_transaction(
    *,
    tenant_id: int,
    type,
    category,
    amount_cents: int,
    description: str,
    payment_method=PaymentMethod.CASH,
    related_entity_type=None,
    related_entity_id: int | None = None,
    actor_id: int | None = None,
    occurred_at: datetime | None = None,
) -> CashTransaction:
    """
    Append one ledger row in its own round trip.

    Raises:
        CashLedgerError / ValidationError: invalid input, nothing written
        PersistenceError: the insert failed
    """
    tx_type = coerce_enum(TransactionType, type, "type")
    tx_category = coerce_enum(TransactionCategory, category, "category")
    method = coerce_enum(PaymentMethod, payment_method, "payment_method")
    entity_type = coerce_enum(RelatedEntityType, related_entity_type, "related_entity_type") if related_entity_type else None
    amount_cents = _validate_amount(amount_cents)
    description = _validate_description(description)

    def _insert():
        tx = CashTransaction(
            tenant_id=tenant_id,
            type=tx_type.value,
            category=tx_category.value,
            amount_cents=amount_cents,
            description=description,
            payment_method=method.value,
            related_entity_type=entity_type.value if entity_type else None,
            related_entity_id=related_entity_id,
            actor_id=actor_id,
            occurred_at=occurred_at or utcnow(),
        )
        db.session.add(tx)
        db.session.commit()
        return tx

    return store_round_trip(_insert, operation=f"record {tx_type.value.lower()} transaction")


def update_transaction(
    tenant_id: int,
    transaction_id: int,
    *,
    amount_cents: int | None = None,
    description: str | None = None,
    payment_method=None,
    category=None,
    occurred_at: datetime | None = None,
) -> CashTransaction:
    """Update the mutable fields of one transaction (settlement upsert path)."""
    if amount_cents is not None:
        amount_cents = _validate_amount(amount_cents)
    if description is not None:
        description = _validate_description(description)
    method = coerce_enum(PaymentMethod, payment_method, "payment_method") if payment_method is not None else None
    tx_category = coerce_enum(TransactionCategory, category, "category") if category is not None else None

    def _update():
        tx = get_scoped(CashTransaction, transaction_id, tenant_id, label="Transaction")
        if amount_cents is not None:
            tx.amount_cents = amount_cents
        if description is not None:
            tx.description = description
        if method is not None:
            tx.payment_method = method.value
        if tx_category is not None:
            tx.category = tx_category.value
        if occurred_at is not None:
            tx.occurred_at = occurred_at
        db.session.commit()
        return tx

    return store_round_trip(_update, operation=f"update transaction {transaction_id}")


def find_by_related_entity(tenant_id: int, entity_type, entity_id: int) -> CashTransaction | None:
    entity_type = coerce_enum(RelatedEntityType, entity_type, "related_entity_type")
    return (
        db.session.query(CashTransaction)
        .filter(
            CashTransaction.tenant_id == tenant_id,
            CashTransaction.related_entity_type == entity_type.value,
            CashTransaction.related_entity_id == entity_id,
        )
        .order_by(CashTransaction.id.asc())
        .first()
    )


def upsert_entity_transaction(
    *,
    tenant_id: int,
    entity_type,
    entity_id: int,
    type,
    category,
    amount_cents: int,
    description: str,
    payment_method,
    actor_id: int | None = None,
) -> CashTransaction:
    """
    Exactly one transaction per related entity: update it when present,
    insert it otherwise. An update keeps the original occurred_at.

    Two writers racing the first insert for an appointment are arbitrated by
    the partial unique index; the loser re-reads and updates the winner's row.
    """
    existing = find_by_related_entity(tenant_id, entity_type, entity_id)
    if existing is not None:
        return update_transaction(
            tenant_id, existing.id,
            amount_cents=amount_cents,
            description=description,
            payment_method=payment_method,
            category=category,
        )

    try:
        return record_transaction(
            tenant_id=tenant_id,
            type=type,
            category=category,
            amount_cents=amount_cents,
            description=description,
            payment_method=payment_method,
            related_entity_type=entity_type,
            related_entity_id=entity_id,
            actor_id=actor_id,
        )
    except PersistenceError as exc:
        if not isinstance(exc.__cause__, IntegrityError):
            raise
        logger.info("Concurrent insert for %s %s; updating the existing transaction", entity_type, entity_id)
        existing = find_by_related_entity(tenant_id, entity_type, entity_id)
        if existing is None:
            raise
        return update_transaction(
            tenant_id, existing.id,
            amount_cents=amount_cents,
            description=description,
            payment_method=payment_method,
            category=category,
        )


def _window_query(tenant_id: int, start: datetime | None, end: datetime | None, payment_method=None):
    q = db.session.query(CashTransaction).filter(CashTransaction.tenant_id == tenant_id)
    if start is not None:
        q = q.filter(CashTransaction.occurred_at >= start)
    if end is not None:
        q = q.filter(CashTransaction.occurred_at <= end)
    if payment_method is not None:
        method = coerce_enum(PaymentMethod, payment_method, "payment_method")
        q = q.filter(CashTransaction.payment_method == method.value)
    return q


def get_period_totals(
    tenant_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    payment_method=None,
) -> dict:
    """Income, expense and balance (cents) for an inclusive window."""
    income_expr = func.coalesce(func.sum(case(
        (CashTransaction.type == TransactionType.INCOME.value, CashTransaction.amount_cents),
        else_=0,
    )), 0)
    expense_expr = func.coalesce(func.sum(case(
        (CashTransaction.type == TransactionType.EXPENSE.value, CashTransaction.amount_cents),
        else_=0,
    )), 0)
    q = _window_query(tenant_id, start, end, payment_method).with_entities(income_expr, expense_expr)
    income, expense = q.one()
    income = int(income or 0)
    expense = int(expense or 0)
    return {
        "income_cents": income,
        "expense_cents": expense,
        "balance_cents": income - expense,
    }


def compute_balance(
    tenant_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    payment_method=None,
) -> int:
    return get_period_totals(tenant_id, start, end, payment_method=payment_method)["balance_cents"]


def list_transactions(
    tenant_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    type=None,
    limit: int = 200,
) -> list[CashTransaction]:
    q = _window_query(tenant_id, start, end)
    if type is not None:
        tx_type = coerce_enum(TransactionType, type, "type")
        q = q.filter(CashTransaction.type == tx_type.value)
    return (
        q.order_by(CashTransaction.occurred_at.desc(), CashTransaction.id.desc())
        .limit(max(1, min(limit, 500)))
        .all()
    )


def reconcile_cash(
    actor: ActorContext,
    counted_cents: int,
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    payment_method=PaymentMethod.CASH,
) -> CashTransaction | None:
    """
    Close a cash count: append one ADJUSTMENT for counted - computed.

    Positive difference -> INCOME, negative -> EXPENSE, zero -> nothing.
    The computed side is the balance of the given payment method over the
    window (the drawer holds only that method).

    Returns:
        The adjustment transaction, or None when the count matched.
    """
    require_permission(actor, "RECONCILE_CASH")
    counted_cents = _validate_amount(counted_cents)
    computed = compute_balance(actor.tenant_id, start, end, payment_method=payment_method)
    delta = counted_cents - computed

    if delta == 0:
        logger.info("Cash reconciliation matched for tenant %s (%s)", actor.tenant_id, format_cents(computed))
        return None

    logger.warning(
        "Cash reconciliation difference for tenant %s: counted %s, computed %s",
        actor.tenant_id, format_cents(counted_cents), format_cents(computed),
    )
    return record_transaction(
        tenant_id=actor.tenant_id,
        type=TransactionType.INCOME if delta > 0 else TransactionType.EXPENSE,
        category=TransactionCategory.ADJUSTMENT,
        amount_cents=abs(delta),
        description=f"Cash reconciliation: counted {format_cents(counted_cents)}, expected {format_cents(computed)}",
        payment_method=payment_method,
        related_entity_type=RelatedEntityType.MANUAL,
        actor_id=actor.actor_id,
    )


def record_manual_transaction(actor: ActorContext, payload: dict) -> CashTransaction:
    """Manual income/expense from the cash screen (rent, salaries, supplies)."""
    require_permission(actor, "RECORD_CASH")
    occurred_at = payload.get("occurred_at")
    return record_transaction(
        tenant_id=actor.tenant_id,
        type=payload.get("type"),
        category=payload.get("category") or TransactionCategory.OTHER,
        amount_cents=parse_money_cents(payload.get("amount"), "amount", allow_zero=False),
        description=payload.get("description"),
        payment_method=payload.get("payment_method") or PaymentMethod.CASH,
        related_entity_type=RelatedEntityType.MANUAL,
        actor_id=actor.actor_id,
        occurred_at=parse_datetime_field(occurred_at, "occurred_at") if occurred_at else None,
    )
