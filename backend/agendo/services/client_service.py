# Overview: Service-layer operations for client accounts; credit/debit balance and flat-rate subscriptions.

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..extensions import db
from ..models import (
    Client, PaymentMethod, RelatedEntityType, TransactionCategory, TransactionType,
)
from ..validation import ValidationError, coerce_enum, parse_money_cents
from agendo.time_utils import normalize_datetime, utcnow
from .cash_service import record_transaction
from .concurrency import store_round_trip
from .permission_service import ActorContext, require_permission
from .tenant_service import get_scoped

logger = logging.getLogger(__name__)

SUBSCRIPTION_PERIOD_DAYS = 30

BALANCE_CREDIT = "credit"
BALANCE_DEBIT = "debit"


def is_subscription_active(client: Client, at: datetime | None = None) -> bool:
    """
    Flat-rate clients are exempt from the service price while active.

    Active means the flag is set and the expiry has not passed; a subscriber
    without an expiry date is active.
    """
    if not client.is_subscriber:
        return False
    if client.subscription_expires_at is None:
        return True
    at = normalize_datetime(at) or utcnow()
    return normalize_datetime(client.subscription_expires_at) >= at


def adjust_client_balance(
    actor: ActorContext,
    client_id: int,
    *,
    direction: str,
    amount,
    payment_method=PaymentMethod.CASH,
    description: str | None = None,
) -> Client:
    """
    Move a client's credit balance and record the money on the cash ledger.

    credit: the client pays in advance -> balance up, INCOME.
    debit:  the shop pays the client back -> balance down, EXPENSE.

    The balance update and the ledger row are separate round trips,
    balance first.
    """
    require_permission(actor, "ADJUST_CLIENT_BALANCE")
    direction = (direction or "").strip().lower()
    if direction not in (BALANCE_CREDIT, BALANCE_DEBIT):
        raise ValidationError("direction must be one of: credit, debit")
    amount_cents = parse_money_cents(amount, "amount", allow_zero=False)
    payment_method = coerce_enum(PaymentMethod, payment_method, "payment_method")

    def _adjust():
        client = get_scoped(Client, client_id, actor.tenant_id, label="Client")
        delta = amount_cents if direction == BALANCE_CREDIT else -amount_cents
        client.balance_cents = (client.balance_cents or 0) + delta
        db.session.commit()
        return client

    client = store_round_trip(_adjust, operation=f"adjust balance of client {client_id}")

    is_credit = direction == BALANCE_CREDIT
    record_transaction(
        tenant_id=actor.tenant_id,
        type=TransactionType.INCOME if is_credit else TransactionType.EXPENSE,
        category=TransactionCategory.ADJUSTMENT,
        amount_cents=amount_cents,
        description=description or f"{'Credit' if is_credit else 'Debit'} for client {client.name}",
        payment_method=payment_method,
        related_entity_type=RelatedEntityType.MANUAL,
        related_entity_id=client.id,
        actor_id=actor.actor_id,
    )
    logger.info("Client %s balance %s by %s cents", client.id, direction, amount_cents)
    return client


def activate_subscription(
    actor: ActorContext,
    client_id: int,
    *,
    monthly_fee_cents: int,
    payment_method=PaymentMethod.CASH,
    now: datetime | None = None,
) -> Client:
    """
    Start (or renew) a flat-rate subscription for SUBSCRIPTION_PERIOD_DAYS.

    An INCOME/SUBSCRIPTION transaction is recorded when the client was not
    a subscriber yet or the monthly fee changed.
    """
    require_permission(actor, "MANAGE_SUBSCRIPTIONS")
    if isinstance(monthly_fee_cents, bool) or not isinstance(monthly_fee_cents, int) or monthly_fee_cents <= 0:
        raise ValidationError("monthly_fee_cents must be a positive integer")
    payment_method = coerce_enum(PaymentMethod, payment_method, "payment_method")
    now = normalize_datetime(now) or utcnow()

    charge = {}

    def _activate():
        client = get_scoped(Client, client_id, actor.tenant_id, label="Client")
        charge["due"] = (not client.is_subscriber) or client.subscription_fee_cents != monthly_fee_cents
        client.is_subscriber = True
        client.subscription_fee_cents = monthly_fee_cents
        client.subscription_payment_method = payment_method.value
        client.subscription_started_at = now
        client.subscription_expires_at = now + timedelta(days=SUBSCRIPTION_PERIOD_DAYS)
        db.session.commit()
        return client

    client = store_round_trip(_activate, operation=f"activate subscription of client {client_id}")

    if charge["due"]:
        record_transaction(
            tenant_id=actor.tenant_id,
            type=TransactionType.INCOME,
            category=TransactionCategory.SUBSCRIPTION,
            amount_cents=monthly_fee_cents,
            description=f"Subscription fee: {client.name}",
            payment_method=payment_method,
            related_entity_type=RelatedEntityType.CLIENT,
            related_entity_id=client.id,
            actor_id=actor.actor_id,
            occurred_at=now,
        )
    return client


def cancel_subscription(actor: ActorContext, client_id: int) -> Client:
    require_permission(actor, "MANAGE_SUBSCRIPTIONS")

    def _cancel():
        client = get_scoped(Client, client_id, actor.tenant_id, label="Client")
        client.is_subscriber = False
        client.subscription_expires_at = None
        db.session.commit()
        return client

    return store_round_trip(_cancel, operation=f"cancel subscription of client {client_id}")
