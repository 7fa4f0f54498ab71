# Overview: Service-layer operations for professional commissions.

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Commission, CommissionStatus, Professional
from ..validation import ValidationError, coerce_enum
from agendo.time_utils import utcnow
from .concurrency import PersistenceError, store_round_trip
from .permission_service import ActorContext, require_permission
from .tenant_service import get_scoped

logger = logging.getLogger(__name__)


def commission_amount_cents(service_price_cents: int, commission_bps: int) -> int:
    """
    Commission on the catalog service price, rounded half-up to the cent.

    1000 bps (10%) of 4990 cents -> 499 cents.
    """
    if not service_price_cents or not commission_bps:
        return 0
    return (service_price_cents * commission_bps + 5000) // 10000


def find_appointment_commission(tenant_id: int, appointment_id: int) -> Commission | None:
    return (
        db.session.query(Commission)
        .filter_by(tenant_id=tenant_id, appointment_id=appointment_id)
        .first()
    )


def upsert_appointment_commission(
    *,
    tenant_id: int,
    appointment_id: int,
    professional_id: int,
    amount_cents: int,
) -> Commission:
    """
    One commission per appointment: update the amount when present,
    insert a PENDING row otherwise. An existing row keeps its status.
    """
    if amount_cents < 0:
        raise ValidationError("Commission amount cannot be negative")

    def _upsert():
        commission = find_appointment_commission(tenant_id, appointment_id)
        if commission is None:
            commission = Commission(
                tenant_id=tenant_id,
                appointment_id=appointment_id,
                professional_id=professional_id,
                amount_cents=amount_cents,
                status=CommissionStatus.PENDING.value,
                occurred_at=utcnow(),
            )
            db.session.add(commission)
        else:
            commission.professional_id = professional_id
            commission.amount_cents = amount_cents
        db.session.commit()
        return commission

    operation = f"upsert commission for appointment {appointment_id}"
    try:
        return store_round_trip(_upsert, operation=operation)
    except PersistenceError as exc:
        # A concurrent settlement inserted first; update its row instead.
        if not isinstance(exc.__cause__, IntegrityError):
            raise
        logger.info("Concurrent commission insert for appointment %s; retrying as update", appointment_id)
        return store_round_trip(_upsert, operation=operation)


def mark_commission_paid(actor: ActorContext, commission_id: int) -> Commission:
    """Admin payout of a PENDING commission."""
    require_permission(actor, "PAY_COMMISSION")

    def _pay():
        commission = get_scoped(Commission, commission_id, actor.tenant_id, label="Commission")
        if commission.status == CommissionStatus.PAID.value:
            raise ValidationError(f"Commission {commission_id} is already paid")
        commission.status = CommissionStatus.PAID.value
        commission.paid_at = utcnow()
        commission.paid_by_actor_id = actor.actor_id
        db.session.commit()
        return commission

    commission = store_round_trip(_pay, operation=f"mark commission {commission_id} paid")
    logger.info("Commission %s paid by actor %s", commission.id, actor.actor_id)
    return commission


def list_commissions(
    tenant_id: int,
    professional_id: int | None = None,
    status=None,
) -> list[Commission]:
    q = db.session.query(Commission).filter(Commission.tenant_id == tenant_id)
    if professional_id is not None:
        get_scoped(Professional, professional_id, tenant_id, label="Professional")
        q = q.filter(Commission.professional_id == professional_id)
    if status is not None:
        q = q.filter(Commission.status == coerce_enum(CommissionStatus, status, "status").value)
    return q.order_by(Commission.occurred_at.desc(), Commission.id.desc()).all()
