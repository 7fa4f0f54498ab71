"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

Tenant scoping used by services and routes.
Every row lookup is filtered by the caller's tenant_id, and a row that
belongs to another tenant is reported exactly like a missing row so
probing cannot reveal that it exists.

USAGE:
    from agendo.services.tenant_service import get_scoped

    appointment = get_scoped(Appointment, appointment_id, actor.tenant_id)
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Tenant
from ..validation import NotFoundError
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)


class TenantAccessError(Exception):
    """Raised when an actor addresses a tenant other than its own."""
    pass


def get_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if tenant is None or not tenant.is_active:
        raise NotFoundError("Tenant not found")
    return tenant


def require_same_tenant(actor_tenant_id: int, requested_tenant_id: int | None) -> int:
    """
    Validate that a tenant id from client input matches the actor's tenant.

    Returns the effective tenant id (the actor's when none was requested).
    """
    if requested_tenant_id is None:
        return actor_tenant_id
    if int(requested_tenant_id) != actor_tenant_id:
        logger.warning(
            "Cross-tenant access denied: actor tenant=%s requested=%s",
            actor_tenant_id, requested_tenant_id,
        )
        raise TenantAccessError("Access to another tenant's data is not allowed")
    return actor_tenant_id


def scoped_query(model, tenant_id: int):
    return db.session.query(model).filter(model.tenant_id == tenant_id)


def get_scoped(model, entity_id, tenant_id: int, *, lock: bool = False, label: str | None = None):
    """Fetch one row by id inside a tenant or raise NotFoundError."""
    label = label or model.__name__
    if entity_id is None:
        raise NotFoundError(f"{label} not found")
    query = scoped_query(model, tenant_id).filter(model.id == entity_id)
    if lock:
        query = lock_for_update(query)
    row = query.first()
    if row is None:
        raise NotFoundError(f"{label} {entity_id} not found")
    return row
