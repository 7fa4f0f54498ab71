# Overview: Service-layer permission checks against the caller's ActorContext.

"""
Permission Checking with Multi-Tenant Support

Every mutating service call receives the caller's ActorContext from
the auth/session provider and must reject before any side effect when the
role does not allow the action.

RULES:
- Fail closed: Deny by default, require explicit permission grant
- Log denials only: Permission grants are not logged
- Tenant isolation: an actor can never act outside actor.tenant_id
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..models import ActorRole, Appointment
from ..permissions import DEFAULT_ROLE_PERMISSIONS
from ..validation import ValidationError, coerce_enum

logger = logging.getLogger(__name__)


class PermissionDeniedError(Exception):
    """Raised when the actor's role lacks the required permission."""
    pass


@dataclass(frozen=True)
class ActorContext:
    """
    Opaque caller identity supplied by the auth/session provider.

    professional_id is set when the actor is (also) a professional, so
    "own" permissions can be resolved against appointments.
    """
    actor_id: int
    tenant_id: int
    role: ActorRole
    professional_id: int | None = None

    @classmethod
    def build(cls, actor_id, tenant_id, role, professional_id=None) -> "ActorContext":
        if actor_id is None or tenant_id is None:
            raise ValidationError("actor_id and tenant_id are required")
        try:
            actor_id = int(actor_id)
            tenant_id = int(tenant_id)
            professional_id = int(professional_id) if professional_id not in (None, "") else None
        except (TypeError, ValueError):
            raise ValidationError("actor_id, tenant_id and professional_id must be integers")
        return cls(
            actor_id=actor_id,
            tenant_id=tenant_id,
            role=coerce_enum(ActorRole, role, "role"),
            professional_id=professional_id,
        )


def get_role_permissions(role: ActorRole) -> set[str]:
    return set(DEFAULT_ROLE_PERMISSIONS.get(role.value, []))


def has_permission(actor: ActorContext, permission_code: str) -> bool:
    return permission_code in get_role_permissions(actor.role)


def require_permission(actor: ActorContext, permission_code: str) -> None:
    """
    Require a permission or raise PermissionDeniedError.

    Denials are logged with tenant context for monitoring.
    """
    if has_permission(actor, permission_code):
        return
    logger.warning(
        "Permission denied: actor=%s tenant=%s role=%s permission=%s",
        actor.actor_id, actor.tenant_id, actor.role.value, permission_code,
    )
    raise PermissionDeniedError(f"Role '{actor.role.value}' lacks permission {permission_code}")


def owns_appointment(actor: ActorContext, appointment: Appointment) -> bool:
    """
    "Own" means on the actor's agenda (professional) or booked by the actor.
    """
    if actor.professional_id is not None and appointment.professional_id == actor.professional_id:
        return True
    return appointment.created_by_actor_id == actor.actor_id


def require_appointment_permission(
    actor: ActorContext,
    appointment: Appointment,
    *,
    any_code: str,
    own_code: str,
) -> None:
    """
    Allow when the role has the unrestricted permission, or the "own"
    variant and the appointment belongs to the actor.
    """
    if has_permission(actor, any_code):
        return
    if has_permission(actor, own_code) and owns_appointment(actor, appointment):
        return
    logger.warning(
        "Appointment permission denied: actor=%s appointment=%s permission=%s",
        actor.actor_id, appointment.id, any_code,
    )
    raise PermissionDeniedError("You can only manage your own appointments")
