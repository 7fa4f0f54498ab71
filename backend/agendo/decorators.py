# Overview: Request decorators for API routes; actor context from the gateway headers.

from functools import wraps

from flask import g, jsonify, request

from .services.permission_service import ActorContext
from .services.tenant_service import TenantAccessError, require_same_tenant
from .validation import ValidationError

ACTOR_ID_HEADER = "X-Actor-Id"
TENANT_ID_HEADER = "X-Tenant-Id"
ROLE_HEADER = "X-Actor-Role"
PROFESSIONAL_ID_HEADER = "X-Professional-Id"


def require_actor(f):
    """
    Establish the caller's ActorContext.

    MULTI-TENANT: Sets g.actor (actor_id, tenant_id, role, professional_id).
    The headers are set by the authenticating gateway in front of the API;
    this service trusts them and never sees credentials.

    Returns 401 when the identity headers are missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = request.headers.get(ACTOR_ID_HEADER)
        tenant_id = request.headers.get(TENANT_ID_HEADER)
        role = request.headers.get(ROLE_HEADER)

        if not actor_id or not tenant_id or not role:
            return jsonify({"error": "Authentication required"}), 401

        try:
            g.actor = ActorContext.build(
                actor_id,
                tenant_id,
                role,
                request.headers.get(PROFESSIONAL_ID_HEADER),
            )
        except ValidationError as e:
            return jsonify({"error": f"Invalid actor context: {e}"}), 401

        # A tenant_id in the query string must be the caller's own
        try:
            require_same_tenant(g.actor.tenant_id, request.args.get("tenant_id", type=int))
        except TenantAccessError as e:
            return jsonify({"error": str(e)}), 403

        return f(*args, **kwargs)

    return decorated_function
