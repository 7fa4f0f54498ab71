# Overview: JSON response helpers shared by the API routes.

from flask import jsonify

from .services.checkout_service import PartialSettlementError
from .services.concurrency import OperationInFlightError, PersistenceError
from .services.permission_service import PermissionDeniedError
from .services.results import (
    ERROR_BUSY, ERROR_CONFLICT, ERROR_NOT_FOUND, ERROR_PARTIAL_SETTLEMENT, ERROR_PERMISSION,
    ERROR_PERSISTENCE, ERROR_VALIDATION, OperationResult,
)
from .services.tenant_service import TenantAccessError
from .validation import ConflictError, NotFoundError, ValidationError

HTTP_STATUS_BY_KIND = {
    ERROR_VALIDATION: 400,
    ERROR_PERMISSION: 403,
    ERROR_NOT_FOUND: 404,
    ERROR_CONFLICT: 409,
    ERROR_BUSY: 409,
    ERROR_PARTIAL_SETTLEMENT: 422,
    ERROR_PERSISTENCE: 503,
}


def result_response(result: OperationResult, success_status: int = 200):
    """OperationResult -> (json, status)."""
    if result.success:
        return jsonify(result.to_dict()), success_status
    return jsonify(result.to_dict()), HTTP_STATUS_BY_KIND.get(result.error_kind, 400)


def error_response(exc: Exception):
    """
    Domain exception -> (json, status), or None when the exception is not
    a domain error and the caller should treat it as a 500.
    """
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc), "conflict": True}), 409
    if isinstance(exc, PartialSettlementError):
        return jsonify({"error": str(exc), "errors": exc.errors, "details": {"applied": exc.applied}}), 422
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, (PermissionDeniedError, TenantAccessError)):
        return jsonify({"error": str(exc)}), 403
    if isinstance(exc, OperationInFlightError):
        return jsonify({"error": str(exc)}), 409
    if isinstance(exc, PersistenceError):
        return jsonify({"error": str(exc)}), 503
    return None
