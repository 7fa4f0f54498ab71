# Overview: Explicit result type returned by UI-facing service operations.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import wraps
from typing import Any

from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import OperationInFlightError, PersistenceError
from .permission_service import PermissionDeniedError
from .tenant_service import TenantAccessError

logger = logging.getLogger(__name__)


# Error kinds, mapped to HTTP status codes by the routes
ERROR_VALIDATION = "validation"
ERROR_NOT_FOUND = "not_found"
ERROR_PERMISSION = "permission"
ERROR_CONFLICT = "conflict"
ERROR_BUSY = "busy"
ERROR_PERSISTENCE = "persistence"
ERROR_PARTIAL_SETTLEMENT = "partial_settlement"


@dataclass
class OperationResult:
    """
    {success, error, conflict} plus the payload.

    errors carries the full list when a batch operation (checkout) collected
    several failures; error is then their joined text.
    """
    success: bool
    data: Any = None
    error: str | None = None
    conflict: bool = False
    error_kind: str | None = None
    errors: list[str] = field(default_factory=list)
    details: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, data=None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, *, kind: str, conflict: bool = False, errors=None, details=None) -> "OperationResult":
        return cls(
            success=False,
            error=error,
            conflict=conflict,
            error_kind=kind,
            errors=list(errors or [error]),
            details=dict(details or {}),
        )

    def to_dict(self) -> dict:
        payload = {"success": self.success, "conflict": self.conflict}
        if self.success:
            payload["data"] = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        else:
            payload["error"] = self.error
            payload["errors"] = self.errors
            if self.details:
                payload["details"] = self.details
        return payload


def returns_result(func):
    """
    Turn a raising service operation into one returning OperationResult.

    Domain errors become failed results with their message verbatim;
    anything else propagates.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        # Local import: checkout_service imports this module.
        from .checkout_service import PartialSettlementError

        try:
            return OperationResult.ok(func(*args, **kwargs))
        except ConflictError as exc:
            details = {"conflicting_id": exc.conflicting_id} if exc.conflicting_id else {}
            return OperationResult.fail(str(exc), kind=ERROR_CONFLICT, conflict=True, details=details)
        except PartialSettlementError as exc:
            return OperationResult.fail(
                str(exc), kind=ERROR_PARTIAL_SETTLEMENT, errors=exc.errors, details={"applied": exc.applied},
            )
        except NotFoundError as exc:
            return OperationResult.fail(str(exc), kind=ERROR_NOT_FOUND)
        except ValidationError as exc:
            return OperationResult.fail(str(exc), kind=ERROR_VALIDATION)
        except (PermissionDeniedError, TenantAccessError) as exc:
            return OperationResult.fail(str(exc), kind=ERROR_PERMISSION)
        except OperationInFlightError as exc:
            return OperationResult.fail(str(exc), kind=ERROR_BUSY)
        except PersistenceError as exc:
            return OperationResult.fail(str(exc), kind=ERROR_PERSISTENCE)

    return wrapper
