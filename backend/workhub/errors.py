# Overview: Service error taxonomy and the result envelope returned by document services.

"""
Error taxonomy shared by services and routes.

Document services (sales orders, purchase orders, invoices, bills, expenses)
return a ServiceResult; the service_result decorator converts these errors
into failure results. Aggregators raise them directly and routes map
status_code onto the HTTP response.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Optional

from .extensions import db

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for expected, user-facing service failures."""

    code = "service_error"
    status_code = 400

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(ServiceError):
    """Entity absent, soft-deleted, or owned by another organization."""

    code = "not_found"
    status_code = 404


class ForbiddenError(ServiceError):
    code = "forbidden"
    status_code = 403


class InvalidTransitionError(ServiceError):
    """Requested status is not reachable from the current status."""

    code = "invalid_transition"
    status_code = 409

    def __init__(self, entity_label: str, current_status: str, requested_status: str):
        super().__init__(
            f"Cannot change {entity_label} from '{current_status}' to '{requested_status}'",
            details={"current_status": current_status, "requested_status": requested_status},
        )
        self.current_status = current_status
        self.requested_status = requested_status


class InvalidStateError(ServiceError):
    """Operation not permitted in the entity's current status (edit, delete)."""

    code = "invalid_state"
    status_code = 409


@dataclass
class ServiceResult:
    success: bool
    data: Any = None
    error: Optional[str] = None
    code: Optional[str] = None
    details: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any = None) -> "ServiceResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: ServiceError) -> "ServiceResult":
        return cls(success=False, error=error.message, code=error.code, details=dict(error.details))

    @property
    def status_code(self) -> int:
        if self.success:
            return 200
        return STATUS_BY_CODE.get(self.code, 500)


STATUS_BY_CODE = {
    "validation_error": 400,
    "forbidden": 403,
    "not_found": 404,
    "invalid_transition": 409,
    "invalid_state": 409,
    "conflict": 409,
    "internal_error": 500,
}


def service_result(func):
    """
    Wrap a service operation so it returns a ServiceResult.

    Expected ServiceErrors become failure results. Anything else is logged
    with its stack trace and reported as internal_error. The session is
    rolled back on every failure path.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return ServiceResult.ok(func(*args, **kwargs))
        except ServiceError as exc:
            db.session.rollback()
            return ServiceResult.fail(exc)
        except Exception:
            db.session.rollback()
            logger.exception("Unexpected failure in %s", func.__qualname__)
            return ServiceResult(success=False, error="Internal server error", code="internal_error")

    return wrapper
