"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

Every request is scoped to a tenant (organization). Records belonging to
another organization are reported exactly like missing records, so callers
can never detect the existence of foreign ids.

USAGE:
    from workhub.services.tenant_service import require_project_in_org, scoped_query

    project = require_project_in_org(project_id, actor.org_id)
    rows = scoped_query(Expense, actor.org_id).filter_by(status="draft").all()
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from flask import g

from ..errors import NotFoundError
from ..extensions import db
from ..models import Project, User

logger = logging.getLogger(__name__)


class TenantAccessError(NotFoundError):
    """Raised when a record is missing or belongs to a different organization."""


@dataclass(frozen=True)
class Actor:
    """The caller of a service operation: who, in which tenant, with which role."""

    user_id: int
    org_id: int
    role: str

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(user_id=user.id, org_id=user.org_id, role=user.role)


def get_current_org_id() -> int:
    """
    Get current tenant's org_id from Flask g context.

    Raises TenantAccessError if org_id not set; @require_auth always sets it.
    """
    if not hasattr(g, 'org_id') or g.org_id is None:
        raise TenantAccessError("Tenant context not established")
    return g.org_id


def get_current_actor() -> Actor:
    """Build the Actor for the authenticated request."""
    org_id = get_current_org_id()
    user = g.current_user
    return Actor(user_id=user.id, org_id=org_id, role=user.role)


def scoped_query(model, org_id: int, *, include_deleted: bool = False):
    """
    Query `model` restricted to one organization.

    Soft-deleted rows are hidden unless include_deleted is set.
    """
    query = db.session.query(model).filter(model.org_id == org_id)
    if not include_deleted and hasattr(model, "deleted_at"):
        query = query.filter(model.deleted_at.is_(None))
    return query


def require_in_org(model, entity_id: int, org_id: int, *, label: str | None = None, query=None):
    """
    Load one row by id within the organization or raise TenantAccessError.

    A row in another organization and a tombstoned row both read as missing.
    """
    label = label or model.__tablename__
    q = query if query is not None else scoped_query(model, org_id)
    entity = q.filter(model.id == entity_id).first()
    if entity is None:
        logger.debug("%s %s not visible to org %s", label, entity_id, org_id)
        raise TenantAccessError(f"{label.replace('_', ' ').capitalize()} not found")
    return entity


def require_project_in_org(project_id: int, org_id: int) -> Project:
    """Validate that a project exists, is live and belongs to the organization."""
    return require_in_org(Project, project_id, org_id, label="project")


def require_user_in_org(user_id: int, org_id: int) -> User:
    return require_in_org(User, user_id, org_id, label="user")


def paginate(query, page: int, page_size: int, *, serialize=None) -> dict:
    """Apply offset pagination and return {data, pagination}."""
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * page_size).limit(page_size).all()
    serialize = serialize or (lambda row: row.to_dict())
    return {
        "data": [serialize(row) for row in rows],
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": math.ceil(total / page_size) if total else 0,
        },
    }
