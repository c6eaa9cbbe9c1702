# Overview: Shared helpers for finance documents: numbering, payload cleaning, reference checks, listing.

from __future__ import annotations

import logging
from typing import Any, Optional

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence, ROLE_ADMIN, ROLE_FINANCE
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    parse_optional_date,
    parse_optional_int,
    parse_pagination,
    validate_payload,
)
from .concurrency import lock_for_update
from .tenant_service import paginate, require_project_in_org, scoped_query
from .workflow import ACTION_CREATE, ACTION_DELETE, ACTION_EDIT, roles_guard

logger = logging.getLogger(__name__)


FINANCE_ROLES = (ROLE_ADMIN, ROLE_FINANCE)

finance_guard = roles_guard(*FINANCE_ROLES, message="Finance or admin role required")


def finance_guards(*statuses: str) -> dict:
    """Guard map admitting admin/finance for create, edit, delete and every listed target."""
    keys = (ACTION_CREATE, ACTION_EDIT, ACTION_DELETE) + statuses
    return {key: finance_guard for key in keys}


def terminal_table(table: dict[str, set[str]]) -> dict[str, frozenset]:
    """Freeze a transition table; statuses only reachable as targets become terminal."""
    frozen = {status: frozenset(targets) for status, targets in table.items()}
    for targets in table.values():
        for target in targets:
            frozen.setdefault(target, frozenset())
    return frozen


def next_document_number(
    *,
    org_id: int,
    document_type: str,
    prefix: str,
    pad: int = 4,
) -> str:
    """
    Allocate the next document number for an organization/type.

    The increment is a single UPDATE, so concurrent callers serialize on the
    sequence row. The first allocation inserts the row inside a savepoint.
    """
    if not document_type:
        raise ValidationError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.org_id == org_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    def _current() -> int:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(org_id=org_id, document_type=document_type)
            .scalar()
        )
        return current - 1

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current()
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(org_id=org_id, document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            # Another transaction created the row first
            db.session.execute(stmt)
            next_num = _current()

    return f"{prefix}-{next_num:0{pad}d}"


def clean_payload(
    model,
    payload: Any,
    policy: ModelValidationPolicy,
    org_id: int,
    *,
    partial: bool,
) -> dict:
    """
    Validate a client payload against the model and policy.

    Clients send "metadata"; the mapped attribute is `meta`. A referenced
    project must belong to the organization.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    if "metadata" in payload:
        payload["meta"] = payload.pop("metadata")
    if "meta" in payload and payload["meta"] is not None and not isinstance(payload["meta"], dict):
        raise ValidationError("metadata must be an object")

    patch = validate_payload(model=model, payload=payload, policy=policy, partial=partial)

    if patch.get("project_id") is not None:
        require_project_in_org(patch["project_id"], org_id)
    return patch


def ensure_unique_number(model, number_attr: str, number: str, org_id: int, *, exclude_id: Optional[int] = None) -> None:
    column = getattr(model, number_attr)
    query = db.session.query(model.id).filter(model.org_id == org_id, column == number)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"{number_attr} '{number}' already exists")


def page_window(page: Any, page_size: Any) -> tuple[int, int]:
    return parse_pagination(
        page,
        page_size,
        default_size=current_app.config.get("DEFAULT_PAGE_SIZE", 25),
        max_size=current_app.config.get("MAX_PAGE_SIZE", 100),
    )


def list_documents(
    model,
    org_id: int,
    *,
    party_attr: str,
    date_attr: str,
    link_attr: Optional[str] = None,
    status: Optional[str] = None,
    project_id: Any = None,
    link_id: Any = None,
    search: Optional[str] = None,
    date_from: Any = None,
    date_to: Any = None,
    page: Any = None,
    page_size: Any = None,
) -> dict:
    """Paginated, filtered, newest-first listing of one finance document type."""
    page_num, size = page_window(page, page_size)

    query = scoped_query(model, org_id)
    if status:
        query = query.filter(model.status == status)
    project = parse_optional_int(project_id, field="project_id")
    if project is not None:
        query = query.filter(model.project_id == project)
    if link_attr:
        link = parse_optional_int(link_id, field=link_attr)
        if link is not None:
            query = query.filter(getattr(model, link_attr) == link)
    if search:
        query = query.filter(getattr(model, party_attr).ilike(f"%{search.strip()}%"))

    start = parse_optional_date(date_from, field="date_from")
    end = parse_optional_date(date_to, field="date_to")
    date_column = getattr(model, date_attr)
    if start:
        query = query.filter(date_column >= start)
    if end:
        query = query.filter(date_column <= end)

    query = query.order_by(model.created_at.desc(), model.id.desc())
    return paginate(query, page_num, size)


def advance_parent_when_settled(
    child,
    actor,
    *,
    link_attr: str,
    parent_workflow,
    parent_target: str,
    settled_status: str,
    trigger_key: str,
) -> bool:
    """
    Advance a child's parent document once every live sibling is settled.

    Runs inside the child's transition (no commit). The parent row is
    locked; the advance is skipped when any sibling, including cancelled
    ones, is not in settled_status, or when the parent's own table forbids
    parent_target.
    """
    parent_id = getattr(child, link_attr)
    if parent_id is None:
        return False

    parent_model = parent_workflow.model
    parent = (
        lock_for_update(scoped_query(parent_model, actor.org_id))
        .filter(parent_model.id == parent_id)
        .first()
    )
    if parent is None:
        return False

    child_model = type(child)
    unsettled = (
        scoped_query(child_model, actor.org_id)
        .filter(
            getattr(child_model, link_attr) == parent.id,
            child_model.status != settled_status,
        )
        .count()
    )
    if unsettled:
        logger.debug(
            "%s %s still has %s unsettled %s row(s)",
            parent_workflow.entity_type, parent.id, unsettled, child_model.__tablename__,
        )
        return False

    return parent_workflow.advance(
        parent,
        parent_target,
        org_id=actor.org_id,
        payload={trigger_key: child.id, "actorId": actor.user_id},
    )
