# Overview: Append-only audit event log; best-effort writes and tenant-scoped reads.

"""
Audit Event Log

Invariants:
- Append-only. There is no update or delete path; the Event mapper rejects both.
- log_event writes inside a SAVEPOINT of the caller's transaction. When the
  write succeeds the event commits atomically with the mutation it records.
  When it fails, only the savepoint is rolled back, the failure is logged,
  and the caller's mutation proceeds.
- Reads are newest first (created_at, then id).
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from ..extensions import db
from ..models import Event
from ..time_utils import to_utc_z

logger = logging.getLogger(__name__)


# Entity types
ENTITY_PROJECT = "project"
ENTITY_TASK = "task"
ENTITY_TIMESHEET = "timesheet"
ENTITY_EXPENSE = "expense"
ENTITY_USER = "user"
ENTITY_ORGANIZATION = "organization"
ENTITY_SALES_ORDER = "sales_order"
ENTITY_PURCHASE_ORDER = "purchase_order"
ENTITY_CUSTOMER_INVOICE = "customer_invoice"
ENTITY_VENDOR_BILL = "vendor_bill"
ENTITY_ATTACHMENT = "attachment"

ENTITY_TYPES = (
    ENTITY_PROJECT, ENTITY_TASK, ENTITY_TIMESHEET, ENTITY_EXPENSE, ENTITY_USER,
    ENTITY_ORGANIZATION, ENTITY_SALES_ORDER, ENTITY_PURCHASE_ORDER,
    ENTITY_CUSTOMER_INVOICE, ENTITY_VENDOR_BILL, ENTITY_ATTACHMENT,
)

# Expense lifecycle event types
EXPENSE_CREATED = "EXPENSE_CREATED"
EXPENSE_UPDATED = "EXPENSE_UPDATED"
EXPENSE_SUBMITTED = "EXPENSE_SUBMITTED"
EXPENSE_APPROVED = "EXPENSE_APPROVED"
EXPENSE_REJECTED = "EXPENSE_REJECTED"
EXPENSE_PAID = "EXPENSE_PAID"
EXPENSE_DELETED = "EXPENSE_DELETED"

PROJECT_CREATED = "PROJECT_CREATED"
PROJECT_MEMBER_ADDED = "PROJECT_MEMBER_ADDED"
ATTACHMENTS_REASSOCIATED = "ATTACHMENTS_REASSOCIATED"

DEFAULT_ENTITY_LIMIT = 50
DEFAULT_ORG_LIMIT = 100
MAX_LIMIT = 500


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, datetime):
        return to_utc_z(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return value


def log_event(
    org_id: int,
    entity_type: str,
    entity_id: Optional[int],
    event_type: str,
    payload: Optional[dict] = None,
) -> Optional[Event]:
    """
    Append one audit event inside the caller's transaction.

    Returns the Event, or None when the write failed. Failures never
    propagate: the savepoint is rolled back and the stack trace is logged.
    """
    try:
        with db.session.begin_nested():
            ev = Event(
                org_id=org_id,
                entity_type=entity_type,
                entity_id=entity_id,
                event_type=event_type,
                payload=_jsonable(payload) if payload is not None else None,
            )
            db.session.add(ev)
        return ev
    except Exception:
        logger.exception(
            "Failed to record %s for %s:%s (org %s)",
            event_type, entity_type, entity_id, org_id,
        )
        return None


def _expense_event(expense, event_type: str, base: dict, extra: Optional[dict]) -> Optional[Event]:
    payload = dict(base)
    if extra:
        payload.update(extra)
    return log_event(expense.org_id, ENTITY_EXPENSE, expense.id, event_type, payload)


def log_expense_created(expense, actor_id: int, extra: Optional[dict] = None) -> Optional[Event]:
    return _expense_event(expense, EXPENSE_CREATED, {
        "amount": expense.amount,
        "projectId": expense.project_id,
        "userId": expense.user_id,
        "actorId": actor_id,
    }, extra)


def log_expense_updated(expense, actor_id: int, extra: Optional[dict] = None) -> Optional[Event]:
    return _expense_event(expense, EXPENSE_UPDATED, {"actorId": actor_id}, extra)


def log_expense_submitted(expense, actor_id: int, extra: Optional[dict] = None) -> Optional[Event]:
    return _expense_event(expense, EXPENSE_SUBMITTED, {
        "amount": expense.amount,
        "actorId": actor_id,
    }, extra)


def log_expense_approved(expense, actor_id: int, extra: Optional[dict] = None) -> Optional[Event]:
    return _expense_event(expense, EXPENSE_APPROVED, {
        "amount": expense.amount,
        "approvedBy": actor_id,
    }, extra)


def log_expense_rejected(expense, actor_id: int, extra: Optional[dict] = None) -> Optional[Event]:
    return _expense_event(expense, EXPENSE_REJECTED, {
        "reason": expense.rejection_reason,
        "rejectedBy": actor_id,
    }, extra)


def log_expense_paid(expense, actor_id: int, extra: Optional[dict] = None) -> Optional[Event]:
    return _expense_event(expense, EXPENSE_PAID, {
        "amount": expense.amount,
        "paidBy": actor_id,
    }, extra)


def log_expense_deleted(expense, actor_id: int, extra: Optional[dict] = None) -> Optional[Event]:
    return _expense_event(expense, EXPENSE_DELETED, {
        "status": expense.status,
        "actorId": actor_id,
    }, extra)


def _clamp_limit(limit: Optional[int], default: int) -> int:
    if limit is None or limit < 1:
        return default
    return min(limit, MAX_LIMIT)


def _newest_first(query):
    return query.order_by(Event.created_at.desc(), Event.id.desc())


def get_events_for_entity(
    entity_type: str,
    entity_id: int,
    limit: Optional[int] = DEFAULT_ENTITY_LIMIT,
    org_id: Optional[int] = None,
) -> list[Event]:
    """Events for one entity, newest first. Pass org_id to scope to a tenant."""
    query = db.session.query(Event).filter(
        Event.entity_type == entity_type,
        Event.entity_id == entity_id,
    )
    if org_id is not None:
        query = query.filter(Event.org_id == org_id)
    return _newest_first(query).limit(_clamp_limit(limit, DEFAULT_ENTITY_LIMIT)).all()


def _org_query(
    org_id: int,
    entity_type: Optional[str] = None,
    event_type: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    entity_id: Optional[int] = None,
):
    query = db.session.query(Event).filter(Event.org_id == org_id)
    if entity_type:
        query = query.filter(Event.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(Event.entity_id == entity_id)
    if event_type:
        query = query.filter(Event.event_type == event_type)
    if start_date:
        query = query.filter(Event.created_at >= start_date)
    if end_date:
        query = query.filter(Event.created_at <= end_date)
    return query


def get_events_for_organization(
    org_id: int,
    entity_type: Optional[str] = None,
    event_type: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: Optional[int] = DEFAULT_ORG_LIMIT,
    entity_id: Optional[int] = None,
) -> list[Event]:
    """Organization-wide events with optional filters, newest first."""
    query = _org_query(org_id, entity_type, event_type, start_date, end_date, entity_id)
    return _newest_first(query).limit(_clamp_limit(limit, DEFAULT_ORG_LIMIT)).all()


def get_event(org_id: int, event_id: int) -> Optional[Event]:
    return db.session.query(Event).filter_by(id=event_id, org_id=org_id).first()


def summarize_events(
    org_id: int,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> dict:
    """Counts of an organization's events by event type and by entity type."""
    rows = (
        _org_query(org_id, start_date=start_date, end_date=end_date)
        .with_entities(Event.event_type, Event.entity_type)
        .all()
    )
    by_event = Counter(row.event_type for row in rows)
    by_entity = Counter(row.entity_type for row in rows)
    return {
        "total": len(rows),
        "by_event_type": dict(sorted(by_event.items())),
        "by_entity_type": dict(sorted(by_entity.items())),
    }
