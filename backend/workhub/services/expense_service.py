# workhub/services/expense_service.py
"""
Expense service.

LIFECYCLE:
1. draft: created by its owner, editable by the owner or an admin
2. submitted: sent for approval by the owner
3. approved / rejected: decided by a manager, finance or admin
4. paid: reimbursed by finance or admin

Paid expenses can never be deleted. Members only see their own expenses.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import func

from workhub.errors import service_result
from workhub.extensions import db
from workhub.models import Expense, ROLE_ADMIN, ROLE_FINANCE, ROLE_MANAGER, ROLE_MEMBER
from workhub.models.mixins import money_str
from workhub.time_utils import utcnow
from workhub.validation import (
    ModelValidationPolicy,
    parse_amount,
    parse_optional_bool,
    parse_optional_date,
    parse_optional_int,
)
from workhub.services import document_service, event_service
from workhub.services.event_service import ENTITY_EXPENSE
from workhub.services.tenant_service import Actor, paginate, require_in_org, scoped_query
from workhub.services.workflow import (
    ACTION_DELETE,
    ACTION_EDIT,
    STATUS_DRAFT,
    Workflow,
    owner_guard,
    roles_guard,
)


EXPENSE_STATUS_DRAFT = STATUS_DRAFT
EXPENSE_STATUS_SUBMITTED = "submitted"
EXPENSE_STATUS_APPROVED = "approved"
EXPENSE_STATUS_REJECTED = "rejected"
EXPENSE_STATUS_PAID = "paid"

EXPENSE_STATUSES = (
    EXPENSE_STATUS_DRAFT, EXPENSE_STATUS_SUBMITTED, EXPENSE_STATUS_APPROVED,
    EXPENSE_STATUS_REJECTED, EXPENSE_STATUS_PAID,
)

APPROVER_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_FINANCE)
PAYER_ROLES = (ROLE_ADMIN, ROLE_FINANCE)

TRANSITIONS = document_service.terminal_table({
    EXPENSE_STATUS_DRAFT: {EXPENSE_STATUS_SUBMITTED},
    EXPENSE_STATUS_SUBMITTED: {EXPENSE_STATUS_APPROVED, EXPENSE_STATUS_REJECTED},
    EXPENSE_STATUS_APPROVED: {EXPENSE_STATUS_PAID},
})

WORKFLOW = Workflow(
    entity_type=ENTITY_EXPENSE,
    label="expense",
    model=Expense,
    event_prefix="EXPENSE",
    transitions=TRANSITIONS,
    guards={
        ACTION_EDIT: owner_guard(allow_roles=(ROLE_ADMIN,), message="Only the owner or an admin can edit this expense"),
        ACTION_DELETE: owner_guard(allow_roles=(ROLE_ADMIN,), message="Only the owner or an admin can delete this expense"),
        EXPENSE_STATUS_SUBMITTED: owner_guard(message="Only the owner can submit this expense"),
        EXPENSE_STATUS_APPROVED: roles_guard(*APPROVER_ROLES, message="Manager, finance or admin role required to approve"),
        EXPENSE_STATUS_REJECTED: roles_guard(*APPROVER_ROLES, message="Manager, finance or admin role required to reject"),
        EXPENSE_STATUS_PAID: roles_guard(*PAYER_ROLES, message="Finance or admin role required to pay"),
    },
    undeletable_statuses=frozenset({EXPENSE_STATUS_PAID}),
    recorders={
        "updated": event_service.log_expense_updated,
        "deleted": event_service.log_expense_deleted,
        EXPENSE_STATUS_SUBMITTED: event_service.log_expense_submitted,
        EXPENSE_STATUS_APPROVED: event_service.log_expense_approved,
        EXPENSE_STATUS_REJECTED: event_service.log_expense_rejected,
        EXPENSE_STATUS_PAID: event_service.log_expense_paid,
    },
)

POLICY = ModelValidationPolicy(
    writable_fields={
        "amount", "currency", "category", "expense_date", "note",
        "billable", "receipt_url", "project_id",
    },
    required_on_create={"amount"},
    positive_amounts={"amount"},
)


def _visible(actor: Actor):
    query = scoped_query(Expense, actor.org_id)
    if actor.role == ROLE_MEMBER:
        query = query.filter(Expense.user_id == actor.user_id)
    return query


@service_result
def create_expense(actor: Actor, payload: dict) -> Expense:
    patch = document_service.clean_payload(Expense, payload, POLICY, actor.org_id, partial=False)

    expense = Expense(
        org_id=actor.org_id,
        user_id=actor.user_id,
        status=EXPENSE_STATUS_DRAFT,
        **patch,
    )
    db.session.add(expense)
    db.session.flush()

    event_service.log_expense_created(expense, actor.user_id)
    db.session.commit()
    return expense


@service_result
def get_expense(actor: Actor, expense_id: int) -> Expense:
    return require_in_org(Expense, expense_id, actor.org_id, label="expense", query=_visible(actor))


def _filtered(
    actor: Actor,
    *,
    status: str | None = None,
    project_id: Any = None,
    user_id: Any = None,
    billable: Any = None,
    min_amount: Any = None,
    max_amount: Any = None,
    date_from: Any = None,
    date_to: Any = None,
):
    query = _visible(actor)
    if status:
        query = query.filter(Expense.status == status)
    project = parse_optional_int(project_id, field="project_id")
    if project is not None:
        query = query.filter(Expense.project_id == project)
    owner = parse_optional_int(user_id, field="user_id")
    if owner is not None:
        query = query.filter(Expense.user_id == owner)
    is_billable = parse_optional_bool(billable, field="billable")
    if is_billable is not None:
        query = query.filter(Expense.billable.is_(is_billable))
    if min_amount not in (None, ""):
        query = query.filter(Expense.amount >= parse_amount(min_amount, field="min_amount"))
    if max_amount not in (None, ""):
        query = query.filter(Expense.amount <= parse_amount(max_amount, field="max_amount"))
    start = parse_optional_date(date_from, field="date_from")
    end = parse_optional_date(date_to, field="date_to")
    if start:
        query = query.filter(Expense.expense_date >= start)
    if end:
        query = query.filter(Expense.expense_date <= end)
    return query


@service_result
def list_expenses(actor: Actor, *, page: Any = None, page_size: Any = None, **filters: Any) -> dict:
    page_num, size = document_service.page_window(page, page_size)
    query = _filtered(actor, **filters).order_by(Expense.created_at.desc(), Expense.id.desc())
    return paginate(query, page_num, size)


@service_result
def update_expense(actor: Actor, expense_id: int, payload: dict) -> Expense:
    def _patch(expense: Expense) -> dict:
        return document_service.clean_payload(Expense, payload, POLICY, actor.org_id, partial=True)

    return WORKFLOW.update(expense_id, actor, _patch)


def _stamp_submitted(expense: Expense, actor: Actor) -> None:
    expense.submitted_at = utcnow()


def _stamp_approved(expense: Expense, actor: Actor) -> None:
    expense.approved_by_user_id = actor.user_id
    expense.approved_at = utcnow()


def _stamp_paid(expense: Expense, actor: Actor) -> None:
    expense.paid_by_user_id = actor.user_id
    expense.paid_at = utcnow()


@service_result
def submit_expense(actor: Actor, expense_id: int) -> Expense:
    return WORKFLOW.transition(expense_id, actor, EXPENSE_STATUS_SUBMITTED, apply=_stamp_submitted)


@service_result
def approve_expense(actor: Actor, expense_id: int) -> Expense:
    return WORKFLOW.transition(expense_id, actor, EXPENSE_STATUS_APPROVED, apply=_stamp_approved)


@service_result
def reject_expense(actor: Actor, expense_id: int, reason: str | None = None) -> Expense:
    def _stamp_rejected(expense: Expense, actor: Actor) -> None:
        expense.rejected_by_user_id = actor.user_id
        expense.rejected_at = utcnow()
        expense.rejection_reason = (reason or "").strip() or None

    return WORKFLOW.transition(expense_id, actor, EXPENSE_STATUS_REJECTED, apply=_stamp_rejected)


@service_result
def pay_expense(actor: Actor, expense_id: int) -> Expense:
    return WORKFLOW.transition(expense_id, actor, EXPENSE_STATUS_PAID, apply=_stamp_paid)


@service_result
def delete_expense(actor: Actor, expense_id: int) -> Expense:
    return WORKFLOW.soft_delete(expense_id, actor)


def _decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(Decimal("0.01"))


@service_result
def get_expense_stats(actor: Actor, **filters: Any) -> dict:
    """Totals, per-status and billable/non-billable breakdown for visible expenses."""
    rows = (
        _filtered(actor, **filters)
        .with_entities(
            Expense.status,
            Expense.billable,
            func.count(Expense.id),
            func.sum(Expense.amount),
        )
        .group_by(Expense.status, Expense.billable)
        .all()
    )

    by_status = {status: {"count": 0, "amount": Decimal("0.00")} for status in EXPENSE_STATUSES}
    billable = {"count": 0, "amount": Decimal("0.00")}
    non_billable = {"count": 0, "amount": Decimal("0.00")}
    total_count = 0
    total_amount = Decimal("0.00")

    for status, is_billable, count, amount in rows:
        amount = _decimal(amount)
        bucket = by_status.setdefault(status, {"count": 0, "amount": Decimal("0.00")})
        bucket["count"] += count
        bucket["amount"] += amount
        side = billable if is_billable else non_billable
        side["count"] += count
        side["amount"] += amount
        total_count += count
        total_amount += amount

    average = (total_amount / total_count).quantize(Decimal("0.01")) if total_count else Decimal("0.00")

    def _render(bucket: dict) -> dict:
        return {"count": bucket["count"], "amount": money_str(bucket["amount"])}

    return {
        "total_count": total_count,
        "total_amount": money_str(total_amount),
        "average_amount": money_str(average),
        "by_status": {status: _render(bucket) for status, bucket in by_status.items()},
        "billable": _render(billable),
        "non_billable": _render(non_billable),
    }
