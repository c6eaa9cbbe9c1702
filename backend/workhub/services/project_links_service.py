# Overview: Links panel aggregator: bounded recent records of every category linked to a project.

"""
Project Links

One query per requested category, newest first, capped at `limit`, issued
through the concurrency fan-out. Categories left out of `include` are not
queried and come back as empty lists. Every query is filtered on org_id.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional

from flask import current_app
from sqlalchemy.orm import aliased

from ..extensions import db
from ..models import (
    Attachment,
    CustomerInvoice,
    Event,
    Expense,
    PurchaseOrder,
    SalesOrder,
    Task,
    Timesheet,
    User,
    VendorBill,
)
from ..models.mixins import money_str
from ..time_utils import to_iso_date, to_utc_z
from ..validation import ValidationError, parse_int
from .concurrency import run_concurrently
from .event_service import ENTITY_PROJECT
from .tenant_service import require_project_in_org, scoped_query

logger = logging.getLogger(__name__)

CATEGORIES = (
    "tasks",
    "timesheets",
    "invoices",
    "bills",
    "sales_orders",
    "purchase_orders",
    "expenses",
    "attachments",
    "events",
)

OWNER_TYPE_PROJECT = "project"


def _person(user_id: Optional[int], name: Optional[str]) -> Optional[dict]:
    if user_id is None:
        return None
    return {"id": user_id, "name": name}


# --- per-category row queries ------------------------------------------------


def _tasks_query(project_id: int, org_id: int):
    assignee = aliased(User)
    return (
        scoped_query(Task, org_id)
        .filter(Task.project_id == project_id)
        .outerjoin(assignee, assignee.id == Task.assignee_id)
        .with_entities(Task, assignee.full_name)
        .order_by(Task.updated_at.desc(), Task.id.desc())
    )


def _task_row(row) -> dict:
    task, assignee_name = row
    return {
        "id": task.id,
        "title": task.title,
        "status": task.status,
        "priority": task.priority,
        "assignee": _person(task.assignee_id, assignee_name),
        "due_date": to_iso_date(task.due_date),
        "hours_logged": money_str(task.hours_logged),
    }


def _timesheets_query(project_id: int, org_id: int):
    return (
        scoped_query(Timesheet, org_id)
        .filter(Timesheet.project_id == project_id)
        .outerjoin(User, User.id == Timesheet.user_id)
        .with_entities(Timesheet, User.full_name)
        .order_by(Timesheet.created_at.desc(), Timesheet.id.desc())
    )


def _timesheet_row(row) -> dict:
    entry, user_name = row
    return {
        "id": entry.id,
        "user": _person(entry.user_id, user_name),
        "work_date": to_iso_date(entry.work_date),
        "duration_hours": money_str(entry.duration_hours),
        "billable": entry.billable,
        "status": entry.status,
    }


def _invoices_query(project_id: int, org_id: int):
    return (
        scoped_query(CustomerInvoice, org_id)
        .filter(CustomerInvoice.project_id == project_id)
        .outerjoin(SalesOrder, SalesOrder.id == CustomerInvoice.so_id)
        .with_entities(CustomerInvoice, SalesOrder.so_number)
        .order_by(CustomerInvoice.invoice_date.desc(), CustomerInvoice.id.desc())
    )


def _invoice_row(row) -> dict:
    invoice, so_number = row
    return {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "partner_name": invoice.partner_name,
        "amount": money_str(invoice.amount),
        "status": invoice.status,
        "invoice_date": to_iso_date(invoice.invoice_date),
        "sales_order": {"id": invoice.so_id, "so_number": so_number} if invoice.so_id else None,
    }


def _bills_query(project_id: int, org_id: int):
    return (
        scoped_query(VendorBill, org_id)
        .filter(VendorBill.project_id == project_id)
        .outerjoin(PurchaseOrder, PurchaseOrder.id == VendorBill.po_id)
        .with_entities(VendorBill, PurchaseOrder.po_number)
        .order_by(VendorBill.bill_date.desc(), VendorBill.id.desc())
    )


def _bill_row(row) -> dict:
    bill, po_number = row
    return {
        "id": bill.id,
        "bill_number": bill.bill_number,
        "vendor_name": bill.vendor_name,
        "amount": money_str(bill.amount),
        "status": bill.status,
        "bill_date": to_iso_date(bill.bill_date),
        "purchase_order": {"id": bill.po_id, "po_number": po_number} if bill.po_id else None,
    }


def _sales_orders_query(project_id: int, org_id: int):
    return (
        scoped_query(SalesOrder, org_id)
        .filter(SalesOrder.project_id == project_id)
        .order_by(SalesOrder.order_date.desc(), SalesOrder.id.desc())
    )


def _sales_order_row(so: SalesOrder) -> dict:
    return {
        "id": so.id,
        "so_number": so.so_number,
        "partner_name": so.partner_name,
        "amount": money_str(so.amount),
        "status": so.status,
        "order_date": to_iso_date(so.order_date),
    }


def _purchase_orders_query(project_id: int, org_id: int):
    return (
        scoped_query(PurchaseOrder, org_id)
        .filter(PurchaseOrder.project_id == project_id)
        .order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc())
    )


def _purchase_order_row(po: PurchaseOrder) -> dict:
    return {
        "id": po.id,
        "po_number": po.po_number,
        "vendor_name": po.vendor_name,
        "amount": money_str(po.amount),
        "status": po.status,
        "order_date": to_iso_date(po.order_date),
    }


def _expenses_query(project_id: int, org_id: int):
    return (
        scoped_query(Expense, org_id)
        .filter(Expense.project_id == project_id)
        .outerjoin(User, User.id == Expense.user_id)
        .with_entities(Expense, User.full_name)
        .order_by(Expense.created_at.desc(), Expense.id.desc())
    )


def _expense_row(row) -> dict:
    expense, user_name = row
    return {
        "id": expense.id,
        "amount": money_str(expense.amount),
        "billable": expense.billable,
        "status": expense.status,
        "note": expense.note,
        "user": _person(expense.user_id, user_name),
        "created_at": to_utc_z(expense.created_at),
    }


def _attachments_query(project_id: int, org_id: int):
    return (
        db.session.query(Attachment, User.full_name)
        .outerjoin(User, User.id == Attachment.uploaded_by)
        .filter(
            Attachment.org_id == org_id,
            Attachment.owner_type == OWNER_TYPE_PROJECT,
            Attachment.owner_id == project_id,
        )
        .order_by(Attachment.uploaded_at.desc(), Attachment.id.desc())
    )


def _attachment_row(row) -> dict:
    attachment, uploader_name = row
    return {
        "id": attachment.id,
        "file_name": attachment.file_name,
        "file_url": attachment.file_url,
        "uploaded_by": _person(attachment.uploaded_by, uploader_name),
        "uploaded_at": to_utc_z(attachment.uploaded_at),
        "status": attachment.status,
    }


def _events_query(project_id: int, org_id: int):
    return (
        db.session.query(Event)
        .filter(
            Event.org_id == org_id,
            Event.entity_type == ENTITY_PROJECT,
            Event.entity_id == project_id,
        )
        .order_by(Event.created_at.desc(), Event.id.desc())
    )


def _event_row(event: Event) -> dict:
    return event.to_dict()


_SOURCES: dict[str, tuple[Callable[[int, int], Any], Callable[[Any], dict]]] = {
    "tasks": (_tasks_query, _task_row),
    "timesheets": (_timesheets_query, _timesheet_row),
    "invoices": (_invoices_query, _invoice_row),
    "bills": (_bills_query, _bill_row),
    "sales_orders": (_sales_orders_query, _sales_order_row),
    "purchase_orders": (_purchase_orders_query, _purchase_order_row),
    "expenses": (_expenses_query, _expense_row),
    "attachments": (_attachments_query, _attachment_row),
    "events": (_events_query, _event_row),
}


# --- argument parsing -------------------------------------------------------------


def parse_include(include: Optional[Iterable[str] | str]) -> tuple[str, ...]:
    """Normalize `include` (list or comma separated string) against the allow-list."""
    if include is None:
        return CATEGORIES
    if isinstance(include, str):
        include = include.split(",")
    names = [str(name).strip() for name in include if str(name).strip()]
    unknown = sorted(set(names) - set(CATEGORIES))
    if unknown:
        raise ValidationError(
            f"Unknown link categories: {', '.join(unknown)}",
            details={"allowed": list(CATEGORIES)},
        )
    return tuple(name for name in CATEGORIES if name in names)


def parse_limit(limit: Any) -> int:
    max_limit = int(current_app.config.get("LINKS_MAX_LIMIT", 50))
    if limit is None or limit == "":
        return int(current_app.config.get("LINKS_DEFAULT_LIMIT", 5))
    value = parse_int(limit, field="limit")
    if value < 1 or value > max_limit:
        raise ValidationError(f"limit must be between 1 and {max_limit}")
    return value


# --- public API -----------------------------------------------------------------


def get_project_links(
    project_id: int,
    org_id: int,
    *,
    limit: Any = None,
    include: Optional[Iterable[str] | str] = None,
) -> dict:
    """
    Fetch the most recent records of every linked category for a project.

    Raises NotFoundError when the project is missing or in another
    organization, ValidationError for a bad limit or unknown category.
    """
    size = parse_limit(limit)
    categories = parse_include(include)
    require_project_in_org(project_id, org_id)

    def _fetch(name: str):
        build, shape = _SOURCES[name]

        def _run() -> list[dict]:
            return [shape(row) for row in build(project_id, org_id).limit(size).all()]

        return _run

    fetched = run_concurrently({name: _fetch(name) for name in categories})

    links = {name: fetched.get(name, []) for name in CATEGORIES}
    logger.debug("Project %s links: %s", project_id, {name: len(rows) for name, rows in links.items()})
    return {"project_id": project_id, "links": links}


def get_project_links_counts(project_id: int, org_id: int) -> dict:
    """Unbounded counts for the same category set (dashboard badges)."""
    require_project_in_org(project_id, org_id)

    def _count(name: str):
        build, _ = _SOURCES[name]

        def _run() -> int:
            return build(project_id, org_id).order_by(None).count()

        return _run

    counts = run_concurrently({name: _count(name) for name in CATEGORIES})
    return {"project_id": project_id, "counts": {name: counts[name] for name in CATEGORIES}}
