# workhub/services/invoice_service.py
"""
Customer invoice service.

LIFECYCLE:
1. draft: created, editable, optionally linked to a sales order
2. sent: issued to the customer
3. paid: settled; when every live invoice of the linked sales order is
   paid, the sales order moves to invoiced in the same transaction
4. cancelled: voided from draft or sent
"""
from __future__ import annotations

from typing import Any, Optional

from workhub.errors import service_result
from workhub.extensions import db
from workhub.models import CustomerInvoice, SalesOrder
from workhub.time_utils import utcnow
from workhub.validation import ModelValidationPolicy, ValidationError
from workhub.services import document_service, sales_order_service
from workhub.services.event_service import ENTITY_CUSTOMER_INVOICE, log_event
from workhub.services.tenant_service import Actor, require_in_org
from workhub.services.workflow import ACTION_CREATE, STATUS_DRAFT, Workflow


INVOICE_STATUS_DRAFT = STATUS_DRAFT
INVOICE_STATUS_SENT = "sent"
INVOICE_STATUS_PAID = "paid"
INVOICE_STATUS_CANCELLED = "cancelled"

TRANSITIONS = document_service.terminal_table({
    INVOICE_STATUS_DRAFT: {INVOICE_STATUS_SENT, INVOICE_STATUS_CANCELLED},
    INVOICE_STATUS_SENT: {INVOICE_STATUS_PAID, INVOICE_STATUS_CANCELLED},
})

WORKFLOW = Workflow(
    entity_type=ENTITY_CUSTOMER_INVOICE,
    label="invoice",
    model=CustomerInvoice,
    event_prefix="INVOICE",
    transitions=TRANSITIONS,
    guards=document_service.finance_guards(INVOICE_STATUS_SENT, INVOICE_STATUS_PAID, INVOICE_STATUS_CANCELLED),
)

POLICY = ModelValidationPolicy(
    writable_fields={
        "invoice_number", "partner_name", "invoice_date", "due_date", "amount",
        "currency", "project_id", "so_id", "meta",
    },
    required_on_create={"invoice_date", "amount"},
)

INVOICE_LINKED_TO_SO = "INVOICE_LINKED_TO_SO"


def _require_sales_order(so_id: int, org_id: int) -> SalesOrder:
    return require_in_org(SalesOrder, so_id, org_id, label="sales_order")


def _log_linked(invoice: CustomerInvoice, so: SalesOrder, actor: Actor) -> None:
    log_event(actor.org_id, ENTITY_CUSTOMER_INVOICE, invoice.id, INVOICE_LINKED_TO_SO, {
        "soId": so.id,
        "soNumber": so.so_number,
        "actorId": actor.user_id,
    })


@service_result
def create_invoice(actor: Actor, payload: dict) -> CustomerInvoice:
    WORKFLOW.check_guard(ACTION_CREATE, actor)
    patch = document_service.clean_payload(CustomerInvoice, payload, POLICY, actor.org_id, partial=False)

    so: Optional[SalesOrder] = None
    if patch.get("so_id") is not None:
        so = _require_sales_order(patch["so_id"], actor.org_id)
        # Linked invoices inherit the order's counterparty and project
        patch.setdefault("partner_name", so.partner_name)
        if patch.get("project_id") is None:
            patch["project_id"] = so.project_id
    if not patch.get("partner_name"):
        raise ValidationError("Missing required fields: partner_name")

    if patch.get("invoice_number"):
        document_service.ensure_unique_number(CustomerInvoice, "invoice_number", patch["invoice_number"], actor.org_id)
    else:
        patch["invoice_number"] = document_service.next_document_number(
            org_id=actor.org_id, document_type="INVOICE", prefix="INV",
        )

    invoice = CustomerInvoice(org_id=actor.org_id, status=INVOICE_STATUS_DRAFT, **patch)
    db.session.add(invoice)
    db.session.flush()

    log_event(actor.org_id, ENTITY_CUSTOMER_INVOICE, invoice.id, WORKFLOW.event_type("created"), {
        "invoiceNumber": invoice.invoice_number,
        "amount": invoice.amount,
        "soId": invoice.so_id,
        "projectId": invoice.project_id,
        "actorId": actor.user_id,
    })
    if so is not None:
        _log_linked(invoice, so, actor)

    db.session.commit()
    return invoice


@service_result
def get_invoice(actor: Actor, invoice_id: int) -> CustomerInvoice:
    return WORKFLOW.load(invoice_id, actor.org_id)


@service_result
def list_invoices(actor: Actor, *, so_id: Any = None, **filters: Any) -> dict:
    return document_service.list_documents(
        CustomerInvoice,
        actor.org_id,
        party_attr="partner_name",
        date_attr="invoice_date",
        link_attr="so_id",
        link_id=so_id,
        **filters,
    )


@service_result
def update_invoice(actor: Actor, invoice_id: int, payload: dict) -> CustomerInvoice:
    linked: list[SalesOrder] = []

    def _patch(invoice: CustomerInvoice) -> dict:
        patch = document_service.clean_payload(CustomerInvoice, payload, POLICY, actor.org_id, partial=True)
        if patch.get("invoice_number"):
            document_service.ensure_unique_number(
                CustomerInvoice, "invoice_number", patch["invoice_number"], actor.org_id, exclude_id=invoice.id,
            )
        if patch.get("so_id") is not None and patch["so_id"] != invoice.so_id:
            linked.append(_require_sales_order(patch["so_id"], actor.org_id))
        return patch

    def _after(invoice: CustomerInvoice, actor: Actor) -> None:
        if linked:
            _log_linked(invoice, linked[0], actor)

    return WORKFLOW.update(invoice_id, actor, _patch, after=_after)


def _stamp_sent(invoice: CustomerInvoice, actor: Actor) -> None:
    invoice.sent_at = utcnow()


def _stamp_paid(invoice: CustomerInvoice, actor: Actor) -> None:
    invoice.paid_at = utcnow()


def _stamp_cancelled(invoice: CustomerInvoice, actor: Actor) -> None:
    invoice.cancelled_at = utcnow()


def _advance_sales_order(invoice: CustomerInvoice, actor: Actor) -> None:
    """Mark the linked sales order invoiced once all of its live invoices are paid."""
    document_service.advance_parent_when_settled(
        invoice,
        actor,
        link_attr="so_id",
        parent_workflow=sales_order_service.WORKFLOW,
        parent_target=sales_order_service.SO_STATUS_INVOICED,
        settled_status=INVOICE_STATUS_PAID,
        trigger_key="triggeredByInvoice",
    )


@service_result
def send_invoice(actor: Actor, invoice_id: int) -> CustomerInvoice:
    return WORKFLOW.transition(invoice_id, actor, INVOICE_STATUS_SENT, apply=_stamp_sent)


@service_result
def mark_invoice_paid(actor: Actor, invoice_id: int) -> CustomerInvoice:
    return WORKFLOW.transition(
        invoice_id, actor, INVOICE_STATUS_PAID,
        apply=_stamp_paid,
        after=_advance_sales_order,
    )


@service_result
def cancel_invoice(actor: Actor, invoice_id: int, reason: str | None = None) -> CustomerInvoice:
    return WORKFLOW.transition(
        invoice_id, actor, INVOICE_STATUS_CANCELLED,
        apply=_stamp_cancelled,
        payload={"reason": reason} if reason else None,
    )


@service_result
def delete_invoice(actor: Actor, invoice_id: int) -> CustomerInvoice:
    return WORKFLOW.soft_delete(invoice_id, actor)
