# workhub/services/bill_service.py
"""
Vendor bill service.

LIFECYCLE:
1. draft: created, editable, optionally linked to a purchase order
2. received: accepted from the vendor
3. paid: settled; when every live bill of the linked purchase order is
   paid, the purchase order moves to billed in the same transaction
4. cancelled: voided from draft or received
"""
from __future__ import annotations

from typing import Any, Optional

from workhub.errors import service_result
from workhub.extensions import db
from workhub.models import VendorBill, PurchaseOrder
from workhub.time_utils import utcnow
from workhub.validation import ModelValidationPolicy, ValidationError
from workhub.services import document_service, purchase_order_service
from workhub.services.event_service import ENTITY_VENDOR_BILL, log_event
from workhub.services.tenant_service import Actor, require_in_org
from workhub.services.workflow import ACTION_CREATE, STATUS_DRAFT, Workflow


BILL_STATUS_DRAFT = STATUS_DRAFT
BILL_STATUS_RECEIVED = "received"
BILL_STATUS_PAID = "paid"
BILL_STATUS_CANCELLED = "cancelled"

TRANSITIONS = document_service.terminal_table({
    BILL_STATUS_DRAFT: {BILL_STATUS_RECEIVED, BILL_STATUS_CANCELLED},
    BILL_STATUS_RECEIVED: {BILL_STATUS_PAID, BILL_STATUS_CANCELLED},
})

WORKFLOW = Workflow(
    entity_type=ENTITY_VENDOR_BILL,
    label="vendor bill",
    model=VendorBill,
    event_prefix="BILL",
    transitions=TRANSITIONS,
    guards=document_service.finance_guards(BILL_STATUS_RECEIVED, BILL_STATUS_PAID, BILL_STATUS_CANCELLED),
)

POLICY = ModelValidationPolicy(
    writable_fields={
        "bill_number", "vendor_name", "bill_date", "due_date", "amount",
        "currency", "project_id", "po_id", "meta",
    },
    required_on_create={"bill_date", "amount"},
)

BILL_LINKED_TO_PO = "BILL_LINKED_TO_PO"


def _require_purchase_order(po_id: int, org_id: int) -> PurchaseOrder:
    return require_in_org(PurchaseOrder, po_id, org_id, label="purchase_order")


def _log_linked(bill: VendorBill, po: PurchaseOrder, actor: Actor) -> None:
    log_event(actor.org_id, ENTITY_VENDOR_BILL, bill.id, BILL_LINKED_TO_PO, {
        "poId": po.id,
        "poNumber": po.po_number,
        "actorId": actor.user_id,
    })


@service_result
def create_bill(actor: Actor, payload: dict) -> VendorBill:
    WORKFLOW.check_guard(ACTION_CREATE, actor)
    patch = document_service.clean_payload(VendorBill, payload, POLICY, actor.org_id, partial=False)

    po: Optional[PurchaseOrder] = None
    if patch.get("po_id") is not None:
        po = _require_purchase_order(patch["po_id"], actor.org_id)
        # Linked bills inherit the order's counterparty and project
        patch.setdefault("vendor_name", po.vendor_name)
        if patch.get("project_id") is None:
            patch["project_id"] = po.project_id
    if not patch.get("vendor_name"):
        raise ValidationError("Missing required fields: vendor_name")

    if patch.get("bill_number"):
        document_service.ensure_unique_number(VendorBill, "bill_number", patch["bill_number"], actor.org_id)
    else:
        patch["bill_number"] = document_service.next_document_number(
            org_id=actor.org_id, document_type="BILL", prefix="BILL",
        )

    bill = VendorBill(org_id=actor.org_id, status=BILL_STATUS_DRAFT, **patch)
    db.session.add(bill)
    db.session.flush()

    log_event(actor.org_id, ENTITY_VENDOR_BILL, bill.id, WORKFLOW.event_type("created"), {
        "billNumber": bill.bill_number,
        "amount": bill.amount,
        "poId": bill.po_id,
        "projectId": bill.project_id,
        "actorId": actor.user_id,
    })
    if po is not None:
        _log_linked(bill, po, actor)

    db.session.commit()
    return bill


@service_result
def get_bill(actor: Actor, bill_id: int) -> VendorBill:
    return WORKFLOW.load(bill_id, actor.org_id)


@service_result
def list_bills(actor: Actor, *, po_id: Any = None, **filters: Any) -> dict:
    return document_service.list_documents(
        VendorBill,
        actor.org_id,
        party_attr="vendor_name",
        date_attr="bill_date",
        link_attr="po_id",
        link_id=po_id,
        **filters,
    )


@service_result
def update_bill(actor: Actor, bill_id: int, payload: dict) -> VendorBill:
    linked: list[PurchaseOrder] = []

    def _patch(bill: VendorBill) -> dict:
        patch = document_service.clean_payload(VendorBill, payload, POLICY, actor.org_id, partial=True)
        if patch.get("bill_number"):
            document_service.ensure_unique_number(
                VendorBill, "bill_number", patch["bill_number"], actor.org_id, exclude_id=bill.id,
            )
        if patch.get("po_id") is not None and patch["po_id"] != bill.po_id:
            linked.append(_require_purchase_order(patch["po_id"], actor.org_id))
        return patch

    def _after(bill: VendorBill, actor: Actor) -> None:
        if linked:
            _log_linked(bill, linked[0], actor)

    return WORKFLOW.update(bill_id, actor, _patch, after=_after)


def _stamp_received(bill: VendorBill, actor: Actor) -> None:
    bill.received_at = utcnow()


def _stamp_paid(bill: VendorBill, actor: Actor) -> None:
    bill.paid_at = utcnow()


def _stamp_cancelled(bill: VendorBill, actor: Actor) -> None:
    bill.cancelled_at = utcnow()


def _advance_purchase_order(bill: VendorBill, actor: Actor) -> None:
    """Mark the linked purchase order billed once all of its live bills are paid."""
    document_service.advance_parent_when_settled(
        bill,
        actor,
        link_attr="po_id",
        parent_workflow=purchase_order_service.WORKFLOW,
        parent_target=purchase_order_service.PO_STATUS_BILLED,
        settled_status=BILL_STATUS_PAID,
        trigger_key="triggeredByBill",
    )


@service_result
def receive_bill(actor: Actor, bill_id: int) -> VendorBill:
    return WORKFLOW.transition(bill_id, actor, BILL_STATUS_RECEIVED, apply=_stamp_received)


@service_result
def mark_bill_paid(actor: Actor, bill_id: int) -> VendorBill:
    return WORKFLOW.transition(
        bill_id, actor, BILL_STATUS_PAID,
        apply=_stamp_paid,
        after=_advance_purchase_order,
    )


@service_result
def cancel_bill(actor: Actor, bill_id: int, reason: str | None = None) -> VendorBill:
    return WORKFLOW.transition(
        bill_id, actor, BILL_STATUS_CANCELLED,
        apply=_stamp_cancelled,
        payload={"reason": reason} if reason else None,
    )


@service_result
def delete_bill(actor: Actor, bill_id: int) -> VendorBill:
    return WORKFLOW.soft_delete(bill_id, actor)
