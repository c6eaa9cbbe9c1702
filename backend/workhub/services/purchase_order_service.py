# workhub/services/purchase_order_service.py
"""
Purchase order service.

LIFECYCLE:
1. draft: created, editable
2. confirmed: accepted by the vendor
3. billed: fully billed (manually, or automatically once every linked
   vendor bill is paid)
4. cancelled: abandoned from draft or confirmed

Only admin and finance roles may create, edit, delete or transition.
"""
from __future__ import annotations

from typing import Any

from workhub.errors import service_result
from workhub.extensions import db
from workhub.models import PurchaseOrder
from workhub.time_utils import utcnow
from workhub.validation import ModelValidationPolicy
from workhub.services import document_service
from workhub.services.event_service import ENTITY_PURCHASE_ORDER, log_event
from workhub.services.tenant_service import Actor
from workhub.services.workflow import ACTION_CREATE, STATUS_DRAFT, Workflow


PO_STATUS_DRAFT = STATUS_DRAFT
PO_STATUS_CONFIRMED = "confirmed"
PO_STATUS_BILLED = "billed"
PO_STATUS_CANCELLED = "cancelled"

TRANSITIONS = document_service.terminal_table({
    PO_STATUS_DRAFT: {PO_STATUS_CONFIRMED, PO_STATUS_CANCELLED},
    PO_STATUS_CONFIRMED: {PO_STATUS_BILLED, PO_STATUS_CANCELLED},
})

WORKFLOW = Workflow(
    entity_type=ENTITY_PURCHASE_ORDER,
    label="purchase order",
    model=PurchaseOrder,
    event_prefix="PURCHASE_ORDER",
    transitions=TRANSITIONS,
    guards=document_service.finance_guards(PO_STATUS_CONFIRMED, PO_STATUS_BILLED, PO_STATUS_CANCELLED),
)

POLICY = ModelValidationPolicy(
    writable_fields={"po_number", "vendor_name", "order_date", "amount", "currency", "project_id", "meta"},
    required_on_create={"vendor_name", "order_date", "amount"},
)


@service_result
def create_purchase_order(actor: Actor, payload: dict) -> PurchaseOrder:
    WORKFLOW.check_guard(ACTION_CREATE, actor)
    patch = document_service.clean_payload(PurchaseOrder, payload, POLICY, actor.org_id, partial=False)

    if patch.get("po_number"):
        document_service.ensure_unique_number(PurchaseOrder, "po_number", patch["po_number"], actor.org_id)
    else:
        patch["po_number"] = document_service.next_document_number(
            org_id=actor.org_id, document_type="PURCHASE_ORDER", prefix="PO",
        )

    po = PurchaseOrder(org_id=actor.org_id, status=PO_STATUS_DRAFT, **patch)
    db.session.add(po)
    db.session.flush()

    log_event(actor.org_id, ENTITY_PURCHASE_ORDER, po.id, WORKFLOW.event_type("created"), {
        "poNumber": po.po_number,
        "amount": po.amount,
        "projectId": po.project_id,
        "actorId": actor.user_id,
    })
    db.session.commit()
    return po


@service_result
def get_purchase_order(actor: Actor, po_id: int) -> PurchaseOrder:
    return WORKFLOW.load(po_id, actor.org_id)


@service_result
def list_purchase_orders(actor: Actor, **filters: Any) -> dict:
    return document_service.list_documents(
        PurchaseOrder,
        actor.org_id,
        party_attr="vendor_name",
        date_attr="order_date",
        **filters,
    )


@service_result
def update_purchase_order(actor: Actor, po_id: int, payload: dict) -> PurchaseOrder:
    def _patch(po: PurchaseOrder) -> dict:
        patch = document_service.clean_payload(PurchaseOrder, payload, POLICY, actor.org_id, partial=True)
        if patch.get("po_number"):
            document_service.ensure_unique_number(PurchaseOrder, "po_number", patch["po_number"], actor.org_id, exclude_id=po.id)
        return patch

    return WORKFLOW.update(po_id, actor, _patch)


def _stamp_confirmed(po: PurchaseOrder, actor: Actor) -> None:
    po.confirmed_at = utcnow()


def _stamp_cancelled(po: PurchaseOrder, actor: Actor) -> None:
    po.cancelled_at = utcnow()


@service_result
def confirm_purchase_order(actor: Actor, po_id: int) -> PurchaseOrder:
    return WORKFLOW.transition(po_id, actor, PO_STATUS_CONFIRMED, apply=_stamp_confirmed)


@service_result
def mark_purchase_order_billed(actor: Actor, po_id: int) -> PurchaseOrder:
    return WORKFLOW.transition(po_id, actor, PO_STATUS_BILLED, payload={"manual": True})


@service_result
def cancel_purchase_order(actor: Actor, po_id: int, reason: str | None = None) -> PurchaseOrder:
    return WORKFLOW.transition(
        po_id, actor, PO_STATUS_CANCELLED,
        apply=_stamp_cancelled,
        payload={"reason": reason} if reason else None,
    )


@service_result
def delete_purchase_order(actor: Actor, po_id: int) -> PurchaseOrder:
    return WORKFLOW.soft_delete(po_id, actor)
