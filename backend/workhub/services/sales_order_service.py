# workhub/services/sales_order_service.py
"""
Sales order service.

LIFECYCLE:
1. draft: created, editable
2. confirmed: accepted by the customer
3. invoiced: fully invoiced (manually, or automatically once every linked
   invoice is paid)
4. cancelled: abandoned from draft or confirmed

Only admin and finance roles may create, edit, delete or transition.
"""
from __future__ import annotations

from typing import Any

from workhub.errors import service_result
from workhub.extensions import db
from workhub.models import SalesOrder
from workhub.time_utils import utcnow
from workhub.validation import ModelValidationPolicy
from workhub.services import document_service
from workhub.services.event_service import ENTITY_SALES_ORDER, log_event
from workhub.services.tenant_service import Actor
from workhub.services.workflow import ACTION_CREATE, STATUS_DRAFT, Workflow


SO_STATUS_DRAFT = STATUS_DRAFT
SO_STATUS_CONFIRMED = "confirmed"
SO_STATUS_INVOICED = "invoiced"
SO_STATUS_CANCELLED = "cancelled"

TRANSITIONS = document_service.terminal_table({
    SO_STATUS_DRAFT: {SO_STATUS_CONFIRMED, SO_STATUS_CANCELLED},
    SO_STATUS_CONFIRMED: {SO_STATUS_INVOICED, SO_STATUS_CANCELLED},
})

WORKFLOW = Workflow(
    entity_type=ENTITY_SALES_ORDER,
    label="sales order",
    model=SalesOrder,
    event_prefix="SALES_ORDER",
    transitions=TRANSITIONS,
    guards=document_service.finance_guards(SO_STATUS_CONFIRMED, SO_STATUS_INVOICED, SO_STATUS_CANCELLED),
)

POLICY = ModelValidationPolicy(
    writable_fields={"so_number", "partner_name", "order_date", "amount", "currency", "project_id", "meta"},
    required_on_create={"partner_name", "order_date", "amount"},
)


@service_result
def create_sales_order(actor: Actor, payload: dict) -> SalesOrder:
    WORKFLOW.check_guard(ACTION_CREATE, actor)
    patch = document_service.clean_payload(SalesOrder, payload, POLICY, actor.org_id, partial=False)

    if patch.get("so_number"):
        document_service.ensure_unique_number(SalesOrder, "so_number", patch["so_number"], actor.org_id)
    else:
        patch["so_number"] = document_service.next_document_number(
            org_id=actor.org_id, document_type="SALES_ORDER", prefix="SO",
        )

    so = SalesOrder(org_id=actor.org_id, status=SO_STATUS_DRAFT, **patch)
    db.session.add(so)
    db.session.flush()

    log_event(actor.org_id, ENTITY_SALES_ORDER, so.id, WORKFLOW.event_type("created"), {
        "soNumber": so.so_number,
        "amount": so.amount,
        "projectId": so.project_id,
        "actorId": actor.user_id,
    })
    db.session.commit()
    return so


@service_result
def get_sales_order(actor: Actor, so_id: int) -> SalesOrder:
    return WORKFLOW.load(so_id, actor.org_id)


@service_result
def list_sales_orders(actor: Actor, **filters: Any) -> dict:
    return document_service.list_documents(
        SalesOrder,
        actor.org_id,
        party_attr="partner_name",
        date_attr="order_date",
        **filters,
    )


@service_result
def update_sales_order(actor: Actor, so_id: int, payload: dict) -> SalesOrder:
    def _patch(so: SalesOrder) -> dict:
        patch = document_service.clean_payload(SalesOrder, payload, POLICY, actor.org_id, partial=True)
        if patch.get("so_number"):
            document_service.ensure_unique_number(SalesOrder, "so_number", patch["so_number"], actor.org_id, exclude_id=so.id)
        return patch

    return WORKFLOW.update(so_id, actor, _patch)


def _stamp_confirmed(so: SalesOrder, actor: Actor) -> None:
    so.confirmed_at = utcnow()


def _stamp_cancelled(so: SalesOrder, actor: Actor) -> None:
    so.cancelled_at = utcnow()


@service_result
def confirm_sales_order(actor: Actor, so_id: int) -> SalesOrder:
    return WORKFLOW.transition(so_id, actor, SO_STATUS_CONFIRMED, apply=_stamp_confirmed)


@service_result
def mark_sales_order_invoiced(actor: Actor, so_id: int) -> SalesOrder:
    return WORKFLOW.transition(so_id, actor, SO_STATUS_INVOICED, payload={"manual": True})


@service_result
def cancel_sales_order(actor: Actor, so_id: int, reason: str | None = None) -> SalesOrder:
    return WORKFLOW.transition(
        so_id, actor, SO_STATUS_CANCELLED,
        apply=_stamp_cancelled,
        payload={"reason": reason} if reason else None,
    )


@service_result
def delete_sales_order(actor: Actor, so_id: int) -> SalesOrder:
    return WORKFLOW.soft_delete(so_id, actor)
