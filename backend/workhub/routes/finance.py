# Overview: Flask API routes for finance documents; parses input and returns JSON responses.

"""
Finance Document Routes

Sales orders, purchase orders, customer invoices and vendor bills share one
shape under /api/finance/<kind>:

    GET    /                 list (status, project_id, search, date_from,
                             date_to, page, page_size, plus so_id / po_id)
    POST   /                 create
    GET    /<id>             read
    PATCH  /<id>             edit (draft only)
    DELETE /<id>             soft delete
    POST   /<id>/<action>    status transition

Role guards live in the services; results map onto status codes through
ServiceResult.
"""

from flask import Blueprint, request

from ..decorators import require_auth
from ..services import bill_service, invoice_service, purchase_order_service, sales_order_service
from ..services.tenant_service import get_current_actor
from .common import json_body, result_response


finance_bp = Blueprint("finance", __name__, url_prefix="/api/finance")

LIST_FILTERS = ("status", "project_id", "search", "date_from", "date_to", "page", "page_size")


def _register(kind: str, *, create, get, list_, update, delete, actions, extra_filters=()):
    """Attach the list/create/read/edit/delete/transition routes for one document kind."""
    endpoint = kind.replace("-", "_")
    filters = LIST_FILTERS + tuple(extra_filters)

    @require_auth
    def collection():
        actor = get_current_actor()
        if request.method == "POST":
            return result_response(create(actor, json_body()), status=201)
        params = {key: request.args.get(key) for key in filters if request.args.get(key) not in (None, "")}
        return result_response(list_(actor, **params))

    @require_auth
    def item(doc_id: int):
        actor = get_current_actor()
        if request.method == "PATCH":
            return result_response(update(actor, doc_id, json_body()))
        if request.method == "DELETE":
            return result_response(delete(actor, doc_id))
        return result_response(get(actor, doc_id))

    @require_auth
    def transition(doc_id: int, action: str):
        handler = actions.get(action)
        if handler is None:
            return {"error": f"Unknown action: {action}", "code": "not_found"}, 404
        actor = get_current_actor()
        if action == "cancel":
            return result_response(handler(actor, doc_id, reason=json_body().get("reason")))
        return result_response(handler(actor, doc_id))

    finance_bp.add_url_rule(f"/{kind}", f"{endpoint}_collection", collection, methods=["GET", "POST"])
    finance_bp.add_url_rule(f"/{kind}/<int:doc_id>", f"{endpoint}_item", item, methods=["GET", "PATCH", "DELETE"])
    finance_bp.add_url_rule(f"/{kind}/<int:doc_id>/<action>", f"{endpoint}_transition", transition, methods=["POST"])


_register(
    "sales-orders",
    create=sales_order_service.create_sales_order,
    get=sales_order_service.get_sales_order,
    list_=sales_order_service.list_sales_orders,
    update=sales_order_service.update_sales_order,
    delete=sales_order_service.delete_sales_order,
    actions={
        "confirm": sales_order_service.confirm_sales_order,
        "invoice": sales_order_service.mark_sales_order_invoiced,
        "cancel": sales_order_service.cancel_sales_order,
    },
)

_register(
    "purchase-orders",
    create=purchase_order_service.create_purchase_order,
    get=purchase_order_service.get_purchase_order,
    list_=purchase_order_service.list_purchase_orders,
    update=purchase_order_service.update_purchase_order,
    delete=purchase_order_service.delete_purchase_order,
    actions={
        "confirm": purchase_order_service.confirm_purchase_order,
        "bill": purchase_order_service.mark_purchase_order_billed,
        "cancel": purchase_order_service.cancel_purchase_order,
    },
)

_register(
    "customer-invoices",
    create=invoice_service.create_invoice,
    get=invoice_service.get_invoice,
    list_=invoice_service.list_invoices,
    update=invoice_service.update_invoice,
    delete=invoice_service.delete_invoice,
    actions={
        "send": invoice_service.send_invoice,
        "pay": invoice_service.mark_invoice_paid,
        "cancel": invoice_service.cancel_invoice,
    },
    extra_filters=("so_id",),
)

_register(
    "vendor-bills",
    create=bill_service.create_bill,
    get=bill_service.get_bill,
    list_=bill_service.list_bills,
    update=bill_service.update_bill,
    delete=bill_service.delete_bill,
    actions={
        "receive": bill_service.receive_bill,
        "pay": bill_service.mark_bill_paid,
        "cancel": bill_service.cancel_bill,
    },
    extra_filters=("po_id",),
)
