# Overview: Flask API routes for expense operations; parses input and returns JSON responses.

"""
Expense Routes

Any member may create expenses and see their own; managers, finance and
admins see every expense of the organization. Lifecycle guards (owner-only
submit, approver roles, payer roles, paid expenses undeletable) are enforced
by expense_service.
"""

from flask import Blueprint, request

from ..decorators import require_auth
from ..services import expense_service
from ..services.tenant_service import get_current_actor
from .common import json_body, result_response


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")

FILTERS = (
    "status", "project_id", "user_id", "billable", "min_amount", "max_amount",
    "date_from", "date_to",
)


def _filters(*extra: str) -> dict:
    keys = FILTERS + extra
    return {key: request.args.get(key) for key in keys if request.args.get(key) not in (None, "")}


@expenses_bp.get("")
@require_auth
def list_expenses_route():
    """List expenses, newest first, with filters and pagination."""
    return result_response(expense_service.list_expenses(get_current_actor(), **_filters("page", "page_size")))


@expenses_bp.post("")
@require_auth
def create_expense_route():
    """
    Create a draft expense owned by the caller.

    Request body:
    {
        "amount": "42.50",        // required, > 0
        "currency": "USD",
        "category": "travel",
        "expense_date": "2026-03-01",
        "note": "...",
        "billable": true,
        "receipt_url": "...",
        "project_id": 1
    }
    """
    return result_response(expense_service.create_expense(get_current_actor(), json_body()), status=201)


@expenses_bp.get("/stats")
@require_auth
def expense_stats_route():
    return result_response(expense_service.get_expense_stats(get_current_actor(), **_filters()))


@expenses_bp.get("/<int:expense_id>")
@require_auth
def get_expense_route(expense_id: int):
    return result_response(expense_service.get_expense(get_current_actor(), expense_id))


@expenses_bp.patch("/<int:expense_id>")
@require_auth
def update_expense_route(expense_id: int):
    return result_response(expense_service.update_expense(get_current_actor(), expense_id, json_body()))


@expenses_bp.delete("/<int:expense_id>")
@require_auth
def delete_expense_route(expense_id: int):
    return result_response(expense_service.delete_expense(get_current_actor(), expense_id))


@expenses_bp.post("/<int:expense_id>/submit")
@require_auth
def submit_expense_route(expense_id: int):
    return result_response(expense_service.submit_expense(get_current_actor(), expense_id))


@expenses_bp.post("/<int:expense_id>/approve")
@require_auth
def approve_expense_route(expense_id: int):
    return result_response(expense_service.approve_expense(get_current_actor(), expense_id))


@expenses_bp.post("/<int:expense_id>/reject")
@require_auth
def reject_expense_route(expense_id: int):
    reason = json_body().get("reason")
    return result_response(expense_service.reject_expense(get_current_actor(), expense_id, reason=reason))


@expenses_bp.post("/<int:expense_id>/pay")
@require_auth
def pay_expense_route(expense_id: int):
    return result_response(expense_service.pay_expense(get_current_actor(), expense_id))
