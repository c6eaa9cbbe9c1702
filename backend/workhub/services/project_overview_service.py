# Overview: Project dashboard metrics with cache-aside, roll-up refresh and a health score.

"""
Project Overview

get_overview() consults the analytics cache (cache_type "project_summary",
scoped by project id) and on a miss runs one concurrent batch of
aggregations, derives the dashboard metrics and refreshes the project's
denormalized roll-up columns.

Output conventions:
- money values are decimal strings with two places
- hours, percentages and rates are numbers rounded to two places
- counts are integers

Cost counts submitted/approved/paid expenses plus received/paid bills;
revenue counts sent/paid invoices.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import (
    Attachment,
    CustomerInvoice,
    Expense,
    Project,
    ProjectMember,
    PurchaseOrder,
    SalesOrder,
    Task,
    Timesheet,
    User,
    VendorBill,
)
from ..models.mixins import money_str
from ..models.projects import TASK_STATUS_COMPLETED
from ..time_utils import to_utc_z, utcnow
from .cache_service import CACHE_TYPE_PROJECT_SUMMARY, AnalyticsCacheService, get_cache
from .concurrency import run_concurrently
from .project_links_service import OWNER_TYPE_PROJECT
from .tenant_service import require_project_in_org, scoped_query

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")

REVENUE_INVOICE_STATUSES = ("sent", "paid")
COST_BILL_STATUSES = ("received", "paid")
COST_EXPENSE_STATUSES = ("submitted", "approved", "paid")
APPROVED_TIMESHEET_STATUS = "approved"


def _dec(value: Any) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _round(value: Decimal) -> float:
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))


def _pct(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return part / whole * 100


# --- aggregations (each returns plain data) ---------------------------------


def _aggregations(project_id: int, org_id: int) -> dict:
    def _status_counts(model):
        def _run() -> dict:
            rows = (
                scoped_query(model, org_id)
                .filter(model.project_id == project_id)
                .with_entities(model.status, func.count(model.id))
                .group_by(model.status)
                .all()
            )
            return {status: count for status, count in rows}
        return _run

    def _hours(**criteria):
        def _run() -> Decimal:
            query = scoped_query(Timesheet, org_id).filter(Timesheet.project_id == project_id)
            if "billable" in criteria:
                query = query.filter(Timesheet.billable.is_(criteria["billable"]))
            if "status" in criteria:
                query = query.filter(Timesheet.status == criteria["status"])
            return _dec(query.with_entities(func.sum(Timesheet.duration_hours)).scalar())
        return _run

    def _amount(model, statuses):
        def _run() -> Decimal:
            return _dec(
                scoped_query(model, org_id)
                .filter(model.project_id == project_id, model.status.in_(statuses))
                .with_entities(func.sum(model.amount))
                .scalar()
            )
        return _run

    def _count(model):
        def _run() -> int:
            return scoped_query(model, org_id).filter(model.project_id == project_id).count()
        return _run

    def _attachments() -> int:
        return (
            db.session.query(Attachment)
            .filter(
                Attachment.org_id == org_id,
                Attachment.owner_type == OWNER_TYPE_PROJECT,
                Attachment.owner_id == project_id,
            )
            .count()
        )

    def _members() -> dict:
        rows = (
            db.session.query(User.is_active, func.count(ProjectMember.id))
            .join(User, User.id == ProjectMember.user_id)
            .filter(ProjectMember.org_id == org_id, ProjectMember.project_id == project_id)
            .group_by(User.is_active)
            .all()
        )
        total = sum(count for _, count in rows)
        active = sum(count for is_active, count in rows if is_active)
        return {"total": total, "active": active}

    def _estimates() -> dict:
        estimate, logged = (
            scoped_query(Task, org_id)
            .filter(Task.project_id == project_id)
            .with_entities(func.sum(Task.estimate_hours), func.sum(Task.hours_logged))
            .one()
        )
        return {"estimate": _dec(estimate), "logged": _dec(logged)}

    def _project() -> dict:
        budget, progress = (
            db.session.query(Project.budget, Project.progress_pct)
            .filter(Project.id == project_id, Project.org_id == org_id)
            .one()
        )
        return {"budget": budget, "progress_pct": _dec(progress)}

    return run_concurrently({
        "task_counts": _status_counts(Task),
        "hours_total": _hours(),
        "hours_billable": _hours(billable=True),
        "hours_approved": _hours(status=APPROVED_TIMESHEET_STATUS),
        "expenses": _amount(Expense, COST_EXPENSE_STATUSES),
        "revenue": _amount(CustomerInvoice, REVENUE_INVOICE_STATUSES),
        "bills": _amount(VendorBill, COST_BILL_STATUSES),
        "invoice_counts": _status_counts(CustomerInvoice),
        "bill_counts": _status_counts(VendorBill),
        "sales_orders": _count(SalesOrder),
        "purchase_orders": _count(PurchaseOrder),
        "attachments": _attachments,
        "members": _members,
        "estimates": _estimates,
        "project": _project,
    })


def compute_overview(project_id: int, org_id: int) -> dict:
    """Run the aggregation batch, refresh the project's roll-ups and return the metrics."""
    agg = _aggregations(project_id, org_id)

    task_counts = agg["task_counts"]
    total_tasks = sum(task_counts.values())
    completed_tasks = task_counts.get(TASK_STATUS_COMPLETED, 0)
    completion_rate = _pct(Decimal(completed_tasks), Decimal(total_tasks))

    hours_logged = agg["hours_total"]
    billable_hours = agg["hours_billable"]
    approved_hours = agg["hours_approved"]

    expenses = agg["expenses"]
    revenue = agg["revenue"]
    cost = expenses + agg["bills"]
    profit = revenue - cost
    profit_margin = _pct(profit, revenue) if revenue > 0 else ZERO

    budget = agg["project"]["budget"]
    budget_value = _dec(budget)
    utilization = _pct(cost, budget_value) if budget_value > 0 else ZERO
    remaining = budget_value - cost if budget is not None else ZERO

    estimated_hours = agg["estimates"]["estimate"]
    progress_pct = agg["project"]["progress_pct"]

    invoice_counts = agg["invoice_counts"]
    bill_counts = agg["bill_counts"]

    overview = {
        "total_tasks": total_tasks,
        "completed_tasks": completed_tasks,
        "in_progress_tasks": task_counts.get("in_progress", 0),
        "not_started_tasks": task_counts.get("new", 0),
        "blocked_tasks": task_counts.get("blocked", 0),
        "task_completion_rate": _round(completion_rate),

        "hours_logged": _round(hours_logged),
        "billable_hours": _round(billable_hours),
        "non_billable_hours": _round(hours_logged - billable_hours),
        "approved_hours": _round(approved_hours),
        "pending_hours": _round(hours_logged - approved_hours),

        "expenses": money_str(expenses),
        "revenue": money_str(revenue),
        "cost": money_str(cost),
        "profit": money_str(profit),
        "profit_margin": _round(profit_margin),

        "budget": money_str(budget),
        "budget_utilization": _round(utilization),
        "budget_remaining": money_str(remaining),

        "progress_pct": _round(progress_pct),
        "estimated_hours": _round(estimated_hours),
        "hours_variance": _round(estimated_hours - hours_logged),

        "total_members": agg["members"]["total"],
        "active_members": agg["members"]["active"],

        "total_invoices": sum(invoice_counts.values()),
        "paid_invoices": invoice_counts.get("paid", 0),
        "total_bills": sum(bill_counts.values()),
        "paid_bills": bill_counts.get("paid", 0),
        "total_sales_orders": agg["sales_orders"],
        "total_purchase_orders": agg["purchase_orders"],
        "total_attachments": agg["attachments"],
    }

    refresh_rollups(project_id, org_id, hours_logged=hours_logged, cost=cost, revenue=revenue)
    return overview


def refresh_rollups(project_id: int, org_id: int, *, hours_logged: Decimal, cost: Decimal, revenue: Decimal) -> Project:
    """Write the denormalized roll-up columns; the caller commits."""
    project = require_project_in_org(project_id, org_id)
    project.cached_hours_logged = hours_logged.quantize(CENT)
    project.cached_cost = cost.quantize(CENT)
    project.cached_revenue = revenue.quantize(CENT)
    project.cached_profit = (revenue - cost).quantize(CENT)
    project.rollups_refreshed_at = utcnow()
    db.session.flush()
    return project


# --- public API -----------------------------------------------------------------


def get_overview(
    project_id: int,
    org_id: int,
    *,
    force_refresh: bool = False,
    cache: Optional[AnalyticsCacheService] = None,
) -> dict:
    """
    Project dashboard metrics, served cache-aside.

    Returns {project_id, overview, computed_at, cached}. Raises NotFoundError
    when the project is missing or belongs to another organization.
    """
    require_project_in_org(project_id, org_id)
    cache = cache or get_cache()

    result = cache.get_or_compute(
        org_id,
        CACHE_TYPE_PROJECT_SUMMARY,
        lambda: compute_overview(project_id, org_id),
        scope_key=str(project_id),
        force_refresh=force_refresh,
        memory_ttl_seconds=int(current_app.config.get("OVERVIEW_MEMORY_TTL_SECONDS", 300)),
        db_ttl_seconds=int(current_app.config.get("OVERVIEW_DB_TTL_SECONDS", 600)),
    )

    if not result.cached:
        logger.info("Computed overview for project %s in %sms", project_id, result.compute_duration_ms)

    return {
        "project_id": project_id,
        "overview": result.data,
        "computed_at": to_utc_z(result.computed_at),
        "cached": result.cached,
    }


def invalidate_cache(org_id: int, *, cache: Optional[AnalyticsCacheService] = None) -> int:
    """Drop every project summary cached for the organization."""
    cache = cache or get_cache()
    return cache.invalidate(org_id, CACHE_TYPE_PROJECT_SUMMARY)


def score_health(overview: dict) -> dict:
    """
    Health score from overview metrics.

    budget: 100 up to 80% utilization, then linear down to 0 at 100%; above
    100% it is 0 with an over-budget alert. Projects without a budget score 100.
    schedule: 60 with an alert when progress trails task completion by more
    than 20 points, else 100.
    completion: the task completion rate.
    score = 0.4 * budget + 0.3 * schedule + 0.3 * completion, rounded.
    """
    alerts: list[str] = []
    utilization = Decimal(str(overview["budget_utilization"]))
    completion = Decimal(str(overview["task_completion_rate"]))
    progress = Decimal(str(overview["progress_pct"]))
    variance = Decimal(str(overview["hours_variance"]))
    has_budget = overview["budget"] is not None and Decimal(overview["budget"]) > 0

    budget_health = Decimal(100)
    if has_budget:
        if utilization <= 80:
            budget_health = Decimal(100)
        elif utilization <= 100:
            budget_health = 100 - (utilization - 80) * 5
        else:
            budget_health = ZERO
            alerts.append(f"Over budget by {utilization - 100:.1f}%")

    schedule_health = Decimal(100)
    if progress < completion - 20:
        schedule_health = Decimal(60)
        alerts.append("Progress is behind task completion")

    score = budget_health * Decimal("0.4") + schedule_health * Decimal("0.3") + completion * Decimal("0.3")

    if 90 < utilization < 100:
        alerts.append("Budget utilization above 90%")
    if variance < -10:
        alerts.append(f"Over estimated hours by {abs(variance):.1f}h")

    def _whole(value: Decimal) -> int:
        return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return {
        "health_score": _whole(score),
        "indicators": {
            "budget_health": _whole(budget_health),
            "schedule_health": _whole(schedule_health),
            "completion_health": _whole(completion),
        },
        "alerts": alerts,
    }


def get_project_health(
    project_id: int,
    org_id: int,
    *,
    cache: Optional[AnalyticsCacheService] = None,
) -> dict:
    overview = get_overview(project_id, org_id, cache=cache)
    health = score_health(overview["overview"])
    health["project_id"] = project_id
    return health
