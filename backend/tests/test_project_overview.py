# Overview: Pytest coverage for project overview metrics, caching and health scoring.

from datetime import date
from decimal import Decimal

import pytest

from workhub.errors import NotFoundError
from workhub.extensions import db
from workhub.models import (
    Attachment,
    CustomerInvoice,
    Expense,
    Project,
    ProjectMember,
    Task,
    Timesheet,
    VendorBill,
)
from workhub.services import project_overview_service as overview_service
from workhub.services.cache_service import get_cache
from workhub.time_utils import utcnow

DAY = date(2026, 6, 1)


@pytest.fixture
def populated(org_a, users_a, project_a):
    """
    Project A with a known mix of records.

    revenue 4000 (sent + paid invoices), cost 2000 (received bill 1500 +
    approved expense 500), 12 hours logged of which 8 billable and approved.
    """
    member = users_a["member"]
    users_a["finance"].is_active = False

    def task(status, estimate="10.00"):
        return Task(org_id=org_a.id, project_id=project_a.id, title=status, status=status,
                    estimate_hours=Decimal(estimate))

    def invoice(number, status, amount):
        return CustomerInvoice(org_id=org_a.id, project_id=project_a.id, invoice_number=number,
                               partner_name="Acme", invoice_date=DAY, status=status, amount=Decimal(amount))

    def bill(number, status, amount):
        return VendorBill(org_id=org_a.id, project_id=project_a.id, bill_number=number,
                          vendor_name="Parts", bill_date=DAY, status=status, amount=Decimal(amount))

    db.session.add_all([
        task("completed"), task("completed"), task("in_progress"), task("new"),
        Timesheet(org_id=org_a.id, project_id=project_a.id, user_id=member.id, work_date=DAY,
                  duration_hours=Decimal("8.00"), billable=True, status="approved"),
        Timesheet(org_id=org_a.id, project_id=project_a.id, user_id=member.id, work_date=DAY,
                  duration_hours=Decimal("4.00"), billable=False, status="draft"),
        invoice("INV-1", "paid", "3000.00"),
        invoice("INV-2", "sent", "1000.00"),
        invoice("INV-3", "draft", "500.00"),
        bill("B-1", "received", "1500.00"),
        bill("B-2", "draft", "700.00"),
        Expense(org_id=org_a.id, project_id=project_a.id, user_id=member.id, amount=Decimal("500.00"),
                status="approved"),
        Expense(org_id=org_a.id, project_id=project_a.id, user_id=member.id, amount=Decimal("200.00")),
        ProjectMember(org_id=org_a.id, project_id=project_a.id, user_id=member.id),
        ProjectMember(org_id=org_a.id, project_id=project_a.id, user_id=users_a["finance"].id),
        Attachment(org_id=org_a.id, project_id=project_a.id, owner_type="project", owner_id=project_a.id,
                   file_name="plan.pdf", file_url="https://files.example/plan.pdf"),
    ])
    db.session.commit()
    return project_a


class TestComputeOverview:
    def test_metrics(self, org_a, populated):
        overview = overview_service.get_overview(populated.id, org_a.id)["overview"]

        assert overview["total_tasks"] == 4
        assert overview["completed_tasks"] == 2
        assert overview["in_progress_tasks"] == 1
        assert overview["not_started_tasks"] == 1
        assert overview["blocked_tasks"] == 0
        assert overview["task_completion_rate"] == 50.0

        assert overview["hours_logged"] == 12.0
        assert overview["billable_hours"] == 8.0
        assert overview["non_billable_hours"] == 4.0
        assert overview["approved_hours"] == 8.0
        assert overview["pending_hours"] == 4.0

        assert overview["revenue"] == "4000.00"
        assert overview["expenses"] == "500.00"
        assert overview["cost"] == "2000.00"
        assert overview["profit"] == "2000.00"
        assert overview["profit_margin"] == 50.0

        assert overview["budget"] == "10000.00"
        assert overview["budget_utilization"] == 20.0
        assert overview["budget_remaining"] == "8000.00"

        assert overview["estimated_hours"] == 40.0
        assert overview["hours_variance"] == 28.0
        assert overview["progress_pct"] == 0.0

        assert overview["total_members"] == 2
        assert overview["active_members"] == 1
        assert overview["total_invoices"] == 3
        assert overview["paid_invoices"] == 1
        assert overview["total_bills"] == 2
        assert overview["paid_bills"] == 0
        assert overview["total_attachments"] == 1

    def test_empty_project_is_all_zero(self, org_a, project_a):
        overview = overview_service.get_overview(project_a.id, org_a.id)["overview"]

        assert overview["total_tasks"] == 0
        assert overview["task_completion_rate"] == 0.0
        assert overview["revenue"] == "0.00"
        assert overview["profit_margin"] == 0.0
        assert overview["budget_utilization"] == 0.0

    def test_project_without_budget(self, org_a):
        project = Project(org_id=org_a.id, name="Internal")
        db.session.add(project)
        db.session.commit()

        overview = overview_service.get_overview(project.id, org_a.id)["overview"]
        assert overview["budget"] is None
        assert overview["budget_remaining"] == "0.00"

    def test_rollups_are_refreshed(self, org_a, populated):
        overview_service.get_overview(populated.id, org_a.id)

        project = db.session.get(Project, populated.id)
        assert project.cached_revenue == Decimal("4000.00")
        assert project.cached_cost == Decimal("2000.00")
        assert project.cached_profit == Decimal("2000.00")
        assert project.cached_hours_logged == Decimal("12.00")
        assert project.rollups_refreshed_at is not None

    def test_other_org_cannot_read(self, org_b, populated):
        with pytest.raises(NotFoundError):
            overview_service.get_overview(populated.id, org_b.id)

    def test_deleted_rows_excluded(self, org_a, populated):
        invoice = db.session.query(CustomerInvoice).filter_by(invoice_number="INV-1").one()
        invoice.deleted_at = utcnow()
        db.session.commit()

        overview = overview_service.get_overview(populated.id, org_a.id)["overview"]
        assert overview["revenue"] == "1000.00"
        assert overview["total_invoices"] == 2


class TestOverviewCache:
    def test_second_call_is_cached(self, org_a, populated):
        first = overview_service.get_overview(populated.id, org_a.id)
        second = overview_service.get_overview(populated.id, org_a.id)

        assert first["cached"] is False
        assert second["cached"] is True
        assert second["overview"] == first["overview"]
        assert second["computed_at"] == first["computed_at"]
        assert first["computed_at"].endswith("Z")

    def test_force_refresh_recomputes(self, org_a, populated):
        overview_service.get_overview(populated.id, org_a.id)
        refreshed = overview_service.get_overview(populated.id, org_a.id, force_refresh=True)
        assert refreshed["cached"] is False
        assert get_cache().get_stats(org_a.id)["computations"] == 2

    def test_persisted_tier_serves_after_memory_loss(self, org_a, populated):
        overview_service.get_overview(populated.id, org_a.id)
        get_cache().clear()

        again = overview_service.get_overview(populated.id, org_a.id)
        assert again["cached"] is True
        assert get_cache().get_stats()["db_hits"] == 1

    def test_committed_write_invalidates(self, org_a, populated):
        overview_service.get_overview(populated.id, org_a.id)

        db.session.add(Task(org_id=org_a.id, project_id=populated.id, title="New work"))
        db.session.commit()

        after = overview_service.get_overview(populated.id, org_a.id)
        assert after["cached"] is False
        assert after["overview"]["total_tasks"] == 5

    def test_progress_edit_invalidates(self, org_a, populated):
        overview_service.get_overview(populated.id, org_a.id)

        db.session.get(Project, populated.id).progress_pct = Decimal("75.00")
        db.session.commit()

        after = overview_service.get_overview(populated.id, org_a.id)
        assert after["cached"] is False
        assert after["overview"]["progress_pct"] == 75.0

    def test_rolled_back_write_keeps_cache(self, org_a, populated):
        overview_service.get_overview(populated.id, org_a.id)

        db.session.add(Task(org_id=org_a.id, project_id=populated.id, title="Abandoned"))
        db.session.flush()
        db.session.rollback()

        assert overview_service.get_overview(populated.id, org_a.id)["cached"] is True

    def test_other_org_write_does_not_invalidate(self, org_a, org_b, populated, project_b):
        overview_service.get_overview(populated.id, org_a.id)

        db.session.add(Task(org_id=org_b.id, project_id=project_b.id, title="Elsewhere"))
        db.session.commit()

        assert overview_service.get_overview(populated.id, org_a.id)["cached"] is True

    def test_manual_invalidation(self, org_a, populated):
        overview_service.get_overview(populated.id, org_a.id)
        removed = overview_service.invalidate_cache(org_a.id)

        assert removed == 1
        assert overview_service.get_overview(populated.id, org_a.id)["cached"] is False

    def test_projects_cached_separately(self, org_a, populated):
        other = Project(org_id=org_a.id, name="Second")
        db.session.add(other)
        db.session.commit()

        overview_service.get_overview(populated.id, org_a.id)
        second = overview_service.get_overview(other.id, org_a.id)
        assert second["cached"] is False
        assert second["overview"]["total_tasks"] == 0


def _overview(**overrides):
    base = {
        "budget": "10000.00",
        "budget_utilization": 20.0,
        "task_completion_rate": 50.0,
        "progress_pct": 40.0,
        "hours_variance": 5.0,
    }
    base.update(overrides)
    return base


class TestHealthScore:
    def test_healthy_project(self):
        health = overview_service.score_health(_overview())

        assert health["indicators"] == {
            "budget_health": 100,
            "schedule_health": 100,
            "completion_health": 50,
        }
        # 0.4 * 100 + 0.3 * 100 + 0.3 * 50
        assert health["health_score"] == 85
        assert health["alerts"] == []

    def test_over_budget(self):
        health = overview_service.score_health(_overview(budget_utilization=112.5))

        assert health["indicators"]["budget_health"] == 0
        assert "Over budget by 12.5%" in health["alerts"]

    def test_budget_pressure_between_90_and_100(self):
        health = overview_service.score_health(_overview(budget_utilization=95.0))

        # 100 - (95 - 80) * 5
        assert health["indicators"]["budget_health"] == 25
        assert health["alerts"] == ["Budget utilization above 90%"]

    def test_fully_spent_budget_has_no_overrun_alert(self):
        health = overview_service.score_health(_overview(budget_utilization=100.0))
        assert health["indicators"]["budget_health"] == 0
        assert health["alerts"] == []

    def test_schedule_lag(self):
        health = overview_service.score_health(_overview(task_completion_rate=80.0, progress_pct=50.0))

        assert health["indicators"]["schedule_health"] == 60
        assert "Progress is behind task completion" in health["alerts"]

    def test_hours_overrun(self):
        health = overview_service.score_health(_overview(hours_variance=-12.5))
        assert "Over estimated hours by 12.5h" in health["alerts"]

    def test_small_hours_overrun_is_tolerated(self):
        assert overview_service.score_health(_overview(hours_variance=-10.0))["alerts"] == []

    def test_no_budget_scores_full_budget_health(self):
        health = overview_service.score_health(_overview(budget=None, budget_utilization=0.0))
        assert health["indicators"]["budget_health"] == 100

    def test_project_health_uses_overview(self, org_a, populated):
        health = overview_service.get_project_health(populated.id, org_a.id)

        assert health["project_id"] == populated.id
        # completion 50, progress 0 -> schedule lag
        assert health["indicators"]["schedule_health"] == 60
        assert health["health_score"] == 73
        assert health["alerts"] == ["Progress is behind task completion"]
