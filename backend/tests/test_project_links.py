# Overview: Pytest coverage for the project links aggregator.

from datetime import date, timedelta
from decimal import Decimal

import pytest

from workhub.errors import NotFoundError
from workhub.extensions import db
from workhub.models import (
    Attachment,
    CustomerInvoice,
    Expense,
    PurchaseOrder,
    SalesOrder,
    Task,
    Timesheet,
    VendorBill,
)
from workhub.services import event_service
from workhub.services.project_links_service import (
    CATEGORIES,
    get_project_links,
    get_project_links_counts,
    parse_include,
)
from workhub.time_utils import utcnow
from workhub.validation import ValidationError


@pytest.fixture
def linked(org_a, users_a, project_a):
    """One project with rows in every category, plus noise that must not show up."""
    member = users_a["member"]
    member.full_name = "Mia Member"
    today = date(2026, 5, 1)

    tasks = [
        Task(org_id=org_a.id, project_id=project_a.id, title=f"Task {i}", assignee_id=member.id)
        for i in range(7)
    ]
    so = SalesOrder(
        org_id=org_a.id, project_id=project_a.id, so_number="SO-9", partner_name="Acme",
        order_date=today, amount=Decimal("100.00"),
    )
    po = PurchaseOrder(
        org_id=org_a.id, project_id=project_a.id, po_number="PO-9", vendor_name="Parts",
        order_date=today, amount=Decimal("50.00"),
    )
    db.session.add_all(tasks + [so, po])
    db.session.flush()

    db.session.add_all([
        Timesheet(
            org_id=org_a.id, project_id=project_a.id, user_id=member.id,
            work_date=today, duration_hours=Decimal("3.50"),
        ),
        CustomerInvoice(
            org_id=org_a.id, project_id=project_a.id, so_id=so.id, invoice_number="INV-9",
            partner_name="Acme", invoice_date=today, amount=Decimal("100.00"),
        ),
        VendorBill(
            org_id=org_a.id, project_id=project_a.id, po_id=po.id, bill_number="B-9",
            vendor_name="Parts", bill_date=today, amount=Decimal("50.00"),
        ),
        Expense(org_id=org_a.id, project_id=project_a.id, user_id=member.id, amount=Decimal("12.00")),
        Attachment(
            org_id=org_a.id, project_id=project_a.id, owner_type="project", owner_id=project_a.id,
            file_name="brief.pdf", file_url="https://files.example/brief.pdf", uploaded_by=member.id,
        ),
        # Attached to a task of the project, not to the project itself
        Attachment(
            org_id=org_a.id, project_id=project_a.id, owner_type="task", owner_id=tasks[0].id,
            file_name="sketch.png", file_url="https://files.example/sketch.png",
        ),
        # Tombstoned
        Task(org_id=org_a.id, project_id=project_a.id, title="Gone", deleted_at=utcnow()),
    ])
    event_service.log_event(org_a.id, "project", project_a.id, "PROJECT_CREATED", {"name": project_a.name})
    db.session.commit()
    return {"so": so, "po": po, "tasks": tasks}


class TestLinks:
    def test_every_category_present_with_default_limit(self, org_a, project_a, linked):
        result = get_project_links(project_a.id, org_a.id)

        assert result["project_id"] == project_a.id
        assert set(result["links"]) == set(CATEGORIES)
        assert len(result["links"]["tasks"]) == 5
        for name in ("timesheets", "invoices", "bills", "sales_orders", "purchase_orders",
                     "expenses", "attachments", "events"):
            assert len(result["links"][name]) == 1, name

    def test_rows_carry_related_names(self, org_a, users_a, project_a, linked):
        links = get_project_links(project_a.id, org_a.id)["links"]

        invoice = links["invoices"][0]
        assert invoice["sales_order"] == {"id": linked["so"].id, "so_number": "SO-9"}
        assert invoice["amount"] == "100.00"

        bill = links["bills"][0]
        assert bill["purchase_order"] == {"id": linked["po"].id, "po_number": "PO-9"}

        assert links["tasks"][0]["assignee"] == {"id": users_a["member"].id, "name": "Mia Member"}
        assert links["timesheets"][0]["duration_hours"] == "3.50"
        assert links["attachments"][0]["file_name"] == "brief.pdf"
        assert links["events"][0]["event_type"] == "PROJECT_CREATED"

    def test_limit_bounds_rows(self, org_a, project_a, linked):
        links = get_project_links(project_a.id, org_a.id, limit=2)["links"]
        assert len(links["tasks"]) == 2

        links = get_project_links(project_a.id, org_a.id, limit="50")["links"]
        assert len(links["tasks"]) == 7

    @pytest.mark.parametrize("limit", [0, 51, -1, "abc", 2.5])
    def test_limit_out_of_range_rejected(self, org_a, project_a, limit):
        with pytest.raises(ValidationError):
            get_project_links(project_a.id, org_a.id, limit=limit)

    def test_include_restricts_queried_categories(self, org_a, project_a, linked):
        links = get_project_links(project_a.id, org_a.id, include="tasks, expenses")["links"]

        assert len(links["tasks"]) == 5
        assert len(links["expenses"]) == 1
        assert links["invoices"] == []
        assert links["events"] == []
        assert set(links) == set(CATEGORIES)

    def test_unknown_category_rejected(self, org_a, project_a):
        with pytest.raises(ValidationError) as exc:
            get_project_links(project_a.id, org_a.id, include=["tasks", "payroll"])
        assert exc.value.details["allowed"] == list(CATEGORIES)

    def test_parse_include_keeps_canonical_order(self):
        assert parse_include(["events", "tasks"]) == ("tasks", "events")
        assert parse_include(None) == CATEGORIES
        assert parse_include("") == ()

    def test_other_org_project_not_found(self, org_b, project_a, linked):
        with pytest.raises(NotFoundError):
            get_project_links(project_a.id, org_b.id)
        with pytest.raises(NotFoundError):
            get_project_links_counts(project_a.id, org_b.id)

    def test_foreign_rows_never_leak(self, org_a, org_b, project_a, linked):
        # Misfiled row claiming the project from another tenant
        db.session.add(Task(org_id=org_b.id, project_id=project_a.id, title="Foreign"))
        db.session.commit()

        counts = get_project_links_counts(project_a.id, org_a.id)["counts"]
        assert counts["tasks"] == 7

    def test_newest_first(self, org_a, project_a, linked):
        older = SalesOrder(
            org_id=org_a.id, project_id=project_a.id, so_number="SO-1", partner_name="Old",
            order_date=date(2026, 5, 1) - timedelta(days=30), amount=Decimal("1.00"),
        )
        db.session.add(older)
        db.session.commit()

        rows = get_project_links(project_a.id, org_a.id)["links"]["sales_orders"]
        assert [row["so_number"] for row in rows] == ["SO-9", "SO-1"]


class TestCounts:
    def test_counts_are_unbounded(self, org_a, project_a, linked):
        counts = get_project_links_counts(project_a.id, org_a.id)

        assert counts["project_id"] == project_a.id
        assert counts["counts"] == {
            "tasks": 7,
            "timesheets": 1,
            "invoices": 1,
            "bills": 1,
            "sales_orders": 1,
            "purchase_orders": 1,
            "expenses": 1,
            "attachments": 1,
            "events": 1,
        }
