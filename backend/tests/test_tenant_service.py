"""
Tenant isolation helpers and the aggregator fan-out.

Records of another organization must read exactly like missing records.
"""

from decimal import Decimal

import pytest

from workhub.extensions import db
from workhub.models import Expense, Project
from workhub.services.concurrency import run_concurrently
from workhub.services.tenant_service import (
    Actor,
    TenantAccessError,
    get_current_org_id,
    paginate,
    require_in_org,
    require_project_in_org,
    require_user_in_org,
    scoped_query,
)
from workhub.time_utils import utcnow


class TestScoping:
    def test_scoped_query_filters_org_and_tombstones(self, org_a, org_b, project_a, project_b):
        gone = Project(org_id=org_a.id, name="Archived", deleted_at=utcnow())
        db.session.add(gone)
        db.session.commit()

        assert [p.id for p in scoped_query(Project, org_a.id).all()] == [project_a.id]
        assert {p.id for p in scoped_query(Project, org_a.id, include_deleted=True)} == {project_a.id, gone.id}

    def test_require_in_org_hides_foreign_rows(self, org_a, org_b, project_b):
        with pytest.raises(TenantAccessError) as exc:
            require_project_in_org(project_b.id, org_a.id)
        assert exc.value.status_code == 404
        assert str(exc.value) == "Project not found"

    def test_require_in_org_hides_tombstones(self, org_a, project_a):
        project_a.deleted_at = utcnow()
        db.session.commit()
        assert project_a.is_deleted

        with pytest.raises(TenantAccessError):
            require_in_org(Project, project_a.id, org_a.id)

    def test_require_user_in_org(self, org_a, users_a, users_b):
        assert require_user_in_org(users_a["member"].id, org_a.id).id == users_a["member"].id
        with pytest.raises(TenantAccessError):
            require_user_in_org(users_b["member"].id, org_a.id)

    def test_actor_from_user(self, users_a):
        actor = Actor.from_user(users_a["finance"])
        assert actor == Actor(user_id=users_a["finance"].id, org_id=users_a["finance"].org_id, role="finance")

    def test_org_id_requires_request_context(self, app):
        with app.test_request_context("/"):
            with pytest.raises(TenantAccessError):
                get_current_org_id()


class TestPaginate:
    def test_pages_and_totals(self, org_a, users_a):
        for cents in range(5):
            db.session.add(Expense(org_id=org_a.id, user_id=users_a["member"].id, amount=Decimal(10 + cents)))
        db.session.commit()

        query = scoped_query(Expense, org_a.id).order_by(Expense.id)
        page = paginate(query, 2, 2)

        assert len(page["data"]) == 2
        assert page["pagination"] == {"page": 2, "page_size": 2, "total": 5, "total_pages": 3}

    def test_empty(self, org_a):
        page = paginate(scoped_query(Expense, org_a.id), 1, 25, serialize=lambda row: row.id)
        assert page == {"data": [], "pagination": {"page": 1, "page_size": 25, "total": 0, "total_pages": 0}}


class TestRunConcurrently:
    def test_inline_when_single_worker(self, app):
        calls = []

        def task(name):
            def run():
                calls.append(name)
                return name.upper()
            return run

        result = run_concurrently({"a": task("a"), "b": task("b")})

        assert result == {"a": "A", "b": "B"}
        assert calls == ["a", "b"]

    def test_threaded(self, app):
        result = run_concurrently({str(n): (lambda n=n: n * n) for n in range(6)}, max_workers=3)
        assert result == {str(n): n * n for n in range(6)}

    def test_worker_error_propagates(self, app):
        def broken():
            raise LookupError("missing")

        with pytest.raises(LookupError):
            run_concurrently({"ok": lambda: 1, "bad": broken}, max_workers=2)
