"""
HTTP API tests.

Verifies:
- Login, logout and bearer authentication (401 paths)
- Role guards on finance, audit and analytics routes (403)
- Tenant isolation through the API (404 for foreign ids)
- Service errors map onto 400 / 404 / 409 JSON bodies
- Project aggregators over HTTP
"""

import pytest

from workhub.extensions import db
from workhub.models import Task

from conftest import PASSWORD, auth_headers, get_auth_token


SO_BODY = {"partner_name": "Acme Client", "order_date": "2026-02-01", "amount": "1500.00"}


# =============================================================================
# AUTHENTICATION
# =============================================================================


class TestAuthRoutes:
    def test_login_returns_token(self, client, users_a):
        resp = client.post("/api/auth/login", json={"username": "acme_admin", "password": PASSWORD})

        assert resp.status_code == 200
        assert resp.json["token"]
        assert resp.json["expires_at"].endswith("Z")
        assert resp.json["user"]["role"] == "admin"
        assert "password_hash" not in resp.json["user"]

    def test_login_by_email_scoped_to_org(self, client, org_a, org_b, users_a):
        assert get_auth_token(client, "admin@acme.example", org_id=org_a.id)
        assert get_auth_token(client, "admin@acme.example", org_id=org_b.id) is None

    def test_bad_credentials(self, client, users_a):
        resp = client.post("/api/auth/login", json={"username": "acme_admin", "password": "Nope123!"})
        assert resp.status_code == 401
        assert resp.json["code"] == "unauthorized"

    def test_missing_fields(self, client):
        resp = client.post("/api/auth/login", json={"username": "acme_admin"})
        assert resp.status_code == 400

    def test_me_and_logout(self, client, users_a):
        headers = auth_headers(get_auth_token(client, "acme_finance"))

        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json["role"] == "finance"
        assert me.json["org_id"] == users_a["finance"].org_id

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401


class TestUnauthenticatedAccess:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/finance/sales-orders"),
            ("POST", "/api/finance/customer-invoices"),
            ("GET", "/api/expenses"),
            ("GET", "/api/events"),
            ("GET", "/api/projects"),
            ("GET", "/api/projects/1/overview"),
            ("GET", "/api/attachments"),
            ("GET", "/api/analytics/cache"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client):
        resp = client.get("/api/projects", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401


# =============================================================================
# FINANCE DOCUMENTS
# =============================================================================


class TestFinanceRoutes:
    def _create_so(self, client, headers, **overrides):
        body = dict(SO_BODY, **overrides)
        resp = client.post("/api/finance/sales-orders", json=body, headers=headers)
        assert resp.status_code == 201, resp.json
        return resp.json

    def test_sales_order_lifecycle(self, client, headers_a):
        so = self._create_so(client, headers_a["finance"])
        assert so["status"] == "draft"
        assert so["so_number"] == "SO-0001"
        assert so["amount"] == "1500.00"

        confirmed = client.post(f"/api/finance/sales-orders/{so['id']}/confirm", headers=headers_a["finance"])
        assert confirmed.status_code == 200
        assert confirmed.json["status"] == "confirmed"

        listed = client.get("/api/finance/sales-orders?status=confirmed", headers=headers_a["admin"])
        assert listed.json["pagination"]["total"] == 1

    def test_member_forbidden(self, client, headers_a):
        resp = client.post("/api/finance/sales-orders", json=SO_BODY, headers=headers_a["member"])
        assert resp.status_code == 403
        assert resp.json["code"] == "forbidden"

    def test_validation_error(self, client, headers_a):
        resp = client.post(
            "/api/finance/sales-orders",
            json=dict(SO_BODY, amount="-5"),
            headers=headers_a["finance"],
        )
        assert resp.status_code == 400
        assert resp.json["code"] == "validation_error"

    def test_invalid_transition_conflict(self, client, headers_a):
        so = self._create_so(client, headers_a["finance"])
        resp = client.post(f"/api/finance/sales-orders/{so['id']}/invoice", headers=headers_a["finance"])

        assert resp.status_code == 409
        assert resp.json["code"] == "invalid_transition"
        assert resp.json["details"] == {"current_status": "draft", "requested_status": "invoiced"}

    def test_unknown_action(self, client, headers_a):
        so = self._create_so(client, headers_a["finance"])
        resp = client.post(f"/api/finance/sales-orders/{so['id']}/ship", headers=headers_a["finance"])
        assert resp.status_code == 404

    def test_other_org_sees_not_found(self, client, headers_a, headers_b):
        so = self._create_so(client, headers_a["finance"])

        assert client.get(f"/api/finance/sales-orders/{so['id']}", headers=headers_b["admin"]).status_code == 404
        resp = client.post(f"/api/finance/sales-orders/{so['id']}/cancel", headers=headers_b["admin"])
        assert resp.status_code == 404

    def test_cancel_with_reason(self, client, headers_a):
        so = self._create_so(client, headers_a["finance"])
        resp = client.post(
            f"/api/finance/sales-orders/{so['id']}/cancel",
            json={"reason": "Customer withdrew"},
            headers=headers_a["finance"],
        )
        assert resp.status_code == 200
        assert resp.json["status"] == "cancelled"

    def test_invoice_payment_advances_sales_order(self, client, headers_a):
        so = self._create_so(client, headers_a["finance"])
        client.post(f"/api/finance/sales-orders/{so['id']}/confirm", headers=headers_a["finance"])

        invoice = client.post(
            "/api/finance/customer-invoices",
            json={"so_id": so["id"], "invoice_date": "2026-02-10", "amount": "1500.00"},
            headers=headers_a["finance"],
        ).json
        assert invoice["partner_name"] == "Acme Client"

        client.post(f"/api/finance/customer-invoices/{invoice['id']}/send", headers=headers_a["finance"])
        paid = client.post(f"/api/finance/customer-invoices/{invoice['id']}/pay", headers=headers_a["finance"])
        assert paid.status_code == 200

        refreshed = client.get(f"/api/finance/sales-orders/{so['id']}", headers=headers_a["finance"])
        assert refreshed.json["status"] == "invoiced"

        by_so = client.get(f"/api/finance/customer-invoices?so_id={so['id']}", headers=headers_a["finance"])
        assert by_so.json["pagination"]["total"] == 1

    def test_draft_edit_and_delete(self, client, headers_a):
        so = self._create_so(client, headers_a["finance"])

        patched = client.patch(
            f"/api/finance/sales-orders/{so['id']}",
            json={"amount": "2000.00"},
            headers=headers_a["finance"],
        )
        assert patched.json["amount"] == "2000.00"

        assert client.delete(f"/api/finance/sales-orders/{so['id']}", headers=headers_a["finance"]).status_code == 200
        assert client.get(f"/api/finance/sales-orders/{so['id']}", headers=headers_a["finance"]).status_code == 404


# =============================================================================
# EXPENSES
# =============================================================================


class TestExpenseRoutes:
    def test_member_flow(self, client, headers_a):
        created = client.post(
            "/api/expenses",
            json={"amount": "80.00", "category": "meals"},
            headers=headers_a["member"],
        )
        assert created.status_code == 201
        expense_id = created.json["id"]

        assert client.post(f"/api/expenses/{expense_id}/submit", headers=headers_a["member"]).status_code == 200

        # Members cannot approve
        denied = client.post(f"/api/expenses/{expense_id}/approve", headers=headers_a["member"])
        assert denied.status_code == 403

        approved = client.post(f"/api/expenses/{expense_id}/approve", headers=headers_a["manager"])
        assert approved.json["status"] == "approved"

        paid = client.post(f"/api/expenses/{expense_id}/pay", headers=headers_a["finance"])
        assert paid.json["status"] == "paid"

        resp = client.delete(f"/api/expenses/{expense_id}", headers=headers_a["admin"])
        assert resp.status_code == 409

    def test_reject_with_reason(self, client, headers_a):
        expense_id = client.post("/api/expenses", json={"amount": "10.00"}, headers=headers_a["member"]).json["id"]
        client.post(f"/api/expenses/{expense_id}/submit", headers=headers_a["member"])

        resp = client.post(
            f"/api/expenses/{expense_id}/reject",
            json={"reason": "No receipt"},
            headers=headers_a["finance"],
        )
        assert resp.json["status"] == "rejected"
        assert resp.json["rejection_reason"] == "No receipt"

    def test_stats(self, client, headers_a):
        client.post("/api/expenses", json={"amount": "10.00"}, headers=headers_a["member"])
        resp = client.get("/api/expenses/stats", headers=headers_a["admin"])

        assert resp.status_code == 200
        assert resp.json["total_count"] == 1


# =============================================================================
# AUDIT EVENTS
# =============================================================================


class TestEventRoutes:
    def test_member_cannot_list_org_events(self, client, headers_a):
        resp = client.get("/api/events", headers=headers_a["member"])
        assert resp.status_code == 403
        assert resp.json["required_roles"] == ["admin", "finance", "manager"]

    def test_list_and_summary(self, client, headers_a):
        client.post("/api/finance/sales-orders", json=SO_BODY, headers=headers_a["finance"])

        listed = client.get("/api/events?entity_type=sales_order", headers=headers_a["manager"])
        assert listed.status_code == 200
        assert [e["event_type"] for e in listed.json["items"]] == ["SALES_ORDER_CREATED"]

        summary = client.get("/api/events/summary", headers=headers_a["admin"])
        assert summary.json["by_event_type"] == {"SALES_ORDER_CREATED": 1}

    def test_bad_date_filter(self, client, headers_a):
        resp = client.get("/api/events?start_date=yesterday", headers=headers_a["admin"])
        assert resp.status_code == 400

    def test_entity_history(self, client, headers_a, headers_b):
        so = client.post("/api/finance/sales-orders", json=SO_BODY, headers=headers_a["finance"]).json

        history = client.get(f"/api/events/entity/sales_order/{so['id']}", headers=headers_a["member"])
        assert history.json["count"] == 1

        foreign = client.get(f"/api/events/entity/sales_order/{so['id']}", headers=headers_b["admin"])
        assert foreign.json["count"] == 0

        event_id = history.json["items"][0]["id"]
        assert client.get(f"/api/events/{event_id}", headers=headers_b["admin"]).status_code == 404

    def test_unknown_entity_type(self, client, headers_a):
        resp = client.get("/api/events/entity/spaceship/1", headers=headers_a["member"])
        assert resp.status_code == 400


# =============================================================================
# PROJECTS AND AGGREGATORS
# =============================================================================


class TestProjectRoutes:
    def test_create_and_list(self, client, headers_a):
        created = client.post("/api/projects", json={"name": "Intranet", "code": "INT"}, headers=headers_a["manager"])
        assert created.status_code == 201

        duplicate = client.post("/api/projects", json={"name": "Again", "code": "INT"}, headers=headers_a["manager"])
        assert duplicate.status_code == 409

        listed = client.get("/api/projects", headers=headers_a["member"])
        assert [p["code"] for p in listed.json["data"]] == ["INT"]

    def test_member_cannot_create(self, client, headers_a):
        assert client.post("/api/projects", json={"name": "X"}, headers=headers_a["member"]).status_code == 403

    def test_members_endpoint(self, client, headers_a, users_a, project_a):
        resp = client.post(
            f"/api/projects/{project_a.id}/members",
            json={"user_id": users_a["member"].id, "role": "viewer"},
            headers=headers_a["admin"],
        )
        assert resp.status_code == 201

        listed = client.get(f"/api/projects/{project_a.id}/members", headers=headers_a["member"])
        assert listed.json["count"] == 1

    def test_links_and_counts(self, client, headers_a, org_a, project_a):
        db.session.add(Task(org_id=org_a.id, project_id=project_a.id, title="Wireframes"))
        db.session.commit()

        links = client.get(f"/api/projects/{project_a.id}/links?limit=3&include=tasks", headers=headers_a["member"])
        assert links.status_code == 200
        assert [t["title"] for t in links.json["links"]["tasks"]] == ["Wireframes"]
        assert links.json["links"]["invoices"] == []

        counts = client.get(f"/api/projects/{project_a.id}/links/counts", headers=headers_a["member"])
        assert counts.json["counts"]["tasks"] == 1

    def test_links_limit_validation(self, client, headers_a, project_a):
        resp = client.get(f"/api/projects/{project_a.id}/links?limit=500", headers=headers_a["member"])
        assert resp.status_code == 400

    def test_overview_cached_then_forced(self, client, headers_a, project_a):
        first = client.get(f"/api/projects/{project_a.id}/overview", headers=headers_a["member"])
        second = client.get(f"/api/projects/{project_a.id}/overview", headers=headers_a["member"])
        forced = client.get(f"/api/projects/{project_a.id}/overview?force_refresh=true", headers=headers_a["member"])

        assert first.json["cached"] is False
        assert second.json["cached"] is True
        assert forced.json["cached"] is False
        assert first.json["overview"]["budget"] == "10000.00"

    def test_health(self, client, headers_a, project_a):
        resp = client.get(f"/api/projects/{project_a.id}/health", headers=headers_a["member"])

        assert resp.status_code == 200
        assert resp.json["project_id"] == project_a.id
        assert 0 <= resp.json["health_score"] <= 100

    @pytest.mark.parametrize("suffix", ["", "/links", "/links/counts", "/overview", "/health"])
    def test_foreign_project_not_found(self, client, headers_b, project_a, suffix):
        resp = client.get(f"/api/projects/{project_a.id}{suffix}", headers=headers_b["admin"])
        assert resp.status_code == 404


class TestAttachmentRoutes:
    def test_register_then_reassociate(self, client, headers_a, project_a):
        body = {
            "owner_type": "project", "owner_id": -99, "file_name": "kickoff.pdf",
            "file_url": "https://files.example/kickoff.pdf",
        }
        assert client.post("/api/attachments", json=body, headers=headers_a["member"]).status_code == 201

        moved = client.post(
            "/api/attachments/reassociate",
            json={"temp_owner_type": "project", "temp_owner_id": -99, "owner_id": project_a.id},
            headers=headers_a["member"],
        )
        assert moved.json == {"reassociated": 1}

        listed = client.get(
            f"/api/attachments?owner_type=project&owner_id={project_a.id}",
            headers=headers_a["member"],
        )
        assert listed.json["count"] == 1

    def test_list_requires_valid_owner_type(self, client, headers_a):
        resp = client.get("/api/attachments?owner_type=planet&owner_id=1", headers=headers_a["member"])
        assert resp.status_code == 400


# =============================================================================
# ANALYTICS CACHE AND SYSTEM
# =============================================================================


class TestAnalyticsRoutes:
    def test_cache_stats_and_invalidate(self, client, headers_a, project_a):
        client.get(f"/api/projects/{project_a.id}/overview", headers=headers_a["member"])

        stats = client.get("/api/analytics/cache", headers=headers_a["manager"])
        assert stats.json["memory_entries"] == 1

        cleared = client.delete("/api/analytics/cache", headers=headers_a["manager"])
        assert cleared.json["rows_removed"] == 1

        again = client.get(f"/api/projects/{project_a.id}/overview", headers=headers_a["member"])
        assert again.json["cached"] is False

    def test_member_forbidden(self, client, headers_a):
        assert client.get("/api/analytics/cache", headers=headers_a["member"]).status_code == 403


def test_health_endpoint(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json["checks"]["database"]["status"] == "healthy"
