# Overview: Pytest coverage for customer invoices and the sales order auto-advance.

from decimal import Decimal

import pytest

from workhub.extensions import db
from workhub.models import CustomerInvoice, Event, SalesOrder
from workhub.services import invoice_service, sales_order_service as so_service


def _so(actor, **overrides):
    payload = {"partner_name": "Acme Client", "order_date": "2026-02-01", "amount": "900.00"}
    payload.update(overrides)
    result = so_service.create_sales_order(actor, payload)
    assert result.success, result.error
    return result.data


def _invoice(actor, **overrides):
    payload = {"invoice_date": "2026-02-10", "amount": "300.00"}
    payload.update(overrides)
    result = invoice_service.create_invoice(actor, payload)
    assert result.success, result.error
    return result.data


def _send_and_pay(actor, invoice_id):
    assert invoice_service.send_invoice(actor, invoice_id).success
    return invoice_service.mark_invoice_paid(actor, invoice_id)


@pytest.fixture
def finance(actors_a):
    return actors_a["finance"]


@pytest.fixture
def confirmed_so(finance):
    so = _so(finance)
    assert so_service.confirm_sales_order(finance, so.id).success
    return so


class TestCreate:
    def test_linked_invoice_inherits_order_fields(self, finance, project_a):
        so = _so(finance, project_id=project_a.id)
        invoice = _invoice(finance, so_id=so.id)

        assert invoice.invoice_number == "INV-0001"
        assert invoice.partner_name == "Acme Client"
        assert invoice.project_id == project_a.id
        assert invoice.status == "draft"

        linked = db.session.query(Event).filter_by(
            entity_type="customer_invoice", entity_id=invoice.id, event_type="INVOICE_LINKED_TO_SO",
        ).one()
        assert linked.payload["soId"] == so.id

    def test_unlinked_invoice_requires_partner(self, finance):
        result = invoice_service.create_invoice(finance, {"invoice_date": "2026-02-10", "amount": "10.00"})
        assert result.code == "validation_error"

    def test_foreign_sales_order_is_not_found(self, finance, actors_b):
        foreign = _so(actors_b["finance"])
        result = invoice_service.create_invoice(finance, {
            "invoice_date": "2026-02-10", "amount": "10.00", "so_id": foreign.id,
        })
        assert result.code == "not_found"
        assert db.session.query(CustomerInvoice).count() == 0

    def test_list_by_sales_order(self, finance, confirmed_so):
        _invoice(finance, so_id=confirmed_so.id)
        _invoice(finance, partner_name="Walk-in")

        listed = invoice_service.list_invoices(finance, so_id=confirmed_so.id).data
        assert listed["pagination"]["total"] == 1
        assert listed["data"][0]["so_id"] == confirmed_so.id


class TestLifecycle:
    def test_send_then_pay(self, finance):
        invoice = _invoice(finance, partner_name="Walk-in")

        sent = invoice_service.send_invoice(finance, invoice.id)
        assert sent.data.status == "sent"
        assert sent.data.sent_at is not None

        paid = invoice_service.mark_invoice_paid(finance, invoice.id)
        assert paid.data.status == "paid"
        assert paid.data.paid_at is not None

    def test_draft_cannot_be_paid(self, finance):
        invoice = _invoice(finance, partner_name="Walk-in")
        result = invoice_service.mark_invoice_paid(finance, invoice.id)
        assert result.code == "invalid_transition"

    def test_paid_is_terminal(self, finance):
        invoice = _invoice(finance, partner_name="Walk-in")
        _send_and_pay(finance, invoice.id)
        assert invoice_service.cancel_invoice(finance, invoice.id).code == "invalid_transition"

    def test_manager_cannot_send(self, actors_a, finance):
        invoice = _invoice(finance, partner_name="Walk-in")
        assert invoice_service.send_invoice(actors_a["manager"], invoice.id).code == "forbidden"

    def test_sent_invoice_is_not_editable(self, finance):
        invoice = _invoice(finance, partner_name="Walk-in")
        invoice_service.send_invoice(finance, invoice.id)
        result = invoice_service.update_invoice(finance, invoice.id, {"amount": "1.00"})
        assert result.code == "invalid_state"


class TestSalesOrderAdvance:
    def test_paying_last_invoice_marks_order_invoiced(self, finance, confirmed_so):
        first = _invoice(finance, so_id=confirmed_so.id)
        second = _invoice(finance, so_id=confirmed_so.id, amount="600.00")

        _send_and_pay(finance, first.id)
        assert db.session.get(SalesOrder, confirmed_so.id).status == "confirmed"

        result = _send_and_pay(finance, second.id)
        assert result.success
        assert db.session.get(SalesOrder, confirmed_so.id).status == "invoiced"

        [event] = db.session.query(Event).filter_by(
            entity_type="sales_order", entity_id=confirmed_so.id, event_type="SALES_ORDER_INVOICED",
        ).all()
        assert event.payload["triggeredByInvoice"] == second.id
        assert event.payload["from"] == "confirmed"

    def test_unpaid_sibling_blocks_advance(self, finance, confirmed_so):
        first = _invoice(finance, so_id=confirmed_so.id)
        _invoice(finance, so_id=confirmed_so.id)

        _send_and_pay(finance, first.id)
        assert db.session.get(SalesOrder, confirmed_so.id).status == "confirmed"

    def test_cancelled_sibling_blocks_advance(self, finance, confirmed_so):
        first = _invoice(finance, so_id=confirmed_so.id)
        second = _invoice(finance, so_id=confirmed_so.id)

        invoice_service.cancel_invoice(finance, first.id, reason="Duplicate")
        _send_and_pay(finance, second.id)
        assert db.session.get(SalesOrder, confirmed_so.id).status == "confirmed"

    def test_deleted_sibling_is_ignored(self, finance, confirmed_so):
        first = _invoice(finance, so_id=confirmed_so.id)
        second = _invoice(finance, so_id=confirmed_so.id)

        invoice_service.delete_invoice(finance, first.id)
        _send_and_pay(finance, second.id)
        assert db.session.get(SalesOrder, confirmed_so.id).status == "invoiced"

    def test_draft_order_is_not_advanced(self, finance):
        so = _so(finance)
        invoice = _invoice(finance, so_id=so.id)

        result = _send_and_pay(finance, invoice.id)
        assert result.success
        assert result.data.status == "paid"
        assert db.session.get(SalesOrder, so.id).status == "draft"

    def test_invoice_amounts_are_decimal(self, finance, confirmed_so):
        invoice = _invoice(finance, so_id=confirmed_so.id, amount="0.10")
        assert db.session.get(CustomerInvoice, invoice.id).amount == Decimal("0.10")
