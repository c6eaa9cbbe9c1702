from __future__ import annotations

from ..extensions import db
from workhub.time_utils import to_utc_z, to_iso_date
from .mixins import SoftDeleteMixin, TimestampMixin, money_str


class FinanceDocumentMixin(TimestampMixin, SoftDeleteMixin):
    """
    Columns shared by sales orders, purchase orders, invoices and bills.

    Amounts are Numeric(14, 2) and always handled as Decimal. The JSON column
    is named "metadata" in the table; the attribute is `meta` because
    `metadata` is reserved on declarative models.
    """
    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    meta = db.Column("metadata", db.JSON, nullable=True)

    def _base_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "project_id": self.project_id,
            "status": self.status,
            "amount": money_str(self.amount),
            "currency": self.currency,
            "metadata": self.meta,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class SalesOrder(FinanceDocumentMixin, db.Model):
    __tablename__ = "sales_orders"
    __table_args__ = (
        db.UniqueConstraint("org_id", "so_number", name="uq_sales_orders_org_number"),
        {"sqlite_autoincrement": True},
    )

    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)
    so_number = db.Column(db.String(64), nullable=False)
    partner_name = db.Column(db.String(255), nullable=False)
    order_date = db.Column(db.Date, nullable=False)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    invoices = db.relationship("CustomerInvoice", back_populates="sales_order", lazy="select")

    def to_dict(self) -> dict:
        data = self._base_dict()
        data.update({
            "so_number": self.so_number,
            "partner_name": self.partner_name,
            "order_date": to_iso_date(self.order_date),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        })
        return data


class PurchaseOrder(FinanceDocumentMixin, db.Model):
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("org_id", "po_number", name="uq_purchase_orders_org_number"),
        {"sqlite_autoincrement": True},
    )

    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)
    po_number = db.Column(db.String(64), nullable=False)
    vendor_name = db.Column(db.String(255), nullable=False)
    order_date = db.Column(db.Date, nullable=False)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    bills = db.relationship("VendorBill", back_populates="purchase_order", lazy="select")

    def to_dict(self) -> dict:
        data = self._base_dict()
        data.update({
            "po_number": self.po_number,
            "vendor_name": self.vendor_name,
            "order_date": to_iso_date(self.order_date),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        })
        return data


class CustomerInvoice(FinanceDocumentMixin, db.Model):
    __tablename__ = "customer_invoices"
    __table_args__ = (
        db.UniqueConstraint("org_id", "invoice_number", name="uq_customer_invoices_org_number"),
        {"sqlite_autoincrement": True},
    )

    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)
    so_id = db.Column(db.Integer, db.ForeignKey("sales_orders.id"), nullable=True, index=True)
    invoice_number = db.Column(db.String(64), nullable=False)
    partner_name = db.Column(db.String(255), nullable=False)
    invoice_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    sales_order = db.relationship("SalesOrder", back_populates="invoices")

    def to_dict(self) -> dict:
        data = self._base_dict()
        data.update({
            "so_id": self.so_id,
            "invoice_number": self.invoice_number,
            "partner_name": self.partner_name,
            "invoice_date": to_iso_date(self.invoice_date),
            "due_date": to_iso_date(self.due_date),
            "sent_at": to_utc_z(self.sent_at),
            "paid_at": to_utc_z(self.paid_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        })
        return data


class VendorBill(FinanceDocumentMixin, db.Model):
    __tablename__ = "vendor_bills"
    __table_args__ = {"sqlite_autoincrement": True}

    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)
    po_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True, index=True)
    bill_number = db.Column(db.String(64), nullable=True)
    vendor_name = db.Column(db.String(255), nullable=False)
    bill_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    purchase_order = db.relationship("PurchaseOrder", back_populates="bills")

    def to_dict(self) -> dict:
        data = self._base_dict()
        data.update({
            "po_id": self.po_id,
            "bill_number": self.bill_number,
            "vendor_name": self.vendor_name,
            "bill_date": to_iso_date(self.bill_date),
            "due_date": to_iso_date(self.due_date),
            "received_at": to_utc_z(self.received_at),
            "paid_at": to_utc_z(self.paid_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        })
        return data


class Expense(TimestampMixin, SoftDeleteMixin, db.Model):
    """
    Employee expense claim.

    Ownership (user_id) drives the edit/delete/submit guards; approval and
    payment record the acting user and time.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    amount = db.Column(db.Numeric(14, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    category = db.Column(db.String(64), nullable=True)
    expense_date = db.Column(db.Date, nullable=True)
    note = db.Column(db.Text, nullable=True)
    billable = db.Column(db.Boolean, nullable=False, default=False)
    receipt_url = db.Column(db.String(1024), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    paid_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "amount": money_str(self.amount),
            "currency": self.currency,
            "category": self.category,
            "expense_date": to_iso_date(self.expense_date),
            "note": self.note,
            "billable": self.billable,
            "receipt_url": self.receipt_url,
            "status": self.status,
            "submitted_at": to_utc_z(self.submitted_at),
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at),
            "rejected_by_user_id": self.rejected_by_user_id,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "paid_by_user_id": self.paid_by_user_id,
            "paid_at": to_utc_z(self.paid_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class DocumentSequence(db.Model):
    """Per-organization counters used to number finance documents."""
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("org_id", "document_type", name="uq_doc_sequences_org_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
