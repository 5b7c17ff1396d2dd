from __future__ import annotations

from ..extensions import db
from storeledger.time_utils import to_utc_z
from storeledger.validation import money_str


class Order(db.Model):
    """
    Settled or pending customer order (the invoice).

    id is the invoice number issued by the "invoice" series (e.g. "000042").

    STATUS (forward-only):
    pending_payment -> partial_payment -> paid -> preparing -> ready_for_pickup -> completed
    cancelled is reachable from any non-terminal status; completed, cancelled
    and returned never change again.

    Line items are snapshots: name and unit price are captured at sale time
    and never follow later product edits.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
    )

    id = db.Column(db.String(32), primary_key=True)

    status = db.Column(db.String(32), nullable=False, default="pending_payment", index=True)
    delivery_status = db.Column(db.String(32), nullable=False, default="pending_dispatch")

    subtotal = db.Column(db.Numeric(12, 3), nullable=False)
    discount_amount = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 3), nullable=False)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    linked_demand_notice_id = db.Column(db.String(32), db.ForeignKey("demand_notices.id"), nullable=True)
    source_quotation_id = db.Column(db.String(32), db.ForeignKey("quotations.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False)

    items = db.relationship(
        "OrderItem", backref="order", lazy=True, order_by="OrderItem.id", cascade="all, delete-orphan"
    )
    payments = db.relationship(
        "OrderPayment", backref="order", lazy=True, order_by="OrderPayment.id", cascade="all, delete-orphan"
    )

    @property
    def total_paid(self):
        return sum((p.amount for p in self.payments), start=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "delivery_status": self.delivery_status,
            "subtotal": money_str(self.subtotal),
            "discount_amount": money_str(self.discount_amount),
            "tax_amount": money_str(self.tax_amount),
            "total_amount": money_str(self.total_amount),
            "total_paid": money_str(self.total_paid),
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "created_by_user_id": self.created_by_user_id,
            "linked_demand_notice_id": self.linked_demand_notice_id,
            "source_quotation_id": self.source_quotation_id,
            "items": [item.to_dict() for item in self.items],
            "payments": [payment.to_dict() for payment in self.payments],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(32), db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Snapshot at sale time
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    unit_price = db.Column(db.Numeric(12, 3), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    line_total = db.Column(db.Numeric(12, 3), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "unit_price": money_str(self.unit_price),
            "quantity": self.quantity,
            "line_total": money_str(self.line_total),
        }


class OrderPayment(db.Model):
    """
    Payment entry on an order.

    METHODS: cash, card, bank_transfer, advance_on_dn (carried from a demand notice)
    """
    __tablename__ = "order_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(32), db.ForeignKey("orders.id"), nullable=False, index=True)

    method = db.Column(db.String(32), nullable=False)
    amount = db.Column(db.Numeric(12, 3), nullable=False)
    transaction_id = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "method": self.method,
            "amount": money_str(self.amount),
            "transaction_id": self.transaction_id,
            "notes": self.notes,
            "cashier_id": self.cashier_id,
            "paid_at": to_utc_z(self.paid_at),
        }


class Quotation(db.Model):
    """
    Price quotation prepared by a salesperson.

    LIFECYCLE: draft -> sent -> accepted | rejected; accepted -> converted
    Accepted quotations spawn demand notices for their external items and an
    order for their stocked items; converted once every item has gone.
    """
    __tablename__ = "quotations"

    id = db.Column(db.String(32), primary_key=True)
    salesperson_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    total_amount = db.Column(db.Numeric(12, 3), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False)

    items = db.relationship(
        "QuotationItem", backref="quotation", lazy=True, order_by="QuotationItem.id", cascade="all, delete-orphan"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "salesperson_id": self.salesperson_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "status": self.status,
            "total_amount": money_str(self.total_amount),
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class QuotationItem(db.Model):
    __tablename__ = "quotation_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(db.String(32), db.ForeignKey("quotations.id"), nullable=False, index=True)

    product_sku = db.Column(db.String(64), nullable=True)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 3), nullable=False)

    # External items are not stocked; they become demand notices once accepted
    is_external = db.Column(db.Boolean, nullable=False, default=False)
    converted = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_sku": self.product_sku,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "price": money_str(self.price),
            "is_external": self.is_external,
            "converted": self.converted,
        }
