from __future__ import annotations

from ..extensions import db
from storeledger.time_utils import to_utc_z
from storeledger.validation import money_str


class Product(db.Model):
    """
    Product master data and quantity on hand.

    STOCK LEDGER:
    quantity_in_stock is the single source of truth for on-hand quantity.
    It is only mutated by inventory_service, which writes a StockMovement
    recording the cause (sale, PO receipt, adjustment) in the same
    transaction. The CHECK constraint keeps it from going negative even if
    a writer bypasses the service.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity_in_stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)

    price = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    quantity_in_stock = db.Column(db.Integer, nullable=False, default=0)

    low_stock_threshold = db.Column(db.Integer, nullable=True)
    image_path = db.Column(db.String(512), nullable=True)

    # Placeholder rows created from a demand notice for an item not yet stocked
    is_demand_notice_product = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.quantity_in_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "price": money_str(self.price),
            "quantity_in_stock": self.quantity_in_stock,
            "low_stock_threshold": self.low_stock_threshold,
            "image_path": self.image_path,
            "is_demand_notice_product": self.is_demand_notice_product,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only record of every quantity_in_stock mutation.

    REASONS: INITIAL, SALE, PO_RECEIPT, ADJUST
    Cause references (order_id / po_item_id) are set according to reason.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    reason = db.Column(db.String(16), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    order_id = db.Column(db.String(32), db.ForeignKey("orders.id"), nullable=True, index=True)
    po_item_id = db.Column(db.Integer, db.ForeignKey("po_items.id"), nullable=True, index=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "reason": self.reason,
            "quantity_delta": self.quantity_delta,
            "quantity_after": self.quantity_after,
            "order_id": self.order_id,
            "po_item_id": self.po_item_id,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class DemandNotice(db.Model):
    """
    Customer demand for a product that is out of stock (or not yet stocked).

    LIFECYCLE:
    - pending_review: new product, awaiting admin check
    - awaiting_stock: product known, nothing allocated yet
    - partial_stock_available / full_stock_available: set by the stock arrival cascade
    - customer_notified_stock, order_processing, fulfilled, cancelled: downstream states
      the cascade never touches

    INVARIANT: 0 <= quantity_fulfilled <= quantity_requested
    """
    __tablename__ = "demand_notices"
    __table_args__ = (
        db.CheckConstraint(
            "quantity_fulfilled >= 0 AND quantity_fulfilled <= quantity_requested",
            name="ck_demand_notices_fulfilled_range",
        ),
        db.Index("ix_demand_notices_sku_status", "product_sku", "status"),
    )

    id = db.Column(db.String(32), primary_key=True)

    salesperson_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_contact_number = db.Column(db.String(64), nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=False)

    quantity_requested = db.Column(db.Integer, nullable=False)
    quantity_fulfilled = db.Column(db.Integer, nullable=False, default=0)

    agreed_price = db.Column(db.Numeric(12, 3), nullable=False)
    expected_availability_date = db.Column(db.DateTime(timezone=True), nullable=True)

    status = db.Column(db.String(32), nullable=False, default="awaiting_stock", index=True)
    is_new_product = db.Column(db.Boolean, nullable=False, default=False)

    linked_order_id = db.Column(db.String(32), nullable=True)
    source_quotation_id = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    # Set explicitly (not server default) so arrival order has sub-second resolution
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False)

    product = db.relationship("Product", backref=db.backref("demand_notices", lazy=True))
    payments = db.relationship(
        "DemandNoticePayment",
        backref="notice",
        lazy=True,
        order_by="DemandNoticePayment.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "salesperson_id": self.salesperson_id,
            "customer_contact_number": self.customer_contact_number,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity_requested": self.quantity_requested,
            "quantity_fulfilled": self.quantity_fulfilled,
            "agreed_price": money_str(self.agreed_price),
            "expected_availability_date": to_utc_z(self.expected_availability_date),
            "status": self.status,
            "is_new_product": self.is_new_product,
            "linked_order_id": self.linked_order_id,
            "source_quotation_id": self.source_quotation_id,
            "notes": self.notes,
            "payments": [p.to_dict() for p in self.payments],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DemandNoticePayment(db.Model):
    """Advance payment taken against a demand notice; carried over on conversion."""
    __tablename__ = "demand_notice_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    notice_id = db.Column(db.String(32), db.ForeignKey("demand_notices.id"), nullable=False, index=True)

    method = db.Column(db.String(32), nullable=False)
    amount = db.Column(db.Numeric(12, 3), nullable=False)
    transaction_id = db.Column(db.String(128), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "notice_id": self.notice_id,
            "method": self.method,
            "amount": money_str(self.amount),
            "transaction_id": self.transaction_id,
            "paid_at": to_utc_z(self.paid_at),
        }
