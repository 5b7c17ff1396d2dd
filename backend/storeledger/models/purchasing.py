from __future__ import annotations

from ..extensions import db
from storeledger.time_utils import to_utc_z


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    contact_person = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseOrder(db.Model):
    """
    Supplier purchase order.

    LIFECYCLE:
    - Draft: created, items editable
    - Confirmed: sent to supplier, receivable
    - Received: every item fully received (terminal)
    - Cancelled: abandoned from Draft or Confirmed (terminal)

    Stock only changes through receipts against a Confirmed PO.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_supplier_status", "supplier_id", "status"),
    )

    id = db.Column(db.String(32), primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="Draft", index=True)

    expected_delivery = db.Column(db.DateTime(timezone=True), nullable=True)
    deadline = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False)

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    items = db.relationship(
        "POItem", backref="purchase_order", lazy=True, order_by="POItem.id", cascade="all, delete-orphan"
    )
    attachments = db.relationship(
        "POAttachment", backref="purchase_order", lazy=True, order_by="POAttachment.id", cascade="all, delete-orphan"
    )

    @property
    def is_fully_received(self) -> bool:
        return bool(self.items) and all(i.quantity_received >= i.quantity_ordered for i in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "status": self.status,
            "expected_delivery": to_utc_z(self.expected_delivery),
            "deadline": to_utc_z(self.deadline),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "confirmed_at": to_utc_z(self.confirmed_at),
            "received_at": to_utc_z(self.received_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "items": [item.to_dict() for item in self.items],
            "attachments": [a.to_dict() for a in self.attachments],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class POItem(db.Model):
    """
    One product line on a purchase order.

    INVARIANT: 0 <= quantity_received <= quantity_ordered
    """
    __tablename__ = "po_items"
    __table_args__ = (
        db.CheckConstraint("quantity_ordered > 0", name="ck_po_items_ordered_positive"),
        db.CheckConstraint(
            "quantity_received >= 0 AND quantity_received <= quantity_ordered",
            name="ck_po_items_received_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    po_id = db.Column(db.String(32), db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_ordered = db.Column(db.Integer, nullable=False)
    quantity_received = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.String(255), nullable=True)

    product = db.relationship("Product")

    @property
    def quantity_remaining(self) -> int:
        return self.quantity_ordered - self.quantity_received

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "po_id": self.po_id,
            "product_id": self.product_id,
            "product_sku": self.product.sku if self.product else None,
            "product_name": self.product.name if self.product else None,
            "quantity_ordered": self.quantity_ordered,
            "quantity_received": self.quantity_received,
            "quantity_remaining": self.quantity_remaining,
            "notes": self.notes,
        }


class POAttachment(db.Model):
    """Blob-store path attached to a purchase order (invoice scan, delivery note)."""
    __tablename__ = "po_attachments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    po_id = db.Column(db.String(32), db.ForeignKey("purchase_orders.id"), nullable=False, index=True)

    file_path = db.Column(db.String(512), nullable=False)
    original_name = db.Column(db.String(255), nullable=True)
    kind = db.Column(db.String(32), nullable=False, default="document")

    uploaded_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "po_id": self.po_id,
            "file_path": self.file_path,
            "original_name": self.original_name,
            "kind": self.kind,
            "uploaded_by_id": self.uploaded_by_id,
            "uploaded_at": to_utc_z(self.uploaded_at),
        }
