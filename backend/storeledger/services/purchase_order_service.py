# Overview: Service-layer operations for suppliers and purchase orders; receiving credits the stock ledger.

"""
Purchase-Order Lifecycle

LIFECYCLE:
1. Draft: created, items referencing existing products
2. Confirmed: sent to the supplier; receipts are accepted
3. Received: every item fully received (terminal, set automatically)
4. Cancelled: from Draft or Confirmed only (terminal)

RECEIVING:
- A receipt is a list of {po_item_id, quantity, notes} lines.
- quantity_received never exceeds quantity_ordered; an over-receipt on any
  line rejects the whole receipt (OverReceipt).
- Each received line credits stock with a PO_RECEIPT movement, which runs
  the demand-notice cascade for that product in the same transaction.
"""

from __future__ import annotations

import logging

from ..errors import InvalidState, InvalidTransition, NotFound, OverReceipt, ValidationError
from ..extensions import db
from ..models import POAttachment, POItem, Product, PurchaseOrder, Supplier
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import coerce_quantity
from .inventory_service import credit_stock
from .sequence_service import allocate
from .transaction import lock_for_update, scoped_transaction


logger = logging.getLogger(__name__)


STATUS_DRAFT = "Draft"
STATUS_CONFIRMED = "Confirmed"
STATUS_RECEIVED = "Received"
STATUS_CANCELLED = "Cancelled"

ATTACHMENT_KINDS = {"document", "invoice", "delivery_note", "photo"}


def create_supplier(
    name: str,
    contact_person: str | None = None,
    phone: str | None = None,
    email: str | None = None,
    address: str | None = None,
) -> Supplier:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"field": "name"})

    with scoped_transaction():
        if db.session.query(Supplier.id).filter_by(name=name).first() is not None:
            raise InvalidState(f"Supplier '{name}' already exists", details={"name": name})
        supplier = Supplier(
            name=name,
            contact_person=contact_person,
            phone=phone,
            email=email,
            address=address,
        )
        db.session.add(supplier)
        db.session.flush()
    return supplier


def list_suppliers() -> list[Supplier]:
    return db.session.query(Supplier).order_by(Supplier.name.asc()).all()


def get_purchase_order(po_id: str, *, lock: bool = False) -> PurchaseOrder:
    query = db.session.query(PurchaseOrder).filter_by(id=po_id)
    if lock:
        query = lock_for_update(query)
    po = query.first()
    if po is None:
        raise NotFound("Purchase order not found", details={"po_id": po_id})
    return po


def list_purchase_orders(status: str | None = None, supplier_id: int | None = None) -> list[PurchaseOrder]:
    query = db.session.query(PurchaseOrder)
    if status:
        query = query.filter(PurchaseOrder.status == status)
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()


def create_purchase_order(
    supplier_id: int,
    items: list[dict],
    actor_id: int,
    expected_delivery=None,
    deadline=None,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Create a Draft PO.

    items: [{"product_id": ..., "quantity": ..., "notes": ...}]
    """
    if not items:
        raise ValidationError("Purchase order must contain at least one item", details={"field": "items"})

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object", details={"index": index})
        product_id = item.get("product_id")
        if product_id is None:
            raise ValidationError(f"items[{index}].product_id is required", details={"index": index})
        lines.append((product_id, coerce_quantity(item.get("quantity"), f"items[{index}].quantity"), item.get("notes")))

    if isinstance(expected_delivery, str):
        expected_delivery = parse_iso_datetime(expected_delivery)
    if isinstance(deadline, str):
        deadline = parse_iso_datetime(deadline)

    with scoped_transaction():
        if db.session.get(Supplier, supplier_id) is None:
            raise NotFound("Supplier not found", details={"supplier_id": supplier_id})

        wanted = {product_id for product_id, _, _ in lines}
        found = {row.id for row in db.session.query(Product.id).filter(Product.id.in_(wanted)).all()}
        missing = sorted(wanted - found)
        if missing:
            raise NotFound("Product(s) not found", details={"product_ids": missing})

        now = utcnow()
        po = PurchaseOrder(
            id=allocate("purchase_order"),
            supplier_id=supplier_id,
            status=STATUS_DRAFT,
            expected_delivery=expected_delivery,
            deadline=deadline,
            notes=notes,
            created_by_user_id=actor_id,
            created_at=now,
            updated_at=now,
        )
        db.session.add(po)
        db.session.flush()
        for product_id, qty, line_notes in lines:
            po.items.append(POItem(
                product_id=product_id,
                quantity_ordered=qty,
                quantity_received=0,
                notes=line_notes,
            ))
        db.session.flush()

    logger.info("Purchase order %s created for supplier %s", po.id, supplier_id)
    return po


def confirm_purchase_order(po_id: str) -> PurchaseOrder:
    with scoped_transaction():
        po = get_purchase_order(po_id, lock=True)
        if po.status != STATUS_DRAFT:
            raise InvalidTransition("purchase order", po.status, STATUS_CONFIRMED)
        now = utcnow()
        po.status = STATUS_CONFIRMED
        po.confirmed_at = now
        po.updated_at = now
    logger.info("Purchase order %s confirmed", po_id)
    return po


def cancel_purchase_order(po_id: str) -> PurchaseOrder:
    with scoped_transaction():
        po = get_purchase_order(po_id, lock=True)
        if po.status not in (STATUS_DRAFT, STATUS_CONFIRMED):
            raise InvalidTransition("purchase order", po.status, STATUS_CANCELLED)
        now = utcnow()
        po.status = STATUS_CANCELLED
        po.cancelled_at = now
        po.updated_at = now
    logger.info("Purchase order %s cancelled", po_id)
    return po


def receive_purchase_order(po_id: str, receipts: list[dict], actor_id: int) -> PurchaseOrder:
    """
    Record received quantities against a Confirmed PO.

    All lines are validated before stock moves; the PO auto-advances to
    Received once every item is fully received.

    Raises:
        InvalidState: PO is not Confirmed
        ValidationError: unknown PO item, bad quantity, empty receipt
        OverReceipt: a line exceeds what remains on its item
    """
    if not receipts:
        raise ValidationError("Receipt must contain at least one line", details={"field": "receipts"})

    with scoped_transaction():
        po = get_purchase_order(po_id, lock=True)
        if po.status != STATUS_CONFIRMED:
            raise InvalidState(
                "Only confirmed purchase orders can be received",
                details={"po_id": po_id, "status": po.status},
            )

        items = {item.id: item for item in po.items}
        planned: dict[int, int] = {}
        notes: dict[int, str] = {}
        for index, receipt in enumerate(receipts):
            if not isinstance(receipt, dict):
                raise ValidationError(f"receipts[{index}] must be an object", details={"index": index})
            item_id = receipt.get("po_item_id")
            if item_id not in items:
                raise ValidationError(
                    f"receipts[{index}].po_item_id does not belong to this purchase order",
                    details={"index": index, "po_item_id": item_id},
                )
            qty = coerce_quantity(receipt.get("quantity"), f"receipts[{index}].quantity", allow_zero=True)
            planned[item_id] = planned.get(item_id, 0) + qty
            if receipt.get("notes"):
                notes[item_id] = receipt["notes"]

        for item_id, qty in planned.items():
            item = items[item_id]
            if qty > item.quantity_remaining:
                raise OverReceipt(item_id, item.quantity_remaining, qty)

        received_units = 0
        for item_id, qty in planned.items():
            if qty == 0:
                continue
            item = items[item_id]
            product = lock_for_update(db.session.query(Product).filter_by(id=item.product_id)).one()
            item.quantity_received += qty
            if item_id in notes:
                item.notes = notes[item_id]
            credit_stock(
                product,
                qty,
                reason="PO_RECEIPT",
                po_item_id=item.id,
                actor_user_id=actor_id,
                note=f"PO {po.id}",
            )
            received_units += qty

        now = utcnow()
        if po.is_fully_received:
            po.status = STATUS_RECEIVED
            po.received_at = now
        po.updated_at = now
        db.session.flush()

    logger.info("Purchase order %s: received %d unit(s), status %s", po_id, received_units, po.status)
    return po


def add_attachment(
    po_id: str,
    file_path: str,
    original_name: str | None = None,
    kind: str = "document",
    uploaded_by_id: int | None = None,
) -> POAttachment:
    """Record a blob-store path against a PO. The upload itself happens before this call."""
    if not file_path:
        raise ValidationError("file_path is required", details={"field": "file_path"})
    if kind not in ATTACHMENT_KINDS:
        raise ValidationError(f"Unknown attachment kind '{kind}'", details={"kind": kind})

    with scoped_transaction():
        po = get_purchase_order(po_id, lock=True)
        attachment = POAttachment(
            file_path=file_path,
            original_name=original_name,
            kind=kind,
            uploaded_by_id=uploaded_by_id,
            uploaded_at=utcnow(),
        )
        po.attachments.append(attachment)
        db.session.flush()
    return attachment
