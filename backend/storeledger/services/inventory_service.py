# Overview: Service-layer operations for the stock ledger; owns every quantity_in_stock mutation.

"""
Stock Ledger Invariants (authoritative)

Stock model:
- products.quantity_in_stock is the single source of truth for on-hand quantity.
- It is only changed by debit_stock / credit_stock, and each change writes a
  StockMovement row (reason + cause reference) in the same transaction.

Business invariants:
- On-hand quantity may never go negative (checked here, enforced again by a
  CHECK constraint on the table).
- SALE debits reference the order; PO_RECEIPT credits reference the PO item.
- Arrivals (INITIAL with positive stock, PO_RECEIPT, positive ADJUST) run the
  demand-notice cascade inside the same transaction, so stock and demand
  notices are never out of step.
- Consumption (SALE) never triggers the cascade.
"""

from __future__ import annotations

import logging

from ..errors import InsufficientStock, InvalidState, NotFound, ValidationError
from ..extensions import db
from ..models import Product, StockMovement
from ..time_utils import utcnow
from ..validation import coerce_money, coerce_quantity
from .demand_notice_service import on_stock_arrived
from .transaction import lock_for_update, scoped_transaction


logger = logging.getLogger(__name__)


MOVEMENT_REASONS = {"INITIAL", "SALE", "PO_RECEIPT", "ADJUST"}

EDITABLE_FIELDS = {"name", "price", "category", "low_stock_threshold", "image_path"}


def _record_movement(
    product: Product,
    reason: str,
    delta: int,
    *,
    order_id: str | None = None,
    po_item_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    if reason not in MOVEMENT_REASONS:
        raise ValidationError(f"Unknown movement reason '{reason}'")
    movement = StockMovement(
        product_id=product.id,
        reason=reason,
        quantity_delta=delta,
        quantity_after=product.quantity_in_stock,
        order_id=order_id,
        po_item_id=po_item_id,
        actor_user_id=actor_user_id,
        note=note,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    return movement


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFound("Product not found", details={"product_id": product_id})
    return product


def get_product_by_sku(sku: str, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(sku=sku)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFound("Product not found", details={"sku": sku})
    return product


def load_products_by_sku(skus, *, lock: bool = False) -> dict[str, Product]:
    """Batch read keyed by SKU; missing SKUs are simply absent from the result."""
    wanted = sorted(set(skus))
    if not wanted:
        return {}
    query = db.session.query(Product).filter(Product.sku.in_(wanted))
    if lock:
        query = lock_for_update(query)
    return {p.sku: p for p in query.all()}


def list_products(search: str | None = None, category: str | None = None) -> list[Product]:
    query = db.session.query(Product)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    if category:
        query = query.filter(Product.category == category)
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def list_movements(product_id: int) -> list[StockMovement]:
    product = get_product(product_id)
    return product.movements.order_by(StockMovement.id.asc()).all()


def debit_stock(
    product: Product,
    quantity: int,
    *,
    reason: str = "SALE",
    order_id: str | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    """
    Decrease on-hand stock. Caller holds the transaction and the row lock.

    Raises:
        InsufficientStock: quantity exceeds what is on hand
    """
    if quantity > product.quantity_in_stock:
        raise InsufficientStock(product.sku, product.quantity_in_stock, quantity)
    product.quantity_in_stock -= quantity
    return _record_movement(
        product, reason, -quantity,
        order_id=order_id, actor_user_id=actor_user_id, note=note,
    )


def credit_stock(
    product: Product,
    quantity: int,
    *,
    reason: str = "PO_RECEIPT",
    po_item_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
    cascade: bool = True,
) -> StockMovement:
    """
    Increase on-hand stock and run the demand-notice cascade for the arrival.

    Caller holds the transaction; the cascade joins it.
    """
    product.quantity_in_stock += quantity
    movement = _record_movement(
        product, reason, quantity,
        po_item_id=po_item_id, actor_user_id=actor_user_id, note=note,
    )
    if cascade and quantity > 0:
        db.session.flush()
        on_stock_arrived(product.sku, product.id, quantity)
    return movement


def create_product(
    sku: str,
    name: str,
    price,
    quantity_in_stock=0,
    *,
    category: str | None = None,
    low_stock_threshold=None,
    image_path: str | None = None,
    actor_user_id: int | None = None,
) -> Product:
    """
    Create a product with its opening stock.

    A positive opening stock counts as an arrival for any demand notices
    already waiting on this SKU.
    """
    sku = (sku or "").strip()
    name = (name or "").strip()
    if not sku:
        raise ValidationError("sku is required", details={"field": "sku"})
    if not name:
        raise ValidationError("name is required", details={"field": "name"})
    price = coerce_money(price, "price", allow_zero=True)
    opening = coerce_quantity(quantity_in_stock, "quantity_in_stock", allow_zero=True)
    threshold = None
    if low_stock_threshold is not None:
        threshold = coerce_quantity(low_stock_threshold, "low_stock_threshold", allow_zero=True)

    with scoped_transaction():
        if db.session.query(Product.id).filter_by(sku=sku).first() is not None:
            raise InvalidState(f"SKU '{sku}' already exists", details={"sku": sku})

        product = Product(
            sku=sku,
            name=name,
            category=category,
            price=price,
            quantity_in_stock=0,
            low_stock_threshold=threshold,
            image_path=image_path,
        )
        db.session.add(product)
        db.session.flush()

        if opening > 0:
            credit_stock(product, opening, reason="INITIAL", actor_user_id=actor_user_id)

    logger.info("Product %s created with opening stock %d", sku, opening)
    return product


def update_product(product_id: int, **fields) -> Product:
    """Edit catalog fields. Stock is not editable here; use adjust_stock."""
    if "quantity_in_stock" in fields:
        raise ValidationError("quantity_in_stock can only change through stock adjustments")
    unknown = sorted(set(fields) - EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown product field(s): {', '.join(unknown)}", details={"fields": unknown})

    with scoped_transaction():
        product = get_product(product_id, lock=True)
        if "name" in fields:
            name = (fields["name"] or "").strip()
            if not name:
                raise ValidationError("name is required", details={"field": "name"})
            product.name = name
        if "price" in fields:
            product.price = coerce_money(fields["price"], "price", allow_zero=True)
        if "category" in fields:
            product.category = fields["category"]
        if "low_stock_threshold" in fields:
            value = fields["low_stock_threshold"]
            product.low_stock_threshold = (
                None if value is None else coerce_quantity(value, "low_stock_threshold", allow_zero=True)
            )
        if "image_path" in fields:
            product.image_path = fields["image_path"]
        product.updated_at = utcnow()
    return product


def adjust_stock(product_id: int, delta, actor_user_id: int | None = None, note: str | None = None) -> Product:
    """
    Manual stock correction.

    Negative deltas may not take stock below zero; positive deltas are
    arrivals and run the cascade.
    """
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta must be an integer", details={"field": "delta"})
    if delta == 0:
        raise ValidationError("delta must be non-zero", details={"field": "delta"})

    with scoped_transaction():
        product = get_product(product_id, lock=True)
        if delta < 0:
            debit_stock(product, -delta, reason="ADJUST", actor_user_id=actor_user_id, note=note)
        else:
            credit_stock(product, delta, reason="ADJUST", actor_user_id=actor_user_id, note=note)

    logger.info("Stock for %s adjusted by %d (now %d)", product.sku, delta, product.quantity_in_stock)
    return product
