# Overview: Service-layer operations for quotations and their conversion into demand notices.

"""
Quotations

LIFECYCLE: draft -> sent -> accepted | rejected; accepted -> converted

Items flagged is_external are not carried in the catalog. Once the customer
accepts, each unconverted external item becomes an awaiting_stock demand
notice (with a placeholder product when the SKU is unknown) so the
stock-arrival cascade picks it up later. Stocked items become one
pending_payment order instead. The quotation turns converted once no item
is left unconverted.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from decimal import Decimal

from ..errors import InsufficientStock, InvalidState, InvalidTransition, NotFound, ProductNotFound, ValidationError
from ..extensions import db
from ..models import DemandNotice, Order, OrderItem, Product, Quotation, QuotationItem
from ..time_utils import utcnow
from ..validation import MONEY_QUANTUM, coerce_money, coerce_quantity
from .authorization import authorize
from .demand_notice_service import STATUS_AWAITING_STOCK, create_placeholder_product
from .inventory_service import debit_stock, load_products_by_sku
from .sequence_service import allocate
from .transaction import lock_for_update, scoped_transaction


logger = logging.getLogger(__name__)


TRANSITIONS = {
    "draft": {"sent", "rejected"},
    "sent": {"accepted", "rejected"},
    "accepted": set(),
    "rejected": set(),
    # Reached only through conversion
    "converted": set(),
}


def get_quotation(quotation_id: str, *, lock: bool = False) -> Quotation:
    query = db.session.query(Quotation).filter_by(id=quotation_id)
    if lock:
        query = lock_for_update(query)
    quotation = query.first()
    if quotation is None:
        raise NotFound("Quotation not found", details={"quotation_id": quotation_id})
    return quotation


def list_quotations(salesperson_id: int | None = None) -> list[Quotation]:
    query = db.session.query(Quotation)
    if salesperson_id is not None:
        query = query.filter(Quotation.salesperson_id == salesperson_id)
    return query.order_by(Quotation.created_at.desc(), Quotation.id.desc()).all()


def create_quotation(
    salesperson_id: int,
    customer_name: str | None,
    customer_phone: str | None,
    items: list[dict],
    notes: str | None = None,
) -> Quotation:
    if not items:
        raise ValidationError("Quotation must contain at least one item", details={"field": "items"})

    rows = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object", details={"index": index})
        name = item.get("product_name")
        name = name.strip() if isinstance(name, str) else ""
        if not name:
            raise ValidationError(f"items[{index}].product_name is required", details={"index": index})
        sku = item.get("product_sku")
        if sku is not None and not isinstance(sku, str):
            raise ValidationError(f"items[{index}].product_sku must be a string", details={"index": index})
        rows.append(QuotationItem(
            product_sku=(sku or "").strip() or None,
            product_name=name,
            quantity=coerce_quantity(item.get("quantity"), f"items[{index}].quantity"),
            price=coerce_money(item.get("price"), f"items[{index}].price", allow_zero=True),
            is_external=bool(item.get("is_external", False)),
        ))

    total = sum((Decimal(r.price) * r.quantity for r in rows), Decimal("0")).quantize(MONEY_QUANTUM)

    with scoped_transaction():
        now = utcnow()
        quotation = Quotation(
            id=allocate("quotation"),
            salesperson_id=salesperson_id,
            customer_name=customer_name,
            customer_phone=customer_phone,
            notes=notes,
            status="draft",
            total_amount=total,
            created_at=now,
            updated_at=now,
        )
        quotation.items.extend(rows)
        db.session.add(quotation)
        db.session.flush()

    logger.info("Quotation %s created with %d item(s)", quotation.id, len(rows))
    return quotation


def set_quotation_status(quotation_id: str, status: str) -> Quotation:
    if status not in TRANSITIONS:
        raise ValidationError(f"Unknown quotation status '{status}'", details={"status": status})

    with scoped_transaction():
        quotation = get_quotation(quotation_id, lock=True)
        if status not in TRANSITIONS[quotation.status]:
            raise InvalidTransition("quotation", quotation.status, status)
        quotation.status = status
        quotation.updated_at = utcnow()
    return quotation


def _require_accepted(quotation: Quotation) -> None:
    if quotation.status != "accepted":
        raise InvalidState(
            "Only accepted quotations can be converted",
            details={"quotation_id": quotation.id, "status": quotation.status},
        )


def _close_if_fully_converted(quotation: Quotation, now) -> None:
    quotation.updated_at = now
    if all(item.converted for item in quotation.items):
        quotation.status = "converted"


def convert_quotation_to_demand_notices(quotation_id: str, actor) -> list[DemandNotice]:
    """
    Create one awaiting_stock demand notice per unconverted external item.

    Raises:
        Forbidden: actor is neither the owning salesperson nor a manager/admin
        InvalidState: quotation not accepted, or nothing left to convert
    """
    with scoped_transaction():
        quotation = get_quotation(quotation_id, lock=True)
        authorize(actor, "quotation.convert", quotation)
        _require_accepted(quotation)

        pending = [i for i in quotation.items if i.is_external and not i.converted]
        if not pending:
            raise InvalidState(
                "Quotation has no external items left to convert",
                details={"quotation_id": quotation_id},
            )

        now = utcnow()
        notices = []
        for item in pending:
            product = None
            if item.product_sku:
                product = db.session.query(Product).filter_by(sku=item.product_sku).first()
            if product is None:
                product = create_placeholder_product(item.product_sku, item.product_name, item.price)

            notice = DemandNotice(
                id=allocate("demand_notice"),
                salesperson_id=quotation.salesperson_id,
                customer_contact_number=quotation.customer_phone or "",
                product_id=product.id,
                product_name=item.product_name,
                product_sku=product.sku,
                quantity_requested=item.quantity,
                quantity_fulfilled=0,
                agreed_price=item.price,
                status=STATUS_AWAITING_STOCK,
                is_new_product=product.is_demand_notice_product,
                source_quotation_id=quotation.id,
                notes=f"From quotation {quotation.id}",
                created_at=now,
                updated_at=now,
            )
            db.session.add(notice)
            db.session.flush()
            item.converted = True
            notices.append(notice)

        _close_if_fully_converted(quotation, now)

    logger.info("Quotation %s converted into %d demand notice(s)", quotation_id, len(notices))
    return notices


def convert_quotation_to_order(quotation_id: str, actor) -> Order:
    """
    Turn the stocked (non-external) unconverted items into one pending_payment
    order at the quoted prices.

    Every line is checked against stock before anything is written, so a short
    line leaves the quotation, the catalog and the invoice series untouched.

    Raises:
        Forbidden: actor is neither the owning salesperson nor a manager/admin
        InvalidState: quotation not accepted, or no stocked items left
        ProductNotFound: a stocked item's SKU is not in the catalog
        InsufficientStock: first SKU whose quoted quantity exceeds stock on hand
    """
    with scoped_transaction():
        quotation = get_quotation(quotation_id, lock=True)
        authorize(actor, "quotation.convert", quotation)
        _require_accepted(quotation)

        pending = [i for i in quotation.items if not i.is_external and not i.converted]
        if not pending:
            raise InvalidState(
                "Quotation has no stocked items left to convert",
                details={"quotation_id": quotation_id},
            )

        products = load_products_by_sku((i.product_sku for i in pending if i.product_sku), lock=True)
        missing = [i.product_sku or i.product_name for i in pending if i.product_sku not in products]
        if missing:
            raise ProductNotFound(missing)

        demanded: "OrderedDict[str, int]" = OrderedDict()
        for item in pending:
            demanded[item.product_sku] = demanded.get(item.product_sku, 0) + item.quantity
        for sku, qty in demanded.items():
            if products[sku].quantity_in_stock < qty:
                raise InsufficientStock(sku, products[sku].quantity_in_stock, qty)

        total = sum((Decimal(i.price) * i.quantity for i in pending), Decimal("0")).quantize(MONEY_QUANTUM)

        now = utcnow()
        order = Order(
            id=allocate("invoice"),
            status="pending_payment",
            delivery_status="pending_dispatch",
            subtotal=total,
            discount_amount=Decimal("0"),
            tax_amount=Decimal("0"),
            total_amount=total,
            customer_name=quotation.customer_name,
            customer_phone=quotation.customer_phone,
            created_by_user_id=actor.user_id,
            source_quotation_id=quotation.id,
            created_at=now,
            updated_at=now,
        )
        db.session.add(order)
        db.session.flush()

        for item in pending:
            product = products[item.product_sku]
            unit_price = Decimal(item.price).quantize(MONEY_QUANTUM)
            order.items.append(OrderItem(
                product_id=product.id,
                sku=product.sku,
                name=item.product_name,
                unit_price=unit_price,
                quantity=item.quantity,
                line_total=(unit_price * item.quantity).quantize(MONEY_QUANTUM),
            ))
            debit_stock(product, item.quantity, reason="SALE", order_id=order.id, actor_user_id=actor.user_id)
            item.converted = True

        _close_if_fully_converted(quotation, now)
        db.session.flush()

    logger.info("Quotation %s converted into order %s (%d line(s))", quotation_id, order.id, len(pending))
    return order
