# Overview: Service-layer operations for orders; settlement, payments and status progression.

"""
Order Settlement

WHY: A sale must either happen completely or not at all. Settlement checks
stock and payment, then creates the order, decrements stock and records the
payments in one transaction. A failure at any step leaves no order row and
no stock change behind.

STATUS (forward-only):
pending_payment < partial_payment < paid < preparing < ready_for_pickup < completed
- cancelled is reachable from any non-terminal status
- completed, cancelled and returned are terminal
- preparing requires some payment; ready_for_pickup requires full payment

Settlement consumes stock; it never runs the demand-notice cascade.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Callable, Iterable

from flask import current_app

from ..errors import (
    InsufficientStock,
    InvalidState,
    InvalidTransition,
    NotFound,
    PaymentMismatch,
    ProductNotFound,
    ValidationError,
)
from ..extensions import db
from ..models import Order, OrderItem, OrderPayment
from ..time_utils import utcnow
from ..validation import MONEY_QUANTUM, coerce_money, coerce_quantity
from . import demand_notice_service
from .inventory_service import debit_stock, get_product, load_products_by_sku
from .sequence_service import allocate
from .transaction import lock_for_update, scoped_transaction


logger = logging.getLogger(__name__)


PAYMENT_METHODS = {"cash", "card", "bank_transfer", "advance_on_dn"}

STATUS_ORDER = [
    "pending_payment",
    "partial_payment",
    "paid",
    "preparing",
    "ready_for_pickup",
    "completed",
]
STATUS_RANK = {status: rank for rank, status in enumerate(STATUS_ORDER)}
TERMINAL_STATUSES = {"completed", "cancelled", "returned"}

DELIVERY_PICKUP_READY = "pickup_ready"
DELIVERY_PENDING = "pending_dispatch"


def _tolerance() -> Decimal:
    return Decimal(str(current_app.config.get("PAYMENT_TOLERANCE", "0.005")))


def _normalize_items(items) -> "OrderedDict[str, int]":
    """Validate lines and fold duplicate SKUs together, keeping first-seen order."""
    if not items:
        raise ValidationError("Order must contain at least one item", details={"field": "items"})

    lines: "OrderedDict[str, int]" = OrderedDict()
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object", details={"index": index})
        sku = item.get("sku")
        sku = sku.strip() if isinstance(sku, str) else ""
        if not sku:
            raise ValidationError(f"items[{index}].sku is required", details={"index": index})
        qty = coerce_quantity(item.get("quantity"), f"items[{index}].quantity")
        lines[sku] = lines.get(sku, 0) + qty
    return lines


def _normalize_payments(payments) -> list[dict]:
    if not payments:
        raise ValidationError("At least one payment is required", details={"field": "payments"})

    result = []
    for index, payment in enumerate(payments):
        if not isinstance(payment, dict):
            raise ValidationError(f"payments[{index}] must be an object", details={"index": index})
        method = payment.get("method")
        if method not in PAYMENT_METHODS:
            raise ValidationError(
                f"payments[{index}].method must be one of {sorted(PAYMENT_METHODS)}",
                details={"index": index, "method": method},
            )
        result.append({
            "method": method,
            "amount": coerce_money(payment.get("amount"), f"payments[{index}].amount"),
            "transaction_id": payment.get("transaction_id"),
            "notes": payment.get("notes"),
        })
    return result


def _derive_payment_status(total: Decimal, paid: Decimal) -> str:
    if paid + _tolerance() >= total:
        return "paid"
    if paid > 0:
        return "partial_payment"
    return "pending_payment"


def settle_order(
    items: Iterable[dict],
    payments: Iterable[dict],
    actor_id: int,
    *,
    pricing: Callable[[Decimal], tuple] | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
) -> Order:
    """
    Atomically settle a walk-in sale.

    items: [{"sku": ..., "quantity": ...}]
    payments: [{"method": ..., "amount": ..., "transaction_id": ...}]
    pricing: optional pure function subtotal -> (discount_amount, tax_amount)

    Raises:
        ValidationError: empty items/payments, bad quantities or amounts
        ProductNotFound: any SKU is unknown
        InsufficientStock: first line whose quantity exceeds stock on hand
        PaymentMismatch: payments do not add up to the total
    """
    lines = _normalize_items(list(items or []))
    payment_rows = _normalize_payments(list(payments or []))

    with scoped_transaction():
        products = load_products_by_sku(lines.keys(), lock=True)
        missing = [sku for sku in lines if sku not in products]
        if missing:
            raise ProductNotFound(missing)

        # Fail fast before anything is written
        for sku, qty in lines.items():
            product = products[sku]
            if product.quantity_in_stock < qty:
                raise InsufficientStock(sku, product.quantity_in_stock, qty)

        subtotal = sum(
            (Decimal(products[sku].price) * qty for sku, qty in lines.items()),
            Decimal("0"),
        ).quantize(MONEY_QUANTUM)

        discount = tax = Decimal("0")
        if pricing is not None:
            discount, tax = pricing(subtotal)
            discount = Decimal(str(discount)).quantize(MONEY_QUANTUM)
            tax = Decimal(str(tax)).quantize(MONEY_QUANTUM)
        total = (subtotal - discount + tax).quantize(MONEY_QUANTUM)

        paid = sum((p["amount"] for p in payment_rows), Decimal("0"))
        if abs(paid - total) > _tolerance():
            raise PaymentMismatch(total, paid)

        now = utcnow()
        order = Order(
            id=allocate("invoice"),
            status="completed",
            delivery_status=DELIVERY_PICKUP_READY,
            subtotal=subtotal,
            discount_amount=discount,
            tax_amount=tax,
            total_amount=total,
            customer_name=customer_name,
            customer_phone=customer_phone,
            created_by_user_id=actor_id,
            created_at=now,
            updated_at=now,
        )
        db.session.add(order)
        db.session.flush()

        for sku, qty in lines.items():
            product = products[sku]
            order.items.append(OrderItem(
                product_id=product.id,
                sku=product.sku,
                name=product.name,
                unit_price=product.price,
                quantity=qty,
                line_total=(Decimal(product.price) * qty).quantize(MONEY_QUANTUM),
            ))
            debit_stock(product, qty, reason="SALE", order_id=order.id, actor_user_id=actor_id)

        for row in payment_rows:
            order.payments.append(OrderPayment(
                method=row["method"],
                amount=row["amount"],
                transaction_id=row["transaction_id"],
                notes=row["notes"],
                cashier_id=actor_id,
                paid_at=now,
            ))
        db.session.flush()

    logger.info("Order %s settled: %d line(s), total %s", order.id, len(lines), total)
    return order


def get_order(order_id: str, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFound("Order not found", details={"order_id": order_id})
    return order


def list_orders(status: str | None = None, limit: int = 100) -> list[Order]:
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


def convert_demand_notice_to_order(notice_id: str, actor_id: int) -> Order:
    """
    Turn a stocked demand notice into an order at the agreed price.

    Stock for the full requested quantity is reserved now; advance payments
    taken on the notice are carried over as advance_on_dn payments.
    """
    with scoped_transaction():
        notice = demand_notice_service.get_demand_notice(notice_id, lock=True)
        if notice.linked_order_id:
            raise InvalidState(
                "Demand notice is already linked to an order",
                details={"notice_id": notice_id, "order_id": notice.linked_order_id},
            )
        if notice.status not in (demand_notice_service.STATUS_FULL, demand_notice_service.STATUS_NOTIFIED):
            raise InvalidTransition("demand notice", notice.status, demand_notice_service.STATUS_ORDER_PROCESSING)
        if notice.product_id is None:
            raise InvalidState("Demand notice is not linked to a product", details={"notice_id": notice_id})

        product = get_product(notice.product_id, lock=True)
        qty = notice.quantity_requested
        unit_price = Decimal(notice.agreed_price).quantize(MONEY_QUANTUM)
        total = (unit_price * qty).quantize(MONEY_QUANTUM)

        now = utcnow()
        order = Order(
            id=allocate("invoice"),
            status="pending_payment",
            delivery_status=DELIVERY_PENDING,
            subtotal=total,
            discount_amount=Decimal("0"),
            tax_amount=Decimal("0"),
            total_amount=total,
            customer_phone=notice.customer_contact_number,
            created_by_user_id=actor_id,
            linked_demand_notice_id=notice.id,
            created_at=now,
            updated_at=now,
        )
        db.session.add(order)
        db.session.flush()

        order.items.append(OrderItem(
            product_id=product.id,
            sku=product.sku,
            name=notice.product_name,
            unit_price=unit_price,
            quantity=qty,
            line_total=total,
        ))
        debit_stock(product, qty, reason="SALE", order_id=order.id, actor_user_id=actor_id)

        paid = Decimal("0")
        for advance in notice.payments:
            order.payments.append(OrderPayment(
                method="advance_on_dn",
                amount=advance.amount,
                transaction_id=advance.transaction_id,
                notes=f"Advance ({advance.method}) on {notice.id}",
                cashier_id=actor_id,
                paid_at=advance.paid_at,
            ))
            paid += Decimal(advance.amount)

        order.status = _derive_payment_status(total, paid)
        notice.linked_order_id = order.id
        notice.status = (
            demand_notice_service.STATUS_FULFILLED
            if order.status == "paid"
            else demand_notice_service.STATUS_ORDER_PROCESSING
        )
        notice.updated_at = now
        db.session.flush()

    logger.info("Demand notice %s converted to order %s", notice_id, order.id)
    return order


def add_order_payment(
    order_id: str,
    method: str,
    amount,
    actor_id: int,
    transaction_id: str | None = None,
    notes: str | None = None,
) -> Order:
    """
    Append a payment to an unpaid order and re-derive its payment status.

    Overpayment beyond the tolerance is rejected with PaymentMismatch.
    """
    if method not in PAYMENT_METHODS - {"advance_on_dn"}:
        raise ValidationError(f"Unknown payment method '{method}'", details={"method": method})
    amount = coerce_money(amount, "amount")

    with scoped_transaction():
        order = get_order(order_id, lock=True)
        if order.status not in ("pending_payment", "partial_payment"):
            raise InvalidState(
                "Payments can only be added to an unpaid order",
                details={"order_id": order_id, "status": order.status},
            )

        total = Decimal(order.total_amount)
        paid = Decimal(order.total_paid) + amount
        if paid - total > _tolerance():
            raise PaymentMismatch(total, paid)

        now = utcnow()
        order.payments.append(OrderPayment(
            method=method,
            amount=amount,
            transaction_id=transaction_id,
            notes=notes,
            cashier_id=actor_id,
            paid_at=now,
        ))
        order.status = _derive_payment_status(total, paid)
        order.updated_at = now

        if order.status == "paid" and order.linked_demand_notice_id:
            notice = demand_notice_service.get_demand_notice(order.linked_demand_notice_id, lock=True)
            notice.status = demand_notice_service.STATUS_FULFILLED
            notice.updated_at = now
        db.session.flush()

    logger.info("Payment of %s recorded on order %s (status %s)", amount, order_id, order.status)
    return order


def advance_order_status(order_id: str, new_status: str, actor_id: int) -> Order:
    """Move an order forward through its lifecycle, or cancel it."""
    if new_status not in STATUS_RANK and new_status != "cancelled":
        raise ValidationError(f"Unknown order status '{new_status}'", details={"status": new_status})

    with scoped_transaction():
        order = get_order(order_id, lock=True)
        current = order.status

        if current in TERMINAL_STATUSES:
            raise InvalidTransition("order", current, new_status)

        if new_status != "cancelled":
            if STATUS_RANK[new_status] <= STATUS_RANK[current]:
                raise InvalidTransition("order", current, new_status)

            paid = Decimal(order.total_paid)
            total = Decimal(order.total_amount)
            if new_status in ("paid", "preparing") and paid <= 0:
                raise InvalidState("Order has no payment yet", details={"order_id": order_id})
            if STATUS_RANK[new_status] >= STATUS_RANK["ready_for_pickup"] and paid + _tolerance() < total:
                raise InvalidState(
                    "Order must be fully paid first",
                    details={"order_id": order_id, "total": str(total), "paid": str(paid)},
                )
            if new_status == "paid" and paid + _tolerance() < total:
                raise InvalidState(
                    "Order is not fully paid",
                    details={"order_id": order_id, "total": str(total), "paid": str(paid)},
                )

        order.status = new_status
        if new_status == "ready_for_pickup":
            order.delivery_status = DELIVERY_PICKUP_READY
        order.updated_at = utcnow()

    logger.info("Order %s moved from %s to %s by user %s", order_id, current, new_status, actor_id)
    return order
