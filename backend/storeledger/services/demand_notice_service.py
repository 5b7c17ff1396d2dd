# Overview: Service-layer operations for demand notices; owns the stock-arrival cascade.

"""
Demand-Notice Cascade

WHY: A salesperson records customer demand for something that is out of
stock. When stock arrives (a new product with opening stock, a PO receipt,
a positive adjustment), every open notice for that SKU is re-evaluated so
staff can call the customer back.

LIFECYCLE:
- pending_review: new product requested, not yet in the catalog proper
- awaiting_stock: nothing allocated yet
- partial_stock_available / full_stock_available: set by the cascade
- customer_notified_stock: staff called the customer
- order_processing: converted into an order
- fulfilled / cancelled: terminal

ALLOCATION POLICIES:
- independent: every open notice is credited with the full arrived quantity.
  This is the historically observed behaviour and over-allocates when several
  notices compete for the same stock.
- depleting: arrived quantity is a shared pool consumed oldest notice first.

The cascade never commits on its own; it joins the transaction of the
stock mutation that triggered it.
"""

from __future__ import annotations

import logging
import uuid

from flask import current_app

from ..errors import InvalidState, InvalidTransition, NotFound, ValidationError
from ..extensions import db
from ..models import DemandNotice, DemandNoticePayment, Product
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import coerce_money, coerce_quantity
from .sequence_service import allocate
from .transaction import lock_for_update, scoped_transaction


logger = logging.getLogger(__name__)


ALLOCATION_INDEPENDENT = "independent"
ALLOCATION_DEPLETING = "depleting"
ALLOCATION_POLICIES = {ALLOCATION_INDEPENDENT, ALLOCATION_DEPLETING}

STATUS_PENDING_REVIEW = "pending_review"
STATUS_AWAITING_STOCK = "awaiting_stock"
STATUS_PARTIAL = "partial_stock_available"
STATUS_FULL = "full_stock_available"
STATUS_NOTIFIED = "customer_notified_stock"
STATUS_ORDER_PROCESSING = "order_processing"
STATUS_FULFILLED = "fulfilled"
STATUS_CANCELLED = "cancelled"

# States the cascade is allowed to touch
OPEN_STATUSES = (STATUS_AWAITING_STOCK, STATUS_PENDING_REVIEW, STATUS_PARTIAL)

TERMINAL_STATUSES = {STATUS_FULFILLED, STATUS_CANCELLED}

PAYMENT_METHODS = {"cash", "card", "bank_transfer"}


def fulfillment_status(quantity_requested: int, quantity_fulfilled: int) -> str:
    """Cascade status as a pure function of the fulfillment ratio."""
    if quantity_fulfilled >= quantity_requested:
        return STATUS_FULL
    if quantity_fulfilled > 0:
        return STATUS_PARTIAL
    return STATUS_AWAITING_STOCK


def _resolve_policy(policy: str | None) -> str:
    if policy is None:
        policy = current_app.config.get("DEMAND_ALLOCATION_POLICY", ALLOCATION_INDEPENDENT)
    if policy not in ALLOCATION_POLICIES:
        raise ValidationError(
            f"Unknown allocation policy '{policy}'",
            details={"policy": policy, "known": sorted(ALLOCATION_POLICIES)},
        )
    return policy


def on_stock_arrived(
    product_sku: str,
    product_id: int | None,
    arrived_qty: int,
    policy: str | None = None,
) -> list[DemandNotice]:
    """
    Re-allocate open demand for a SKU after stock arrives.

    Notices are processed oldest first (created_at, then id). Joins the
    caller's transaction; returns the notices that were updated.
    """
    policy = _resolve_policy(policy)
    if arrived_qty <= 0:
        return []

    with scoped_transaction():
        notices = lock_for_update(
            db.session.query(DemandNotice)
            .filter(
                DemandNotice.product_sku == product_sku,
                DemandNotice.status.in_(OPEN_STATUSES),
            )
            .order_by(DemandNotice.created_at.asc(), DemandNotice.id.asc())
        ).all()

        pool = arrived_qty
        now = utcnow()
        updated = []
        for notice in notices:
            if policy == ALLOCATION_DEPLETING:
                if pool <= 0:
                    break
                wanted = notice.quantity_requested - notice.quantity_fulfilled
                take = min(wanted, pool)
                pool -= take
                new_fulfilled = notice.quantity_fulfilled + take
            else:
                new_fulfilled = min(notice.quantity_requested, notice.quantity_fulfilled + arrived_qty)

            notice.quantity_fulfilled = new_fulfilled
            notice.status = STATUS_FULL if new_fulfilled >= notice.quantity_requested else STATUS_PARTIAL
            if product_id is not None:
                notice.product_id = product_id
            notice.updated_at = now
            updated.append(notice)

        db.session.flush()

    if updated:
        logger.info(
            "Stock arrival of %d for %s updated %d demand notice(s) (policy=%s)",
            arrived_qty, product_sku, len(updated), policy,
        )
    return updated


def get_demand_notice(notice_id: str, *, lock: bool = False) -> DemandNotice:
    query = db.session.query(DemandNotice).filter_by(id=notice_id)
    if lock:
        query = lock_for_update(query)
    notice = query.first()
    if notice is None:
        raise NotFound("Demand notice not found", details={"notice_id": notice_id})
    return notice


def list_demand_notices(status: str | None = None, salesperson_id: int | None = None) -> list[DemandNotice]:
    query = db.session.query(DemandNotice)
    if status:
        query = query.filter(DemandNotice.status == status)
    if salesperson_id is not None:
        query = query.filter(DemandNotice.salesperson_id == salesperson_id)
    return query.order_by(DemandNotice.created_at.desc(), DemandNotice.id.desc()).all()


def create_placeholder_product(sku: str | None, name: str, price) -> Product:
    """Zero-stock catalog row for an item a customer asked for that we never stocked."""
    sku = (sku or "").strip() or f"NEW-{uuid.uuid4().hex[:8].upper()}"
    if db.session.query(Product.id).filter_by(sku=sku).first() is not None:
        raise InvalidState(f"SKU '{sku}' already exists", details={"sku": sku})
    product = Product(
        sku=sku,
        name=name,
        price=price,
        quantity_in_stock=0,
        is_demand_notice_product=True,
    )
    db.session.add(product)
    db.session.flush()
    return product


def create_demand_notice(
    *,
    salesperson_id: int,
    customer_contact_number: str,
    quantity_requested,
    agreed_price,
    product_sku: str | None = None,
    product_name: str | None = None,
    is_new_product: bool = False,
    expected_availability_date=None,
    notes: str | None = None,
    source_quotation_id: str | None = None,
    advance_payment: dict | None = None,
) -> DemandNotice:
    """
    Record customer demand.

    Existing product: the notice waits for stock (awaiting_stock).
    New product: a zero-stock placeholder product is created and the notice
    is queued for admin review (pending_review).
    """
    contact = (customer_contact_number or "").strip()
    if not contact:
        raise ValidationError("customer_contact_number is required", details={"field": "customer_contact_number"})
    quantity = coerce_quantity(quantity_requested, "quantity_requested")
    price = coerce_money(agreed_price, "agreed_price", allow_zero=True)
    if isinstance(expected_availability_date, str):
        expected_availability_date = parse_iso_datetime(expected_availability_date)

    with scoped_transaction():
        if is_new_product:
            name = (product_name or "").strip()
            if not name:
                raise ValidationError("product_name is required for a new product", details={"field": "product_name"})
            product = create_placeholder_product(product_sku, name, price)
            status = STATUS_PENDING_REVIEW
        else:
            if not product_sku:
                raise ValidationError("product_sku is required", details={"field": "product_sku"})
            product = db.session.query(Product).filter_by(sku=product_sku).first()
            if product is None:
                raise NotFound("Product not found", details={"sku": product_sku})
            status = STATUS_AWAITING_STOCK

        now = utcnow()
        notice = DemandNotice(
            id=allocate("demand_notice"),
            salesperson_id=salesperson_id,
            customer_contact_number=contact,
            product_id=product.id,
            product_name=product.name,
            product_sku=product.sku,
            quantity_requested=quantity,
            quantity_fulfilled=0,
            agreed_price=price,
            expected_availability_date=expected_availability_date,
            status=status,
            is_new_product=bool(is_new_product),
            source_quotation_id=source_quotation_id,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        db.session.add(notice)
        db.session.flush()

        if advance_payment:
            _append_payment(notice, advance_payment.get("method"), advance_payment.get("amount"),
                            advance_payment.get("transaction_id"))

    logger.info("Demand notice %s created for %s x%d", notice.id, notice.product_sku, quantity)
    return notice


def _append_payment(notice: DemandNotice, method, amount, transaction_id=None) -> DemandNoticePayment:
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"Unknown payment method '{method}'", details={"method": method})
    payment = DemandNoticePayment(
        notice_id=notice.id,
        method=method,
        amount=coerce_money(amount, "amount"),
        transaction_id=transaction_id,
        paid_at=utcnow(),
    )
    notice.payments.append(payment)
    notice.updated_at = payment.paid_at
    db.session.flush()
    return payment


def add_demand_notice_payment(notice_id: str, method: str, amount, transaction_id: str | None = None) -> DemandNoticePayment:
    """Take an advance payment against an open notice."""
    with scoped_transaction():
        notice = get_demand_notice(notice_id, lock=True)
        if notice.status in TERMINAL_STATUSES or notice.linked_order_id:
            raise InvalidState(
                "Payments can only be added to an open demand notice",
                details={"notice_id": notice_id, "status": notice.status},
            )
        payment = _append_payment(notice, method, amount, transaction_id)
    return payment


def mark_customer_notified(notice_id: str) -> DemandNotice:
    with scoped_transaction():
        notice = get_demand_notice(notice_id, lock=True)
        if notice.status not in (STATUS_PARTIAL, STATUS_FULL):
            raise InvalidTransition("demand notice", notice.status, STATUS_NOTIFIED)
        notice.status = STATUS_NOTIFIED
        notice.updated_at = utcnow()
    return notice


def cancel_demand_notice(notice_id: str) -> DemandNotice:
    with scoped_transaction():
        notice = get_demand_notice(notice_id, lock=True)
        if notice.status in TERMINAL_STATUSES or notice.status == STATUS_ORDER_PROCESSING:
            raise InvalidTransition("demand notice", notice.status, STATUS_CANCELLED)
        notice.status = STATUS_CANCELLED
        notice.updated_at = utcnow()
    logger.info("Demand notice %s cancelled", notice_id)
    return notice
