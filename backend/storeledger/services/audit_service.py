# Overview: Service-layer operations for stock audits; count recording and all-or-nothing completion.

"""
Audit Lifecycle & Reconciliation

LIFECYCLE:
1. draft: created by an admin/manager with the product lines to count
2. in_progress: started by the assigned auditor (optional selfie path)
3. completed: counts reconciled (terminal, no reopening)

RECONCILIATION:
- Each AuditItem owns an append-only list of AuditItemCount events.
- final_audited_qty = sum of the item's counts, written only at completion.
- Completion finalizes every item and flips the status in one transaction;
  a failure leaves every item exactly as it was.

Only the assigned auditor may start, count or complete an audit.
"""

from __future__ import annotations

import logging

from ..errors import InvalidState, InvalidTransition, NotFound, ValidationError
from ..extensions import db
from ..models import Audit, AuditEvidence, AuditItem, AuditItemCount, Product, User
from ..time_utils import utcnow
from ..validation import coerce_quantity
from .authorization import authorize, can
from .sequence_service import allocate
from .transaction import lock_for_update, scoped_transaction


logger = logging.getLogger(__name__)


STATUS_DRAFT = "draft"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"


def get_audit(audit_id: str, *, lock: bool = False) -> Audit:
    query = db.session.query(Audit).filter_by(id=audit_id)
    if lock:
        query = lock_for_update(query)
    audit = query.first()
    if audit is None:
        raise NotFound("Audit not found", details={"audit_id": audit_id})
    return audit


def list_audits(actor, status: str | None = None) -> list[Audit]:
    """Audit managers see every audit; everyone else sees the ones assigned to them."""
    query = db.session.query(Audit)
    if not can(actor, "audit.manage"):
        query = query.filter(Audit.auditor_id == actor.user_id)
    if status:
        query = query.filter(Audit.status == status)
    return query.order_by(Audit.created_at.desc(), Audit.id.desc()).all()


def create_audit(
    title: str,
    auditor_id: int,
    store_location: str | None,
    items: list[int],
    actor,
) -> Audit:
    """
    Launch an audit over a set of products.

    items: product ids; each line snapshots the product's current stock.
    """
    authorize(actor, "audit.manage")

    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required", details={"field": "title"})
    if not items:
        raise ValidationError("Audit must cover at least one product", details={"field": "items"})

    product_ids = list(dict.fromkeys(items))

    with scoped_transaction():
        auditor = db.session.get(User, auditor_id)
        if auditor is None or not auditor.is_active:
            raise NotFound("Auditor not found", details={"auditor_id": auditor_id})

        products = {
            p.id: p for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
        }
        missing = [pid for pid in product_ids if pid not in products]
        if missing:
            raise NotFound("Product(s) not found", details={"product_ids": missing})

        now = utcnow()
        audit = Audit(
            id=allocate("audit"),
            title=title,
            admin_id=actor.user_id,
            auditor_id=auditor_id,
            store_location=store_location,
            status=STATUS_DRAFT,
            created_at=now,
        )
        db.session.add(audit)
        db.session.flush()

        for pid in product_ids:
            product = products[pid]
            audit.items.append(AuditItem(
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                current_stock=product.quantity_in_stock,
            ))
        db.session.flush()

    logger.info("Audit %s created with %d item(s), assigned to user %s", audit.id, len(product_ids), auditor_id)
    return audit


def check_can_start(audit: Audit, actor) -> None:
    authorize(actor, "audit.conduct", audit, "Only the assigned auditor can start this audit")
    if audit.status != STATUS_DRAFT:
        raise InvalidTransition("audit", audit.status, STATUS_IN_PROGRESS)


def check_can_count(audit: Audit, actor) -> None:
    authorize(actor, "audit.conduct", audit, "Only the assigned auditor can record counts")
    if audit.status != STATUS_IN_PROGRESS:
        raise InvalidState(
            "Counts can only be recorded while the audit is in progress",
            details={"audit_id": audit.id, "status": audit.status},
        )


def start_audit(audit_id: str, actor, selfie_path: str | None = None) -> Audit:
    with scoped_transaction():
        audit = get_audit(audit_id, lock=True)
        check_can_start(audit, actor)
        audit.status = STATUS_IN_PROGRESS
        audit.started_at = utcnow()
        if selfie_path:
            audit.selfie_path = selfie_path

    logger.info("Audit %s started by user %s", audit_id, actor.user_id)
    return audit


def record_count(
    audit_id: str,
    audit_item_id: int,
    actor,
    count,
    notes: str | None = None,
    evidence_paths=(),
) -> AuditItemCount:
    """Append one count event (with optional evidence paths) to an audit line."""
    count = coerce_quantity(count, "count", allow_zero=True)

    with scoped_transaction():
        audit = get_audit(audit_id, lock=True)
        check_can_count(audit, actor)

        item = db.session.query(AuditItem).filter_by(id=audit_item_id, audit_id=audit.id).first()
        if item is None:
            raise NotFound("Audit item not found", details={"audit_id": audit_id, "audit_item_id": audit_item_id})

        now = utcnow()
        event = AuditItemCount(
            count=count,
            notes=notes,
            counted_by_id=actor.user_id,
            counted_at=now,
        )
        for path in evidence_paths or ():
            event.evidence.append(AuditEvidence(file_path=path, uploaded_at=now))
        item.counts.append(event)
        db.session.flush()

    return event


def complete_audit(audit_id: str, actor) -> Audit:
    """
    Reconcile every line and close the audit.

    Raises:
        Forbidden: actor is not the assigned auditor
        InvalidState: audit is not in_progress
    """
    with scoped_transaction():
        audit = get_audit(audit_id, lock=True)
        authorize(actor, "audit.conduct", audit, "Only the assigned auditor can complete this audit")
        if audit.status != STATUS_IN_PROGRESS:
            raise InvalidState(
                "Only an in-progress audit can be completed",
                details={"audit_id": audit_id, "status": audit.status},
            )

        for item in audit.items:
            item.final_audited_qty = item.counted_total

        audit.status = STATUS_COMPLETED
        audit.completed_at = utcnow()
        db.session.flush()

    logger.info("Audit %s completed by user %s (%d item(s))", audit_id, actor.user_id, len(audit.items))
    return audit
