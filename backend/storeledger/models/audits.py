from __future__ import annotations

from ..extensions import db
from storeledger.time_utils import to_utc_z


class Audit(db.Model):
    """
    Stock-count campaign assigned to one auditor.

    LIFECYCLE:
    - draft: created by an admin/manager, items snapshotted
    - in_progress: started by the assigned auditor, counts being recorded
    - completed: counts reconciled into final_audited_qty (terminal, no reopening)

    WHY: Multiple counts per item (recounts, separate shelves) are kept as
    append-only events; the final quantity is only materialized once, at
    completion, so an in-flight audit never shows a half-reconciled figure.
    """
    __tablename__ = "audits"
    __table_args__ = (
        db.Index("ix_audits_auditor_status", "auditor_id", "status"),
    )

    id = db.Column(db.String(32), primary_key=True)
    title = db.Column(db.String(255), nullable=False)

    admin_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    auditor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    store_location = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    selfie_path = db.Column(db.String(512), nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    items = db.relationship(
        "AuditItem", backref="audit", lazy=True, order_by="AuditItem.id", cascade="all, delete-orphan"
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "admin_id": self.admin_id,
            "auditor_id": self.auditor_id,
            "store_location": self.store_location,
            "status": self.status,
            "selfie_path": self.selfie_path,
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class AuditItem(db.Model):
    """
    One product line under an audit.

    current_stock is the on-hand snapshot taken when the audit was created.
    final_audited_qty stays NULL until the audit completes.
    """
    __tablename__ = "audit_items"
    __table_args__ = (
        db.UniqueConstraint("audit_id", "product_id", name="uq_audit_items_audit_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    audit_id = db.Column(db.String(32), db.ForeignKey("audits.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=False)
    current_stock = db.Column(db.Integer, nullable=False)

    final_audited_qty = db.Column(db.Integer, nullable=True)

    counts = db.relationship(
        "AuditItemCount", backref="item", lazy=True, order_by="AuditItemCount.id", cascade="all, delete-orphan"
    )

    @property
    def counted_total(self) -> int:
        return sum(c.count for c in self.counts)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "audit_id": self.audit_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "current_stock": self.current_stock,
            "counted_total": self.counted_total,
            "final_audited_qty": self.final_audited_qty,
            "counts": [c.to_dict() for c in self.counts],
        }


class AuditItemCount(db.Model):
    """Append-only count event recorded by the auditor."""
    __tablename__ = "audit_item_counts"
    __table_args__ = (
        db.CheckConstraint("count >= 0", name="ck_audit_item_counts_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    audit_item_id = db.Column(db.Integer, db.ForeignKey("audit_items.id"), nullable=False, index=True)

    count = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    counted_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    counted_at = db.Column(db.DateTime(timezone=True), nullable=False)

    evidence = db.relationship(
        "AuditEvidence", backref="count_event", lazy=True, order_by="AuditEvidence.id", cascade="all, delete-orphan"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "audit_item_id": self.audit_item_id,
            "count": self.count,
            "notes": self.notes,
            "counted_by_id": self.counted_by_id,
            "counted_at": to_utc_z(self.counted_at),
            "evidence": [e.file_path for e in self.evidence],
        }


class AuditEvidence(db.Model):
    __tablename__ = "audit_evidence"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    audit_item_count_id = db.Column(
        db.Integer, db.ForeignKey("audit_item_counts.id"), nullable=False, index=True
    )
    file_path = db.Column(db.String(512), nullable=False)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False)
