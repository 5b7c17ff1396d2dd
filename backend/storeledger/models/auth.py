from __future__ import annotations

from ..extensions import db
from storeledger.time_utils import to_utc_z


class User(db.Model):
    """
    Store staff account.

    Authentication lives outside the ledger; this row only carries the
    identity the ledger authorizes against (role + granted permissions)
    and the active break pointer.

    ROLES: admin, manager, cashier, salesperson, storekeeper, auditor, logistics

    ACTIVE BREAK POINTER:
    active_break_id references the user's single open BreakLog row or is NULL.
    It is written in the same transaction as the BreakLog row it points at.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_role_active", "role", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True)
    display_name = db.Column(db.String(255), nullable=True)

    role = db.Column(db.String(32), nullable=False, default="cashier", index=True)

    # Granular grants layered over the role, e.g. ["manage_audits", "manage_scm"]
    permissions = db.Column(db.JSON, nullable=False, default=list)

    active_break_id = db.Column(
        db.Integer,
        db.ForeignKey("break_logs.id", use_alter=True, name="fk_users_active_break"),
        nullable=True,
    )

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "display_name": self.display_name,
            "role": self.role,
            "permissions": list(self.permissions or []),
            "active_break_id": self.active_break_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
