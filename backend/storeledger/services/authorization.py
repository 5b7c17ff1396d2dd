# Overview: Capability checks keyed by (actor, action, resource).

"""
Capability-based authorization

WHY: Role checks used to be inline conditionals at each call site
("admin, or manager holding X"). Every decision now goes through one
policy table keyed by action, so a rule changes in one place.

DESIGN PRINCIPLES:
- Fail closed: an unknown action is denied
- Identity is supplied by the caller (authentication is external)
- Resource-scoped rules receive the resource (e.g. an Audit) and may
  inspect its owner fields
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from ..errors import Forbidden, NotFound
from ..extensions import db
from ..models import User


logger = logging.getLogger(__name__)


ROLES = {"admin", "manager", "cashier", "salesperson", "storekeeper", "auditor", "logistics"}

# Granular grants carried in users.permissions
GRANTS = {"manage_audits", "manage_scm", "manage_inventory"}


@dataclass(frozen=True)
class Actor:
    """Pre-authenticated identity the ledger authorizes against."""
    user_id: int
    role: str
    permissions: frozenset = field(default_factory=frozenset)

    def has(self, grant: str) -> bool:
        return grant in self.permissions

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def actor_for_user(user_id: int) -> Actor:
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise NotFound("User not found", details={"user_id": user_id})
    return Actor(user_id=user.id, role=user.role, permissions=frozenset(user.permissions or []))


def _admin_or_manager_with(grant: str) -> Callable[[Actor, Any], bool]:
    def rule(actor: Actor, resource: Any) -> bool:
        return actor.is_admin or (actor.role == "manager" and actor.has(grant))
    return rule


def _assigned_auditor(actor: Actor, audit: Any) -> bool:
    return audit is not None and audit.auditor_id == actor.user_id


def _audit_viewer(actor: Actor, audit: Any) -> bool:
    return _admin_or_manager_with("manage_audits")(actor, audit) or _assigned_auditor(actor, audit)


def _quotation_converter(actor: Actor, quotation: Any) -> bool:
    if actor.role in ("admin", "manager"):
        return True
    return quotation is not None and quotation.salesperson_id == actor.user_id


def _scm_manager(actor: Actor, resource: Any) -> bool:
    if actor.is_admin:
        return True
    return actor.role in ("manager", "logistics") and actor.has("manage_scm")


def _supervisor(actor: Actor, resource: Any) -> bool:
    return actor.role in ("admin", "manager")


def _inventory_manager(actor: Actor, resource: Any) -> bool:
    if actor.role in ("admin", "manager"):
        return True
    return actor.role == "storekeeper" or actor.has("manage_inventory")


POLICIES: dict[str, Callable[[Actor, Any], bool]] = {
    "audit.manage": _admin_or_manager_with("manage_audits"),
    "audit.conduct": _assigned_auditor,
    "audit.view": _audit_viewer,
    "quotation.convert": _quotation_converter,
    "purchase_order.manage": _scm_manager,
    "inventory.manage": _inventory_manager,
    "sequence.reseed": lambda actor, resource: actor.is_admin,
    "break.view_others": _supervisor,
    "attendance.view_others": _supervisor,
}


def can(actor: Actor, action: str, resource: Any = None) -> bool:
    rule = POLICIES.get(action)
    if rule is None or actor is None:
        return False
    return bool(rule(actor, resource))


def authorize(actor: Actor, action: str, resource: Any = None, message: str | None = None) -> None:
    """Raise Forbidden unless the actor may perform action on resource."""
    if not can(actor, action, resource):
        logger.info(
            "Denied %s for user %s (role=%s)",
            action,
            getattr(actor, "user_id", None),
            getattr(actor, "role", None),
        )
        raise Forbidden(action, message)
