# Overview: Typed failures raised by the ledger services and rendered by the API layer.

"""
Ledger error taxonomy.

Every service raises a subclass of LedgerError. The scoped transaction rolls
back before the error leaves the service, so a caller that sees one of these
knows nothing was written.

- kind: stable machine-readable name, used in API payloads
- http_status: status the API layer answers with
- details: offending identifiers / quantities for a precise user message
- retryable: only StoreUnavailable may be retried without user correction
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all ledger failures."""
    kind = "ledger_error"
    http_status = 400
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.kind,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class ValidationError(LedgerError):
    """Malformed input (missing fields, non-positive quantities, unknown series)."""
    kind = "validation_error"


class NotFound(LedgerError):
    kind = "not_found"
    http_status = 404


class ProductNotFound(NotFound):
    kind = "product_not_found"

    def __init__(self, skus: list[str]):
        super().__init__(
            f"Product(s) not found: {', '.join(skus)}",
            details={"skus": list(skus)},
        )
        self.skus = list(skus)


class BreakNotActive(NotFound):
    """No open break matches the (break id, user) pair; also the second end_break."""
    kind = "break_not_active"


class InvalidState(LedgerError):
    kind = "invalid_state"
    http_status = 409


class InvalidTransition(InvalidState):
    kind = "invalid_transition"

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            f"Cannot move {entity} from '{current}' to '{target}'",
            details={"entity": entity, "current": current, "target": target},
        )


class InsufficientStock(LedgerError):
    kind = "insufficient_stock"
    http_status = 409

    def __init__(self, sku: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {sku}. Available: {available}, Requested: {requested}",
            details={"sku": sku, "available": available, "requested": requested},
        )
        self.sku = sku
        self.available = available
        self.requested = requested


class OverReceipt(LedgerError):
    kind = "over_receipt"
    http_status = 409

    def __init__(self, po_item_id: int, remaining: int, requested: int):
        super().__init__(
            f"Cannot receive {requested} for PO item {po_item_id}; only {remaining} remaining",
            details={"po_item_id": po_item_id, "remaining": remaining, "requested": requested},
        )
        self.po_item_id = po_item_id
        self.remaining = remaining
        self.requested = requested


class PaymentMismatch(LedgerError):
    kind = "payment_mismatch"

    def __init__(self, expected, actual):
        super().__init__(
            f"Total payment amount ({actual}) does not match order total ({expected})",
            details={"expected": str(expected), "actual": str(actual)},
        )
        self.expected = expected
        self.actual = actual


class Forbidden(LedgerError):
    kind = "forbidden"
    http_status = 403

    def __init__(self, action: str, message: str | None = None):
        super().__init__(message or f"Not allowed to perform '{action}'", details={"action": action})
        self.action = action


class AlreadyOnBreak(LedgerError):
    kind = "already_on_break"
    http_status = 409

    def __init__(self, user_id: int, break_id: int):
        super().__init__(
            "User is already on an active break",
            details={"user_id": user_id, "break_id": break_id},
        )
        self.user_id = user_id
        self.break_id = break_id


class SequenceExhausted(LedgerError):
    """Probe bound reached: rows exist beyond the counter. Needs an operator, not a retry."""
    kind = "sequence_exhausted"
    http_status = 500

    def __init__(self, series_id: str, attempts: int):
        super().__init__(
            f"Failed to allocate a unique identifier for series '{series_id}' after {attempts} attempts",
            details={"series_id": series_id, "attempts": attempts},
        )
        self.series_id = series_id
        self.attempts = attempts


class StoreUnavailable(LedgerError):
    kind = "store_unavailable"
    http_status = 503
    retryable = True


class AlreadyClockedIn(LedgerError):
    kind = "already_clocked_in"
    http_status = 409

    def __init__(self, user_id: int, work_date, log_id: int):
        super().__init__(
            "User already clocked in today",
            details={"user_id": user_id, "work_date": work_date.isoformat(), "attendance_id": log_id},
        )
        self.user_id = user_id
        self.work_date = work_date
        self.log_id = log_id
