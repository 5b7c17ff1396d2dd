from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import ValidationError


# Amounts are held to three decimal places (e.g. OMR baisa)
MONEY_QUANTUM = Decimal("0.001")

# Upper bound keeps Numeric(12, 3) columns from overflowing
MAX_MONEY = Decimal("999999999.999")


def coerce_quantity(value: Any, field: str, *, allow_zero: bool = False) -> int:
    """
    Strict integer coercion for stock quantities.

    Rejects bools, floats, decimals in strings and scientific notation so a
    quantity of "1e3" or 2.5 can never reach the ledger.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer", details={"field": field})

    if isinstance(value, int):
        qty = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer", details={"field": field})
        try:
            qty = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", details={"field": field})
    else:
        raise ValidationError(f"{field} must be an integer", details={"field": field})

    if qty < 0 or (qty == 0 and not allow_zero):
        bound = "non-negative" if allow_zero else "positive"
        raise ValidationError(f"{field} must be {bound}", details={"field": field, "value": qty})
    return qty


def coerce_money(value: Any, field: str, *, allow_zero: bool = False) -> Decimal:
    """Parse a currency amount into a quantized Decimal."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", details={"field": field})

    try:
        # str() first so floats like 0.1 keep their printed value
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", details={"field": field})

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number", details={"field": field})

    amount = amount.quantize(MONEY_QUANTUM)
    if amount < 0 or (amount == 0 and not allow_zero):
        bound = "non-negative" if allow_zero else "positive"
        raise ValidationError(f"{field} must be {bound}", details={"field": field, "value": str(amount)})
    if amount > MAX_MONEY:
        raise ValidationError(f"{field} exceeds maximum allowed", details={"field": field})
    return amount


def money_str(value: Decimal | None) -> str | None:
    """Render a stored amount for JSON payloads."""
    if value is None:
        return None
    return str(Decimal(value).quantize(MONEY_QUANTUM))


def require_fields(data: dict, fields: list[str]) -> None:
    """Raise ValidationError naming every missing or blank field."""
    missing = [f for f in fields if data.get(f) in (None, "", [])]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={"missing": missing},
        )
