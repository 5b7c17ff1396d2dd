# Overview: Per-series identifier allocation for orders, quotations, demand notices, POs and audits.

"""
Sequence Allocator

WHY: Identifiers are user-visible document numbers ("000042", "PO-000007").
They must be unique per series and strictly increasing even when two
requests allocate at the same time, and must survive rows that were seeded
or imported without touching the counter.

DESIGN:
- One SeriesCounter row per series holds next_number.
- allocate() runs inside the caller's transaction: the counter advance and
  the insert that consumes the identifier commit or roll back together.
- Candidates are probed against the owning table; a taken candidate is
  skipped (bounded by SEQUENCE_MAX_ATTEMPTS) rather than reused.
- Operators can move a counter forward with reseed(); never backwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidState, SequenceExhausted, ValidationError
from ..extensions import db
from ..models import Audit, DemandNotice, Order, PurchaseOrder, Quotation, SeriesCounter
from .authorization import authorize
from .transaction import lock_for_update, scoped_transaction


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Series:
    series_id: str
    model: type
    prefix: str = ""


SERIES: dict[str, Series] = {
    "invoice": Series("invoice", Order),
    "quotation": Series("quotation", Quotation, "QUO-"),
    "demand_notice": Series("demand_notice", DemandNotice, "DN-"),
    "purchase_order": Series("purchase_order", PurchaseOrder, "PO-"),
    "audit": Series("audit", Audit, "AUD-"),
}


def _series(series_id: str) -> Series:
    series = SERIES.get(series_id)
    if series is None:
        raise ValidationError(
            f"Unknown series '{series_id}'",
            details={"series_id": series_id, "known": sorted(SERIES)},
        )
    return series


def format_identifier(series_id: str, number: int) -> str:
    series = _series(series_id)
    width = current_app.config.get("SEQUENCE_PAD_WIDTH", 6)
    return f"{series.prefix}{number:0{width}d}"


def _load_counter(series_id: str) -> SeriesCounter:
    """Read the counter row under lock, creating it at 1 when absent."""
    counter = lock_for_update(
        db.session.query(SeriesCounter).filter_by(series_id=series_id)
    ).one_or_none()
    if counter is not None:
        return counter

    try:
        with db.session.begin_nested():
            db.session.add(SeriesCounter(series_id=series_id, next_number=1))
    except IntegrityError:
        # Another writer created it first
        pass

    return lock_for_update(
        db.session.query(SeriesCounter).filter_by(series_id=series_id)
    ).one()


def _is_taken(series: Series, identifier: str) -> bool:
    return (
        db.session.query(series.model.id)
        .filter(series.model.id == identifier)
        .first()
        is not None
    )


def allocate(series_id: str) -> str:
    """
    Allocate the next free identifier for a series.

    Must be consumed by an insert in the same transaction; if that
    transaction rolls back, the counter advance rolls back with it.

    Raises:
        ValidationError: unknown series
        SequenceExhausted: every probed candidate was already taken
    """
    series = _series(series_id)
    max_attempts = current_app.config.get("SEQUENCE_MAX_ATTEMPTS", 50)

    with scoped_transaction():
        counter = _load_counter(series_id)
        candidate = counter.next_number

        for _ in range(max_attempts):
            identifier = format_identifier(series_id, candidate)
            if not _is_taken(series, identifier):
                counter.next_number = candidate + 1
                db.session.flush()
                return identifier

            logger.warning("Series %s: identifier %s already taken, probing next", series_id, identifier)
            candidate += 1

        logger.error(
            "Series %s exhausted after %d attempts starting at %d",
            series_id, max_attempts, counter.next_number,
        )
        raise SequenceExhausted(series_id, max_attempts)


def next_identifier(series_id: str) -> str:
    """
    Allocate in a transaction of its own.

    Only useful when the identifier is consumed later; prefer allocate()
    inside the inserting transaction.
    """
    with scoped_transaction():
        return allocate(series_id)


def peek(series_id: str) -> int:
    """Current next_number for a series (1 when nothing was ever issued)."""
    _series(series_id)
    counter = db.session.get(SeriesCounter, series_id)
    return counter.next_number if counter else 1


def list_counters() -> list[dict]:
    rows = {c.series_id: c for c in db.session.query(SeriesCounter).all()}
    result = []
    for series_id, series in SERIES.items():
        counter = rows.get(series_id)
        next_number = counter.next_number if counter else 1
        result.append({
            "series_id": series_id,
            "prefix": series.prefix,
            "next_number": next_number,
            "next_identifier": format_identifier(series_id, next_number),
        })
    return result


def reseed(series_id: str, next_number: int, actor) -> SeriesCounter:
    """
    Move a series counter forward (operator recovery after SequenceExhausted).

    Raises:
        Forbidden: actor lacks the sequence.reseed capability
        ValidationError: unknown series or non-positive number
        InvalidState: next_number is below the current counter
    """
    _series(series_id)
    authorize(actor, "sequence.reseed")

    if isinstance(next_number, bool) or not isinstance(next_number, int) or next_number < 1:
        raise ValidationError("next_number must be a positive integer", details={"next_number": next_number})

    with scoped_transaction():
        counter = _load_counter(series_id)
        if next_number < counter.next_number:
            raise InvalidState(
                f"Counter for '{series_id}' cannot move backwards",
                details={"series_id": series_id, "current": counter.next_number, "requested": next_number},
            )
        previous = counter.next_number
        counter.next_number = next_number
        db.session.flush()

    logger.info(
        "Series %s reseeded from %d to %d by user %s",
        series_id, previous, next_number, actor.user_id,
    )
    return counter
