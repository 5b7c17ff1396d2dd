from __future__ import annotations

from ..extensions import db
from storeledger.time_utils import to_utc_z


class SeriesCounter(db.Model):
    """
    Per-series next-number counter.

    WHY: Replaces ad-hoc "max(id) + 1" numbering. The allocator reads,
    probes and advances this row inside the transaction that consumes the
    number, so allocation and insert commit (or roll back) together.

    INVARIANT: next_number never decreases; every number already issued for
    the series is below it.
    """
    __tablename__ = "series_counters"

    series_id = db.Column(db.String(32), primary_key=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "series_id": self.series_id,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
