from __future__ import annotations

from ..extensions import db
from storeledger.time_utils import to_utc_z


class BreakLog(db.Model):
    """
    One break taken by a staff member.

    LIFECYCLE:
    - OPEN: start_time set, end_time NULL; the user's active_break_id points here
    - CLOSED: end_time and duration_ms set; the pointer is cleared

    INVARIANT: a user has at most one OPEN break, and it is exactly the row
    referenced by users.active_break_id.
    """
    __tablename__ = "break_logs"
    __table_args__ = (
        db.Index("ix_break_logs_user_start", "user_id", "start_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    # Milliseconds between start_time and end_time; set when the break closes
    duration_ms = db.Column(db.Integer, nullable=True)

    user = db.relationship(
        "User",
        foreign_keys=[user_id],
        backref=db.backref("break_logs", lazy="dynamic"),
    )

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time) if self.end_time else None,
            "duration_ms": self.duration_ms,
            "is_open": self.is_open,
        }


class AttendanceLog(db.Model):
    """
    A staff member's clock-in for one working day.

    INVARIANT: at most one row per (user_id, work_date); work_date is the UTC
    calendar day of clocked_in_at.
    """
    __tablename__ = "attendance_logs"
    __table_args__ = (
        db.UniqueConstraint("user_id", "work_date", name="uq_attendance_user_day"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    work_date = db.Column(db.Date, nullable=False)
    clocked_in_at = db.Column(db.DateTime(timezone=True), nullable=False)

    # manual | selfie
    method = db.Column(db.String(16), nullable=False)
    selfie_path = db.Column(db.String(512), nullable=True)

    user = db.relationship("User", backref=db.backref("attendance_logs", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "work_date": self.work_date.isoformat(),
            "clocked_in_at": to_utc_z(self.clocked_in_at),
            "method": self.method,
            "selfie_path": self.selfie_path,
        }
