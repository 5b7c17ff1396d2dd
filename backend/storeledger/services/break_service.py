# Overview: Service-layer operations for staff breaks and attendance; one open break per user, one clock-in per day.

"""
Break / Attendance Guard

WHY: A staff member can be on at most one break at a time, even when the
"start break" button is pressed twice from two tills at once. Likewise a
staff member clocks in at most once per (UTC) working day.

DESIGN:
- The user row is locked first, so concurrent start requests for the same
  user serialize on it.
- The open BreakLog row and users.active_break_id are written in the same
  transaction and never diverge.
- end_break needs an exact (break id, owner) match on an open break; a
  second end_break on the same id fails with BreakNotActive and leaves the
  recorded end_time untouched.
- clock_in takes the same user lock, so two terminals clocking the same
  user in concurrently produce one AttendanceLog for the day and one
  AlreadyClockedIn.
"""

from __future__ import annotations

import logging

from ..errors import AlreadyClockedIn, AlreadyOnBreak, BreakNotActive, NotFound, ValidationError
from ..extensions import db
from ..models import AttendanceLog, BreakLog, User
from ..time_utils import elapsed_ms, utcnow
from .transaction import lock_for_update, scoped_transaction


logger = logging.getLogger(__name__)


ATTENDANCE_METHODS = {"manual", "selfie"}


def _lock_user(user_id: int) -> User:
    user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
    if user is None:
        raise NotFound("User not found", details={"user_id": user_id})
    return user


def _open_break(user_id: int) -> BreakLog | None:
    return (
        db.session.query(BreakLog)
        .filter(BreakLog.user_id == user_id, BreakLog.end_time.is_(None))
        .order_by(BreakLog.id.desc())
        .first()
    )


def get_active_break(user_id: int) -> BreakLog | None:
    return _open_break(user_id)


def list_breaks(user_id: int | None = None, limit: int = 100) -> list[BreakLog]:
    query = db.session.query(BreakLog)
    if user_id is not None:
        query = query.filter(BreakLog.user_id == user_id)
    return query.order_by(BreakLog.start_time.desc(), BreakLog.id.desc()).limit(limit).all()


def start_break(user_id: int) -> BreakLog:
    """
    Open a break for the user.

    Raises:
        NotFound: unknown user
        AlreadyOnBreak: the user already has an open break
    """
    with scoped_transaction():
        user = _lock_user(user_id)
        existing = _open_break(user_id)
        if existing is not None:
            raise AlreadyOnBreak(user_id, existing.id)

        brk = BreakLog(user_id=user_id, start_time=utcnow())
        db.session.add(brk)
        db.session.flush()
        user.active_break_id = brk.id

    logger.info("User %s started break %s", user_id, brk.id)
    return brk


def end_break(break_id: int, user_id: int) -> BreakLog:
    """
    Close the user's open break and record its duration.

    Raises:
        BreakNotActive: no open break with this id belongs to the user
    """
    with scoped_transaction():
        user = _lock_user(user_id)
        brk = (
            db.session.query(BreakLog)
            .filter(
                BreakLog.id == break_id,
                BreakLog.user_id == user_id,
                BreakLog.end_time.is_(None),
            )
            .first()
        )
        if brk is None:
            raise BreakNotActive(
                "No active break found for this user",
                details={"break_id": break_id, "user_id": user_id},
            )

        end = utcnow()
        brk.end_time = end
        brk.duration_ms = elapsed_ms(brk.start_time, end)
        if user.active_break_id == brk.id:
            user.active_break_id = None
        db.session.flush()

    logger.info("User %s ended break %s after %d ms", user_id, break_id, brk.duration_ms)
    return brk


def get_attendance(user_id: int, work_date) -> AttendanceLog | None:
    return (
        db.session.query(AttendanceLog)
        .filter(AttendanceLog.user_id == user_id, AttendanceLog.work_date == work_date)
        .first()
    )


def get_attendance_today(user_id: int) -> AttendanceLog | None:
    return get_attendance(user_id, utcnow().date())


def list_attendance(user_id: int | None = None, limit: int = 100) -> list[AttendanceLog]:
    query = db.session.query(AttendanceLog)
    if user_id is not None:
        query = query.filter(AttendanceLog.user_id == user_id)
    return query.order_by(AttendanceLog.clocked_in_at.desc(), AttendanceLog.id.desc()).limit(limit).all()


def clock_in(user_id: int, method: str, selfie_path: str | None = None) -> AttendanceLog:
    """
    Record the user's clock-in for today.

    selfie_path is a blob store path saved by the caller before this runs.

    Raises:
        ValidationError: unknown method, or a selfie clock-in without a selfie
        NotFound: unknown user
        AlreadyClockedIn: the user already has a clock-in for today
    """
    if method not in ATTENDANCE_METHODS:
        raise ValidationError(
            f"method must be one of {sorted(ATTENDANCE_METHODS)}",
            details={"method": method},
        )
    if method == "selfie" and not selfie_path:
        raise ValidationError("A selfie clock-in needs a selfie", details={"field": "selfie"})

    with scoped_transaction():
        _lock_user(user_id)
        now = utcnow()
        existing = get_attendance(user_id, now.date())
        if existing is not None:
            raise AlreadyClockedIn(user_id, now.date(), existing.id)

        log = AttendanceLog(
            user_id=user_id,
            work_date=now.date(),
            clocked_in_at=now,
            method=method,
            selfie_path=selfie_path,
        )
        db.session.add(log)
        db.session.flush()

    logger.info("User %s clocked in (%s) as attendance %s", user_id, method, log.id)
    return log
