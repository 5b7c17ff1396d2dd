"""
Break and attendance guard tests.

Verifies:
- One open break per user, mirrored by users.active_break_id
- end_break records duration and clears the pointer
- A second end_break (or another user's end) fails and changes nothing
- One clock-in per user per working day
"""

from datetime import date, datetime, timedelta

import pytest

from storeledger.errors import AlreadyClockedIn, AlreadyOnBreak, BreakNotActive, NotFound, ValidationError
from storeledger.extensions import db
from storeledger.models import AttendanceLog, BreakLog, User
from storeledger.services import break_service


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock(datetime(2026, 3, 1, 9, 0, 0))
    monkeypatch.setattr("storeledger.services.break_service.utcnow", fake)
    return fake


class TestStartBreak:

    def test_opens_break(self, db_session, cashier):
        brk = break_service.start_break(cashier.id)

        assert brk.is_open
        assert db.session.get(User, cashier.id).active_break_id == brk.id
        assert break_service.get_active_break(cashier.id).id == brk.id

    def test_second_start_rejected(self, db_session, cashier):
        first = break_service.start_break(cashier.id)

        with pytest.raises(AlreadyOnBreak) as exc:
            break_service.start_break(cashier.id)

        assert exc.value.break_id == first.id
        assert db.session.query(BreakLog).filter_by(user_id=cashier.id).count() == 1

    def test_users_are_independent(self, db_session, cashier, salesperson):
        break_service.start_break(cashier.id)
        brk = break_service.start_break(salesperson.id)
        assert brk.user_id == salesperson.id

    def test_unknown_user(self, db_session):
        with pytest.raises(NotFound):
            break_service.start_break(4242)


class TestEndBreak:

    def test_records_duration(self, db_session, cashier, clock):
        brk = break_service.start_break(cashier.id)
        clock.advance(minutes=15, milliseconds=250)

        ended = break_service.end_break(brk.id, cashier.id)

        assert ended.duration_ms == 900250
        assert ended.duration_ms > 0
        assert not ended.is_open
        assert db.session.get(User, cashier.id).active_break_id is None
        assert break_service.get_active_break(cashier.id) is None

    def test_second_end_rejected(self, db_session, cashier, clock):
        brk = break_service.start_break(cashier.id)
        clock.advance(minutes=5)
        first_end = break_service.end_break(brk.id, cashier.id).end_time

        clock.advance(minutes=5)
        with pytest.raises(BreakNotActive):
            break_service.end_break(brk.id, cashier.id)

        assert db.session.get(BreakLog, brk.id).end_time == first_end

    def test_other_user_cannot_end(self, db_session, cashier, salesperson):
        brk = break_service.start_break(cashier.id)

        with pytest.raises(BreakNotActive):
            break_service.end_break(brk.id, salesperson.id)

        assert break_service.get_active_break(cashier.id).id == brk.id

    def test_new_break_after_ending(self, db_session, cashier):
        brk = break_service.start_break(cashier.id)
        break_service.end_break(brk.id, cashier.id)

        again = break_service.start_break(cashier.id)

        assert again.id != brk.id
        assert {b.id for b in break_service.list_breaks(cashier.id)} == {again.id, brk.id}


class TestClockIn:

    def test_manual_clock_in(self, db_session, cashier, clock):
        log = break_service.clock_in(cashier.id, "manual")

        assert log.work_date == date(2026, 3, 1)
        assert log.clocked_in_at == clock.now
        assert log.selfie_path is None
        assert break_service.get_attendance_today(cashier.id).id == log.id

    def test_second_clock_in_same_day_rejected(self, db_session, cashier, clock):
        first = break_service.clock_in(cashier.id, "manual")
        clock.advance(hours=8)

        with pytest.raises(AlreadyClockedIn) as exc:
            break_service.clock_in(cashier.id, "selfie", selfie_path="attendance-1/late.jpg")

        assert exc.value.log_id == first.id
        assert exc.value.http_status == 409
        assert db.session.query(AttendanceLog).filter_by(user_id=cashier.id).count() == 1

    def test_next_day_allowed(self, db_session, cashier, clock):
        break_service.clock_in(cashier.id, "manual")
        clock.advance(days=1)

        log = break_service.clock_in(cashier.id, "selfie", selfie_path="attendance-1/me.jpg")

        assert log.work_date == date(2026, 3, 2)
        assert log.selfie_path == "attendance-1/me.jpg"
        assert [a.work_date for a in break_service.list_attendance(cashier.id)] == [
            date(2026, 3, 2),
            date(2026, 3, 1),
        ]

    def test_users_are_independent(self, db_session, cashier, salesperson, clock):
        break_service.clock_in(cashier.id, "manual")
        assert break_service.clock_in(salesperson.id, "manual").user_id == salesperson.id

    def test_selfie_method_needs_selfie(self, db_session, cashier):
        with pytest.raises(ValidationError):
            break_service.clock_in(cashier.id, "selfie")
        assert break_service.get_attendance_today(cashier.id) is None

    def test_unknown_method(self, db_session, cashier):
        with pytest.raises(ValidationError):
            break_service.clock_in(cashier.id, "fingerprint")

    def test_unknown_user(self, db_session):
        with pytest.raises(NotFound):
            break_service.clock_in(4242, "manual")
