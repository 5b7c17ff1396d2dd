"""
Concurrency tests against a file-backed SQLite database.

Each worker thread pushes its own app context (and so its own session and
connection); BEGIN IMMEDIATE serializes the writers.
"""

import threading

import pytest

from storeledger import create_app
from storeledger.errors import AlreadyClockedIn, AlreadyOnBreak, InsufficientStock
from storeledger.extensions import db
from storeledger.models import AttendanceLog, BreakLog, Order, Product, User
from storeledger.services import break_service, inventory_service, order_service, sequence_service


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'ledger.sqlite3'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 15, "check_same_thread": False}},
        "UPLOAD_ROOT": str(tmp_path / "uploads"),
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def _run_concurrently(app, target, count):
    """Run target(index) in `count` threads; returns (results, errors) keyed by index."""
    results, errors = {}, {}
    barrier = threading.Barrier(count)

    def worker(index):
        with app.app_context():
            barrier.wait()
            try:
                results[index] = target(index)
            except Exception as exc:
                errors[index] = exc
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results, errors


class TestConcurrentAllocation:

    def test_identifiers_are_unique(self, file_app):
        results, errors = _run_concurrently(
            file_app, lambda _: sequence_service.next_identifier("invoice"), 3
        )

        assert errors == {}
        assert set(results.values()) == {"000001", "000002", "000003"}
        with file_app.app_context():
            assert sequence_service.peek("invoice") == 4


class TestConcurrentSettlement:

    def test_stock_never_oversold(self, file_app):
        with file_app.app_context():
            cashier = User(username="cashier", role="cashier", permissions=[])
            db.session.add(cashier)
            db.session.commit()
            cashier_id = cashier.id
            inventory_service.create_product("SKU-1", "Widget", "10.000", 5)

        def buy(_):
            return order_service.settle_order(
                [{"sku": "SKU-1", "quantity": 3}],
                [{"method": "cash", "amount": "30"}],
                cashier_id,
            ).id

        results, errors = _run_concurrently(file_app, buy, 2)

        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(next(iter(errors.values())), InsufficientStock)
        with file_app.app_context():
            assert db.session.query(Product).filter_by(sku="SKU-1").one().quantity_in_stock == 2
            assert db.session.query(Order).count() == 1


class TestConcurrentBreaks:

    def test_one_open_break_per_user(self, file_app):
        with file_app.app_context():
            user = User(username="cashier", role="cashier", permissions=[])
            db.session.add(user)
            db.session.commit()
            user_id = user.id

        results, errors = _run_concurrently(file_app, lambda _: break_service.start_break(user_id).id, 3)

        assert len(results) == 1
        assert all(isinstance(e, AlreadyOnBreak) for e in errors.values())
        with file_app.app_context():
            assert db.session.query(BreakLog).filter_by(user_id=user_id).count() == 1
            assert db.session.get(User, user_id).active_break_id == next(iter(results.values()))


class TestConcurrentClockIn:

    def test_one_clock_in_per_day(self, file_app):
        with file_app.app_context():
            user = User(username="cashier", role="cashier", permissions=[])
            db.session.add(user)
            db.session.commit()
            user_id = user.id

        results, errors = _run_concurrently(file_app, lambda _: break_service.clock_in(user_id, "manual").id, 3)

        assert len(results) == 1
        assert len(errors) == 2
        assert all(isinstance(e, AlreadyClockedIn) for e in errors.values())
        with file_app.app_context():
            assert db.session.query(AttendanceLog).filter_by(user_id=user_id).count() == 1
