"""
Pytest fixtures for store ledger backend tests.

Provides test database setup, staff fixtures, products and a test client.
"""

import pytest

from storeledger import create_app
from storeledger.extensions import db
from storeledger.models import User
from storeledger.services import inventory_service
from storeledger.services.authorization import Actor, actor_for_user


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'UPLOAD_ROOT': str(tmp_path_factory.mktemp('uploads')),
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, username, role, permissions=None) -> User:
    user = User(username=username, display_name=username.title(), role=role, permissions=permissions or [])
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session):
    return _make_user(db_session, "admin", "admin")


@pytest.fixture(scope='function')
def manager(db_session):
    """Manager holding the audit and supply-chain grants."""
    return _make_user(db_session, "manager", "manager", ["manage_audits", "manage_scm"])


@pytest.fixture(scope='function')
def cashier(db_session):
    return _make_user(db_session, "cashier", "cashier")


@pytest.fixture(scope='function')
def salesperson(db_session):
    return _make_user(db_session, "sales", "salesperson")


@pytest.fixture(scope='function')
def auditor(db_session):
    return _make_user(db_session, "auditor", "auditor")


@pytest.fixture(scope='function')
def admin_actor(admin) -> Actor:
    return actor_for_user(admin.id)


@pytest.fixture(scope='function')
def manager_actor(manager) -> Actor:
    return actor_for_user(manager.id)


@pytest.fixture(scope='function')
def auditor_actor(auditor) -> Actor:
    return actor_for_user(auditor.id)


@pytest.fixture(scope='function')
def sku1(db_session):
    """SKU-1 priced 10.000 with 5 on hand."""
    return inventory_service.create_product("SKU-1", "Widget", "10.000", 5)


@pytest.fixture(scope='function')
def sku2(db_session):
    """SKU-2 priced 2.500 with 20 on hand."""
    return inventory_service.create_product("SKU-2", "Gadget", "2.500", 20)


def identity_headers(user) -> dict:
    """Helper to create identity headers for a user."""
    return {'X-User-Id': str(user.id)}


@pytest.fixture(scope='function')
def admin_headers(admin):
    return identity_headers(admin)


@pytest.fixture(scope='function')
def manager_headers(manager):
    return identity_headers(manager)


@pytest.fixture(scope='function')
def cashier_headers(cashier):
    return identity_headers(cashier)


@pytest.fixture(scope='function')
def auditor_headers(auditor):
    return identity_headers(auditor)
