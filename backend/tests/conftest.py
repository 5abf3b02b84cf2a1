"""
Pytest fixtures for Dukkan backend tests.

Provides an in-memory application, a wiped database per test, an
admin-authenticated test client, and basic catalog/account fixtures.
"""

import pytest

from dukkan import create_app
from dukkan.extensions import db
from dukkan.services import account_service, catalog_service, inventory_service
from dukkan.services.auth_service import create_user


ADMIN_PASSWORD = "Admin123!"
CLERK_PASSWORD = "Clerk123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'BCRYPT_ROUNDS': 4,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.expunge_all()

    yield db.session

    # Cleanup after test
    db.session.rollback()


@pytest.fixture(scope='function')
def admin_user(db_session):
    return create_user("admin", ADMIN_PASSWORD, full_name="Administrator", role="admin")


@pytest.fixture(scope='function')
def clerk_user(db_session):
    return create_user("clerk", CLERK_PASSWORD, full_name="Counter Clerk", role="user")


def _login(client, username, password):
    resp = client.post("/api/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()


@pytest.fixture(scope='function')
def auth_client(client, admin_user):
    """Test client holding an admin session cookie."""
    _login(client, "admin", ADMIN_PASSWORD)
    return client


@pytest.fixture(scope='function')
def clerk_client(app, clerk_user):
    """Separate test client holding a non-admin session cookie."""
    clerk = app.test_client()
    _login(clerk, "clerk", CLERK_PASSWORD)
    return clerk


@pytest.fixture(scope='function')
def warehouse(db_session):
    return catalog_service.create_warehouse({"name": "Main Store", "isDefault": True})


@pytest.fixture(scope='function')
def second_warehouse(db_session):
    return catalog_service.create_warehouse({"name": "Yard"})


@pytest.fixture(scope='function')
def category(db_session):
    return catalog_service.create_category({"name": "Building", "isDefault": True})


@pytest.fixture(scope='function')
def product(db_session, category):
    return catalog_service.create_product({
        "name": "Cement 50kg",
        "code": "P-001",
        "categoryId": category.id,
        "costPrice": 10,
        "sellPrice1": 15,
        "unit": "bag",
    })


@pytest.fixture(scope='function')
def stocked_product(product, warehouse):
    """Product with 100 units on hand in the main warehouse."""
    inventory_service.update_inventory({
        "productId": product.id,
        "warehouseId": warehouse.id,
        "quantity": 100,
        "isCount": True,
    })
    return product


@pytest.fixture(scope='function')
def customer(db_session):
    return account_service.create_account({"name": "Al Noor Co", "type": "customer", "code": "C001"})


@pytest.fixture(scope='function')
def supplier(db_session):
    return account_service.create_account({"name": "Delta Supplies", "type": "supplier", "code": "S001"})


@pytest.fixture(scope='function')
def bank(db_session):
    return account_service.create_account({"name": "National Bank", "type": "bank", "code": "B001"})


@pytest.fixture(scope='function')
def login():
    """Log a test client in; returns the login response body."""
    return _login
