"""
Pytest fixtures for posledger backend tests.

Provides the app on in-memory SQLite, a per-test clean database, a test
client and a store with one product and one customer.
"""

import pytest
from posledger import create_app
from posledger.extensions import db
from posledger.models import Store
from posledger.services import customer_service, inventory_service, products_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'HOTEL_FEE_PER_NIGHT_CENTS': 5000,
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
        # Customer ids are phone numbers and repeat across tests
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        db.session.expunge_all()


@pytest.fixture(scope='function')
def store(db_session):
    """Create the store every other fixture lives in."""
    store = Store(name="Pet Care Central", code="PCC")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def product(store):
    """Product with no stock and a fallback buy price of 15."""
    return products_service.add_product(
        store.id,
        {"name": "Cat Food 1kg", "barcode": "8990001", "buy_price_cents": 15, "sell_price_cents": 30},
    )


@pytest.fixture(scope='function')
def stocked_product(product):
    """The product with two batches: 5 @ 10 then 5 @ 20."""
    inventory_service.receive(product.id, 5, 10, "first")
    inventory_service.receive(product.id, 5, 20, "second")
    # receive() moves the fallback price to the latest batch; restore it
    products_service.update_product(product.id, {"buy_price_cents": 15})
    return product


@pytest.fixture(scope='function')
def customer(store):
    return customer_service.create_customer(store.id, name="Rina", phone="0812-3456-789")