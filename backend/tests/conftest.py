"""
Pytest fixtures for settlement engine tests.

Provides test database setup, operators, stocked products, customers and
test client.
"""

import pytest
from settlement import create_app
from settlement.extensions import db
from settlement.models import Customer, Operator, Product, ProductVariant
from settlement.models.operators import ROLE_CASHIER, ROLE_MANAGER
from settlement.services import inventory_service
from settlement.services.operator_service import hash_password


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        # Alerts stay quiet unless a test asks for them
        'LOW_STOCK_THRESHOLD': None,
        'HIGH_STOCK_THRESHOLD': None,
        'TX_RETRY_BACKOFF': 0,
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


def _make_operator(db_session, username, role):
    operator = Operator(
        username=username,
        role=role,
        # Low cost factor keeps the suite fast
        password_hash=hash_password(TEST_PASSWORD, rounds=4),
    )
    db_session.add(operator)
    db_session.commit()
    return operator


@pytest.fixture(scope='function')
def cashier(db_session):
    return _make_operator(db_session, "cashier", ROLE_CASHIER)


@pytest.fixture(scope='function')
def other_cashier(db_session):
    return _make_operator(db_session, "cashier2", ROLE_CASHIER)


@pytest.fixture(scope='function')
def manager(db_session):
    return _make_operator(db_session, "manager", ROLE_MANAGER)


def make_product(db_session, *, sku, price_cents, stock=0, tax_rate_bps=0, name=None):
    """Create a product and stock it through a PURCHASE movement."""
    product = Product(
        sku=sku,
        name=name or f"Product {sku}",
        price_cents=price_cents,
        tax_rate_bps=tax_rate_bps,
    )
    db_session.add(product)
    db_session.commit()
    if stock:
        inventory_service.receive_stock(product_id=product.id, quantity=stock, reason="Opening stock")
    return product


@pytest.fixture(scope='function')
def product(db_session):
    """10.00 item, 8.25% tax, 20 on hand."""
    return make_product(db_session, sku="WIDGET-1", price_cents=1000, stock=20, tax_rate_bps=825, name="Widget")


@pytest.fixture(scope='function')
def untaxed_product(db_session):
    """600.00 item, no tax, 10 on hand."""
    return make_product(db_session, sku="JACKET-1", price_cents=60000, stock=10, name="Jacket")


@pytest.fixture(scope='function')
def variant(db_session, product):
    variant = ProductVariant(product_id=product.id, sku="WIDGET-1-L", name="Large", price_cents=1500)
    db_session.add(variant)
    db_session.commit()
    inventory_service.receive_stock(product_id=product.id, variant_id=variant.id, quantity=5)
    return variant


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Dana Rivera", email="dana@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


def operator_headers(operator):
    return {"X-Operator-Id": str(operator.id)}
