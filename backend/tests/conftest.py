# Overview: Pytest fixtures for shopledger backend tests.

"""
Pytest fixtures for shopledger backend tests.

Provides test database setup, tenant fixtures (two organizations), catalog
and drawer fixtures, and a test client with actor headers.
"""

import pytest

from shopledger import create_app
from shopledger.extensions import db
from shopledger.models import CashDrawer, Customer, Location, Organization, Product
from shopledger.services import inventory_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TRANSACTION_RETRY_ATTEMPTS': 1,
        'PAYSTACK_SECRET_KEY': 'sk_test_secret',
        'PAYSTACK_BASE_URL': 'https://gateway.test',
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


def actor_headers(org_id, user_id=1):
    """Headers the upstream auth gateway sets on every request."""
    return {"X-Org-Id": str(org_id), "X-User-Id": str(user_id)}


@pytest.fixture(scope='function')
def headers_a(org_a):
    """Actor headers for user 1 in Organization A."""
    return actor_headers(org_a.id)


@pytest.fixture(scope='function')
def headers_b(org_b):
    """Actor headers for user 2 in Organization B."""
    return actor_headers(org_b.id, user_id=2)


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Corp", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Inc", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def location_a(db_session, org_a):
    """Create the main shop of Organization A."""
    location = Location(org_id=org_a.id, name="Main Shop", code="MAIN")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def location_b(db_session, org_b):
    """Create a shop in Organization B."""
    location = Location(org_id=org_b.id, name="Beta Shop", code="MAIN")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def product_a(db_session, org_a):
    """Untaxed product priced at 10.00."""
    product = Product(
        org_id=org_a.id,
        sku="MILK-1L",
        name="Milk 1L",
        cost_price_cents=600,
        selling_price_cents=1000,
        tax_rate_bps=0,
        reorder_point=5,
        reorder_quantity=20,
        tracks_expiration=True,
        expiry_alert_days=7,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def taxed_product(db_session, org_a):
    """Product priced at 3.33 with 7.5% tax."""
    product = Product(
        org_id=org_a.id,
        sku="SOAP-01",
        name="Soap Bar",
        cost_price_cents=200,
        selling_price_cents=333,
        tax_rate_bps=750,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, org_b):
    """Product owned by Organization B."""
    product = Product(org_id=org_b.id, sku="BETA-1", name="Beta Widget", selling_price_cents=500)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer_a(db_session, org_a):
    """Customer with a 50.00 credit limit."""
    customer = Customer(org_id=org_a.id, name="Ama Mensah", email="ama@example.com", credit_limit_cents=5000)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def drawer_a(db_session, org_a, location_a):
    """Closed drawer at the main shop."""
    drawer = CashDrawer(org_id=org_a.id, location_id=location_a.id, name="Till 1", status="CLOSED")
    db_session.add(drawer)
    db_session.commit()
    return drawer


@pytest.fixture(scope='function')
def stock(db_session):
    """Helper: add stock to a batch through the inventory service."""
    def _stock(product, location, quantity, expiration_date=None):
        return inventory_service.increment(
            product_id=product.id,
            location_id=location.id,
            quantity=quantity,
            expiration_date=expiration_date,
        )
    return _stock
