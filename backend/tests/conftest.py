"""
Pytest fixtures for storefront backend tests.

Provides an in-memory application, a per-test table wipe, users for each
role with bearer-token headers, a small catalog, and a default address.
"""

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import Product
from storefront.services import address_service, session_service
from storefront.services.auth_service import create_user
from storefront.services.cache_service import get_cache

PASSWORD = "Password123!"

VALID_CARD = {
    "holder_name": "Jane Doe",
    "number": "4242424242424242",
    "exp_month": "12",
    "exp_year": "2099",
    "cvc": "123",
}
DECLINED_CARD_NUMBER = "4000000000000002"
TIMEOUT_CARD_NUMBER = "4000000000000119"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_LOG_ROUNDS': 4,
        'CACHE_BACKEND': 'memory',
        'PAYMENT_GATEWAY': 'mock',
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
    """Fresh tables and an empty cache for each test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        get_cache().clear()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def customer(db_session):
    return create_user("carol", "carol@example.com", PASSWORD)


@pytest.fixture(scope='function')
def other_customer(db_session):
    return create_user("dave", "dave@example.com", PASSWORD)


@pytest.fixture(scope='function')
def seller(db_session):
    return create_user("sam", "sam@example.com", PASSWORD, role="SELLER")


@pytest.fixture(scope='function')
def other_seller(db_session):
    return create_user("sid", "sid@example.com", PASSWORD, role="SELLER")


@pytest.fixture(scope='function')
def admin(db_session):
    return create_user("root", "root@example.com", PASSWORD, role="ADMIN")


def _headers(user):
    _, token = session_service.create_session(user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def customer_headers(customer):
    return _headers(customer)


@pytest.fixture(scope='function')
def other_customer_headers(other_customer):
    return _headers(other_customer)


@pytest.fixture(scope='function')
def seller_headers(seller):
    return _headers(seller)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return _headers(admin)


@pytest.fixture(scope='function')
def products(db_session, seller):
    """Product 1: 10.00, stock 5. Product 2: 25.00, stock 3."""
    widget = Product(name="Widget", price_cents=1000, stock=5, owner_user_id=seller.id)
    gadget = Product(name="Gadget", price_cents=2500, stock=3, owner_user_id=seller.id)
    db_session.add_all([widget, gadget])
    db_session.commit()
    return widget, gadget


@pytest.fixture(scope='function')
def address(db_session, customer):
    return address_service.create_address(customer.id, {
        "street_address": "1 Main St",
        "city": "Springfield",
        "state": "IL",
        "postal_code": "62701",
        "country": "US",
    })
