"""
Pytest fixtures for tillbook backend tests.

Provides test database setup, actor headers, payment methods and stock
helpers, and a test client.
"""

import pytest

from tillbook import create_app
from tillbook.extensions import db
from tillbook.permissions import DEFAULT_ROLE_PERMISSIONS
from tillbook.services import inventory_service, payment_service
from tillbook.services.sales_service import PaymentInput, SaleLineInput


LOCATION_ID = 1
OTHER_LOCATION_ID = 2
CASHIER_ID = 101
MANAGER_ID = 201


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TILLBOOK_RETRY_BACKOFF': 0,
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


@pytest.fixture(scope='function')
def cash_method(db_session):
    return payment_service.create_payment_method(name="Cash", method_type="cash", sort_order=1)


@pytest.fixture(scope='function')
def card_method(db_session):
    return payment_service.create_payment_method(name="Card", method_type="card", sort_order=2)


@pytest.fixture(scope='function')
def stock(db_session):
    """Receive stock: stock(variant_id, quantity, location_id=LOCATION_ID)."""
    def _stock(variant_id, quantity, location_id=LOCATION_ID):
        return inventory_service.receive_inventory(
            variant_id=variant_id,
            location_id=location_id,
            quantity=quantity,
            actor_id=MANAGER_ID,
        )
    return _stock


def line(variant_id, quantity, unit_price_cents, discount_cents=0, tax_cents=0):
    return SaleLineInput(
        variant_id=variant_id,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        discount_cents=discount_cents,
        tax_cents=tax_cents,
    )


def pay(method, amount_cents, reference_number=None):
    return PaymentInput(
        payment_method_id=method.id,
        amount_cents=amount_cents,
        reference_number=reference_number,
    )


def actor_headers(actor_id, *permissions, role=None) -> dict:
    """Headers an upstream gateway would forward for a resolved actor."""
    headers = {'X-Actor-Id': str(actor_id)}
    if role:
        headers['X-Actor-Role'] = role
    if permissions or role is None:
        headers['X-Actor-Permissions'] = ",".join(permissions)
    return headers


@pytest.fixture(scope='function')
def cashier_headers():
    return actor_headers(CASHIER_ID, *DEFAULT_ROLE_PERMISSIONS["cashier"])


@pytest.fixture(scope='function')
def manager_headers():
    return actor_headers(MANAGER_ID, *DEFAULT_ROLE_PERMISSIONS["manager"])
