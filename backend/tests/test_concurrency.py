"""
Concurrency tests against a file-backed SQLite database.

Each worker thread pushes its own app context (and therefore its own
session and connection). Assertions are on invariants, not on which
worker wins.
"""

import threading

import pytest

from tillbook import create_app
from tillbook.errors import AlreadyVoidedError, ConflictError, InsufficientStockError, TransientStoreError
from tillbook.extensions import db
from tillbook.models import Sale, Shift
from tillbook.services import inventory_service, payment_service, sales_service, shift_service, void_service
from tillbook.services.sales_service import PaymentInput, SaleLineInput


LOCATION_ID = 1
VARIANT = 1


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'TILLBOOK_RETRY_ATTEMPTS': 5,
        'TILLBOOK_RETRY_BACKOFF': 0.01,
    })
    with app.app_context():
        db.create_all()
        method = payment_service.create_payment_method(name="Cash", method_type="cash")
        app.config['TEST_CASH_METHOD_ID'] = method.id

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _run_workers(app, target, args_list):
    results = []
    lock = threading.Lock()

    def worker(*args):
        with app.app_context():
            try:
                outcome = target(*args)
                with lock:
                    results.append(outcome)
            except Exception as exc:
                with lock:
                    results.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=args) for args in args_list]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def _sell(app, actor_id, quantity):
    return sales_service.create_sale(
        location_id=LOCATION_ID,
        actor_id=actor_id,
        items=[SaleLineInput(variant_id=VARIANT, quantity=quantity, unit_price_cents=100)],
        payments=[PaymentInput(payment_method_id=app.config['TEST_CASH_METHOD_ID'], amount_cents=100 * quantity)],
    ).sale.sale_number


def test_concurrent_sales_never_oversell(file_app):
    with file_app.app_context():
        inventory_service.receive_inventory(variant_id=VARIANT, location_id=LOCATION_ID, quantity=10)

    results = _run_workers(file_app, lambda actor: _sell(file_app, actor, 3), [(a,) for a in range(1, 7)])

    posted = [r for r in results if isinstance(r, str)]
    failures = [r for r in results if not isinstance(r, str)]
    assert len(posted) <= 3
    assert all(isinstance(f, (InsufficientStockError, TransientStoreError)) for f in failures)
    assert len(posted) == len(set(posted))

    with file_app.app_context():
        on_hand = inventory_service.get_quantity_on_hand(VARIANT, LOCATION_ID)
        assert on_hand >= 0
        assert on_hand == 10 - 3 * len(posted)
        assert db.session.query(Sale).count() == len(posted)
        assert inventory_service.verify_ledger() == []


def test_concurrent_voids_restore_once(file_app):
    with file_app.app_context():
        inventory_service.receive_inventory(variant_id=VARIANT, location_id=LOCATION_ID, quantity=5)
        sale_number = _sell(file_app, 1, 2)
        sale_id = db.session.query(Sale.id).filter_by(sale_number=sale_number).scalar()

    results = _run_workers(
        file_app,
        lambda actor: void_service.void_sale(sale_id, actor, "race").id,
        [(a,) for a in range(1, 5)],
    )

    voided = [r for r in results if isinstance(r, int)]
    assert len(voided) <= 1
    assert all(
        isinstance(r, (AlreadyVoidedError, TransientStoreError))
        for r in results if not isinstance(r, int)
    )

    with file_app.app_context():
        expected = 5 if voided else 3
        assert inventory_service.get_quantity_on_hand(VARIANT, LOCATION_ID) == expected
        assert inventory_service.verify_ledger() == []


def test_concurrent_clock_in_single_open_shift(file_app):
    results = _run_workers(
        file_app,
        lambda terminal: shift_service.clock_in(actor_id=7, location_id=LOCATION_ID, terminal_id=terminal).id,
        [(f"T{i}",) for i in range(5)],
    )

    opened = [r for r in results if isinstance(r, int)]
    assert len(opened) <= 1
    assert all(
        isinstance(r, (ConflictError, TransientStoreError))
        for r in results if not isinstance(r, int)
    )

    with file_app.app_context():
        assert db.session.query(Shift).filter_by(actor_id=7, status="open").count() == len(opened)
