"""Parked cart tests: park, list, resume once, discard, per-location limit."""

import pytest

from conftest import CASHIER_ID, LOCATION_ID
from tillbook.errors import ConflictError, NotFoundError, ValidationError
from tillbook.models import InventoryTransaction, ParkedCart
from tillbook.services import parked_cart_service


CART = {
    "items": [{"variant_id": 1, "quantity": 2, "unit_price_cents": 1000}],
    "discount": {"type": "PERCENT", "value": "12.5"},
}


def _park(**kwargs):
    kwargs.setdefault("location_id", LOCATION_ID)
    kwargs.setdefault("actor_id", CASHIER_ID)
    kwargs.setdefault("cart", CART)
    return parked_cart_service.park_cart(**kwargs)


def test_park_and_resume_once(db_session):
    parked = _park(customer_id=77, notes="back in 5")
    assert len(parked.id) == 32

    resumed = parked_cart_service.resume_parked_cart(parked.id)
    assert resumed["cart"]["items"][0]["variant_id"] == 1
    assert resumed["cart"]["discount"] == {"type": "PERCENT", "value": "12.5"}
    assert resumed["customer_id"] == 77

    with pytest.raises(NotFoundError):
        parked_cart_service.resume_parked_cart(parked.id)


def test_parking_never_touches_stock(db_session):
    _park()
    assert db_session.query(InventoryTransaction).count() == 0


def test_list_and_discard(db_session):
    a = _park()
    b = _park()
    _park(location_id=2)

    listed = {c.id for c in parked_cart_service.list_parked_carts(LOCATION_ID)}
    assert listed == {a.id, b.id}

    parked_cart_service.discard_parked_cart(a.id)
    assert db_session.query(ParkedCart).count() == 2
    with pytest.raises(NotFoundError):
        parked_cart_service.get_parked_cart(a.id)


@pytest.mark.parametrize("cart", [
    {"items": []},
    {"items": [{"variant_id": 1, "quantity": 0, "unit_price_cents": 100}]},
    {"items": [{"variant_id": 1, "quantity": 1}]},
    "not a cart",
])
def test_invalid_cart_rejected(db_session, cart):
    with pytest.raises(ValidationError):
        _park(cart=cart)


def test_limit_per_location(app, db_session):
    app.config["TILLBOOK_PARKED_CART_LIMIT"] = 2
    try:
        _park()
        _park()
        with pytest.raises(ConflictError):
            _park()
        _park(location_id=2)
    finally:
        app.config["TILLBOOK_PARKED_CART_LIMIT"] = 50
