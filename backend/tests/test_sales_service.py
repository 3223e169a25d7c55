"""
Sale transaction tests.

Verifies:
- A sale, its items, its payments and its stock movements commit together
- Payments must equal the total exactly
- A short line aborts the whole sale with nothing persisted
- Idempotent resubmission, shift checks, payment-method checks, catalog hook
"""

import pytest

from conftest import CASHIER_ID, LOCATION_ID, OTHER_LOCATION_ID, line, pay
from tillbook.catalog import register_catalog
from tillbook.errors import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    PaymentMismatchError,
    ValidationError,
)
from tillbook.events import sale_completed
from tillbook.models import InventoryTransaction, Sale, SaleItem, SalePayment
from tillbook.models.inventory import TX_SALE
from tillbook.services import inventory_service, payment_service, sales_service, shift_service


def _sell(method, items, payments=None, **kwargs):
    kwargs.setdefault("location_id", LOCATION_ID)
    kwargs.setdefault("actor_id", CASHIER_ID)
    if payments is None:
        total = sales_service.compute_sale_totals(items, kwargs.get("discount_cents", 0)).total_cents
        payments = [pay(method, total)]
    return sales_service.create_sale(items=items, payments=payments, **kwargs)


class TestCreateSale:

    def test_worked_example(self, db_session, cash_method, stock):
        stock(1, 5)
        result = sales_service.create_sale(
            location_id=LOCATION_ID,
            actor_id=CASHIER_ID,
            items=[line(1, 2, 1000, tax_cents=160)],
            payments=[pay(cash_method, 1960)],
            discount_cents=200,
            discount_type="FIXED",
        )
        sale = result.sale
        assert result.replayed is False
        assert sale.subtotal_cents == 2000
        assert sale.tax_cents == 160
        assert sale.discount_cents == 200
        assert sale.total_cents == 1960
        assert sale.status == "completed"
        assert sale.sale_number == "S-001-000001"
        assert inventory_service.get_quantity_on_hand(1, LOCATION_ID) == 3

    def test_items_payments_and_movements_linked(self, db_session, cash_method, card_method, stock):
        stock(1, 5)
        stock(2, 5)
        result = _sell(
            cash_method,
            [line(2, 1, 500), line(1, 2, 250)],
            payments=[pay(cash_method, 600), pay(card_method, 400, "AUTH1")],
        )
        sale = result.sale

        items = db_session.query(SaleItem).filter_by(sale_id=sale.id).all()
        assert len(items) == 2
        for item in items:
            tx = db_session.get(InventoryTransaction, item.inventory_transaction_id)
            assert tx.type == TX_SALE
            assert tx.quantity_change == -item.quantity
            assert tx.reference_type == "SALE"
            assert tx.reference_id == str(sale.id)

        payments = db_session.query(SalePayment).filter_by(sale_id=sale.id).all()
        assert sum(p.amount_cents for p in payments) == sale.total_cents

    def test_sale_numbers_sequential_per_location(self, db_session, cash_method, stock):
        stock(1, 10)
        stock(1, 10, location_id=OTHER_LOCATION_ID)
        first = _sell(cash_method, [line(1, 1, 100)]).sale.sale_number
        second = _sell(cash_method, [line(1, 1, 100)]).sale.sale_number
        other = _sell(cash_method, [line(1, 1, 100)], location_id=OTHER_LOCATION_ID).sale.sale_number
        assert (first, second, other) == ("S-001-000001", "S-001-000002", "S-002-000001")

    def test_line_discounts_folded_into_sale_discount(self, db_session, cash_method, stock):
        stock(1, 5)
        sale = _sell(cash_method, [line(1, 2, 1000, discount_cents=300)], discount_cents=100).sale
        assert sale.subtotal_cents == 2000
        assert sale.discount_cents == 400
        assert sale.total_cents == 1600

    def test_payment_mismatch_rejected_before_write(self, db_session, cash_method, stock):
        stock(1, 5)
        with pytest.raises(PaymentMismatchError) as exc_info:
            _sell(cash_method, [line(1, 1, 1000)], payments=[pay(cash_method, 999)])
        assert exc_info.value.details["difference_cents"] == -1
        assert db_session.query(Sale).count() == 0
        assert inventory_service.get_quantity_on_hand(1, LOCATION_ID) == 5

    def test_overpayment_also_rejected(self, db_session, cash_method, stock):
        stock(1, 5)
        with pytest.raises(PaymentMismatchError):
            _sell(cash_method, [line(1, 1, 1000)], payments=[pay(cash_method, 2000)])

    def test_insufficient_stock_aborts_everything(self, db_session, cash_method, stock):
        stock(1, 10)
        stock(2, 3)
        with pytest.raises(InsufficientStockError) as exc_info:
            _sell(cash_method, [line(1, 1, 100), line(2, 5, 100)])

        assert exc_info.value.details["variant_id"] == 2
        assert exc_info.value.details["on_hand"] == 3
        assert inventory_service.get_quantity_on_hand(1, LOCATION_ID) == 10
        assert inventory_service.get_quantity_on_hand(2, LOCATION_ID) == 3
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleItem).count() == 0
        assert db_session.query(InventoryTransaction).filter_by(type=TX_SALE).count() == 0

    def test_failed_sale_does_not_consume_number(self, db_session, cash_method, stock):
        stock(1, 1)
        with pytest.raises(InsufficientStockError):
            _sell(cash_method, [line(1, 2, 100)])
        assert _sell(cash_method, [line(1, 1, 100)]).sale.sale_number == "S-001-000001"

    @pytest.mark.parametrize("items", [
        [],
        [line(1, 0, 100)],
        [line(1, 1, -100)],
        [line(1, 1, 100, discount_cents=-1)],
        [line(1, 1, 100, discount_cents=101)],
    ])
    def test_invalid_items_rejected(self, db_session, cash_method, items):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                location_id=LOCATION_ID,
                actor_id=CASHIER_ID,
                items=items,
                payments=[pay(cash_method, 100)],
            )

    def test_negative_total_rejected(self, db_session, cash_method, stock):
        stock(1, 5)
        with pytest.raises(ValidationError):
            _sell(cash_method, [line(1, 1, 100)], payments=[pay(cash_method, 1)], discount_cents=500)

    def test_cart_discount_above_subtotal_rejected(self, db_session, cash_method, stock):
        stock(1, 5)
        with pytest.raises(ValidationError):
            _sell(cash_method, [line(1, 1, 1000, tax_cents=500)], discount_cents=1200)
        assert db_session.query(Sale).count() == 0
        assert inventory_service.get_quantity_on_hand(1, LOCATION_ID) == 5

    def test_cart_discount_counts_line_discounts(self, db_session, cash_method, stock):
        stock(1, 5)
        with pytest.raises(ValidationError):
            _sell(cash_method, [line(1, 2, 500, discount_cents=300, tax_cents=400)], discount_cents=800)

        sale = _sell(cash_method, [line(1, 2, 500, discount_cents=300, tax_cents=400)], discount_cents=700).sale
        assert sale.discount_cents == 1000
        assert sale.total_cents == 400

    def test_sale_completed_event(self, app, db_session, cash_method, stock):
        stock(1, 5)
        received = []

        def receiver(sender, **event):
            received.append(event)

        with sale_completed.connected_to(receiver):
            sale = _sell(cash_method, [line(1, 1, 100)]).sale

        assert len(received) == 1
        assert received[0]["sale_id"] == sale.id
        assert received[0]["channel"] == "location-1"


class TestPaymentMethods:

    def test_unknown_method(self, db_session, cash_method, stock):
        stock(1, 5)
        with pytest.raises(NotFoundError):
            _sell(cash_method, [line(1, 1, 100)], payments=[sales_service.PaymentInput(9999, 100)])

    def test_inactive_method(self, db_session, cash_method, stock):
        stock(1, 5)
        cash_method.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError):
            _sell(cash_method, [line(1, 1, 100)])

    def test_reference_required(self, db_session, stock):
        stock(1, 5)
        check = payment_service.create_payment_method(name="Check", method_type="other", requires_reference=True)
        with pytest.raises(ValidationError):
            _sell(check, [line(1, 1, 100)])
        sale = _sell(check, [line(1, 1, 100)], payments=[pay(check, 100, "CHK-42")]).sale
        assert sale.payments[0].reference_number == "CHK-42"

    def test_seed_defaults_idempotent(self, db_session):
        first = payment_service.seed_default_payment_methods()
        second = payment_service.seed_default_payment_methods()
        assert [m.name for m in first] == ["Cash", "Card"]
        assert second == []
        assert [m.method_type for m in payment_service.list_payment_methods()] == ["cash", "card"]


class TestShiftBinding:

    def test_sale_against_open_shift(self, db_session, cash_method, stock):
        stock(1, 5)
        shift = shift_service.clock_in(actor_id=CASHIER_ID, location_id=LOCATION_ID, opening_cash_cents=0)
        sale = _sell(cash_method, [line(1, 1, 100)], shift_id=shift.id).sale
        assert sale.shift_id == shift.id

    def test_sale_against_closed_shift_rejected(self, db_session, cash_method, stock):
        stock(1, 5)
        shift = shift_service.clock_in(actor_id=CASHIER_ID, location_id=LOCATION_ID)
        shift_service.clock_out(shift_id=shift.id, closing_cash_cents=0)
        with pytest.raises(ConflictError):
            _sell(cash_method, [line(1, 1, 100)], shift_id=shift.id)
        assert inventory_service.get_quantity_on_hand(1, LOCATION_ID) == 5

    def test_sale_against_shift_at_other_location_rejected(self, db_session, cash_method, stock):
        stock(1, 5)
        shift = shift_service.clock_in(actor_id=CASHIER_ID, location_id=OTHER_LOCATION_ID)
        with pytest.raises(ValidationError):
            _sell(cash_method, [line(1, 1, 100)], shift_id=shift.id)

    def test_unknown_shift(self, db_session, cash_method, stock):
        stock(1, 5)
        with pytest.raises(NotFoundError):
            _sell(cash_method, [line(1, 1, 100)], shift_id=424242)


class TestIdempotency:

    def test_same_key_same_request_replays(self, db_session, cash_method, stock):
        stock(1, 5)
        first = _sell(cash_method, [line(1, 1, 100)], idempotency_key="till-3-0001")
        second = _sell(cash_method, [line(1, 1, 100)], idempotency_key="till-3-0001")

        assert second.replayed is True
        assert second.sale.id == first.sale.id
        assert db_session.query(Sale).count() == 1
        assert inventory_service.get_quantity_on_hand(1, LOCATION_ID) == 4

    def test_same_key_different_request_conflicts(self, db_session, cash_method, stock):
        stock(1, 5)
        _sell(cash_method, [line(1, 1, 100)], idempotency_key="till-3-0002")
        with pytest.raises(ConflictError):
            _sell(cash_method, [line(1, 2, 100)], idempotency_key="till-3-0002")
        assert inventory_service.get_quantity_on_hand(1, LOCATION_ID) == 4


class TestCatalogHook:

    @pytest.fixture
    def catalog(self, app):
        prices = {(1, LOCATION_ID): 1000}
        register_catalog(app, lambda variant_id, location_id: prices.get((variant_id, location_id)))
        yield prices
        register_catalog(app, None)

    def test_matching_price_accepted(self, db_session, cash_method, stock, catalog):
        stock(1, 5)
        assert _sell(cash_method, [line(1, 1, 1000)]).sale.total_cents == 1000

    def test_unknown_variant(self, db_session, cash_method, stock, catalog):
        stock(2, 5)
        with pytest.raises(NotFoundError):
            _sell(cash_method, [line(2, 1, 1000)])

    def test_price_mismatch_needs_override(self, db_session, cash_method, stock, catalog):
        stock(1, 5)
        with pytest.raises(ValidationError):
            _sell(cash_method, [line(1, 1, 800)])
        sale = _sell(cash_method, [line(1, 1, 800)], allow_price_override=True).sale
        assert sale.total_cents == 800


class TestReads:

    def test_get_and_list(self, db_session, cash_method, stock):
        stock(1, 5)
        sale = _sell(cash_method, [line(1, 1, 100)]).sale
        detail = sales_service.sale_detail(sales_service.get_sale(sale.id))
        assert detail["sale"]["sale_number"] == sale.sale_number
        assert len(detail["items"]) == 1
        assert detail["payments"][0]["method_type"] == "cash"

        assert [s.id for s in sales_service.list_sales(location_id=LOCATION_ID)] == [sale.id]
        assert sales_service.list_sales(location_id=LOCATION_ID, status="voided") == []

    def test_get_missing(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.get_sale(12345)
