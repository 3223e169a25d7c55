"""
Inventory ledger tests.

Verifies:
- Every quantity change writes one movement row with before/change/after
- Negative stock only via an authorized adjustment
- Transfers move both legs or neither
- Replaying the log reproduces on-hand, and verify_ledger detects drift
- inventory-updated events are published only after commit
"""

import pytest

from conftest import LOCATION_ID, MANAGER_ID, OTHER_LOCATION_ID
from tillbook.errors import InsufficientStockError, NotFoundError, ValidationError
from tillbook.events import inventory_updated
from tillbook.extensions import db
from tillbook.models import InventoryRecord, InventoryTransaction
from tillbook.models.inventory import TX_RECEIVE, TX_SALE, TX_TRANSFER_IN, TX_TRANSFER_OUT
from tillbook.services import inventory_service


VARIANT = 10


class TestReceiveAndAdjust:

    def test_receive_creates_record_and_log_row(self, db_session):
        result = inventory_service.receive_inventory(
            variant_id=VARIANT, location_id=LOCATION_ID, quantity=5, actor_id=MANAGER_ID,
        )
        assert result.previous_stock == 0
        assert result.new_stock == 5
        assert inventory_service.get_quantity_on_hand(VARIANT, LOCATION_ID) == 5

        tx = db_session.query(InventoryTransaction).one()
        assert tx.type == TX_RECEIVE
        assert (tx.quantity_before, tx.quantity_change, tx.quantity_after) == (0, 5, 5)
        assert tx.actor_id == MANAGER_ID

    def test_new_record_gets_default_reorder_level(self, app, db_session, stock):
        stock(VARIANT, 1)
        record = inventory_service.get_inventory_record(VARIANT, LOCATION_ID)
        assert record.reorder_level == app.config["TILLBOOK_DEFAULT_REORDER_LEVEL"]

    def test_receive_rejects_non_positive(self, db_session):
        with pytest.raises(ValidationError):
            inventory_service.receive_inventory(variant_id=VARIANT, location_id=LOCATION_ID, quantity=0)

    def test_adjust_below_zero_rejected(self, db_session, stock):
        stock(VARIANT, 3)
        with pytest.raises(InsufficientStockError) as exc_info:
            inventory_service.adjust_inventory(
                variant_id=VARIANT, location_id=LOCATION_ID, quantity_change=-5, reason="shrink",
            )
        assert exc_info.value.details == {
            "variant_id": VARIANT,
            "location_id": LOCATION_ID,
            "requested_quantity": 5,
            "on_hand": 3,
        }
        assert inventory_service.get_quantity_on_hand(VARIANT, LOCATION_ID) == 3
        assert db_session.query(InventoryTransaction).count() == 1

    def test_adjust_below_zero_with_override(self, db_session, stock):
        stock(VARIANT, 3)
        result = inventory_service.adjust_inventory(
            variant_id=VARIANT,
            location_id=LOCATION_ID,
            quantity_change=-5,
            reason="count correction",
            allow_negative=True,
        )
        assert result.new_stock == -2
        assert inventory_service.replay_quantity(VARIANT, LOCATION_ID) == -2

    def test_receive_into_negative_stock(self, db_session, stock):
        stock(VARIANT, 1)
        inventory_service.adjust_inventory(
            variant_id=VARIANT, location_id=LOCATION_ID, quantity_change=-6, reason="recount", allow_negative=True,
        )

        result = inventory_service.receive_inventory(variant_id=VARIANT, location_id=LOCATION_ID, quantity=2)
        assert (result.previous_stock, result.new_stock) == (-5, -3)
        assert inventory_service.replay_quantity(VARIANT, LOCATION_ID) == -3

    def test_insufficient_stock_on_unknown_pair_creates_nothing(self, db_session):
        with pytest.raises(InsufficientStockError):
            inventory_service.adjust_inventory(
                variant_id=VARIANT, location_id=LOCATION_ID, quantity_change=-1, reason="x",
            )
        assert db_session.query(InventoryRecord).count() == 0

    def test_sale_movement_never_goes_negative_even_with_override(self, db_session, stock):
        stock(VARIANT, 1)
        with pytest.raises(InsufficientStockError):
            inventory_service.mutate(
                variant_id=VARIANT,
                location_id=LOCATION_ID,
                quantity_change=-2,
                type=TX_SALE,
                allow_negative=True,
            )
        db.session.rollback()
        assert inventory_service.get_quantity_on_hand(VARIANT, LOCATION_ID) == 1

    @pytest.mark.parametrize("change,tx_type", [
        (-1, TX_RECEIVE),
        (1, TX_SALE),
        (0, "ADJUSTMENT"),
        (1, "BOGUS"),
    ])
    def test_mutate_rejects_wrong_sign_or_type(self, db_session, change, tx_type):
        with pytest.raises(ValidationError):
            inventory_service.mutate(
                variant_id=VARIANT, location_id=LOCATION_ID, quantity_change=change, type=tx_type,
            )

    def test_get_record_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.get_inventory_record(999, LOCATION_ID)
        assert inventory_service.get_quantity_on_hand(999, LOCATION_ID) == 0


class TestTransfers:

    def test_transfer_moves_both_legs(self, db_session, stock):
        stock(VARIANT, 10)
        result = inventory_service.transfer_inventory(
            variant_id=VARIANT,
            from_location_id=LOCATION_ID,
            to_location_id=OTHER_LOCATION_ID,
            quantity=4,
            actor_id=MANAGER_ID,
        )
        assert result.reference == "T-001-000001"
        assert inventory_service.get_quantity_on_hand(VARIANT, LOCATION_ID) == 6
        assert inventory_service.get_quantity_on_hand(VARIANT, OTHER_LOCATION_ID) == 4

        legs = db_session.query(InventoryTransaction).filter_by(reference_id=result.reference).all()
        assert sorted(tx.type for tx in legs) == sorted([TX_TRANSFER_OUT, TX_TRANSFER_IN])
        assert all(tx.reference_type == "TRANSFER" for tx in legs)

    def test_transfer_numbers_increase(self, db_session, stock):
        stock(VARIANT, 10)
        refs = [
            inventory_service.transfer_inventory(
                variant_id=VARIANT, from_location_id=LOCATION_ID, to_location_id=OTHER_LOCATION_ID, quantity=1,
            ).reference
            for _ in range(3)
        ]
        assert refs == ["T-001-000001", "T-001-000002", "T-001-000003"]

    def test_short_transfer_applies_neither_leg(self, db_session, stock):
        stock(VARIANT, 2)
        with pytest.raises(InsufficientStockError):
            inventory_service.transfer_inventory(
                variant_id=VARIANT, from_location_id=LOCATION_ID, to_location_id=OTHER_LOCATION_ID, quantity=5,
            )
        assert inventory_service.get_quantity_on_hand(VARIANT, LOCATION_ID) == 2
        assert inventory_service.get_quantity_on_hand(VARIANT, OTHER_LOCATION_ID) == 0
        assert db_session.query(InventoryTransaction).filter_by(type=TX_TRANSFER_IN).count() == 0

    def test_transfer_into_negative_stock(self, db_session, stock):
        stock(VARIANT, 10)
        stock(VARIANT, 1, location_id=OTHER_LOCATION_ID)
        inventory_service.adjust_inventory(
            variant_id=VARIANT,
            location_id=OTHER_LOCATION_ID,
            quantity_change=-4,
            reason="recount",
            allow_negative=True,
        )

        inventory_service.transfer_inventory(
            variant_id=VARIANT, from_location_id=LOCATION_ID, to_location_id=OTHER_LOCATION_ID, quantity=2,
        )
        assert inventory_service.get_quantity_on_hand(VARIANT, LOCATION_ID) == 8
        assert inventory_service.get_quantity_on_hand(VARIANT, OTHER_LOCATION_ID) == -1
        assert inventory_service.verify_ledger() == []

    def test_transfer_to_same_location_rejected(self, db_session, stock):
        stock(VARIANT, 2)
        with pytest.raises(ValidationError):
            inventory_service.transfer_inventory(
                variant_id=VARIANT, from_location_id=LOCATION_ID, to_location_id=LOCATION_ID, quantity=1,
            )


class TestReads:

    def test_low_stock_filter(self, db_session, stock):
        stock(1, 2)     # low (reorder level 5)
        stock(2, 50)    # healthy
        inventory_service.adjust_inventory(
            variant_id=3, location_id=LOCATION_ID, quantity_change=1, reason="found one",
        )
        inventory_service.adjust_inventory(
            variant_id=3, location_id=LOCATION_ID, quantity_change=-1, reason="lost it",
        )   # zero is out of stock, not low stock

        low = inventory_service.list_inventory(location_id=LOCATION_ID, low_stock=True)
        assert [r.variant_id for r in low] == [1]
        assert len(inventory_service.list_inventory(location_id=LOCATION_ID)) == 3

    def test_stock_at_other_locations(self, db_session, stock):
        stock(VARIANT, 3, location_id=1)
        stock(VARIANT, 9, location_id=2)
        stock(VARIANT, 5, location_id=3)

        others = inventory_service.stock_at_other_locations(VARIANT, exclude_location_id=1)
        assert [(r.location_id, r.quantity_on_hand) for r in others] == [(2, 9), (3, 5)]

    def test_set_reorder_level_leaves_on_hand(self, db_session, stock):
        stock(VARIANT, 7)
        record = inventory_service.set_reorder_level(
            variant_id=VARIANT, location_id=LOCATION_ID, reorder_level=8, reorder_quantity=24,
        )
        assert record.reorder_level == 8
        assert record.reorder_quantity == 24
        assert record.quantity_on_hand == 7
        assert record.is_low_stock

    def test_list_transactions_newest_first(self, db_session, stock):
        stock(VARIANT, 1)
        stock(VARIANT, 2)
        txs = inventory_service.list_inventory_transactions(variant_id=VARIANT)
        assert [tx.quantity_change for tx in txs] == [2, 1]


class TestLedgerAudit:

    def test_replay_matches_on_hand(self, db_session, stock):
        stock(VARIANT, 10)
        inventory_service.adjust_inventory(
            variant_id=VARIANT, location_id=LOCATION_ID, quantity_change=-3, reason="damaged",
        )
        inventory_service.transfer_inventory(
            variant_id=VARIANT, from_location_id=LOCATION_ID, to_location_id=OTHER_LOCATION_ID, quantity=2,
        )
        assert inventory_service.replay_quantity(VARIANT, LOCATION_ID) == 5
        assert inventory_service.replay_quantity(VARIANT, OTHER_LOCATION_ID) == 2
        assert inventory_service.verify_ledger() == []

    def test_verify_detects_direct_edit(self, db_session, stock):
        stock(VARIANT, 4)
        record = inventory_service.get_inventory_record(VARIANT, LOCATION_ID)
        record.quantity_on_hand = 99
        db_session.commit()

        problems = inventory_service.verify_ledger(location_id=LOCATION_ID)
        assert len(problems) == 1
        assert problems[0]["quantity_on_hand"] == 99
        assert problems[0]["replayed_quantity"] == 4


class TestEvents:

    def test_event_published_after_commit(self, app, db_session):
        received = []

        def receiver(sender, **event):
            received.append(event)

        with inventory_updated.connected_to(receiver):
            inventory_service.receive_inventory(variant_id=VARIANT, location_id=LOCATION_ID, quantity=2)

        assert len(received) == 1
        assert received[0]["channel"] == "location-1"
        assert received[0]["new_stock"] == 2

    def test_failing_subscriber_does_not_starve_others(self, app, db_session):
        received = []

        def broken(sender, **event):
            raise RuntimeError("printer offline")

        def receiver(sender, **event):
            received.append(event)

        with inventory_updated.connected_to(broken), inventory_updated.connected_to(receiver):
            inventory_service.receive_inventory(variant_id=VARIANT, location_id=LOCATION_ID, quantity=2)

        assert len(received) == 1
        assert inventory_service.get_quantity_on_hand(VARIANT, LOCATION_ID) == 2

    def test_no_event_when_rolled_back(self, app, db_session):
        received = []

        def receiver(sender, **event):
            received.append(event)

        with inventory_updated.connected_to(receiver):
            with pytest.raises(InsufficientStockError):
                inventory_service.adjust_inventory(
                    variant_id=VARIANT, location_id=LOCATION_ID, quantity_change=-1, reason="x",
                )

        assert received == []
