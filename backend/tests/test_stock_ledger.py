"""
Stock ledger invariants.

The ledger is append-only, every conditional decrement either fully
succeeds or changes nothing, and reconciliation flags drift.
"""

import pytest

from emrs.extensions import db
from emrs.models import ItemLocation, StockLedger
from emrs.services import inventory_service
from emrs.services.ledger_service import (
    append_stock_entry,
    decrement_stock,
    ensure_item_location,
    get_on_hand,
    increment_stock,
    reconcile,
)
from emrs.validation import InsufficientStock, ValidationError


BASE_LOCATION_ID = 1


@pytest.fixture
def entry(make_consumable):
    item = make_consumable(on_hand=5)
    row = append_stock_entry(
        item_id=item.id,
        location_id=BASE_LOCATION_ID,
        txn_type="ISSUE",
        qty_delta=-1,
        ref_table="issue_lines",
        ref_id=1,
    )
    db.session.commit()
    return row


class TestLedgerImmutability:

    def test_update_refused(self, entry):
        entry.qty_delta = -100
        with pytest.raises(ValueError, match="immutable"):
            db.session.commit()
        db.session.rollback()
        assert db.session.get(StockLedger, entry.id).qty_delta == -1

    def test_delete_refused(self, entry):
        db.session.delete(entry)
        with pytest.raises(ValueError, match="cannot be deleted"):
            db.session.commit()
        db.session.rollback()
        assert db.session.get(StockLedger, entry.id) is not None


class TestConditionalDecrement:

    def test_decrement_within_stock(self, make_consumable):
        item = make_consumable(on_hand=5)
        decrement_stock(item.id, BASE_LOCATION_ID, 5)
        db.session.commit()
        assert get_on_hand(item.id, BASE_LOCATION_ID) == 0

    def test_shortfall_changes_nothing(self, make_consumable):
        item = make_consumable(on_hand=2)
        with pytest.raises(InsufficientStock) as exc:
            decrement_stock(item.id, BASE_LOCATION_ID, 3)
        assert (exc.value.have, exc.value.need) == (2, 3)
        assert get_on_hand(item.id, BASE_LOCATION_ID) == 2

    def test_unknown_location_has_nothing(self, make_consumable):
        item = make_consumable(on_hand=5)
        with pytest.raises(InsufficientStock):
            decrement_stock(item.id, 42, 1)

    def test_increment_creates_location_row(self, make_consumable):
        item = make_consumable(on_hand=0)
        increment_stock(item.id, 7, 3)
        db.session.commit()
        assert get_on_hand(item.id, 7) == 3


class TestEnsureItemLocation:

    def test_existing_row_reused_without_conflict(self, make_consumable):
        item = make_consumable(on_hand=0)
        # Row committed by another writer; never loaded into this session
        db.session.execute(ItemLocation.__table__.insert().values(
            item_id=item.id, location_id=2, on_hand_qty=7, reserved_qty=0, opening_qty=7,
        ))
        db.session.commit()

        row = ensure_item_location(item.id, 2)

        assert row.on_hand_qty == 7
        assert db.session.query(ItemLocation).filter_by(item_id=item.id, location_id=2).count() == 1

    def test_repeated_calls_return_same_row(self, make_consumable):
        item = make_consumable(on_hand=0)
        first = ensure_item_location(item.id, 3)
        second = ensure_item_location(item.id, 3)
        db.session.commit()

        assert first.id == second.id
        assert (second.on_hand_qty, second.opening_qty) == (0, 0)
        assert db.session.query(ItemLocation).filter_by(item_id=item.id, location_id=3).count() == 1

    def test_decrement_sees_row_created_elsewhere(self, make_consumable):
        item = make_consumable(on_hand=0)
        db.session.execute(ItemLocation.__table__.insert().values(
            item_id=item.id, location_id=2, on_hand_qty=4, reserved_qty=0, opening_qty=4,
        ))
        db.session.commit()

        decrement_stock(item.id, 2, 3)
        db.session.commit()

        assert get_on_hand(item.id, 2) == 1


class TestReconcile:

    def test_balanced_after_opening_stock(self, make_consumable):
        item = make_consumable(on_hand=12)
        [row] = reconcile(item_id=item.id)
        assert row["expected_qty"] == 12
        assert row["reconciled"] is True

    def test_detects_untracked_change(self, make_consumable):
        item = make_consumable(on_hand=12)
        location = db.session.query(ItemLocation).filter_by(item_id=item.id).one()
        location.on_hand_qty = 11
        db.session.commit()

        [row] = reconcile(item_id=item.id)
        assert row["on_hand_qty"] == 11
        assert row["expected_qty"] == 12
        assert row["reconciled"] is False


class TestInventoryService:

    def test_opening_stock_only_for_consumables(self, asset_item):
        with pytest.raises(ValidationError):
            inventory_service.receive_opening_stock(asset_item.id, BASE_LOCATION_ID, 5)

    def test_opening_stock_accumulates(self, make_consumable):
        item = make_consumable(on_hand=0)
        inventory_service.receive_opening_stock(item.id, BASE_LOCATION_ID, 4)
        inventory_service.receive_opening_stock(item.id, BASE_LOCATION_ID, 6)
        [row] = reconcile(item_id=item.id)
        assert (row["on_hand_qty"], row["opening_qty"], row["reconciled"]) == (10, 10, True)

    def test_assets_only_for_non_consumables(self, make_consumable):
        item = make_consumable()
        with pytest.raises(ValidationError):
            inventory_service.create_asset(item.id, tag="X-1")


class TestStockApi:

    def test_ledger_and_reconcile_for_managers(self, client, auth_headers, entry):
        resp = client.get("/api/stock/ledger", headers=auth_headers["stores_manager"])
        assert resp.status_code == 200
        assert [e["id"] for e in resp.get_json()["entries"]] == [entry.id]

        resp = client.get("/api/stock/reconcile", headers=auth_headers["admin"])
        assert resp.status_code == 200
        # opening 5, one -1 ledger row written without touching on_hand
        assert resp.get_json()["reconciled"] is False

    @pytest.mark.parametrize("path", ["/api/stock/ledger", "/api/stock/reconcile"])
    def test_engineer_denied(self, client, auth_headers, path):
        assert client.get(path, headers=auth_headers["engineer"]).status_code == 403

    def test_item_stock(self, client, auth_headers, make_consumable):
        item = make_consumable(on_hand=8)
        body = client.get(f"/api/stock/items/{item.id}", headers=auth_headers["engineer"]).get_json()
        assert [(l["location_id"], l["on_hand_qty"]) for l in body["locations"]] == [(BASE_LOCATION_ID, 8)]
