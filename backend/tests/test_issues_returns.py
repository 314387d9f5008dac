"""
Issue and return processing.

Covers no-oversell, asset exclusivity, all-or-nothing batches, ledger
rows per line, and stock conservation across issue/return histories.
"""

import pytest

from emrs.extensions import db
from emrs.models import Asset, Issue, IssueLine, Return, ReturnLine, StockLedger
from emrs.services import approval_service, issue_service, request_service, return_service
from emrs.services.ledger_service import get_on_hand, reconcile
from emrs.validation import (
    AssetIdRequired,
    AssetItemMismatch,
    AssetNotAvailable,
    ConflictError,
    InsufficientStock,
    InvalidQty,
    ItemMismatch,
    LineNotFound,
    NotFoundError,
    ValidationError,
)


BASE_LOCATION_ID = 1


@pytest.fixture
def gloves(make_consumable):
    return make_consumable(on_hand=10)


@pytest.fixture
def approved(callers, gloves, asset_item):
    """
    An Approved Stores request for 4 gloves and one drill.

    Returns (request_id, gloves_line_id, drill_line_id).
    """
    created = request_service.create_mixed_request(
        callers["engineer"],
        request_type="material",
        lines=[{"itemId": gloves.id, "qty": 4}, {"itemId": asset_item.id, "qty": 1}],
    )
    approval_service.approve_request(callers["stores_manager"], created["id"])
    gloves_line, drill_line = created["lines"]
    return created["id"], gloves_line["id"], drill_line["id"]


def _assets(item):
    db.session.expire_all()
    return db.session.query(Asset).filter_by(item_id=item.id).order_by(Asset.id).all()


def _issue(caller, request_id, lines, waybill_no=None):
    return issue_service.create_issue(caller, request_id=request_id, waybill_no=waybill_no, lines=lines)


# =============================================================================
# ISSUE
# =============================================================================


class TestIssue:

    def test_issue_consumable_and_asset(self, callers, gloves, asset_item, approved):
        request_id, gloves_line, drill_line = approved
        drill = _assets(asset_item)[0]

        issue = _issue(callers["stores_manager"], request_id, [
            {"requestLineId": gloves_line, "itemId": gloves.id, "qty": 4},
            {"requestLineId": drill_line, "itemId": asset_item.id, "assetId": drill.id},
        ], waybill_no="WB-1001")

        assert issue.waybill_no == "WB-1001"
        assert get_on_hand(gloves.id, BASE_LOCATION_ID) == 6
        assert _assets(asset_item)[0].status == "Issued"

        lines = db.session.query(IssueLine).filter_by(issue_id=issue.id).order_by(IssueLine.id).all()
        assert [(l.qty, l.uom, l.asset_id) for l in lines] == [(4, "pair", None), (None, None, drill.id)]

        ledger = db.session.query(StockLedger).order_by(StockLedger.id).all()
        assert [(e.txn_type, e.qty_delta, e.ref_table, e.ref_id) for e in ledger] == [
            ("ISSUE", -4, "issue_lines", lines[0].id),
            ("ISSUE", 0, "issue_lines", lines[1].id),
        ]

    def test_insufficient_stock_leaves_on_hand_unchanged(self, callers, make_consumable, asset_item):
        bolts = make_consumable(name="M12 Bolts", on_hand=3, uom="ea")
        created = request_service.create_mixed_request(
            callers["engineer"], request_type="material", lines=[{"itemId": bolts.id, "qty": 5}]
        )
        approval_service.approve_request(callers["stores_manager"], created["id"])

        with pytest.raises(InsufficientStock) as exc:
            _issue(callers["stores_manager"], created["id"], [
                {"requestLineId": created["lines"][0]["id"], "itemId": bolts.id, "qty": 5},
            ])

        assert exc.value.message == f"Insufficient stock for item {bolts.id} (have 3, need 5)"
        assert get_on_hand(bolts.id, BASE_LOCATION_ID) == 3
        assert db.session.query(Issue).count() == 0
        assert db.session.query(StockLedger).count() == 0

    def test_issued_asset_is_not_available(self, callers, gloves, asset_item, approved):
        request_id, _, drill_line = approved
        drill = _assets(asset_item)[0]
        drill.status = "Issued"
        db.session.commit()

        with pytest.raises(AssetNotAvailable) as exc:
            _issue(callers["stores_manager"], request_id, [
                {"requestLineId": drill_line, "itemId": asset_item.id, "assetId": drill.id},
            ])
        assert exc.value.message == "Asset is not available"
        assert _assets(asset_item)[0].status == "Issued"

    @pytest.mark.parametrize("status", ["Under_Maintenance", "Retired"])
    def test_only_ready_assets_issue(self, callers, asset_item, approved, status):
        request_id, _, drill_line = approved
        drill = _assets(asset_item)[0]
        drill.status = status
        db.session.commit()

        with pytest.raises(AssetNotAvailable):
            _issue(callers["stores_manager"], request_id, [
                {"requestLineId": drill_line, "itemId": asset_item.id, "assetId": drill.id},
            ])

    def test_failing_line_rolls_back_whole_issue(self, callers, gloves, asset_item, approved):
        request_id, gloves_line, drill_line = approved
        drill = _assets(asset_item)[0]
        drill.status = "Under_Maintenance"
        db.session.commit()

        with pytest.raises(AssetNotAvailable):
            _issue(callers["stores_manager"], request_id, [
                {"requestLineId": gloves_line, "itemId": gloves.id, "qty": 4},
                {"requestLineId": drill_line, "itemId": asset_item.id, "assetId": drill.id},
            ])

        assert get_on_hand(gloves.id, BASE_LOCATION_ID) == 10
        assert db.session.query(Issue).count() == 0
        assert db.session.query(IssueLine).count() == 0
        assert db.session.query(StockLedger).count() == 0

    def test_asset_id_required_for_non_consumable(self, callers, asset_item, approved):
        request_id, _, drill_line = approved
        with pytest.raises(AssetIdRequired):
            _issue(callers["stores_manager"], request_id, [
                {"requestLineId": drill_line, "itemId": asset_item.id},
            ])

    def test_asset_of_other_item_rejected(self, callers, gloves, asset_item, approved, db_session):
        request_id, _, drill_line = approved
        other = Asset(item_id=gloves.id, tag="GLV-X", status="Ready")
        db_session.add(other)
        db_session.commit()

        with pytest.raises(AssetItemMismatch):
            _issue(callers["stores_manager"], request_id, [
                {"requestLineId": drill_line, "itemId": asset_item.id, "assetId": other.id},
            ])

    def test_item_mismatch(self, callers, gloves, asset_item, approved):
        request_id, gloves_line, _ = approved
        with pytest.raises(ItemMismatch):
            _issue(callers["stores_manager"], request_id, [
                {"requestLineId": gloves_line, "itemId": asset_item.id, "qty": 1},
            ])

    def test_line_from_another_request(self, callers, gloves, approved):
        request_id, gloves_line, _ = approved
        other = request_service.create_mixed_request(
            callers["engineer"], request_type="material", lines=[{"itemId": gloves.id, "qty": 1}]
        )
        approval_service.approve_request(callers["stores_manager"], other["id"])

        with pytest.raises(LineNotFound, match=f"Request line {gloves_line} not found"):
            _issue(callers["stores_manager"], other["id"], [
                {"requestLineId": gloves_line, "itemId": gloves.id, "qty": 1},
            ])

    @pytest.mark.parametrize("qty", [None, 0, -2, "x"])
    def test_invalid_consumable_qty(self, callers, gloves, approved, qty):
        request_id, gloves_line, _ = approved
        with pytest.raises(InvalidQty, match=f"Invalid qty for consumable line {gloves_line}"):
            _issue(callers["stores_manager"], request_id, [
                {"requestLineId": gloves_line, "itemId": gloves.id, "qty": qty},
            ])

    def test_pending_request_cannot_be_issued(self, callers, gloves):
        created = request_service.create_mixed_request(
            callers["engineer"], request_type="material", lines=[{"itemId": gloves.id, "qty": 1}]
        )
        with pytest.raises(ConflictError):
            _issue(callers["stores_manager"], created["id"], [
                {"requestLineId": created["lines"][0]["id"], "itemId": gloves.id, "qty": 1},
            ])

    def test_missing_request(self, callers, departments):
        with pytest.raises(NotFoundError):
            _issue(callers["stores_manager"], 999999, [{"requestLineId": 1, "itemId": 1, "qty": 1}])

    @pytest.mark.parametrize("request_id,lines", [(None, [{"requestLineId": 1}]), (1, []), (1, None)])
    def test_header_required(self, callers, request_id, lines):
        with pytest.raises(ValidationError, match="requestId and at least one line are required."):
            _issue(callers["stores_manager"], request_id, lines)

    def test_same_asset_cannot_go_out_twice(self, callers, gloves, asset_item, approved):
        request_id, _, drill_line = approved
        drill = _assets(asset_item)[0]
        _issue(callers["stores_manager"], request_id, [
            {"requestLineId": drill_line, "itemId": asset_item.id, "assetId": drill.id},
        ])
        with pytest.raises(AssetNotAvailable):
            _issue(callers["stores_manager"], request_id, [
                {"requestLineId": drill_line, "itemId": asset_item.id, "assetId": drill.id},
            ])


# =============================================================================
# RETURN
# =============================================================================


@pytest.fixture
def issued(callers, gloves, asset_item, approved):
    """
    Issue of 4 gloves and the first drill against the approved request.

    Returns (issue_id, gloves_issue_line_id, drill_issue_line_id, drill_asset_id).
    """
    request_id, gloves_line, drill_line = approved
    drill = _assets(asset_item)[0]
    issue = _issue(callers["stores_manager"], request_id, [
        {"requestLineId": gloves_line, "itemId": gloves.id, "qty": 4},
        {"requestLineId": drill_line, "itemId": asset_item.id, "assetId": drill.id},
    ])
    lines = db.session.query(IssueLine).filter_by(issue_id=issue.id).order_by(IssueLine.id).all()
    return issue.id, lines[0].id, lines[1].id, drill.id


def _return(caller, issue_id, lines, notes=None):
    return return_service.create_return(caller, issue_id=issue_id, notes=notes, lines=lines)


class TestReturn:

    def test_consumable_return_restores_stock(self, callers, gloves, issued):
        issue_id, gloves_line, _, _ = issued
        assert get_on_hand(gloves.id, BASE_LOCATION_ID) == 6

        return_doc = _return(callers["stores_manager"], issue_id, [{"issueLineId": gloves_line, "qty": 2}])

        assert get_on_hand(gloves.id, BASE_LOCATION_ID) == 8
        line = db.session.query(ReturnLine).filter_by(return_id=return_doc.id).one()
        entry = db.session.query(StockLedger).filter_by(ref_table="return_lines").one()
        assert (entry.txn_type, entry.qty_delta, entry.ref_id) == ("RETURN", 2, line.id)

    def test_return_two_onto_three_makes_five(self, callers, make_consumable):
        cable = make_consumable(name="Cable ties", on_hand=5, uom="pack")
        created = request_service.create_mixed_request(
            callers["engineer"], request_type="material", lines=[{"itemId": cable.id, "qty": 2}]
        )
        approval_service.approve_request(callers["stores_manager"], created["id"])
        issue = _issue(callers["stores_manager"], created["id"], [
            {"requestLineId": created["lines"][0]["id"], "itemId": cable.id, "qty": 2},
        ])
        issue_line = db.session.query(IssueLine).filter_by(issue_id=issue.id).one()
        assert get_on_hand(cable.id, BASE_LOCATION_ID) == 3

        ledger_before = db.session.query(StockLedger).count()
        _return(callers["stores_manager"], issue.id, [{"issueLineId": issue_line.id, "qty": 2}])

        assert get_on_hand(cable.id, BASE_LOCATION_ID) == 5
        assert db.session.query(StockLedger).count() == ledger_before + 1
        newest = db.session.query(StockLedger).order_by(StockLedger.id.desc()).first()
        assert (newest.qty_delta, newest.txn_type) == (2, "RETURN")

    def test_asset_ok_goes_back_to_ready(self, callers, asset_item, issued):
        issue_id, _, drill_line, drill_id = issued
        _return(callers["stores_manager"], issue_id, [{"issueLineId": drill_line, "condition": "OK"}])

        db.session.expire_all()
        assert db.session.get(Asset, drill_id).status == "Ready"
        entry = db.session.query(StockLedger).filter_by(ref_table="return_lines").one()
        assert (entry.txn_type, entry.qty_delta) == ("RETURN", 0)

    def test_condition_defaults_to_ok(self, callers, asset_item, issued):
        issue_id, _, drill_line, drill_id = issued
        return_doc = _return(callers["stores_manager"], issue_id, [{"issueLineId": drill_line}])

        line = db.session.query(ReturnLine).filter_by(return_id=return_doc.id).one()
        assert line.condition == "OK"
        db.session.expire_all()
        assert db.session.get(Asset, drill_id).status == "Ready"

    @pytest.mark.parametrize("condition", ["Needs Inspection", "Damaged", "Repair"])
    def test_non_ok_condition_goes_to_maintenance(self, callers, asset_item, issued, condition):
        issue_id, _, drill_line, drill_id = issued
        _return(callers["stores_manager"], issue_id, [{"issueLineId": drill_line, "condition": condition}])

        db.session.expire_all()
        assert db.session.get(Asset, drill_id).status == "Under_Maintenance"

    def test_unknown_condition_rejected(self, callers, asset_item, issued):
        issue_id, _, drill_line, drill_id = issued
        with pytest.raises(ValidationError, match="Invalid condition"):
            _return(callers["stores_manager"], issue_id, [{"issueLineId": drill_line, "condition": "Lost"}])
        db.session.expire_all()
        assert db.session.get(Asset, drill_id).status == "Issued"

    def test_asset_not_out_cannot_be_returned(self, callers, asset_item, issued):
        issue_id, _, drill_line, _ = issued
        _return(callers["stores_manager"], issue_id, [{"issueLineId": drill_line}])
        with pytest.raises(AssetNotAvailable):
            _return(callers["stores_manager"], issue_id, [{"issueLineId": drill_line}])

    def test_cannot_return_more_than_issued(self, callers, gloves, issued):
        issue_id, gloves_line, _, _ = issued
        _return(callers["stores_manager"], issue_id, [{"issueLineId": gloves_line, "qty": 3}])
        with pytest.raises(ConflictError):
            _return(callers["stores_manager"], issue_id, [{"issueLineId": gloves_line, "qty": 2}])
        assert get_on_hand(gloves.id, BASE_LOCATION_ID) == 9

    def test_issue_line_locked_before_summing_returns(self, callers, gloves, issued, monkeypatch):
        issue_id, gloves_line, _, _ = issued
        locked = []
        real_lock = return_service.lock_for_update

        def recording_lock(query):
            locked.append(query.column_descriptions[0]["entity"])
            return real_lock(query)

        monkeypatch.setattr(return_service, "lock_for_update", recording_lock)
        _return(callers["stores_manager"], issue_id, [{"issueLineId": gloves_line, "qty": 1}])

        assert locked == [IssueLine]

    @pytest.mark.parametrize("qty", [None, 0, -1])
    def test_invalid_return_qty(self, callers, issued, qty):
        issue_id, gloves_line, _, _ = issued
        with pytest.raises(InvalidQty, match=f"Invalid qty for return on line {gloves_line}"):
            _return(callers["stores_manager"], issue_id, [{"issueLineId": gloves_line, "qty": qty}])

    def test_failing_line_rolls_back_whole_return(self, callers, gloves, asset_item, issued):
        issue_id, gloves_line, drill_line, drill_id = issued
        with pytest.raises(ValidationError):
            _return(callers["stores_manager"], issue_id, [
                {"issueLineId": gloves_line, "qty": 4},
                {"issueLineId": drill_line, "condition": "Lost"},
            ])

        assert get_on_hand(gloves.id, BASE_LOCATION_ID) == 6
        assert db.session.query(Return).count() == 0
        assert db.session.query(ReturnLine).count() == 0
        db.session.expire_all()
        assert db.session.get(Asset, drill_id).status == "Issued"

    def test_unknown_issue_line(self, callers, issued):
        issue_id, _, _, _ = issued
        with pytest.raises(LineNotFound, match="Issue line 555555 not found"):
            _return(callers["stores_manager"], issue_id, [{"issueLineId": 555555, "qty": 1}])

    def test_missing_issue(self, callers, departments):
        with pytest.raises(NotFoundError, match="Issue 777777 not found"):
            _return(callers["stores_manager"], 777777, [{"issueLineId": 1, "qty": 1}])

    def test_stock_conserved_across_history(self, callers, gloves, issued):
        issue_id, gloves_line, _, _ = issued
        _return(callers["stores_manager"], issue_id, [{"issueLineId": gloves_line, "qty": 1}])
        _return(callers["stores_manager"], issue_id, [{"issueLineId": gloves_line, "qty": 2}])

        [row] = reconcile(item_id=gloves.id, location_id=BASE_LOCATION_ID)
        assert row["opening_qty"] == 10
        assert row["ledger_sum"] == -4 + 1 + 2
        assert row["on_hand_qty"] == 9
        assert row["reconciled"] is True


# =============================================================================
# HTTP SURFACE
# =============================================================================


class TestIssueReturnApi:

    def test_issue_and_return_round_trip(self, client, auth_headers, gloves, asset_item, approved):
        request_id, gloves_line, drill_line = approved
        drill = _assets(asset_item)[0]

        resp = client.post("/api/issues/", json={
            "requestId": request_id,
            "waybillNo": "WB-7",
            "lines": [
                {"requestLineId": gloves_line, "itemId": gloves.id, "qty": 4},
                {"requestLineId": drill_line, "itemId": asset_item.id, "assetId": drill.id},
            ],
        }, headers=auth_headers["stores_manager"])
        assert resp.status_code == 201
        issue_id = resp.get_json()["id"]

        detail = client.get(f"/api/issues/{issue_id}", headers=auth_headers["stores_manager"]).get_json()
        assert detail["waybill_no"] == "WB-7"
        issue_lines = {l["request_line_id"]: l["id"] for l in detail["lines"]}

        resp = client.post("/api/returns/", json={
            "issueId": issue_id,
            "lines": [
                {"issueLineId": issue_lines[gloves_line], "qty": 4},
                {"issueLineId": issue_lines[drill_line], "assetId": drill.id, "condition": "Damaged"},
            ],
        }, headers=auth_headers["stores_manager"])
        assert resp.status_code == 201

        assert get_on_hand(gloves.id, BASE_LOCATION_ID) == 10
        assert _assets(asset_item)[0].status == "Under_Maintenance"

    def test_insufficient_stock_is_400(self, client, auth_headers, gloves, approved):
        request_id, gloves_line, _ = approved
        resp = client.post("/api/issues/", json={
            "requestId": request_id,
            "lines": [{"requestLineId": gloves_line, "itemId": gloves.id, "qty": 50}],
        }, headers=auth_headers["stores_manager"])
        assert resp.status_code == 400
        assert resp.get_json()["error"] == f"Insufficient stock for item {gloves.id} (have 10, need 50)"

    def test_unavailable_asset_is_400(self, client, auth_headers, asset_item, approved):
        request_id, _, drill_line = approved
        drill = _assets(asset_item)[0]
        drill.status = "Issued"
        db.session.commit()

        resp = client.post("/api/issues/", json={
            "requestId": request_id,
            "lines": [{"requestLineId": drill_line, "itemId": asset_item.id, "assetId": drill.id}],
        }, headers=auth_headers["stores_manager"])
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Asset is not available"

    def test_return_validation_is_400(self, client, auth_headers, db_session):
        resp = client.post("/api/returns/", json={"issueId": 1, "lines": []}, headers=auth_headers["staff"])
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "issueId and at least one line are required."

    def test_missing_issue_is_404(self, client, auth_headers):
        assert client.get("/api/issues/999999", headers=auth_headers["staff"]).status_code == 404
