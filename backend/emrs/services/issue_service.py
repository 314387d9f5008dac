"""
Issue Processing Service

WHY: An Approved request is fulfilled by issuing stock out of the store.
Consumables leave on-hand quantity; tracked assets change status to Issued.

DESIGN PRINCIPLES:
- One Issue per call, all lines or nothing (single transaction)
- Every IssueLine maps to exactly one RequestLine of the same request
- Consumables: conditional decrement at the base location + ISSUE ledger
  row with qty_delta = -qty
- Assets: must be Ready; status -> Issued + zero-delta ISSUE ledger row at
  the asset's location, so every line has a ledger trail
- Ledger rows point at ('issue_lines', issue_line.id)

FAILURE ORDER PER LINE:
1. LineNotFound       request line unknown or not on this request
2. ItemMismatch       itemId differs from the request line's item
3. consumable: InvalidQty, InsufficientStock
4. asset: AssetIdRequired, AssetNotFound, AssetItemMismatch, AssetNotAvailable
"""

from __future__ import annotations

import logging
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import Asset, Issue, IssueLine, Request, RequestLine
from ..models.inventory import ASSET_STATUS_ISSUED, ASSET_STATUS_READY, LEDGER_TXN_ISSUE
from ..models.requests import REQUEST_STATUS_APPROVED
from ..validation import (
    AssetIdRequired,
    AssetItemMismatch,
    AssetNotAvailable,
    AssetNotFound,
    ConflictError,
    InvalidQty,
    ItemMismatch,
    LineNotFound,
    RequestNotFound,
    ValidationError,
    to_int,
    to_optional_int,
    to_text,
)
from . import activity_service
from .access_scope import CallerContext
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import append_stock_entry, decrement_stock


logger = logging.getLogger(__name__)


ISSUE_LINES_REF = "issue_lines"


def base_location_id() -> int:
    return int(current_app.config.get("EMRS_BASE_LOCATION_ID", 1))


def _line_qty(raw_qty: Any, request_line_id: int) -> int:
    if raw_qty is None or raw_qty == "":
        raise InvalidQty(f"Invalid qty for consumable line {request_line_id}")
    try:
        qty = to_int(raw_qty, "qty")
    except ValidationError:
        raise InvalidQty(f"Invalid qty for consumable line {request_line_id}")
    if qty <= 0:
        raise InvalidQty(f"Invalid qty for consumable line {request_line_id}")
    return qty


def _issue_consumable(issue: Issue, request_line: RequestLine, raw: dict) -> IssueLine:
    qty = _line_qty(raw.get("qty"), request_line.id)
    location_id = base_location_id()

    decrement_stock(request_line.item_id, location_id, qty)

    line = IssueLine(
        issue_id=issue.id,
        request_line_id=request_line.id,
        item_id=request_line.item_id,
        qty=qty,
        uom=request_line.uom,
    )
    db.session.add(line)
    db.session.flush()

    append_stock_entry(
        item_id=request_line.item_id,
        location_id=location_id,
        txn_type=LEDGER_TXN_ISSUE,
        qty_delta=-qty,
        ref_table=ISSUE_LINES_REF,
        ref_id=line.id,
    )
    return line


def _issue_asset(issue: Issue, request_line: RequestLine, raw: dict) -> IssueLine:
    asset_id = to_optional_int(raw.get("assetId", raw.get("asset_id")), "assetId")
    if asset_id is None:
        raise AssetIdRequired(request_line.id)

    asset = lock_for_update(db.session.query(Asset).filter(Asset.id == asset_id)).first()
    if asset is None:
        raise AssetNotFound(asset_id)
    if asset.item_id != request_line.item_id:
        raise AssetItemMismatch(asset_id)
    if asset.status != ASSET_STATUS_READY:
        logger.warning("Asset %s not available for issue (status=%s)", asset_id, asset.status)
        raise AssetNotAvailable(asset_id)

    line = IssueLine(
        issue_id=issue.id,
        request_line_id=request_line.id,
        item_id=request_line.item_id,
        asset_id=asset.id,
    )
    db.session.add(line)
    asset.status = ASSET_STATUS_ISSUED
    db.session.flush()

    append_stock_entry(
        item_id=request_line.item_id,
        location_id=asset.location_id or base_location_id(),
        txn_type=LEDGER_TXN_ISSUE,
        qty_delta=0,
        ref_table=ISSUE_LINES_REF,
        ref_id=line.id,
    )
    return line


def _create_issue_inner(
    caller: CallerContext,
    request_id: int,
    waybill_no: str | None,
    raw_lines: list,
) -> Issue:
    req = db.session.get(Request, request_id)
    if req is None:
        raise RequestNotFound(request_id)
    if req.status != REQUEST_STATUS_APPROVED:
        raise ConflictError(f"Request {request_id} is {req.status}; only Approved requests can be issued")

    issue = Issue(request_id=req.id, issued_by=caller.user_id, waybill_no=waybill_no)
    db.session.add(issue)
    db.session.flush()

    line_ids = []
    for raw in raw_lines:
        if not isinstance(raw, dict):
            raise ValidationError("Each line must be an object")
        line_ids.append(raw.get("requestLineId", raw.get("request_line_id")))

    numeric_ids = [to_optional_int(v, "requestLineId") for v in line_ids]
    request_lines = {
        rl.id: rl
        for rl in db.session.query(RequestLine).filter(
            RequestLine.request_id == req.id,
            RequestLine.id.in_([i for i in numeric_ids if i is not None]),
        )
    }

    for raw, raw_id, line_id in zip(raw_lines, line_ids, numeric_ids):
        request_line = request_lines.get(line_id)
        if request_line is None:
            raise LineNotFound(f"Request line {raw_id} not found")

        item_id = to_optional_int(raw.get("itemId", raw.get("item_id")), "itemId")
        if request_line.item_id is None or request_line.item_id != item_id:
            raise ItemMismatch(request_line.id)

        if request_line.is_consumable:
            _issue_consumable(issue, request_line, raw)
        else:
            _issue_asset(issue, request_line, raw)

    return issue


def create_issue(
    caller: CallerContext,
    *,
    request_id: Any,
    waybill_no: Any = None,
    lines: Any = None,
) -> Issue:
    """
    Issue stock/assets against an Approved request.

    Returns the committed Issue. Any line failure rolls back the header,
    every other line, the stock decrements and the ledger rows.
    """
    if request_id is None or request_id == "" or not isinstance(lines, list) or not lines:
        raise ValidationError("requestId and at least one line are required.")
    request_id = to_int(request_id, "requestId")

    issue = run_in_transaction(
        lambda: _create_issue_inner(caller, request_id, to_text(waybill_no), lines)
    )
    logger.info("Issue %s created for request %s by user %s (%s lines)", issue.id, request_id, caller.user_id, len(lines))
    activity_service.log_activity(
        caller,
        activity_service.ACTION_EQUIPMENT_ISSUED,
        entity_type="issue",
        entity_id=issue.id,
        entity_name=issue.waybill_no,
        description=f"Issued {len(lines)} line(s) for request #{request_id}",
        metadata={"request_id": request_id},
    )
    return issue


def get_issue(issue_id: int) -> Issue | None:
    return db.session.get(Issue, issue_id)
