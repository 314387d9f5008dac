"""
Return Processing Service

WHY: Issued stock and tools come back to the store. A Return reverses an
Issue line by line and records the condition assets came back in.

DESIGN PRINCIPLES:
- Returns reference the original Issue; every ReturnLine names the
  IssueLine it reverses
- One Return per call, all lines or nothing (single transaction)
- Consumables: on-hand incremented at the base location + RETURN ledger row
  with qty_delta = +qty; cannot return more than was issued on the line
- Assets: status -> Ready when condition is OK, otherwise Under_Maintenance
  (Needs Inspection, Damaged and Repair all route to maintenance); zero-delta
  RETURN ledger row
- Ledger rows point at ('return_lines', return_line.id)
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func

from ..extensions import db
from ..models import Asset, Issue, IssueLine, Return, ReturnLine
from ..models.documents import RETURN_CONDITION_OK, RETURN_CONDITIONS
from ..models.inventory import (
    ASSET_STATUS_ISSUED,
    ASSET_STATUS_READY,
    ASSET_STATUS_UNDER_MAINTENANCE,
    LEDGER_TXN_RETURN,
)
from ..validation import (
    AssetItemMismatch,
    AssetNotAvailable,
    AssetNotFound,
    ConflictError,
    InvalidQty,
    LineNotFound,
    NotFoundError,
    ValidationError,
    to_int,
    to_optional_int,
    to_text,
)
from . import activity_service
from .access_scope import CallerContext
from .concurrency import lock_for_update, run_in_transaction
from .issue_service import base_location_id
from .ledger_service import append_stock_entry, increment_stock


logger = logging.getLogger(__name__)


RETURN_LINES_REF = "return_lines"


def asset_status_for_condition(condition: str) -> str:
    return ASSET_STATUS_READY if condition == RETURN_CONDITION_OK else ASSET_STATUS_UNDER_MAINTENANCE


def _returned_so_far(issue_line_id: int) -> int:
    value = (
        db.session.query(func.coalesce(func.sum(ReturnLine.qty), 0))
        .filter(ReturnLine.issue_line_id == issue_line_id)
        .scalar()
    )
    return int(value or 0)


def _return_asset(return_doc: Return, issue_line: IssueLine, raw: dict) -> ReturnLine:
    asset_id = issue_line.asset_id
    if asset_id is None:
        asset_id = to_optional_int(raw.get("assetId", raw.get("asset_id")), "assetId")

    asset = lock_for_update(db.session.query(Asset).filter(Asset.id == asset_id)).first()
    if asset is None:
        raise AssetNotFound(asset_id)
    if asset.item_id != issue_line.item_id:
        raise AssetItemMismatch(asset_id)
    if asset.status != ASSET_STATUS_ISSUED:
        raise AssetNotAvailable(asset_id, f"Asset {asset_id} is not currently issued")

    condition = to_text(raw.get("condition")) or RETURN_CONDITION_OK
    if condition not in RETURN_CONDITIONS:
        raise ValidationError(f"Invalid condition: {condition}")

    line = ReturnLine(
        return_id=return_doc.id,
        issue_line_id=issue_line.id,
        item_id=issue_line.item_id,
        asset_id=asset.id,
        condition=condition,
    )
    db.session.add(line)
    asset.status = asset_status_for_condition(condition)
    db.session.flush()

    append_stock_entry(
        item_id=issue_line.item_id,
        location_id=asset.location_id or base_location_id(),
        txn_type=LEDGER_TXN_RETURN,
        qty_delta=0,
        ref_table=RETURN_LINES_REF,
        ref_id=line.id,
    )
    return line


def _return_consumable(return_doc: Return, issue_line: IssueLine, raw: dict) -> ReturnLine:
    raw_qty = raw.get("qty")
    try:
        qty = to_int(raw_qty, "qty") if raw_qty not in (None, "") else 0
    except ValidationError:
        qty = 0
    if qty <= 0:
        raise InvalidQty(f"Invalid qty for return on line {issue_line.id}")

    # Serializes concurrent returns against the same issue line
    lock_for_update(db.session.query(IssueLine).filter(IssueLine.id == issue_line.id)).first()
    already = _returned_so_far(issue_line.id)
    if issue_line.qty is not None and already + qty > issue_line.qty:
        raise ConflictError(
            f"Cannot return {qty} on line {issue_line.id}: issued {issue_line.qty}, already returned {already}"
        )

    location_id = base_location_id()
    line = ReturnLine(
        return_id=return_doc.id,
        issue_line_id=issue_line.id,
        item_id=issue_line.item_id,
        qty=qty,
    )
    db.session.add(line)
    db.session.flush()

    increment_stock(issue_line.item_id, location_id, qty)
    append_stock_entry(
        item_id=issue_line.item_id,
        location_id=location_id,
        txn_type=LEDGER_TXN_RETURN,
        qty_delta=qty,
        ref_table=RETURN_LINES_REF,
        ref_id=line.id,
    )
    return line


def _create_return_inner(
    caller: CallerContext,
    issue_id: int,
    notes: str | None,
    raw_lines: list,
) -> Return:
    issue = db.session.get(Issue, issue_id)
    if issue is None:
        raise NotFoundError(f"Issue {issue_id} not found")

    return_doc = Return(issue_id=issue.id, received_by=caller.user_id, notes=notes)
    db.session.add(return_doc)
    db.session.flush()

    line_ids = []
    for raw in raw_lines:
        if not isinstance(raw, dict):
            raise ValidationError("Each line must be an object")
        line_ids.append(raw.get("issueLineId", raw.get("issue_line_id")))

    numeric_ids = [to_optional_int(v, "issueLineId") for v in line_ids]
    issue_lines = {
        il.id: il
        for il in db.session.query(IssueLine).filter(
            IssueLine.issue_id == issue.id,
            IssueLine.id.in_([i for i in numeric_ids if i is not None]),
        )
    }

    for raw, raw_id, line_id in zip(raw_lines, line_ids, numeric_ids):
        issue_line = issue_lines.get(line_id)
        if issue_line is None:
            raise LineNotFound(f"Issue line {raw_id} not found")

        if issue_line.asset_id or raw.get("assetId") or raw.get("asset_id"):
            _return_asset(return_doc, issue_line, raw)
        else:
            _return_consumable(return_doc, issue_line, raw)

    return return_doc


def create_return(
    caller: CallerContext,
    *,
    issue_id: Any,
    notes: Any = None,
    lines: Any = None,
) -> Return:
    """
    Receive issued stock/assets back.

    Returns the committed Return. Any line failure rolls back the header,
    every other line, the stock increments, asset status changes and ledger rows.
    """
    if issue_id is None or issue_id == "" or not isinstance(lines, list) or not lines:
        raise ValidationError("issueId and at least one line are required.")
    issue_id = to_int(issue_id, "issueId")

    return_doc = run_in_transaction(
        lambda: _create_return_inner(caller, issue_id, to_text(notes), lines)
    )
    logger.info("Return %s created for issue %s by user %s (%s lines)", return_doc.id, issue_id, caller.user_id, len(lines))
    activity_service.log_activity(
        caller,
        activity_service.ACTION_EQUIPMENT_RETURNED,
        entity_type="return",
        entity_id=return_doc.id,
        description=f"Returned {len(lines)} line(s) against issue #{issue_id}",
        metadata={"issue_id": issue_id},
    )
    return return_doc


def get_return(return_id: int) -> Return | None:
    return db.session.get(Return, return_id)
