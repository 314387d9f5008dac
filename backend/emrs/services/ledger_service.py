# Overview: Stock ledger and on-hand quantity mutations for consumables.

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite

from ..extensions import db
from ..models import ItemLocation, StockLedger
from ..validation import InsufficientStock
"""
EMRS Stock Ledger Invariants (authoritative)

- Append-only: StockLedger rows are never updated or deleted (mapper guards).
- Every on_hand_qty change made by an issue or return writes exactly one
  ledger row in the same transaction, with the same signed delta.
- Asset movements write zero-delta rows so the trail is uniform per line.
- Reconciliation: on_hand_qty == opening_qty + SUM(qty_delta) per
  (item_id, location_id).
"""


logger = logging.getLogger(__name__)


def append_stock_entry(
    *,
    item_id: int,
    location_id: int,
    txn_type: str,
    qty_delta: int,
    ref_table: str,
    ref_id: int,
) -> StockLedger:
    """Append one ledger row in the current transaction (flushed, not committed)."""
    entry = StockLedger(
        item_id=item_id,
        location_id=location_id,
        txn_type=txn_type,
        qty_delta=qty_delta,
        ref_table=ref_table,
        ref_id=ref_id,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def ensure_item_location(item_id: int, location_id: int) -> ItemLocation:
    """
    Return the (item, location) stock row, inserting a zero row if absent.

    INSERT ... ON CONFLICT (item_id, location_id) DO NOTHING, then select:
    two transactions creating the same row both end up reading the one
    that won instead of tripping the unique constraint.
    """
    dialect = db.session.get_bind().dialect.name
    insert = _UPSERT_INSERTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"Unsupported database dialect for stock upsert: {dialect}")

    db.session.execute(
        insert(ItemLocation.__table__)
        .values(item_id=item_id, location_id=location_id, on_hand_qty=0, reserved_qty=0, opening_qty=0)
        .on_conflict_do_nothing(index_elements=["item_id", "location_id"])
    )
    return (
        db.session.query(ItemLocation)
        .filter_by(item_id=item_id, location_id=location_id)
        .populate_existing()
        .one()
    )


def get_on_hand(item_id: int, location_id: int) -> int:
    """Current on-hand straight from the database (never from the identity map)."""
    value = (
        db.session.query(ItemLocation.on_hand_qty)
        .filter(ItemLocation.item_id == item_id, ItemLocation.location_id == location_id)
        .scalar()
    )
    return int(value or 0)


def decrement_stock(item_id: int, location_id: int, qty: int) -> None:
    """
    Take qty out of on-hand with a single conditional UPDATE.

    UPDATE item_locations SET on_hand_qty = on_hand_qty - :qty
    WHERE item_id = :item AND location_id = :loc AND on_hand_qty >= :qty

    Zero rows affected means the stock was not there at the time of the
    write, so concurrent issuers can never drive on_hand below zero.
    """
    ensure_item_location(item_id, location_id)
    updated = (
        db.session.query(ItemLocation)
        .filter(
            ItemLocation.item_id == item_id,
            ItemLocation.location_id == location_id,
            ItemLocation.on_hand_qty >= qty,
        )
        .update({ItemLocation.on_hand_qty: ItemLocation.on_hand_qty - qty}, synchronize_session=False)
    )
    if updated == 0:
        have = get_on_hand(item_id, location_id)
        logger.warning("Insufficient stock for item %s at %s: have %s, need %s", item_id, location_id, have, qty)
        raise InsufficientStock(item_id, have, qty)
    logger.info("Stock decremented: item %s at %s by %s", item_id, location_id, qty)


def increment_stock(item_id: int, location_id: int, qty: int) -> None:
    ensure_item_location(item_id, location_id)
    (
        db.session.query(ItemLocation)
        .filter(ItemLocation.item_id == item_id, ItemLocation.location_id == location_id)
        .update({ItemLocation.on_hand_qty: ItemLocation.on_hand_qty + qty}, synchronize_session=False)
    )
    logger.info("Stock incremented: item %s at %s by %s", item_id, location_id, qty)


def load_opening_stock(item_id: int, location_id: int, qty: int) -> ItemLocation:
    """
    Add stock that enters outside the issue/return flow (seeding, stock-take).

    Recorded as opening_qty so reconciliation still balances. Caller commits.
    """
    row = ensure_item_location(item_id, location_id)
    row.on_hand_qty = row.on_hand_qty + qty
    row.opening_qty = row.opening_qty + qty
    db.session.flush()
    return row


def list_entries(
    *,
    item_id: int | None = None,
    location_id: int | None = None,
    ref_table: str | None = None,
    limit: int = 200,
) -> list[StockLedger]:
    query = db.session.query(StockLedger)
    if item_id is not None:
        query = query.filter(StockLedger.item_id == item_id)
    if location_id is not None:
        query = query.filter(StockLedger.location_id == location_id)
    if ref_table:
        query = query.filter(StockLedger.ref_table == ref_table)
    return query.order_by(StockLedger.id.desc()).limit(limit).all()


def reconcile(*, item_id: int | None = None, location_id: int | None = None) -> list[dict]:
    """
    Compare on_hand_qty against opening_qty + ledger sum per (item, location).

    Returns one dict per ItemLocation row; reconciled is False when the
    ledger and the stock table disagree.
    """
    sums = (
        db.session.query(
            StockLedger.item_id,
            StockLedger.location_id,
            func.coalesce(func.sum(StockLedger.qty_delta), 0),
        )
        .group_by(StockLedger.item_id, StockLedger.location_id)
    )
    if item_id is not None:
        sums = sums.filter(StockLedger.item_id == item_id)
    if location_id is not None:
        sums = sums.filter(StockLedger.location_id == location_id)
    ledger_by_key = {(row[0], row[1]): int(row[2]) for row in sums.all()}

    rows = db.session.query(ItemLocation)
    if item_id is not None:
        rows = rows.filter(ItemLocation.item_id == item_id)
    if location_id is not None:
        rows = rows.filter(ItemLocation.location_id == location_id)

    report = []
    for row in rows.order_by(ItemLocation.item_id, ItemLocation.location_id).all():
        ledger_sum = ledger_by_key.get((row.item_id, row.location_id), 0)
        expected = row.opening_qty + ledger_sum
        report.append({
            "item_id": row.item_id,
            "location_id": row.location_id,
            "on_hand_qty": row.on_hand_qty,
            "opening_qty": row.opening_qty,
            "ledger_sum": ledger_sum,
            "expected_qty": expected,
            "reconciled": expected == row.on_hand_qty,
        })
    return report
