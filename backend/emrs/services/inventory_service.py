# Overview: Service-layer operations for the item master and serialized assets.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Asset, Item, ItemLocation
from ..models.inventory import ASSET_STATUS_READY
from ..validation import ConflictError, ItemNotFound, ValidationError, to_text
from .concurrency import run_in_transaction
from .ledger_service import load_opening_stock


logger = logging.getLogger(__name__)


def create_item(name: str, *, is_consumable: bool = True, default_uom: str | None = None) -> Item:
    name = to_text(name)
    if not name:
        raise ValidationError("Item name is required")
    item = Item(name=name, is_consumable=is_consumable, default_uom=to_text(default_uom))
    db.session.add(item)
    db.session.commit()
    logger.info("Created item %s (%s, consumable=%s)", item.id, name, is_consumable)
    return item


def receive_opening_stock(item_id: int, location_id: int, qty: int) -> ItemLocation:
    """
    Load consumable stock into a location outside the issue/return flow.

    Raises:
        ItemNotFound: unknown item
        ValidationError: non-consumable item or qty <= 0
    """
    item = db.session.get(Item, item_id)
    if item is None:
        raise ItemNotFound(item_id)
    if not item.is_consumable:
        raise ValidationError(f"Item {item_id} is tracked per asset; add assets instead")
    if qty <= 0:
        raise ValidationError("Quantity must be positive")

    row = run_in_transaction(lambda: load_opening_stock(item.id, location_id, qty))
    logger.info("Loaded %s of item %s into location %s", qty, item_id, location_id)
    return row


def create_asset(
    item_id: int,
    *,
    tag: str | None = None,
    serial_number: str | None = None,
    location_id: int | None = None,
    status: str = ASSET_STATUS_READY,
) -> Asset:
    item = db.session.get(Item, item_id)
    if item is None:
        raise ItemNotFound(item_id)
    if item.is_consumable:
        raise ValidationError(f"Item {item_id} is consumable; load stock instead")
    tag = to_text(tag)
    if tag and db.session.query(Asset).filter_by(tag=tag).first():
        raise ConflictError(f"Asset tag {tag!r} already exists")

    asset = Asset(
        item_id=item.id,
        tag=tag,
        serial_number=to_text(serial_number),
        location_id=location_id,
        status=status,
    )
    db.session.add(asset)
    db.session.commit()
    logger.info("Created asset %s for item %s", asset.id, item_id)
    return asset


def get_stock(item_id: int) -> list[ItemLocation]:
    return (
        db.session.query(ItemLocation)
        .filter(ItemLocation.item_id == item_id)
        .order_by(ItemLocation.location_id)
        .all()
    )
