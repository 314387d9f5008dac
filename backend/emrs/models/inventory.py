from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from emrs.time_utils import to_iso_date, to_utc_z, utcnow


ASSET_STATUS_READY = "Ready"
ASSET_STATUS_ISSUED = "Issued"
ASSET_STATUS_UNDER_MAINTENANCE = "Under_Maintenance"
ASSET_STATUS_RETIRED = "Retired"

LEDGER_TXN_ISSUE = "ISSUE"
LEDGER_TXN_RETURN = "RETURN"

EQUIPMENT_STATUS_OPERATIONAL = "Operational"
EQUIPMENT_STATUS_MAINTENANCE = "Maintenance"
EQUIPMENT_STATUS_RETIRED = "Retired"

EQUIPMENT_STATUSES = (EQUIPMENT_STATUS_OPERATIONAL, EQUIPMENT_STATUS_MAINTENANCE, EQUIPMENT_STATUS_RETIRED)


class Item(db.Model):
    """
    Master inventory item.

    Consumables are fungible and counted per location in ItemLocation.
    Non-consumables are tracked one unit at a time as Asset rows.
    """
    __tablename__ = "items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    is_consumable = db.Column(db.Boolean, nullable=False, default=True)
    default_uom = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Item id={self.id} name={self.name!r} consumable={self.is_consumable}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_consumable": self.is_consumable,
            "default_uom": self.default_uom,
            "created_at": to_utc_z(self.created_at),
        }


class ItemLocation(db.Model):
    """
    On-hand quantity of a consumable at one location.

    INVARIANT: on_hand_qty >= 0. Decrements go through a conditional UPDATE
    (WHERE on_hand_qty >= qty) so concurrent issuers cannot overdraw.

    opening_qty is the stock loaded outside the issue/return flow (seeding,
    stock-take). Reconciliation: on_hand_qty == opening_qty + SUM(ledger deltas).
    """
    __tablename__ = "item_locations"
    __table_args__ = (
        db.UniqueConstraint("item_id", "location_id", name="uq_item_locations_item_location"),
        db.CheckConstraint("on_hand_qty >= 0", name="ck_item_locations_on_hand_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, nullable=False, index=True)

    on_hand_qty = db.Column(db.Integer, nullable=False, default=0)
    reserved_qty = db.Column(db.Integer, nullable=False, default=0)
    opening_qty = db.Column(db.Integer, nullable=False, default=0)

    item = db.relationship("Item", backref=db.backref("locations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "location_id": self.location_id,
            "on_hand_qty": self.on_hand_qty,
            "reserved_qty": self.reserved_qty,
            "opening_qty": self.opening_qty,
        }


class Asset(db.Model):
    """
    A single serialized non-consumable unit.

    status is the only source of truth for availability: only Ready assets
    can be issued.
    """
    __tablename__ = "assets"
    __table_args__ = (
        db.Index("ix_assets_item_status", "item_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    tag = db.Column(db.String(64), nullable=True, unique=True)
    serial_number = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(32), nullable=False, default=ASSET_STATUS_READY)
    location_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    item = db.relationship("Item", backref=db.backref("assets", lazy=True))

    def __repr__(self) -> str:
        return f"<Asset id={self.id} item_id={self.item_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "tag": self.tag,
            "serial_number": self.serial_number,
            "status": self.status,
            "location_id": self.location_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Equipment(db.Model):
    """
    Department-owned equipment catalog (equipment requests, maintenance logs).

    assigned_to is the user currently holding the unit, if any. Retired
    equipment stays in the catalog so its maintenance history is kept.
    """
    __tablename__ = "equipment"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    serial_number = db.Column(db.String(128), nullable=True)
    location = db.Column(db.String(255), nullable=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True, index=True)
    status = db.Column(db.String(32), nullable=False, default=EQUIPMENT_STATUS_OPERATIONAL)

    assigned_to = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    added_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    last_maintained = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    department = db.relationship("Department", backref=db.backref("equipment", lazy=True))
    assignee = db.relationship("User", foreign_keys=[assigned_to])
    creator = db.relationship("User", foreign_keys=[added_by])

    def __repr__(self) -> str:
        return f"<Equipment id={self.id} name={self.name!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "serial_number": self.serial_number,
            "location": self.location,
            "department_id": self.department_id,
            "department_name": self.department.name if self.department else None,
            "status": self.status,
            "assigned_to": self.assigned_to,
            "assigned_to_name": self.assignee.name if self.assignee else None,
            "added_by": self.added_by,
            "added_by_name": self.creator.name if self.creator else None,
            "last_maintained": to_iso_date(self.last_maintained),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockLedger(db.Model):
    """
    Append-only journal of every quantity-affecting movement.

    qty_delta is signed: negative for ISSUE, positive for RETURN, zero for
    asset traceability rows. (ref_table, ref_id) points at the issue_lines or
    return_lines row that produced the entry.

    IMMUTABLE: ORM updates and deletes are refused by the mapper listeners
    below.
    """
    __tablename__ = "stock_ledger"
    __table_args__ = (
        db.Index("ix_stock_ledger_item_location", "item_id", "location_id"),
        db.Index("ix_stock_ledger_ref", "ref_table", "ref_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)
    location_id = db.Column(db.Integer, nullable=False)
    txn_type = db.Column(db.String(16), nullable=False, index=True)
    qty_delta = db.Column(db.Integer, nullable=False)
    ref_table = db.Column(db.String(64), nullable=False)
    ref_id = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "location_id": self.location_id,
            "txn_type": self.txn_type,
            "qty_delta": self.qty_delta,
            "ref_table": self.ref_table,
            "ref_id": self.ref_id,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockLedger, "before_update")
def _stock_ledger_no_update(mapper, connection, target: StockLedger):
    raise ValueError(f"StockLedger entry {target.id} is immutable")


@event.listens_for(StockLedger, "before_delete")
def _stock_ledger_no_delete(mapper, connection, target: StockLedger):
    raise ValueError(f"StockLedger entry {target.id} cannot be deleted")
