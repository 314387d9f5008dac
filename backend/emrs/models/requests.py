from __future__ import annotations

from ..extensions import db
from emrs.time_utils import to_utc_z, utcnow


REQUEST_STATUS_PENDING = "Pending"
REQUEST_STATUS_APPROVED = "Approved"
REQUEST_STATUS_REJECTED = "Rejected"
REQUEST_STATUS_TRANSFERRED = "Transferred"
REQUEST_STATUS_COMPLETED = "Completed"

PRIORITIES = ("Low", "Medium", "High", "Urgent")

APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"
APPROVAL_TRANSFERRED = "transferred"


class Request(db.Model):
    """
    Requisition header.

    LIFECYCLE:
    1. Pending: created, sitting in the owning department's queue
    2. Transferred: re-homed to another department's queue (repeatable)
    3. Approved / Rejected: manager decision (Approved may be issued against)
    4. Completed: fulfilled and closed

    department_id is always the CURRENT owner. A transfer rewrites it together
    with transferred_to_department.
    """
    __tablename__ = "requests"
    __table_args__ = (
        db.Index("ix_requests_department_status", "department_id", "status"),
        db.Index("ix_requests_requested_by_created", "requested_by", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    requested_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    subject = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)
    priority = db.Column(db.String(16), nullable=False, default="Medium")
    request_type = db.Column(db.String(64), nullable=True, index=True)

    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True, index=True)
    status = db.Column(db.String(16), nullable=False, default=REQUEST_STATUS_PENDING, index=True)

    # Equipment requests: either a catalogued equipment_id or a brand-new item
    equipment_id = db.Column(db.Integer, db.ForeignKey("equipment.id"), nullable=True)
    is_new_equipment = db.Column(db.Boolean, nullable=False, default=False)
    new_equipment_name = db.Column(db.String(255), nullable=True)
    new_equipment_description = db.Column(db.Text, nullable=True)

    transferred_to_department = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)
    transferred_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    transferred_at = db.Column(db.DateTime(timezone=True), nullable=True)
    transfer_notes = db.Column(db.Text, nullable=True)

    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    requester = db.relationship("User", foreign_keys=[requested_by])
    approver = db.relationship("User", foreign_keys=[approved_by])
    transferrer = db.relationship("User", foreign_keys=[transferred_by])
    department = db.relationship("Department", foreign_keys=[department_id])
    transferred_to = db.relationship("Department", foreign_keys=[transferred_to_department])
    equipment = db.relationship("Equipment")

    lines = db.relationship(
        "RequestLine",
        backref="request",
        lazy=True,
        order_by="RequestLine.id",
    )
    approvals = db.relationship(
        "RequestApproval",
        backref="request",
        lazy=True,
        order_by="RequestApproval.id",
    )

    def __repr__(self) -> str:
        return f"<Request id={self.id} type={self.request_type!r} status={self.status}>"

    @property
    def display_name(self) -> str | None:
        if self.is_new_equipment:
            return self.new_equipment_name
        return self.equipment.name if self.equipment else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "requested_by": self.requested_by,
            "subject": self.subject,
            "description": self.description,
            "priority": self.priority,
            "request_type": self.request_type,
            "department_id": self.department_id,
            "status": self.status,
            "equipment_id": self.equipment_id,
            "is_new_equipment": self.is_new_equipment,
            "new_equipment_name": self.new_equipment_name,
            "new_equipment_description": self.new_equipment_description,
            "transferred_to_department": self.transferred_to_department,
            "transferred_by": self.transferred_by,
            "transferred_at": to_utc_z(self.transferred_at),
            "transfer_notes": self.transfer_notes,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "completed_at": to_utc_z(self.completed_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class RequestLine(db.Model):
    """
    A requested item within a Request.

    item_id is nullable: free-text lines (PPE, transport, ...) only carry
    item_name and the raw payload in extra_data. is_consumable and uom are
    copied from Item when the line is created, never joined live.
    """
    __tablename__ = "request_lines"
    __table_args__ = (
        db.CheckConstraint("requested_qty > 0", name="ck_request_lines_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("requests.id"), nullable=False, index=True)

    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=True, index=True)
    item_name = db.Column(db.String(255), nullable=True)
    requested_qty = db.Column(db.Integer, nullable=False, default=1)
    is_consumable = db.Column(db.Boolean, nullable=True)
    uom = db.Column(db.String(32), nullable=True)

    extra_data = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "requested_qty": self.requested_qty,
            "is_consumable": self.is_consumable,
            "uom": self.uom,
            "extra_data": self.extra_data,
            "created_at": to_utc_z(self.created_at),
        }


class RequestApproval(db.Model):
    """
    Immutable history of approve/reject/transfer actions.

    IMMUTABLE: one row per action, never updated or deleted.
    department_id is the department context of the action (the target
    department for transfers).
    """
    __tablename__ = "request_approvals"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("requests.id"), nullable=False, index=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    status = db.Column(db.String(16), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    actor = db.relationship("User")
    department = db.relationship("Department")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "department_id": self.department_id,
            "department_name": self.department.name if self.department else None,
            "approved_by": self.approved_by,
            "approved_by_name": self.actor.name if self.actor else None,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
