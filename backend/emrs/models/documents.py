from __future__ import annotations

from ..extensions import db
from emrs.time_utils import to_utc_z, utcnow


RETURN_CONDITION_OK = "OK"
RETURN_CONDITIONS = ("OK", "Needs Inspection", "Damaged", "Repair")


class Issue(db.Model):
    """
    Fulfillment document against an Approved request.

    An Issue exists only if every line succeeded: the header, its lines,
    the stock decrements and the ledger rows are written in one transaction.
    """
    __tablename__ = "issues"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("requests.id"), nullable=False, index=True)
    issued_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    waybill_no = db.Column(db.String(64), nullable=True)
    issued_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    request = db.relationship("Request", backref=db.backref("issues", lazy=True))
    lines = db.relationship("IssueLine", backref="issue", lazy=True, order_by="IssueLine.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "issued_by": self.issued_by,
            "waybill_no": self.waybill_no,
            "issued_at": to_utc_z(self.issued_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class IssueLine(db.Model):
    """
    One fulfilled request line.

    Consumables carry (qty, uom); non-consumables carry asset_id.
    """
    __tablename__ = "issue_lines"
    __table_args__ = (
        db.CheckConstraint("qty IS NULL OR qty > 0", name="ck_issue_lines_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    issue_id = db.Column(db.Integer, db.ForeignKey("issues.id"), nullable=False, index=True)
    request_line_id = db.Column(db.Integer, db.ForeignKey("request_lines.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=True)

    qty = db.Column(db.Integer, nullable=True)
    uom = db.Column(db.String(32), nullable=True)
    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=True, index=True)

    request_line = db.relationship("RequestLine")
    asset = db.relationship("Asset")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "issue_id": self.issue_id,
            "request_line_id": self.request_line_id,
            "item_id": self.item_id,
            "qty": self.qty,
            "uom": self.uom,
            "asset_id": self.asset_id,
        }


class Return(db.Model):
    """
    Reversal document against an Issue.

    Consumable lines put quantity back at the base location; asset lines
    route the asset to Ready (condition OK) or Under_Maintenance (anything else).
    """
    __tablename__ = "returns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    issue_id = db.Column(db.Integer, db.ForeignKey("issues.id"), nullable=False, index=True)
    received_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    notes = db.Column(db.Text, nullable=True)

    issue = db.relationship("Issue", backref=db.backref("returns", lazy=True))
    lines = db.relationship("ReturnLine", backref="return_doc", lazy=True, order_by="ReturnLine.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "issue_id": self.issue_id,
            "received_by": self.received_by,
            "received_at": to_utc_z(self.received_at),
            "notes": self.notes,
            "lines": [line.to_dict() for line in self.lines],
        }


class ReturnLine(db.Model):
    __tablename__ = "return_lines"
    __table_args__ = (
        db.CheckConstraint("qty IS NULL OR qty > 0", name="ck_return_lines_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    issue_line_id = db.Column(db.Integer, db.ForeignKey("issue_lines.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=True)

    qty = db.Column(db.Integer, nullable=True)
    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=True)
    condition = db.Column(db.String(32), nullable=True)

    issue_line = db.relationship("IssueLine")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "issue_line_id": self.issue_line_id,
            "item_id": self.item_id,
            "qty": self.qty,
            "asset_id": self.asset_id,
            "condition": self.condition,
        }
