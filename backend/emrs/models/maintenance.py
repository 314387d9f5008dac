from __future__ import annotations

from ..extensions import db
from emrs.time_utils import to_iso_date, to_utc_z, utcnow


class MaintenanceLog(db.Model):
    """Service record against a piece of department equipment."""
    __tablename__ = "maintenance_logs"
    __table_args__ = (
        db.Index("ix_maintenance_logs_equipment_date", "equipment_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    equipment_id = db.Column(db.Integer, db.ForeignKey("equipment.id"), nullable=False, index=True)
    maintenance_type = db.Column(db.String(64), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    date = db.Column(db.Date, nullable=False)

    hours_at_service = db.Column(db.Integer, nullable=True)
    performed_by = db.Column(db.String(255), nullable=True)
    cost = db.Column(db.Numeric(12, 2), nullable=True)
    parts_used = db.Column(db.Text, nullable=True)
    next_service_hours = db.Column(db.Integer, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    equipment = db.relationship("Equipment", backref=db.backref("maintenance_logs", lazy=True))
    creator = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "equipment_id": self.equipment_id,
            "equipment_name": self.equipment.name if self.equipment else None,
            "department_id": self.equipment.department_id if self.equipment else None,
            "maintenance_type": self.maintenance_type,
            "description": self.description,
            "date": to_iso_date(self.date),
            "hours_at_service": self.hours_at_service,
            "performed_by": self.performed_by,
            "cost": float(self.cost) if self.cost is not None else None,
            "parts_used": self.parts_used,
            "next_service_hours": self.next_service_hours,
            "created_by": self.created_by,
            "created_by_name": self.creator.name if self.creator else None,
            "created_at": to_utc_z(self.created_at),
        }
