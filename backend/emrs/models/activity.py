from __future__ import annotations

from ..extensions import db
from emrs.time_utils import to_utc_z, utcnow


class ActivityLog(db.Model):
    """
    Who-did-what trail for dashboards.

    Actor name, role and department are denormalized at write time so the
    row stays readable after the user moves department or is deactivated.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_user_created", "user_id", "created_at"),
        db.Index("ix_activity_logs_department_created", "department_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    user_name = db.Column(db.String(255), nullable=True)
    user_role = db.Column(db.String(32), nullable=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)
    department_name = db.Column(db.String(255), nullable=True)

    action_type = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(64), nullable=True)
    entity_id = db.Column(db.Integer, nullable=True)
    entity_name = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)
    # "metadata" is reserved on declarative models
    metadata_json = db.Column("metadata", db.JSON, nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_role": self.user_role,
            "department_id": self.department_id,
            "department_name": self.department_name,
            "action_type": self.action_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "description": self.description,
            "metadata": self.metadata_json,
            "ip_address": self.ip_address,
            "created_at": to_utc_z(self.created_at),
        }
