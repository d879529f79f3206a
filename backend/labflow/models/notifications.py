from __future__ import annotations

from ..extensions import db
from labflow.time_utils import to_utc_z


class Notification(db.Model):
    """
    Tenant-wide notification about a user-facing case transition.

    Written after the workflow transaction commits; losing one never affects
    the case it describes.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    type = db.Column(db.String(64), nullable=False)  # case.ready_for_delivery, case.delivered, case.cancelled
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    ref_type = db.Column(db.String(32), nullable=True)
    ref_id = db.Column(db.Integer, nullable=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "ref_type": self.ref_type,
            "ref_id": self.ref_id,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
        }
