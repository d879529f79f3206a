from __future__ import annotations

from ..extensions import db
from labflow.time_utils import to_utc_z


class TenantSequence(db.Model):
    """
    Atomic per-tenant counters (case numbers).

    WHY: Prevent race conditions when numbering cases. Exactly one row exists
    per (tenant_id, sequence_type); current_value is the last number issued
    and only ever increases.
    """
    __tablename__ = "tenant_sequences"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sequence_type", name="uq_tenant_sequences_tenant_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    sequence_type = db.Column(db.String(32), nullable=False)
    current_value = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sequence_type": self.sequence_type,
            "current_value": self.current_value,
            "updated_at": to_utc_z(self.updated_at),
        }
