from __future__ import annotations

import json

from ..extensions import db
from labflow.time_utils import to_utc_z


class AuditEntry(db.Model):
    """
    Append-only record of a workflow state transition.

    entity_id and case_id are weak references (no foreign keys): entries
    outlive nothing and own nothing. Rows are never updated or deleted.
    """
    __tablename__ = "audit_entries"
    __table_args__ = (
        db.Index("ix_audit_entries_tenant_case", "tenant_id", "case_id", "occurred_at"),
        db.Index("ix_audit_entries_entity", "entity", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, nullable=False, index=True)

    # What it refers to (generic pointer)
    entity = db.Column(db.String(32), nullable=False)  # Case, CaseStage
    entity_id = db.Column(db.Integer, nullable=False)
    case_id = db.Column(db.Integer, nullable=True)  # owning case, for per-case history

    action = db.Column(db.String(64), nullable=False, index=True)  # CREATED, STAGE_START, STATUS_CHANGED, ...
    actor_id = db.Column(db.String(64), nullable=True)

    # JSON snapshots (keep small; status fields only plus what the action changed)
    payload_before = db.Column(db.Text, nullable=True)
    payload_after = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def before(self) -> dict | None:
        return json.loads(self.payload_before) if self.payload_before else None

    @property
    def after(self) -> dict | None:
        return json.loads(self.payload_after) if self.payload_after else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "case_id": self.case_id,
            "action": self.action,
            "actor_id": self.actor_id,
            "payload_before": self.before,
            "payload_after": self.after,
            "occurred_at": to_utc_z(self.occurred_at),
        }
