from __future__ import annotations

from ..extensions import db
from labflow.time_utils import to_utc_z


# Case statuses (order is board column order)
CASE_STATUS_RECEIVED = "RECEIVED"
CASE_STATUS_IN_PRODUCTION = "IN_PRODUCTION"
CASE_STATUS_WAITING_APPROVAL = "WAITING_APPROVAL"
CASE_STATUS_APPROVED = "APPROVED"
CASE_STATUS_READY_FOR_DELIVERY = "READY_FOR_DELIVERY"
CASE_STATUS_DELIVERED = "DELIVERED"
CASE_STATUS_CANCELLED = "CANCELLED"

CASE_STATUSES = (
    CASE_STATUS_RECEIVED,
    CASE_STATUS_IN_PRODUCTION,
    CASE_STATUS_WAITING_APPROVAL,
    CASE_STATUS_APPROVED,
    CASE_STATUS_READY_FOR_DELIVERY,
    CASE_STATUS_DELIVERED,
    CASE_STATUS_CANCELLED,
)
KANBAN_STATUSES = CASE_STATUSES[:5]
TERMINAL_STATUSES = frozenset({CASE_STATUS_DELIVERED, CASE_STATUS_CANCELLED})

# Statuses only reachable by a manual board move; they cannot be derived from stages
PINNED_STATUSES = frozenset({CASE_STATUS_WAITING_APPROVAL, CASE_STATUS_APPROVED})

# Stage statuses
STAGE_STATUS_PENDING = "PENDING"
STAGE_STATUS_IN_PROGRESS = "IN_PROGRESS"
STAGE_STATUS_COMPLETED = "COMPLETED"
STAGE_STATUS_SKIPPED = "SKIPPED"

STAGE_STATUSES = (
    STAGE_STATUS_PENDING,
    STAGE_STATUS_IN_PROGRESS,
    STAGE_STATUS_COMPLETED,
    STAGE_STATUS_SKIPPED,
)
STAGE_TERMINAL_STATUSES = frozenset({STAGE_STATUS_COMPLETED, STAGE_STATUS_SKIPPED})

STAGE_ACTIONS = ("start", "complete", "skip")

PRIORITIES = ("NORMAL", "URGENT", "CRITICAL")  # ascending urgency
MODALITIES = ("ANALOG", "DIGITAL", "HYBRID")


class Case(db.Model):
    """
    One prosthesis manufacturing job.

    LIFECYCLE:
        RECEIVED -> IN_PRODUCTION -> READY_FOR_DELIVERY -> DELIVERED
        WAITING_APPROVAL / APPROVED are manual board states (status_pinned=True)
        CANCELLED from any non-terminal status

    INVARIANTS:
    - case_number is unique per tenant, assigned once at creation, never reused
    - stages are created with the case and never added or removed afterwards
    - DELIVERED and CANCELLED are terminal
    - version_id guards concurrent writers (optimistic lock on every engine,
      on top of SELECT ... FOR UPDATE where the engine supports it)
    """
    __tablename__ = "cases"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "case_number", name="uq_cases_tenant_case_number"),
        # Board query: active cases by status
        db.Index("ix_cases_tenant_status", "tenant_id", "status"),
        db.Index("ix_cases_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    case_number = db.Column(db.Integer, nullable=False)

    # Descriptive
    patient_name = db.Column(db.String(255), nullable=False)
    prosthesis_type_id = db.Column(db.String(100), nullable=False, index=True)
    subtype = db.Column(db.String(100), nullable=True)
    modality = db.Column(db.String(16), nullable=False, default="ANALOG")
    teeth = db.Column(db.JSON, nullable=False, default=list)  # FDI codes, e.g. ["11", "21"]
    shade = db.Column(db.String(20), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Workflow
    status = db.Column(db.String(32), nullable=False, default=CASE_STATUS_RECEIVED)
    status_pinned = db.Column(db.Boolean, nullable=False, default=False)
    priority = db.Column(db.String(16), nullable=False, default="NORMAL", index=True)
    sla_date = db.Column(db.DateTime(timezone=True), nullable=True)
    assigned_to = db.Column(db.String(64), nullable=True, index=True)

    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivery_method = db.Column(db.String(50), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    tenant = db.relationship("Tenant")
    client = db.relationship("Client", backref=db.backref("cases", lazy=True))
    stages = db.relationship(
        "CaseStage",
        back_populates="case",
        order_by="CaseStage.stage_order",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_closed(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<Case id={self.id} number={self.case_number} status={self.status}>"

    def to_dict(self, include_stages: bool = False) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "case_number": self.case_number,
            "patient_name": self.patient_name,
            "prosthesis_type_id": self.prosthesis_type_id,
            "subtype": self.subtype,
            "modality": self.modality,
            "teeth": list(self.teeth or []),
            "shade": self.shade,
            "notes": self.notes,
            "status": self.status,
            "status_pinned": self.status_pinned,
            "priority": self.priority,
            "sla_date": to_utc_z(self.sla_date),
            "assigned_to": self.assigned_to,
            "delivered_at": to_utc_z(self.delivered_at),
            "delivery_method": self.delivery_method,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancel_reason": self.cancel_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_stages:
            data["stages"] = [s.to_dict() for s in self.stages]
        return data


class CaseStage(db.Model):
    """
    One ordered production step of a case.

    LIFECYCLE:
        PENDING -> IN_PROGRESS -> COMPLETED
        PENDING / IN_PROGRESS -> SKIPPED
    COMPLETED and SKIPPED are terminal.
    """
    __tablename__ = "case_stages"
    __table_args__ = (
        db.UniqueConstraint("case_id", "stage_order", name="uq_case_stages_case_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    case_id = db.Column(db.Integer, db.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)

    stage_name = db.Column(db.String(120), nullable=False)
    stage_order = db.Column(db.Integer, nullable=False)  # 1-based
    status = db.Column(db.String(16), nullable=False, default=STAGE_STATUS_PENDING)

    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    case = db.relationship("Case", back_populates="stages")

    @property
    def is_terminal(self) -> bool:
        return self.status in STAGE_TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<CaseStage id={self.id} order={self.stage_order} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "case_id": self.case_id,
            "stage_name": self.stage_name,
            "stage_order": self.stage_order,
            "status": self.status,
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at),
            "notes": self.notes,
        }


class CaseComment(db.Model):
    """
    One message in a case's discussion thread.

    Comments are conversation, not workflow: they never change the case,
    are accepted on closed cases, and are not audited. Internal comments are
    meant for lab staff only.
    """
    __tablename__ = "case_comments"
    __table_args__ = (
        db.Index("ix_case_comments_tenant_case", "tenant_id", "case_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    case_id = db.Column(db.Integer, db.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = db.Column(db.String(64), nullable=True)
    content = db.Column(db.Text, nullable=False)
    is_internal = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "case_id": self.case_id,
            "author_id": self.author_id,
            "content": self.content,
            "is_internal": self.is_internal,
            "created_at": to_utc_z(self.created_at),
        }
