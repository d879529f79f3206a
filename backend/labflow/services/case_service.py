# Overview: Workflow orchestrator; the transactional facade for case creation and every case transition.

"""
Case Production Workflow

================================================================================
PURPOSE: Track a prosthesis case through its production stages
================================================================================

Each public operation below is one unit of work (run_in_transaction): it
either commits every write it makes (case, stages, sequence, audit entry) or
none of them. Notifications are sent only after the commit and cannot undo it.

OPERATIONS:
    create_case            RECEIVED, numbered, stages seeded from the catalog
    move_stage             start / complete / skip one stage; may derive case status
    update_status_manual   Kanban drag between the five board statuses
    deliver                -> DELIVERED (terminal)
    cancel                 -> CANCELLED (terminal)
    update_case            descriptive fields only

CONCURRENCY:
    The case row is loaded with SELECT ... FOR UPDATE and its version_id is
    bumped by every stage move, so two operators finishing the last two
    stages at the same time cannot both miss READY_FOR_DELIVERY: the second
    writer either waits for the row lock or fails its version check and is
    re-run against the committed stages.

None of the operations is idempotent: a retried deliver on a delivered case
raises CaseClosedError.
================================================================================
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..errors import CaseClosedError, NotFoundError
from ..extensions import db
from ..models import Case
from ..models.cases import CASE_STATUS_RECEIVED
from ..validation import (
    validate_case_create,
    validate_case_update,
    validate_delivery_method,
    validate_kanban_status,
    validate_reason,
    validate_stage_action,
)
from labflow.time_utils import utcnow
from . import audit_service, catalog_service, client_service, notification_service, sequence_service, stage_service
from .case_state import NOTIFY, CaseState, Cancelled, Delivered, ManualMove, StageTransitioned, Transition, apply
from .concurrency import lock_for_update, run_in_transaction
from .sla_service import default_sla_date
from .tenant_service import get_active_tenant


def _state(case: Case) -> CaseState:
    return CaseState(status=case.status, pinned=case.status_pinned, case_number=case.case_number)


def _load_case_for_update(tenant_id: int, case_id: int) -> Case:
    """Lock and re-read the case row; cross-tenant ids look exactly like missing ones."""
    case = (
        lock_for_update(db.session.query(Case).filter_by(id=case_id, tenant_id=tenant_id))
        .populate_existing()
        .first()
    )
    if case is None:
        raise NotFoundError(f"Case {case_id} not found")
    return case


def _ensure_open(case: Case) -> None:
    if case.is_closed:
        raise CaseClosedError(case.case_number, case.status)


def _write_transition(case: Case, transition: Transition) -> None:
    case.status = transition.status
    case.status_pinned = transition.pinned


def _dispatch(case: Case, transition: Transition) -> None:
    """Post-commit side effects. The transition is already durable, so failures only log."""
    if NOTIFY not in transition.side_effects:
        return
    try:
        notification_service.notify_status_change(
            tenant_id=case.tenant_id,
            case_id=case.id,
            case_number=case.case_number,
            patient_name=case.patient_name,
            status=transition.status,
            delivery_method=case.delivery_method,
        )
    except Exception:
        db.session.rollback()
        current_app.logger.warning(
            "Notification dispatch failed for case %s -> %s",
            transition.before.case_number, transition.status, exc_info=True,
        )


def _log_transition(case: Case, transition: Transition, reason: str) -> None:
    if transition.status != transition.before.status:
        current_app.logger.info(
            "Case %s (tenant %s) %s: %s -> %s",
            case.case_number, case.tenant_id, reason, transition.before.status, transition.status,
        )


# =============================================================================
# Commands
# =============================================================================

def create_case(tenant_id: int, payload: dict, *, actor_id: str | None = None) -> Case:
    """
    Create a case in RECEIVED status with its stages seeded from the catalog.

    Steps (one transaction): client check -> case number allocation ->
    default SLA date (if none given) -> case insert -> stage seeding -> audit.

    Raises:
        ValidationError: malformed payload (bad enum, bad or duplicate tooth code, ...)
        NotFoundError: unknown tenant, client or prosthesis type
    """
    data = validate_case_create(payload)
    prosthesis_type = catalog_service.lookup(data["prosthesis_type_id"])
    sequence_type = current_app.config.get("CASE_NUMBER_SEQUENCE", "case_number")

    def _op() -> Case:
        get_active_tenant(tenant_id)
        if not client_service.exists(tenant_id, data["client_id"]):
            raise NotFoundError(f"Client {data['client_id']} not found")

        now = utcnow()
        case_number = sequence_service.allocate(tenant_id, sequence_type)

        fields = dict(data)
        if fields.get("sla_date") is None:
            fields["sla_date"] = default_sla_date(now, prosthesis_type.estimated_lead_days)

        case = Case(
            tenant_id=tenant_id,
            case_number=case_number,
            status=CASE_STATUS_RECEIVED,
            status_pinned=False,
            created_at=now,
            updated_at=now,
            **fields,
        )
        db.session.add(case)
        db.session.flush()

        stages = stage_service.seed_stages(case, prosthesis_type.stage_template)

        audit_service.record(
            tenant_id=tenant_id,
            entity=audit_service.ENTITY_CASE,
            entity_id=case.id,
            case_id=case.id,
            action="CREATED",
            actor_id=actor_id,
            payload_after={
                "status": case.status,
                "case_number": case.case_number,
                "patient_name": case.patient_name,
                "prosthesis_type_id": case.prosthesis_type_id,
                "client_id": case.client_id,
                "sla_date": case.sla_date,
                "stage_count": len(stages),
            },
            occurred_at=now,
        )
        return case

    case = run_in_transaction(_op)
    current_app.logger.info(
        "Case %s created for tenant %s (%s)", case.case_number, tenant_id, case.prosthesis_type_id
    )
    return case


def move_stage(
    tenant_id: int,
    case_id: int,
    stage_id: int,
    action: str,
    *,
    notes: str | None = None,
    actor_id: str | None = None,
) -> Case:
    """
    Start, complete or skip one stage, then re-derive the case status.

    Raises:
        ValidationError: unknown action, notes too long
        NotFoundError: case or stage missing, or stage belongs to another case
        CaseClosedError: case is DELIVERED or CANCELLED
        InvalidTransitionError: stage already COMPLETED or SKIPPED
    """
    action, notes = validate_stage_action(action, notes)

    def _op():
        case = _load_case_for_update(tenant_id, case_id)
        _ensure_open(case)
        before = _state(case)
        now = utcnow()

        result = stage_service.transition(case.id, stage_id, action, notes=notes, now=now)
        transition = apply(before, StageTransitioned(action=action, stage_statuses=result.snapshot_statuses))

        _write_transition(case, transition)
        # Always touch the case so concurrent stage moves conflict on version_id
        case.updated_at = now

        stage = result.stage
        audit_service.record(
            tenant_id=tenant_id,
            entity=audit_service.ENTITY_STAGE,
            entity_id=stage.id,
            case_id=case.id,
            action=f"STAGE_{action.upper()}",
            actor_id=actor_id,
            payload_before={"status": result.status_before, "case_status": before.status},
            payload_after={
                "status": stage.status,
                "stage_name": stage.stage_name,
                "stage_order": stage.stage_order,
                "case_status": transition.status,
            },
            occurred_at=now,
        )
        return case, transition

    case, transition = run_in_transaction(_op)
    _log_transition(case, transition, f"stage {action}")
    _dispatch(case, transition)
    return case


def update_status_manual(
    tenant_id: int,
    case_id: int,
    target_status: str,
    *,
    actor_id: str | None = None,
) -> Case:
    """
    Kanban drag: move the case to any of the five board statuses.

    No ordering is enforced between board statuses, except that a case whose
    stages are all finished can only sit in READY_FOR_DELIVERY. Moving to the
    current status is a no-op (nothing written, nothing audited).

    Raises:
        ValidationError: target is not a known case status
        InvalidStateError: target is DELIVERED/CANCELLED, or every stage is
            finished and target is not READY_FOR_DELIVERY
        NotFoundError: case missing
        CaseClosedError: case is DELIVERED or CANCELLED
    """
    target_status = validate_kanban_status(target_status)

    def _op():
        case = _load_case_for_update(tenant_id, case_id)
        before = _state(case)
        stage_statuses = tuple(s.status for s in stage_service.load_stages(case.id))
        transition = apply(before, ManualMove(target=target_status, stage_statuses=stage_statuses))
        if not transition.changed:
            return case, transition

        _write_transition(case, transition)
        audit_service.record(
            tenant_id=tenant_id,
            entity=audit_service.ENTITY_CASE,
            entity_id=case.id,
            case_id=case.id,
            action="STATUS_CHANGED",
            actor_id=actor_id,
            payload_before={"status": before.status, "status_pinned": before.pinned},
            payload_after={"status": transition.status, "status_pinned": transition.pinned},
        )
        return case, transition

    case, transition = run_in_transaction(_op)
    _log_transition(case, transition, "moved on board")
    _dispatch(case, transition)
    return case


def deliver(
    tenant_id: int,
    case_id: int,
    delivery_method: str,
    *,
    actor_id: str | None = None,
) -> Case:
    """
    Mark a case DELIVERED.

    Raises:
        ValidationError: missing delivery method
        NotFoundError: case missing
        CaseClosedError: already DELIVERED or CANCELLED (retries are not deduplicated)
    """
    delivery_method = validate_delivery_method(delivery_method)

    def _op():
        case = _load_case_for_update(tenant_id, case_id)
        before = _state(case)
        transition = apply(before, Delivered())
        now = utcnow()

        _write_transition(case, transition)
        case.delivered_at = now
        case.delivery_method = delivery_method

        audit_service.record(
            tenant_id=tenant_id,
            entity=audit_service.ENTITY_CASE,
            entity_id=case.id,
            case_id=case.id,
            action="DELIVERED",
            actor_id=actor_id,
            payload_before={"status": before.status},
            payload_after={"status": transition.status, "delivery_method": delivery_method, "delivered_at": now},
            occurred_at=now,
        )
        return case, transition

    case, transition = run_in_transaction(_op)
    _log_transition(case, transition, "delivered")
    _dispatch(case, transition)
    return case


def cancel(
    tenant_id: int,
    case_id: int,
    reason: str | None = None,
    *,
    actor_id: str | None = None,
) -> Case:
    """
    Cancel a case from any non-terminal status. The case number stays used.

    Raises:
        NotFoundError: case missing
        CaseClosedError: already DELIVERED or CANCELLED
    """
    reason = validate_reason(reason)

    def _op():
        case = _load_case_for_update(tenant_id, case_id)
        before = _state(case)
        transition = apply(before, Cancelled())
        now = utcnow()

        _write_transition(case, transition)
        case.cancelled_at = now
        case.cancel_reason = reason

        audit_service.record(
            tenant_id=tenant_id,
            entity=audit_service.ENTITY_CASE,
            entity_id=case.id,
            case_id=case.id,
            action="CANCELLED",
            actor_id=actor_id,
            payload_before={"status": before.status},
            payload_after={"status": transition.status, "reason": reason},
            occurred_at=now,
        )
        return case, transition

    case, transition = run_in_transaction(_op)
    _log_transition(case, transition, "cancelled")
    _dispatch(case, transition)
    return case


def update_case(tenant_id: int, case_id: int, payload: dict, *, actor_id: str | None = None) -> Case:
    """
    Update descriptive fields. Client, prosthesis type, status and case
    number cannot be changed here.

    Raises:
        ValidationError: malformed or non-writable field
        NotFoundError: case missing
        CaseClosedError: case is DELIVERED or CANCELLED
    """
    patch = validate_case_update(payload)

    def _op() -> Case:
        case = _load_case_for_update(tenant_id, case_id)
        _ensure_open(case)

        before: dict = {}
        after: dict = {}
        for key, value in patch.items():
            current = getattr(case, key)
            if current != value:
                before[key] = current
                after[key] = value
                setattr(case, key, value)

        if not after:
            return case

        before["status"] = case.status
        after["status"] = case.status
        audit_service.record(
            tenant_id=tenant_id,
            entity=audit_service.ENTITY_CASE,
            entity_id=case.id,
            case_id=case.id,
            action="UPDATED",
            actor_id=actor_id,
            payload_before=before,
            payload_after=after,
        )
        return case

    return run_in_transaction(_op)


# =============================================================================
# Queries
# =============================================================================

def get_case(tenant_id: int, case_id: int) -> Case:
    case = db.session.query(Case).filter_by(id=case_id, tenant_id=tenant_id).first()
    if case is None:
        raise NotFoundError(f"Case {case_id} not found")
    return case


def filter_cases(q, filters: dict):
    """Apply validated list/board filters (see validation.validate_case_filters)."""
    if filters.get("status"):
        q = q.filter(Case.status == filters["status"])
    if filters.get("client_id") is not None:
        q = q.filter(Case.client_id == filters["client_id"])
    if filters.get("priority"):
        q = q.filter(Case.priority == filters["priority"])
    if filters.get("prosthesis_type_id"):
        q = q.filter(Case.prosthesis_type_id == filters["prosthesis_type_id"])
    if filters.get("assigned_to"):
        q = q.filter(Case.assigned_to == filters["assigned_to"])
    if filters.get("date_from") is not None:
        q = q.filter(Case.created_at >= filters["date_from"])
    if filters.get("date_to") is not None:
        q = q.filter(Case.created_at <= filters["date_to"])

    search = filters.get("search")
    if search:
        conditions = [Case.patient_name.ilike(f"%{search}%")]
        if search.isdigit():
            conditions.append(Case.case_number == int(search))
        q = q.filter(or_(*conditions))
    return q


def list_cases(tenant_id: int, filters: dict | None = None, *, page: int = 1, per_page: int = 20) -> dict:
    """Newest first, paginated."""
    q = filter_cases(db.session.query(Case).filter(Case.tenant_id == tenant_id), filters or {})
    total = q.count()
    items = (
        q.order_by(Case.created_at.desc(), Case.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": items,
        "total": total,
        "page": page,
        "per_page": per_page,
        "total_pages": (total + per_page - 1) // per_page,
    }


def get_case_audit(tenant_id: int, case_id: int, *, limit: int = 50):
    get_case(tenant_id, case_id)
    return audit_service.list_case_audit(tenant_id, case_id, limit=limit)
