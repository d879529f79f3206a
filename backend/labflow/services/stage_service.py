# Overview: Stage store; seeds a case's production stages and applies per-stage transitions.

"""
Stage store.

STATE MACHINE (per stage):
    PENDING     --start-->    IN_PROGRESS
    IN_PROGRESS --start-->    IN_PROGRESS   (accepted; started_at is kept)
    PENDING / IN_PROGRESS --complete--> COMPLETED
    PENDING / IN_PROGRESS --skip-->     SKIPPED

COMPLETED and SKIPPED are terminal; any action on them raises
InvalidTransitionError. Stages are created only as a batch when the case is
created and the set never changes afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..errors import InvalidTransitionError, NotFoundError
from ..extensions import db
from ..models import Case, CaseStage
from ..models.cases import (
    STAGE_STATUS_COMPLETED,
    STAGE_STATUS_IN_PROGRESS,
    STAGE_STATUS_PENDING,
    STAGE_STATUS_SKIPPED,
)
from labflow.time_utils import utcnow


_TARGET_STATUS = {
    "start": STAGE_STATUS_IN_PROGRESS,
    "complete": STAGE_STATUS_COMPLETED,
    "skip": STAGE_STATUS_SKIPPED,
}


@dataclass(frozen=True)
class StageTransitionResult:
    stage: CaseStage
    status_before: str
    snapshot: tuple[CaseStage, ...]  # all stages of the case, re-read after the write

    @property
    def snapshot_statuses(self) -> tuple[str, ...]:
        return tuple(s.status for s in self.snapshot)


def seed_stages(case: Case, stage_names) -> list[CaseStage]:
    """Create the case's stages from a template: stage_order 1..n, all PENDING."""
    stages = [
        CaseStage(
            case_id=case.id,
            stage_name=name,
            stage_order=index,
            status=STAGE_STATUS_PENDING,
        )
        for index, name in enumerate(stage_names, start=1)
    ]
    db.session.add_all(stages)
    db.session.flush()
    return stages


def load_stages(case_id: int) -> list[CaseStage]:
    """
    Authoritative stage rows for a case, ordered by stage_order.

    populate_existing overwrites anything cached in the identity map, so the
    result reflects the database as seen by the current transaction.
    """
    return (
        db.session.query(CaseStage)
        .filter(CaseStage.case_id == case_id)
        .order_by(CaseStage.stage_order.asc())
        .populate_existing()
        .all()
    )


def apply_action(stage: CaseStage, action: str, *, now: datetime | None = None) -> None:
    """
    Mutate one stage according to the state machine above.

    Raises:
        InvalidTransitionError: stage is terminal, or action is unknown
    """
    target = _TARGET_STATUS.get(action)
    if target is None:
        raise InvalidTransitionError(stage.status, action, f"Unknown stage action '{action}'")
    if stage.is_terminal:
        raise InvalidTransitionError(stage.status, target)

    now = now or utcnow()
    if action == "start":
        stage.status = STAGE_STATUS_IN_PROGRESS
        if stage.started_at is None:
            stage.started_at = now
    elif action == "complete":
        stage.status = STAGE_STATUS_COMPLETED
        stage.completed_at = now
    else:
        stage.status = STAGE_STATUS_SKIPPED


def transition(
    case_id: int,
    stage_id: int,
    action: str,
    *,
    notes: str | None = None,
    now: datetime | None = None,
) -> StageTransitionResult:
    """
    Apply an action to one stage of a case and return the sibling snapshot.

    Must run inside the caller's transaction after the case row is locked,
    so the snapshot cannot miss a sibling write committed concurrently.

    Raises:
        NotFoundError: stage does not exist or belongs to another case
        InvalidTransitionError: illegal action for the stage's status
    """
    stages = load_stages(case_id)
    stage = next((s for s in stages if s.id == stage_id), None)
    if stage is None:
        raise NotFoundError(f"Stage {stage_id} not found")

    status_before = stage.status
    apply_action(stage, action, now=now)
    if notes is not None:
        stage.notes = notes
    db.session.flush()

    return StageTransitionResult(
        stage=stage,
        status_before=status_before,
        snapshot=tuple(load_stages(case_id)),
    )
