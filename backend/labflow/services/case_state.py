# Overview: Pure case status state machine; one function decides every case-level transition.

"""
Case status state machine.

Every case-level status change, automatic or manual, goes through
`apply(state, event)`. Callers load the authoritative state inside their
transaction, build an event, and write back whatever Transition comes out.

EVENTS:
    StageTransitioned(action, stage_statuses)   automatic, after a stage action
    ManualMove(target, stage_statuses)          Kanban drag
    Delivered()
    Cancelled()

DERIVATION (StageTransitioned), evaluated in order:
    1. DELIVERED / CANCELLED            -> CaseClosedError
    2. a stage started while RECEIVED   -> IN_PRODUCTION
    3. every stage COMPLETED or SKIPPED -> READY_FOR_DELIVERY (clears a manual pin)
    4. otherwise                        -> unchanged (manual pins survive)

PINNING:
    WAITING_APPROVAL and APPROVED cannot be derived from stages; a manual move
    into either sets pinned=True. Rule 3 overrides the pin (open product
    question, kept as current behavior).

FINISHED WORK:
    Once every stage is COMPLETED or SKIPPED the only open status is
    READY_FOR_DELIVERY; a manual move elsewhere raises InvalidStateError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from ..errors import CaseClosedError, InvalidStateError
from ..models.cases import (
    CASE_STATUS_CANCELLED,
    CASE_STATUS_DELIVERED,
    CASE_STATUS_IN_PRODUCTION,
    CASE_STATUS_READY_FOR_DELIVERY,
    CASE_STATUS_RECEIVED,
    KANBAN_STATUSES,
    PINNED_STATUSES,
    STAGE_TERMINAL_STATUSES,
    TERMINAL_STATUSES,
)


# Side effects the caller must perform after the transaction commits
NOTIFY = "notify"

# Transitions users outside the bench care about
NOTIFY_ON = frozenset({CASE_STATUS_READY_FOR_DELIVERY, CASE_STATUS_DELIVERED, CASE_STATUS_CANCELLED})


@dataclass(frozen=True)
class CaseState:
    status: str
    pinned: bool = False
    case_number: int | None = None


@dataclass(frozen=True)
class StageTransitioned:
    action: str  # start, complete, skip
    stage_statuses: tuple[str, ...]  # every stage of the case, after the action


@dataclass(frozen=True)
class ManualMove:
    target: str
    stage_statuses: tuple[str, ...] | None = None  # None skips the finished-work check


@dataclass(frozen=True)
class Delivered:
    pass


@dataclass(frozen=True)
class Cancelled:
    pass


Event = Union[StageTransitioned, ManualMove, Delivered, Cancelled]


@dataclass(frozen=True)
class Transition:
    before: CaseState
    status: str
    pinned: bool
    side_effects: tuple[str, ...] = field(default=())

    @property
    def changed(self) -> bool:
        return self.status != self.before.status or self.pinned != self.before.pinned


def all_stages_done(stage_statuses) -> bool:
    return all(s in STAGE_TERMINAL_STATUSES for s in stage_statuses)


def _to(state: CaseState, status: str, pinned: bool) -> Transition:
    effects = (NOTIFY,) if status != state.status and status in NOTIFY_ON else ()
    return Transition(before=state, status=status, pinned=pinned, side_effects=effects)


def _unchanged(state: CaseState) -> Transition:
    return Transition(before=state, status=state.status, pinned=state.pinned)


def apply(state: CaseState, event: Event) -> Transition:
    """
    Decide the next case status for an event.

    Raises:
        CaseClosedError: the case is DELIVERED or CANCELLED (any event)
        InvalidStateError: a manual move to a status the board cannot target
            or away from READY_FOR_DELIVERY once every stage is finished
        TypeError: unknown event type
    """
    if state.status in TERMINAL_STATUSES:
        raise CaseClosedError(state.case_number, state.status)

    if isinstance(event, StageTransitioned):
        if event.action == "start" and state.status == CASE_STATUS_RECEIVED:
            return _to(state, CASE_STATUS_IN_PRODUCTION, pinned=False)
        if all_stages_done(event.stage_statuses):
            return _to(state, CASE_STATUS_READY_FOR_DELIVERY, pinned=False)
        return _unchanged(state)

    if isinstance(event, ManualMove):
        if event.target not in KANBAN_STATUSES:
            raise InvalidStateError(
                f"Status {event.target} cannot be set from the board; "
                f"allowed: {', '.join(KANBAN_STATUSES)}"
            )
        if event.target == state.status:
            return _unchanged(state)
        if (
            event.stage_statuses is not None
            and all_stages_done(event.stage_statuses)
            and event.target != CASE_STATUS_READY_FOR_DELIVERY
        ):
            raise InvalidStateError(
                f"Every stage is finished; case can only be {CASE_STATUS_READY_FOR_DELIVERY}, not {event.target}"
            )
        return _to(state, event.target, pinned=event.target in PINNED_STATUSES)

    if isinstance(event, Delivered):
        return _to(state, CASE_STATUS_DELIVERED, pinned=False)

    if isinstance(event, Cancelled):
        return _to(state, CASE_STATUS_CANCELLED, pinned=False)

    raise TypeError(f"Unknown case event {event!r}")
