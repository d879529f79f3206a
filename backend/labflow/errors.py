# Overview: Domain error taxonomy for the case production workflow.

"""
Workflow errors.

Every error raised by the services below is one of these classes (or
ValidationError from labflow.validation). Routes map them to HTTP responses;
services never swallow them. A raised error always means the unit of work
was rolled back and nothing changed.

    WorkflowError
    ├── NotFoundError          -> 404
    ├── InvalidTransitionError -> 409  (stage state machine)
    ├── InvalidStateError      -> 409  (case state machine)
    │   └── CaseClosedError    -> 409  (DELIVERED / CANCELLED)
    └── ConflictError          -> 409  (retry budget exhausted)
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for workflow domain errors."""

    code = "WORKFLOW_ERROR"
    http_status = 400


class NotFoundError(WorkflowError):
    """
    Entity absent or owned by another tenant.

    The message never distinguishes the two cases.
    """

    code = "NOT_FOUND"
    http_status = 404


class InvalidTransitionError(WorkflowError):
    """Raised when a stage action is illegal for the stage's current status."""

    code = "INVALID_TRANSITION"
    http_status = 409

    def __init__(self, current: str, requested: str, message: str | None = None):
        self.current = current
        self.requested = requested
        super().__init__(
            message or f"Cannot move a stage from {current} to {requested}"
        )


class InvalidStateError(WorkflowError):
    """Raised when a case-level action is illegal for the case's current status."""

    code = "INVALID_STATE"
    http_status = 409


class CaseClosedError(InvalidStateError):
    """Raised for any mutation attempted on a DELIVERED or CANCELLED case."""

    code = "CASE_CLOSED"

    def __init__(self, case_number: int | None, status: str):
        self.case_number = case_number
        self.status = status
        super().__init__(f"Case {case_number} is {status}; no further changes are accepted")


class ConflictError(WorkflowError):
    """Storage contention that persisted past the retry budget."""

    code = "CONFLICT"
    http_status = 409
