# Overview: Case discussion thread; tenant-scoped comments that never touch the workflow.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import CaseComment
from ..validation import validate_comment
from .case_service import get_case
from .concurrency import run_in_transaction


def add_comment(
    tenant_id: int,
    case_id: int,
    content,
    *,
    is_internal=False,
    actor_id: str | None = None,
) -> CaseComment:
    """
    Append a comment to a case. Closed cases still accept comments.

    Raises:
        ValidationError: empty or oversized content, non-boolean is_internal
        NotFoundError: case missing or owned by another tenant
    """
    content, is_internal = validate_comment(content, is_internal)

    def _op():
        case = get_case(tenant_id, case_id)
        comment = CaseComment(
            tenant_id=tenant_id,
            case_id=case.id,
            author_id=actor_id,
            content=content,
            is_internal=is_internal,
        )
        db.session.add(comment)
        db.session.flush()
        return comment

    comment = run_in_transaction(_op)
    current_app.logger.info("Comment %s added to case %s (tenant %s)", comment.id, case_id, tenant_id)
    return comment


def list_comments(tenant_id: int, case_id: int, *, include_internal: bool = True) -> list[CaseComment]:
    """Thread of a case, oldest first."""
    get_case(tenant_id, case_id)
    q = db.session.query(CaseComment).filter_by(tenant_id=tenant_id, case_id=case_id)
    if not include_internal:
        q = q.filter(CaseComment.is_internal.is_(False))
    return q.order_by(CaseComment.created_at.asc(), CaseComment.id.asc()).all()
