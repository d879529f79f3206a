# Overview: Kanban projection; read-only board of active cases grouped by status.

"""
The board is recomputed from the cases table on every call and is never
cached. Within each column: priority (CRITICAL, URGENT, NORMAL), then SLA
date (cases without one last), then creation time.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import case as sql_case
from sqlalchemy.orm import joinedload, selectinload

from ..extensions import db
from ..models import Case
from ..models.cases import KANBAN_STATUSES, STAGE_TERMINAL_STATUSES
from .case_service import filter_cases


_PRIORITY_RANK = sql_case(
    (Case.priority == "CRITICAL", 2),
    (Case.priority == "URGENT", 1),
    else_=0,
)


def board_order():
    return (
        _PRIORITY_RANK.desc(),
        Case.sla_date.asc().nulls_last(),
        Case.created_at.asc(),
        Case.id.asc(),
    )


def _card(c: Case) -> dict:
    stages = list(c.stages)
    done = sum(1 for s in stages if s.status in STAGE_TERMINAL_STATUSES)
    current = next((s for s in stages if s.status not in STAGE_TERMINAL_STATUSES), None)
    card = c.to_dict()
    card["client_name"] = c.client.name if c.client else None
    card["stages_done"] = done
    card["stages_total"] = len(stages)
    card["current_stage"] = current.stage_name if current else None
    return card


def get_board(tenant_id: int, filters: dict | None = None) -> dict:
    """
    Board columns in workflow order, one per non-terminal status.

    A `status` filter is ignored: the board always shows every column.
    """
    filters = {k: v for k, v in (filters or {}).items() if k != "status"}
    limit = current_app.config.get("KANBAN_MAX_CASES", 500)

    q = (
        db.session.query(Case)
        .filter(Case.tenant_id == tenant_id, Case.status.in_(KANBAN_STATUSES))
        .options(selectinload(Case.stages), joinedload(Case.client))
    )
    # One extra row tells a full board from a truncated one
    cases = filter_cases(q, filters).order_by(*board_order()).limit(limit + 1).all()
    truncated = len(cases) > limit
    cases = cases[:limit]

    columns = {status: [] for status in KANBAN_STATUSES}
    for c in cases:
        columns[c.status].append(_card(c))

    return {
        "columns": [
            {"status": status, "count": len(columns[status]), "cases": columns[status]}
            for status in KANBAN_STATUSES
        ],
        "total": len(cases),
        "truncated": truncated,
    }
