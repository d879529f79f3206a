# Overview: Audit recorder; append-only snapshots of every workflow transition.

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Optional

from ..extensions import db
from ..models import AuditEntry
from labflow.time_utils import utcnow
"""
Audit invariants (authoritative)

- Append-only: entries are never updated or deleted.
- Entries are written inside the same DB transaction as the transition they
  record, so a rolled-back transition leaves no entry behind.
- payload_after always carries the post-transition status of the entity.
"""

ENTITY_CASE = "Case"
ENTITY_STAGE = "CaseStage"


def _json_default(value: Any):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def _dump(payload: Optional[dict]) -> Optional[str]:
    if payload is None:
        return None
    return json.dumps(payload, default=_json_default, sort_keys=True)


def record(
    *,
    tenant_id: int,
    entity: str,
    entity_id: int,
    action: str,
    case_id: int | None = None,
    actor_id: str | None = None,
    payload_before: Optional[dict] = None,
    payload_after: Optional[dict] = None,
    occurred_at: Optional[datetime] = None,
) -> AuditEntry:
    """
    Append one audit entry to the current transaction.

    - No domain logic here.
    - Flushes (to assign the id) but never commits.
    """
    entry = AuditEntry(
        tenant_id=tenant_id,
        entity=entity,
        entity_id=entity_id,
        case_id=case_id,
        action=action,
        actor_id=actor_id,
        payload_before=_dump(payload_before),
        payload_after=_dump(payload_after),
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_case_audit(tenant_id: int, case_id: int, *, limit: int = 50) -> list[AuditEntry]:
    """Case and stage entries for one case, newest first."""
    limit = max(1, min(limit, 500))
    return (
        db.session.query(AuditEntry)
        .filter(AuditEntry.tenant_id == tenant_id, AuditEntry.case_id == case_id)
        .order_by(AuditEntry.occurred_at.desc(), AuditEntry.id.desc())
        .limit(limit)
        .all()
    )
