# Overview: Per-tenant sequence allocation (case numbers); atomic increment inside the caller's transaction.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import TenantSequence
from ..validation import ValidationError
from .concurrency import RetryableConflict


def allocate(tenant_id: int, sequence_type: str) -> int:
    """
    Atomically allocate the next value of (tenant_id, sequence_type).

    The increment is a single UPDATE ... SET current_value = current_value + 1,
    which takes the row lock on every engine, so concurrent allocators for the
    same pair serialize on the row and never observe the same value. The first
    allocation inserts the row with current_value = 1.

    Runs inside the caller's transaction and does not commit: if the case
    insert fails, the increment rolls back with it and no number is skipped.

    Raises:
        ValidationError: missing tenant or sequence type
        RetryableConflict: a concurrent first allocation inserted the row
            between our UPDATE and INSERT (caller's retry loop re-runs the unit)
    """
    if not tenant_id:
        raise ValidationError("tenant_id is required")
    if not sequence_type:
        raise ValidationError("sequence_type is required")

    stmt = (
        update(TenantSequence)
        .where(
            TenantSequence.tenant_id == tenant_id,
            TenantSequence.sequence_type == sequence_type,
        )
        .values(current_value=TenantSequence.current_value + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return (
            db.session.query(TenantSequence.current_value)
            .filter_by(tenant_id=tenant_id, sequence_type=sequence_type)
            .scalar()
        )

    seq = TenantSequence(tenant_id=tenant_id, sequence_type=sequence_type, current_value=1)
    try:
        # Savepoint so a lost insert race does not poison the outer transaction
        with db.session.begin_nested():
            db.session.add(seq)
    except IntegrityError as exc:
        raise RetryableConflict(
            f"Concurrent initialization of sequence {sequence_type} for tenant {tenant_id}"
        ) from exc
    return 1


def current_value(tenant_id: int, sequence_type: str) -> int:
    """Last value issued (0 if the sequence was never used)."""
    value = (
        db.session.query(TenantSequence.current_value)
        .filter_by(tenant_id=tenant_id, sequence_type=sequence_type)
        .scalar()
    )
    return value or 0
