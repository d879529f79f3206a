# Overview: Best-effort tenant notifications for user-facing case transitions.

"""
Notifications are fire-and-forget: they are written in their own short
transaction after the workflow transaction has committed, and a failure is
logged as a warning and otherwise ignored. A notification can be lost; a
case transition can never be undone by a notification failure.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Notification
from ..models.cases import (
    CASE_STATUS_CANCELLED,
    CASE_STATUS_DELIVERED,
    CASE_STATUS_READY_FOR_DELIVERY,
)


_TEMPLATES = {
    CASE_STATUS_READY_FOR_DELIVERY: (
        "case.ready_for_delivery",
        "Case #{number} ready for delivery",
        "All production stages of case #{number} ({patient}) are done.",
    ),
    CASE_STATUS_DELIVERED: (
        "case.delivered",
        "Case #{number} delivered",
        "Case #{number} ({patient}) was delivered via {method}.",
    ),
    CASE_STATUS_CANCELLED: (
        "case.cancelled",
        "Case #{number} cancelled",
        "Case #{number} ({patient}) was cancelled.",
    ),
}


def notify_status_change(
    *,
    tenant_id: int,
    case_id: int,
    case_number: int,
    patient_name: str,
    status: str,
    delivery_method: str | None = None,
) -> Notification | None:
    """
    Record a tenant notification for a case that reached `status`.

    Returns the notification, or None when disabled, not user-facing, or failed.
    Never raises for storage failures.
    """
    if not current_app.config.get("NOTIFICATIONS_ENABLED", True):
        return None
    template = _TEMPLATES.get(status)
    if template is None:
        return None

    ntype, title, message = template
    fmt = {"number": case_number, "patient": patient_name, "method": delivery_method or "unspecified"}

    try:
        notification = Notification(
            tenant_id=tenant_id,
            type=ntype,
            title=title.format(**fmt),
            message=message.format(**fmt),
            ref_type="case",
            ref_id=case_id,
        )
        db.session.add(notification)
        db.session.commit()
        return notification
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Failed to record %s notification for case %s (tenant %s)",
            ntype, case_number, tenant_id, exc_info=True,
        )
        return None


def list_notifications(tenant_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    q = db.session.query(Notification).filter(Notification.tenant_id == tenant_id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
