"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: Centralize tenant resolution for reuse across services, routes and the
CLI. Every workflow operation is scoped to a tenant; cross-tenant access is
reported exactly like a missing row.

USAGE:
    from labflow.services.tenant_service import get_current_tenant_id

    tenant_id = get_current_tenant_id()   # inside a @require_tenant route
"""

from __future__ import annotations

from flask import g

from ..errors import NotFoundError
from ..extensions import db
from ..models import Tenant


class TenantContextError(Exception):
    """Raised when a tenant-scoped call runs without tenant context."""


def get_current_tenant_id() -> int:
    """
    Get current tenant_id from Flask g context.

    Raises TenantContextError if tenant_id is not set. This should never
    happen after @require_tenant, but is a safety check.
    """
    tenant_id = getattr(g, "tenant_id", None)
    if tenant_id is None:
        raise TenantContextError("Tenant context not established")
    return tenant_id


def get_current_actor_id() -> str | None:
    return getattr(g, "actor_id", None)


def get_active_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.query(Tenant).filter_by(id=tenant_id, is_active=True).first()
    if tenant is None:
        raise NotFoundError("Tenant not found")
    return tenant


def create_tenant(name: str, code: str | None = None) -> Tenant:
    tenant = Tenant(name=name, code=code, is_active=True)
    db.session.add(tenant)
    db.session.commit()
    return tenant
