# Overview: Client directory used to validate case creation.

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import Client
from ..validation import ValidationError


def exists(tenant_id: int, client_id: int) -> bool:
    """True if an active client with this id belongs to the tenant."""
    return (
        db.session.query(Client.id)
        .filter_by(id=client_id, tenant_id=tenant_id, is_active=True)
        .first()
        is not None
    )


def get_client(tenant_id: int, client_id: int) -> Client:
    client = db.session.query(Client).filter_by(id=client_id, tenant_id=tenant_id).first()
    if client is None:
        raise NotFoundError(f"Client {client_id} not found")
    return client


def create_client(
    tenant_id: int,
    name: str,
    *,
    email: str | None = None,
    phone: str | None = None,
) -> Client:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Client name is required")

    client = Client(tenant_id=tenant_id, name=name, email=email, phone=phone, is_active=True)
    db.session.add(client)
    db.session.commit()
    return client


def list_clients(tenant_id: int, include_inactive: bool = False) -> list[Client]:
    q = db.session.query(Client).filter_by(tenant_id=tenant_id)
    if not include_inactive:
        q = q.filter(Client.is_active.is_(True))
    return q.order_by(Client.name).all()
