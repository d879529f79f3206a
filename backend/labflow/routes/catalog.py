# Overview: Flask API routes for the prosthesis catalog and tenant notifications.

from flask import Blueprint, request, jsonify, current_app

from ..errors import WorkflowError
from ..decorators import require_tenant
from ..prosthesis_types import CATEGORIES
from ..services import catalog_service, notification_service
from ..services.tenant_service import get_current_tenant_id


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


@catalog_bp.get("/catalog/prosthesis-types")
def list_prosthesis_types_route():
    """Catalog of prosthesis types (?category=FIXED|REMOVABLE|IMPLANT|ORTHODONTIC|OTHER)."""
    try:
        types = catalog_service.list_types(request.args.get("category") or None)
        return jsonify({
            "categories": CATEGORIES,
            "prosthesis_types": [t.to_dict() for t in types],
        }), 200

    except WorkflowError as e:
        return jsonify({"error": str(e), "code": e.code}), e.http_status


@catalog_bp.get("/catalog/prosthesis-types/<type_id>")
def get_prosthesis_type_route(type_id: str):
    try:
        return jsonify({"prosthesis_type": catalog_service.lookup(type_id).to_dict()}), 200

    except WorkflowError as e:
        return jsonify({"error": str(e), "code": e.code}), e.http_status


@catalog_bp.get("/notifications")
@require_tenant
def list_notifications_route():
    """Tenant notifications, newest first (?unread=1)."""
    try:
        unread_only = request.args.get("unread") in ("1", "true")
        notifications = notification_service.list_notifications(
            get_current_tenant_id(), unread_only=unread_only
        )
        return jsonify({"notifications": [n.to_dict() for n in notifications]}), 200

    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"error": "Internal server error"}), 500
