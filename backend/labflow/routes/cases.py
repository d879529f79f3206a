# Overview: Flask API routes for the case production workflow; parses input and returns JSON responses.

# backend/labflow/routes/cases.py
"""
Case Workflow API Routes

DESIGN:
- Create cases (numbered, stages seeded from the prosthesis catalog)
- Stage actions (start / complete / skip) that drive the case status
- Kanban board read and manual status moves
- Deliver / cancel (terminal)
- Audit trail and discussion thread per case

MULTI-TENANT:
- Every route requires X-Tenant-Id (see @require_tenant)
- Cases of other tenants answer 404, exactly like missing ones

ERRORS:
    400 ValidationError
    404 NotFoundError
    409 InvalidTransition / InvalidState / CaseClosed / Conflict
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import WorkflowError
from ..decorators import require_tenant
from ..services import case_service, comment_service, kanban_service
from ..services.tenant_service import get_current_actor_id, get_current_tenant_id
from ..validation import ValidationError, validate_case_filters, validate_pagination


cases_bp = Blueprint("cases", __name__, url_prefix="/api/cases")


def _error_response(e: WorkflowError):
    body = {"error": str(e), "code": e.code}
    current = getattr(e, "current", None)
    if current is not None:
        body["current"] = current
        body["requested"] = e.requested
    return jsonify(body), e.http_status


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


# =============================================================================
# READ
# =============================================================================

@cases_bp.get("")
@require_tenant
def list_cases_route():
    """
    List cases, newest first.

    Query params: status, client_id, priority, prosthesis_type_id,
    assigned_to, search, date_from, date_to, page, per_page (max 100)
    """
    try:
        filters = validate_case_filters(request.args)
        page, per_page = validate_pagination(request.args.get("page"), request.args.get("per_page"))
        result = case_service.list_cases(get_current_tenant_id(), filters, page=page, per_page=per_page)
        result["items"] = [c.to_dict() for c in result["items"]]
        return jsonify(result), 200

    except WorkflowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list cases")
        return jsonify({"error": "Internal server error"}), 500


@cases_bp.get("/kanban")
@require_tenant
def kanban_route():
    """Board of active cases grouped by status (same filters as the list)."""
    try:
        filters = validate_case_filters(request.args)
        return jsonify(kanban_service.get_board(get_current_tenant_id(), filters)), 200

    except WorkflowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build kanban board")
        return jsonify({"error": "Internal server error"}), 500


@cases_bp.get("/<int:case_id>")
@require_tenant
def get_case_route(case_id: int):
    try:
        case = case_service.get_case(get_current_tenant_id(), case_id)
        return jsonify({"case": case.to_dict(include_stages=True)}), 200

    except WorkflowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get case")
        return jsonify({"error": "Internal server error"}), 500


@cases_bp.get("/<int:case_id>/audit")
@require_tenant
def case_audit_route(case_id: int):
    """Audit trail of a case and its stages, newest first (?limit=, default 50)."""
    try:
        raw_limit = request.args.get("limit", "50")
        if not raw_limit.isdigit() or int(raw_limit) < 1:
            raise ValidationError("limit must be a positive integer")

        entries = case_service.get_case_audit(get_current_tenant_id(), case_id, limit=int(raw_limit))
        return jsonify({"entries": [e.to_dict() for e in entries]}), 200

    except WorkflowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get case audit")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# COMMANDS
# =============================================================================

@cases_bp.post("")
@require_tenant
def create_case_route():
    """
    Create a case (status RECEIVED).

    Request body:
    {
        "client_id": 1,
        "patient_name": "Jane Doe",
        "prosthesis_type_id": "zirconia-crown",
        "teeth": ["11", "21"],          (optional, FDI codes)
        "priority": "URGENT",           (optional, default NORMAL)
        "sla_date": "2026-03-10",       (optional, default: catalog lead time in business days)
        "modality": "DIGITAL", "shade": "A2", "subtype": "...",
        "assigned_to": "...", "notes": "..."
    }

    Returns:
        201: Case created with stages
        400: Invalid input
        404: Unknown client or prosthesis type
    """
    try:
        case = case_service.create_case(
            get_current_tenant_id(), _json_body(), actor_id=get_current_actor_id()
        )
        return jsonify({"case": case.to_dict(include_stages=True)}), 201

    except WorkflowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create case")
        return jsonify({"error": "Internal server error"}), 500


@cases_bp.patch("/<int:case_id>")
@require_tenant
def update_case_route(case_id: int):
    """Update descriptive fields (not status, client or prosthesis type)."""
    try:
        case = case_service.update_case(
            get_current_tenant_id(), case_id, _json_body(), actor_id=get_current_actor_id()
        )
        return jsonify({"case": case.to_dict(include_stages=True)}), 200

    except WorkflowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update case")
        return jsonify({"error": "Internal server error"}), 500


@cases_bp.post("/<int:case_id>/stages/<int:stage_id>/<action>")
@require_tenant
def move_stage_route(case_id: int, stage_id: int, action: str):
    """
    Apply a stage action: start, complete or skip.

    Request body (optional):
    {
        "notes": "Margin adjusted"
    }

    Returns:
        200: Case with refreshed status and stages
        409: Stage already COMPLETED/SKIPPED, or case closed
    """
    try:
        data = _json_body()
        case = case_service.move_stage(
            get_current_tenant_id(),
            case_id,
            stage_id,
            action,
            notes=data.get("notes"),
            actor_id=get_current_actor_id(),
        )
        return jsonify({"case": case.to_dict(include_stages=True)}), 200

    except WorkflowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to move stage")
        return jsonify({"error": "Internal server error"}), 500


@cases_bp.post("/<int:case_id>/status")
@require_tenant
def update_status_route(case_id: int):
    """
    Kanban drag.

    Request body:
    {
        "status": "WAITING_APPROVAL"
    }
    """
    try:
        data = _json_body()
        case = case_service.update_status_manual(
            get_current_tenant_id(), case_id, data.get("status"), actor_id=get_current_actor_id()
        )
        return jsonify({"case": case.to_dict()}), 200

    except WorkflowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update case status")
        return jsonify({"error": "Internal server error"}), 500


@cases_bp.post("/<int:case_id>/deliver")
@require_tenant
def deliver_route(case_id: int):
    """
    Request body:
    {
        "delivery_method": "courier"
    }
    """
    try:
        data = _json_body()
        case = case_service.deliver(
            get_current_tenant_id(), case_id, data.get("delivery_method"), actor_id=get_current_actor_id()
        )
        return jsonify({"case": case.to_dict()}), 200

    except WorkflowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deliver case")
        return jsonify({"error": "Internal server error"}), 500


@cases_bp.post("/<int:case_id>/cancel")
@require_tenant
def cancel_route(case_id: int):
    """
    Request body (optional):
    {
        "reason": "Dentist withdrew the order"
    }
    """
    try:
        data = _json_body()
        case = case_service.cancel(
            get_current_tenant_id(), case_id, data.get("reason"), actor_id=get_current_actor_id()
        )
        return jsonify({"case": case.to_dict()}), 200

    except WorkflowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel case")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# COMMENTS
# =============================================================================

@cases_bp.get("/<int:case_id>/comments")
@require_tenant
def list_comments_route(case_id: int):
    """Discussion thread, oldest first (?internal=0 hides lab-internal comments)."""
    try:
        include_internal = request.args.get("internal", "1") != "0"
        comments = comment_service.list_comments(
            get_current_tenant_id(), case_id, include_internal=include_internal
        )
        return jsonify({"comments": [c.to_dict() for c in comments]}), 200

    except WorkflowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list case comments")
        return jsonify({"error": "Internal server error"}), 500


@cases_bp.post("/<int:case_id>/comments")
@require_tenant
def add_comment_route(case_id: int):
    """
    Request body:
    {
        "content": "Shade confirmed with the clinic",
        "is_internal": true             (optional, default false)
    }
    """
    try:
        data = _json_body()
        comment = comment_service.add_comment(
            get_current_tenant_id(),
            case_id,
            data.get("content"),
            is_internal=data.get("is_internal", False),
            actor_id=get_current_actor_id(),
        )
        return jsonify({"comment": comment.to_dict()}), 201

    except WorkflowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add case comment")
        return jsonify({"error": "Internal server error"}), 500
