from __future__ import annotations
from datetime import datetime
from labflow.time_utils import parse_iso_datetime

import re
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import WorkflowError
from .models import Case
from .models.cases import CASE_STATUSES, MODALITIES, PRIORITIES, STAGE_ACTIONS


# FDI tooth notation: quadrant (1-4) + tooth (1-8)
FDI_TOOTH_RE = re.compile(r"^[1-4][1-8]$")

PATIENT_NAME_MIN = 2
NOTES_MAX = 5000
STAGE_NOTES_MAX = 1000
REASON_MAX = 1000
DELIVERY_METHOD_MAX = 50
PER_PAGE_MAX = 100


class ValidationError(WorkflowError, ValueError):
    """400-level input problem."""

    code = "VALIDATION_ERROR"
    http_status = 400


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()


CASE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "client_id", "patient_name", "prosthesis_type_id", "subtype", "modality",
        "teeth", "shade", "priority", "sla_date", "assigned_to", "notes",
    }),
    required_on_create=frozenset({"client_id", "patient_name", "prosthesis_type_id"}),
)

# Client and prosthesis type are fixed once the stages have been seeded
CASE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=CASE_CREATE_POLICY.writable_fields - {"client_id", "prosthesis_type_id"},
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and booleans
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date or datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 date or datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a string")
        return str(value).strip()

    # Default: leave as-is (JSON columns are checked by the rule functions)
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) is None)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def validate_teeth(value: Any) -> list[str]:
    """FDI codes, no duplicates. Order is preserved."""
    if not isinstance(value, list):
        raise ValidationError("teeth must be a list of FDI tooth codes")
    seen: set[str] = set()
    teeth: list[str] = []
    for raw in value:
        code = str(raw).strip() if isinstance(raw, (str, int)) and not isinstance(raw, bool) else None
        if code is None or not FDI_TOOTH_RE.match(code):
            raise ValidationError(f"Invalid tooth code {raw!r}: expected FDI notation (e.g. 11, 21, 38)")
        if code in seen:
            raise ValidationError(f"Duplicate tooth code {code}")
        seen.add(code)
        teeth.append(code)
    return teeth


def validate_choice(field: str, value: Any, choices) -> str:
    if not isinstance(value, str) or value not in choices:
        raise ValidationError(f"Invalid {field} '{value}'. Must be one of: {', '.join(choices)}")
    return value


def enforce_rules_case(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Mutates patch in place (teeth normalization).
    """
    if "patient_name" in patch and len(patch["patient_name"]) < PATIENT_NAME_MIN:
        raise ValidationError(f"patient_name must have at least {PATIENT_NAME_MIN} characters")
    if patch.get("modality") is not None:
        validate_choice("modality", patch["modality"], MODALITIES)
    if patch.get("priority") is not None:
        validate_choice("priority", patch["priority"], PRIORITIES)
    if "teeth" in patch:
        patch["teeth"] = validate_teeth(patch["teeth"])
    if patch.get("notes") is not None and len(patch["notes"]) > NOTES_MAX:
        raise ValidationError(f"notes exceeds max length {NOTES_MAX}")


def validate_case_create(payload: dict) -> dict:
    patch = validate_payload(model=Case, payload=payload, policy=CASE_CREATE_POLICY, partial=False)
    patch.setdefault("modality", "ANALOG")
    patch.setdefault("priority", "NORMAL")
    patch.setdefault("teeth", [])
    enforce_rules_case(patch)
    return patch


def validate_case_update(payload: dict) -> dict:
    patch = validate_payload(model=Case, payload=payload, policy=CASE_UPDATE_POLICY, partial=True)
    enforce_rules_case(patch)
    return patch


def validate_stage_action(action: Any, notes: Any = None) -> tuple[str, str | None]:
    action = validate_choice("action", action, STAGE_ACTIONS)
    if notes is not None:
        if not isinstance(notes, str):
            raise ValidationError("notes must be a string")
        if len(notes) > STAGE_NOTES_MAX:
            raise ValidationError(f"notes exceeds max length {STAGE_NOTES_MAX}")
    return action, notes


def validate_kanban_status(status: Any) -> str:
    """
    Must name a known case status. Whether the board may target it
    (DELIVERED/CANCELLED may not) is decided by the case state machine.
    """
    return validate_choice("status", status, CASE_STATUSES)


def validate_delivery_method(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("delivery_method is required")
    value = value.strip()
    if len(value) > DELIVERY_METHOD_MAX:
        raise ValidationError(f"delivery_method exceeds max length {DELIVERY_METHOD_MAX}")
    return value


def validate_reason(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("reason must be a string")
    if len(value) > REASON_MAX:
        raise ValidationError(f"reason exceeds max length {REASON_MAX}")
    return value.strip() or None


def validate_comment(content: Any, is_internal: Any = False) -> tuple[str, bool]:
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("content is required")
    content = content.strip()
    if len(content) > NOTES_MAX:
        raise ValidationError(f"content exceeds max length {NOTES_MAX}")
    if is_internal is None:
        is_internal = False
    if not isinstance(is_internal, bool):
        raise ValidationError("is_internal must be a boolean")
    return content, is_internal


def validate_case_filters(args: dict) -> dict:
    """
    Normalize list/board filters. Unknown keys are ignored (query strings
    carry unrelated params such as page).
    """
    filters: dict = {}
    if args.get("status"):
        filters["status"] = validate_choice("status", args["status"], CASE_STATUSES)
    if args.get("priority"):
        filters["priority"] = validate_choice("priority", args["priority"], PRIORITIES)
    for key in ("client_id",):
        if args.get(key) not in (None, ""):
            raw = args[key]
            if isinstance(raw, bool) or not str(raw).strip().isdigit():
                raise ValidationError(f"{key} must be an integer")
            filters[key] = int(raw)
    for key in ("prosthesis_type_id", "assigned_to", "search"):
        if args.get(key):
            filters[key] = str(args[key]).strip()
    for key in ("date_from", "date_to"):
        if args.get(key):
            try:
                filters[key] = parse_iso_datetime(str(args[key]))
            except ValueError:
                raise ValidationError(f"{key} must be an ISO-8601 date or datetime")
    return filters


def validate_pagination(page: Any, per_page: Any) -> tuple[int, int]:
    try:
        page = int(page) if page is not None else 1
        per_page = int(per_page) if per_page is not None else 20
    except (TypeError, ValueError):
        raise ValidationError("page and per_page must be integers")
    if page < 1:
        raise ValidationError("page must be >= 1")
    if per_page < 1 or per_page > PER_PAGE_MAX:
        raise ValidationError(f"per_page must be between 1 and {PER_PAGE_MAX}")
    return page, per_page
