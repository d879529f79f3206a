# Overview: Prosthesis catalog lookups used when creating cases.

from __future__ import annotations

from ..errors import NotFoundError
from ..prosthesis_types import CATEGORIES, PROSTHESIS_TYPES, ProsthesisType
from ..validation import ValidationError


_BY_ID = {t.id: t for t in PROSTHESIS_TYPES}


def lookup(prosthesis_type_id: str) -> ProsthesisType:
    """
    Resolve a prosthesis type to its lead time and stage template.

    Raises:
        NotFoundError: unknown type id
    """
    prosthesis_type = _BY_ID.get(prosthesis_type_id)
    if prosthesis_type is None:
        raise NotFoundError(f"Prosthesis type '{prosthesis_type_id}' not found")
    return prosthesis_type


def list_types(category: str | None = None) -> list[ProsthesisType]:
    if category is None:
        return list(PROSTHESIS_TYPES)
    if category not in CATEGORIES:
        raise ValidationError(
            f"Invalid category '{category}'. Must be one of: {', '.join(CATEGORIES)}"
        )
    return [t for t in PROSTHESIS_TYPES if t.category == category]
