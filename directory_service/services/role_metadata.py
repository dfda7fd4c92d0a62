"""
Role Metadata Normalizer and Validator.

``normalize`` turns whatever the admin UI submitted for a role into the
canonical shape stored in that role's satellite table. ``validate``
reports the mandatory fields that are still empty after normalization.
"""

from __future__ import annotations

from typing import Any

from directory_service.schemas.role_metadata import ROLE_METADATA_MODELS, RoleMetadataModel
from directory_service.services.role_registry import get_role_schema, parse_role

MISSING_FIELDS_PREFIX = "Champs requis manquants"


def _model_for(role: Any) -> type[RoleMetadataModel] | None:
    parsed = parse_role(role)
    return ROLE_METADATA_MODELS.get(parsed) if parsed else None


def normalize(role: Any, raw: dict[str, Any] | None) -> dict[str, Any]:
    """
    Canonical metadata for ``role`` with every field present.

    Unknown roles yield an empty dict; the caller treats that as invalid.
    """
    model = _model_for(role)
    if model is None:
        return {}
    return model.model_validate(raw or {}).model_dump()


def normalize_partial(role: Any, raw: dict[str, Any] | None) -> dict[str, Any]:
    """Canonicalize only the fields present in ``raw`` (no defaults filled in)."""
    model = _model_for(role)
    if model is None:
        return {}
    return model.model_validate(raw or {}).model_dump(exclude_unset=True)


def build_from_row(role: Any, row: dict[str, Any] | None) -> dict[str, Any]:
    """Map a satellite-table row back to canonical metadata."""
    if not row:
        return {}
    return normalize(role, row)


def validate(role: Any, metadata: dict[str, Any]) -> list[str]:
    """Labels of mandatory fields whose value is empty, in registry order."""
    schema = get_role_schema(role)
    if schema is None:
        return []
    return [label for field, label in schema.required_fields if not metadata.get(field)]


def missing_fields_message(labels: list[str]) -> str:
    return f"{MISSING_FIELDS_PREFIX}: {', '.join(labels)}"
