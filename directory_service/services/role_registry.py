"""
Role Schema Registry.

Static description of each directory role: which satellite table holds
its metadata, which coarse account role it maps to, and which metadata
fields are mandatory (with the label shown to admins).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from directory_service.schemas.directory_entry import DirectoryRole

# Foreign key from every satellite table back to annuaire_entries.id
SATELLITE_ENTRY_COLUMN = "annuaire_entry_id"


@dataclass(frozen=True)
class RoleSchema:
    role: DirectoryRole
    table: str
    account_role: str
    required_fields: tuple[tuple[str, str], ...]

    @property
    def required_labels(self) -> list[str]:
        return [label for _, label in self.required_fields]


_SPECIALIZATION = ("specialization", "Spécialité")
_LICENSE_NUMBER = ("license_number", "Numéro de licence")
_REGISTRATION_NUMBER = ("registration_number", "Numéro d'enregistrement")
_ADDRESS = ("address", "Adresse")

ROLE_SCHEMAS: dict[DirectoryRole, RoleSchema] = {
    DirectoryRole.PHYSICIAN: RoleSchema(
        role=DirectoryRole.PHYSICIAN,
        table="annuaire_medecin",
        account_role="doctor",
        required_fields=(_SPECIALIZATION, _LICENSE_NUMBER),
    ),
    DirectoryRole.CANCER_CENTER: RoleSchema(
        role=DirectoryRole.CANCER_CENTER,
        table="annuaire_cancer_centers",
        account_role="cancer_center",
        required_fields=(("center_name", "Nom du centre"), _REGISTRATION_NUMBER, _ADDRESS),
    ),
    DirectoryRole.PSYCHOLOGIST: RoleSchema(
        role=DirectoryRole.PSYCHOLOGIST,
        table="annuaire_psychologists",
        account_role="doctor",
        required_fields=(_SPECIALIZATION, _LICENSE_NUMBER),
    ),
    DirectoryRole.LABORATORY: RoleSchema(
        role=DirectoryRole.LABORATORY,
        table="annuaire_laboratories",
        account_role="laboratory",
        required_fields=(("lab_name", "Nom du laboratoire"), _LICENSE_NUMBER, _ADDRESS),
    ),
    DirectoryRole.PHARMACY: RoleSchema(
        role=DirectoryRole.PHARMACY,
        table="annuaire_pharmacies",
        account_role="pharmacy",
        required_fields=(("pharmacy_name", "Nom de la pharmacie"), _LICENSE_NUMBER, _ADDRESS),
    ),
    DirectoryRole.ASSOCIATION: RoleSchema(
        role=DirectoryRole.ASSOCIATION,
        table="annuaire_associations",
        account_role="association",
        required_fields=(("association_name", "Nom de l'association"), _REGISTRATION_NUMBER, _ADDRESS),
    ),
}

DEFAULT_ACCOUNT_ROLE = "doctor"


def parse_role(role: Any) -> Optional[DirectoryRole]:
    """Resolve a wire value (surrounding whitespace ignored) to a role, or None."""
    if isinstance(role, DirectoryRole):
        return role
    if not isinstance(role, str):
        return None
    try:
        return DirectoryRole(role.strip())
    except ValueError:
        return None


def get_role_schema(role: Any) -> Optional[RoleSchema]:
    parsed = parse_role(role)
    return ROLE_SCHEMAS.get(parsed) if parsed else None


def account_role_for(role: Any) -> str:
    schema = get_role_schema(role)
    return schema.account_role if schema else DEFAULT_ACCOUNT_ROLE
