"""
Role-specific metadata models.

One model per directory role. Each field can be supplied under its
snake_case or camelCase key, and every field type carries a lenient
coercer: client input is normalized on a best-effort basis and never
rejected here. Missing mandatory values are reported by the validator.
"""

from __future__ import annotations

import json
import math
import re
from typing import Annotated, Any, Optional, Union

from pydantic import AliasChoices, AliasGenerator, BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from pydantic.fields import FieldInfo

from directory_service.schemas.directory_entry import DirectoryRole

TRUTHY_STRINGS = frozenset({"true", "1", "yes", "oui"})
_LIST_SEPARATORS = re.compile(r"\r?\n|,")


# ── Coercers ─────────────────────────────────────────────────────


def coerce_text(value: Any) -> str:
    if not value:
        return ""
    return value if isinstance(value, str) else str(value)


def coerce_optional_text(value: Any) -> Optional[str]:
    if not value:
        return None
    return value if isinstance(value, str) else str(value)


def coerce_number(value: Any) -> Optional[Union[int, float]]:
    """Numbers and numeric strings pass; anything else becomes None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None

    if not math.isfinite(number):
        return None
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


def coerce_integer(value: Any) -> Optional[int]:
    number = coerce_number(value)
    return None if number is None else int(number)


def coerce_string_list(value: Any) -> list[Any]:
    """Accept a list, or a comma/newline separated string."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = [item.strip() if isinstance(item, str) else item for item in value]
        return [item for item in items if item]
    if isinstance(value, str):
        return [part.strip() for part in _LIST_SEPARATORS.split(value) if part.strip()]
    return []


def coerce_flag(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if not lowered:
            return default
        return lowered in TRUTHY_STRINGS
    return default


def coerce_json(value: Any) -> Any:
    """Object as-is, JSON string parsed, unparseable text kept as a description."""
    if value is None:
        return {}
    if isinstance(value, (dict, list)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return {}
        try:
            parsed = json.loads(text)
        except ValueError:
            return {"description": text}
        return parsed if isinstance(parsed, (dict, list)) else {}
    return {}


Text = Annotated[str, BeforeValidator(coerce_text)]
OptionalText = Annotated[Optional[str], BeforeValidator(coerce_optional_text)]
Number = Annotated[Optional[Union[int, float]], BeforeValidator(coerce_number)]
Integer = Annotated[Optional[int], BeforeValidator(coerce_integer)]
StringList = Annotated[list[Any], BeforeValidator(coerce_string_list)]
JsonObject = Annotated[Any, BeforeValidator(coerce_json)]
FlagDefaultTrue = Annotated[bool, BeforeValidator(lambda value: coerce_flag(value, True))]
FlagDefaultFalse = Annotated[bool, BeforeValidator(lambda value: coerce_flag(value, False))]


def _aliases(*names: str) -> AliasChoices:
    return AliasChoices(*names)


def _snake_or_camel(field_name: str) -> AliasChoices:
    return AliasChoices(field_name, to_camel(field_name))


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def _input_keys(name: str, field: FieldInfo) -> list[str]:
    alias = field.validation_alias
    if isinstance(alias, AliasChoices):
        return [choice for choice in alias.choices if isinstance(choice, str)]
    return [name, to_camel(name)]


# ── Models ───────────────────────────────────────────────────────


class RoleMetadataModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        alias_generator=AliasGenerator(validation_alias=_snake_or_camel),
    )

    @model_validator(mode="before")
    @classmethod
    def _prefer_filled_keys(cls, data: Any) -> Any:
        """When a field arrives under several keys, the first non-blank one wins."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for name, field in cls.model_fields.items():
            present = [key for key in _input_keys(name, field) if key in data]
            filled = [key for key in present if not _is_blank(data[key])]
            if len(present) < 2 or not filled:
                continue
            for key in present:
                if key != filled[0]:
                    del data[key]
        return data


class PhysicianMetadata(RoleMetadataModel):
    specialization: Text = ""
    license_number: Text = ""
    hospital_affiliation: OptionalText = None
    consultation_fee: Number = None
    years_of_experience: Integer = None
    education: StringList = Field(default_factory=list)
    certifications: StringList = Field(default_factory=list)
    languages_spoken: StringList = Field(default_factory=list)
    accepts_new_patients: FlagDefaultTrue = True


class CancerCenterMetadata(RoleMetadataModel):
    center_name: Text = ""
    registration_number: Text = ""
    address: Text = ""
    emergency_phone: OptionalText = None
    website: OptionalText = None
    bed_capacity: Integer = None
    departments: JsonObject = Field(default_factory=dict)
    services: JsonObject = Field(default_factory=dict)
    equipment: JsonObject = Field(default_factory=dict)


class PsychologistMetadata(RoleMetadataModel):
    specialization: Text = ""
    license_number: Text = ""
    office_address: OptionalText = None
    consultation_fee: Number = None
    years_of_experience: Integer = None
    education: StringList = Field(default_factory=list)
    certifications: StringList = Field(default_factory=list)
    languages_spoken: StringList = Field(default_factory=list)
    accepts_new_patients: FlagDefaultTrue = True
    therapy_types: StringList = Field(default_factory=list)


class LaboratoryMetadata(RoleMetadataModel):
    lab_name: Text = ""
    license_number: Text = Field(
        default="",
        validation_alias=_aliases(
            "license_number", "licenseNumber", "registration_number", "registrationNumber"
        ),
    )
    address: Text = ""
    working_hours: JsonObject = Field(default_factory=dict)
    test_types: StringList = Field(default_factory=list)
    accreditations: StringList = Field(default_factory=list)
    has_home_service: FlagDefaultFalse = False
    average_turnaround_time: Number = Field(
        default=None,
        validation_alias=_aliases("average_turnaround_time", "averageTurnaroundTime", "turnaroundTime"),
    )


class PharmacyMetadata(RoleMetadataModel):
    pharmacy_name: Text = ""
    license_number: Text = Field(
        default="",
        validation_alias=_aliases(
            "license_number", "licenseNumber", "registration_number", "registrationNumber"
        ),
    )
    address: Text = ""
    emergency_phone: OptionalText = None
    working_hours: JsonObject = Field(default_factory=dict)
    services: JsonObject = Field(
        default_factory=dict,
        validation_alias=_aliases("services", "services_offered", "servicesOffered"),
    )
    has_delivery: FlagDefaultFalse = False
    is_24_hours: FlagDefaultFalse = Field(default=False, validation_alias=_aliases("is_24_hours", "is24Hours"))


class AssociationMetadata(RoleMetadataModel):
    association_name: Text = ""
    registration_number: Text = ""
    address: Text = ""
    website: OptionalText = None
    description: OptionalText = None
    focus_areas: StringList = Field(default_factory=list)
    services_offered: JsonObject = Field(default_factory=dict)
    volunteer_opportunities: JsonObject = Field(default_factory=dict)
    donation_info: JsonObject = Field(default_factory=dict)


ROLE_METADATA_MODELS: dict[DirectoryRole, type[RoleMetadataModel]] = {
    DirectoryRole.PHYSICIAN: PhysicianMetadata,
    DirectoryRole.CANCER_CENTER: CancerCenterMetadata,
    DirectoryRole.PSYCHOLOGIST: PsychologistMetadata,
    DirectoryRole.LABORATORY: LaboratoryMetadata,
    DirectoryRole.PHARMACY: PharmacyMetadata,
    DirectoryRole.ASSOCIATION: AssociationMetadata,
}
