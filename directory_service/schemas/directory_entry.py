"""
Data models for directory entries.

Request bodies accept both the current field names and the legacy keys
the admin UI still sends (``annuaire_role``, ``wilaya``, ``commune``,
``roleSpecificData``).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class DirectoryRole(str, Enum):
    PHYSICIAN = "medecin"
    CANCER_CENTER = "centre_cancer"
    PSYCHOLOGIST = "psychologue"
    LABORATORY = "laboratoire"
    PHARMACY = "pharmacie"
    ASSOCIATION = "association"


class EntryStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def coerce_status(value: Any) -> str:
    """Map a stored status onto the enumerated values, defaulting to pending."""
    if isinstance(value, EntryStatus):
        return value.value
    if isinstance(value, str) and value in {s.value for s in EntryStatus}:
        return value
    return EntryStatus.PENDING.value


class AvatarPayload(BaseModel):
    """An uploaded image: base64 (or data-URL) content plus its declared name and MIME type."""
    data: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None


class _EntryFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    region: Optional[str] = Field(default=None, validation_alias=AliasChoices("region", "wilaya"))
    sub_region: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("sub_region", "subRegion", "commune")
    )
    bio: Optional[str] = None
    avatar: Optional[AvatarPayload] = None
    role_data: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("role_data", "roleData", "roleSpecificData", "role_specific_data"),
    )


class DirectoryEntryCreate(_EntryFields):
    """Schema for creating a directory entry. Required fields are checked by the lifecycle service."""
    role: Optional[str] = Field(default=None, validation_alias=AliasChoices("role", "annuaire_role"))
    password: Optional[str] = None


class DirectoryEntryUpdate(_EntryFields):
    """Any subset of the creatable fields. The role of an entry never changes."""
    pass


class StatusUpdateRequest(BaseModel):
    status: Optional[str] = None


class DirectoryEntryResponse(BaseModel):
    """Client-facing entry: base record merged with its role metadata."""
    id: str
    account_id: Optional[str] = None
    role: str
    name: str = ""
    email: str = ""
    phone: Optional[str] = None
    region: Optional[str] = None
    sub_region: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    status: str = EntryStatus.PENDING.value
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "DirectoryEntryResponse":
        """Build from an (enriched) ``annuaire_entries`` row."""
        return cls(
            id=str(row["id"]),
            account_id=str(row["user_id"]) if row.get("user_id") else None,
            role=row.get("annuaire_role") or "",
            name=row.get("name") or "",
            email=row.get("email") or "",
            phone=row.get("phone") or None,
            region=row.get("wilaya") or None,
            sub_region=row.get("commune") or None,
            avatar_url=row.get("avatar_url") or None,
            bio=row.get("bio") or None,
            status=row.get("status") or EntryStatus.PENDING.value,
            metadata=row.get("metadata") or {},
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


class EntryEnvelope(BaseModel):
    data: DirectoryEntryResponse


class EntryMutationResponse(EntryEnvelope):
    """``temporary_password`` is set only when a new account got a generated password."""
    temporary_password: Optional[str] = None


class EntryListResponse(BaseModel):
    data: list[DirectoryEntryResponse]
    total: int
