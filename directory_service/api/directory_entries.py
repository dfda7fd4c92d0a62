"""
API Router: Directory Entry Endpoints.

Admin CRUD and status moderation for the healthcare directory.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends

from directory_service.api.auth import require_admin
from directory_service.schemas.directory_entry import (
    DirectoryEntryCreate,
    DirectoryEntryUpdate,
    EntryEnvelope,
    EntryListResponse,
    EntryMutationResponse,
    StatusUpdateRequest,
)
from directory_service.services.entry_lifecycle import EntryLifecycle, get_entry_lifecycle

router = APIRouter(
    prefix="/directory-entries",
    tags=["Directory"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=EntryListResponse)
async def list_entries(
    role: Optional[str] = None,
    status: Optional[str] = None,
    region: Optional[str] = None,
    search: Optional[str] = None,
    lifecycle: EntryLifecycle = Depends(get_entry_lifecycle),
) -> EntryListResponse:
    """List entries, newest first, with optional role/status/region filters and free-text search."""
    entries = await lifecycle.list_entries(role=role, status=status, region=region, search=search)
    return EntryListResponse(data=entries, total=len(entries))


@router.get("/{entry_id}", response_model=EntryEnvelope)
async def get_entry(
    entry_id: str,
    lifecycle: EntryLifecycle = Depends(get_entry_lifecycle),
) -> EntryEnvelope:
    return EntryEnvelope(data=await lifecycle.get_entry(entry_id))


@router.post("", response_model=EntryMutationResponse, status_code=201)
async def create_entry(
    payload: DirectoryEntryCreate,
    lifecycle: EntryLifecycle = Depends(get_entry_lifecycle),
) -> EntryMutationResponse:
    """Create an entry, provisioning (or reusing) the account behind it."""
    return await lifecycle.create_entry(payload)


@router.patch("/{entry_id}", response_model=EntryMutationResponse)
async def update_entry(
    entry_id: str,
    payload: DirectoryEntryUpdate,
    lifecycle: EntryLifecycle = Depends(get_entry_lifecycle),
) -> EntryMutationResponse:
    return await lifecycle.update_entry(entry_id, payload)


@router.patch("/{entry_id}/status", response_model=EntryEnvelope)
async def update_entry_status(
    entry_id: str,
    body: StatusUpdateRequest,
    lifecycle: EntryLifecycle = Depends(get_entry_lifecycle),
) -> EntryEnvelope:
    """Approve, reject or reset an entry. The linked account and profile follow."""
    return EntryEnvelope(data=await lifecycle.set_status(entry_id, body.status))


@router.delete("/{entry_id}")
async def delete_entry(
    entry_id: str,
    lifecycle: EntryLifecycle = Depends(get_entry_lifecycle),
) -> dict[str, Any]:
    await lifecycle.delete_entry(entry_id)
    return {"success": True}
