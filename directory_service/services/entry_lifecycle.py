"""
Entry Lifecycle Service.

Create, update, status transition and delete of directory entries. Each
operation keeps the base entry, its satellite row, the linked account and
the account profile consistent:

- validation and conflict checks happen before any write;
- when a write fails after an earlier write of the same operation has
  committed, the earlier write is undone once (best effort) and the
  failure is raised;
- nothing is retried.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Optional

from directory_service.db import (
    ACCOUNTS_TABLE,
    ENTRIES_TABLE,
    PROFILES_TABLE,
    DatabaseClient,
    get_db,
    is_invalid_identifier,
    is_unique_violation,
)
from directory_service.exceptions import (
    ConflictError,
    DataStoreError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from directory_service.logging_config import entry_id_var, get_logger
from directory_service.schemas.directory_entry import (
    DirectoryEntryCreate,
    DirectoryEntryResponse,
    DirectoryEntryUpdate,
    DirectoryRole,
    EntryMutationResponse,
    EntryStatus,
    coerce_status,
)
from directory_service.services.account_provisioner import AccountProvisioner, AccountRequest
from directory_service.services.enrichment import EntryEnricher
from directory_service.services.role_metadata import (
    build_from_row,
    missing_fields_message,
    normalize,
    normalize_partial,
    validate,
)
from directory_service.services.role_registry import (
    ROLE_SCHEMAS,
    SATELLITE_ENTRY_COLUMN,
    get_role_schema,
    parse_role,
)

logger = get_logger(__name__)

REQUIRED_CREATE_FIELDS = ("role", "name", "email", "phone", "region", "sub_region")
SEARCHABLE_COLUMNS = ("name", "email", "wilaya", "commune")
VALID_STATUSES = tuple(status.value for status in EntryStatus)


def _filled(value: Any) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    return bool(value)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class EntryLifecycle:
    """Orchestrates directory-entry workflows across entries, satellites, accounts and profiles."""

    def __init__(
        self,
        db: DatabaseClient | None = None,
        provisioner: AccountProvisioner | None = None,
        enricher: EntryEnricher | None = None,
    ) -> None:
        self._db = db or get_db()
        self._provisioner = provisioner or AccountProvisioner(self._db)
        self._enricher = enricher or EntryEnricher(self._db)

    # -- Reads --

    async def list_entries(
        self,
        role: Optional[str] = None,
        status: Optional[str] = None,
        region: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[DirectoryEntryResponse]:
        """Newest first. Stored statuses outside the enumerated values are reported as pending."""
        query = self._db.client.table(ENTRIES_TABLE).select("*").order("created_at", desc=True)
        if _filled(role):
            query = query.eq("annuaire_role", role.strip())
        if _filled(status):
            query = query.eq("status", status.strip())
        if _filled(region):
            query = query.eq("wilaya", region.strip())

        try:
            response = await self._db.run(query)
        except Exception as e:
            logger.error("entry_list_failed", error=str(e))
            raise DataStoreError("Failed to retrieve directory entries") from e

        rows = response.data or []
        if _filled(search):
            needle = search.strip().lower()
            rows = [
                row for row in rows
                if any(needle in str(row[column]).lower() for column in SEARCHABLE_COLUMNS if row.get(column))
            ]

        enriched = await self._enricher.enrich(rows)
        return [
            DirectoryEntryResponse.from_row({**row, "status": coerce_status(row.get("status"))})
            for row in enriched
        ]

    async def get_entry(self, entry_id: str) -> DirectoryEntryResponse:
        row = await self._load_entry(entry_id)
        return await self._present(row)

    # -- Create --

    async def create_entry(self, payload: DirectoryEntryCreate) -> EntryMutationResponse:
        """
        Create an entry and its satellite row, provisioning the account on the way.

        Raises:
            ValidationError: missing platform fields, password or role metadata.
            ConflictError: the account already has an entry for this role.
            UpstreamError: a Supabase call failed.
        """
        missing = [name for name in REQUIRED_CREATE_FIELDS if not _filled(getattr(payload, name))]
        if missing:
            raise ValidationError("Missing required fields", missing_fields=missing)
        if not _filled(payload.password):
            raise ValidationError("Password is required", error_code="PASSWORD_REQUIRED")

        role = parse_role(payload.role)
        if role is None:
            raise ValidationError(
                f"Unknown directory role: {payload.role}",
                error_code="INVALID_ROLE",
                details={"allowed": [r.value for r in DirectoryRole]},
            )
        schema = ROLE_SCHEMAS[role]

        metadata = normalize(role, payload.role_data)
        missing_labels = validate(role, metadata)
        if missing_labels:
            raise ValidationError(missing_fields_message(missing_labels), missing_fields=missing_labels)

        name = payload.name.strip()
        email = payload.email.strip()
        provisioned = await self._provisioner.ensure_account(
            AccountRequest(
                role=role,
                name=name,
                email=email,
                phone=payload.phone or None,
                region=payload.region or None,
                sub_region=payload.sub_region or None,
                bio=payload.bio or None,
                avatar=payload.avatar,
                password=payload.password.strip(),
                metadata=metadata,
            )
        )

        try:
            duplicate = await self._db.select_first(
                ENTRIES_TABLE,
                {"user_id": provisioned.account_id, "annuaire_role": role.value},
                columns="id",
            )
        except Exception as e:
            logger.error("entry_duplicate_check_failed", account_id=provisioned.account_id, error=str(e))
            raise DataStoreError("Failed to check for an existing entry") from e

        if duplicate:
            raise self._conflict(provisioned.account_id, role)

        entry_payload = {
            "user_id": provisioned.account_id,
            "annuaire_role": role.value,
            "name": name,
            "email": email,
            "phone": payload.phone or None,
            "wilaya": payload.region or None,
            "commune": payload.sub_region or None,
            "avatar_url": provisioned.avatar_url,
            "bio": payload.bio or None,
            "status": EntryStatus.PENDING.value,
        }

        try:
            inserted = await self._db.insert(ENTRIES_TABLE, entry_payload)
        except Exception as e:
            if is_unique_violation(e):
                raise self._conflict(provisioned.account_id, role) from e
            logger.error("entry_insert_failed", account_id=provisioned.account_id, error=str(e))
            raise DataStoreError("Failed to create directory entry") from e

        if not inserted:
            raise DataStoreError("Directory entry insert returned no row")

        entry_id = str(inserted["id"])
        entry_id_var.set(entry_id)

        try:
            await self._db.insert(schema.table, {SATELLITE_ENTRY_COLUMN: entry_id, **metadata})
        except Exception as e:
            logger.error("satellite_insert_failed", table=schema.table, error=str(e))
            await self._rollback_entry(entry_id)
            raise DataStoreError("Failed to save role-specific data", details={"table": schema.table}) from e

        logger.info("entry_created", entry_id=entry_id, role=role.value, account_id=provisioned.account_id)
        return EntryMutationResponse(
            data=await self.get_entry(entry_id),
            temporary_password=provisioned.temporary_password,
        )

    # -- Update --

    async def update_entry(self, entry_id: str, payload: DirectoryEntryUpdate) -> EntryMutationResponse:
        """Apply a partial update; unspecified fields keep their stored values."""
        existing = await self._load_entry(entry_id)
        entry_id = str(existing["id"])

        role = parse_role(existing.get("annuaire_role"))
        if role is None:
            raise ValidationError(
                f"Entry has an unknown role: {existing.get('annuaire_role')}",
                error_code="INVALID_ROLE",
            )
        schema = ROLE_SCHEMAS[role]

        changes = payload.model_dump(exclude_unset=True, exclude={"avatar", "role_data"})
        name = changes.get("name", existing.get("name"))
        email = changes.get("email", existing.get("email"))
        phone = changes.get("phone", existing.get("phone"))
        region = changes.get("region", existing.get("wilaya"))
        sub_region = changes.get("sub_region", existing.get("commune"))
        bio = changes.get("bio", existing.get("bio"))

        missing = [field for field, value in (("name", name), ("email", email)) if not _filled(value)]
        if missing:
            raise ValidationError("Missing required fields", missing_fields=missing)

        try:
            satellite = await self._db.select_first(schema.table, {SATELLITE_ENTRY_COLUMN: entry_id})
        except Exception as e:
            logger.error("satellite_fetch_failed", table=schema.table, entry_id=entry_id, error=str(e))
            raise DataStoreError("Failed to load role-specific data", details={"table": schema.table}) from e

        own_metadata = existing.get("metadata") if isinstance(existing.get("metadata"), dict) else {}
        stored = {**build_from_row(role, satellite), **own_metadata}
        metadata = normalize(role, {**stored, **normalize_partial(role, payload.role_data)})
        missing_labels = validate(role, metadata)
        if missing_labels:
            raise ValidationError(missing_fields_message(missing_labels), missing_fields=missing_labels)

        provisioned = await self._provisioner.ensure_account(
            AccountRequest(
                role=role,
                name=name.strip(),
                email=email.strip(),
                phone=phone or None,
                region=region or None,
                sub_region=sub_region or None,
                bio=bio or None,
                avatar=payload.avatar,
                metadata=metadata,
            )
        )

        updates = {
            "user_id": provisioned.account_id,
            "name": name.strip(),
            "email": email.strip(),
            "phone": phone or None,
            "wilaya": region or None,
            "commune": sub_region or None,
            "bio": bio or None,
            "avatar_url": provisioned.avatar_url or existing.get("avatar_url"),
            "updated_at": _now_iso(),
        }

        try:
            await self._db.update(ENTRIES_TABLE, updates, "id", entry_id)
        except Exception as e:
            if is_unique_violation(e):
                raise self._conflict(provisioned.account_id, role) from e
            logger.error("entry_update_failed", entry_id=entry_id, error=str(e))
            raise DataStoreError("Failed to update directory entry") from e

        await self._save_satellite(schema.table, entry_id, metadata, exists=satellite is not None)

        logger.info("entry_updated", entry_id=entry_id, fields=sorted(changes))
        return EntryMutationResponse(
            data=await self.get_entry(entry_id),
            temporary_password=provisioned.temporary_password,
        )

    async def _save_satellite(self, table: str, entry_id: str, metadata: dict[str, Any], exists: bool) -> None:
        """Update the satellite row, or insert it when the entry never had one."""
        try:
            if exists:
                await self._db.update(table, metadata, SATELLITE_ENTRY_COLUMN, entry_id)
            else:
                await self._db.insert(table, {SATELLITE_ENTRY_COLUMN: entry_id, **metadata})
        except Exception as e:
            logger.error("satellite_save_failed", table=table, entry_id=entry_id, error=str(e))
            raise DataStoreError("Failed to save role-specific data", details={"table": table}) from e

    # -- Status --

    async def set_status(self, entry_id: str, status: Optional[str]) -> DirectoryEntryResponse:
        """
        Move an entry to ``status`` and mirror it onto the linked account.

        The entry, account and profile writes run concurrently. If any of
        them fails the transition is reported as failed, and an entry
        status that was already written is put back.
        """
        if status not in VALID_STATUSES:
            raise ValidationError(
                "Statut invalide",
                error_code="INVALID_STATUS",
                details={"allowed": list(VALID_STATUSES)},
            )

        existing = await self._load_entry(entry_id)
        entry_id = str(existing["id"])
        account_id = existing.get("user_id")
        previous_status = existing.get("status")
        now = _now_iso()

        steps = [self._write_entry_status(entry_id, status, now)]
        if account_id:
            current = (await self._enricher.enrich([existing]))[0]
            steps.append(self._write_account_active(account_id, status == EntryStatus.APPROVED.value, now))
            steps.append(self._write_profile_verification(account_id, status, now, current))

        results = await asyncio.gather(*steps, return_exceptions=True)
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            for failure in failures:
                logger.error("status_transition_step_failed", entry_id=entry_id, status=status, error=str(failure))
            if not isinstance(results[0], BaseException) and previous_status != status:
                await self._revert_status(entry_id, previous_status)
            raise UpstreamError(
                "Failed to update status",
                details={"entry_id": entry_id, "status": status},
            ) from failures[0]

        logger.info("entry_status_changed", entry_id=entry_id, from_status=previous_status, to_status=status)
        return await self.get_entry(entry_id)

    async def _write_entry_status(self, entry_id: str, status: str, now: str) -> None:
        await self._db.update(ENTRIES_TABLE, {"status": status, "updated_at": now}, "id", entry_id)

    async def _write_account_active(self, account_id: str, is_active: bool, now: str) -> None:
        await self._db.update(ACCOUNTS_TABLE, {"is_active": is_active, "updated_at": now}, "id", account_id)

    async def _write_profile_verification(
        self,
        account_id: str,
        status: str,
        now: str,
        entry: dict[str, Any],
    ) -> None:
        verified_at = now if status == EntryStatus.APPROVED.value else None
        profile = await self._db.select_first(PROFILES_TABLE, {"user_id": account_id}, columns="user_id")
        if profile:
            await self._db.update(
                PROFILES_TABLE,
                {"verification_status": status, "verified_at": verified_at, "updated_at": now},
                "user_id",
                account_id,
            )
            return

        metadata = entry.get("metadata") or {}
        await self._db.insert(
            PROFILES_TABLE,
            {
                "user_id": account_id,
                "verification_status": status,
                "verified_at": verified_at,
                "bio": entry.get("bio") or None,
                "specialization": metadata.get("specialization") or None,
                "license_number": metadata.get("license_number") or None,
                "updated_at": now,
            },
        )

    async def _revert_status(self, entry_id: str, previous_status: Any) -> None:
        try:
            await self._db.update(
                ENTRIES_TABLE,
                {"status": coerce_status(previous_status), "updated_at": _now_iso()},
                "id",
                entry_id,
            )
            logger.info("entry_status_reverted", entry_id=entry_id, status=previous_status)
        except Exception as e:
            logger.error("entry_status_revert_failed", entry_id=entry_id, error=str(e))

    # -- Delete --

    async def delete_entry(self, entry_id: str) -> None:
        """Remove the satellite row, then the entry. The linked account is kept."""
        existing = await self._load_entry(entry_id)
        entry_id = str(existing["id"])

        schema = get_role_schema(existing.get("annuaire_role"))
        if schema is not None:
            try:
                await self._db.delete(schema.table, SATELLITE_ENTRY_COLUMN, entry_id)
            except Exception as e:
                logger.error("satellite_delete_failed", table=schema.table, entry_id=entry_id, error=str(e))
                raise DataStoreError("Failed to delete role-specific data") from e

        try:
            await self._db.delete(ENTRIES_TABLE, "id", entry_id)
        except Exception as e:
            logger.error("entry_delete_failed", entry_id=entry_id, error=str(e))
            raise DataStoreError("Failed to delete directory entry") from e

        logger.info("entry_deleted", entry_id=entry_id, role=existing.get("annuaire_role"))

    # -- Helpers --

    async def _load_entry(self, entry_id: str) -> dict[str, Any]:
        """Fetch by entry id, falling back to the linked account id for legacy callers."""
        entry_id_var.set(str(entry_id))
        row = await self._find_entry(entry_id, "id")
        if row is None:
            row = await self._find_entry(entry_id, "user_id")
        if row is None:
            raise NotFoundError("Entry not found", resource_type="directory_entry", resource_id=str(entry_id))
        return row

    async def _find_entry(self, value: str, column: str) -> Optional[dict[str, Any]]:
        try:
            return await self._db.select_first(ENTRIES_TABLE, {column: value})
        except Exception as e:
            if is_invalid_identifier(e):
                return None
            logger.error("entry_fetch_failed", column=column, value=value, error=str(e))
            raise DataStoreError("Failed to fetch directory entry") from e

    async def _present(self, row: dict[str, Any]) -> DirectoryEntryResponse:
        enriched = await self._enricher.enrich([row])
        return DirectoryEntryResponse.from_row(enriched[0])

    async def _rollback_entry(self, entry_id: str) -> None:
        """Compensating delete for a base entry whose satellite row could not be written."""
        try:
            await self._db.delete(ENTRIES_TABLE, "id", entry_id)
            logger.info("entry_rolled_back", entry_id=entry_id)
        except Exception as e:
            logger.error("entry_rollback_failed", entry_id=entry_id, error=str(e))

    @staticmethod
    def _conflict(account_id: str, role: DirectoryRole) -> ConflictError:
        return ConflictError(
            "Une entrée pour ce rôle existe déjà",
            details={"account_id": account_id, "role": role.value},
        )


@lru_cache(maxsize=1)
def get_entry_lifecycle() -> EntryLifecycle:
    return EntryLifecycle()
