"""
Account Provisioner.

Makes sure a platform account exists for the email behind a directory
entry: creates the Supabase Auth identity and the ``users`` row on first
use, refreshes the mutable fields afterwards, stores the avatar, and
keeps the ``user_profiles`` row in step with the role metadata.
"""

from __future__ import annotations

import base64
import re
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from directory_service.config import get_settings
from directory_service.db import ACCOUNTS_TABLE, PROFILES_TABLE, DatabaseClient, get_db, is_unique_violation
from directory_service.exceptions import (
    AccountWriteError,
    DataStoreError,
    IdentityProviderError,
    ProfileWriteError,
)
from directory_service.logging_config import get_logger
from directory_service.schemas.directory_entry import AvatarPayload, DirectoryRole
from directory_service.services.role_registry import account_role_for

logger = get_logger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9\-_.]")

# Role metadata fields mirrored onto user_profiles columns
PROFILE_FIELDS = ("specialization", "license_number", "address", "working_hours", "services", "website")


@dataclass
class AccountRequest:
    role: DirectoryRole | str
    name: str
    email: str
    phone: Optional[str] = None
    region: Optional[str] = None
    sub_region: Optional[str] = None
    bio: Optional[str] = None
    avatar: Optional[AvatarPayload] = None
    password: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProvisionedAccount:
    account_id: str
    temporary_password: Optional[str] = None
    avatar_url: Optional[str] = None
    created: bool = False


def decode_avatar(data: str) -> bytes:
    """Decode base64 content, with or without a ``data:<mime>;base64,`` prefix."""
    encoded = data.split(",")[-1].strip()
    if not encoded:
        raise ValueError("Empty avatar payload")
    return base64.b64decode(encoded, validate=True)


def avatar_storage_path(
    account_id: str,
    file_name: str,
    mime_type: Optional[str] = None,
    timestamp_ms: Optional[int] = None,
) -> str:
    """``<account_id>/<epoch-ms>-<sanitized name>``; the name always ends with an extension."""
    extension = ""
    if "." in file_name:
        extension = file_name.rsplit(".", 1)[-1]
    if not extension and mime_type and "/" in mime_type:
        extension = mime_type.split("/")[-1]
    extension = re.sub(r"[^a-z0-9]", "", (extension or "jpg").lower()) or "jpg"

    sanitized = _UNSAFE_FILENAME_CHARS.sub("-", file_name) or "file"
    if not sanitized.lower().endswith(f".{extension}"):
        sanitized = f"{sanitized}.{extension}"

    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"{account_id}/{stamp}-{sanitized}"


class AccountProvisioner:
    """Create-or-update of the account and profile linked to a directory entry."""

    def __init__(self, db: DatabaseClient | None = None) -> None:
        self._db = db or get_db()
        self._settings = get_settings()

    async def ensure_account(self, request: AccountRequest) -> ProvisionedAccount:
        """
        Ensure an account exists for ``request.email`` and reflects the request.

        Raises:
            IdentityProviderError: the Auth identity could not be created.
            AccountWriteError: the ``users`` row could not be written.
            ProfileWriteError: the ``user_profiles`` upsert failed.
        """
        account_role = account_role_for(request.role)

        existing = await self._find_account(request.email)
        if existing is None:
            provisioned = await self._create_account(request, account_role)
        else:
            provisioned = await self._update_account(existing, request, account_role)

        avatar_url = await self._store_avatar(provisioned.account_id, request.avatar)
        if avatar_url:
            provisioned.avatar_url = avatar_url

        await self._upsert_profile(provisioned.account_id, request.bio, request.metadata)
        return provisioned

    # -- Account row --

    async def _find_account(self, email: str) -> Optional[dict[str, Any]]:
        try:
            return await self._db.select_first(
                ACCOUNTS_TABLE,
                {"email": email},
                columns="id,email,role,avatar_url",
            )
        except Exception as e:
            logger.error("account_lookup_failed", email=email, error=str(e))
            raise DataStoreError("Failed to look up account", details={"email": email}) from e

    async def _create_account(self, request: AccountRequest, account_role: str) -> ProvisionedAccount:
        password = request.password or secrets.token_urlsafe(self._settings.generated_password_bytes)

        try:
            result = await self._db.call(
                self._db.client.auth.admin.create_user,
                {
                    "email": request.email,
                    "password": password,
                    "email_confirm": True,
                    "user_metadata": {"full_name": request.name},
                },
            )
        except Exception as e:
            logger.error("identity_create_failed", email=request.email, error=str(e))
            winner = await self._find_account(request.email)
            if winner is not None:
                logger.info("account_created_concurrently", account_id=winner["id"])
                return await self._update_account(winner, request, account_role)
            raise IdentityProviderError("Failed to create account identity", details={"email": request.email}) from e

        user = getattr(result, "user", None)
        if user is None:
            logger.error("identity_create_empty", email=request.email)
            raise IdentityProviderError("Identity provider returned no user", details={"email": request.email})

        account_id = str(user.id)
        row = {
            "id": account_id,
            "email": request.email,
            "full_name": request.name,
            "role": account_role,
            "phone": request.phone or None,
            "wilaya": request.region or None,
            "commune": request.sub_region or None,
            "language": self._settings.default_language,
            "avatar_url": None,
            "is_active": False,
            "email_verified": False,
        }

        try:
            await self._db.insert(ACCOUNTS_TABLE, row)
        except Exception as e:
            logger.error("account_insert_failed", account_id=account_id, error=str(e))
            await self._delete_identity(account_id)
            if is_unique_violation(e):
                winner = await self._find_account(request.email)
                if winner is not None:
                    logger.info("account_created_concurrently", account_id=winner["id"])
                    return await self._update_account(winner, request, account_role)
            raise AccountWriteError("Failed to create account", details={"email": request.email}) from e

        logger.info("account_created", account_id=account_id, role=account_role)
        return ProvisionedAccount(
            account_id=account_id,
            temporary_password=None if request.password else password,
            created=True,
        )

    async def _update_account(
        self,
        existing: dict[str, Any],
        request: AccountRequest,
        account_role: str,
    ) -> ProvisionedAccount:
        account_id = str(existing["id"])
        updates: dict[str, Any] = {
            "full_name": request.name,
            "phone": request.phone or None,
            "wilaya": request.region or None,
            "commune": request.sub_region or None,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        if account_role and existing.get("role") != account_role:
            updates["role"] = account_role

        try:
            await self._db.update(ACCOUNTS_TABLE, updates, "id", account_id)
        except Exception as e:
            logger.error("account_update_failed", account_id=account_id, error=str(e))
            raise AccountWriteError("Failed to update account", details={"account_id": account_id}) from e

        logger.info("account_reused", account_id=account_id, role_changed="role" in updates)
        return ProvisionedAccount(account_id=account_id, avatar_url=existing.get("avatar_url"))

    async def _delete_identity(self, account_id: str) -> None:
        """Compensating action for an identity whose account row was never written."""
        try:
            await self._db.call(self._db.client.auth.admin.delete_user, account_id)
            logger.info("identity_rolled_back", account_id=account_id)
        except Exception as e:
            logger.error("identity_rollback_failed", account_id=account_id, error=str(e))

    # -- Avatar (best effort) --

    async def _store_avatar(self, account_id: str, avatar: Optional[AvatarPayload]) -> Optional[str]:
        if avatar is None or not avatar.data or not avatar.name:
            return None

        try:
            content = decode_avatar(avatar.data)
            path = avatar_storage_path(account_id, avatar.name, avatar.type)
            bucket = self._db.client.storage.from_(self._settings.avatars_bucket)
            await self._db.call(
                bucket.upload,
                path,
                content,
                {"content-type": avatar.type or "image/jpeg", "upsert": "true"},
            )
            avatar_url = await self._db.call(bucket.get_public_url, path)
        except Exception as e:
            logger.warning("avatar_upload_failed", account_id=account_id, error=str(e))
            return None

        try:
            await self._db.update(ACCOUNTS_TABLE, {"avatar_url": avatar_url}, "id", account_id)
        except Exception as e:
            logger.warning("avatar_account_update_failed", account_id=account_id, error=str(e))

        try:
            await self._db.call(
                self._db.client.auth.admin.update_user_by_id,
                account_id,
                {"user_metadata": {"avatar_url": avatar_url}},
            )
        except Exception as e:
            logger.warning("avatar_identity_update_failed", account_id=account_id, error=str(e))

        logger.info("avatar_uploaded", account_id=account_id, path=path)
        return avatar_url

    # -- Profile --

    async def _upsert_profile(self, account_id: str, bio: Optional[str], metadata: dict[str, Any]) -> None:
        try:
            existing = await self._db.select_first(PROFILES_TABLE, {"user_id": account_id}, columns="metadata")
        except Exception as e:
            logger.error("profile_lookup_failed", account_id=account_id, error=str(e))
            raise ProfileWriteError("Failed to read account profile", details={"account_id": account_id}) from e

        stored = (existing or {}).get("metadata")
        merged_metadata = {**(stored if isinstance(stored, dict) else {}), **metadata}

        payload: dict[str, Any] = {
            "user_id": account_id,
            "bio": bio or None,
            "metadata": merged_metadata,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        for name in PROFILE_FIELDS:
            payload[name] = metadata.get(name) or None

        try:
            await self._db.upsert(PROFILES_TABLE, payload, on_conflict="user_id")
        except Exception as e:
            logger.error("profile_upsert_failed", account_id=account_id, error=str(e))
            raise ProfileWriteError("Failed to save account profile", details={"account_id": account_id}) from e
