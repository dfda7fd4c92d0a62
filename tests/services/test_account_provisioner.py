"""Tests for account provisioning against the in-memory Supabase backend."""

from __future__ import annotations

import base64

import pytest

from directory_service.exceptions import AccountWriteError, IdentityProviderError, ProfileWriteError
from directory_service.schemas.directory_entry import AvatarPayload, DirectoryRole
from directory_service.services.account_provisioner import (
    AccountProvisioner,
    AccountRequest,
    avatar_storage_path,
    decode_avatar,
)
from tests.fakes import FakeSupabase

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


def _request(**overrides) -> AccountRequest:
    values = {
        "role": DirectoryRole.PHYSICIAN,
        "name": "Dr. Amina Belkacem",
        "email": "amina@example.dz",
        "phone": "+213550101010",
        "region": "Alger",
        "sub_region": "Hydra",
        "metadata": {"specialization": "Oncologie", "license_number": "MED-001"},
    }
    values.update(overrides)
    return AccountRequest(**values)


def _hide_account_on_first_lookup(provisioner: AccountProvisioner, monkeypatch: pytest.MonkeyPatch) -> None:
    """Make the first ``users`` lookup miss, as when another request creates the account meanwhile."""
    select_first = provisioner._db.select_first
    lookups = []

    async def select(table, filters, **kwargs):
        lookups.append(table)
        if table == "users" and lookups.count("users") == 1:
            return None
        return await select_first(table, filters, **kwargs)

    monkeypatch.setattr(provisioner._db, "select_first", select)


class TestAvatarHelpers:
    def test_decode_strips_data_url_prefix(self) -> None:
        encoded = base64.b64encode(PNG_BYTES).decode()

        assert decode_avatar(f"data:image/png;base64,{encoded}") == PNG_BYTES
        assert decode_avatar(encoded) == PNG_BYTES

    def test_decode_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            decode_avatar("data:image/png;base64,***")

    def test_storage_path_keeps_name_extension(self) -> None:
        path = avatar_storage_path("acc-1", "photo de profil.PNG", "image/jpeg", timestamp_ms=1700000000000)

        assert path == "acc-1/1700000000000-photo-de-profil.PNG"

    def test_storage_path_uses_mime_type_when_name_has_no_extension(self) -> None:
        path = avatar_storage_path("acc-1", "avatar", "image/webp", timestamp_ms=1)

        assert path == "acc-1/1-avatar.webp"

    def test_storage_path_defaults_to_jpg(self) -> None:
        assert avatar_storage_path("acc-1", "avatar", None, timestamp_ms=1) == "acc-1/1-avatar.jpg"


class TestEnsureAccount:
    @pytest.mark.asyncio
    async def test_creates_identity_account_and_profile(
        self, provisioner: AccountProvisioner, supabase: FakeSupabase
    ) -> None:
        result = await provisioner.ensure_account(_request(password="S3cret-pass"))

        assert result.created is True
        assert result.temporary_password is None
        assert result.account_id in supabase.auth.admin.identities

        [account] = supabase.tables["users"]
        assert account["id"] == result.account_id
        assert account["role"] == "doctor"
        assert account["is_active"] is False
        assert account["email_verified"] is False
        assert account["language"] == "fr"

        [profile] = supabase.tables["user_profiles"]
        assert profile["user_id"] == result.account_id
        assert profile["specialization"] == "Oncologie"
        assert profile["license_number"] == "MED-001"

    @pytest.mark.asyncio
    async def test_generates_password_when_none_given(
        self, provisioner: AccountProvisioner, supabase: FakeSupabase
    ) -> None:
        result = await provisioner.ensure_account(_request())

        assert result.temporary_password
        assert supabase.auth.admin.identities[result.account_id]["password"] == result.temporary_password

    @pytest.mark.asyncio
    async def test_reuses_existing_account_and_updates_role(
        self, provisioner: AccountProvisioner, supabase: FakeSupabase
    ) -> None:
        existing = supabase.seed(
            "users",
            {"email": "amina@example.dz", "full_name": "Old Name", "role": "patient", "avatar_url": "https://old"},
        )

        result = await provisioner.ensure_account(_request(role=DirectoryRole.PHARMACY, name="New Name"))

        assert result.created is False
        assert result.account_id == existing["id"]
        assert result.avatar_url == "https://old"
        assert supabase.auth.admin.identities == {}

        [account] = supabase.tables["users"]
        assert account["full_name"] == "New Name"
        assert account["role"] == "pharmacy"

    @pytest.mark.asyncio
    async def test_identity_failure_writes_nothing(
        self, provisioner: AccountProvisioner, supabase: FakeSupabase
    ) -> None:
        supabase.fail_on("auth", "create_user")

        with pytest.raises(IdentityProviderError):
            await provisioner.ensure_account(_request())

        assert supabase.tables.get("users", []) == []

    @pytest.mark.asyncio
    async def test_account_insert_failure_deletes_identity(
        self, provisioner: AccountProvisioner, supabase: FakeSupabase
    ) -> None:
        supabase.fail_on("users", "insert")

        with pytest.raises(AccountWriteError):
            await provisioner.ensure_account(_request())

        assert len(supabase.auth.admin.deleted) == 1
        assert supabase.auth.admin.identities == {}

    @pytest.mark.asyncio
    async def test_account_created_concurrently_is_reused(
        self, provisioner: AccountProvisioner, supabase: FakeSupabase, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        winner = supabase.seed("users", {"email": "amina@example.dz", "role": "doctor", "full_name": "Amina"})
        _hide_account_on_first_lookup(provisioner, monkeypatch)

        result = await provisioner.ensure_account(_request())

        assert result.account_id == winner["id"]
        assert result.created is False
        assert result.temporary_password is None
        assert len(supabase.auth.admin.deleted) == 1
        assert supabase.auth.admin.identities == {}
        assert len(supabase.tables["users"]) == 1
        assert supabase.tables["user_profiles"][0]["user_id"] == winner["id"]

    @pytest.mark.asyncio
    async def test_identity_rejected_for_concurrently_created_account_is_reused(
        self, provisioner: AccountProvisioner, supabase: FakeSupabase, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        winner = supabase.seed("users", {"email": "amina@example.dz", "role": "doctor", "full_name": "Amina"})
        _hide_account_on_first_lookup(provisioner, monkeypatch)
        supabase.fail_on("auth", "create_user")

        result = await provisioner.ensure_account(_request())

        assert result.account_id == winner["id"]
        assert result.created is False
        assert supabase.auth.admin.identities == {}

    @pytest.mark.asyncio
    async def test_profile_failure_is_reported(
        self, provisioner: AccountProvisioner, supabase: FakeSupabase
    ) -> None:
        supabase.fail_on("user_profiles", "upsert")

        with pytest.raises(ProfileWriteError):
            await provisioner.ensure_account(_request())

    @pytest.mark.asyncio
    async def test_profile_metadata_is_merged(
        self, provisioner: AccountProvisioner, supabase: FakeSupabase
    ) -> None:
        account = supabase.seed("users", {"email": "amina@example.dz", "role": "doctor"})
        supabase.seed("user_profiles", {"user_id": account["id"], "metadata": {"legacy": "kept", "specialization": "Old"}})

        await provisioner.ensure_account(_request())

        [profile] = supabase.tables["user_profiles"]
        assert profile["metadata"]["legacy"] == "kept"
        assert profile["metadata"]["specialization"] == "Oncologie"

    @pytest.mark.asyncio
    async def test_avatar_is_uploaded_and_linked(
        self, provisioner: AccountProvisioner, supabase: FakeSupabase
    ) -> None:
        avatar = AvatarPayload(data=base64.b64encode(PNG_BYTES).decode(), name="me.png", type="image/png")

        result = await provisioner.ensure_account(_request(avatar=avatar))

        [upload] = supabase.uploads
        assert upload["bucket"] == "avatars"
        assert upload["path"].startswith(f"{result.account_id}/")
        assert upload["path"].endswith("-me.png")
        assert upload["content"] == PNG_BYTES
        assert result.avatar_url == f"https://storage.test/avatars/{upload['path']}"
        assert supabase.tables["users"][0]["avatar_url"] == result.avatar_url
        assert supabase.auth.admin.metadata_updates == [
            (result.account_id, {"user_metadata": {"avatar_url": result.avatar_url}})
        ]

    @pytest.mark.asyncio
    async def test_avatar_failure_does_not_fail_provisioning(
        self, provisioner: AccountProvisioner, supabase: FakeSupabase
    ) -> None:
        supabase.fail_on("storage", "upload")
        avatar = AvatarPayload(data=base64.b64encode(PNG_BYTES).decode(), name="me.png", type="image/png")

        result = await provisioner.ensure_account(_request(avatar=avatar))

        assert result.avatar_url is None
        assert supabase.tables["users"][0]["avatar_url"] is None
