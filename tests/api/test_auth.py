"""Tests for the admin session guard."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from starlette.requests import Request

from directory_service.api import auth
from directory_service.config import Settings
from directory_service.db import DatabaseClient
from directory_service.exceptions import ForbiddenError, UnauthorizedError

if TYPE_CHECKING:
    from httpx import AsyncClient

    from tests.fakes import FakeSupabase


def _request(headers: dict[str, str] | None = None) -> Request:
    raw = [(key.lower().encode(), value.encode()) for key, value in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/directory-entries", "headers": raw})


@pytest.fixture
def admin_session(supabase: FakeSupabase) -> str:
    account = supabase.seed("users", {"email": "admin@example.dz", "role": "admin", "is_active": True})
    supabase.auth.sessions["admin-token"] = account["id"]
    return "admin-token"


@pytest.fixture(autouse=True)
def bind_db(monkeypatch: pytest.MonkeyPatch, db: DatabaseClient) -> None:
    monkeypatch.setattr(auth, "get_db", lambda: db)
    monkeypatch.setattr(auth, "get_settings", lambda: Settings(require_admin_auth=True))


@pytest.mark.asyncio
async def test_bearer_token_admin_is_accepted(admin_session: str) -> None:
    account = await auth.require_admin(_request({"Authorization": f"Bearer {admin_session}"}))

    assert account["email"] == "admin@example.dz"


@pytest.mark.asyncio
async def test_session_cookie_is_accepted(admin_session: str) -> None:
    account = await auth.require_admin(_request({"Cookie": f"canstory_session={admin_session}"}))

    assert account["role"] == "admin"


@pytest.mark.asyncio
async def test_missing_token() -> None:
    with pytest.raises(UnauthorizedError):
        await auth.require_admin(_request())


@pytest.mark.asyncio
async def test_invalid_token() -> None:
    with pytest.raises(UnauthorizedError) as exc_info:
        await auth.require_admin(_request({"Authorization": "Bearer nope"}))

    assert exc_info.value.message == "Invalid or expired session"


@pytest.mark.asyncio
async def test_inactive_admin_is_forbidden(supabase: FakeSupabase) -> None:
    account = supabase.seed("users", {"email": "old@example.dz", "role": "admin", "is_active": False})
    supabase.auth.sessions["old-token"] = account["id"]

    with pytest.raises(ForbiddenError) as exc_info:
        await auth.require_admin(_request({"Authorization": "Bearer old-token"}))

    assert exc_info.value.message == "Account is inactive"


@pytest.mark.asyncio
async def test_non_admin_role_is_forbidden(supabase: FakeSupabase) -> None:
    account = supabase.seed("users", {"email": "doc@example.dz", "role": "doctor", "is_active": True})
    supabase.auth.sessions["doc-token"] = account["id"]

    with pytest.raises(ForbiddenError) as exc_info:
        await auth.require_admin(_request({"Authorization": "Bearer doc-token"}))

    assert exc_info.value.message == "Admin access required"


@pytest.mark.asyncio
async def test_guard_can_be_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(auth, "get_settings", lambda: Settings(require_admin_auth=False))

    assert await auth.require_admin(_request()) is None


@pytest.mark.asyncio
async def test_routes_reject_anonymous_requests(guarded_client: AsyncClient) -> None:
    response = await guarded_client.get("/directory-entries")

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_routes_accept_admin_cookie(guarded_client: AsyncClient, admin_session: str) -> None:
    guarded_client.cookies.set("canstory_session", admin_session)

    response = await guarded_client.get("/directory-entries")

    assert response.status_code == 200
    assert response.json() == {"data": [], "total": 0}
