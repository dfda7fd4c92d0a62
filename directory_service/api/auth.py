"""
Admin session guard.

Directory routes are reserved to active platform admins. The access
token comes from the session cookie set by the admin UI or from an
``Authorization: Bearer`` header, and is validated against Supabase Auth.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import Request

from directory_service.config import get_settings
from directory_service.db import ACCOUNTS_TABLE, get_db
from directory_service.exceptions import ForbiddenError, UnauthorizedError
from directory_service.logging_config import get_logger

logger = get_logger(__name__)


def extract_token(request: Request, cookie_name: str) -> Optional[str]:
    token = request.cookies.get(cookie_name)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


async def require_admin(request: Request) -> Optional[dict[str, Any]]:
    """
    FastAPI dependency returning the authenticated admin's account row.

    Returns None when admin auth is disabled in settings.
    """
    settings = get_settings()
    if not settings.require_admin_auth:
        return None

    token = extract_token(request, settings.session_cookie_name)
    if not token:
        raise UnauthorizedError("Unauthorized")

    db = get_db()
    try:
        result = await db.call(db.client.auth.get_user, token)
    except Exception as e:
        logger.warning("session_validation_failed", error=str(e))
        raise UnauthorizedError("Invalid or expired session") from e

    user = getattr(result, "user", None) if result else None
    if user is None:
        raise UnauthorizedError("Invalid or expired session")

    try:
        account = await db.select_first(
            ACCOUNTS_TABLE,
            {"id": str(user.id)},
            columns="id,email,full_name,role,is_active",
        )
    except Exception as e:
        logger.error("admin_account_lookup_failed", user_id=str(user.id), error=str(e))
        raise UnauthorizedError("User profile not found") from e

    if not account:
        raise UnauthorizedError("User profile not found")
    if not account.get("is_active"):
        raise ForbiddenError("Account is inactive")

    admin_roles = {role.lower() for role in settings.admin_roles}
    if (account.get("role") or "").lower() not in admin_roles:
        logger.warning("admin_access_denied", user_id=account["id"], role=account.get("role"))
        raise ForbiddenError("Admin access required")

    return account
