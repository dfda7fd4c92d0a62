"""
Supabase Database Client.

Provides a process-wide instance of the Supabase client and thin async
helpers for the table operations the directory service performs. The
official client is synchronous, so every ``execute()`` is pushed to a
worker thread; independent queries can then be awaited concurrently with
``asyncio.gather``.

Helpers raise whatever the client raises. Callers decide whether a
failure is fatal (and wrap it in a domain error) or best-effort.
"""

from __future__ import annotations

import asyncio
from functools import lru_cache
from typing import Any, Iterable

from supabase import Client, create_client

from directory_service.config import get_settings
from directory_service.logging_config import get_logger

logger = get_logger(__name__)

# Tables shared with the rest of the platform
ENTRIES_TABLE = "annuaire_entries"
ACCOUNTS_TABLE = "users"
PROFILES_TABLE = "user_profiles"

# PostgreSQL error codes surfaced by PostgREST
UNIQUE_VIOLATION = "23505"
INVALID_TEXT_REPRESENTATION = "22P02"


class DatabaseClient:
    """Wrapper around the official Supabase Python client."""

    def __init__(self, client: Client) -> None:
        self._client = client

    @classmethod
    def from_settings(cls) -> DatabaseClient:
        settings = get_settings()

        if not settings.supabase_url or not settings.supabase_service_key:
            logger.warning(
                "Supabase credentials missing. Database operations will fail.",
                url=bool(settings.supabase_url),
                key=bool(settings.supabase_service_key),
            )

        try:
            client = create_client(settings.supabase_url, settings.supabase_service_key)
        except Exception as e:
            logger.error("Failed to initialize Supabase client", error=str(e))
            raise

        logger.info("Supabase client initialized", url=settings.supabase_url)
        return cls(client)

    @property
    def client(self) -> Client:
        """Access the raw Supabase client (auth, storage, tables)."""
        return self._client

    async def run(self, query: Any) -> Any:
        """Execute a prepared query builder off the event loop."""
        return await asyncio.to_thread(query.execute)

    async def call(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Run a blocking auth/storage call off the event loop."""
        return await asyncio.to_thread(func, *args, **kwargs)

    # -- Table helpers --

    async def select_first(
        self,
        table: str,
        filters: dict[str, Any],
        columns: str = "*",
    ) -> dict[str, Any] | None:
        """Return the first row matching every ``column = value`` filter."""
        query = self.client.table(table).select(columns)
        for column, value in filters.items():
            query = query.eq(column, value)
        response = await self.run(query.limit(1))
        rows = response.data or []
        return rows[0] if rows else None

    async def select_in(
        self,
        table: str,
        column: str,
        values: Iterable[Any],
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        """Batched lookup: all rows whose ``column`` is one of ``values``."""
        response = await self.run(
            self.client.table(table).select(columns).in_(column, list(values))
        )
        return response.data or []

    async def insert(self, table: str, payload: dict[str, Any]) -> dict[str, Any] | None:
        response = await self.run(self.client.table(table).insert(payload))
        return response.data[0] if response.data else None

    async def update(
        self,
        table: str,
        updates: dict[str, Any],
        column: str,
        value: Any,
    ) -> list[dict[str, Any]]:
        response = await self.run(self.client.table(table).update(updates).eq(column, value))
        return response.data or []

    async def upsert(
        self,
        table: str,
        payload: dict[str, Any],
        on_conflict: str,
    ) -> dict[str, Any] | None:
        response = await self.run(
            self.client.table(table).upsert(payload, on_conflict=on_conflict)
        )
        return response.data[0] if response.data else None

    async def delete(self, table: str, column: str, value: Any) -> list[dict[str, Any]]:
        response = await self.run(self.client.table(table).delete().eq(column, value))
        return response.data or []


def is_unique_violation(error: BaseException) -> bool:
    """True when a PostgREST error reports a unique-constraint violation."""
    return str(getattr(error, "code", "") or "") == UNIQUE_VIOLATION


def is_invalid_identifier(error: BaseException) -> bool:
    """True when a filter value could not be cast to the column type (e.g. a malformed uuid)."""
    return str(getattr(error, "code", "") or "") == INVALID_TEXT_REPRESENTATION


# Global accessor
@lru_cache(maxsize=1)
def get_db() -> DatabaseClient:
    return DatabaseClient.from_settings()
