"""
Entry Enrichment Pipeline.

Merges base ``annuaire_entries`` rows with their role-specific satellite
rows. Lookups are batched per role (one ``IN`` query per distinct role in
the batch) and issued concurrently.
"""

from __future__ import annotations

import asyncio
from typing import Any

from directory_service.db import DatabaseClient, get_db
from directory_service.logging_config import get_logger
from directory_service.schemas.directory_entry import DirectoryRole
from directory_service.services.role_metadata import build_from_row
from directory_service.services.role_registry import ROLE_SCHEMAS, SATELLITE_ENTRY_COLUMN, parse_role

logger = get_logger(__name__)


class EntryEnricher:
    def __init__(self, db: DatabaseClient | None = None) -> None:
        self._db = db or get_db()

    async def enrich(self, entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """
        Return one merged record per input entry, in input order.

        The merged ``metadata`` is the satellite metadata overlaid with any
        ad-hoc metadata stored on the base row (base row wins on collision).
        """
        if not entries:
            return []

        ids_by_role: dict[DirectoryRole, list[str]] = {}
        for entry in entries:
            role = parse_role(entry.get("annuaire_role"))
            if role is None:
                continue
            ids_by_role.setdefault(role, [])
            entry_id = str(entry["id"])
            if entry_id not in ids_by_role[role]:
                ids_by_role[role].append(entry_id)

        roles = list(ids_by_role)
        maps = await asyncio.gather(
            *(self._fetch_role_metadata(role, ids_by_role[role]) for role in roles)
        )
        metadata_by_role = dict(zip(roles, maps))

        enriched = []
        for entry in entries:
            role = parse_role(entry.get("annuaire_role"))
            role_metadata = metadata_by_role.get(role, {}).get(str(entry["id"]), {}) if role else {}
            own_metadata = entry.get("metadata") if isinstance(entry.get("metadata"), dict) else {}
            enriched.append({**entry, "metadata": {**role_metadata, **own_metadata}})
        return enriched

    async def _fetch_role_metadata(
        self,
        role: DirectoryRole,
        entry_ids: list[str],
    ) -> dict[str, dict[str, Any]]:
        """Entry id -> canonical metadata for one role. Empty on lookup failure."""
        schema = ROLE_SCHEMAS[role]
        try:
            rows = await self._db.select_in(schema.table, SATELLITE_ENTRY_COLUMN, entry_ids)
        except Exception as e:
            logger.warning(
                "role_metadata_lookup_failed",
                role=role.value,
                table=schema.table,
                error=str(e),
            )
            return {}

        return {str(row[SATELLITE_ENTRY_COLUMN]): build_from_row(role, row) for row in rows}
