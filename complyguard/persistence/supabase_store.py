"""Evidence persistence backed by the Supabase ``compliance_logs`` table."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from postgrest.exceptions import APIError
from supabase._async.client import AsyncClient

from complyguard.errors import PersistenceUnavailable
from complyguard.models import EvidenceEntry

logger = logging.getLogger(__name__)

# Postgres "undefined_table" and the PostgREST schema-cache miss.
MISSING_TABLE_CODES = frozenset({"42P01", "PGRST205"})


def is_missing_table(error: APIError) -> bool:
    return getattr(error, "code", None) in MISSING_TABLE_CODES


@dataclass
class SupabaseEvidenceStore:
    """Supabase-backed store for evidence entries."""

    client: AsyncClient
    table: str = "compliance_logs"

    async def insert(self, entry: EvidenceEntry, owner_id: str) -> None:
        """Persist one entry for an owner."""
        await self._execute(self.client.table(self.table).insert(entry.to_row(owner_id)))

    async def count(self, owner_id: str) -> int:
        """Count the owner's persisted entries."""
        response = await self._execute(
            self.client.table(self.table)
            .select("id", count="exact", head=True)
            .eq("user_id", owner_id)
        )
        return response.count or 0

    async def fetch_page(self, owner_id: str, offset: int, limit: int) -> list[EvidenceEntry]:
        """Read one page of entries, newest first."""
        response = await self._execute(
            self.client.table(self.table)
            .select("*")
            .eq("user_id", owner_id)
            .order("created_at", desc=True)
            .range(offset, offset + limit - 1)
        )
        entries = []
        for row in response.data or []:
            try:
                entries.append(EvidenceEntry.from_row(row))
            except (KeyError, ValueError) as e:
                logger.warning("Skipping unreadable evidence row id=%s: %s", row.get("id"), e)
        return entries

    async def _execute(self, query: Any) -> Any:
        try:
            return await query.execute()
        except APIError as e:
            if is_missing_table(e):
                raise PersistenceUnavailable(f"Table '{self.table}' does not exist") from e
            raise
