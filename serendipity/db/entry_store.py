"""Entry store seam consumed by the connection pipeline.

`SupabaseEntryStore` runs the synchronous Supabase calls in worker threads so
the request's event loop is never blocked on I/O.
"""

import asyncio
from typing import Any, Protocol

from serendipity.core.schemas_connections import Entry
from serendipity.db import connections as connections_db
from serendipity.db import entries as entries_db
from serendipity.db import projects as projects_db


class EntryStore(Protocol):
    """Reads entries and connections, appends connections."""

    async def get_entry(self, entry_id: str) -> Entry | None: ...

    async def get_owned_project(self, project_id: str, owner_id: str) -> dict[str, Any] | None: ...

    async def list_project_entries(
        self, project_id: str, limit: int, exclude_entry_id: str | None = None
    ) -> list[Entry]: ...

    async def list_connections_between(self, pairs: list[tuple[str, str]]) -> list[dict[str, Any]]: ...

    async def list_connections_touching(self, entry_ids: list[str]) -> list[dict[str, Any]]: ...

    async def insert_connections(self, rows: list[dict[str, Any]]) -> int: ...


class SupabaseEntryStore:
    """EntryStore backed by the Supabase tables."""

    async def get_entry(self, entry_id: str) -> Entry | None:
        row = await asyncio.to_thread(entries_db.get_entry, entry_id)
        return Entry.model_validate(row) if row else None

    async def get_owned_project(self, project_id: str, owner_id: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(projects_db.get_owned_project, project_id, owner_id)

    async def list_project_entries(
        self, project_id: str, limit: int, exclude_entry_id: str | None = None
    ) -> list[Entry]:
        rows = await asyncio.to_thread(
            entries_db.list_project_entries, project_id, limit, exclude_entry_id
        )
        return [Entry.model_validate(row) for row in rows]

    async def list_connections_between(self, pairs: list[tuple[str, str]]) -> list[dict[str, Any]]:
        return await asyncio.to_thread(connections_db.list_connections_between, pairs)

    async def list_connections_touching(self, entry_ids: list[str]) -> list[dict[str, Any]]:
        return await asyncio.to_thread(connections_db.list_connections_touching, entry_ids)

    async def insert_connections(self, rows: list[dict[str, Any]]) -> int:
        return await asyncio.to_thread(connections_db.insert_connections, rows)
