"""Notebook entry reads."""

from typing import Any
from uuid import UUID

from serendipity.core.logging import get_logger
from serendipity.db.supabase_client import get_supabase

logger = get_logger(__name__)

ENTRY_COLUMNS = "id, content, entry_type, tags, project_id, created_at"


def get_entry(entry_id: UUID | str) -> dict[str, Any] | None:
    """
    Get a single entry by id.

    Args:
        entry_id: Entry UUID

    Returns:
        Entry dict or None if not found
    """
    supabase = get_supabase()

    response = (
        supabase.table("entries")
        .select(ENTRY_COLUMNS)
        .eq("id", str(entry_id))
        .limit(1)
        .execute()
    )
    rows = response.data or []
    return rows[0] if rows else None


def list_project_entries(
    project_id: UUID | str,
    limit: int,
    exclude_entry_id: UUID | str | None = None,
) -> list[dict[str, Any]]:
    """
    List the most recent entries of a project.

    Args:
        project_id: Project UUID
        limit: Maximum number of entries to return
        exclude_entry_id: Optional entry to leave out (the focal entry)

    Returns:
        Entry dicts ordered by created_at desc
    """
    supabase = get_supabase()

    query = supabase.table("entries").select(ENTRY_COLUMNS).eq("project_id", str(project_id))
    if exclude_entry_id is not None:
        query = query.neq("id", str(exclude_entry_id))

    response = query.order("created_at", desc=True).limit(limit).execute()
    return response.data or []
