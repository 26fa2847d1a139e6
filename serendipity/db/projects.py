"""Project ownership lookups."""

from typing import Any
from uuid import UUID

from serendipity.db.supabase_client import get_supabase


def get_owned_project(project_id: UUID | str, owner_id: UUID | str) -> dict[str, Any] | None:
    """
    Get a project only if `owner_id` owns it.

    A missing project and a project owned by someone else both return None.
    """
    supabase = get_supabase()

    response = (
        supabase.table("projects")
        .select("id, owner_id, name")
        .eq("id", str(project_id))
        .eq("owner_id", str(owner_id))
        .limit(1)
        .execute()
    )
    rows = response.data or []
    return rows[0] if rows else None
