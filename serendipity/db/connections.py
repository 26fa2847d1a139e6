"""Connection (relationship) database operations.

The pipeline only ever appends rows here; updates and deletes belong to the UI.
"""

from typing import Any, Iterable
from uuid import UUID

from serendipity.core.errors import StoreWriteError
from serendipity.core.logging import get_logger
from serendipity.db.supabase_client import get_supabase

logger = get_logger(__name__)

PAIR_COLUMNS = "source_entry_id, target_entry_id"

# PostgREST caps responses at 1000 rows by default
PAGE_SIZE = 1000


def _pair_filter(pairs: Iterable[tuple[str, str]]) -> str:
    """OR-composed existence predicate covering both orderings of every pair."""
    clauses = []
    for source, target in pairs:
        clauses.append(f"and(source_entry_id.eq.{source},target_entry_id.eq.{target})")
        clauses.append(f"and(source_entry_id.eq.{target},target_entry_id.eq.{source})")
    return ",".join(clauses)


def list_connections_between(pairs: list[tuple[str, str]]) -> list[dict[str, Any]]:
    """
    List stored connections for specific entry pairs, in either direction.

    Args:
        pairs: (source_id, target_id) tuples

    Returns:
        Connection dicts with source_entry_id and target_entry_id
    """
    if not pairs:
        return []

    supabase = get_supabase()

    response = supabase.table("connections").select(PAIR_COLUMNS).or_(_pair_filter(pairs)).execute()
    return response.data or []


def list_connections_touching(entry_ids: list[str]) -> list[dict[str, Any]]:
    """
    List every stored connection whose source or target is one of `entry_ids`.

    Pages through the table so large projects are not truncated.

    Args:
        entry_ids: Entry ids (typically every fetched entry of a project)

    Returns:
        Connection dicts with source_entry_id and target_entry_id
    """
    if not entry_ids:
        return []

    supabase = get_supabase()
    id_list = ",".join(entry_ids)
    predicate = f"source_entry_id.in.({id_list}),target_entry_id.in.({id_list})"

    rows: list[dict[str, Any]] = []
    start = 0
    while True:
        response = (
            supabase.table("connections")
            .select(PAIR_COLUMNS)
            .or_(predicate)
            .order("id")  # offset paging needs a stable order
            .range(start, start + PAGE_SIZE - 1)
            .execute()
        )
        page = response.data or []
        rows.extend(page)
        if len(page) < PAGE_SIZE:
            break
        start += PAGE_SIZE

    return rows


def insert_connections(rows: list[dict[str, Any]]) -> int:
    """
    Insert new connections in a single batch.

    Args:
        rows: Connection dicts (source_entry_id, target_entry_id,
            connection_type, reasoning, confidence, status)

    Returns:
        Number of connections inserted

    Raises:
        StoreWriteError: If the insert fails
    """
    if not rows:
        return 0

    supabase = get_supabase()

    try:
        response = supabase.table("connections").insert(rows).execute()
    except Exception as e:
        logger.error(f"Failed to insert {len(rows)} connections: {e}")
        raise StoreWriteError(f"Failed to insert connections: {e}") from e

    inserted_count = len(response.data) if response.data else 0
    logger.info(f"Inserted {inserted_count} connections")
    return inserted_count


def list_project_connections(
    project_id: UUID | str,
    status: str | None = None,
    limit: int = 100,
) -> list[dict[str, Any]]:
    """
    List stored connections whose source entry belongs to a project.

    Args:
        project_id: Project UUID
        status: Optional status filter (pending, confirmed, dismissed)
        limit: Maximum number of connections to return

    Returns:
        Connection dicts ordered by created_at desc
    """
    supabase = get_supabase()

    query = (
        supabase.table("connections")
        .select("*, source:entries!source_entry_id!inner(project_id)")
        .eq("source.project_id", str(project_id))
    )
    if status:
        query = query.eq("status", status)

    response = query.order("created_at", desc=True).limit(limit).execute()

    rows = response.data or []
    for row in rows:
        row.pop("source", None)
    return rows
