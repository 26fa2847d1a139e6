"""Stored connection listing for rendering a project's connection graph."""

from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from serendipity.core.auth_middleware import AuthContext, require_auth
from serendipity.core.logging import get_logger
from serendipity.db import connections as connections_db
from serendipity.db.projects import get_owned_project

logger = get_logger(__name__)

router = APIRouter(prefix="/projects/{project_id}/connections")


@router.get("")
async def list_project_connections(
    project_id: UUID = Path(..., description="Project UUID"),
    status: Literal["pending", "confirmed", "dismissed"] | None = Query(
        None, description="Filter by status"
    ),
    limit: int = Query(100, ge=1, le=500, description="Maximum number of connections to return"),
    auth: AuthContext = Depends(require_auth),
) -> list[dict[str, Any]]:
    """
    List connections whose source entry belongs to the project, newest first.

    Args:
        project_id: Project UUID
        status: Optional status filter
        limit: Maximum results to return

    Returns:
        List of connection records
    """
    if not get_owned_project(project_id, auth.user_id):
        raise HTTPException(status_code=404, detail="Project not found")

    try:
        return connections_db.list_project_connections(project_id, status=status, limit=limit)
    except Exception as e:
        logger.error(f"Failed to list connections for project {project_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch connections") from e
