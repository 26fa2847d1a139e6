"""Serendipity Engine endpoints: auto-connect, bulk connect, suggestion stream."""

import json
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from serendipity.core.auth_middleware import AuthContext
from serendipity.core.errors import GenerationConfigError, NotFoundError, StoreWriteError
from serendipity.core.logging import get_logger
from serendipity.core.rate_limiter import RateLimitGuard
from serendipity.core.schemas_connections import (
    AutoConnectRequest,
    BulkConnectRequest,
    ConnectionsFoundResponse,
    SuggestConnectionsRequest,
)
from serendipity.services.connection_pipeline import ConnectionPipeline

logger = get_logger(__name__)

router = APIRouter(prefix="/ai")


def get_connection_pipeline() -> ConnectionPipeline:
    """Pipeline wired to Supabase and the configured provider."""
    return ConnectionPipeline()


@router.post("/auto-connect", response_model=ConnectionsFoundResponse)
async def auto_connect(
    request: AutoConnectRequest,
    auth: AuthContext = Depends(RateLimitGuard("auto-connect")),
    pipeline: ConnectionPipeline = Depends(get_connection_pipeline),
) -> ConnectionsFoundResponse:
    """
    Connect a newly created entry to recent entries in its project.

    Returns the number of new connections stored (may be zero).
    """
    try:
        result = await pipeline.auto_connect(str(request.entry_id), auth.user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StoreWriteError as e:
        raise HTTPException(status_code=500, detail="Failed to save connections") from e
    except GenerationConfigError as e:
        logger.error(f"Auto-connect unavailable: {e}")
        raise HTTPException(status_code=500, detail="Connection discovery is not configured") from e

    return ConnectionsFoundResponse(connections_found=result.connections_found)


@router.post("/deep-connections", response_model=ConnectionsFoundResponse)
async def deep_connections(
    request: BulkConnectRequest,
    auth: AuthContext = Depends(RateLimitGuard("deep-connections")),
    pipeline: ConnectionPipeline = Depends(get_connection_pipeline),
) -> ConnectionsFoundResponse:
    """
    Re-scan every entry of a project for connections between any pair.

    The caller must own the project.
    """
    try:
        result = await pipeline.bulk_connect(str(request.project_id), auth.user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StoreWriteError as e:
        raise HTTPException(status_code=500, detail="Failed to save connections") from e
    except GenerationConfigError as e:
        logger.error(f"Bulk connect unavailable: {e}")
        raise HTTPException(status_code=500, detail="Connection discovery is not configured") from e

    return ConnectionsFoundResponse(connections_found=result.connections_found)


@router.post("/connections")
async def suggest_connections(
    request: SuggestConnectionsRequest,
    auth: AuthContext = Depends(RateLimitGuard("connections")),
    pipeline: ConnectionPipeline = Depends(get_connection_pipeline),
) -> StreamingResponse:
    """
    Stream connection suggestions for one entry as Server-Sent Events.

    Suggestions are previews; nothing is written to the store.
    """
    try:
        context = await pipeline.prepare_suggestions(str(request.entry_id), auth.user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    async def generate() -> AsyncGenerator[str, None]:
        async for event in pipeline.stream_suggestions(context):
            yield f"data: {json.dumps(event)}\n\n"
        yield "data: [DONE]\n\n"

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
