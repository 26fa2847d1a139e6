"""API router for v1 endpoints."""

from fastapi import APIRouter

from serendipity.api import ai_connections, connections

router = APIRouter()

# Serendipity Engine: auto-connect, bulk connect, suggestion stream
router.include_router(ai_connections.router, tags=["serendipity"])

# Stored connections for rendering
router.include_router(connections.router, tags=["connections"])
