"""Shared Supabase client.

The client authenticates with the service role key, which bypasses row level
security. Every read on behalf of a user must filter by ownership itself
(see db/projects.get_owned_project).
"""

from functools import lru_cache

from supabase import Client, create_client

from serendipity.core.config import get_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Get the process-wide Supabase client.

    Raises:
        RuntimeError: If the client cannot be created from settings
    """
    settings = get_settings()
    try:
        return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        raise RuntimeError(f"Supabase client unavailable for {settings.SUPABASE_URL}: {e}") from e
