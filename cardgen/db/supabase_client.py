"""Shared Supabase client for card, prompt config and history tables.

The client is synchronous; async callers go through ``asyncio.to_thread``.
"""

from functools import lru_cache

from supabase import Client, create_client

from cardgen.core.config import get_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Build the process-wide service-role client on first use.

    Raises:
        RuntimeError: If settings are missing or the client cannot be created
    """
    settings = get_settings()
    try:
        return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client for {settings.SUPABASE_URL}: {e}") from e
