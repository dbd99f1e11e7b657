# shopcore/core/supabase_client.py
from functools import lru_cache

from supabase import create_client, Client

from shopcore.core.config import get_settings


@lru_cache
def supabase_admin() -> Client:
    """
    Create a Supabase client with the service role key.

    Used by the image store to upload into and remove from the
    product assets bucket, which requires bypassing RLS.

    WARNING:
      - Never expose service role key outside the backend.

    Raises:
        RuntimeError: if SUPABASE_SERVICE_ROLE_KEY is not set.
    """
    settings = get_settings()
    if not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise RuntimeError("Missing SUPABASE_SERVICE_ROLE_KEY in .env")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
