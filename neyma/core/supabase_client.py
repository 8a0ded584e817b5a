# neyma/core/supabase_client.py
from functools import lru_cache
from supabase import create_client, Client

from neyma.core.config import get_settings


@lru_cache
def supabase_public() -> Client:
    """
    Create a Supabase client with the anon/public key.

    Use cases:
      - invoking the notify-admin edge function after checkout

    Note: This client still respects RLS.
    """
    settings = get_settings()
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
