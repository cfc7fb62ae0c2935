"""
Supabase client — one per process, created on first use.

The service key is preferred so server-side writes (webhooks, fee payments)
are not subject to row level security.
"""

import logging

from supabase import create_client, Client
from app.core.config import settings

logger = logging.getLogger(__name__)

_supabase_client: Client | None = None


def get_supabase() -> Client:
    global _supabase_client
    if _supabase_client is None:
        key = settings.SUPABASE_SERVICE_KEY or settings.SUPABASE_KEY
        if not settings.SUPABASE_SERVICE_KEY:
            logger.warning("SUPABASE_SERVICE_KEY not set; falling back to the anon key")
        _supabase_client = create_client(settings.SUPABASE_URL, key)
    return _supabase_client
