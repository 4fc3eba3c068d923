"""
Supabase connection for the tenant-scoped AI tables
(garage_settings, ai_usage, garage_feature_flags, ai_events).
"""
from typing import Optional

from supabase import Client, create_client

from garage_ai.core.config import get_settings
from garage_ai.core.logging import get_logger

logger = get_logger(__name__)

_client: Optional[Client] = None


def get_supabase_client() -> Optional[Client]:
    """Create (once) and return the Supabase client, or None if unconfigured."""
    global _client
    if _client is not None:
        return _client

    settings = get_settings()
    supabase_url = settings.supabase_url
    supabase_key = settings.supabase_key

    if not supabase_url or not supabase_key:
        logger.warning(
            "supabase_credentials_missing",
            message="Check SUPABASE_URL and SUPABASE_SERVICE_KEY in .env",
        )
        return None

    if not supabase_url.startswith("http"):
        logger.error(
            "supabase_url_invalid",
            url=supabase_url,
            message="Should start with http:// or https://",
        )
        return None

    try:
        _client = create_client(supabase_url, supabase_key)
        logger.info("supabase_client_created", url_prefix=supabase_url[:30])
        return _client
    except Exception as e:
        logger.error(
            "supabase_client_creation_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return None
