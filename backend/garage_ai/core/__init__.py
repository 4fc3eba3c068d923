"""
Core application modules.
Contains configuration, logging, errors, metrics, tracing and storage access.
"""
from .config import get_settings
from .database import get_supabase_client

__all__ = ["get_settings", "get_supabase_client"]
