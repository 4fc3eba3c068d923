"""
Runtime configuration for the AI decision core.

Values come from the process environment, optionally seeded from a ``.env``
file at the repository root.

Environment configuration:
- MISTRAL_API_KEY / GEMINI_API_KEY / OPENAI_API_KEY: provider credentials
  (a missing or malformed key only disables that provider)
- AI_TIMEOUT_MS: per-attempt provider timeout (default: 30000)
- AI_MAX_RETRIES: extra attempts per provider model (default: 1)
- AI_RATE_LIMIT_PER_MINUTE: requests per garage per 60 s window (default: 10)
- AI_RATE_LIMIT_BACKEND: "memory" (default) or "redis"
- REDIS_URL: only read when the redis backend is selected
- AI_DEFAULT_LABOR_RATE: hourly rate used by the audit when none is given (default: 60)
- SUPABASE_URL / SUPABASE_SERVICE_KEY: persistence for quotas, flags and events
- AI_STORE_BACKEND: "supabase" (default) or "memory"
- ADMIN_API_KEY: shared secret for the admin console routes
- LOG_LEVEL / LOG_JSON: logging configuration
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

env_path = Path(__file__).parent.parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


class Settings(BaseModel):
    """Typed view over the environment."""

    mistral_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None

    mistral_api_base: str = "https://api.mistral.ai/v1"
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    openai_api_base: str = "https://api.openai.com/v1"

    ai_timeout_ms: int = Field(30_000, gt=0)
    ai_max_retries: int = Field(1, ge=0)
    ai_temperature: float = 0.3

    rate_limit_per_minute: int = Field(10, gt=0)
    rate_limit_window_seconds: int = Field(60, gt=0)
    rate_limit_backend: str = "memory"
    redis_url: str = "redis://redis:6379"

    default_labor_rate: float = Field(60.0, gt=0)

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    store_backend: str = "supabase"

    admin_api_key: Optional[str] = None

    log_level: str = "INFO"
    log_json: bool = True


def load_settings() -> Settings:
    """Build a Settings instance from the current environment."""
    return Settings(
        mistral_api_key=_env_str("MISTRAL_API_KEY"),
        gemini_api_key=_env_str("GEMINI_API_KEY"),
        openai_api_key=_env_str("OPENAI_API_KEY"),
        mistral_api_base=os.getenv("MISTRAL_API_BASE", "https://api.mistral.ai/v1"),
        gemini_api_base=os.getenv(
            "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
        ),
        openai_api_base=os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1"),
        ai_timeout_ms=_env_int("AI_TIMEOUT_MS", 30_000),
        ai_max_retries=_env_int("AI_MAX_RETRIES", 1),
        ai_temperature=_env_float("AI_TEMPERATURE", 0.3),
        rate_limit_per_minute=_env_int("AI_RATE_LIMIT_PER_MINUTE", 10),
        rate_limit_backend=os.getenv("AI_RATE_LIMIT_BACKEND", "memory").lower(),
        redis_url=os.getenv("REDIS_URL", "redis://redis:6379"),
        default_labor_rate=_env_float("AI_DEFAULT_LABOR_RATE", 60.0),
        supabase_url=_env_str("SUPABASE_URL"),
        supabase_key=_env_str("SUPABASE_SERVICE_KEY") or _env_str("SUPABASE_KEY"),
        store_backend=os.getenv("AI_STORE_BACKEND", "supabase").lower(),
        admin_api_key=_env_str("ADMIN_API_KEY"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=os.getenv("LOG_JSON", "true").lower() == "true",
    )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings accessor."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _settings
    _settings = None
