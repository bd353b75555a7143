import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _get_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


@dataclass(frozen=True)
class Settings:
    """
    Process-wide configuration. Built once at startup and handed to every component that needs it.
    """
    mistral_api_key: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    supabase_jwt_secret: Optional[str] = None
    secret_key: str = "dev-secret-key-change-in-production"
    mistral_model: str = "mistral-large-latest"
    requests_per_day: int = 5
    request_cooldown_seconds: int = 300
    min_query_length: int = 20
    field_delay_seconds: float = 1.0
    field_delay_jitter_seconds: float = 0.0
    rate_limit_retries: int = 3
    rate_limit_backoff_seconds: float = 2.0
    search_session_ttl_seconds: int = 1800
    port: int = 5001
    debug: bool = False


def load_settings() -> Settings:
    """
    Read the environment (and a .env file if there is one) into a Settings object.

    Returns:
        Settings: The configuration for this process.
    """
    load_dotenv()
    return Settings(
        mistral_api_key=os.getenv("MISTRAL_API_KEY"),
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_anon_key=os.getenv("SUPABASE_ANON_KEY"),
        supabase_service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
        supabase_jwt_secret=os.getenv("SUPABASE_JWT_SECRET"),
        secret_key=os.getenv("SECRET_KEY", "dev-secret-key-change-in-production"),
        mistral_model=os.getenv("MISTRAL_MODEL", "mistral-large-latest"),
        requests_per_day=_get_int("REQUESTS_PER_DAY", 5),
        request_cooldown_seconds=_get_int("REQUEST_COOLDOWN_SECONDS", 300),
        min_query_length=_get_int("MIN_QUERY_LENGTH", 20),
        field_delay_seconds=_get_float("FIELD_DELAY_SECONDS", 1.0),
        field_delay_jitter_seconds=_get_float("FIELD_DELAY_JITTER_SECONDS", 0.0),
        rate_limit_retries=_get_int("RATE_LIMIT_RETRIES", 3),
        rate_limit_backoff_seconds=_get_float("RATE_LIMIT_BACKOFF_SECONDS", 2.0),
        search_session_ttl_seconds=_get_int("SEARCH_SESSION_TTL_SECONDS", 1800),
        port=int(os.environ.get("PORT", 5001)),
        debug=_get_bool("DEBUG"),
    )
