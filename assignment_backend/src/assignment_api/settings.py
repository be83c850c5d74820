from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/assignments.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - LOG_LEVEL: root log level (default: INFO)
    - NOTIFICATION_WINDOW_DAYS: lookahead for deadline notifications (default: 3)
    - CLEAR_NOTIFICATION_ON_COMPLETE: 'true' to drop a pending deadline notification
      when its assignment is completed (default: false)
    - GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET / GOOGLE_REDIRECT_URI: Google OAuth client
    - OAUTH_STATE_SECRET: key signing the OAuth state parameter (default: GOOGLE_CLIENT_SECRET)
    - GEMINI_API_KEY: enables AI enrichment of new assignments when set
    - GEMINI_MODEL: model used for enrichment (default: gemini-1.5-flash)
    - ENABLE_AI_ENRICHMENT: 'false' to disable enrichment even with an API key
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    log_level: str
    notification_window_days: int
    clear_notification_on_complete: bool
    google_client_id: Optional[str]
    google_client_secret: Optional[str]
    google_redirect_uri: str
    oauth_state_secret: Optional[str]
    gemini_api_key: Optional[str]
    gemini_model: str
    enable_ai_enrichment: bool


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_bool(value: str, default: bool = False) -> bool:
    v = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_int(value: str, default: int) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        backend = "memory"

    sqlite_path = _get_env("SQLITE_DB_PATH", "./data/assignments.db").strip()
    origins = _parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*"))

    window = _parse_int(_get_env("NOTIFICATION_WINDOW_DAYS", "3"), 3)
    if window < 0:
        window = 3

    google_secret = os.getenv("GOOGLE_CLIENT_SECRET") or None
    gemini_key = os.getenv("GEMINI_API_KEY") or None
    enrichment = _parse_bool(_get_env("ENABLE_AI_ENRICHMENT", "true"), True) and gemini_key is not None

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=sqlite_path,
        cors_allow_origins=origins,
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
        notification_window_days=window,
        clear_notification_on_complete=_parse_bool(_get_env("CLEAR_NOTIFICATION_ON_COMPLETE", "false")),
        google_client_id=os.getenv("GOOGLE_CLIENT_ID") or None,
        google_client_secret=google_secret,
        google_redirect_uri=_get_env(
            "GOOGLE_REDIRECT_URI", "http://localhost:8000/api/v1/calendar/callback"
        ).strip(),
        oauth_state_secret=os.getenv("OAUTH_STATE_SECRET") or google_secret,
        gemini_api_key=gemini_key,
        gemini_model=_get_env("GEMINI_MODEL", "gemini-1.5-flash").strip(),
        enable_ai_enrichment=enrichment,
    )
