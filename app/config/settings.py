from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""  # anon key; requests carry the caller's JWT so RLS applies
    supabase_service_role_key: Optional[str] = None  # Bypasses RLS. Only for schema checks and startup bucket verification

    # Storage
    avatar_bucket: str = "avatars"  # must match the bucket created in database/migrations/001_founders.sql
    avatar_max_bytes: int = 5 * 1024 * 1024

    # Read-your-own-write retry
    fetch_max_attempts: int = 3
    fetch_backoff_seconds: float = 0.5
    fetch_backoff_exponential: bool = False
    request_timeout_seconds: int = 10

    # App
    app_name: str = "hive-backend"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:8081,http://localhost:19006,http://127.0.0.1:8081,http://127.0.0.1:19006"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def has_service_role(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
