# ABOUTME: Application configuration and settings
# ABOUTME: Loads settings from environment variables using pydantic-settings

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    model_config = SettingsConfigDict(env_file=".env")

    environment: str = "development"
    database_url: str = "sqlite:///./data/apiplatform.db"
    redis_url: str | None = None

    key_prefix: str = "209w_"

    # Decision taken when the counter store cannot be reached
    rate_limit_fail_open: bool = True
    counter_store_timeout_seconds: float = 0.25

    analytics_cache_ttl_seconds: int = 300
    analytics_top_n: int = 10

    default_region: str = "unknown"

    # "METHOD:/path-glob" -> scope, appended after the built-in rules
    extra_scope_rules: dict[str, str] = {}

    log_level: str = "INFO"
    log_json: bool = True


@lru_cache
def get_settings() -> Settings:
    """Returns cached settings instance."""
    return Settings()
