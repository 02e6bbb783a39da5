"""Application configuration using pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # FPL API
    fpl_api_base_url: str = "https://fantasy.premierleague.com/api"
    upstream_timeout_seconds: float = 5.0
    upstream_max_attempts: int = 3
    upstream_backoff_seconds: float = 1.0  # Linear: backoff * attempt

    # CORS - comma-separated list of allowed origins
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Logging
    log_level: str = "INFO"

    # Remote key/value cache (Upstash-style REST endpoint)
    kv_rest_url: str | None = None
    kv_rest_token: str | None = None
    kv_timeout_seconds: float = 2.0

    # Bump to invalidate every previously cached entry
    cache_version: str = "v1"
    memory_cache_size: int = 512

    # Cache TTL in seconds (entries are retained for 2x TTL for stale reads)
    cache_ttl_bootstrap: int = 45 * 60
    cache_ttl_bootstrap_matchday: int = 30 * 60
    cache_ttl_fixtures: int = 45 * 60
    cache_ttl_fixtures_matchday: int = 3 * 60
    cache_ttl_element_summary: int = 30 * 60
    cache_ttl_teams: int = 20 * 60
    cache_ttl_players: int = 30 * 60
    cache_ttl_compare: int = 20 * 60
    cache_ttl_keep_alive: int = 24 * 60 * 60

    # Scoring / fixture resolution
    momentum_window: int = 5
    fixture_fallback_steps: int = 3
    min_event: int = 1
    max_event: int = 38

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def kv_configured(self) -> bool:
        """True when both the remote cache URL and token are set."""
        return bool(self.kv_rest_url and self.kv_rest_token)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
