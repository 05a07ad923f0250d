"""
GrantMatch Configuration
Central configuration management using Pydantic Settings
"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ===== Application =====
    app_name: str = "GrantMatch"
    app_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    # ===== Database =====
    database_url: str = "sqlite+aiosqlite:///./grantmatch.db"

    # ===== AI API Keys =====
    anthropic_api_key: Optional[str] = None
    # Additional keys used round-robin for parallel batch scoring (comma-separated)
    anthropic_extra_api_keys: str = ""

    # ===== LLM Config =====
    llm_model: str = "claude-sonnet-4-20250514"
    scoring_model: str = "claude-3-5-haiku-20241022"
    llm_max_tokens: int = 4096
    llm_temperature: float = 0.1

    # ===== Matching =====
    match_batch_size: int = 8
    match_min_score: float = 30
    match_good_score: float = 50
    match_prune_floor: float = 20
    match_neutral_score: float = 50
    match_preference_boost: float = 5
    match_cache_ttl_seconds: float = 300  # 5 minutes
    apply_interpreted_filters: bool = True

    # ===== Retry =====
    llm_retry_attempts: int = 3
    llm_retry_base_delay: float = 1.0  # 1s, 2s, 4s...
    llm_retry_max_delay: float = 8.0
    llm_call_timeout: float = 30.0

    @property
    def scoring_api_keys(self) -> list[str]:
        """All configured completion-service credentials, primary key first."""
        keys = [self.anthropic_api_key] if self.anthropic_api_key else []
        keys.extend(k.strip() for k in self.anthropic_extra_api_keys.split(",") if k.strip())
        # Preserve order, drop duplicates
        return list(dict.fromkeys(keys))

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
