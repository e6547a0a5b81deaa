"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Cache / durable store
    redis_url: str | None = None

    # Generative text backends
    openai_api_key: SecretStr | None = None
    openai_model: str = "gpt-4o"
    openai_fallback_model: str = "gpt-4o-mini"
    generation_temperature: float = 0.7
    generation_max_retries: int = 3

    # Speech synthesis
    google_tts_api_key: str = ""
    tts_timeout_seconds: float = 30.0
    tts_max_bytes: int = 4998
    tts_truncation_marker: str = "..."

    # Blob storage for synthesized audio
    blob_root: str = "./var/audio"
    blob_public_base_url: str = "http://localhost:8000/audio"

    # Reverse geocoding
    locationiq_api_key: str = ""
    google_maps_api_key: str = ""
    geocode_timeout_seconds: float = 4.0

    # Cancellation polling (milliseconds)
    cancellation_poll_interval_ms: int = 500

    # Tour suggestion cache
    supported_durations: list[int] = [30, 60, 90, 120, 180]
    suggestion_radius_meters: float = 50.0
    suggestion_lookup_limit: int = 10

    # Cache TTLs (seconds)
    suggestion_ttl_seconds: int = 7 * 24 * 3600
    place_ttl_seconds: int = 7 * 24 * 3600
    summary_ttl_seconds: int = 30 * 24 * 3600
    checkpoint_ttl_seconds: int = 2 * 3600
    document_ttl_seconds: int = 30 * 24 * 3600

    # RediSearch index creation settle delay
    index_settle_seconds: float = 0.1


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
