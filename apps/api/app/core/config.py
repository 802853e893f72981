"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    auth_provider: Literal["mock", "firebase"] = "firebase"
    firebase_project_id: str | None = None
    firebase_audience: str | None = None
    log_level: str = "INFO"

    synth_provider: Literal["mock", "veo"] = "mock"
    lipsync_provider: Literal["mock", "syncso"] = "mock"
    stitch_provider: Literal["none", "mock", "http"] = "none"

    vertex_project_id: str | None = None
    vertex_location: str = "us-central1"
    vertex_model_id: str = "veo-3.1-generate-001"
    vertex_service_account_json: str | None = None
    syncso_api_key: str | None = None
    syncso_base_url: str = "https://api.sync.so/v2"
    syncso_model: str = "lipsync-1.9.0-beta"
    stitch_base_url: str | None = None
    stitch_api_key: str | None = None
    provider_timeout_seconds: float = 45.0

    scheduler_enabled: bool = True
    poll_interval_seconds: float = 5.0
    poll_workers: int = 4
    staleness_seconds: float = 900.0
    max_inflight_segments: int = 3
    max_transient_attempts: int = 3
    max_segment_retries: int = 1
    max_aggregation_attempts: int = 2
    default_segment_seconds: float = 8.0

    monthly_generation_limit: int = 10
    storage_base_url: str = "https://storage.local/artifacts"
    storage_signing_secret: str = "dev-signing-secret"
    storage_url_ttl_seconds: int = 3600

    model_config = SettingsConfigDict(env_prefix="CADENCE_", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
