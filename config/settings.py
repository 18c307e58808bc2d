"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. App-specific
settings use the ``NAGARSEVA_`` prefix; GCP / infrastructure settings use
their canonical environment variable names via ``validation_alias``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the NagarSeva triage engine.

    Environment variables are loaded from a ``.env`` file when present.
    App-specific keys are prefixed with ``NAGARSEVA_``; GCP / infra keys
    use their standard names (configured via ``validation_alias``).
    """

    model_config = SettingsConfigDict(
        env_prefix="NAGARSEVA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"
    ticket_prefix: str = "TNSMP"
    portal_url: str = "https://frontend-blaze2-0.onrender.com"
    cors_origins: str = ""

    # ── GCP ────────────────────────────────────────────────────────────
    gcp_project_id: str = Field(default="", validation_alias="GCP_PROJECT_ID")

    # ── Classifier gateway (Vertex AI / Gemini + Cloud Vision) ────────
    vertex_ai_location: str = Field(default="asia-south1", validation_alias="VERTEX_AI_LOCATION")
    classifier_models: list[str] = Field(
        default_factory=lambda: ["gemini-2.0-flash", "gemini-1.5-flash"],
    )
    classifier_cooldown_seconds: float = 300.0  # 5 minutes after an auth failure
    classifier_retry_delay_seconds: float = 2.0
    classifier_max_retries: int = Field(default=1, ge=0)
    classifier_timeout_seconds: float = 20.0
    vision_enabled: bool = True

    # ── Triage policy ──────────────────────────────────────────────────
    duplicate_similarity_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    fake_known_word_ratio: float = Field(default=0.3, ge=0.0, le=1.0)
    remote_duplicate_context_limit: int = 15
    duplicate_candidate_limit: int = 20
    direct_department_confidence: int = Field(default=85, ge=0, le=100)
    count_duplicates_in_stats: bool = True

    # ── Geocoding ──────────────────────────────────────────────────────
    google_maps_api_key: str = Field(default="", validation_alias="GOOGLE_MAPS_API_KEY")
    geocode_cache_ttl: int = 2_592_000  # 30 days

    # ── Redis ──────────────────────────────────────────────────────────
    redis_url: str = Field(default="", validation_alias="REDIS_URL")

    # ── Mail ───────────────────────────────────────────────────────────
    sendgrid_api_key: str = Field(default="", validation_alias="SENDGRID_API_KEY")
    mail_from: str = Field(default="", validation_alias="SENDGRID_FROM_EMAIL")

    # ── Admin API Key ──────────────────────────────────────────────────
    admin_api_key: str = Field(default="", validation_alias="ADMIN_API_KEY")

    # ── Provider Roster ────────────────────────────────────────────────
    # Empty disables seeding; "bundled" loads src/data/providers.json.
    provider_roster: str = ""

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


# Module-level singleton; import ``settings`` everywhere.
settings = Settings()
