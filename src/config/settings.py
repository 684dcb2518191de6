"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources (in priority order):
#
#   1. **Environment variables** (e.g., SETLIST_FM_API_KEY=abc123)
#   2. **.env file** with key=value lines in the project root .env file
#
# Field name `setlist_fm_api_key` maps to env var `SETLIST_FM_API_KEY`.
# Defaults are used when neither source sets a value.
#
# The matching thresholds, weights and windows below are tuning knobs,
# not contracts: override them per deployment without touching code.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Concert-matching engine settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Content classifier ===
    anthropic_api_key: str = ""
    classifier_model: str = "claude-sonnet-4-20250514"
    classifier_timeout_seconds: float = 90.0
    max_concurrent_analyses: int = Field(default=4, ge=1)
    # Processing rows older than this at startup were orphaned by a restart.
    stale_processing_seconds: int = 900

    # === Setlist source ===
    setlist_fm_api_key: str = ""
    setlist_fm_base_url: str = "https://api.setlist.fm/rest/1.0"
    lineup_timeout_seconds: float = 10.0
    lineup_window_days: int = Field(default=3, ge=0)
    lineup_max_pages: int = Field(default=5, ge=1)
    lineup_cache_ttl: int = 3600

    # === Match ranking ===
    match_date_tolerance_days: int = Field(default=1, ge=0)
    match_suggest_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    match_auto_link_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    match_auto_link_min_overall: float = Field(default=0.9, ge=0.0, le=1.0)
    match_signal_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    match_weight_artist: float = Field(default=0.5, ge=0.0)
    match_weight_venue: float = Field(default=0.3, ge=0.0)
    match_weight_date: float = Field(default=0.2, ge=0.0)
    match_max_suggestions: int = Field(default=10, ge=1)

    # === Entity store ===
    engine_db_path: str = "data/concert_match.db"

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    cors_allowed_origins: list[str] = Field(default_factory=lambda: ["*"])

    def classifier_configured(self) -> bool:
        """Return ``True`` when an Anthropic API key is present."""
        return bool(self.anthropic_api_key)

    def setlist_source_configured(self) -> bool:
        """Return ``True`` when a setlist.fm API key is present."""
        return bool(self.setlist_fm_api_key)
