"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from (highest priority first):
#
#   1. Environment variables, e.g. OPENROUTER_API_KEY=sk-or-...
#   2. The project-root .env file (local development only, never committed)
#   3. The defaults declared below
#
# Field ``openrouter_api_key`` maps to env var ``OPENROUTER_API_KEY``.
# Static tuning (retry counts, domain delays, listing hosts) lives in
# config/config.yaml instead; see src/config/loader.py for how the two
# are merged.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """eventScout runtime settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # === Language model (OpenAI-compatible endpoint) ===
    openrouter_api_key: str = ""
    llm_base_url: str = "https://openrouter.ai/api/v1"
    llm_model: str = "xiaomi/mimo-v2-flash:free"
    llm_app_url: str = ""  # sent as HTTP-Referer when set
    llm_app_title: str = ""  # sent as X-Title when set
    llm_timeout: float = 120.0

    # === Content fetching ===
    jina_reader_url: str = "https://r.jina.ai"
    jina_api_key: str = ""
    headless_enabled: bool = True

    # === Reporting ===
    slack_webhook_url: str = ""

    # === Event store ===
    event_db_path: str = "data/events.db"

    # === Pipeline ===
    target_region: str = "Palermo"
    max_events_per_run: int = 100
    inter_source_delay: float = 2.0
    stuck_run_max_age_minutes: int = 30
    timezone: str = "Europe/Rome"

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def has_llm_credentials(self) -> bool:
        """Return True when an API key for the model endpoint is configured."""
        return bool(self.openrouter_api_key)
