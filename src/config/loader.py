"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  - static tuning checked into the repo
#   2. .env file           - local developer overrides (not committed)
#   3. Environment vars    - set by the scheduler / container at run time
#
# load_config() reads the YAML first, then deep-merges the env-driven
# Settings values on top.  Only keys that Settings owns are overridden;
# pure tuning knobs (retry counts, domain delays) come from YAML alone.
#
#   base      = {"pipeline": {"partial_error_threshold": 3}}
#   overrides = {"pipeline": {"max_events_per_run": 50}}
#   result    = {"pipeline": {"partial_error_threshold": 3, "max_events_per_run": 50}}
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from src.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built Settings; a fresh instance is read from the
            environment when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "llm": {
            "api_key": settings.openrouter_api_key,
            "base_url": settings.llm_base_url,
            "model": settings.llm_model,
            "app_url": settings.llm_app_url,
            "app_title": settings.llm_app_title,
            "timeout": settings.llm_timeout,
        },
        "fetch": {
            "jina_reader_url": settings.jina_reader_url,
            "jina_api_key": settings.jina_api_key,
            "headless_enabled": settings.headless_enabled,
        },
        "report": {
            "slack_webhook_url": settings.slack_webhook_url,
        },
        "store": {
            "db_path": settings.event_db_path,
        },
        "pipeline": {
            "target_region": settings.target_region,
            "max_events_per_run": settings.max_events_per_run,
            "inter_source_delay": settings.inter_source_delay,
            "stuck_run_max_age_minutes": settings.stuck_run_max_age_minutes,
            "timezone": settings.timezone,
        },
        "logging": {
            "level": settings.log_level,
            "json": settings.app_env == "production",
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
