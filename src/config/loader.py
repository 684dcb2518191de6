"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  : Static defaults checked into the repo
#   2. .env file           : Local developer overrides (not committed)
#   3. Environment vars    : Set at deploy time
#
# apply_config() folds the YAML "matching" / "lineup" / "analysis" sections
# into a Settings object for fields that were NOT set explicitly through the
# environment.  Other YAML sections are documentation only.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path
from typing import Any

import yaml

from src.config.settings import Settings

# YAML section/key -> Settings field.
_YAML_FIELD_MAP: dict[tuple[str, str], str] = {
    ("matching", "date_tolerance_days"): "match_date_tolerance_days",
    ("matching", "suggest_threshold"): "match_suggest_threshold",
    ("matching", "auto_link_threshold"): "match_auto_link_threshold",
    ("matching", "auto_link_min_overall"): "match_auto_link_min_overall",
    ("matching", "signal_threshold"): "match_signal_threshold",
    ("matching", "max_suggestions"): "match_max_suggestions",
    ("lineup", "window_days"): "lineup_window_days",
    ("lineup", "timeout_seconds"): "lineup_timeout_seconds",
    ("lineup", "max_pages"): "lineup_max_pages",
    ("lineup", "cache_ttl"): "lineup_cache_ttl",
    ("analysis", "timeout_seconds"): "classifier_timeout_seconds",
    ("analysis", "max_concurrent"): "max_concurrent_analyses",
    ("analysis", "stale_processing_seconds"): "stale_processing_seconds",
}

_WEIGHT_FIELDS = {
    "artist": "match_weight_artist",
    "venue": "match_weight_venue",
    "date": "match_weight_date",
}


def apply_config(settings: Settings, path: str = "config/config.yaml") -> Settings:
    """Return *settings* with YAML tuning values filled in.

    Fields explicitly provided through the environment or ``.env`` keep
    their values; only defaulted fields take the YAML value.
    """
    yaml_config = _read_yaml(path)
    explicit = settings.model_fields_set
    updates: dict[str, Any] = {}

    for (section, key), field in _YAML_FIELD_MAP.items():
        value = yaml_config.get(section, {}).get(key)
        if value is not None and field not in explicit:
            updates[field] = value

    weights = yaml_config.get("matching", {}).get("weights", {}) or {}
    for key, field in _WEIGHT_FIELDS.items():
        if key in weights and field not in explicit:
            updates[field] = weights[key]

    if not updates:
        return settings
    # Init kwargs outrank env sources; validation makes YAML typos fail loudly.
    return Settings(**{**settings.model_dump(), **updates})


def _read_yaml(path: str) -> dict:
    config_path = Path(path)
    if not config_path.exists():
        return {}
    with open(config_path) as f:
        return yaml.safe_load(f) or {}
