"""Configuration module: exports Settings, the YAML loader, and a module-level singleton."""

from src.config.loader import apply_config
from src.config.settings import Settings

settings = Settings()

__all__ = ["Settings", "apply_config", "settings"]
