"""Application configuration"""

from src.config.settings import PROJECT_ROOT, settings, validate_settings, resolve_path

__all__ = ["PROJECT_ROOT", "settings", "validate_settings", "resolve_path"]
