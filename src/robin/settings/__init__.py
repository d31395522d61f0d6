"""Layered Robin configuration (TOML files + ROBIN_* environment variables)."""

from robin.settings.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
