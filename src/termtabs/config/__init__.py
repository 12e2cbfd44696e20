"""Configuration management for termtabs.

Loads and validates YAML-based configuration with Pydantic models.
Supports environment variable overrides, and a small persisted store for
the user's preferred terminal URL.
"""

from termtabs.config.preferences import UrlPreferences
from termtabs.config.settings import Settings, load_settings

__all__ = ["Settings", "UrlPreferences", "load_settings"]
