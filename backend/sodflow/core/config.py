"""
Settings access point used across the application.
"""
from sodflow.core.settings import Settings, get_settings, settings

__all__ = ["Settings", "get_settings", "settings"]
