"""Configuration management module.

This module provides:
- Environment-based configuration with validation
- Supabase and realtime settings sections
- Cached settings access via get_settings()
"""

from .settings import (
    Environment,
    LogFormat,
    LogLevel,
    RealtimeSettings,
    Settings,
    SupabaseSettings,
    get_settings,
)

__all__ = [
    # Main settings
    "Settings",
    "get_settings",
    # Enums
    "Environment",
    "LogLevel",
    "LogFormat",
    # Component settings
    "SupabaseSettings",
    "RealtimeSettings",
]
